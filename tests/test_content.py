"""Tests for the file content accessor."""

from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest

from contentforge.content import (
    ContentError,
    ContentNotFoundError,
    ContentPermissionError,
    FileContent,
)


def test_read_and_ranged_read(tmp_path: Path) -> None:
    path = tmp_path / "page.sql"
    path.write_text("select 1;\nselect 2;\n", encoding="utf-8")
    content = FileContent(path)

    assert content.read_text() == "select 1;\nselect 2;\n"
    assert content.read_text(0, 6) == "select"
    assert content.read_text(start=10) == "select 2;\n"


def test_write_text_replaces_whole_file(tmp_path: Path) -> None:
    path = tmp_path / "page.sql"
    path.write_text("old", encoding="utf-8")

    returned = FileContent(path).write_text("new text")

    assert returned == "new text"
    assert path.read_text(encoding="utf-8") == "new text"


def test_iter_chunks_and_first_line(tmp_path: Path) -> None:
    path = tmp_path / "run.sh"
    path.write_bytes(b"#!/bin/sh\r\necho hi\n")
    content = FileContent(path)

    assert b"".join(content.iter_chunks(size=3)) == b"#!/bin/sh\r\necho hi\n"
    assert content.first_line() == "#!/bin/sh"


def test_missing_file_is_distinguishable(tmp_path: Path) -> None:
    content = FileContent(tmp_path / "absent.sql")

    with pytest.raises(ContentNotFoundError):
        content.read_text()
    with pytest.raises(ContentNotFoundError):
        list(content.iter_chunks())


@pytest.mark.skipif(sys.platform.startswith("win"), reason="POSIX permissions required")
def test_permission_error_is_distinguishable(tmp_path: Path) -> None:
    if hasattr(os, "geteuid") and os.geteuid() == 0:
        pytest.skip("root bypasses file permissions")
    path = tmp_path / "locked.sql"
    path.write_text("secret", encoding="utf-8")
    path.chmod(0o000)
    try:
        with pytest.raises(ContentPermissionError) as excinfo:
            FileContent(path).read_text()
    finally:
        path.chmod(0o644)

    assert isinstance(excinfo.value, ContentError)
    assert not isinstance(excinfo.value, ContentNotFoundError)


def test_undecodable_text_raises_content_error(tmp_path: Path) -> None:
    path = tmp_path / "binary.sql"
    path.write_bytes(b"\xff\xfe\x00bad")

    with pytest.raises(ContentError):
        FileContent(path).read_text()
