from __future__ import annotations

from pathlib import Path

import pytest

from contentforge.languages import LanguageRegistry, default_registry
from tests._fixtures.project_builder import ProjectBuilder


@pytest.fixture
def project_builder(tmp_path: Path) -> ProjectBuilder:
    """Provide a reusable project builder rooted at the pytest tmp_path."""
    return ProjectBuilder(tmp_path)


@pytest.fixture
def registry() -> LanguageRegistry:
    return default_registry()
