"""Configuration loading for contentforge (.contentforge.yml)."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import yaml

CONFIG_FILENAME = ".contentforge.yml"

DEFAULT_WINDOWS_EXTENSIONS = (
    ".com",
    ".exe",
    ".bat",
    ".cmd",
    ".vbs",
    ".vbe",
    ".js",
    ".jse",
    ".wsf",
    ".wsh",
    ".msc",
    ".ps1",
    ".psm1",
)

_DETECTION_MODES = {"posix", "windows", "none"}


class ConfigError(RuntimeError):
    """Raised when the configuration file cannot be parsed."""


@dataclass
class AnnotationsConfig:
    """Namespaces used when classifying resources and detecting routes."""

    resource_namespace: str = "spry."
    route_namespace: str = "route."


@dataclass
class DirectivesConfig:
    """Include-directive parsing options."""

    comment_prefix: Optional[str] = None
    directive_prefix: str = "#"


@dataclass
class FoundryConfig:
    """Executable detection and environment settings for foundries."""

    executable_detection: str = "posix"
    windows_extensions: List[str] = field(
        default_factory=lambda: list(DEFAULT_WINDOWS_EXTENSIONS)
    )
    env_prefix: str = "FOUNDRY_PROJECT_"
    path_env_prefix: str = "FOUNDRY_PROJECT_PATH_"


@dataclass
class ForgeConfig:
    """Represents the high-level settings defined in .contentforge.yml."""

    root: Path
    project_id: Optional[str] = None
    src_dir: str = "src"
    exclude_paths: List[str] = field(default_factory=list)
    annotations: AnnotationsConfig = field(default_factory=AnnotationsConfig)
    directives: DirectivesConfig = field(default_factory=DirectivesConfig)
    foundry: FoundryConfig = field(default_factory=FoundryConfig)
    dry_run: bool = False

    @property
    def src_home(self) -> Path:
        return (self.root / self.src_dir).resolve()

    @property
    def resolved_project_id(self) -> str:
        return self.project_id or self.root.name or "project"


def load_config(config_path: Path) -> ForgeConfig:
    """Load configuration from disk, falling back to defaults when absent."""
    config_file = _resolve_config_path(config_path)
    root = config_file.parent.resolve()

    if not config_file.exists():
        return ForgeConfig(root=root)

    data = _read_config(config_file)
    if not isinstance(data, dict):
        raise ConfigError(f"{CONFIG_FILENAME} must contain a mapping at the root")

    config = ForgeConfig(root=root)
    config.project_id = _as_str(data.get("project_id"))
    config.src_dir = _as_str(data.get("src_dir")) or config.src_dir
    config.exclude_paths = _as_str_list(data.get("exclude_paths"))
    dry_run = _as_bool(data.get("dry_run"))
    if dry_run is not None:
        config.dry_run = dry_run

    annotations_data = _as_dict(data.get("annotations"))
    if annotations_data:
        config.annotations.resource_namespace = (
            _as_str(annotations_data.get("resource_namespace"))
            or config.annotations.resource_namespace
        )
        config.annotations.route_namespace = (
            _as_str(annotations_data.get("route_namespace"))
            or config.annotations.route_namespace
        )

    directives_data = _as_dict(data.get("directives"))
    if directives_data:
        config.directives.comment_prefix = _as_str(directives_data.get("comment_prefix"))
        config.directives.directive_prefix = (
            _as_str(directives_data.get("directive_prefix"))
            or config.directives.directive_prefix
        )

    foundry_data = _as_dict(data.get("foundry"))
    if foundry_data:
        detection = _as_str(foundry_data.get("executable_detection"))
        if detection is not None:
            detection = detection.lower()
            if detection not in _DETECTION_MODES:
                raise ConfigError(
                    f"foundry.executable_detection must be one of "
                    f"{', '.join(sorted(_DETECTION_MODES))}, got '{detection}'"
                )
            config.foundry.executable_detection = detection
        extensions = _as_str_list(foundry_data.get("windows_extensions"))
        if extensions:
            config.foundry.windows_extensions = [_normalise_ext(ext) for ext in extensions]
        config.foundry.env_prefix = (
            _as_str(foundry_data.get("env_prefix")) or config.foundry.env_prefix
        )
        config.foundry.path_env_prefix = (
            _as_str(foundry_data.get("path_env_prefix")) or config.foundry.path_env_prefix
        )

    return config


def _resolve_config_path(config_path: Path) -> Path:
    config_path = config_path.expanduser()
    if config_path.is_dir():
        return (config_path / CONFIG_FILENAME).resolve()
    if config_path.name != CONFIG_FILENAME:
        return (config_path.parent / CONFIG_FILENAME).resolve()
    return config_path.resolve()


def _read_config(path: Path) -> Any:
    text = path.read_text(encoding="utf-8")
    if not text.strip():
        return {}
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc
    return loaded if loaded is not None else {}


def _normalise_ext(value: str) -> str:
    value = value.strip().lower()
    return value if value.startswith(".") else f".{value}"


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_str(value: Any) -> Optional[str]:
    return str(value) if isinstance(value, (str, int, float, bool)) else None


def _as_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "yes", "1"}:
            return True
        if lowered in {"false", "no", "0"}:
            return False
    return None


def _as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, Sequence):
        return [str(item) for item in value if isinstance(item, (str, int, float, bool))]
    return []
