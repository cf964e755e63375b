"""Annotation-driven content assembly for file-based application projects."""

from .config import ForgeConfig, load_config
from .engine import Engine
from .events import EventBus
from .languages import LanguageRegistry, LanguageSpec, default_registry
from .report import RunReport
from .resource import Resource
from .route import Routes
from .workflow import WorkflowError, WorkflowStateMachine

__version__ = "0.1.0"

__all__ = [
    "Engine",
    "EventBus",
    "ForgeConfig",
    "LanguageRegistry",
    "LanguageSpec",
    "Resource",
    "Routes",
    "RunReport",
    "WorkflowError",
    "WorkflowStateMachine",
    "__version__",
    "default_registry",
    "load_config",
]
