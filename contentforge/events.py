"""In-process publish/subscribe bus and the event payloads the engine emits."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Mapping, Optional

from .logging import get_logger

if TYPE_CHECKING:
    from .annotations import AnnotationCatalog
    from .directives import DirectiveError
    from .languages import LanguageSpec
    from .resource import ClassificationResult, Resource, SupplierIdentity
    from .route import RouteDetection
    from .workflow import WorkflowStep

RESOURCE_ENCOUNTERED = "resource:encountered"
RESOURCE_MUTATED = "resource:mutated"
DIRECTIVE_MATERIALIZED = "directive:materialized"
FOUNDRY_MATERIALIZED = "foundry:materialized"
STATE_MUTATED = "state:mutated"
RESOURCE_ANNOTATIONS_ISSUE = "diagnostic:resource-annotations"
ROUTE_ANNOTATIONS_ISSUE = "diagnostic:route-annotations"
DIRECTIVE_ISSUE = "diagnostic:directive"

ROUTE_DETECTED = "Route detected"

TOPICS = (
    RESOURCE_ENCOUNTERED,
    RESOURCE_MUTATED,
    DIRECTIVE_MATERIALIZED,
    FOUNDRY_MATERIALIZED,
    STATE_MUTATED,
    RESOURCE_ANNOTATIONS_ISSUE,
    ROUTE_ANNOTATIONS_ISSUE,
    DIRECTIVE_ISSUE,
)

Subscriber = Callable[[Any], None]


@dataclass(frozen=True)
class ResourceEncountered:
    resource: Resource
    supplier: SupplierIdentity
    catalog: Optional[AnnotationCatalog]
    language: Optional[LanguageSpec]
    classification: Optional[ClassificationResult]


@dataclass(frozen=True)
class ResourceMutated:
    resource: Resource
    reason: str


@dataclass(frozen=True)
class DirectiveMaterialized:
    resource: Resource
    before: str
    after: str
    changed: bool
    written: bool
    dry_run: bool


@dataclass(frozen=True)
class FoundryMaterialized:
    resource: Resource
    command: str
    env: Mapping[str, str]
    cwd: Path
    output_path: Optional[Path]
    dry_run: bool
    error: Optional[Exception] = None


@dataclass(frozen=True)
class StateMutated:
    previous: WorkflowStep
    current: WorkflowStep


@dataclass(frozen=True)
class ResourceAnnotationsIssue:
    resource: Resource
    supplier: SupplierIdentity
    catalog: AnnotationCatalog
    language: Optional[LanguageSpec]
    classification: ClassificationResult


@dataclass(frozen=True)
class RouteAnnotationsIssue:
    resource: Resource
    supplier: SupplierIdentity
    catalog: AnnotationCatalog
    language: Optional[LanguageSpec]
    detection: RouteDetection


@dataclass(frozen=True)
class DirectiveIssue:
    resource: Resource
    error: DirectiveError


@dataclass
class EventBus:
    """Topic-keyed pub/sub with independent subscribers.

    Callbacks run synchronously in publish order. A failing subscriber is
    logged and counted; the remaining subscribers still receive the event.
    """

    _subscribers: Dict[str, List[Subscriber]] = field(default_factory=dict, init=False)
    _publish_count: int = field(default=0, init=False)
    _error_count: int = field(default=0, init=False)

    def __post_init__(self) -> None:
        self.logger = get_logger("events")

    def subscribe(self, topic: str, callback: Subscriber) -> bool:
        """Subscribe ``callback`` to ``topic``; returns False when already subscribed."""
        callbacks = self._subscribers.setdefault(topic, [])
        if callback in callbacks:
            return False
        callbacks.append(callback)
        return True

    def on(self, topic: str) -> Callable[[Subscriber], Subscriber]:
        """Decorator form of :meth:`subscribe`."""

        def decorator(callback: Subscriber) -> Subscriber:
            self.subscribe(topic, callback)
            return callback

        return decorator

    def unsubscribe(self, topic: str, callback: Subscriber) -> bool:
        try:
            self._subscribers.get(topic, []).remove(callback)
        except ValueError:
            return False
        return True

    def publish(self, topic: str, payload: Any) -> int:
        """Deliver ``payload`` to every subscriber of ``topic``; returns the number notified."""
        notified = 0
        for callback in list(self._subscribers.get(topic, [])):
            try:
                callback(payload)
                notified += 1
            except Exception as exc:
                self._error_count += 1
                self.logger.warning(
                    "Subscriber %s failed on %s: %s",
                    getattr(callback, "__name__", repr(callback)),
                    topic,
                    exc,
                )
        self._publish_count += 1
        return notified

    def subscriber_count(self, topic: Optional[str] = None) -> int:
        if topic is not None:
            return len(self._subscribers.get(topic, []))
        return sum(len(callbacks) for callbacks in self._subscribers.values())

    @property
    def stats(self) -> Dict[str, int]:
        return {
            "subscribers": self.subscriber_count(),
            "published": self._publish_count,
            "errors": self._error_count,
        }

    def clear(self) -> int:
        count = self.subscriber_count()
        self._subscribers.clear()
        return count


__all__ = [
    "DIRECTIVE_ISSUE",
    "DIRECTIVE_MATERIALIZED",
    "FOUNDRY_MATERIALIZED",
    "RESOURCE_ANNOTATIONS_ISSUE",
    "RESOURCE_ENCOUNTERED",
    "RESOURCE_MUTATED",
    "ROUTE_DETECTED",
    "ROUTE_ANNOTATIONS_ISSUE",
    "STATE_MUTATED",
    "TOPICS",
    "DirectiveIssue",
    "DirectiveMaterialized",
    "EventBus",
    "FoundryMaterialized",
    "ResourceAnnotationsIssue",
    "ResourceEncountered",
    "ResourceMutated",
    "RouteAnnotationsIssue",
    "StateMutated",
]
