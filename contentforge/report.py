"""Run summary assembled purely from bus events."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from . import events
from .events import EventBus


@dataclass(frozen=True)
class Diagnostic:
    phase: str
    topic: str
    rel_path: str
    message: str


@dataclass
class RunReport:
    """Subscribes to every engine topic and tallies what happened per phase.

    It never feeds back into the engine; it only observes.
    """

    phase: str = "init"
    encountered: Dict[str, int] = field(default_factory=dict)
    routes_detected: int = 0
    directives_changed: int = 0
    directives_written: int = 0
    foundries_materialized: int = 0
    foundries_failed: int = 0
    foundries_planned: int = 0
    transitions: List[str] = field(default_factory=list)
    diagnostics: List[Diagnostic] = field(default_factory=list)
    messages: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def attach(cls, bus: EventBus) -> "RunReport":
        report = cls()
        bus.subscribe(events.STATE_MUTATED, report.on_state)
        bus.subscribe(events.RESOURCE_ENCOUNTERED, report.on_encountered)
        bus.subscribe(events.RESOURCE_MUTATED, report.on_mutated)
        bus.subscribe(events.DIRECTIVE_MATERIALIZED, report.on_directive)
        bus.subscribe(events.FOUNDRY_MATERIALIZED, report.on_foundry)
        bus.subscribe(events.RESOURCE_ANNOTATIONS_ISSUE, report.on_resource_issue)
        bus.subscribe(events.ROUTE_ANNOTATIONS_ISSUE, report.on_route_issue)
        bus.subscribe(events.DIRECTIVE_ISSUE, report.on_directive_issue)
        return report

    def on_state(self, event: events.StateMutated) -> None:
        self.phase = event.current.step
        self.transitions.append(f"{event.previous.step}->{event.current.step}")

    def on_encountered(self, event: events.ResourceEncountered) -> None:
        self.encountered[self.phase] = self.encountered.get(self.phase, 0) + 1

    def on_mutated(self, event: events.ResourceMutated) -> None:
        if event.reason == events.ROUTE_DETECTED:
            self.routes_detected += 1

    def on_directive(self, event: events.DirectiveMaterialized) -> None:
        if event.changed:
            self.directives_changed += 1
        if event.written:
            self.directives_written += 1

    def on_foundry(self, event: events.FoundryMaterialized) -> None:
        if event.error is not None:
            self.foundries_failed += 1
            self._record(events.FOUNDRY_MATERIALIZED, event.resource, str(event.error))
        elif event.dry_run:
            self.foundries_planned += 1
        else:
            self.foundries_materialized += 1

    def on_resource_issue(self, event: events.ResourceAnnotationsIssue) -> None:
        self._record(events.RESOURCE_ANNOTATIONS_ISSUE, event.resource, event.classification.message)

    def on_route_issue(self, event: events.RouteAnnotationsIssue) -> None:
        self._record(events.ROUTE_ANNOTATIONS_ISSUE, event.resource, event.detection.message)

    def on_directive_issue(self, event: events.DirectiveIssue) -> None:
        self._record(events.DIRECTIVE_ISSUE, event.resource, str(event.error))

    def message_for(self, rel_path: str) -> Optional[str]:
        return self.messages.get(rel_path)

    def summary(self) -> Dict[str, Any]:
        return {
            "discovered": self.encountered.get("discovery", 0),
            "materialized": self.encountered.get("materialization", 0),
            "routes": self.routes_detected,
            "directives_written": self.directives_written,
            "directives_changed": self.directives_changed,
            "foundries_materialized": self.foundries_materialized,
            "foundries_planned": self.foundries_planned,
            "foundries_failed": self.foundries_failed,
            "diagnostics": len(self.diagnostics),
        }

    def _record(self, topic: str, resource: Any, message: str) -> None:
        rel_path = resource.rel_path
        self.diagnostics.append(
            Diagnostic(phase=self.phase, topic=topic, rel_path=rel_path, message=message)
        )
        self.messages[rel_path] = message


__all__ = ["Diagnostic", "RunReport"]
