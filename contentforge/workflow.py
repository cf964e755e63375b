"""Phase state machine owning the discovery and materialization collections."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Iterator, List, Literal, Optional, Tuple, Union

from .events import STATE_MUTATED, EventBus, StateMutated
from .logging import get_logger
from .resource import Resource


class WorkflowError(RuntimeError):
    """Raised when the workflow is advanced past ``final`` or from an unknown step."""


class ResourcesCollection:
    """Append-only, ordered resources seen during one phase."""

    def __init__(self, phase: str) -> None:
        self.phase = phase
        self._resources: List[Resource] = []
        self._frozen = False

    def register(self, resource: Resource) -> Resource:
        if self._frozen:
            raise WorkflowError(f"{self.phase} collection is frozen; cannot register {resource.rel_path}")
        self._resources.append(resource)
        return resource

    def freeze(self) -> "ResourcesCollection":
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def resources(self) -> Tuple[Resource, ...]:
        return tuple(self._resources)

    @property
    def fs_files(self) -> Tuple[Resource, ...]:
        return self.resources

    @property
    def src_files(self) -> Tuple[Resource, ...]:
        """Resources whose language was detected and can therefore carry directives."""
        return tuple(resource for resource in self._resources if resource.language is not None)

    @property
    def foundries(self) -> Tuple[Resource, ...]:
        return tuple(resource for resource in self._resources if resource.is_foundry)

    def __len__(self) -> int:
        return len(self._resources)

    def __iter__(self) -> Iterator[Resource]:
        return iter(tuple(self._resources))


@dataclass(frozen=True)
class InitStep:
    step: Literal["init"] = field(default="init", init=False)


@dataclass(frozen=True)
class DiscoveryStep:
    discovering: ResourcesCollection
    step: Literal["discovery"] = field(default="discovery", init=False)

    @property
    def register(self) -> Callable[[Resource], Resource]:
        return self.discovering.register


@dataclass(frozen=True)
class MaterializationStep:
    discovered: ResourcesCollection
    materializing: ResourcesCollection
    step: Literal["materialization"] = field(default="materialization", init=False)

    @property
    def register(self) -> Callable[[Resource], Resource]:
        return self.materializing.register


@dataclass(frozen=True)
class FinalStep:
    discovered: ResourcesCollection
    materialized: ResourcesCollection
    step: Literal["final"] = field(default="final", init=False)


WorkflowStep = Union[InitStep, DiscoveryStep, MaterializationStep, FinalStep]


class WorkflowStateMachine:
    """``init -> discovery -> materialization -> final``; every transition is published."""

    def __init__(self, bus: Optional[EventBus] = None) -> None:
        self.bus = bus
        self.logger = get_logger("workflow")
        self._step: WorkflowStep = InitStep()

    @property
    def step(self) -> WorkflowStep:
        return self._step

    def advance(self) -> WorkflowStep:
        previous = self._step
        if isinstance(previous, InitStep):
            current: WorkflowStep = DiscoveryStep(discovering=ResourcesCollection("discovery"))
        elif isinstance(previous, DiscoveryStep):
            current = MaterializationStep(
                discovered=previous.discovering.freeze(),
                materializing=ResourcesCollection("materialization"),
            )
        elif isinstance(previous, MaterializationStep):
            current = FinalStep(
                discovered=previous.discovered,
                materialized=previous.materializing.freeze(),
            )
        elif isinstance(previous, FinalStep):
            raise WorkflowError("Workflow is already final; there is no next step")
        else:
            raise WorkflowError(f"Unrecognised workflow step: {previous!r}")

        self._step = current
        self.logger.debug("Workflow %s -> %s", previous.step, current.step)
        if self.bus is not None:
            self.bus.publish(STATE_MUTATED, StateMutated(previous=previous, current=current))
        return current

    def is_terminal(self) -> bool:
        return isinstance(self._step, FinalStep)

    def has_next(self) -> bool:
        return not self.is_terminal()

    def register(self, resource: Resource) -> Resource:
        """Register ``resource`` into the active phase's collection."""
        step = self._step
        if isinstance(step, (DiscoveryStep, MaterializationStep)):
            return step.register(resource)
        raise WorkflowError(f"Cannot register resources during '{step.step}'")


__all__ = [
    "DiscoveryStep",
    "FinalStep",
    "InitStep",
    "MaterializationStep",
    "ResourcesCollection",
    "WorkflowError",
    "WorkflowStateMachine",
    "WorkflowStep",
]
