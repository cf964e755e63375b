"""Route annotations, detection, and the path forest used for navigation."""

from __future__ import annotations

import json
import posixpath
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from .annotations import AnnotationCatalog
from .resource import Resource

ROUTE_NAMESPACE = "route."
INDEX_BASENAMES = ("index.sql",)


class RouteChild(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    path: str


class RouteAnnotation(BaseModel):
    """Navigation route annotation supporting hierarchy and ordered siblings."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
        frozen=True,
        coerce_numbers_to_str=True,
    )

    path: str
    caption: str
    path_basename: Optional[str] = None
    path_basename_no_extn: Optional[str] = None
    path_dirname: Optional[str] = None
    path_extn_terminal: Optional[str] = None
    path_extns: Optional[List[str]] = None
    sibling_order: Optional[float] = None
    url: Optional[str] = None
    title: Optional[str] = None
    abbreviated_caption: Optional[str] = None
    description: Optional[str] = None
    elaboration: Optional[Any] = None
    children: Optional[List[RouteChild]] = None

    @field_validator(
        "path",
        "caption",
        "url",
        "title",
        "abbreviated_caption",
        "description",
        mode="before",
    )
    @classmethod
    def _literal_text(cls, value: Any) -> Any:
        # JSON-decoded tag values: `@route.caption true` means the text "true".
        if value is None or isinstance(value, bool):
            return json.dumps(value)
        return value


@dataclass(frozen=True)
class Route:
    """A validated route plus the catalog it was parsed from."""

    annotated: RouteAnnotation
    provenance: AnnotationCatalog

    @property
    def path(self) -> str:
        return self.annotated.path


@dataclass(frozen=True)
class RouteDetection:
    success: bool
    route: Optional[Route] = None
    error: Optional[ValidationError] = None

    @property
    def message(self) -> str:
        if self.error is None:
            return ""
        return "; ".join(
            f"{'.'.join(str(part) for part in issue['loc']) or 'route'}: {issue['msg']}"
            for issue in self.error.errors()
        )


def route_defaults(resource: Resource) -> Dict[str, Any]:
    """Path-derived fields used when the annotations omit them."""
    path = resource.web_path or resource.rel_path
    extensions = resource.extensions
    return {
        "path": path,
        "pathBasename": extensions.basename,
        "pathBasenameNoExtn": extensions.basename_no_extensions,
        "pathDirname": posixpath.dirname(path),
        "pathExtnTerminal": extensions.terminal,
        "pathExtns": list(extensions.extensions),
    }


def detect_route(
    resource: Resource,
    catalog: AnnotationCatalog,
    namespace: str = ROUTE_NAMESPACE,
) -> Optional[RouteDetection]:
    """Validate ``route.*`` tags merged over path defaults; ``None`` when there are none."""
    annotations = catalog.namespaced(namespace)
    if not annotations:
        return None
    data = route_defaults(resource)
    data.update(annotations)
    try:
        annotated = RouteAnnotation.model_validate(data)
    except ValidationError as exc:
        return RouteDetection(success=False, error=exc)
    return RouteDetection(success=True, route=Route(annotated=annotated, provenance=catalog))


# ----------------------------------------------------------------------
# Path forest
# ----------------------------------------------------------------------


@dataclass
class RouteNode:
    """One path in the forest; ``virtual`` nodes were synthesized as containers."""

    path: str
    name: str
    children: List["RouteNode"] = field(default_factory=list)
    payloads: List[RouteAnnotation] = field(default_factory=list)
    parent: Optional["RouteNode"] = field(default=None, repr=False)

    @property
    def virtual(self) -> bool:
        return not self.payloads

    @property
    def is_index(self) -> bool:
        return self.name.lower() in INDEX_BASENAMES


class Routes:
    """Read-only forest built from route annotations.

    Missing intermediate directories are synthesized as virtual containers.
    A container's canonical node is its index child (``index.sql``) when
    present, so breadcrumbs point at index pages rather than bare folders.
    """

    def __init__(self, annotations: Iterable[RouteAnnotation]) -> None:
        self._by_path: Dict[str, RouteNode] = {}
        for annotation in annotations:
            self._ensure(_normalize(annotation.path)).payloads.append(annotation)

        for path in list(self._by_path):
            parent = _dirname(path)
            while parent != "/":
                self._ensure(parent)
                parent = _dirname(parent)

        self.roots: List[RouteNode] = []
        for path, node in self._by_path.items():
            parent_path = _dirname(path)
            parent = self._by_path.get(parent_path) if parent_path != "/" else None
            if parent is None:
                self.roots.append(node)
            else:
                node.parent = parent
                parent.children.append(node)
        _sort(self.roots)

    @classmethod
    def from_resources(cls, *collections: Iterable[Resource]) -> "Routes":
        annotations = [
            resource.route.annotated
            for collection in collections
            for resource in collection
            if resource.route is not None
        ]
        return cls(annotations)

    def node(self, path: str) -> Optional[RouteNode]:
        return self._by_path.get(_normalize(path))

    def canonical(self, node: RouteNode) -> RouteNode:
        index = next((child for child in node.children if child.is_index), None)
        return index or node

    def ancestors(self, path: str) -> List[RouteNode]:
        """Canonical nodes of every enclosing container, root first."""
        node = self.node(path)
        if node is None:
            return []
        trail: List[RouteNode] = []
        container = node.parent
        if node.is_index and container is not None:
            container = container.parent
        while container is not None:
            trail.append(self.canonical(container))
            container = container.parent
        trail.reverse()
        return trail

    @property
    def breadcrumbs(self) -> Dict[str, List[RouteAnnotation]]:
        """Route path -> ancestor routes (root first), skipping virtual containers."""
        crumbs: Dict[str, List[RouteAnnotation]] = {}
        for node in self._by_path.values():
            for payload in node.payloads:
                crumbs[payload.path] = [
                    ancestor.payloads[0]
                    for ancestor in self.ancestors(node.path)
                    if ancestor.payloads
                ]
        return crumbs

    @property
    def edges(self) -> List[Tuple[str, str]]:
        """``(parent, child)`` path pairs in depth-first order."""
        pairs: List[Tuple[str, str]] = []

        def visit(nodes: List[RouteNode]) -> None:
            for node in nodes:
                for child in node.children:
                    pairs.append((node.path, child.path))
                visit(node.children)

        visit(self.roots)
        return pairs

    def render(self) -> str:
        """Indented text rendering of the forest."""
        lines: List[str] = []

        def visit(nodes: List[RouteNode], depth: int) -> None:
            for node in nodes:
                label = node.payloads[0].caption if node.payloads else ""
                marker = "" if node.payloads else " (virtual)"
                suffix = f" {label}" if label else ""
                lines.append(f"{'  ' * depth}{node.name}{suffix}{marker}")
                visit(node.children, depth + 1)

        visit(self.roots, 0)
        return "\n".join(lines)

    def _ensure(self, path: str) -> RouteNode:
        node = self._by_path.get(path)
        if node is None:
            node = RouteNode(path=path, name=posixpath.basename(path) or "/")
            self._by_path[path] = node
        return node


def _normalize(path: str) -> str:
    text = "/".join(segment for segment in path.strip().split("/") if segment)
    return f"/{text}"


def _dirname(path: str) -> str:
    parent = posixpath.dirname(path)
    return parent or "/"


def _sort(nodes: List[RouteNode]) -> None:
    nodes.sort(key=lambda node: (_sibling_order(node), node.name, node.path))
    for node in nodes:
        _sort(node.children)


def _sibling_order(node: RouteNode) -> float:
    for payload in node.payloads:
        if payload.sibling_order is not None:
            return payload.sibling_order
    return float("inf")


__all__ = [
    "INDEX_BASENAMES",
    "ROUTE_NAMESPACE",
    "Route",
    "RouteAnnotation",
    "RouteChild",
    "RouteDetection",
    "RouteNode",
    "Routes",
    "detect_route",
    "route_defaults",
]
