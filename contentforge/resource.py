"""Resource model, nature schemas and annotation-driven classification."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING, Annotated, Any, Dict, Literal, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel

from .annotations import AnnotationCatalog
from .content import FileContent
from .languages import LanguageSpec

if TYPE_CHECKING:
    from .route import Route

RESOURCE_NAMESPACE = "spry."


class _NatureModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
        frozen=True,
    )

    is_system_generated: bool = False


class ActionNature(_NatureModel):
    """Code that executes an action and redirects back to a page."""

    nature: Literal["action"] = "action"


class ApiNature(_NatureModel):
    """An API endpoint exposed by the system."""

    nature: Literal["api"] = "api"


class FoundryNature(_NatureModel):
    """An executable which generates and materializes output."""

    nature: Literal["foundry"] = "foundry"
    contributes_resources: bool = False
    run_before_ann_catalog: bool = True
    run_after_ann_catalog: bool = False
    is_cleanable: bool = False
    depends_on: Literal["none", "db-after-build"] = "none"


class PageNature(_NatureModel):
    """A server-side generated page; the default for routed resources."""

    nature: Literal["page"] = "page"


class PartialNature(_NatureModel):
    """A fragment of a page, usually included by other pages."""

    nature: Literal["partial"] = "partial"


class DataResourceNature(_NatureModel):
    """A data resource such as JSON."""

    nature: Literal["resource"] = "resource"
    sql_impact: Literal["unknown", "json"]


class SqlNature(_NatureModel):
    """A SQL procedure; ``sql_impact`` says whether it is DQL, DML or DDL."""

    nature: Literal["sql"] = "sql"
    sql_impact: Literal["dql", "dml", "ddl"]


class UnknownNature(_NatureModel):
    """The nature is indeterminate."""

    nature: Literal["unknown"] = "unknown"


ResourceNature = Annotated[
    Union[
        ActionNature,
        ApiNature,
        FoundryNature,
        PageNature,
        PartialNature,
        DataResourceNature,
        SqlNature,
        UnknownNature,
    ],
    Field(discriminator="nature"),
]

_NATURE_ADAPTER: TypeAdapter[Any] = TypeAdapter(ResourceNature)

NATURE_DEFAULTS: Mapping[str, Any] = {"isSystemGenerated": False}


def parse_nature(data: Mapping[str, Any]) -> ResourceNature:
    """Validate ``data`` against the nature union; raises ``ValidationError``."""
    return _NATURE_ADAPTER.validate_python(dict(data))


@dataclass(frozen=True)
class SupplierIdentity:
    """Which supplier produced a resource and the root it walked."""

    identity: str
    root: Path


@dataclass(frozen=True)
class PathExtensions:
    """Dotted extension chain of a file name (``report.pre.sql`` -> ``.pre``, ``.sql``)."""

    basename: str
    extensions: Tuple[str, ...]

    @classmethod
    def of(cls, path: Union[str, Path, PurePosixPath]) -> "PathExtensions":
        name = PurePosixPath(str(path).replace("\\", "/")).name
        stem = name.lstrip(".")
        parts = stem.split(".")[1:]
        return cls(basename=name, extensions=tuple(f".{part}" for part in parts if part))

    @property
    def terminal(self) -> str:
        return self.extensions[-1] if self.extensions else ""

    @property
    def basename_no_extensions(self) -> str:
        leading = len(self.basename) - len(self.basename.lstrip("."))
        return self.basename[:leading] + self.basename[leading:].split(".")[0]


@dataclass(frozen=True)
class NatureConflict:
    """A classification that was rejected because a concrete nature is already set."""

    current: ResourceNature
    proposed: ResourceNature

    def __str__(self) -> str:
        return (
            f"nature '{self.current.nature}' already set; "
            f"refusing to replace it with '{self.proposed.nature}'"
        )


@dataclass(eq=False)
class Resource:
    """A walked file plus its classification and optional route."""

    abs_path: Path
    rel_path: str
    supplier: SupplierIdentity
    content: FileContent
    web_path: Optional[str] = None
    language: Optional[LanguageSpec] = None
    nature: ResourceNature = field(default_factory=UnknownNature)
    route: Optional["Route"] = None
    extensions: PathExtensions = field(init=False)

    def __post_init__(self) -> None:
        self.extensions = PathExtensions.of(self.abs_path)

    @property
    def nature_name(self) -> str:
        return self.nature.nature

    @property
    def is_foundry(self) -> bool:
        return isinstance(self.nature, FoundryNature)

    def widen(self, proposed: ResourceNature) -> Optional[NatureConflict]:
        """Apply ``proposed`` unless it would replace a different concrete nature.

        ``unknown`` is always replaced and a same-nature proposal refines the
        current fields. A conflicting proposal is returned, never applied.
        """
        current = self.nature
        if isinstance(current, UnknownNature) or current.nature == proposed.nature:
            self.nature = proposed
            return None
        if isinstance(proposed, UnknownNature):
            return None
        return NatureConflict(current=current, proposed=proposed)

    def attach_route(self, route: "Route") -> bool:
        """Attach ``route``; an ``unknown`` nature becomes ``page``. Returns True if widened."""
        self.route = route
        if isinstance(self.nature, UnknownNature):
            self.widen(PageNature(is_system_generated=self.nature.is_system_generated))
            return True
        return False


@dataclass(frozen=True)
class ClassificationResult:
    """Outcome of validating namespaced annotations against the nature union."""

    success: bool
    nature: Optional[ResourceNature] = None
    error: Optional[ValidationError] = None
    conflict: Optional[NatureConflict] = None

    @property
    def message(self) -> str:
        if self.error is not None:
            return "; ".join(
                f"{'.'.join(str(part) for part in issue['loc']) or 'nature'}: {issue['msg']}"
                for issue in self.error.errors()
            )
        if self.conflict is not None:
            return str(self.conflict)
        return ""


def classify_resource(
    catalog: AnnotationCatalog,
    defaults: Optional[Mapping[str, Any]] = None,
    namespace: str = RESOURCE_NAMESPACE,
) -> Optional[ClassificationResult]:
    """Validate ``spry.*`` tags from ``catalog``; ``None`` when there are none.

    Validation failures are returned on the result, never raised.
    """
    annotations = catalog.namespaced(namespace)
    if not annotations:
        return None
    data: Dict[str, Any] = dict(NATURE_DEFAULTS if defaults is None else defaults)
    data.update(annotations)
    try:
        nature = parse_nature(data)
    except ValidationError as exc:
        return ClassificationResult(success=False, error=exc)
    return ClassificationResult(success=True, nature=nature)


__all__ = [
    "ActionNature",
    "ApiNature",
    "ClassificationResult",
    "DataResourceNature",
    "FoundryNature",
    "NATURE_DEFAULTS",
    "NatureConflict",
    "PageNature",
    "PartialNature",
    "PathExtensions",
    "RESOURCE_NAMESPACE",
    "Resource",
    "ResourceNature",
    "SqlNature",
    "SupplierIdentity",
    "UnknownNature",
    "classify_resource",
    "parse_nature",
]
