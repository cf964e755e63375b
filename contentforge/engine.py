"""Two-phase assembly engine: discover, materialize, re-discover."""

from __future__ import annotations

import asyncio
import json
import os
from contextlib import aclosing
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence

from . import events
from .annotations import AnnotationCatalog, ExtractorConfig, extract_annotations_stream
from .config import ForgeConfig
from .content import ContentError
from .directives import DirectiveError, DirectiveProcessors, Renderer, read_include_file
from .events import EventBus
from .foundry import Executables, FoundryMaterializer
from .languages import LanguageRegistry, default_registry
from .logging import get_logger
from .resource import ClassificationResult, Resource, classify_resource
from .route import Routes, detect_route
from .walker import ResourceSupplier, fs_files_supplier, load_ignore_rules
from .workflow import (
    DiscoveryStep,
    FinalStep,
    MaterializationStep,
    WorkflowError,
    WorkflowStateMachine,
)

# Annotation tags are decoded as JSON so ``@spry.isCleanable true`` yields a bool.
# Route text fields turn decoded ``true``/``false`` back into text.
ENGINE_EXTRACTOR_CONFIG = ExtractorConfig(tags=True, tag_value_mode="json", kv=False)


@dataclass(frozen=True)
class ProjectPaths:
    home: Path
    src_home: Path
    auto_home: Path

    def as_dict(self) -> Dict[str, str]:
        return {
            "home": str(self.home),
            "srcHome": str(self.src_home),
            "autoHome": str(self.auto_home),
        }


class Engine:
    """Drives one assembly run over a project tree.

    The state machine is advanced ``init -> discovery``; every supplied
    resource is annotated, classified, route-detected and registered. Include
    directives are then expanded and foundries executed over the discovered
    resources, the machine moves to ``materialization`` and the suppliers run
    again so generated files are classified too. The run always ends in
    ``final``.
    """

    def __init__(
        self,
        config: ForgeConfig,
        registry: Optional[LanguageRegistry] = None,
        bus: Optional[EventBus] = None,
        suppliers: Optional[Sequence[ResourceSupplier]] = None,
        executables: Optional[Executables] = None,
        renderer: Optional[Renderer] = None,
        abort: Optional[asyncio.Event] = None,
    ) -> None:
        self.config = config
        self.registry = registry or default_registry()
        self.bus = bus or EventBus()
        self.workflow = WorkflowStateMachine(self.bus)
        self.suppliers: List[ResourceSupplier] = list(suppliers or [])
        self.executables = executables or Executables(
            config.foundry.executable_detection,
            config.foundry.windows_extensions,
        )
        self.foundries = FoundryMaterializer(self.executables, self.bus)
        self.directives = DirectiveProcessors(
            renderer or read_include_file,
            comment_override=config.directives.comment_prefix,
            directive_prefix=config.directives.directive_prefix,
            on_error=self._on_directive_error,
        )
        self.abort = abort or asyncio.Event()
        self.extractor_config = ENGINE_EXTRACTOR_CONFIG
        self.logger = get_logger("engine")

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def with_suppliers(self, *suppliers: ResourceSupplier) -> "Engine":
        self.suppliers.extend(suppliers)
        return self

    def init_defaults(self) -> None:
        """Walk ``src_home`` when no supplier was configured."""
        if self.suppliers:
            return
        rules = load_ignore_rules(self.config.root, self.config.exclude_paths)
        self.with_suppliers(
            fs_files_supplier(
                self.config.src_home,
                self.registry,
                identity="PROJECT_HOME",
                project_root=self.config.root,
                rules=rules,
            )
        )

    def project_paths(self) -> ProjectPaths:
        src_home = self.config.src_home
        return ProjectPaths(
            home=self.config.root.resolve(),
            src_home=src_home,
            auto_home=src_home / "spry.d" / "auto",
        )

    def project_env(self) -> Dict[str, str]:
        """Process environment plus ``FOUNDRY_PROJECT_*`` variables for foundries."""
        paths = self.project_paths()
        project_prefix = self.config.foundry.env_prefix
        path_prefix = self.config.foundry.path_env_prefix
        env = dict(os.environ)
        env[f"{project_prefix}ID"] = self.config.resolved_project_id
        env[f"{project_prefix}WORKFLOW_STEP"] = self.workflow.step.step
        env[f"{project_prefix}PATHS_JSON"] = json.dumps(paths.as_dict())
        env[f"{path_prefix}HOME"] = str(paths.home)
        env[f"{path_prefix}SRC_HOME"] = str(paths.src_home)
        env[f"{path_prefix}AUTO_HOME"] = str(paths.auto_home)
        return env

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    async def emit_resources(self) -> int:
        """Run every supplier into the active collection; returns the number registered."""
        count = 0
        for supplier in self.suppliers:
            if self.abort.is_set():
                break
            async with aclosing(supplier(self.abort)) as stream:
                async for resource in stream:
                    if self.abort.is_set():
                        break
                    await self.encounter(resource)
                    count += 1
        return count

    async def encounter(self, resource: Resource) -> Resource:
        """Annotate, classify and route-detect ``resource``, then register it."""
        language = resource.language
        catalog: Optional[AnnotationCatalog] = None
        classification: Optional[ClassificationResult] = None

        if language is not None:
            try:
                catalog = await extract_annotations_stream(
                    resource.content.iter_chunks(),
                    language,
                    self.extractor_config,
                    path=resource.rel_path,
                )
            except ContentError as exc:
                self.logger.warning("Unable to read %s: %s", resource.rel_path, exc)

        if catalog is not None:
            classification = classify_resource(
                catalog, namespace=self.config.annotations.resource_namespace
            )
            if classification is not None and classification.success:
                conflict = resource.widen(classification.nature)
                if conflict is not None:
                    classification = ClassificationResult(
                        success=False, nature=classification.nature, conflict=conflict
                    )
            if classification is not None and not classification.success:
                self.bus.publish(
                    events.RESOURCE_ANNOTATIONS_ISSUE,
                    events.ResourceAnnotationsIssue(
                        resource=resource,
                        supplier=resource.supplier,
                        catalog=catalog,
                        language=language,
                        classification=classification,
                    ),
                )

        self.bus.publish(
            events.RESOURCE_ENCOUNTERED,
            events.ResourceEncountered(
                resource=resource,
                supplier=resource.supplier,
                catalog=catalog,
                language=language,
                classification=classification,
            ),
        )

        if catalog is not None:
            detection = detect_route(
                resource, catalog, namespace=self.config.annotations.route_namespace
            )
            if detection is not None and detection.success and detection.route is not None:
                resource.attach_route(detection.route)
                self.bus.publish(
                    events.RESOURCE_MUTATED,
                    events.ResourceMutated(resource=resource, reason=events.ROUTE_DETECTED),
                )
            elif detection is not None:
                self.bus.publish(
                    events.ROUTE_ANNOTATIONS_ISSUE,
                    events.RouteAnnotationsIssue(
                        resource=resource,
                        supplier=resource.supplier,
                        catalog=catalog,
                        language=language,
                        detection=detection,
                    ),
                )

        return self.workflow.register(resource)

    # ------------------------------------------------------------------
    # Materialization
    # ------------------------------------------------------------------

    async def materialize_directives(
        self, resources: Iterable[Resource], dry_run: bool = False
    ) -> List[events.DirectiveMaterialized]:
        """Expand ``#include`` blocks in place; writes only changed files outside dry-run."""
        emitted: List[events.DirectiveMaterialized] = []
        for resource in resources:
            if resource.language is None:
                continue
            try:
                before = resource.content.read_text()
            except ContentError as exc:
                self.logger.warning("Skipping directives for %s: %s", resource.rel_path, exc)
                continue
            processor = self.directives.for_language(resource.language)
            result = processor.process(before, resource)
            written = False
            if result.changed and not dry_run:
                try:
                    resource.content.write_text(result.after)
                    written = True
                except ContentError as exc:
                    self.logger.error("Unable to write %s: %s", resource.rel_path, exc)
            event = events.DirectiveMaterialized(
                resource=resource,
                before=result.before,
                after=result.after,
                changed=result.changed,
                written=written,
                dry_run=dry_run,
            )
            self.bus.publish(events.DIRECTIVE_MATERIALIZED, event)
            emitted.append(event)
            await asyncio.sleep(0)
        return emitted

    async def materialize_foundries(
        self, resources: Iterable[Resource], dry_run: bool = False
    ) -> List[events.FoundryMaterialized]:
        """Run every foundry in ``resources`` one after another from the project home."""
        env = self.project_env()
        cwd = self.project_paths().home
        emitted: List[events.FoundryMaterialized] = []
        for resource in resources:
            event = await self.foundries.materialize(resource, env, cwd, dry_run=dry_run)
            if event is not None:
                emitted.append(event)
        return emitted

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    async def run(self, dry_run: Optional[bool] = None) -> FinalStep:
        dry_run = self.config.dry_run if dry_run is None else dry_run
        self.init_defaults()

        step = self.workflow.advance()
        if not isinstance(step, DiscoveryStep):
            raise WorkflowError(f"Expected discovery, got '{step.step}'")
        discovered = await self.emit_resources()
        self.logger.info("Discovered %d resources", discovered)

        if not self.abort.is_set():
            await self.materialize_directives(step.discovering.src_files, dry_run=dry_run)
            await self.materialize_foundries(step.discovering.foundries, dry_run=dry_run)

        step = self.workflow.advance()
        if not isinstance(step, MaterializationStep):
            raise WorkflowError(f"Expected materialization, got '{step.step}'")
        materialized = await self.emit_resources()
        self.logger.info("Re-discovered %d resources after materialization", materialized)

        final = self.workflow.advance()
        if not isinstance(final, FinalStep):
            raise WorkflowError(f"Expected final, got '{final.step}'")
        return final

    async def clean(self, dry_run: bool = False) -> List[Path]:
        """Discover foundries and remove their ``*.auto.*`` outputs."""
        self.init_defaults()
        step = self.workflow.advance()
        if not isinstance(step, DiscoveryStep):
            raise WorkflowError(f"Expected discovery, got '{step.step}'")
        await self.emit_resources()
        removed: List[Path] = []
        for resource in step.discovering.foundries:
            path = self.foundries.clean(resource, dry_run=dry_run)
            if path is not None:
                self.logger.info("%s %s", "Would remove" if dry_run else "Removed", path)
                removed.append(path)
        while self.workflow.has_next():
            self.workflow.advance()
        return removed

    def routes(self) -> Routes:
        """Path forest over both phases; a materialized resource supersedes its discovered twin."""
        step = self.workflow.step
        if not isinstance(step, FinalStep):
            raise WorkflowError("Routes are available once the workflow is final")
        by_path: Dict[Path, Resource] = {}
        for resource in (*step.discovered.resources, *step.materialized.resources):
            by_path[resource.abs_path] = resource
        return Routes.from_resources(by_path.values())

    def _on_directive_error(self, error: DirectiveError, context: object) -> None:
        if isinstance(context, Resource):
            self.logger.warning("%s: %s", context.rel_path, error)
            self.bus.publish(
                events.DIRECTIVE_ISSUE,
                events.DirectiveIssue(resource=context, error=error),
            )
        else:
            self.logger.warning("Include directive error: %s", error)


__all__ = ["ENGINE_EXTRACTOR_CONFIG", "Engine", "ProjectPaths"]
