"""Emission engine: render, classify, write, record.

For one collection the engine renders every artifact of every enabled
target kind, classifies each against the file on disk and the manifest,
and then either reports the plan (dry-run) or writes it.  Dry-run and real
runs share ``plan()``, so a dry-run reports exactly what a real run would do.

Classification:

=============  ==============================================================
``create``     no file at the path
``unchanged``  on-disk bytes already equal the new content (never rewritten)
``skipped``    tracked by the manifest, untouched since, new content differs,
               left alone because ``force`` is not set
``update``     the same, rewritten because of ``force``
``overwrite``  modified or untracked file, replaced because of ``force``
``conflict``   modified or untracked file and no ``force``
=============  ==============================================================

After the artifacts, the collection is registered in the host project's
shared files (see ``crudforge.registry``).  A run that changes nothing
leaves the manifest file untouched.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from crudforge.config import Settings
from crudforge.emitter.builders import CollectionIR, artifact_variants, build_collection_ir
from crudforge.emitter.renderer import TemplateRenderer
from crudforge.errors import ConflictError, CrudforgeError
from crudforge.manifest import ArtifactRecord, ManifestEntry, ManifestStore
from crudforge.naming import artifact_path
from crudforge.registry import (
    TRACKED_EDIT_ACTIONS,
    EditAction,
    PlannedEdit,
    Registration,
    apply_edits,
    plan_edits,
    registrations_for,
)
from crudforge.schema.models import CollectionSpec, Dialect, GenerationFlags, TargetKind
from crudforge.utils import atomic_write_text_async, fingerprint, fingerprint_file_async

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------

class Action(str, Enum):
    """What a run does (or would do) with one artifact."""
    CREATE = "create"
    UNCHANGED = "unchanged"
    SKIPPED = "skipped"
    UPDATE = "update"
    OVERWRITE = "overwrite"
    CONFLICT = "conflict"


WRITING_ACTIONS = frozenset({Action.CREATE, Action.UPDATE, Action.OVERWRITE})


class Artifact(BaseModel):
    """A rendered file, immutable once produced."""

    model_config = ConfigDict(frozen=True)

    target_kind: TargetKind
    variant: str
    path: str
    content: str
    fingerprint: str

    def to_record(self, fingerprint: Optional[str] = None) -> ArtifactRecord:
        return ArtifactRecord(
            path=self.path,
            target_kind=self.target_kind,
            fingerprint=fingerprint or self.fingerprint,
        )


class PlannedArtifact(BaseModel):
    """An artifact together with its classification."""

    artifact: Artifact
    action: Action
    on_disk: Optional[str] = Field(default=None, description="Fingerprint found on disk")

    def to_record(self) -> ArtifactRecord:
        """Manifest record for the file as it will be on disk after the run."""
        if self.action is Action.SKIPPED:
            return self.artifact.to_record(self.on_disk)
        return self.artifact.to_record()


class CollectionPlan(BaseModel):
    """Classified output for one collection."""

    layer: str
    collection: str
    dry_run: bool = False
    artifacts: list[PlannedArtifact] = Field(default_factory=list)
    carried: list[ArtifactRecord] = Field(
        default_factory=list,
        description="Previously tracked files not re-emitted this run but still on disk",
    )
    edits: list[PlannedEdit] = Field(default_factory=list)
    registrations: list[Registration] = Field(default_factory=list, exclude=True)

    @property
    def conflicts(self) -> list[str]:
        return [p.artifact.path for p in self.artifacts if p.action is Action.CONFLICT]

    @property
    def writes(self) -> list[PlannedArtifact]:
        return [p for p in self.artifacts if p.action in WRITING_ACTIONS]

    @property
    def skipped(self) -> list[str]:
        return [p.artifact.path for p in self.artifacts if p.action is Action.SKIPPED]

    @property
    def edit_writes(self) -> list[PlannedEdit]:
        return [e for e in self.edits if e.action is EditAction.INSERT]

    def counts(self) -> dict[Action, int]:
        counts = {action: 0 for action in Action}
        for planned in self.artifacts:
            counts[planned.action] += 1
        return counts

    def manifest_entry(self) -> ManifestEntry:
        records = [p.to_record() for p in self.artifacts]
        return ManifestEntry(
            layer=self.layer,
            collection=self.collection,
            artifacts=records + list(self.carried),
            edits=[e.record for e in self.edits if e.action in TRACKED_EDIT_ACTIONS],
        )


def classify(
    new_fingerprint: str,
    on_disk: Optional[str],
    tracked: Optional[ArtifactRecord],
    force: bool,
) -> Action:
    """Decide what to do with one artifact."""
    if on_disk is None:
        return Action.CREATE
    if on_disk == new_fingerprint:
        return Action.UNCHANGED
    if tracked is not None and tracked.fingerprint == on_disk:
        return Action.UPDATE if force else Action.SKIPPED
    if force:
        return Action.OVERWRITE
    return Action.CONFLICT


# ---------------------------------------------------------------------------
# EmissionEngine
# ---------------------------------------------------------------------------

class EmissionEngine:
    """Generate the artifacts of one or more collections.

    Args:
        settings: Where the host project lives.
        manifest: Store consulted for tracked fingerprints and updated after
            each collection is fully written.
        renderer: Template renderer; a default one is built if omitted.
    """

    def __init__(
        self,
        settings: Settings,
        manifest: ManifestStore,
        renderer: TemplateRenderer | None = None,
    ) -> None:
        self.settings = settings
        self.manifest = manifest
        self.renderer = renderer or TemplateRenderer()

    # -- Rendering -----------------------------------------------------------

    def render(
        self,
        spec: CollectionSpec,
        flags: GenerationFlags,
        dialect: Dialect,
    ) -> list[Artifact]:
        """Render every artifact for *spec*, in emission order.  Pure."""
        ir = build_collection_ir(spec, flags, dialect)
        artifacts: list[Artifact] = []
        seen: set[str] = set()
        for kind in flags.enabled_targets():
            for variant in artifact_variants(ir, kind):
                path = artifact_path(spec.layer, spec.name, kind, variant)
                if path in seen:
                    raise CrudforgeError(
                        f"{spec.layer}/{spec.name}: two artifacts resolve to {path}",
                        hint="Rename one of the repeater fields.",
                    )
                seen.add(path)
                content = self.renderer.render_artifact(kind, variant, self._context(ir, variant))
                artifacts.append(
                    Artifact(
                        target_kind=kind,
                        variant=variant,
                        path=path,
                        content=content,
                        fingerprint=fingerprint(content),
                    )
                )
        return artifacts

    def _context(self, ir: CollectionIR, variant: str) -> dict:
        repeater = None
        if variant.startswith("repeater:"):
            field_name = variant.split(":", 2)[1]
            repeater = next(r for r in ir.repeaters if r.field_name == field_name)
        return {
            "ir": ir,
            "names": ir.names,
            "variant": variant,
            "repeater": repeater,
            "auth_module": self.settings.auth_module,
        }

    # -- Planning ------------------------------------------------------------

    async def plan(
        self,
        spec: CollectionSpec,
        flags: GenerationFlags,
        dialect: Dialect,
    ) -> CollectionPlan:
        """Classify every artifact without touching the file system."""
        previous = self.manifest.get(spec.layer, spec.name)
        plan = CollectionPlan(layer=spec.layer, collection=spec.name, dry_run=flags.dry_run)

        for artifact in self.render(spec, flags, dialect):
            on_disk = await fingerprint_file_async(self.settings.resolve(artifact.path))
            tracked = previous.artifact(artifact.path) if previous else None
            action = classify(artifact.fingerprint, on_disk, tracked, flags.force)
            logger.debug("%s -> %s", artifact.path, action.value)
            plan.artifacts.append(PlannedArtifact(artifact=artifact, action=action, on_disk=on_disk))

        if previous is not None:
            emitted = {p.artifact.path for p in plan.artifacts}
            for record in previous.artifacts:
                if record.path in emitted:
                    continue
                if await fingerprint_file_async(self.settings.resolve(record.path)) is None:
                    logger.debug("Dropping %s from manifest: no longer on disk", record.path)
                    continue
                plan.carried.append(record)

        plan.registrations = registrations_for(
            spec.layer, spec.name, flags.enabled_targets(), self.settings.project_root
        )
        plan.edits = await plan_edits(
            self.settings, plan.registrations, previous.edits if previous else ()
        )
        return plan

    # -- Generation ----------------------------------------------------------

    async def generate(
        self,
        spec: CollectionSpec,
        flags: GenerationFlags,
        dialect: Dialect,
    ) -> CollectionPlan:
        """Plan, then (unless dry-run) write and record one collection.

        Raises:
            ConflictError: If any artifact is a conflict.  Nothing for this
                collection has been written when this is raised.
        """
        plan = await self.plan(spec, flags, dialect)
        if flags.dry_run:
            return plan
        if plan.conflicts:
            raise ConflictError(spec.layer, spec.name, plan.conflicts)

        for planned in plan.writes:
            target = self.settings.resolve(planned.artifact.path)
            await atomic_write_text_async(target, planned.artifact.content)
            logger.debug("%s %s", planned.action.value, planned.artifact.path)

        if plan.edit_writes:
            await apply_edits(self.settings, plan.registrations, plan.edits)

        entry = plan.manifest_entry()
        previous = self.manifest.get(spec.layer, spec.name)
        if previous is not None and entry.same_contents(previous):
            logger.debug("%s: manifest entry unchanged", entry.key)
        else:
            await self.manifest.record(entry)
        return plan

    async def generate_many(
        self,
        specs: list[CollectionSpec],
        flags: GenerationFlags,
        dialect: Dialect,
    ) -> list[CollectionPlan]:
        """Generate collections in order, stopping at the first conflict.

        Collections completed before the conflict stay written and recorded.
        """
        plans = []
        for spec in specs:
            plans.append(await self.generate(spec, flags, dialect))
        return plans
