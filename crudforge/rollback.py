"""Rollback engine: reverse what the manifest says was generated.

A file is removed only when the manifest lists it and its current bytes
still match the recorded fingerprint.  Hand-edited files are reported as
``skipped-modified`` and kept (unless ``force``), and the manifest entry
survives until every one of its artifacts has been handled.  Paths come
from the manifest, never from the current schema, so schema changes after
generation cannot redirect a rollback.

Once every artifact of an entry is handled, the lines generation inserted
into shared host files are taken out again, even under ``keep_files``.
A dry-run classifies exactly like a real run and only skips the mutations.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

from pydantic import BaseModel, Field
from rich.prompt import Confirm, Prompt
from rich.table import Table

from crudforge.config import Settings
from crudforge.errors import ManifestMismatch, ModifiedSinceGeneration
from crudforge.manifest import ManifestEntry, ManifestStore
from crudforge.naming import resolve_names
from crudforge.registry import EditResult, revert_edits
from crudforge.schema.models import ProjectConfig, TargetKind
from crudforge.utils import console, fingerprint_file_async, prune_empty_dirs

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------

class ArtifactOutcome(str, Enum):
    """What happened (or, in a dry-run, would happen) to one artifact."""
    DELETED = "deleted"
    KEPT = "kept"
    SKIPPED_MODIFIED = "skipped-modified"
    MISSING = "missing"


HANDLED_OUTCOMES = frozenset({
    ArtifactOutcome.DELETED,
    ArtifactOutcome.KEPT,
    ArtifactOutcome.MISSING,
})


class EntryOutcome(str, Enum):
    REMOVED = "removed"
    RETAINED = "retained"


class ArtifactResult(BaseModel):
    path: str
    target_kind: TargetKind
    outcome: ArtifactOutcome


class RollbackResult(BaseModel):
    """Outcome of rolling back one ``(layer, collection)`` entry."""

    layer: str
    collection: str
    dry_run: bool = False
    artifacts: list[ArtifactResult] = Field(default_factory=list)
    entry: EntryOutcome = EntryOutcome.RETAINED
    edits: list[EditResult] = Field(default_factory=list)
    removed_files: list[str] = Field(
        default_factory=list, description="Shared files deleted once only boilerplate was left"
    )
    pruned: list[str] = Field(default_factory=list, description="Removed empty directories")

    @property
    def modified(self) -> list[str]:
        return [
            a.path for a in self.artifacts
            if a.outcome is ArtifactOutcome.SKIPPED_MODIFIED
        ]

    def count(self, outcome: ArtifactOutcome) -> int:
        return sum(1 for a in self.artifacts if a.outcome is outcome)

    def ensure_unmodified(self) -> None:
        """Raise if any artifact was skipped because it had been edited."""
        if self.modified:
            raise ModifiedSinceGeneration(self.layer, self.collection, self.modified)


class BulkRollbackResult(BaseModel):
    """Outcome of a bulk or interactive rollback."""

    dry_run: bool = False
    results: list[RollbackResult] = Field(default_factory=list)
    mismatches: list[str] = Field(
        default_factory=list, description="Requested pairs with no manifest entry"
    )

    @property
    def removed(self) -> int:
        return sum(1 for r in self.results if r.entry is EntryOutcome.REMOVED)


# ---------------------------------------------------------------------------
# RollbackEngine
# ---------------------------------------------------------------------------

class RollbackEngine:
    """Remove generated artifacts recorded in the manifest.

    Args:
        settings: Where the host project lives.
        manifest: Store listing what was generated; entries are removed from
            it once fully handled.
    """

    def __init__(self, settings: Settings, manifest: ManifestStore) -> None:
        self.settings = settings
        self.manifest = manifest

    # -- Single ----------------------------------------------------------------

    async def rollback_single(
        self,
        layer: str,
        collection: str,
        *,
        dry_run: bool = False,
        keep_files: bool = False,
        force: bool = False,
    ) -> RollbackResult:
        """Roll back one collection.

        Raises:
            ManifestMismatch: If the manifest has no entry for the pair.
        """
        entry = self.manifest.get(layer, collection)
        if entry is None:
            raise ManifestMismatch(layer, collection)
        return await self._rollback_entry(
            entry, dry_run=dry_run, keep_files=keep_files, force=force
        )

    async def _rollback_entry(
        self,
        entry: ManifestEntry,
        *,
        dry_run: bool,
        keep_files: bool,
        force: bool,
    ) -> RollbackResult:
        result = RollbackResult(layer=entry.layer, collection=entry.collection, dry_run=dry_run)
        deleted_parents: list[Path] = []

        for record in entry.artifacts:
            target = self.settings.resolve(record.path)
            on_disk = await fingerprint_file_async(target)
            if on_disk is None:
                outcome = ArtifactOutcome.MISSING
            elif on_disk != record.fingerprint and not force:
                outcome = ArtifactOutcome.SKIPPED_MODIFIED
                logger.warning("%s was modified since generation; keeping it", record.path)
            elif keep_files:
                outcome = ArtifactOutcome.KEPT
            else:
                outcome = ArtifactOutcome.DELETED
                if not dry_run:
                    await asyncio.to_thread(target.unlink, missing_ok=True)
                    deleted_parents.append(target.parent)
                    logger.debug("deleted %s", record.path)
            result.artifacts.append(
                ArtifactResult(path=record.path, target_kind=record.target_kind, outcome=outcome)
            )

        if all(a.outcome in HANDLED_OUTCOMES for a in result.artifacts):
            result.entry = EntryOutcome.REMOVED
            result.edits, result.removed_files = await revert_edits(
                self.settings, entry.edits, dry_run=dry_run
            )
            if not dry_run:
                await self._hand_over_created_files(entry, result.removed_files)
                await self.manifest.remove(entry.layer, entry.collection)

        if deleted_parents:
            stop = self.settings.resolve(resolve_names(entry.layer, entry.collection).base_dir).parent
            for parent in sorted(set(deleted_parents), key=lambda p: len(p.parts), reverse=True):
                for removed in prune_empty_dirs(parent, stop):
                    result.pruned.append(removed.relative_to(self.settings.project_root.resolve()).as_posix())
        return result

    async def _hand_over_created_files(
        self, entry: ManifestEntry, removed_files: list[str]
    ) -> None:
        """Make another entry the creator of shared files *entry* created but could not delete."""
        orphaned = {r.path for r in entry.edits if r.created_file} - set(removed_files)
        for other in self.manifest.list():
            if not orphaned:
                break
            if other.key == entry.key:
                continue
            claimed = orphaned & {r.path for r in other.edits}
            if not claimed:
                continue
            other.edits = [
                r.model_copy(update={"created_file": True}) if r.path in claimed else r
                for r in other.edits
            ]
            await self.manifest.record(other)
            orphaned -= claimed
            logger.debug("%s now owns %s", other.key, ", ".join(sorted(claimed)))

    # -- Bulk ------------------------------------------------------------------

    async def rollback_bulk(
        self,
        *,
        layer: Optional[str] = None,
        config: Optional[ProjectConfig] = None,
        dry_run: bool = False,
        keep_files: bool = False,
        force: bool = False,
    ) -> BulkRollbackResult:
        """Roll back every entry of *layer*, or every pair named by *config*.

        Pairs without a manifest entry are collected in ``mismatches`` and do
        not stop the run.
        """
        if (layer is None) == (config is None):
            raise ValueError("rollback_bulk needs exactly one of layer= or config=")

        bulk = BulkRollbackResult(dry_run=dry_run)
        if layer is not None:
            entries = self.manifest.list(layer)
            if not entries:
                bulk.mismatches.append(f"{layer}/*")
        else:
            entries = []
            for pair_layer, pair_collection in config.pairs():
                entry = self.manifest.get(pair_layer, pair_collection)
                if entry is None:
                    bulk.mismatches.append(f"{pair_layer}/{pair_collection}")
                    logger.warning("No manifest entry for %s/%s", pair_layer, pair_collection)
                else:
                    entries.append(entry)

        for entry in entries:
            bulk.results.append(
                await self._rollback_entry(
                    entry, dry_run=dry_run, keep_files=keep_files, force=force
                )
            )
        return bulk

    # -- Interactive -------------------------------------------------------------

    async def rollback_interactive(
        self,
        *,
        dry_run: bool = False,
        keep_files: bool = False,
        select: Callable[[list[ManifestEntry]], list[ManifestEntry]] | None = None,
    ) -> BulkRollbackResult:
        """Let the user pick tracked collections, then roll them back.

        Args:
            select: Chooses entries from the tracked list.  Defaults to a Rich
                prompt on the console.
        """
        entries = self.manifest.list()
        bulk = BulkRollbackResult(dry_run=dry_run)
        if not entries:
            console.print("[dim]Nothing is tracked in the manifest.[/dim]")
            return bulk

        chosen = (select or prompt_for_entries)(entries)
        for entry in chosen:
            # Re-read: the entry may have been removed by an earlier choice.
            current = self.manifest.get(entry.layer, entry.collection)
            if current is None:
                bulk.mismatches.append(entry.key)
                continue
            bulk.results.append(
                await self._rollback_entry(
                    current, dry_run=dry_run, keep_files=keep_files, force=False
                )
            )
        return bulk


# ---------------------------------------------------------------------------
# Prompt
# ---------------------------------------------------------------------------

def parse_selection(answer: str, count: int) -> list[int]:
    """Parse ``"1,3-4"`` / ``"all"`` into zero-based indexes.

    Raises:
        ValueError: On anything out of range or malformed.
    """
    answer = answer.strip().lower()
    if answer in ("all", "*"):
        return list(range(count))
    indexes: list[int] = []
    for part in answer.replace(" ", "").split(","):
        if not part:
            continue
        if "-" in part:
            start, _, end = part.partition("-")
            numbers = range(int(start), int(end) + 1)
        else:
            numbers = range(int(part), int(part) + 1)
        for number in numbers:
            if not 1 <= number <= count:
                raise ValueError(f"{number} is not between 1 and {count}")
            if number - 1 not in indexes:
                indexes.append(number - 1)
    return indexes


def prompt_for_entries(entries: list[ManifestEntry]) -> list[ManifestEntry]:
    """Show tracked entries in a table and ask which to roll back."""
    table = Table(title="Tracked collections", header_style="bold cyan")
    table.add_column("#", justify="right")
    table.add_column("Layer")
    table.add_column("Collection")
    table.add_column("Files", justify="right")
    table.add_column("Generated")
    for index, entry in enumerate(entries, start=1):
        table.add_row(
            str(index),
            entry.layer,
            entry.collection,
            str(len(entry.artifacts)),
            entry.generated_at.strftime("%Y-%m-%d %H:%M"),
        )
    console.print(table)

    while True:
        answer = Prompt.ask("Roll back which entries? (e.g. 1,3-4, all, or blank to cancel)", default="")
        if not answer.strip():
            return []
        try:
            indexes = parse_selection(answer, len(entries))
        except ValueError as exc:
            console.print(f"[red]{exc}[/red]")
            continue
        chosen = [entries[i] for i in indexes]
        names = ", ".join(e.key for e in chosen)
        if Confirm.ask(f"Roll back {names}?", default=False):
            return chosen
        return []
