"""Durable record of what each generation run produced.

The manifest is the only source of truth for rollback: a file is removable
only if it is listed here with a fingerprint matching its current bytes.
It lives at ``<project>/.crudforge/manifest.json`` and is rewritten
atomically on every mutation, so a crash leaves the previous version intact.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from crudforge.errors import ManifestError
from crudforge.schema.models import TargetKind
from crudforge.utils import atomic_write_text_async

logger = logging.getLogger(__name__)

MANIFEST_VERSION = 1


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------

class ArtifactRecord(BaseModel):
    """One generated file as it was written."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    path: str = Field(description="Project-relative POSIX path")
    target_kind: TargetKind = Field(alias="targetKind")
    fingerprint: str


class EditRecord(BaseModel):
    """One line inserted into a shared host-project file."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    path: str = Field(description="Project-relative POSIX path of the shared file")
    line: str = Field(description="The exact line inserted, without newline")
    created_file: bool = Field(
        default=False,
        alias="createdFile",
        description="The file did not exist and was created for this edit",
    )


class ManifestEntry(BaseModel):
    """Everything generated for one ``(layer, collection)`` pair."""

    model_config = ConfigDict(populate_by_name=True)

    layer: str
    collection: str
    generated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        alias="generatedAt",
    )
    artifacts: list[ArtifactRecord] = Field(default_factory=list)
    edits: list[EditRecord] = Field(default_factory=list)

    @property
    def key(self) -> str:
        return entry_key(self.layer, self.collection)

    def artifact(self, path: str) -> Optional[ArtifactRecord]:
        for record in self.artifacts:
            if record.path == path:
                return record
        return None

    def same_contents(self, other: ManifestEntry) -> bool:
        """Whether *other* tracks exactly the same artifacts and edits."""
        return self.artifacts == other.artifacts and self.edits == other.edits


class ManifestDocument(BaseModel):
    """On-disk shape of ``manifest.json``."""

    version: int = MANIFEST_VERSION
    entries: dict[str, ManifestEntry] = Field(default_factory=dict)


def entry_key(layer: str, collection: str) -> str:
    return f"{layer}/{collection}"


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

class ManifestStore:
    """Load, query and atomically persist the generation manifest.

    The document is read once, lazily, and kept in memory; every mutation
    rewrites the whole file.  Engines receive the store explicitly rather
    than reaching for a global.

    Attributes:
        path: Location of ``manifest.json``.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._document: ManifestDocument | None = None

    # -- Loading -----------------------------------------------------------

    @property
    def document(self) -> ManifestDocument:
        if self._document is None:
            self._document = self._load()
        return self._document

    def _load(self) -> ManifestDocument:
        if not self.path.exists():
            logger.debug("No manifest at %s; starting empty", self.path)
            return ManifestDocument()
        try:
            document = ManifestDocument.model_validate_json(self.path.read_text(encoding="utf-8"))
        except (OSError, ValidationError, ValueError) as exc:
            raise ManifestError(str(self.path), str(exc).splitlines()[0]) from exc
        if document.version > MANIFEST_VERSION:
            raise ManifestError(
                str(self.path), f"written by a newer crudforge (version {document.version})"
            )
        logger.debug("Loaded %d manifest entr(ies) from %s", len(document.entries), self.path)
        return document

    def reload(self) -> None:
        """Drop the in-memory copy so the next access re-reads the file."""
        self._document = None

    # -- Queries -----------------------------------------------------------

    def get(self, layer: str, collection: str) -> Optional[ManifestEntry]:
        return self.document.entries.get(entry_key(layer, collection))

    def list(self, layer: Optional[str] = None) -> list[ManifestEntry]:
        """Return entries sorted by key, optionally restricted to *layer*."""
        entries = sorted(self.document.entries.values(), key=lambda e: e.key)
        if layer is not None:
            entries = [e for e in entries if e.layer == layer]
        return entries

    # -- Mutations ---------------------------------------------------------

    async def record(self, entry: ManifestEntry) -> None:
        """Insert or replace the entry for ``(entry.layer, entry.collection)``."""
        self.document.entries[entry.key] = entry
        await self._save()
        logger.debug("Recorded %s with %d artifact(s)", entry.key, len(entry.artifacts))

    async def remove(self, layer: str, collection: str) -> bool:
        """Delete an entry.  Returns ``False`` if there was none."""
        if self.document.entries.pop(entry_key(layer, collection), None) is None:
            return False
        await self._save()
        logger.debug("Removed %s from manifest", entry_key(layer, collection))
        return True

    async def _save(self) -> None:
        document = ManifestDocument(
            version=MANIFEST_VERSION,
            entries=dict(sorted(self.document.entries.items())),
        )
        self._document = document
        await atomic_write_text_async(
            self.path,
            document.model_dump_json(by_alias=True, indent=2) + "\n",
        )
