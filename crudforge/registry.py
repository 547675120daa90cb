"""Registration of generated collections in shared host-project files.

A collection's own files are useless until the host project knows about
them.  Generation therefore also inserts single lines into files the whole
project shares:

``server/db/schema.ts``
    re-exports the collection's table so migrations pick it up.
``app.config.ts`` (``app/app.config.ts`` when the project has an ``app/``
directory)
    imports the collection config and lists it under
    ``crudforgeCollections``.
``layers/<layer>/nuxt.config.ts``
    extends the collection directory so Nuxt loads it.

Every inserted line is recorded in the manifest as an ``EditRecord``;
rollback removes exactly those lines again and deletes a shared file that
generation created once nothing but its boilerplate is left.  A line that
is already present without having been recorded belongs to someone else
and is never touched.
"""

from __future__ import annotations

import asyncio
import logging
import posixpath
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterable, Optional

from pydantic import BaseModel

from crudforge.config import Settings
from crudforge.manifest import EditRecord
from crudforge.naming import artifact_path, resolve_names
from crudforge.schema.models import TargetKind
from crudforge.utils import atomic_write_text_async, prune_empty_dirs

logger = logging.getLogger(__name__)

SCHEMA_INDEX_PATH = "server/db/schema.ts"
SCHEMA_INDEX_SEED = "// Database schema exports, maintained by crudforge\n"

COLLECTIONS_KEY = "crudforgeCollections"
APP_CONFIG_SEED = f"export default defineAppConfig({{\n  {COLLECTIONS_KEY}: {{\n  }},\n}})\n"
APP_CONFIG_ANCHOR = f"{COLLECTIONS_KEY}: {{"

LAYER_CONFIG_SEED = "export default defineNuxtConfig({\n  extends: [\n  ],\n})\n"
LAYER_CONFIG_ANCHOR = "extends: ["


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------

class EditAction(str, Enum):
    """What generation does (or would do) with one registration line."""
    INSERT = "insert"
    PRESENT = "present"
    FOREIGN = "foreign"
    MANUAL = "manual"


TRACKED_EDIT_ACTIONS = frozenset({EditAction.INSERT, EditAction.PRESENT})


class EditOutcome(str, Enum):
    """What rollback did (or would do) with one recorded line."""
    REVERTED = "reverted"
    MISSING = "missing"


@dataclass(frozen=True)
class Registration:
    """A line a collection needs in a shared file.

    The line goes after the first line containing *anchor*, at the top of
    the file when *prepend* is set, and at the end otherwise.
    """

    path: str
    line: str
    seed: str
    anchor: Optional[str] = None
    prepend: bool = False


class PlannedEdit(BaseModel):
    """A registration line with its classification."""

    record: EditRecord
    action: EditAction


class EditResult(BaseModel):
    path: str
    line: str
    outcome: EditOutcome


# ---------------------------------------------------------------------------
# Registrations
# ---------------------------------------------------------------------------

def _module(path: str) -> str:
    return path[: -len(".ts")] if path.endswith(".ts") else path


def _relative_import(from_file: str, target: str) -> str:
    relative = posixpath.relpath(_module(target), posixpath.dirname(from_file) or ".")
    return relative if relative.startswith("..") else f"./{relative}"


def app_config_path(project_root: Path) -> str:
    """Nuxt 4 projects keep ``app.config.ts`` inside ``app/``."""
    return "app/app.config.ts" if (project_root / "app").is_dir() else "app.config.ts"


def layer_config_path(layer: str) -> str:
    return f"layers/{layer}/nuxt.config.ts"


def registrations_for(
    layer: str,
    collection: str,
    targets: Iterable[TargetKind],
    project_root: Path,
) -> list[Registration]:
    """Lines that wire ``(layer, collection)`` into the host project."""
    names = resolve_names(layer, collection)
    targets = set(targets)
    registrations: list[Registration] = []

    if TargetKind.STORAGE_SCHEMA in targets:
        schema = artifact_path(layer, collection, TargetKind.STORAGE_SCHEMA, "schema")
        registrations.append(
            Registration(
                path=SCHEMA_INDEX_PATH,
                line=(
                    f"export {{ {names.export_name} }} from "
                    f"'{_relative_import(SCHEMA_INDEX_PATH, schema)}'"
                ),
                seed=SCHEMA_INDEX_SEED,
            )
        )

    if TargetKind.DATA_ACCESS in targets:
        app_config = app_config_path(project_root)
        composable = artifact_path(layer, collection, TargetKind.DATA_ACCESS, "composable")
        config_name = f"{names.export_name}Config"
        registrations.append(
            Registration(
                path=app_config,
                line=f"import {{ {config_name} }} from '{_relative_import(app_config, composable)}'",
                seed=APP_CONFIG_SEED,
                prepend=True,
            )
        )
        registrations.append(
            Registration(
                path=app_config,
                line=f"    {names.export_name}: {config_name},",
                seed=APP_CONFIG_SEED,
                anchor=APP_CONFIG_ANCHOR,
            )
        )

    registrations.append(
        Registration(
            path=layer_config_path(layer),
            line=f"    './collections/{names.directory}',",
            seed=LAYER_CONFIG_SEED,
            anchor=LAYER_CONFIG_ANCHOR,
        )
    )
    return registrations


def seed_for(path: str) -> Optional[str]:
    """Boilerplate crudforge writes when it creates the shared file *path*."""
    if path == SCHEMA_INDEX_PATH:
        return SCHEMA_INDEX_SEED
    if path in ("app.config.ts", "app/app.config.ts"):
        return APP_CONFIG_SEED
    parts = path.split("/")
    if len(parts) == 3 and parts[0] == "layers" and parts[2] == "nuxt.config.ts":
        return LAYER_CONFIG_SEED
    return None


# ---------------------------------------------------------------------------
# Line editing
# ---------------------------------------------------------------------------

def insert_line(content: str, registration: Registration) -> Optional[str]:
    """Return *content* with the registration line added.

    Returns ``None`` when the anchor cannot be found; the line then has to
    be added by hand.
    """
    lines = content.splitlines()
    if registration.prepend:
        lines.insert(0, registration.line)
    elif registration.anchor is None:
        lines.append(registration.line)
    else:
        for index, existing in enumerate(lines):
            if registration.anchor in existing:
                lines.insert(index + 1, registration.line)
                break
        else:
            return None
    return "\n".join(lines) + "\n"


def remove_line(content: str, line: str) -> Optional[str]:
    """Return *content* without the first occurrence of *line*, or ``None``."""
    lines = content.splitlines()
    if line not in lines:
        return None
    lines.remove(line)
    return "\n".join(lines) + "\n" if lines else ""


def _read(path: Path) -> Optional[str]:
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None


async def _read_async(path: Path) -> Optional[str]:
    return await asyncio.to_thread(_read, path)


# ---------------------------------------------------------------------------
# Generation side
# ---------------------------------------------------------------------------

async def plan_edits(
    settings: Settings,
    registrations: list[Registration],
    previous: Iterable[EditRecord] = (),
) -> list[PlannedEdit]:
    """Classify every registration line against the shared files on disk.

    Lines recorded by an earlier run that are no longer requested (for
    example because a target kind was switched off) stay tracked while they
    are still in their file, so rollback can still remove them.
    """
    previous = list(previous)
    recorded = {(record.path, record.line): record for record in previous}
    working: dict[str, str] = {}
    exists: dict[str, bool] = {}
    planned: list[PlannedEdit] = []

    for registration in registrations:
        path = registration.path
        if path not in working:
            content = await _read_async(settings.resolve(path))
            exists[path] = content is not None
            working[path] = content if content is not None else registration.seed

        record = recorded.get((path, registration.line))
        if registration.line in working[path].splitlines():
            if record is not None:
                planned.append(PlannedEdit(record=record, action=EditAction.PRESENT))
            else:
                logger.debug("%s already has %r; leaving it untracked", path, registration.line)
                planned.append(
                    PlannedEdit(
                        record=EditRecord(path=path, line=registration.line),
                        action=EditAction.FOREIGN,
                    )
                )
            continue

        updated = insert_line(working[path], registration)
        if updated is None:
            logger.warning(
                "%s has no %r block; add this line by hand: %s",
                path, registration.anchor, registration.line.strip(),
            )
            planned.append(
                PlannedEdit(
                    record=EditRecord(path=path, line=registration.line),
                    action=EditAction.MANUAL,
                )
            )
            continue

        created = not exists[path]
        exists[path] = True
        working[path] = updated
        planned.append(
            PlannedEdit(
                record=EditRecord(path=path, line=registration.line, created_file=created),
                action=EditAction.INSERT,
            )
        )

    requested = {(r.path, r.line) for r in registrations}
    for record in previous:
        if (record.path, record.line) in requested:
            continue
        content = working.get(record.path)
        if content is None:
            content = await _read_async(settings.resolve(record.path))
        if content is not None and record.line in content.splitlines():
            planned.append(PlannedEdit(record=record, action=EditAction.PRESENT))
    return planned


async def apply_edits(
    settings: Settings,
    registrations: list[Registration],
    planned: list[PlannedEdit],
) -> None:
    """Insert the lines classified ``insert``, one atomic write per file."""
    by_line = {(r.path, r.line): r for r in registrations}
    pending: dict[str, list[Registration]] = {}
    for edit in planned:
        if edit.action is EditAction.INSERT:
            key = (edit.record.path, edit.record.line)
            pending.setdefault(edit.record.path, []).append(by_line[key])

    for path, items in pending.items():
        target = settings.resolve(path)
        content = await _read_async(target)
        if content is None:
            content = items[0].seed
        for registration in items:
            updated = insert_line(content, registration)
            if updated is not None:
                content = updated
        await atomic_write_text_async(target, content)
        logger.debug("registered %d line(s) in %s", len(items), path)


# ---------------------------------------------------------------------------
# Rollback side
# ---------------------------------------------------------------------------

async def revert_edits(
    settings: Settings,
    edits: list[EditRecord],
    *,
    dry_run: bool = False,
) -> tuple[list[EditResult], list[str]]:
    """Remove recorded lines from their shared files.

    A file crudforge created is deleted once only its boilerplate remains.

    Returns:
        The per-line results, and the shared files that were (or, in a
        dry-run, would be) deleted.
    """
    grouped: dict[str, list[EditRecord]] = {}
    for record in edits:
        grouped.setdefault(record.path, []).append(record)

    results: list[EditResult] = []
    removed_files: list[str] = []
    for path, records in grouped.items():
        target = settings.resolve(path)
        original = await _read_async(target)
        content = original
        for record in reversed(records):
            updated = remove_line(content, record.line) if content is not None else None
            if updated is None:
                outcome = EditOutcome.MISSING
                logger.warning("%s no longer contains %r", path, record.line.strip())
            else:
                outcome = EditOutcome.REVERTED
                content = updated
            results.append(EditResult(path=path, line=record.line, outcome=outcome))

        if content is None or content == original:
            continue
        created = any(record.created_file for record in records)
        if created and content == seed_for(path):
            removed_files.append(path)
            if not dry_run:
                await asyncio.to_thread(target.unlink, missing_ok=True)
                prune_empty_dirs(target.parent, settings.project_root)
                logger.debug("deleted %s", path)
        elif not dry_run:
            await atomic_write_text_async(target, content)
            logger.debug("unregistered %s", path)
    return results, removed_files
