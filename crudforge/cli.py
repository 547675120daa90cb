"""crudforge command-line interface.

Usage::

    crudforge generate shop products --schema schemas/products.json
    crudforge generate config crudforge.config.yaml --dry-run
    crudforge rollback shop products
    crudforge rollback-bulk --layer shop --dry-run
    crudforge rollback-interactive
    crudforge init
    crudforge init --config
    crudforge list --layer shop

Flags given on the command line override the same flags in a config file;
every override is logged.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Any, Optional

from rich.markup import escape
from rich.table import Table

from crudforge import __version__
from crudforge.config import Settings
from crudforge.emitter.engine import Action, CollectionPlan, EmissionEngine
from crudforge.errors import CrudforgeError
from crudforge.manifest import ManifestStore
from crudforge.rollback import (
    ArtifactOutcome,
    BulkRollbackResult,
    EntryOutcome,
    RollbackEngine,
    RollbackResult,
)
from crudforge.registry import EditAction, EditOutcome
from crudforge.schema.loader import (
    build_collection,
    load_project_config,
    load_schema_document,
    resolve_project,
)
from crudforge.schema.models import (
    DIALECT_ALIASES,
    CollectionSpec,
    Dialect,
    GenerationFlags,
    ProjectConfig,
    TargetKind,
)
from crudforge.utils import (
    configure_logging,
    console,
    print_error,
    print_header,
    print_success,
    print_summary_table,
    print_warning,
)

logger = logging.getLogger("crudforge")

CONFIG_KEYWORD = "config"

ACTION_STYLES: dict[Action, str] = {
    Action.CREATE: "green",
    Action.UNCHANGED: "dim",
    Action.SKIPPED: "yellow",
    Action.UPDATE: "cyan",
    Action.OVERWRITE: "magenta",
    Action.CONFLICT: "bold red",
}

OUTCOME_STYLES: dict[ArtifactOutcome, str] = {
    ArtifactOutcome.DELETED: "green",
    ArtifactOutcome.KEPT: "dim",
    ArtifactOutcome.SKIPPED_MODIFIED: "bold yellow",
    ArtifactOutcome.MISSING: "dim",
}

EDIT_STYLES: dict[str, str] = {
    EditAction.INSERT.value: "green",
    EditAction.PRESENT.value: "dim",
    EditAction.FOREIGN.value: "dim",
    EditAction.MANUAL.value: "bold yellow",
    EditOutcome.REVERTED.value: "green",
    EditOutcome.MISSING.value: "dim",
}

SHARED_FILE_KIND = "shared-file"

# argparse dest -> GenerationFlags field, for flags a config file may also set.
FLAG_OPTIONS: dict[str, str] = {
    "force": "force",
    "no_db": "no_db",
    "no_translations": "no_translations",
    "dry_run": "dry_run",
    "auto_relations": "auto_relations",
}

# Flags the rollback commands share with a config file's flags block.
ROLLBACK_FLAG_OPTIONS: tuple[str, ...] = ("dry_run", "keep_files", "force")

EXAMPLE_SCHEMA = """\
# crudforge field schema.  Generate a collection from it with:
#   crudforge generate shop products --schema {name}
title:
  type: string
  meta: {{required: true, maxLength: 200}}
price:
  type: decimal
  meta: {{required: true, precision: 10, scale: 2}}
description:
  type: text
  meta: {{translatable: true}}
inStock:
  type: boolean
  meta: {{default: true, label: In stock}}
releaseDate:
  type: date
tags:
  type: array
"""

EXAMPLE_CONFIG = """\
# crudforge project config.  Generate with:
#   crudforge generate config {name}
dialect: postgres

flags:
  autoRelations: true

external:
  - users

collections:
  - name: categories
    sortable: true
    fields:
      name:
        type: string
        meta: {{required: true, maxLength: 120}}
      description:
        type: text
        meta: {{translatable: true}}

  - name: products
    seed: 25
    fields:
      title:
        type: string
        meta: {{required: true, maxLength: 200, translatable: true}}
      price:
        type: decimal
        meta: {{required: true, precision: 10, scale: 2}}
      inStock:
        type: boolean
        meta: {{default: true}}
      categoryId:
        type: reference
        refTarget: categories
      createdById:
        type: reference
        refTarget: users
        refScope: external
      tags:
        type: array

targets:
  - layer: shop
    collections: [categories, products]
"""


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="crudforge",
        description="crudforge -- schema-driven CRUD generation with manifest-backed rollback",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  crudforge generate shop products --schema products.json\n"
            "  crudforge generate config crudforge.config.yaml --dry-run\n"
            "  crudforge rollback-bulk --layer shop --dry-run\n"
        ),
    )
    parser.add_argument("--version", action="version", version=f"crudforge {__version__}")
    parser.add_argument(
        "--project", "-p",
        default=None,
        help="Host project root (default: $CRUDFORGE_PROJECT_ROOT or the current directory)",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Show debug logging")

    sub = parser.add_subparsers(dest="command", required=True)

    # -- generate --------------------------------------------------------------
    gen = sub.add_parser(
        "generate",
        help="Generate one collection, or every collection of a config file",
        description=(
            "generate <layer> <collection> --schema PATH\n"
            "generate config <config-path>"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    gen.add_argument("layer", help="Layer name, or 'config' to generate from a config file")
    gen.add_argument("collection", help="Collection name, or the config file path")
    gen.add_argument("--schema", "-s", default=None, help="Field schema (JSON or YAML)")
    gen.add_argument("--force", action="store_true", default=None, help="Overwrite modified or untracked files")
    gen.add_argument("--no-db", action="store_true", default=None, help="Skip the storage schema")
    gen.add_argument("--no-translations", action="store_true", default=None, help="Ignore meta.translatable")
    gen.add_argument("--dry-run", action="store_true", default=None, help="Report the plan without writing")
    gen.add_argument("--auto-relations", action="store_true", default=None, help="Emit commented relation stubs")
    gen.add_argument("--dialect", "-d", default=None, help="sqlite, postgres (pg) or mysql")
    gen.add_argument("--hierarchy", action="store_true", help="Make the collection a tree")
    gen.add_argument("--sortable", action="store_true", help="Add a manual sort order")
    gen.add_argument(
        "--seed", nargs="?", type=int, const=25, default=None, metavar="N",
        help="Also emit a seed file producing N rows (default 25)",
    )
    gen.add_argument(
        "--skip-target", action="append", default=[], metavar="KIND",
        choices=[kind.value for kind in TargetKind],
        help="Do not emit this target kind (repeatable)",
    )
    gen.add_argument(
        "--external", action="append", default=[], metavar="NAME",
        help="Collection owned outside this project that refTarget may name (repeatable)",
    )

    # -- rollback --------------------------------------------------------------
    rb = sub.add_parser("rollback", help="Remove one generated collection")
    rb.add_argument("layer")
    rb.add_argument("collection")
    _add_rollback_flags(rb)

    bulk = sub.add_parser("rollback-bulk", help="Remove every collection of a layer or config")
    scope = bulk.add_mutually_exclusive_group(required=True)
    scope.add_argument("--layer", "-l", default=None)
    scope.add_argument("--config", "-c", default=None, help="Project config naming the collections")
    _add_rollback_flags(bulk)

    inter = sub.add_parser("rollback-interactive", help="Pick tracked collections to remove")
    inter.add_argument("--dry-run", action="store_true")
    inter.add_argument("--keep-files", action="store_true")

    # -- init / list -----------------------------------------------------------
    init = sub.add_parser("init", help="Write an example field schema (or project config)")
    init.add_argument(
        "--output", "-o", default=None,
        help="Where to write it (default: crudforge.schema.yaml, or crudforge.config.yaml with --config)",
    )
    init.add_argument("--config", action="store_true", help="Write a multi-collection project config instead")
    init.add_argument("--force", action="store_true", help="Overwrite an existing file")

    lst = sub.add_parser("list", help="Show what the manifest tracks")
    lst.add_argument("--layer", "-l", default=None)

    return parser


def _add_rollback_flags(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--dry-run", action="store_true", default=None, help="Report without deleting")
    parser.add_argument(
        "--keep-files", action="store_true", default=None, help="Forget the entry but keep files"
    )
    parser.add_argument("--force", action="store_true", default=None, help="Also remove modified files")


# ---------------------------------------------------------------------------
# Flag resolution
# ---------------------------------------------------------------------------

def cli_overrides(args: argparse.Namespace) -> dict[str, Any]:
    """Flags explicitly given on the command line, as GenerationFlags fields."""
    overrides = {
        field: getattr(args, dest)
        for dest, field in FLAG_OPTIONS.items()
        if getattr(args, dest, None) is not None
    }
    if getattr(args, "skip_target", None):
        overrides["disabled_targets"] = [TargetKind(kind) for kind in args.skip_target]
    return overrides


def rollback_overrides(args: argparse.Namespace) -> dict[str, Any]:
    """Rollback flags explicitly given on the command line."""
    return {
        name: getattr(args, name)
        for name in ROLLBACK_FLAG_OPTIONS
        if getattr(args, name, None) is not None
    }


def merge_flags(base: GenerationFlags, overrides: dict[str, Any]) -> GenerationFlags:
    """Apply CLI *overrides* on top of config flags, logging each change."""
    for name, value in overrides.items():
        current = getattr(base, name)
        if current != value:
            logger.info("CLI flag overrides config: %s %r -> %r", name, current, value)
    return base.merged_with(overrides)


def parse_dialect(value: Optional[str]) -> Optional[Dialect]:
    if value is None:
        return None
    normalised = DIALECT_ALIASES.get(value.lower(), value.lower())
    try:
        return Dialect(normalised)
    except ValueError:
        choices = ", ".join(d.value for d in Dialect)
        raise CrudforgeError(
            f"Unknown dialect {value!r}",
            hint=f"Use one of: {choices}.",
        ) from None


def resolve_dialect(
    cli_value: Optional[str],
    config: Optional[ProjectConfig],
    settings: Settings,
) -> Dialect:
    """CLI beats an explicit config dialect, which beats the settings default."""
    dialect = parse_dialect(cli_value)
    config_dialect = config.dialect if config and "dialect" in config.model_fields_set else None
    if dialect is not None:
        if config_dialect is not None and config_dialect is not dialect:
            logger.info(
                "CLI flag overrides config: dialect %r -> %r",
                config_dialect.value, dialect.value,
            )
        return dialect
    return config_dialect or settings.default_dialect


def known_collections(settings: Settings, manifest: ManifestStore) -> set[str]:
    """Collections already present in the host project."""
    known = {entry.collection for entry in manifest.list()}
    if settings.layers_path.is_dir():
        for collections_dir in settings.layers_path.glob("*/collections"):
            known.update(p.name for p in collections_dir.iterdir() if p.is_dir())
    return known


# ---------------------------------------------------------------------------
# Reporting
# ---------------------------------------------------------------------------

def _styled(value: str, style: str) -> str:
    return f"[{style}]{value}[/{style}]"


def report_plan(plan: CollectionPlan) -> None:
    title = f"{plan.layer}/{plan.collection}" + (" (dry run)" if plan.dry_run else "")
    table = Table(title=escape(title), show_header=True, header_style="bold cyan")
    table.add_column("Action", no_wrap=True)
    table.add_column("Kind", style="dim", no_wrap=True)
    table.add_column("Path")
    for planned in plan.artifacts:
        table.add_row(
            _styled(planned.action.value, ACTION_STYLES[planned.action]),
            planned.artifact.target_kind.value,
            escape(planned.artifact.path),
        )
    for edit in plan.edits:
        table.add_row(
            _styled(edit.action.value, EDIT_STYLES[edit.action.value]),
            SHARED_FILE_KIND,
            escape(edit.record.path),
        )
    console.print(table)
    if plan.carried:
        console.print(
            f"[dim]{len(plan.carried)} previously generated file(s) stay tracked[/dim]"
        )
    for edit in plan.edits:
        if edit.action is EditAction.MANUAL:
            print_warning(
                f"Add to {escape(edit.record.path)} by hand: {escape(edit.record.line.strip())}"
            )


def report_rollback(result: RollbackResult) -> None:
    title = f"{result.layer}/{result.collection}" + (" (dry run)" if result.dry_run else "")
    table = Table(title=escape(title), show_header=True, header_style="bold cyan")
    table.add_column("Outcome", no_wrap=True)
    table.add_column("Kind", style="dim", no_wrap=True)
    table.add_column("Path")
    for artifact in result.artifacts:
        table.add_row(
            _styled(artifact.outcome.value, OUTCOME_STYLES[artifact.outcome]),
            artifact.target_kind.value,
            escape(artifact.path),
        )
    for edit in result.edits:
        table.add_row(
            _styled(edit.outcome.value, EDIT_STYLES[edit.outcome.value]),
            SHARED_FILE_KIND,
            escape(edit.path),
        )
    console.print(table)
    verb = "would be" if result.dry_run else "was"
    for path in result.removed_files:
        console.print(f"Shared file {escape(path)} {verb} deleted.")
    if result.entry is EntryOutcome.REMOVED:
        console.print(f"Manifest entry {verb} removed.")
    else:
        print_warning(
            f"Manifest entry retained: {len(result.modified)} modified file(s) kept. "
            "Re-run with --force to remove them."
        )
    if result.dry_run:
        console.print("[dim]Dry run: nothing was deleted.[/dim]")


def report_bulk(bulk: BulkRollbackResult) -> None:
    for result in bulk.results:
        report_rollback(result)
    for key in bulk.mismatches:
        print_warning(f"No manifest entry for {escape(key)}; skipped.")
    print_summary_table(
        {
            "Entries processed": len(bulk.results),
            "Entries removed" if not bulk.dry_run else "Entries that would be removed": bulk.removed,
            "Entries retained": len(bulk.results) - bulk.removed,
            "Not in manifest": len(bulk.mismatches),
        },
        title="Rollback summary",
    )


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

async def cmd_generate(args: argparse.Namespace, settings: Settings) -> int:
    manifest = ManifestStore(settings.manifest_path)
    engine = EmissionEngine(settings, manifest)

    if args.layer == CONFIG_KEYWORD:
        config_path = Path(args.collection)
        config = load_project_config(config_path)
        specs = resolve_project(config, base_dir=config_path.parent)
        flags = merge_flags(config.flags, cli_overrides(args))
        dialect = resolve_dialect(args.dialect, config, settings)
    else:
        if not args.schema:
            raise CrudforgeError(
                "generate <layer> <collection> needs a field schema",
                hint="Pass --schema PATH, or use 'generate config <path>'.",
            )
        flags = GenerationFlags().merged_with(cli_overrides(args))
        dialect = resolve_dialect(args.dialect, None, settings)
        spec = build_collection(
            args.layer,
            args.collection,
            load_schema_document(args.schema),
            hierarchy=args.hierarchy,
            sortable=args.sortable,
            seed=args.seed,
            use_metadata=flags.use_metadata,
            known_collections=known_collections(settings, manifest),
            external=args.external,
        )
        specs = [spec]

    print_header(f"Generating {len(specs)} collection(s) ({dialect.value})")
    plans = await _generate_all(engine, specs, flags, dialect)

    totals = {action: 0 for action in Action}
    for plan in plans:
        for action, count in plan.counts().items():
            totals[action] += count
    print_summary_table(
        {action.value: count for action, count in totals.items()},
        title="Dry-run plan" if flags.dry_run else "Generation summary",
    )

    conflicts = [path for plan in plans for path in plan.conflicts]
    if conflicts:
        print_error(f"{len(conflicts)} conflicting file(s); a real run would abort.")
        console.print("Re-run with --force to overwrite them.")
        return 1
    skipped = [path for plan in plans for path in plan.skipped]
    if skipped:
        print_warning(
            f"{len(skipped)} tracked file(s) are out of date with the schema and were left "
            "as they are. Re-run with --force to regenerate them."
        )
    if flags.dry_run:
        print_success("Dry run complete; nothing was written.")
    else:
        print_success(f"Generated {len(plans)} collection(s).")
    return 0


async def _generate_all(
    engine: EmissionEngine,
    specs: list[CollectionSpec],
    flags: GenerationFlags,
    dialect: Dialect,
) -> list[CollectionPlan]:
    plans = []
    for spec in specs:
        plan = await engine.generate(spec, flags, dialect)
        report_plan(plan)
        plans.append(plan)
    return plans


async def cmd_rollback(args: argparse.Namespace, settings: Settings) -> int:
    engine = RollbackEngine(settings, ManifestStore(settings.manifest_path))
    result = await engine.rollback_single(
        args.layer,
        args.collection,
        dry_run=bool(args.dry_run),
        keep_files=bool(args.keep_files),
        force=bool(args.force),
    )
    report_rollback(result)
    result.ensure_unmodified()
    return 0


async def cmd_rollback_bulk(args: argparse.Namespace, settings: Settings) -> int:
    engine = RollbackEngine(settings, ManifestStore(settings.manifest_path))
    config = load_project_config(args.config) if args.config else None
    if config is not None:
        flags = merge_flags(config.flags, rollback_overrides(args))
    else:
        flags = GenerationFlags().merged_with(rollback_overrides(args))
    bulk = await engine.rollback_bulk(
        layer=args.layer,
        config=config,
        dry_run=flags.dry_run,
        keep_files=flags.keep_files,
        force=flags.force,
    )
    report_bulk(bulk)
    return 0 if bulk.removed == len(bulk.results) and not bulk.mismatches else 1


async def cmd_rollback_interactive(args: argparse.Namespace, settings: Settings) -> int:
    engine = RollbackEngine(settings, ManifestStore(settings.manifest_path))
    bulk = await engine.rollback_interactive(dry_run=args.dry_run, keep_files=args.keep_files)
    if not bulk.results and not bulk.mismatches:
        console.print("Nothing selected.")
        return 0
    report_bulk(bulk)
    return 0 if bulk.removed == len(bulk.results) else 1


async def cmd_init(args: argparse.Namespace, settings: Settings) -> int:
    if args.config:
        default_name, template, what = "crudforge.config.yaml", EXAMPLE_CONFIG, "project config"
    else:
        default_name, template, what = "crudforge.schema.yaml", EXAMPLE_SCHEMA, "field schema"
    target = Path(args.output or default_name)
    if not target.is_absolute():
        target = settings.resolve(target)
    if target.exists() and not args.force:
        raise CrudforgeError(
            f"{target} already exists",
            hint="Re-run with --force to overwrite it.",
        )
    target.parent.mkdir(parents=True, exist_ok=True)
    await asyncio.to_thread(
        target.write_text, template.format(name=target.name), "utf-8"
    )
    print_success(f"Wrote example {what} to {target}")
    return 0


async def cmd_list(args: argparse.Namespace, settings: Settings) -> int:
    entries = ManifestStore(settings.manifest_path).list(args.layer)
    if not entries:
        console.print("[dim]No generated collections are tracked.[/dim]")
        return 0
    table = Table(title="Tracked collections", header_style="bold cyan")
    table.add_column("Layer")
    table.add_column("Collection")
    table.add_column("Files", justify="right")
    table.add_column("Generated")
    for entry in entries:
        table.add_row(
            entry.layer,
            entry.collection,
            str(len(entry.artifacts)),
            entry.generated_at.strftime("%Y-%m-%d %H:%M:%S %Z"),
        )
    console.print(table)
    return 0


COMMANDS = {
    "generate": cmd_generate,
    "rollback": cmd_rollback,
    "rollback-bulk": cmd_rollback_bulk,
    "rollback-interactive": cmd_rollback_interactive,
    "init": cmd_init,
    "list": cmd_list,
}


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main(argv: list[str] | None = None) -> int:
    """CLI entry point for ``crudforge`` and ``python -m crudforge``.

    Returns:
        Process exit status: 0 on success, 1 when a run aborted or left
        something unresolved.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    try:
        settings = Settings.from_env(Path(args.project) if args.project else None)
        return asyncio.run(COMMANDS[args.command](args, settings))
    except CrudforgeError as exc:
        print_error(f"Error: {escape(str(exc))}")
        if exc.hint:
            console.print(escape(exc.hint))
        return 1
    except KeyboardInterrupt:
        print_warning("Interrupted.")
        return 130


if __name__ == "__main__":
    sys.exit(main())
