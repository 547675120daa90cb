"""Shared utility functions for crudforge.

Provides Rich-based console reporting, logging setup, content
fingerprinting, atomic file writes, and JSON/YAML document loading.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

import yaml
from rich.console import Console
from rich.logging import RichHandler
from rich.rule import Rule
from rich.table import Table

console = Console()

FINGERPRINT_PREFIX = "sha256:"


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


def configure_logging(verbose: bool = False) -> None:
    """Route stdlib logging through Rich.

    Args:
        verbose: Emit DEBUG records when ``True``, otherwise INFO and up.
    """
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False, rich_tracebacks=True)],
        force=True,
    )


# ---------------------------------------------------------------------------
# Fingerprints
# ---------------------------------------------------------------------------


def fingerprint(content: str | bytes) -> str:
    """Return the ``sha256:<hex>`` fingerprint of *content*.

    Strings are encoded as UTF-8 first, so the fingerprint of rendered
    content equals the fingerprint of the file written from it.
    """
    data = content.encode("utf-8") if isinstance(content, str) else content
    return FINGERPRINT_PREFIX + hashlib.sha256(data).hexdigest()


def fingerprint_file(path: Path) -> str | None:
    """Fingerprint the bytes of *path*, or ``None`` if it does not exist."""
    try:
        return fingerprint(path.read_bytes())
    except FileNotFoundError:
        return None


async def fingerprint_file_async(path: Path) -> str | None:
    return await asyncio.to_thread(fingerprint_file, path)


# ---------------------------------------------------------------------------
# File-system helpers
# ---------------------------------------------------------------------------


def atomic_write_text(path: Path, content: str) -> None:
    """Write *content* to *path* via a temp file and ``os.replace``.

    Parent directories are created automatically.  A crash leaves either the
    old file or the new one, never a torn write.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as handle:
            handle.write(content)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


async def atomic_write_text_async(path: Path, content: str) -> None:
    await asyncio.to_thread(atomic_write_text, path, content)


def prune_empty_dirs(start: Path, stop: Path) -> list[Path]:
    """Remove empty directories from *start* upward, stopping at *stop*.

    *stop* itself is never removed.

    Returns:
        The directories that were removed, deepest first.
    """
    removed: list[Path] = []
    stop = stop.resolve()
    current = start.resolve()
    while current != stop and stop in current.parents:
        try:
            current.rmdir()
        except OSError:
            # Not empty (or already gone); nothing above can be empty either.
            break
        removed.append(current)
        current = current.parent
    return removed


# ---------------------------------------------------------------------------
# Document loading
# ---------------------------------------------------------------------------


def load_document(path: str | Path) -> Any:
    """Load a JSON or YAML document.

    ``.yaml`` / ``.yml`` files are parsed with PyYAML; everything else is
    parsed as JSON.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the file cannot be parsed.
    """
    file_path = Path(path)
    raw = file_path.read_text(encoding="utf-8")
    if file_path.suffix.lower() in (".yaml", ".yml"):
        try:
            return yaml.safe_load(raw)
        except yaml.YAMLError as exc:
            raise ValueError(f"{file_path}: invalid YAML ({exc})") from exc
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"{file_path}: invalid JSON ({exc.msg} at line {exc.lineno})") from exc


# ---------------------------------------------------------------------------
# Rich output helpers
# ---------------------------------------------------------------------------


def print_header(title: str, color: str = "bright_cyan") -> None:
    """Print a full-width rule with *title*."""
    console.print()
    console.print(Rule(f"[bold {color}] {title} [/bold {color}]", style=color))
    console.print()


def print_summary_table(data: dict[str, Any], title: str = "Summary") -> None:
    """Print a two-column key/value summary table."""
    table = Table(title=title, show_header=True, header_style="bold cyan")
    table.add_column("Item", style="dim", no_wrap=True)
    table.add_column("Value")

    for key, value in data.items():
        table.add_row(key, str(value))

    console.print(table)
    console.print()


def print_success(message: str) -> None:
    """Print a green success message."""
    console.print(f"[bold green]{message}[/bold green]")


def print_error(message: str) -> None:
    """Print a red error message."""
    console.print(f"[bold red]{message}[/bold red]")


def print_warning(message: str) -> None:
    """Print a yellow warning message."""
    console.print(f"[bold yellow]{message}[/bold yellow]")
