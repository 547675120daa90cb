"""Exception taxonomy for crudforge.

Every error raised on purpose by the engine derives from ``CrudforgeError``
so the CLI can print a clean message and exit non-zero without a traceback.
Each error carries a ``hint`` naming the flag (if any) that resolves it.
"""

from __future__ import annotations

from dataclasses import dataclass


class CrudforgeError(Exception):
    """Base class for all expected crudforge failures."""

    hint: str = ""

    def __init__(self, message: str, *, hint: str = "") -> None:
        super().__init__(message)
        if hint:
            self.hint = hint


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ValidationIssue:
    """A single problem found while validating a schema or config.

    ``location`` is a dotted path such as ``shop.products.fields.price.meta``.
    """

    location: str
    message: str

    def __str__(self) -> str:
        return f"{self.location}: {self.message}"


class SchemaValidationError(CrudforgeError):
    """Raised when a schema or project config is invalid.

    Holds every issue found so a single run surfaces the whole defect list.
    Nothing has been written when this is raised.
    """

    def __init__(self, issues: list[ValidationIssue]) -> None:
        self.issues = list(issues)
        lines = "\n".join(f"  - {issue}" for issue in self.issues)
        super().__init__(
            f"Validation failed with {len(self.issues)} problem(s):\n{lines}",
            hint="Fix the listed fields; no files were written.",
        )


# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------


class ConflictError(CrudforgeError):
    """Raised when generated output would clobber hand-edited files."""

    def __init__(self, layer: str, collection: str, paths: list[str]) -> None:
        self.layer = layer
        self.collection = collection
        self.paths = list(paths)
        listing = "\n".join(f"  - {p}" for p in self.paths)
        super().__init__(
            f"{len(self.paths)} artifact(s) for {layer}/{collection} exist with "
            f"different content:\n{listing}",
            hint="Re-run with --force to overwrite them.",
        )


# ---------------------------------------------------------------------------
# Rollback
# ---------------------------------------------------------------------------


class ManifestMismatch(CrudforgeError):
    """Raised when a rollback target has no manifest entry."""

    def __init__(self, layer: str, collection: str) -> None:
        self.layer = layer
        self.collection = collection
        super().__init__(
            f"No manifest entry for {layer}/{collection}; nothing to roll back.",
            hint="Run 'crudforge list' to see tracked collections.",
        )


class ModifiedSinceGeneration(CrudforgeError):
    """Raised when a single-collection rollback had to keep hand-edited artifacts."""

    def __init__(self, layer: str, collection: str, paths: list[str]) -> None:
        self.layer = layer
        self.collection = collection
        self.paths = list(paths)
        listing = "\n".join(f"  - {p}" for p in self.paths)
        super().__init__(
            f"{len(self.paths)} artifact(s) of {layer}/{collection} were modified "
            f"since generation:\n{listing}",
            hint="Re-run with --force to remove them anyway.",
        )


class ManifestError(CrudforgeError):
    """Raised when the manifest file exists but cannot be read."""

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        super().__init__(
            f"Manifest at {path} is unreadable: {reason}",
            hint="Restore it from version control; crudforge never guesses ownership.",
        )
