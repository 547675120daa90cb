"""crudforge runtime settings.

Centralised, typed settings describing *where* the engine operates: the
host project root, the state directory that holds the manifest, and the
directory that contains layers.  Generation policy (force, dry-run, ...)
lives in ``crudforge.schema.models.GenerationFlags`` instead.
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import BaseModel, Field

from crudforge.schema.models import Dialect


class Settings(BaseModel):
    """Where crudforge reads and writes inside a host project.

    Instances are created once by the CLI entry point (or by tests) and
    passed to the engines.
    """

    project_root: Path = Field(default_factory=Path.cwd)
    state_dir: str = Field(default=".crudforge")
    layers_dir: str = Field(default="layers")
    default_dialect: Dialect = Field(default=Dialect.POSTGRES)
    auth_module: str = Field(
        default="~~/server/utils/team",
        description="Module generated handlers import resolveTeamAndCheckMembership from",
    )

    # ------------------------------------------------------------------
    # Derived paths (read-only properties)
    # ------------------------------------------------------------------

    @property
    def state_path(self) -> Path:
        """Root of the ``.crudforge/`` metadata directory."""
        return self.project_root / self.state_dir

    @property
    def manifest_path(self) -> Path:
        """Path to the persisted generation manifest."""
        return self.state_path / "manifest.json"

    @property
    def layers_path(self) -> Path:
        return self.project_root / self.layers_dir

    def resolve(self, relative: str | Path) -> Path:
        """Resolve a project-relative artifact path to an absolute one."""
        return self.project_root / Path(relative)

    # ------------------------------------------------------------------
    # Construction helpers
    # ------------------------------------------------------------------

    @classmethod
    def from_env(cls, project_root: Path | None = None) -> "Settings":
        """Build ``Settings`` from environment variables.

        Recognised variables (all optional):
            CRUDFORGE_PROJECT_ROOT, CRUDFORGE_STATE_DIR, CRUDFORGE_DIALECT,
            CRUDFORGE_AUTH_MODULE.

        An explicit *project_root* wins over ``CRUDFORGE_PROJECT_ROOT``.
        """
        kwargs: dict[str, object] = {}
        if project_root is not None:
            kwargs["project_root"] = Path(project_root)
        elif os.environ.get("CRUDFORGE_PROJECT_ROOT"):
            kwargs["project_root"] = Path(os.environ["CRUDFORGE_PROJECT_ROOT"])
        if os.environ.get("CRUDFORGE_STATE_DIR"):
            kwargs["state_dir"] = os.environ["CRUDFORGE_STATE_DIR"]
        if os.environ.get("CRUDFORGE_DIALECT"):
            kwargs["default_dialect"] = Dialect(os.environ["CRUDFORGE_DIALECT"])
        if os.environ.get("CRUDFORGE_AUTH_MODULE"):
            kwargs["auth_module"] = os.environ["CRUDFORGE_AUTH_MODULE"]
        return cls(**kwargs)
