"""Artifact emission: type mapping, IR builders, templates and the engine.

Usage::

    from crudforge.emitter import EmissionEngine

    engine = EmissionEngine(settings, ManifestStore(settings.manifest_path))
    plan = await engine.generate(spec, flags, Dialect.POSTGRES)
"""

from crudforge.emitter.engine import (
    Action,
    Artifact,
    CollectionPlan,
    EmissionEngine,
    PlannedArtifact,
    classify,
)

__all__ = [
    "Action",
    "Artifact",
    "CollectionPlan",
    "EmissionEngine",
    "PlannedArtifact",
    "classify",
]
