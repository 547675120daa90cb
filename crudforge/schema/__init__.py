"""Field-schema and project-config models plus their validating loader.

Usage::

    from crudforge.schema import build_collection, load_schema_document

    raw = load_schema_document("schemas/products.json")
    spec = build_collection("shop", "products", raw)
"""

from crudforge.schema.loader import (
    build_collection,
    load_project_config,
    load_schema_document,
    resolve_project,
)
from crudforge.schema.models import (
    CollectionSpec,
    Dialect,
    FieldSpec,
    FieldType,
    GenerationFlags,
    ProjectConfig,
    TargetKind,
)

__all__ = [
    "CollectionSpec",
    "Dialect",
    "FieldSpec",
    "FieldType",
    "GenerationFlags",
    "ProjectConfig",
    "TargetKind",
    "build_collection",
    "load_project_config",
    "load_schema_document",
    "resolve_project",
]
