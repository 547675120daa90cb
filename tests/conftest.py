"""Shared pytest fixtures for the crudforge test suite.

Provides reusable fixtures for:
- Temporary host projects and settings
- Field schemas (inline, JSON and YAML files)
- A multi-collection project config
- Manifest stores and engines wired to the temporary project
"""

from __future__ import annotations

import json
import textwrap
from pathlib import Path
from typing import Any

import pytest

from crudforge.config import Settings
from crudforge.emitter.engine import EmissionEngine
from crudforge.manifest import ManifestStore
from crudforge.rollback import RollbackEngine
from crudforge.schema.loader import build_collection
from crudforge.schema.models import CollectionSpec, GenerationFlags


FIXTURES_DIR = Path(__file__).parent / "fixtures"


# ---------------------------------------------------------------------------
# Paths & Settings
# ---------------------------------------------------------------------------

@pytest.fixture
def project_root(tmp_path: Path) -> Path:
    """Temporary host project directory (auto-cleanup)."""
    root = tmp_path / "host-app"
    root.mkdir()
    yield root


@pytest.fixture
def settings(project_root: Path) -> Settings:
    return Settings(project_root=project_root)


@pytest.fixture
def manifest(settings: Settings) -> ManifestStore:
    return ManifestStore(settings.manifest_path)


@pytest.fixture
def engine(settings: Settings, manifest: ManifestStore) -> EmissionEngine:
    return EmissionEngine(settings, manifest)


@pytest.fixture
def rollback_engine(settings: Settings, manifest: ManifestStore) -> RollbackEngine:
    return RollbackEngine(settings, manifest)


@pytest.fixture
def flags() -> GenerationFlags:
    return GenerationFlags()


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------

@pytest.fixture
def products_fields() -> dict[str, Any]:
    """The shop/products schema: a required title and a priced decimal."""
    return {
        "title": {"type": "string", "meta": {"required": True}},
        "price": {"type": "decimal", "meta": {"precision": 10, "scale": 2}},
    }


@pytest.fixture
def products_spec(products_fields: dict[str, Any]) -> CollectionSpec:
    return build_collection("shop", "products", products_fields)


@pytest.fixture
def rich_fields() -> dict[str, Any]:
    """A schema touching every field type."""
    return {
        "name": {"type": "string", "meta": {"required": True, "maxLength": 80, "translatable": True}},
        "body": {"type": "text", "meta": {"area": "content"}},
        "rating": {"type": "number"},
        "stock": {"type": "integer", "meta": {"default": 5}},
        "price": {"type": "decimal", "meta": {"precision": 8, "scale": 2}},
        "active": {"type": "boolean", "meta": {"default": True}},
        "releaseDate": {"type": "date"},
        "publishedAt": {"type": "datetime"},
        "sku": {"type": "uuid"},
        "attributes": {"type": "json"},
        "tags": {"type": "array"},
        "variants": {
            "type": "repeater",
            "children": {
                "label": {"type": "string"},
                "extraCost": {"type": "decimal"},
            },
        },
        "categoryId": {"type": "reference", "refTarget": "categories"},
    }


@pytest.fixture
def products_schema_file(tmp_path: Path, products_fields: dict[str, Any]) -> Path:
    path = tmp_path / "products.json"
    path.write_text(json.dumps(products_fields, indent=2), encoding="utf-8")
    return path


@pytest.fixture
def shop_config_file(tmp_path: Path) -> Path:
    """A YAML config with three collections in the ``shop`` layer."""
    schemas = tmp_path / "schemas"
    schemas.mkdir()
    (schemas / "orders.json").write_text(
        json.dumps({
            "reference": {"type": "string", "meta": {"required": True}},
            "total": {"type": "decimal", "meta": {"precision": 12, "scale": 2}},
            "productId": {"type": "reference", "refTarget": "products"},
        }),
        encoding="utf-8",
    )
    path = tmp_path / "crudforge.config.yaml"
    path.write_text(
        textwrap.dedent(
            """\
            dialect: pg
            flags:
              autoRelations: true
            collections:
              - name: categories
                sortable: true
                fields:
                  name: {type: string, meta: {required: true}}
              - name: products
                fields:
                  title: {type: string, meta: {required: true}}
                  price: {type: decimal, meta: {precision: 10, scale: 2}}
                  categoryId: {type: reference, refTarget: categories}
              - name: orders
                fieldsFile: schemas/orders.json
            targets:
              - layer: shop
                collections: [categories, products, orders]
            """
        ),
        encoding="utf-8",
    )
    return path


@pytest.fixture
def example_schema_path() -> Path:
    """Path to the example YAML schema in tests/fixtures."""
    path = FIXTURES_DIR / "articles.yaml"
    assert path.exists(), f"Example schema fixture not found at {path}"
    return path
