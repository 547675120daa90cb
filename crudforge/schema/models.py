"""Pydantic v2 models for field schemas and project configuration.

Schema documents use the host application's camelCase keys (``maxLength``,
``refTarget``, ``fieldsFile`` ...).  Models accept both the camelCase alias
and the snake_case attribute name.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class FieldType(str, Enum):
    """Recognised field types."""
    STRING = "string"
    TEXT = "text"
    NUMBER = "number"
    INTEGER = "integer"
    DECIMAL = "decimal"
    BOOLEAN = "boolean"
    DATE = "date"
    DATETIME = "datetime"
    UUID = "uuid"
    JSON = "json"
    ARRAY = "array"
    REPEATER = "repeater"
    REFERENCE = "reference"


class TargetKind(str, Enum):
    """Generated-file categories."""
    STORAGE_SCHEMA = "storage-schema"
    DATA_ACCESS = "data-access"
    SERVER_HANDLER = "server-handler"
    UI_LIST = "ui-list"
    UI_FORM = "ui-form"
    UI_TABLE = "ui-table"
    TYPE_DECL = "type-decl"


class Dialect(str, Enum):
    """Storage dialects the schema emitter supports."""
    SQLITE = "sqlite"
    POSTGRES = "postgres"
    MYSQL = "mysql"


DIALECT_ALIASES: dict[str, str] = {"pg": "postgres", "postgresql": "postgres"}


# ---------------------------------------------------------------------------
# System fields
# ---------------------------------------------------------------------------

IDENTITY_FIELD = "id"
TENANT_FIELD = "teamId"
OWNER_FIELD = "owner"
AUDIT_FIELDS: tuple[str, ...] = ("createdAt", "updatedAt", "createdBy", "updatedBy")
TRANSLATIONS_FIELD = "translations"


# ---------------------------------------------------------------------------
# Field models
# ---------------------------------------------------------------------------

class FieldMeta(BaseModel):
    """Per-field presentation and constraint metadata."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    required: bool = Field(default=False)
    unique: bool = Field(default=False)
    max_length: Optional[int] = Field(default=None, alias="maxLength", gt=0)
    label: Optional[str] = Field(default=None)
    area: str = Field(default="main", description="Form area the field renders in")
    default: Optional[Any] = Field(default=None)
    precision: Optional[int] = Field(default=None, ge=1)
    scale: Optional[int] = Field(default=None, ge=0)
    translatable: bool = Field(default=False)
    component: Optional[str] = Field(default=None, description="Override UI component")
    placeholder: Optional[str] = Field(default=None)
    hint: Optional[str] = Field(default=None)
    show_in_table: bool = Field(default=True, alias="showInTable")


class FieldSpec(BaseModel):
    """A single declared field of a collection."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    type: FieldType
    meta: FieldMeta = Field(default_factory=FieldMeta)
    ref_target: Optional[str] = Field(default=None, alias="refTarget")
    ref_scope: Optional[str] = Field(default=None, alias="refScope")
    children: Optional[dict[str, Any]] = Field(
        default=None, description="Nested field definitions for repeater items"
    )

    @property
    def is_reference(self) -> bool:
        return self.type is FieldType.REFERENCE or self.ref_target is not None

    @property
    def is_external_reference(self) -> bool:
        return self.ref_scope in ("external", "adapter")

    @property
    def label(self) -> str:
        """Display label; falls back to a humanised field name."""
        if self.meta.label:
            return self.meta.label
        spaced = "".join(f" {c}" if c.isupper() else c for c in self.name)
        return spaced.replace("_", " ").strip().capitalize()


# ---------------------------------------------------------------------------
# Collection models
# ---------------------------------------------------------------------------

class HierarchyConfig(BaseModel):
    """Tree-structure options for a collection."""

    model_config = ConfigDict(populate_by_name=True)

    enabled: bool = False
    parent_field: str = Field(default="parentId", alias="parentField")
    path_field: str = Field(default="path", alias="pathField")
    depth_field: str = Field(default="depth", alias="depthField")
    order_field: str = Field(default="order", alias="orderField")

    def field_names(self) -> list[str]:
        if not self.enabled:
            return []
        return [self.parent_field, self.path_field, self.depth_field, self.order_field]


class SeedConfig(BaseModel):
    """Seed-data generation options."""

    enabled: bool = False
    count: int = Field(default=25, ge=1, le=10000)


class CollectionSpec(BaseModel):
    """A validated, normalised collection ready for emission.

    Created by the loader for one ``(layer, collection)`` pair and consumed
    once per generation run; never persisted.
    """

    model_config = ConfigDict(populate_by_name=True)

    name: str
    layer: str
    fields: list[FieldSpec] = Field(default_factory=list)
    hierarchy: HierarchyConfig = Field(default_factory=HierarchyConfig)
    sortable: bool = False
    seed: SeedConfig = Field(default_factory=SeedConfig)
    use_metadata: bool = Field(default=True, alias="useMetadata")

    @property
    def key(self) -> tuple[str, str]:
        return (self.layer, self.name)

    @property
    def order_field(self) -> Optional[str]:
        """Name of the ordering column, if the collection has one."""
        if self.hierarchy.enabled:
            return self.hierarchy.order_field
        if self.sortable:
            return "order"
        return None

    def system_field_names(self) -> list[str]:
        """Names injected by the engine, in column order."""
        return reserved_field_names(
            use_metadata=self.use_metadata,
            hierarchy=self.hierarchy,
            sortable=self.sortable,
        )

    def translatable_fields(self) -> list[FieldSpec]:
        return [f for f in self.fields if f.meta.translatable]


def reserved_field_names(
    *,
    use_metadata: bool = True,
    hierarchy: HierarchyConfig | None = None,
    sortable: bool = False,
    translatable: bool = False,
) -> list[str]:
    """Return the system field names a collection receives.

    Identity and tenant/owner keys are always present; audit fields only
    when *use_metadata*; tree or ordering columns when enabled; the
    per-locale ``translations`` column when any field is *translatable*.
    """
    names = [IDENTITY_FIELD, TENANT_FIELD, OWNER_FIELD]
    if hierarchy is not None and hierarchy.enabled:
        names.extend(hierarchy.field_names())
    elif sortable:
        names.append("order")
    if use_metadata:
        names.extend(AUDIT_FIELDS)
    if translatable:
        names.append(TRANSLATIONS_FIELD)
    return names


# ---------------------------------------------------------------------------
# Project configuration
# ---------------------------------------------------------------------------

class GenerationFlags(BaseModel):
    """Run-level generation and rollback policy."""

    model_config = ConfigDict(populate_by_name=True)

    force: bool = False
    no_translations: bool = Field(default=False, alias="noTranslations")
    no_db: bool = Field(default=False, alias="noDb")
    dry_run: bool = Field(default=False, alias="dryRun")
    auto_relations: bool = Field(default=False, alias="autoRelations")
    use_metadata: bool = Field(default=True, alias="useMetadata")
    keep_files: bool = Field(default=False, alias="keepFiles")
    disabled_targets: list[TargetKind] = Field(default_factory=list, alias="disabledTargets")

    def enabled_targets(self) -> list[TargetKind]:
        """Target kinds to emit, in emission order."""
        disabled = set(self.disabled_targets)
        if self.no_db:
            disabled.add(TargetKind.STORAGE_SCHEMA)
        return [kind for kind in TargetKind if kind not in disabled]

    def merged_with(self, overrides: dict[str, Any]) -> "GenerationFlags":
        """Return a copy with *overrides* (snake_case keys) applied."""
        return self.model_copy(update=overrides)


class CollectionDefinition(BaseModel):
    """A collection as declared in a project config file."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    fields: Optional[dict[str, Any]] = None
    fields_file: Optional[str] = Field(default=None, alias="fieldsFile")
    hierarchy: Optional[HierarchyConfig] = None
    sortable: bool = False
    seed: Optional[SeedConfig] = None


class TargetSpec(BaseModel):
    """One layer and the collections generated into it."""

    layer: str
    collections: list[str] = Field(default_factory=list)


class ProjectConfig(BaseModel):
    """A multi-collection generation config."""

    model_config = ConfigDict(populate_by_name=True)

    collections: list[CollectionDefinition] = Field(default_factory=list)
    targets: list[TargetSpec] = Field(default_factory=list)
    dialect: Dialect = Dialect.POSTGRES
    flags: GenerationFlags = Field(default_factory=GenerationFlags)
    external: list[str] = Field(
        default_factory=list, description="Collections owned outside this project"
    )

    def pairs(self) -> list[tuple[str, str]]:
        """All ``(layer, collection)`` pairs named by the targets."""
        return [(t.layer, c) for t in self.targets for c in t.collections]
