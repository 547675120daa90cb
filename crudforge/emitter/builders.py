"""Structured artifact builders.

``build_collection_ir`` turns a validated ``CollectionSpec`` into a
``CollectionIR``: plain data (columns, operations, handlers, view fields,
type members, seed generators) that the Jinja2 templates render into text.
Skip/overwrite decisions never look at rendered text structure; they only
compare fingerprints.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from crudforge.emitter.renderer import ts_string
from crudforge.emitter.type_mapping import (
    InputKind,
    column_shape,
    default_literal,
    mapping_for,
)
from crudforge.naming import CollectionNames, pascal_case, resolve_names, singularize
from crudforge.schema.models import (
    AUDIT_FIELDS,
    IDENTITY_FIELD,
    OWNER_FIELD,
    TENANT_FIELD,
    CollectionSpec,
    Dialect,
    FieldSpec,
    FieldType,
    GenerationFlags,
    TargetKind,
)


# ---------------------------------------------------------------------------
# IR types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ColumnIR:
    """One storage column."""

    name: str
    fn: str
    options: dict[str, Any] = field(default_factory=dict)
    primary_key: bool = False
    sql_default: str | None = None
    not_null: bool = False
    unique: bool = False
    default: str | None = None
    on_update: str | None = None
    comment: str | None = None
    system: bool = False


@dataclass(frozen=True)
class RelationStubIR:
    """A relation emitted as a commented-out stub, never a live constraint."""

    field_name: str
    relation_name: str
    target: str
    target_export: str
    external: bool


@dataclass(frozen=True)
class OperationIR:
    """A data-access operation and the keys that scope it."""

    name: str
    function: str
    scope: tuple[str, ...]


@dataclass(frozen=True)
class HandlerIR:
    """A server handler delegating to one or more data-access operations."""

    variant: str
    method: str
    operations: tuple[str, ...]


@dataclass(frozen=True)
class ViewFieldIR:
    """A field as rendered by list, form and table views."""

    name: str
    label: str
    input_kind: InputKind
    component: str | None
    required: bool
    translatable: bool
    area: str
    show_in_table: bool
    zod: str
    default: str
    max_length: int | None = None
    placeholder: str | None = None
    hint: str | None = None
    ref_collection: str | None = None
    repeater_folder: str | None = None


@dataclass(frozen=True)
class TypeMemberIR:
    name: str
    ts_type: str
    optional: bool = False
    system: bool = False


@dataclass(frozen=True)
class SeedFieldIR:
    name: str
    generator: str


@dataclass(frozen=True)
class RepeaterIR:
    field_name: str
    folder: str
    label: str
    children: tuple[ViewFieldIR, ...] = ()


@dataclass
class CollectionIR:
    """Everything the templates need for one collection."""

    names: CollectionNames
    spec: CollectionSpec
    dialect: Dialect
    table_fn: str
    core_module: str
    columns: list[ColumnIR]
    imports: list[str]
    needs_json_column: bool
    needs_nanoid: bool
    relation_stubs: list[RelationStubIR]
    auto_relations: bool
    operations: list[OperationIR]
    handlers: list[HandlerIR]
    view_fields: list[ViewFieldIR]
    translatable: list[str]
    row_members: list[TypeMemberIR]
    new_row_omit: list[str]
    date_fields: list[str]
    seed_fields: list[SeedFieldIR]
    repeaters: list[RepeaterIR]
    tenant_field: str = TENANT_FIELD
    owner_field: str = OWNER_FIELD
    identity_field: str = IDENTITY_FIELD

    @property
    def has_hierarchy(self) -> bool:
        return self.spec.hierarchy.enabled

    @property
    def has_ordering(self) -> bool:
        return self.spec.order_field is not None

    @property
    def supports_returning(self) -> bool:
        """MySQL has no ``RETURNING``; its queries re-read rows instead."""
        return self.dialect is not Dialect.MYSQL

    def handler(self, variant: str) -> HandlerIR:
        for handler in self.handlers:
            if handler.variant == variant:
                return handler
        raise KeyError(variant)


# ---------------------------------------------------------------------------
# Dialect tables
# ---------------------------------------------------------------------------

TABLE_FUNCTIONS: dict[Dialect, tuple[str, str]] = {
    Dialect.SQLITE: ("sqliteTable", "drizzle-orm/sqlite-core"),
    Dialect.POSTGRES: ("pgTable", "drizzle-orm/pg-core"),
    Dialect.MYSQL: ("mysqlTable", "drizzle-orm/mysql-core"),
}

_TIMESTAMP: dict[Dialect, tuple[str, dict[str, Any]]] = {
    Dialect.SQLITE: ("integer", {"mode": "timestamp"}),
    Dialect.POSTGRES: ("timestamp", {"withTimezone": True}),
    Dialect.MYSQL: ("datetime", {}),
}

_KEY_TEXT: dict[Dialect, tuple[str, dict[str, Any]]] = {
    Dialect.SQLITE: ("text", {}),
    Dialect.POSTGRES: ("text", {}),
    Dialect.MYSQL: ("varchar", {"length": 191}),
}

_INTEGER: dict[Dialect, str] = {
    Dialect.SQLITE: "integer",
    Dialect.POSTGRES: "integer",
    Dialect.MYSQL: "int",
}


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------

def build_collection_ir(
    spec: CollectionSpec,
    flags: GenerationFlags,
    dialect: Dialect,
) -> CollectionIR:
    """Build the intermediate representation for one collection."""
    names = resolve_names(spec.layer, spec.name)
    table_fn, core_module = TABLE_FUNCTIONS[dialect]
    translatable = [] if flags.no_translations else [f.name for f in spec.translatable_fields()]

    columns = _system_key_columns(dialect)
    columns.extend(_ordering_columns(spec, dialect))
    columns.extend(_field_column(f, names, dialect) for f in spec.fields)
    if translatable:
        columns.append(
            ColumnIR(
                name="translations",
                fn=_json_fn(dialect),
                comment="per-locale values for: " + ", ".join(translatable),
                system=True,
            )
        )
    if spec.use_metadata:
        columns.extend(_audit_columns(dialect))

    fns = {table_fn} | {c.fn for c in columns if c.fn != "jsonColumn"}
    needs_json_column = any(c.fn == "jsonColumn" for c in columns)
    if needs_json_column:
        fns.add("customType")

    return CollectionIR(
        names=names,
        spec=spec,
        dialect=dialect,
        table_fn=table_fn,
        core_module=core_module,
        columns=columns,
        imports=sorted(fns),
        needs_json_column=needs_json_column,
        needs_nanoid=dialect is Dialect.SQLITE,
        relation_stubs=_relation_stubs(spec, names),
        auto_relations=flags.auto_relations,
        operations=_operations(spec, names),
        handlers=_handlers(spec, names),
        view_fields=[_view_field(f, spec.layer, translatable) for f in spec.fields],
        translatable=translatable,
        row_members=_row_members(spec, translatable),
        new_row_omit=[IDENTITY_FIELD, *(AUDIT_FIELDS if spec.use_metadata else ())],
        date_fields=[
            f.name for f in spec.fields if f.type in (FieldType.DATE, FieldType.DATETIME)
        ],
        seed_fields=[SeedFieldIR(f.name, seed_generator(f)) for f in spec.fields],
        repeaters=_repeaters(spec),
    )


def artifact_variants(ir: CollectionIR, kind: TargetKind) -> list[str]:
    """Which files of *kind* this collection produces, in emission order."""
    if kind is TargetKind.STORAGE_SCHEMA:
        return ["schema", "seed"] if ir.spec.seed.enabled else ["schema"]
    if kind is TargetKind.DATA_ACCESS:
        return ["queries", "composable"]
    if kind is TargetKind.SERVER_HANDLER:
        return [h.variant for h in ir.handlers]
    if kind is TargetKind.UI_LIST:
        return ["list"]
    if kind is TargetKind.UI_FORM:
        variants = ["form"]
        for repeater in ir.repeaters:
            variants.extend(
                f"repeater:{repeater.field_name}:{component}"
                for component in ("Input", "Select", "CardMini")
            )
        return variants
    if kind is TargetKind.UI_TABLE:
        return ["table"]
    return ["types"]


# ---------------------------------------------------------------------------
# Columns
# ---------------------------------------------------------------------------

def _json_fn(dialect: Dialect) -> str:
    return {Dialect.SQLITE: "jsonColumn", Dialect.POSTGRES: "jsonb", Dialect.MYSQL: "json"}[dialect]


def _system_key_columns(dialect: Dialect) -> list[ColumnIR]:
    if dialect is Dialect.POSTGRES:
        identity = ColumnIR(IDENTITY_FIELD, "uuid", primary_key=True, sql_default="defaultRandom", system=True)
    elif dialect is Dialect.MYSQL:
        identity = ColumnIR(
            IDENTITY_FIELD, "varchar", {"length": 36}, primary_key=True,
            default="crypto.randomUUID()", system=True,
        )
    else:
        identity = ColumnIR(IDENTITY_FIELD, "text", primary_key=True, default="nanoid()", system=True)
    fn, options = _KEY_TEXT[dialect]
    return [
        identity,
        ColumnIR(TENANT_FIELD, fn, options, not_null=True, system=True),
        ColumnIR(OWNER_FIELD, fn, options, not_null=True, system=True),
    ]


def _ordering_columns(spec: CollectionSpec, dialect: Dialect) -> list[ColumnIR]:
    integer = _INTEGER[dialect]
    key_fn, key_options = _KEY_TEXT[dialect]
    hierarchy = spec.hierarchy
    if hierarchy.enabled:
        return [
            ColumnIR(hierarchy.parent_field, key_fn, key_options, system=True),
            ColumnIR(hierarchy.path_field, "text", not_null=True, default="'/'", system=True),
            ColumnIR(hierarchy.depth_field, integer, not_null=True, default="0", system=True),
            ColumnIR(hierarchy.order_field, integer, not_null=True, default="0", system=True),
        ]
    if spec.sortable:
        return [ColumnIR("order", integer, not_null=True, default="0", system=True)]
    return []


def _audit_columns(dialect: Dialect) -> list[ColumnIR]:
    ts_fn, ts_options = _TIMESTAMP[dialect]
    key_fn, key_options = _KEY_TEXT[dialect]
    created, updated, created_by, updated_by = AUDIT_FIELDS
    return [
        ColumnIR(created, ts_fn, ts_options, not_null=True, default="new Date()", system=True),
        ColumnIR(
            updated, ts_fn, ts_options, not_null=True, default="new Date()",
            on_update="new Date()", system=True,
        ),
        ColumnIR(created_by, key_fn, key_options, not_null=True, system=True),
        ColumnIR(updated_by, key_fn, key_options, not_null=True, system=True),
    ]


def _field_column(field_spec: FieldSpec, names: CollectionNames, dialect: Dialect) -> ColumnIR:
    fn, options = column_shape(field_spec, dialect)
    mapping = mapping_for(field_spec)
    meta = field_spec.meta

    default: str | None = None
    if mapping.json_default is not None:
        default = f"({mapping.json_default})"
    elif field_spec.type is FieldType.BOOLEAN:
        default = "true" if meta.default is True else "false"

    comment = None
    if field_spec.is_reference:
        target = _relation_target(field_spec, names)
        comment = f"references {target}.id"
    elif field_spec.type is FieldType.DECIMAL and dialect is Dialect.SQLITE:
        if meta.precision is not None or meta.scale is not None:
            comment = f"precision: {meta.precision}, scale: {meta.scale}"

    return ColumnIR(
        name=field_spec.name,
        fn=fn,
        options=options,
        not_null=meta.required,
        unique=meta.unique,
        default=default,
        comment=comment,
    )


def _relation_target(field_spec: FieldSpec, names: CollectionNames) -> str:
    target = field_spec.ref_target or ""
    if field_spec.is_external_reference:
        return target
    return resolve_names(names.layer, target).export_name


def _relation_stubs(spec: CollectionSpec, names: CollectionNames) -> list[RelationStubIR]:
    stubs = []
    for f in spec.fields:
        if not f.is_reference or f.type is FieldType.ARRAY:
            continue
        relation = f.name[:-2] if f.name.endswith("Id") and len(f.name) > 2 else f.name
        stubs.append(
            RelationStubIR(
                field_name=f.name,
                relation_name=relation,
                target=f.ref_target or "",
                target_export=_relation_target(f, names),
                external=f.is_external_reference,
            )
        )
    return stubs


# ---------------------------------------------------------------------------
# Operations and handlers
# ---------------------------------------------------------------------------

def _operations(spec: CollectionSpec, names: CollectionNames) -> list[OperationIR]:
    tenant = (TENANT_FIELD,)
    owned = (TENANT_FIELD, OWNER_FIELD)
    ops = [
        OperationIR("getAll", f"getAll{names.ui_prefix}", tenant),
        OperationIR("getByIds", f"get{names.ui_prefix}ByIds", tenant),
        OperationIR("create", f"create{names.type_name}", ()),
        OperationIR("update", f"update{names.type_name}", owned),
        OperationIR("delete", f"delete{names.type_name}", owned),
    ]
    if spec.hierarchy.enabled:
        ops.append(OperationIR("getTree", f"getTreeData{names.ui_prefix}", tenant))
        ops.append(OperationIR("move", f"updatePosition{names.type_name}", tenant))
    if spec.order_field is not None:
        ops.append(OperationIR("reorder", f"reorderSiblings{names.ui_prefix}", tenant))
    return ops


def _handlers(spec: CollectionSpec, names: CollectionNames) -> list[HandlerIR]:
    handlers = [
        HandlerIR("get", "GET", (f"getAll{names.ui_prefix}", f"get{names.ui_prefix}ByIds")),
        HandlerIR("post", "POST", (f"create{names.type_name}",)),
        HandlerIR("patch", "PATCH", (f"update{names.type_name}",)),
        HandlerIR("delete", "DELETE", (f"delete{names.type_name}",)),
    ]
    if spec.order_field is not None:
        handlers.append(HandlerIR("reorder", "PATCH", (f"reorderSiblings{names.ui_prefix}",)))
    if spec.hierarchy.enabled:
        handlers.append(HandlerIR("move", "PATCH", (f"updatePosition{names.type_name}",)))
    return handlers


# ---------------------------------------------------------------------------
# Views and types
# ---------------------------------------------------------------------------

def _view_field(field_spec: FieldSpec, layer: str, translatable: list[str]) -> ViewFieldIR:
    mapping = mapping_for(field_spec)
    meta = field_spec.meta
    zod = mapping.zod
    if mapping.ts_type == "string" and meta.max_length:
        zod = f"{zod}.max({meta.max_length})"
    if meta.required and mapping.ts_type == "string":
        zod = f"{zod}.min(1, {ts_string(field_spec.label + ' is required')})"
    elif not meta.required:
        zod = f"{zod}.optional()"

    ref_collection = None
    if field_spec.ref_target:
        if field_spec.is_external_reference:
            ref_collection = field_spec.ref_target
        else:
            ref_collection = resolve_names(layer, field_spec.ref_target).export_name

    return ViewFieldIR(
        name=field_spec.name,
        label=field_spec.label,
        input_kind=mapping.input_kind,
        component=meta.component,
        required=meta.required,
        translatable=field_spec.name in translatable,
        area=meta.area,
        show_in_table=meta.show_in_table and mapping.input_kind not in (
            InputKind.JSON,
            InputKind.REPEATER,
        ),
        zod=zod,
        default=default_literal(field_spec),
        max_length=meta.max_length,
        placeholder=meta.placeholder,
        hint=meta.hint,
        ref_collection=ref_collection,
        repeater_folder=(
            pascal_case(singularize(field_spec.name))
            if field_spec.type is FieldType.REPEATER
            else None
        ),
    )


def _row_members(spec: CollectionSpec, translatable: list[str]) -> list[TypeMemberIR]:
    members = [
        TypeMemberIR(IDENTITY_FIELD, "string", system=True),
        TypeMemberIR(TENANT_FIELD, "string", system=True),
        TypeMemberIR(OWNER_FIELD, "string", system=True),
    ]
    hierarchy = spec.hierarchy
    if hierarchy.enabled:
        members += [
            TypeMemberIR(hierarchy.parent_field, "string | null", system=True),
            TypeMemberIR(hierarchy.path_field, "string", system=True),
            TypeMemberIR(hierarchy.depth_field, "number", system=True),
            TypeMemberIR(hierarchy.order_field, "number", system=True),
        ]
    elif spec.sortable:
        members.append(TypeMemberIR("order", "number", system=True))

    for f in spec.fields:
        members.append(TypeMemberIR(f.name, mapping_for(f).ts_type, optional=not f.meta.required))
    if translatable:
        fields = "; ".join(f"{name}?: string" for name in translatable)
        members.append(
            TypeMemberIR("translations", f"Record<string, {{ {fields} }}>", optional=True, system=True)
        )
    if spec.use_metadata:
        created, updated, created_by, updated_by = AUDIT_FIELDS
        members += [
            TypeMemberIR(created, "Date", system=True),
            TypeMemberIR(updated, "Date", system=True),
            TypeMemberIR(created_by, "string", system=True),
            TypeMemberIR(updated_by, "string", system=True),
        ]
    return members


def _repeaters(spec: CollectionSpec) -> list[RepeaterIR]:
    repeaters = []
    for f in spec.fields:
        if f.type is not FieldType.REPEATER:
            continue
        children = []
        for child_name, child_def in (f.children or {}).items():
            child = FieldSpec.model_validate(
                {**child_def, "name": child_name, "meta": child_def.get("meta") or {}}
            )
            children.append(_view_field(child, spec.layer, []))
        repeaters.append(
            RepeaterIR(
                field_name=f.name,
                folder=pascal_case(singularize(f.name)),
                label=f.label,
                children=tuple(children),
            )
        )
    return repeaters


# ---------------------------------------------------------------------------
# Seed heuristics
# ---------------------------------------------------------------------------

_NAME_GENERATORS: list[tuple[tuple[str, ...], str]] = [
    (("email",), "f.email()"),
    (("phone",), "f.phoneNumber()"),
    (("url", "website", "link"), 'f.valuesFromArray({ values: ["https://example.com"] })'),
    (("price", "amount", "cost", "total"), "f.number({ minValue: 1, maxValue: 1000, precision: 100 })"),
    (("quantity", "count", "stock"), "f.int({ minValue: 0, maxValue: 100 })"),
    (("address",), "f.streetAddress()"),
    (("zip", "postal"), "f.postcode()"),
]

_EXACT_GENERATORS: dict[str, str] = {
    "name": "f.fullName()",
    "fullname": "f.fullName()",
    "firstname": "f.firstName()",
    "lastname": "f.lastName()",
    "title": "f.loremIpsum({ sentencesCount: 1 })",
    "description": "f.loremIpsum({ sentencesCount: 3 })",
    "content": "f.loremIpsum({ sentencesCount: 3 })",
    "city": "f.city()",
    "country": "f.country()",
    "status": 'f.valuesFromArray({ values: ["active", "inactive", "pending"] })',
}

_TYPE_GENERATORS: dict[FieldType, str] = {
    FieldType.STRING: "f.loremIpsum({ sentencesCount: 1 })",
    FieldType.TEXT: "f.loremIpsum({ sentencesCount: 3 })",
    FieldType.NUMBER: "f.number({ minValue: 0, maxValue: 1000 })",
    FieldType.INTEGER: "f.int({ minValue: 0, maxValue: 100 })",
    FieldType.DECIMAL: "f.number({ minValue: 0, maxValue: 1000, precision: 100 })",
    FieldType.BOOLEAN: "f.boolean()",
    FieldType.DATE: 'f.date({ minDate: "2020-01-01", maxDate: "2030-12-31" })',
    FieldType.DATETIME: 'f.timestamp()',
    FieldType.UUID: "f.uuid()",
    FieldType.JSON: "f.valuesFromArray({ values: [{}] })",
    FieldType.ARRAY: "f.valuesFromArray({ values: [[]] })",
    FieldType.REPEATER: "f.valuesFromArray({ values: [[]] })",
    FieldType.REFERENCE: "f.default({ defaultValue: null })",
}


def seed_generator(field_spec: FieldSpec) -> str:
    """Pick a drizzle-seed generator by field name, then by type."""
    if field_spec.is_reference:
        return _TYPE_GENERATORS[FieldType.REFERENCE]
    lowered = field_spec.name.lower().replace("_", "")
    if lowered in _EXACT_GENERATORS:
        return _EXACT_GENERATORS[lowered]
    for needles, generator in _NAME_GENERATORS:
        if any(needle in lowered for needle in needles):
            return generator
    return _TYPE_GENERATORS[field_spec.type]
