"""Field-type mapping table.

This is the only place that dispatches on ``FieldType``.  Each entry states
how the type is stored (per dialect), which UI input renders it, what the
default value policy is, and how it is typed and validated in generated
TypeScript.  Adding a field type means adding one entry here.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from crudforge.schema.models import Dialect, FieldSpec, FieldType


class InputKind(str, Enum):
    """UI widget families the view templates know how to render."""
    TEXT = "text"
    TEXTAREA = "textarea"
    NUMBER = "number"
    SWITCH = "switch"
    DATE = "date"
    DATETIME = "datetime"
    JSON = "json"
    TAGS = "tags"
    REPEATER = "repeater"
    REFERENCE = "reference"


class DefaultPolicy(str, Enum):
    """What a new form row starts with when ``meta.default`` is absent."""
    EMPTY_STRING = "empty-string"
    ZERO = "zero"
    FALSE = "false"
    NULL = "null"
    EMPTY_OBJECT = "empty-object"
    EMPTY_ARRAY = "empty-array"


DEFAULT_LITERALS: dict[DefaultPolicy, str] = {
    DefaultPolicy.EMPTY_STRING: "''",
    DefaultPolicy.ZERO: "0",
    DefaultPolicy.FALSE: "false",
    DefaultPolicy.NULL: "null",
    DefaultPolicy.EMPTY_OBJECT: "{}",
    DefaultPolicy.EMPTY_ARRAY: "[]",
}


@dataclass(frozen=True)
class ColumnShape:
    """How one dialect stores a field: Drizzle builder and its options."""

    fn: str
    options: dict[str, Any] = field(default_factory=dict)
    # Option name that receives meta.maxLength, if the builder takes one.
    length_option: str | None = None
    # Fallback length when the dialect requires one.
    default_length: int | None = None
    # Builder used instead of ``fn`` when meta.maxLength is set.
    sized_fn: str | None = None
    # Option names that receive meta.precision / meta.scale.
    numeric_options: bool = False


@dataclass(frozen=True)
class TypeMapping:
    """Everything the emitters need to know about one field type."""

    ts_type: str
    zod: str
    input_kind: InputKind
    default_policy: DefaultPolicy
    columns: dict[Dialect, ColumnShape]
    # JSON-shaped columns default to an empty container on insert.
    json_default: str | None = None


_TEXT = {
    Dialect.SQLITE: ColumnShape("text"),
    Dialect.POSTGRES: ColumnShape("text"),
    Dialect.MYSQL: ColumnShape("text"),
}

_JSON_COLUMNS = {
    Dialect.SQLITE: ColumnShape("jsonColumn"),
    Dialect.POSTGRES: ColumnShape("jsonb"),
    Dialect.MYSQL: ColumnShape("json"),
}

TYPE_MAPPING: dict[FieldType, TypeMapping] = {
    FieldType.STRING: TypeMapping(
        ts_type="string",
        zod="z.string()",
        input_kind=InputKind.TEXT,
        default_policy=DefaultPolicy.EMPTY_STRING,
        columns={
            Dialect.SQLITE: ColumnShape("text"),
            Dialect.POSTGRES: ColumnShape("text", sized_fn="varchar", length_option="length"),
            Dialect.MYSQL: ColumnShape("varchar", length_option="length", default_length=255),
        },
    ),
    FieldType.TEXT: TypeMapping(
        ts_type="string",
        zod="z.string()",
        input_kind=InputKind.TEXTAREA,
        default_policy=DefaultPolicy.EMPTY_STRING,
        columns=_TEXT,
    ),
    FieldType.NUMBER: TypeMapping(
        ts_type="number",
        zod="z.number()",
        input_kind=InputKind.NUMBER,
        default_policy=DefaultPolicy.ZERO,
        columns={
            Dialect.SQLITE: ColumnShape("real"),
            Dialect.POSTGRES: ColumnShape("doublePrecision"),
            Dialect.MYSQL: ColumnShape("double"),
        },
    ),
    FieldType.INTEGER: TypeMapping(
        ts_type="number",
        zod="z.number().int()",
        input_kind=InputKind.NUMBER,
        default_policy=DefaultPolicy.ZERO,
        columns={
            Dialect.SQLITE: ColumnShape("integer"),
            Dialect.POSTGRES: ColumnShape("integer"),
            Dialect.MYSQL: ColumnShape("int"),
        },
    ),
    FieldType.DECIMAL: TypeMapping(
        ts_type="number",
        zod="z.number()",
        input_kind=InputKind.NUMBER,
        default_policy=DefaultPolicy.ZERO,
        columns={
            Dialect.SQLITE: ColumnShape("real"),
            Dialect.POSTGRES: ColumnShape("numeric", numeric_options=True),
            Dialect.MYSQL: ColumnShape("decimal", numeric_options=True),
        },
    ),
    FieldType.BOOLEAN: TypeMapping(
        ts_type="boolean",
        zod="z.boolean()",
        input_kind=InputKind.SWITCH,
        default_policy=DefaultPolicy.FALSE,
        columns={
            Dialect.SQLITE: ColumnShape("integer", options={"mode": "boolean"}),
            Dialect.POSTGRES: ColumnShape("boolean"),
            Dialect.MYSQL: ColumnShape("boolean"),
        },
    ),
    FieldType.DATE: TypeMapping(
        ts_type="Date | null",
        zod="z.coerce.date()",
        input_kind=InputKind.DATE,
        default_policy=DefaultPolicy.NULL,
        columns={
            Dialect.SQLITE: ColumnShape("integer", options={"mode": "timestamp"}),
            Dialect.POSTGRES: ColumnShape("date", options={"mode": "date"}),
            Dialect.MYSQL: ColumnShape("date", options={"mode": "date"}),
        },
    ),
    FieldType.DATETIME: TypeMapping(
        ts_type="Date | null",
        zod="z.coerce.date()",
        input_kind=InputKind.DATETIME,
        default_policy=DefaultPolicy.NULL,
        columns={
            Dialect.SQLITE: ColumnShape("integer", options={"mode": "timestamp"}),
            Dialect.POSTGRES: ColumnShape("timestamp", options={"withTimezone": True}),
            Dialect.MYSQL: ColumnShape("datetime"),
        },
    ),
    FieldType.UUID: TypeMapping(
        ts_type="string",
        zod="z.string().uuid()",
        input_kind=InputKind.TEXT,
        default_policy=DefaultPolicy.EMPTY_STRING,
        columns={
            Dialect.SQLITE: ColumnShape("text"),
            Dialect.POSTGRES: ColumnShape("uuid"),
            Dialect.MYSQL: ColumnShape("varchar", options={"length": 36}),
        },
    ),
    FieldType.JSON: TypeMapping(
        ts_type="Record<string, any>",
        zod="z.record(z.any())",
        input_kind=InputKind.JSON,
        default_policy=DefaultPolicy.EMPTY_OBJECT,
        columns=_JSON_COLUMNS,
        json_default="{}",
    ),
    FieldType.ARRAY: TypeMapping(
        ts_type="string[]",
        zod="z.array(z.string())",
        input_kind=InputKind.TAGS,
        default_policy=DefaultPolicy.EMPTY_ARRAY,
        columns=_JSON_COLUMNS,
        json_default="[]",
    ),
    FieldType.REPEATER: TypeMapping(
        ts_type="any[]",
        zod="z.array(z.any())",
        input_kind=InputKind.REPEATER,
        default_policy=DefaultPolicy.EMPTY_ARRAY,
        columns=_JSON_COLUMNS,
        json_default="[]",
    ),
    FieldType.REFERENCE: TypeMapping(
        ts_type="string",
        zod="z.string()",
        input_kind=InputKind.REFERENCE,
        default_policy=DefaultPolicy.NULL,
        columns={
            Dialect.SQLITE: ColumnShape("text"),
            Dialect.POSTGRES: ColumnShape("text"),
            Dialect.MYSQL: ColumnShape("varchar", options={"length": 191}),
        },
    ),
}


def mapping_for(field_spec: FieldSpec) -> TypeMapping:
    """Return the mapping for a field.

    A non-reference field that carries a ``refTarget`` is stored and edited
    like a reference, but keeps its own TypeScript type.
    """
    base = TYPE_MAPPING[field_spec.type]
    if field_spec.ref_target and field_spec.type not in (
        FieldType.REFERENCE,
        FieldType.ARRAY,
    ):
        ref = TYPE_MAPPING[FieldType.REFERENCE]
        return TypeMapping(
            ts_type=base.ts_type,
            zod=base.zod,
            input_kind=ref.input_kind,
            default_policy=ref.default_policy,
            columns=ref.columns,
        )
    return base


def column_shape(field_spec: FieldSpec, dialect: Dialect) -> tuple[str, dict[str, Any]]:
    """Resolve the Drizzle builder name and options for a field."""
    shape = mapping_for(field_spec).columns[dialect]
    fn = shape.fn
    options = dict(shape.options)
    meta = field_spec.meta
    if shape.sized_fn and meta.max_length:
        fn = shape.sized_fn
        options[shape.length_option or "length"] = meta.max_length
    elif shape.sized_fn is None and shape.length_option:
        options[shape.length_option] = meta.max_length or shape.default_length
    if shape.numeric_options:
        if meta.precision is not None:
            options["precision"] = meta.precision
        if meta.scale is not None:
            options["scale"] = meta.scale
    return fn, options


def default_literal(field_spec: FieldSpec) -> str:
    """TypeScript literal for the field's initial form value."""
    if field_spec.meta.default is not None:
        return json.dumps(field_spec.meta.default)
    return DEFAULT_LITERALS[mapping_for(field_spec).default_policy]
