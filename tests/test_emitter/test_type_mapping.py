"""Tests for the field-type mapping table (crudforge.emitter.type_mapping).

Covers:
- Every FieldType has a mapping for every dialect
- Dialect-specific column shapes (varchar sizing, numeric precision/scale)
- UI input kinds and default literals
- Fields carrying a refTarget without being references
"""

from __future__ import annotations

import pytest

from crudforge.emitter.type_mapping import (
    TYPE_MAPPING,
    InputKind,
    column_shape,
    default_literal,
    mapping_for,
)
from crudforge.schema.models import Dialect, FieldSpec, FieldType


pytestmark = pytest.mark.unit


def _field(type_: str, **kwargs) -> FieldSpec:
    return FieldSpec.model_validate({"name": "f", "type": type_, **kwargs})


class TestCoverage:
    @pytest.mark.parametrize("field_type", list(FieldType))
    def test_every_type_mapped(self, field_type):
        mapping = TYPE_MAPPING[field_type]
        assert set(mapping.columns) == set(Dialect)
        assert mapping.ts_type
        assert mapping.zod.startswith("z.")


class TestColumnShape:
    def test_string_postgres_plain(self):
        assert column_shape(_field("string"), Dialect.POSTGRES) == ("text", {})

    def test_string_postgres_sized(self):
        fn, options = column_shape(_field("string", meta={"maxLength": 80}), Dialect.POSTGRES)
        assert fn == "varchar"
        assert options == {"length": 80}

    def test_string_mysql_default_length(self):
        assert column_shape(_field("string"), Dialect.MYSQL) == ("varchar", {"length": 255})

    def test_string_mysql_sized(self):
        assert column_shape(_field("string", meta={"maxLength": 40}), Dialect.MYSQL) == (
            "varchar",
            {"length": 40},
        )

    def test_string_sqlite_ignores_length(self):
        assert column_shape(_field("string", meta={"maxLength": 40}), Dialect.SQLITE) == ("text", {})

    def test_decimal_postgres_precision_scale(self):
        fn, options = column_shape(
            _field("decimal", meta={"precision": 10, "scale": 2}), Dialect.POSTGRES
        )
        assert fn == "numeric"
        assert options == {"precision": 10, "scale": 2}

    def test_decimal_mysql(self):
        fn, options = column_shape(_field("decimal", meta={"precision": 6}), Dialect.MYSQL)
        assert fn == "decimal"
        assert options == {"precision": 6}

    def test_decimal_sqlite_is_real(self):
        assert column_shape(_field("decimal", meta={"precision": 10, "scale": 2}), Dialect.SQLITE) == (
            "real",
            {},
        )

    def test_boolean_sqlite_mode(self):
        assert column_shape(_field("boolean"), Dialect.SQLITE) == ("integer", {"mode": "boolean"})

    def test_json_per_dialect(self):
        assert column_shape(_field("json"), Dialect.SQLITE)[0] == "jsonColumn"
        assert column_shape(_field("json"), Dialect.POSTGRES)[0] == "jsonb"
        assert column_shape(_field("json"), Dialect.MYSQL)[0] == "json"

    def test_shape_options_not_shared(self):
        _, first = column_shape(_field("boolean"), Dialect.SQLITE)
        first["mode"] = "changed"
        _, second = column_shape(_field("boolean"), Dialect.SQLITE)
        assert second == {"mode": "boolean"}


class TestMappingFor:
    def test_reference(self):
        mapping = mapping_for(_field("reference", refTarget="categories"))
        assert mapping.input_kind is InputKind.REFERENCE

    def test_string_with_ref_target_behaves_like_reference(self):
        mapping = mapping_for(_field("string", refTarget="categories"))
        assert mapping.input_kind is InputKind.REFERENCE
        assert mapping.ts_type == "string"

    def test_array_with_ref_target_keeps_tags(self):
        mapping = mapping_for(_field("array", refTarget="tags"))
        assert mapping.input_kind is InputKind.TAGS

    @pytest.mark.parametrize(
        "field_type, kind",
        [
            ("text", InputKind.TEXTAREA),
            ("boolean", InputKind.SWITCH),
            ("integer", InputKind.NUMBER),
            ("datetime", InputKind.DATETIME),
            ("repeater", InputKind.REPEATER),
        ],
    )
    def test_input_kinds(self, field_type, kind):
        assert mapping_for(_field(field_type)).input_kind is kind


class TestDefaultLiteral:
    @pytest.mark.parametrize(
        "field_type, literal",
        [
            ("string", "''"),
            ("integer", "0"),
            ("boolean", "false"),
            ("date", "null"),
            ("json", "{}"),
            ("array", "[]"),
        ],
    )
    def test_policy(self, field_type, literal):
        assert default_literal(_field(field_type)) == literal

    def test_explicit_default(self):
        assert default_literal(_field("string", meta={"default": "draft"})) == '"draft"'
        assert default_literal(_field("boolean", meta={"default": True})) == "true"
