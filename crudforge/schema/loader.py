"""Schema and project-config loading with exhaustive validation.

The loader turns raw schema documents (field name -> definition maps) and
project config files into normalised ``CollectionSpec`` objects.  It never
stops at the first problem: every issue found is collected and raised
together in a single ``SchemaValidationError``.  Nothing here writes to
disk.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any, Iterable

from pydantic import ValidationError

from crudforge.errors import SchemaValidationError, ValidationIssue
from crudforge.schema.models import (
    DIALECT_ALIASES,
    TRANSLATIONS_FIELD,
    CollectionDefinition,
    CollectionSpec,
    FieldSpec,
    FieldType,
    HierarchyConfig,
    ProjectConfig,
    SeedConfig,
    reserved_field_names,
)
from crudforge.utils import load_document

logger = logging.getLogger(__name__)

FIELD_NAME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9_]*$")
COLLECTION_NAME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9_-]*$")


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_schema_document(path: str | Path) -> Any:
    """Read a field-schema document, reporting unreadable files as issues."""
    try:
        return load_document(path)
    except FileNotFoundError:
        raise SchemaValidationError(
            [ValidationIssue(str(path), "schema file not found")]
        ) from None
    except ValueError as exc:
        raise SchemaValidationError([ValidationIssue(str(path), str(exc))]) from None


def build_collection(
    layer: str,
    name: str,
    raw_fields: Any,
    *,
    hierarchy: HierarchyConfig | bool | dict[str, Any] | None = None,
    sortable: bool = False,
    seed: SeedConfig | bool | int | dict[str, Any] | None = None,
    use_metadata: bool = True,
    known_collections: Iterable[str] = (),
    external: Iterable[str] = (),
) -> CollectionSpec:
    """Validate one collection and return its normalised spec.

    Args:
        layer: Target layer name.
        name: Collection name.
        raw_fields: Field map (``{name: {type, meta?, refTarget?}}``) or a
            list of ``{name, type, ...}`` dicts.
        hierarchy: ``True``, a dict of hierarchy options, or a model.
        sortable: Whether the collection gets an ``order`` column.
        seed: ``True``, a record count, a dict, or a model.
        use_metadata: Inject audit fields (``createdAt`` ... ``updatedBy``).
        known_collections: Collection names a ``refTarget`` may point at.
        external: Collection names declared as owned outside the project.

    Raises:
        SchemaValidationError: Listing every problem found.
    """
    issues: list[ValidationIssue] = []
    spec = _build_collection(
        layer,
        name,
        raw_fields,
        hierarchy=hierarchy,
        sortable=sortable,
        seed=seed,
        use_metadata=use_metadata,
        known_collections=set(known_collections) | {name},
        external=set(external),
        issues=issues,
    )
    if issues or spec is None:
        raise SchemaValidationError(issues)
    return spec


def load_project_config(path: str | Path) -> ProjectConfig:
    """Parse a project config file (structure only, no cross-checks)."""
    config_path = Path(path)
    try:
        raw = load_document(config_path)
    except FileNotFoundError:
        raise SchemaValidationError(
            [ValidationIssue(str(config_path), "config file not found")]
        ) from None
    except ValueError as exc:
        raise SchemaValidationError([ValidationIssue(str(config_path), str(exc))]) from None

    if not isinstance(raw, dict):
        raise SchemaValidationError(
            [ValidationIssue(str(config_path), "config must be a mapping")]
        )

    raw = dict(raw)
    dialect = raw.get("dialect")
    if isinstance(dialect, str):
        raw["dialect"] = DIALECT_ALIASES.get(dialect, dialect)
    raw["collections"] = [
        _normalise_definition(c) if isinstance(c, dict) else c
        for c in raw.get("collections") or []
    ]
    try:
        return ProjectConfig.model_validate(raw)
    except ValidationError as exc:
        raise SchemaValidationError(_issues_from_pydantic(exc, "config")) from None


def resolve_project(
    config: ProjectConfig,
    base_dir: str | Path = ".",
) -> list[CollectionSpec]:
    """Validate a project config and expand it into collection specs.

    One spec is produced per ``(layer, collection)`` pair named by the
    targets, in target order.  ``fieldsFile`` paths resolve against
    *base_dir* (normally the config file's directory).

    Raises:
        SchemaValidationError: Listing every problem in the whole config.
    """
    issues: list[ValidationIssue] = []
    base = Path(base_dir)

    # -- Collection definitions -------------------------------------------
    defined: dict[str, CollectionDefinition] = {}
    for definition in config.collections:
        loc = f"collections.{definition.name}"
        if not COLLECTION_NAME_RE.match(definition.name):
            issues.append(ValidationIssue(loc, "collection name must be an identifier"))
        if definition.name in defined:
            issues.append(ValidationIssue(loc, "collection is defined more than once"))
            continue
        defined[definition.name] = definition
        if definition.fields is None and definition.fields_file is None:
            issues.append(ValidationIssue(loc, "needs either 'fields' or 'fieldsFile'"))
        elif definition.fields is not None and definition.fields_file is not None:
            issues.append(ValidationIssue(loc, "'fields' and 'fieldsFile' are mutually exclusive"))

    # -- Targets ------------------------------------------------------------
    if not config.targets:
        issues.append(ValidationIssue("targets", "no targets specified"))

    seen_pairs: set[tuple[str, str]] = set()
    used: set[str] = set()
    for index, target in enumerate(config.targets):
        loc = f"targets[{index}]"
        if not target.layer or not COLLECTION_NAME_RE.match(target.layer):
            issues.append(ValidationIssue(loc, f"invalid layer name {target.layer!r}"))
        if not target.collections:
            issues.append(ValidationIssue(loc, f"layer {target.layer!r} has no collections"))
        for name in target.collections:
            used.add(name)
            if name not in defined:
                issues.append(
                    ValidationIssue(
                        f"{loc}.collections",
                        f"collection {name!r} in layer {target.layer!r} is not defined "
                        f"in collections",
                    )
                )
            if (target.layer, name) in seen_pairs:
                issues.append(
                    ValidationIssue(
                        f"{loc}.collections",
                        f"collection {name!r} is listed more than once in layer "
                        f"{target.layer!r}",
                    )
                )
            seen_pairs.add((target.layer, name))

    for name in defined:
        if name not in used:
            logger.warning("Collection %r is defined but not used in any target", name)

    # -- Field schemas --------------------------------------------------------
    raw_fields: dict[str, Any] = {}
    for name, definition in defined.items():
        if definition.fields is not None:
            raw_fields[name] = definition.fields
        elif definition.fields_file is not None:
            schema_path = base / definition.fields_file
            try:
                raw_fields[name] = load_document(schema_path)
            except FileNotFoundError:
                issues.append(
                    ValidationIssue(
                        f"collections.{name}.fieldsFile",
                        f"schema file not found: {definition.fields_file}",
                    )
                )
            except ValueError as exc:
                issues.append(ValidationIssue(f"collections.{name}.fieldsFile", str(exc)))

    known = set(defined) | set(config.external)
    specs: list[CollectionSpec] = []
    for layer, name in config.pairs():
        definition = defined.get(name)
        if definition is None or name not in raw_fields:
            continue
        spec = _build_collection(
            layer,
            name,
            raw_fields[name],
            hierarchy=definition.hierarchy,
            sortable=definition.sortable,
            seed=definition.seed,
            use_metadata=config.flags.use_metadata,
            known_collections=known,
            external=set(config.external),
            issues=issues,
        )
        if spec is not None:
            specs.append(spec)

    if issues:
        raise SchemaValidationError(_dedupe(issues))
    return specs


# ---------------------------------------------------------------------------
# Internals
# ---------------------------------------------------------------------------


def _build_collection(
    layer: str,
    name: str,
    raw_fields: Any,
    *,
    hierarchy: HierarchyConfig | bool | dict[str, Any] | None,
    sortable: bool,
    seed: SeedConfig | bool | int | dict[str, Any] | None,
    use_metadata: bool,
    known_collections: set[str],
    external: set[str],
    issues: list[ValidationIssue],
) -> CollectionSpec | None:
    base_loc = f"{layer}.{name}"
    start = len(issues)

    if not COLLECTION_NAME_RE.match(layer):
        issues.append(ValidationIssue(base_loc, f"invalid layer name {layer!r}"))
    if not COLLECTION_NAME_RE.match(name):
        issues.append(ValidationIssue(base_loc, f"invalid collection name {name!r}"))

    hierarchy_cfg = _coerce_hierarchy(hierarchy, f"{base_loc}.hierarchy", issues)
    seed_cfg = _coerce_seed(seed, f"{base_loc}.seed", issues)
    reserved = set(
        reserved_field_names(use_metadata=use_metadata, hierarchy=hierarchy_cfg, sortable=sortable)
    )

    fields: list[FieldSpec] = []
    seen: set[str] = set()
    for field_name, definition in _iter_field_definitions(raw_fields, base_loc, issues):
        loc = f"{base_loc}.fields.{field_name}"
        if field_name in seen:
            issues.append(ValidationIssue(loc, "duplicate field name"))
            continue
        seen.add(field_name)

        if not FIELD_NAME_RE.match(field_name):
            issues.append(
                ValidationIssue(
                    loc, "name must start with a letter and contain only letters, digits or '_'"
                )
            )
        if field_name in reserved:
            issues.append(
                ValidationIssue(
                    loc, f"{field_name!r} collides with an engine-injected system field"
                )
            )

        field = _parse_field(field_name, definition, loc, issues)
        if field is None:
            continue
        _check_field_semantics(field, loc, known_collections, external, issues)
        fields.append(field)

    if any(f.meta.translatable for f in fields) and TRANSLATIONS_FIELD in seen:
        issues.append(
            ValidationIssue(
                f"{base_loc}.fields.{TRANSLATIONS_FIELD}",
                f"{TRANSLATIONS_FIELD!r} collides with the column injected for translatable fields",
            )
        )

    if len(issues) > start:
        return None
    return CollectionSpec(
        name=name,
        layer=layer,
        fields=fields,
        hierarchy=hierarchy_cfg,
        sortable=sortable,
        seed=seed_cfg,
        use_metadata=use_metadata,
    )


def _iter_field_definitions(
    raw_fields: Any, loc: str, issues: list[ValidationIssue]
) -> list[tuple[str, Any]]:
    if isinstance(raw_fields, dict):
        return list(raw_fields.items())
    if isinstance(raw_fields, list):
        pairs: list[tuple[str, Any]] = []
        for index, item in enumerate(raw_fields):
            if not isinstance(item, dict) or not isinstance(item.get("name"), str):
                issues.append(ValidationIssue(f"{loc}.fields[{index}]", "field needs a 'name'"))
                continue
            body = {k: v for k, v in item.items() if k != "name"}
            pairs.append((item["name"], body))
        return pairs
    issues.append(ValidationIssue(f"{loc}.fields", "schema must map field names to definitions"))
    return []


def _parse_field(
    name: str, definition: Any, loc: str, issues: list[ValidationIssue]
) -> FieldSpec | None:
    if not isinstance(definition, dict):
        issues.append(ValidationIssue(loc, "definition must be an object"))
        return None
    if "type" not in definition:
        issues.append(ValidationIssue(loc, "missing required 'type'"))
        return None
    raw_type = definition.get("type")
    if raw_type not in {t.value for t in FieldType}:
        valid = ", ".join(t.value for t in FieldType)
        issues.append(ValidationIssue(f"{loc}.type", f"unknown type {raw_type!r} (valid: {valid})"))
        return None
    meta = definition.get("meta")
    if meta is not None and not isinstance(meta, dict):
        issues.append(ValidationIssue(f"{loc}.meta", "'meta' must be an object"))
        return None
    try:
        return FieldSpec.model_validate({**definition, "name": name, "meta": meta or {}})
    except ValidationError as exc:
        issues.extend(_issues_from_pydantic(exc, loc))
        return None


def _check_field_semantics(
    field: FieldSpec,
    loc: str,
    known_collections: set[str],
    external: set[str],
    issues: list[ValidationIssue],
) -> None:
    meta = field.meta
    if field.type is not FieldType.DECIMAL:
        for attr in ("precision", "scale"):
            if getattr(meta, attr) is not None:
                issues.append(
                    ValidationIssue(f"{loc}.meta.{attr}", f"'{attr}' is only valid on decimal fields")
                )
    elif meta.precision is not None and meta.scale is not None and meta.scale > meta.precision:
        issues.append(ValidationIssue(f"{loc}.meta.scale", "scale cannot exceed precision"))

    if field.type is FieldType.REFERENCE and not field.ref_target:
        issues.append(ValidationIssue(loc, "reference fields need a 'refTarget'"))
    if field.ref_target:
        resolvable = (
            field.is_external_reference
            or field.ref_target in known_collections
            or field.ref_target in external
        )
        if not resolvable:
            issues.append(
                ValidationIssue(
                    f"{loc}.refTarget",
                    f"unknown collection {field.ref_target!r}; define it in the config "
                    f"or declare it external (refScope: external)",
                )
            )

    if field.children is not None and field.type is not FieldType.REPEATER:
        issues.append(ValidationIssue(f"{loc}.children", "'children' is only valid on repeater fields"))
    elif field.children:
        for child_name, definition in field.children.items():
            child_loc = f"{loc}.children.{child_name}"
            if not FIELD_NAME_RE.match(child_name):
                issues.append(ValidationIssue(child_loc, "child name must be an identifier"))
            child = _parse_field(child_name, definition, child_loc, issues)
            if child is None:
                continue
            if child.type is FieldType.REPEATER:
                issues.append(ValidationIssue(f"{child_loc}.type", "repeaters cannot be nested"))
                continue
            _check_field_semantics(child, child_loc, known_collections, external, issues)


def _coerce_hierarchy(
    value: HierarchyConfig | bool | dict[str, Any] | None,
    loc: str,
    issues: list[ValidationIssue],
) -> HierarchyConfig:
    try:
        if isinstance(value, HierarchyConfig):
            return value
        if value is True:
            return HierarchyConfig(enabled=True)
        if isinstance(value, dict):
            return HierarchyConfig.model_validate({"enabled": True, **value})
    except ValidationError as exc:
        issues.extend(_issues_from_pydantic(exc, loc))
    return HierarchyConfig()


def _coerce_seed(
    value: SeedConfig | bool | int | dict[str, Any] | None,
    loc: str,
    issues: list[ValidationIssue],
) -> SeedConfig:
    try:
        if isinstance(value, SeedConfig):
            return value
        if value is True:
            return SeedConfig(enabled=True)
        if isinstance(value, int) and not isinstance(value, bool):
            return SeedConfig(enabled=True, count=value)
        if isinstance(value, dict):
            return SeedConfig.model_validate({"enabled": True, **value})
    except ValidationError as exc:
        issues.extend(_issues_from_pydantic(exc, loc))
    return SeedConfig()


def _normalise_definition(raw: dict[str, Any]) -> dict[str, Any]:
    """Accept ``hierarchy: true`` / ``seed: 10`` shorthands in config files."""
    out = dict(raw)
    hierarchy = out.get("hierarchy")
    if hierarchy is True:
        out["hierarchy"] = {"enabled": True}
    elif hierarchy is False:
        out["hierarchy"] = None
    elif isinstance(hierarchy, dict):
        out["hierarchy"] = {"enabled": True, **hierarchy}
    seed = out.get("seed")
    if seed is True:
        out["seed"] = {"enabled": True}
    elif seed is False:
        out["seed"] = None
    elif isinstance(seed, int):
        out["seed"] = {"enabled": True, "count": seed}
    elif isinstance(seed, dict):
        out["seed"] = {"enabled": True, **seed}
    return out


def _issues_from_pydantic(exc: ValidationError, prefix: str) -> list[ValidationIssue]:
    issues = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err.get("loc", ()))
        location = f"{prefix}.{loc}" if loc else prefix
        issues.append(ValidationIssue(location, err.get("msg", "invalid value")))
    return issues


def _dedupe(issues: list[ValidationIssue]) -> list[ValidationIssue]:
    seen: set[ValidationIssue] = set()
    unique = []
    for issue in issues:
        if issue not in seen:
            seen.add(issue)
            unique.append(issue)
    return unique
