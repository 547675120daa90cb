"""Naming and path resolution for generated collections.

Everything here is a pure function of ``(layer, collection)`` and, for
paths, the target kind and artifact variant.  The manifest stores paths for
auditability, but consistency between generation and rollback comes from
recomputing them here.  A single pluralisation table serves every emitter so
a table name and a UI prefix never disagree.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache

from crudforge.schema.models import TargetKind


# ---------------------------------------------------------------------------
# Pluralisation
# ---------------------------------------------------------------------------

IRREGULAR_PLURALS: dict[str, str] = {
    "person": "people",
    "child": "children",
    "man": "men",
    "woman": "women",
    "mouse": "mice",
    "goose": "geese",
    "tooth": "teeth",
    "foot": "feet",
    "ox": "oxen",
    "leaf": "leaves",
    "life": "lives",
    "knife": "knives",
    "wife": "wives",
    "half": "halves",
    "shelf": "shelves",
    "analysis": "analyses",
    "crisis": "crises",
    "thesis": "theses",
    "criterion": "criteria",
    "datum": "data",
    "medium": "media",
    "index": "indexes",
    "quiz": "quizzes",
}

IRREGULAR_SINGULARS: dict[str, str] = {plural: single for single, plural in IRREGULAR_PLURALS.items()}

UNCOUNTABLE: frozenset[str] = frozenset({
    "equipment",
    "information",
    "money",
    "species",
    "series",
    "fish",
    "sheep",
    "news",
    "metadata",
    "feedback",
    "staff",
})

_VOWELS = "aeiou"
_SEGMENT_RE = re.compile(r"([A-Z]?[a-z0-9]+|[A-Z]+(?![a-z]))$")


def _split_last_segment(word: str) -> tuple[str, str]:
    """Split ``emailTemplates`` into ``("email", "Templates")``."""
    for sep in ("-", "_"):
        if sep in word:
            head, _, tail = word.rpartition(sep)
            return head + sep, tail
    match = _SEGMENT_RE.search(word)
    if match is None:
        return "", word
    return word[: match.start()], match.group(0)


def _match_case(source: str, replacement: str) -> str:
    if source[:1].isupper():
        return replacement[:1].upper() + replacement[1:]
    return replacement


def _pluralize_word(word: str) -> str:
    lower = word.lower()
    if lower in UNCOUNTABLE or lower in IRREGULAR_SINGULARS:
        return word
    if lower in IRREGULAR_PLURALS:
        return _match_case(word, IRREGULAR_PLURALS[lower])
    if lower.endswith("y") and len(lower) > 1 and lower[-2] not in _VOWELS:
        return word[:-1] + "ies"
    if lower.endswith(("s", "sh", "ch", "x", "z")):
        return word + "es"
    return word + "s"


def _singularize_word(word: str) -> str:
    lower = word.lower()
    if lower in UNCOUNTABLE or lower in IRREGULAR_PLURALS:
        return word
    if lower in IRREGULAR_SINGULARS:
        return _match_case(word, IRREGULAR_SINGULARS[lower])
    if lower.endswith("ies") and len(lower) > 3:
        return word[:-3] + "y"
    if lower.endswith(("sses", "shes", "ches", "xes", "zes", "uses")):
        return word[:-2]
    if lower.endswith(("ss", "us", "is")):
        return word
    if lower.endswith("s") and len(lower) > 1:
        return word[:-1]
    return word


def pluralize(word: str) -> str:
    """Pluralise the last segment of a (possibly compound) identifier."""
    head, tail = _split_last_segment(word)
    return head + _pluralize_word(tail)


def singularize(word: str) -> str:
    """Singularise the last segment of a (possibly compound) identifier."""
    head, tail = _split_last_segment(word)
    return head + _singularize_word(tail)


# ---------------------------------------------------------------------------
# Case conversion
# ---------------------------------------------------------------------------

def pascal_case(value: str) -> str:
    """``email-templates`` / ``email_templates`` / ``emailTemplates`` -> ``EmailTemplates``."""
    parts = re.split(r"[-_\s]+", value)
    return "".join(part[:1].upper() + part[1:] for part in parts if part)


def camel_case(value: str) -> str:
    pascal = pascal_case(value)
    return pascal[:1].lower() + pascal[1:]


def snake_case(value: str) -> str:
    """``EmailTemplates`` / ``email-templates`` -> ``email_templates``."""
    s1 = re.sub(r"(.)([A-Z][a-z]+)", r"\1_\2", value)
    s2 = re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", s1)
    return re.sub(r"[-\s_]+", "_", s2).lower()


def kebab_case(value: str) -> str:
    return snake_case(value).replace("_", "-")


# ---------------------------------------------------------------------------
# Collection names
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CollectionNames:
    """Every identifier derived from a ``(layer, collection)`` pair."""

    layer: str
    collection: str
    singular: str
    plural: str
    pascal: str
    pascal_plural: str
    camel: str
    camel_plural: str
    layer_camel: str
    layer_pascal: str

    @property
    def directory(self) -> str:
        """Collection directory name (lower-cased plural)."""
        return self.plural.lower()

    @property
    def base_dir(self) -> str:
        return f"layers/{self.layer}/collections/{self.directory}"

    @property
    def table_name(self) -> str:
        """Storage table identifier, e.g. ``shop_products``."""
        return snake_case(f"{self.layer}_{self.plural}")

    @property
    def ui_prefix(self) -> str:
        """Pluralised Pascal prefix for UI and composables, e.g. ``ShopProducts``."""
        return f"{self.layer_pascal}{self.pascal_plural}"

    @property
    def type_name(self) -> str:
        """Row type name, e.g. ``ShopProduct``."""
        return f"{self.layer_pascal}{self.pascal}"

    @property
    def export_name(self) -> str:
        """Schema export, e.g. ``shopProducts``."""
        return f"{self.layer_camel}{self.pascal_plural}"

    @property
    def api_segment(self) -> str:
        return f"{self.layer}-{kebab_case(self.plural)}"

    @property
    def id_param(self) -> str:
        return f"{self.camel}Id"

    @property
    def display_singular(self) -> str:
        return snake_case(self.singular).replace("_", " ").capitalize()

    @property
    def display_plural(self) -> str:
        return snake_case(self.plural).replace("_", " ").capitalize()


@lru_cache(maxsize=None)
def resolve_names(layer: str, collection: str) -> CollectionNames:
    """Derive all names for *collection* in *layer*.

    The collection may be given in singular or plural form; both resolve to
    the same names.
    """
    singular = singularize(collection)
    plural = pluralize(singular)
    pascal = pascal_case(singular)
    pascal_plural = pascal_case(plural)
    return CollectionNames(
        layer=layer,
        collection=collection,
        singular=singular,
        plural=plural,
        pascal=pascal,
        pascal_plural=pascal_plural,
        camel=pascal[:1].lower() + pascal[1:],
        camel_plural=pascal_plural[:1].lower() + pascal_plural[1:],
        layer_camel=camel_case(layer),
        layer_pascal=pascal_case(layer),
    )


# ---------------------------------------------------------------------------
# Artifact paths
# ---------------------------------------------------------------------------

DEFAULT_VARIANT: dict[TargetKind, str] = {
    TargetKind.STORAGE_SCHEMA: "schema",
    TargetKind.DATA_ACCESS: "queries",
    TargetKind.SERVER_HANDLER: "get",
    TargetKind.UI_LIST: "list",
    TargetKind.UI_FORM: "form",
    TargetKind.UI_TABLE: "table",
    TargetKind.TYPE_DECL: "types",
}

_API = "server/api/teams/[id]/{api}"

_PATHS: dict[tuple[TargetKind, str], str] = {
    (TargetKind.STORAGE_SCHEMA, "schema"): "server/database/schema.ts",
    (TargetKind.STORAGE_SCHEMA, "seed"): "server/database/seed.ts",
    (TargetKind.DATA_ACCESS, "queries"): "server/database/queries.ts",
    (TargetKind.DATA_ACCESS, "composable"): "app/composables/use{prefix}.ts",
    (TargetKind.SERVER_HANDLER, "get"): _API + "/index.get.ts",
    (TargetKind.SERVER_HANDLER, "post"): _API + "/index.post.ts",
    (TargetKind.SERVER_HANDLER, "patch"): _API + "/[{id_param}].patch.ts",
    (TargetKind.SERVER_HANDLER, "delete"): _API + "/[{id_param}].delete.ts",
    (TargetKind.SERVER_HANDLER, "reorder"): _API + "/reorder.patch.ts",
    (TargetKind.SERVER_HANDLER, "move"): _API + "/[{id_param}]/move.patch.ts",
    (TargetKind.UI_LIST, "list"): "app/components/List.vue",
    (TargetKind.UI_FORM, "form"): "app/components/_Form.vue",
    (TargetKind.UI_TABLE, "table"): "app/components/Table.vue",
    (TargetKind.TYPE_DECL, "types"): "types.ts",
}

REPEATER_COMPONENTS: tuple[str, ...] = ("Input", "Select", "CardMini")


def artifact_path(
    layer: str,
    collection: str,
    kind: TargetKind,
    variant: str | None = None,
) -> str:
    """Return the project-relative POSIX path of one artifact.

    Args:
        layer: Layer name.
        collection: Collection name.
        kind: Target kind the artifact belongs to.
        variant: Which file of that kind (``"post"``, ``"seed"``, ...).
            Repeater item components use ``"repeater:<field>:<Component>"``.

    Raises:
        KeyError: If *variant* is not a known file of *kind*.
    """
    names = resolve_names(layer, collection)
    variant = variant or DEFAULT_VARIANT[kind]

    if variant.startswith("repeater:"):
        if kind is not TargetKind.UI_FORM:
            raise KeyError(f"{kind.value} has no variant {variant!r}")
        _, field_name, component = variant.split(":", 2)
        if component not in REPEATER_COMPONENTS:
            raise KeyError(f"unknown repeater component {component!r}")
        folder = pascal_case(singularize(field_name))
        relative = f"app/components/{folder}/{component}.vue"
    else:
        try:
            pattern = _PATHS[(kind, variant)]
        except KeyError:
            raise KeyError(f"{kind.value} has no variant {variant!r}") from None
        relative = pattern.format(
            api=names.api_segment,
            prefix=names.ui_prefix,
            id_param=names.id_param,
        )
    return f"{names.base_dir}/{relative}"
