"""Jinja2 template rendering for generated artifacts.

Provides the TemplateRenderer class which loads ``.j2`` templates from the
``crudforge/emitter/templates/`` directory and renders them with a
``CollectionIR`` in context.  Rendering is pure: the same IR always yields
byte-identical text, which is what makes fingerprint comparison meaningful.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, StrictUndefined, select_autoescape

from crudforge.naming import camel_case, kebab_case, pascal_case, snake_case
from crudforge.schema.models import TargetKind


# ---------------------------------------------------------------------------
# Template directory discovery
# ---------------------------------------------------------------------------

_DEFAULT_TEMPLATE_DIR = Path(__file__).parent / "templates"

# (target kind, variant) -> template path.  Repeater variants share one
# template per component.
TEMPLATES: dict[tuple[TargetKind, str], str] = {
    (TargetKind.STORAGE_SCHEMA, "schema"): "storage/schema.ts.j2",
    (TargetKind.STORAGE_SCHEMA, "seed"): "storage/seed.ts.j2",
    (TargetKind.DATA_ACCESS, "queries"): "data_access/queries.ts.j2",
    (TargetKind.DATA_ACCESS, "composable"): "data_access/composable.ts.j2",
    (TargetKind.SERVER_HANDLER, "get"): "handlers/get.ts.j2",
    (TargetKind.SERVER_HANDLER, "post"): "handlers/post.ts.j2",
    (TargetKind.SERVER_HANDLER, "patch"): "handlers/patch.ts.j2",
    (TargetKind.SERVER_HANDLER, "delete"): "handlers/delete.ts.j2",
    (TargetKind.SERVER_HANDLER, "reorder"): "handlers/reorder.ts.j2",
    (TargetKind.SERVER_HANDLER, "move"): "handlers/move.ts.j2",
    (TargetKind.UI_LIST, "list"): "ui/List.vue.j2",
    (TargetKind.UI_FORM, "form"): "ui/_Form.vue.j2",
    (TargetKind.UI_TABLE, "table"): "ui/Table.vue.j2",
    (TargetKind.TYPE_DECL, "types"): "types/types.ts.j2",
}


def template_for(kind: TargetKind, variant: str) -> str:
    """Return the template path for one artifact variant."""
    if variant.startswith("repeater:"):
        component = variant.rsplit(":", 1)[1]
        return f"ui/repeater/{component}.vue.j2"
    return TEMPLATES[(kind, variant)]


# ---------------------------------------------------------------------------
# TemplateRenderer
# ---------------------------------------------------------------------------


class TemplateRenderer:
    """Renders Jinja2 templates for generated artifacts.

    Undefined template variables raise instead of rendering as empty text so
    a template/IR mismatch fails loudly rather than emitting broken code.
    """

    def __init__(self, template_dir: str | Path | None = None) -> None:
        if template_dir is None:
            template_dir = _DEFAULT_TEMPLATE_DIR
        self.template_dir = Path(template_dir)
        self.env = Environment(
            loader=FileSystemLoader(str(self.template_dir)),
            autoescape=select_autoescape([]),
            keep_trailing_newline=True,
            trim_blocks=True,
            lstrip_blocks=True,
            undefined=StrictUndefined,
        )
        # Register custom filters
        self.env.filters["pascal_case"] = pascal_case
        self.env.filters["camel_case"] = camel_case
        self.env.filters["snake_case"] = snake_case
        self.env.filters["kebab_case"] = kebab_case
        self.env.filters["ts_string"] = ts_string
        self.env.filters["ts_object"] = _ts_object_filter

    def render(self, template_path: str, context: dict[str, Any]) -> str:
        """Render a single template with the provided context.

        Args:
            template_path: Path relative to the template directory (e.g.
                ``"storage/schema.ts.j2"``).
            context: Dictionary of variables available inside the template.

        Returns:
            The rendered template content as a string.
        """
        template = self.env.get_template(template_path)
        return template.render(**context)

    def render_artifact(
        self,
        kind: TargetKind,
        variant: str,
        context: dict[str, Any],
    ) -> str:
        """Render the template that produces *variant* of *kind*."""
        return self.render(template_for(kind, variant), context)


# ---------------------------------------------------------------------------
# Jinja2 custom filters
# ---------------------------------------------------------------------------

def ts_string(value: Any) -> str:
    """Render *value* as a single-quoted TypeScript string literal."""
    text = str(value).replace("\\", "\\\\").replace("'", "\\'")
    return f"'{text}'"


def _ts_object_filter(value: dict[str, Any]) -> str:
    """Render a flat dict as a TypeScript object literal.

    ``{"mode": "boolean"}`` -> ``{ mode: 'boolean' }``.  Keys keep their
    insertion order.
    """
    if not value:
        return "{}"
    parts = []
    for key, item in value.items():
        if isinstance(item, bool):
            literal = "true" if item else "false"
        elif isinstance(item, (int, float)):
            literal = json.dumps(item)
        elif item is None:
            literal = "null"
        else:
            literal = ts_string(item)
        parts.append(f"{key}: {literal}")
    return "{ " + ", ".join(parts) + " }"
