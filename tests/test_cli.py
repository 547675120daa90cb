"""Tests for the crudforge command-line interface.

Covers:
- generate <layer> <collection> and generate config <path>
- Exit codes for conflicts, dry-runs, retained entries and mismatches
- CLI flags overriding config flags (and the logged override)
- Dialect resolution order
- init (field schema by default, project config with --config) and list
"""

from __future__ import annotations

import json
import logging

import pytest

from crudforge.cli import (
    build_parser,
    cli_overrides,
    main,
    merge_flags,
    parse_dialect,
    resolve_dialect,
)
from crudforge.config import Settings
from crudforge.errors import CrudforgeError
from crudforge.manifest import ManifestStore
from crudforge.schema.loader import build_collection, load_project_config, load_schema_document
from crudforge.schema.models import Dialect, GenerationFlags, TargetKind


pytestmark = pytest.mark.unit

SCHEMA_PATH = "layers/shop/collections/products/server/database/schema.ts"


@pytest.fixture(autouse=True)
def _keep_pytest_logging(monkeypatch):
    """Leave pytest's log capture handlers in place."""
    monkeypatch.setattr("crudforge.cli.configure_logging", lambda verbose=False: None)


def _run(project_root, *argv: str) -> int:
    return main(["--project", str(project_root), *argv])


def _tracked(project_root) -> list[str]:
    store = ManifestStore(Settings(project_root=project_root).manifest_path)
    return [e.key for e in store.list()]


# ---------------------------------------------------------------------------
# Parser and flag helpers
# ---------------------------------------------------------------------------


class TestParser:
    def test_generate_defaults_leave_flags_unset(self):
        args = build_parser().parse_args(["generate", "shop", "products", "--schema", "p.json"])
        assert cli_overrides(args) == {}

    def test_generate_flags(self):
        args = build_parser().parse_args([
            "generate", "shop", "products", "--schema", "p.json",
            "--force", "--no-db", "--skip-target", "ui-table", "--seed",
        ])
        assert cli_overrides(args) == {
            "force": True,
            "no_db": True,
            "disabled_targets": [TargetKind.UI_TABLE],
        }
        assert args.seed == 25

    def test_rollback_bulk_needs_a_scope(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["rollback-bulk"])

    def test_rollback_bulk_scopes_are_exclusive(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["rollback-bulk", "--layer", "shop", "--config", "c.yaml"])


class TestFlagResolution:
    def test_merge_logs_overrides(self, caplog):
        base = GenerationFlags(auto_relations=True)
        with caplog.at_level(logging.INFO, logger="crudforge"):
            merged = merge_flags(base, {"auto_relations": False, "dry_run": True})

        assert merged.auto_relations is False
        assert merged.dry_run is True
        assert "CLI flag overrides config: auto_relations True -> False" in caplog.text

    def test_merge_without_change_is_silent(self, caplog):
        with caplog.at_level(logging.INFO, logger="crudforge"):
            merge_flags(GenerationFlags(force=True), {"force": True})
        assert "overrides" not in caplog.text

    @pytest.mark.parametrize(
        "value, expected",
        [("pg", Dialect.POSTGRES), ("postgresql", Dialect.POSTGRES), ("SQLite", Dialect.SQLITE), ("mysql", Dialect.MYSQL)],
    )
    def test_parse_dialect(self, value, expected):
        assert parse_dialect(value) is expected

    def test_parse_dialect_rejects_unknown(self):
        with pytest.raises(CrudforgeError, match="Unknown dialect"):
            parse_dialect("oracle")

    def test_dialect_precedence(self, settings, shop_config_file):
        config = load_project_config(shop_config_file)
        assert resolve_dialect(None, None, settings) is settings.default_dialect
        assert resolve_dialect(None, config, settings) is Dialect.POSTGRES
        assert resolve_dialect("sqlite", config, settings) is Dialect.SQLITE


# ---------------------------------------------------------------------------
# generate
# ---------------------------------------------------------------------------


class TestGenerateCommand:
    def test_single_collection(self, project_root, products_schema_file):
        code = _run(project_root, "generate", "shop", "products", "--schema", str(products_schema_file))

        assert code == 0
        schema = (project_root / SCHEMA_PATH).read_text(encoding="utf-8")
        assert "pgTable('shop_products'" in schema
        assert _tracked(project_root) == ["shop/products"]

    def test_dialect_flag(self, project_root, products_schema_file):
        code = _run(
            project_root, "generate", "shop", "products",
            "--schema", str(products_schema_file), "--dialect", "sqlite",
        )
        assert code == 0
        assert "sqliteTable(" in (project_root / SCHEMA_PATH).read_text(encoding="utf-8")

    def test_missing_schema_option(self, project_root, capsys):
        assert _run(project_root, "generate", "shop", "products") == 1
        assert "needs a field schema" in capsys.readouterr().out

    def test_invalid_schema_lists_every_issue(self, project_root, tmp_path, capsys):
        bad = tmp_path / "bad.json"
        bad.write_text(
            json.dumps({"id": {"type": "string"}, "size": {"type": "huge"}}),
            encoding="utf-8",
        )

        assert _run(project_root, "generate", "shop", "products", "--schema", str(bad)) == 1
        out = capsys.readouterr().out
        assert "engine-injected" in out
        assert "'huge'" in out
        assert not (project_root / "layers").exists()

    def test_unknown_reference(self, project_root, tmp_path, capsys):
        schema = tmp_path / "orders.json"
        schema.write_text(
            json.dumps({"productId": {"type": "reference", "refTarget": "products"}}),
            encoding="utf-8",
        )
        assert _run(project_root, "generate", "shop", "orders", "--schema", str(schema)) == 1
        assert "'products'" in capsys.readouterr().out

    def test_reference_to_generated_collection(self, project_root, products_schema_file, tmp_path):
        schema = tmp_path / "orders.json"
        schema.write_text(
            json.dumps({"productId": {"type": "reference", "refTarget": "products"}}),
            encoding="utf-8",
        )
        assert _run(project_root, "generate", "shop", "products", "--schema", str(products_schema_file)) == 0
        assert _run(project_root, "generate", "shop", "orders", "--schema", str(schema)) == 0

    def test_external_reference(self, project_root, tmp_path):
        schema = tmp_path / "orders.json"
        schema.write_text(
            json.dumps({"customerId": {"type": "reference", "refTarget": "customers"}}),
            encoding="utf-8",
        )
        code = _run(
            project_root, "generate", "shop", "orders",
            "--schema", str(schema), "--external", "customers",
        )
        assert code == 0

    def test_conflict_exit_code(self, project_root, products_schema_file):
        target = project_root / SCHEMA_PATH
        target.parent.mkdir(parents=True)
        target.write_text("// mine\n", encoding="utf-8")

        code = _run(project_root, "generate", "shop", "products", "--schema", str(products_schema_file))

        assert code == 1
        assert target.read_text(encoding="utf-8") == "// mine\n"
        assert _tracked(project_root) == []

    def test_dry_run_with_conflict_exits_nonzero(self, project_root, products_schema_file):
        target = project_root / SCHEMA_PATH
        target.parent.mkdir(parents=True)
        target.write_text("// mine\n", encoding="utf-8")

        code = _run(
            project_root, "generate", "shop", "products",
            "--schema", str(products_schema_file), "--dry-run",
        )
        assert code == 1

    def test_dry_run_writes_nothing(self, project_root, products_schema_file):
        code = _run(
            project_root, "generate", "shop", "products",
            "--schema", str(products_schema_file), "--dry-run",
        )
        assert code == 0
        assert list(project_root.iterdir()) == []

    def test_config(self, project_root, shop_config_file):
        code = _run(project_root, "generate", "config", str(shop_config_file))

        assert code == 0
        assert _tracked(project_root) == ["shop/categories", "shop/orders", "shop/products"]
        schema = (project_root / "layers/shop/collections/orders/server/database/schema.ts").read_text(
            encoding="utf-8"
        )
        assert "numeric('total', { precision: 12, scale: 2 })" in schema
        assert "//   product: one(shopProducts, {" in schema

    def test_config_flags_overridden_by_cli(self, project_root, shop_config_file, caplog):
        with caplog.at_level(logging.INFO, logger="crudforge"):
            code = _run(project_root, "generate", "config", str(shop_config_file), "--dry-run", "--dialect", "mysql")

        assert code == 0
        assert "dialect 'postgres' -> 'mysql'" in caplog.text
        assert _tracked(project_root) == []


# ---------------------------------------------------------------------------
# rollback commands
# ---------------------------------------------------------------------------


class TestRollbackCommands:
    def test_rollback_round_trip(self, project_root, products_schema_file):
        _run(project_root, "generate", "shop", "products", "--schema", str(products_schema_file))

        assert _run(project_root, "rollback", "shop", "products") == 0
        assert _tracked(project_root) == []
        assert not (project_root / "layers/shop/collections/products").exists()

    def test_rollback_untracked(self, project_root, capsys):
        assert _run(project_root, "rollback", "shop", "products") == 1
        assert "No manifest entry for shop/products" in capsys.readouterr().out

    def test_rollback_modified_exit_code(self, project_root, products_schema_file, capsys):
        _run(project_root, "generate", "shop", "products", "--schema", str(products_schema_file))
        (project_root / SCHEMA_PATH).write_text("// mine\n", encoding="utf-8")
        capsys.readouterr()

        assert _run(project_root, "rollback", "shop", "products") == 1
        out = capsys.readouterr().out
        assert "modified" in out
        assert "--force" in out
        assert _tracked(project_root) == ["shop/products"]
        assert _run(project_root, "rollback", "shop", "products", "--force") == 0
        assert _tracked(project_root) == []

    def test_bulk_layer_dry_run(self, project_root, shop_config_file):
        _run(project_root, "generate", "config", str(shop_config_file))

        assert _run(project_root, "rollback-bulk", "--layer", "shop", "--dry-run") == 0
        assert len(_tracked(project_root)) == 3

    def test_bulk_config_flags_apply(self, project_root, shop_config_file):
        text = shop_config_file.read_text(encoding="utf-8")
        shop_config_file.write_text(
            text.replace("  autoRelations: true\n", "  autoRelations: true\n  keepFiles: true\n"),
            encoding="utf-8",
        )
        _run(project_root, "generate", "config", str(shop_config_file))

        assert _run(project_root, "rollback-bulk", "--config", str(shop_config_file)) == 0
        assert _tracked(project_root) == []
        assert (project_root / SCHEMA_PATH).is_file()

    def test_bulk_config_with_mismatch(self, project_root, products_schema_file, shop_config_file):
        _run(project_root, "generate", "shop", "products", "--schema", str(products_schema_file))

        assert _run(project_root, "rollback-bulk", "--config", str(shop_config_file)) == 1
        assert _tracked(project_root) == []


# ---------------------------------------------------------------------------
# init / list
# ---------------------------------------------------------------------------


class TestInitAndList:
    def test_init_writes_a_loadable_schema(self, project_root, capsys):
        assert _run(project_root, "init") == 0

        assert "field schema" in capsys.readouterr().out
        assert not (project_root / "crudforge.config.yaml").exists()
        spec = build_collection(
            "shop", "products", load_schema_document(project_root / "crudforge.schema.yaml")
        )
        assert [f.name for f in spec.fields][:2] == ["title", "price"]

    def test_init_schema_generates(self, project_root):
        _run(project_root, "init")
        code = _run(
            project_root, "generate", "shop", "products",
            "--schema", str(project_root / "crudforge.schema.yaml"),
        )
        assert code == 0
        assert _tracked(project_root) == ["shop/products"]

    def test_init_config_writes_a_loadable_config(self, project_root):
        assert _run(project_root, "init", "--config") == 0

        config = load_project_config(project_root / "crudforge.config.yaml")
        assert [c.name for c in config.collections] == ["categories", "products"]
        assert config.flags.auto_relations is True

    def test_init_refuses_to_overwrite(self, project_root, capsys):
        target = project_root / "crudforge.schema.yaml"
        target.write_text("# mine\n", encoding="utf-8")

        assert _run(project_root, "init") == 1
        assert target.read_text(encoding="utf-8") == "# mine\n"
        assert _run(project_root, "init", "--force") == 0
        assert "title:" in target.read_text(encoding="utf-8")

    def test_init_config_generates(self, project_root):
        _run(project_root, "init", "--config")
        code = _run(project_root, "generate", "config", str(project_root / "crudforge.config.yaml"))
        assert code == 0
        assert _tracked(project_root) == ["shop/categories", "shop/products"]

    def test_list(self, project_root, shop_config_file, capsys):
        _run(project_root, "generate", "config", str(shop_config_file))
        capsys.readouterr()

        assert _run(project_root, "list", "--layer", "shop") == 0
        out = capsys.readouterr().out
        for name in ("categories", "orders", "products"):
            assert name in out

    def test_list_empty(self, project_root, capsys):
        assert _run(project_root, "list") == 0
        assert "No generated collections" in capsys.readouterr().out
