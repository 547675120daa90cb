"""Tests for the rollback engine.

Covers:
- Generate-then-rollback round trip (files, directories, manifest entry)
- Hand-edited artifacts are kept and pin the manifest entry; force removes them
- Already-missing artifacts count as handled
- keepFiles and dry-run, which classifies exactly like a real run
- Reverting registration lines in shared files
- Bulk rollback by layer and by project config, including mismatches
- Interactive rollback with an injected selector, and selection parsing
"""

from __future__ import annotations

import pytest

from crudforge.errors import ManifestMismatch, ModifiedSinceGeneration
from crudforge.registry import EditOutcome
from crudforge.rollback import ArtifactOutcome, EntryOutcome, parse_selection
from crudforge.schema.loader import build_collection, load_project_config
from crudforge.schema.models import Dialect


pytestmark = pytest.mark.unit

COLLECTION_DIR = "layers/shop/collections/products"
FORM_PATH = f"{COLLECTION_DIR}/app/components/_Form.vue"
TYPES_PATH = f"{COLLECTION_DIR}/types.ts"
LAYER_CONFIG = "layers/shop/nuxt.config.ts"
SHARED_FILES = ["server/db/schema.ts", "app.config.ts", LAYER_CONFIG]


@pytest.fixture
async def generated(engine, products_spec, flags):
    """shop/products generated under postgres."""
    return await engine.generate(products_spec, flags, Dialect.POSTGRES)


@pytest.fixture
async def generated_shop(engine, flags, products_fields):
    """Three collections generated into the shop layer."""
    specs = [
        build_collection("shop", "categories", {"name": {"type": "string"}}, sortable=True),
        build_collection("shop", "products", products_fields),
        build_collection("shop", "orders", {"total": {"type": "decimal"}}),
    ]
    return await engine.generate_many(specs, flags, Dialect.POSTGRES)


# ---------------------------------------------------------------------------
# Single
# ---------------------------------------------------------------------------


class TestRollbackSingle:
    @pytest.mark.asyncio
    async def test_round_trip(self, generated, rollback_engine, project_root, manifest):
        result = await rollback_engine.rollback_single("shop", "products")

        assert result.count(ArtifactOutcome.DELETED) == 11
        assert result.entry is EntryOutcome.REMOVED
        assert manifest.get("shop", "products") is None
        assert not (project_root / COLLECTION_DIR).exists()
        assert (project_root / "layers/shop/collections").is_dir()
        assert COLLECTION_DIR in result.pruned

    @pytest.mark.asyncio
    async def test_manifest_file_reflects_removal(self, generated, rollback_engine, settings):
        await rollback_engine.rollback_single("shop", "products")

        text = settings.manifest_path.read_text(encoding="utf-8")
        assert '"shop/products"' not in text

    @pytest.mark.asyncio
    async def test_unknown_pair_raises(self, rollback_engine):
        with pytest.raises(ManifestMismatch, match="shop/ghosts"):
            await rollback_engine.rollback_single("shop", "ghosts")

    @pytest.mark.asyncio
    async def test_modified_file_is_kept_and_entry_retained(
        self, generated, rollback_engine, project_root, manifest
    ):
        (project_root / FORM_PATH).write_text("<template>mine</template>\n", encoding="utf-8")

        result = await rollback_engine.rollback_single("shop", "products")

        assert result.modified == [FORM_PATH]
        assert result.count(ArtifactOutcome.DELETED) == 10
        assert result.entry is EntryOutcome.RETAINED
        assert (project_root / FORM_PATH).read_text(encoding="utf-8") == "<template>mine</template>\n"
        assert manifest.get("shop", "products") is not None
        with pytest.raises(ModifiedSinceGeneration):
            result.ensure_unmodified()

    @pytest.mark.asyncio
    async def test_retry_after_modification_with_force(
        self, generated, rollback_engine, project_root, manifest
    ):
        (project_root / FORM_PATH).write_text("<template>mine</template>\n", encoding="utf-8")
        await rollback_engine.rollback_single("shop", "products")

        result = await rollback_engine.rollback_single("shop", "products", force=True)

        assert result.count(ArtifactOutcome.DELETED) == 1
        assert result.count(ArtifactOutcome.MISSING) == 10
        assert result.entry is EntryOutcome.REMOVED
        assert manifest.get("shop", "products") is None
        assert not (project_root / COLLECTION_DIR).exists()

    @pytest.mark.asyncio
    async def test_missing_file_counts_as_handled(self, generated, rollback_engine, project_root):
        (project_root / TYPES_PATH).unlink()

        result = await rollback_engine.rollback_single("shop", "products")

        outcomes = {a.path: a.outcome for a in result.artifacts}
        assert outcomes[TYPES_PATH] is ArtifactOutcome.MISSING
        assert result.entry is EntryOutcome.REMOVED

    @pytest.mark.asyncio
    async def test_keep_files(self, generated, rollback_engine, project_root, manifest):
        result = await rollback_engine.rollback_single("shop", "products", keep_files=True)

        assert result.count(ArtifactOutcome.KEPT) == 11
        assert result.entry is EntryOutcome.REMOVED
        assert manifest.get("shop", "products") is None
        assert (project_root / TYPES_PATH).is_file()

    @pytest.mark.asyncio
    async def test_dry_run_changes_nothing(self, generated, rollback_engine, project_root, settings, manifest):
        manifest_before = settings.manifest_path.read_bytes()

        result = await rollback_engine.rollback_single("shop", "products", dry_run=True)

        assert result.dry_run
        assert result.count(ArtifactOutcome.DELETED) == 11
        assert result.entry is EntryOutcome.REMOVED
        assert result.pruned == []
        assert settings.manifest_path.read_bytes() == manifest_before
        assert all((project_root / p.artifact.path).is_file() for p in generated.artifacts)

    @pytest.mark.asyncio
    async def test_dry_run_reports_what_a_real_run_does(self, generated, rollback_engine, project_root):
        (project_root / FORM_PATH).write_text("<template>mine</template>\n", encoding="utf-8")
        (project_root / TYPES_PATH).unlink()

        preview = await rollback_engine.rollback_single("shop", "products", dry_run=True)
        real = await rollback_engine.rollback_single("shop", "products")

        assert preview.artifacts == real.artifacts
        assert preview.entry is real.entry is EntryOutcome.RETAINED
        assert preview.modified == real.modified == [FORM_PATH]

    @pytest.mark.asyncio
    async def test_paths_come_from_manifest_not_schema(
        self, engine, rollback_engine, products_fields, flags, project_root
    ):
        seeded = build_collection("shop", "products", products_fields, seed=3)
        await engine.generate(seeded, flags, Dialect.POSTGRES)

        result = await rollback_engine.rollback_single("shop", "products")

        assert f"{COLLECTION_DIR}/server/database/seed.ts" in [a.path for a in result.artifacts]
        assert not (project_root / COLLECTION_DIR).exists()


# ---------------------------------------------------------------------------
# Shared-file registrations
# ---------------------------------------------------------------------------


class TestRollbackEdits:
    @pytest.mark.asyncio
    async def test_created_shared_files_are_deleted(self, generated, rollback_engine, project_root):
        result = await rollback_engine.rollback_single("shop", "products")

        assert len(result.edits) == 4
        assert all(e.outcome is EditOutcome.REVERTED for e in result.edits)
        assert result.removed_files == SHARED_FILES
        for path in SHARED_FILES:
            assert not (project_root / path).exists()
        assert not (project_root / "server").exists()

    @pytest.mark.asyncio
    async def test_existing_shared_file_is_restored(
        self, engine, products_spec, flags, rollback_engine, project_root
    ):
        original = "export default defineAppConfig({\n  theme: 'dark',\n  crudforgeCollections: {\n  },\n})\n"
        (project_root / "app.config.ts").write_text(original, encoding="utf-8")
        await engine.generate(products_spec, flags, Dialect.POSTGRES)
        assert (project_root / "app.config.ts").read_text(encoding="utf-8") != original

        result = await rollback_engine.rollback_single("shop", "products")

        assert (project_root / "app.config.ts").read_text(encoding="utf-8") == original
        assert "app.config.ts" not in result.removed_files

    @pytest.mark.asyncio
    async def test_keep_files_still_unregisters(self, generated, rollback_engine, project_root):
        result = await rollback_engine.rollback_single("shop", "products", keep_files=True)

        assert result.removed_files == SHARED_FILES
        assert not (project_root / LAYER_CONFIG).exists()
        assert (project_root / TYPES_PATH).is_file()

    @pytest.mark.asyncio
    async def test_dry_run_reverts_nothing(self, generated, rollback_engine, project_root):
        before = (project_root / LAYER_CONFIG).read_text(encoding="utf-8")

        preview = await rollback_engine.rollback_single("shop", "products", dry_run=True)

        assert preview.removed_files == SHARED_FILES
        assert all(e.outcome is EditOutcome.REVERTED for e in preview.edits)
        assert (project_root / LAYER_CONFIG).read_text(encoding="utf-8") == before
        assert (project_root / "server/db/schema.ts").is_file()

    @pytest.mark.asyncio
    async def test_retained_entry_keeps_its_lines(self, generated, rollback_engine, project_root, manifest):
        (project_root / FORM_PATH).write_text("<template>mine</template>\n", encoding="utf-8")

        result = await rollback_engine.rollback_single("shop", "products")

        assert result.edits == []
        assert "'./collections/products'" in (project_root / LAYER_CONFIG).read_text(encoding="utf-8")
        assert len(manifest.get("shop", "products").edits) == 4

    @pytest.mark.asyncio
    async def test_line_removed_by_hand_is_missing(self, generated, rollback_engine, project_root):
        layer_config = project_root / LAYER_CONFIG
        layer_config.write_text(
            layer_config.read_text(encoding="utf-8").replace("    './collections/products',\n", ""),
            encoding="utf-8",
        )

        result = await rollback_engine.rollback_single("shop", "products")

        outcomes = {e.path: e.outcome for e in result.edits}
        assert outcomes[LAYER_CONFIG] is EditOutcome.MISSING
        assert LAYER_CONFIG not in result.removed_files
        assert layer_config.is_file()

    @pytest.mark.asyncio
    async def test_creator_hands_shared_files_to_remaining_entries(
        self, generated_shop, rollback_engine, project_root, manifest
    ):
        first = await rollback_engine.rollback_single("shop", "categories")

        assert LAYER_CONFIG not in first.removed_files
        assert (project_root / LAYER_CONFIG).is_file()
        owners = [
            entry.key
            for entry in manifest.list()
            if any(e.path == LAYER_CONFIG and e.created_file for e in entry.edits)
        ]
        assert owners == ["shop/orders"]

        await rollback_engine.rollback_single("shop", "orders")
        last = await rollback_engine.rollback_single("shop", "products")

        assert last.removed_files == SHARED_FILES
        for path in SHARED_FILES:
            assert not (project_root / path).exists()


# ---------------------------------------------------------------------------
# Bulk
# ---------------------------------------------------------------------------


class TestRollbackBulk:
    @pytest.mark.asyncio
    async def test_layer_dry_run(self, generated_shop, rollback_engine, manifest):
        bulk = await rollback_engine.rollback_bulk(layer="shop", dry_run=True)

        assert [(r.layer, r.collection) for r in bulk.results] == [
            ("shop", "categories"),
            ("shop", "orders"),
            ("shop", "products"),
        ]
        for result in bulk.results:
            assert all(a.outcome is ArtifactOutcome.DELETED for a in result.artifacts)
        assert bulk.mismatches == []
        assert len(manifest.list("shop")) == 3

    @pytest.mark.asyncio
    async def test_layer(self, generated_shop, rollback_engine, manifest, project_root):
        bulk = await rollback_engine.rollback_bulk(layer="shop")

        assert bulk.removed == 3
        assert manifest.list() == []
        assert list((project_root / "layers/shop/collections").iterdir()) == []

    @pytest.mark.asyncio
    async def test_empty_layer_is_a_mismatch(self, rollback_engine):
        bulk = await rollback_engine.rollback_bulk(layer="blog")
        assert bulk.results == []
        assert bulk.mismatches == ["blog/*"]

    @pytest.mark.asyncio
    async def test_config_with_untracked_pair(
        self, engine, rollback_engine, products_spec, flags, shop_config_file, manifest
    ):
        await engine.generate(products_spec, flags, Dialect.POSTGRES)
        config = load_project_config(shop_config_file)

        bulk = await rollback_engine.rollback_bulk(config=config)

        assert [r.collection for r in bulk.results] == ["products"]
        assert bulk.mismatches == ["shop/categories", "shop/orders"]
        assert manifest.get("shop", "products") is None

    @pytest.mark.asyncio
    async def test_needs_exactly_one_selector(self, rollback_engine, shop_config_file):
        with pytest.raises(ValueError):
            await rollback_engine.rollback_bulk()
        with pytest.raises(ValueError):
            await rollback_engine.rollback_bulk(layer="shop", config=load_project_config(shop_config_file))


# ---------------------------------------------------------------------------
# Interactive
# ---------------------------------------------------------------------------


class TestRollbackInteractive:
    @pytest.mark.asyncio
    async def test_selected_entries_only(self, generated_shop, rollback_engine, manifest):
        seen = []

        def select(entries):
            seen.extend(e.key for e in entries)
            return [entries[0]]

        bulk = await rollback_engine.rollback_interactive(select=select)

        assert seen == ["shop/categories", "shop/orders", "shop/products"]
        assert [r.collection for r in bulk.results] == ["categories"]
        assert [e.collection for e in manifest.list()] == ["orders", "products"]

    @pytest.mark.asyncio
    async def test_nothing_tracked(self, rollback_engine):
        def select(entries):
            raise AssertionError("selector must not be called")

        bulk = await rollback_engine.rollback_interactive(select=select)
        assert bulk.results == []

    @pytest.mark.asyncio
    async def test_cancelled_selection(self, generated_shop, rollback_engine, manifest):
        bulk = await rollback_engine.rollback_interactive(select=lambda entries: [])
        assert bulk.results == []
        assert len(manifest.list()) == 3


class TestParseSelection:
    def test_single_and_ranges(self):
        assert parse_selection("1, 3-4", 5) == [0, 2, 3]

    def test_all(self):
        assert parse_selection("all", 3) == [0, 1, 2]

    def test_duplicates_collapse(self):
        assert parse_selection("2,1-2", 3) == [1, 0]

    @pytest.mark.parametrize("answer", ["0", "4", "x", "2-9"])
    def test_rejects_bad_input(self, answer):
        with pytest.raises(ValueError):
            parse_selection(answer, 3)
