"""Tests for the staged import pipeline."""

import json
from pathlib import Path
from unittest.mock import patch

import pytest

from portfolio_pipeline.core.config import VisionConfig
from portfolio_pipeline.core.exceptions import ConfigurationError
from portfolio_pipeline.pipeline.stages import StagedPipeline
from portfolio_pipeline.store.photo_store import PhotoStore

CLASSIFICATIONS = {
    "egret.jpg": {"category": "birds", "filter": None, "species": "Snowy Egret", "location": None},
    "heron.jpg": {"category": "birds", "filter": None, "species": "Great Blue Heron", "location": None},
    "ridge.jpg": {"category": "landscapes", "filter": "mountains", "species": None, "location": "Sierra Nevada"},
}
CAPTIONS = {
    "egret.jpg": {"title": "Snowy Egret", "description": "An egret stalks the shallows."},
    "heron.jpg": {"title": "Heron at Dawn", "description": "A heron hunts at first light #birds #wildlifephotography"},
    "ridge.jpg": {"title": "Granite Ridge", "description": "Late light on a granite ridge."},
}


@pytest.fixture
def routed_client(mock_vision_client, make_response):
    """A client answering classification and caption prompts per image."""
    def respond(image_path, prompt, *args, **kwargs):
        name = Path(image_path).name
        if "provide classification data" in prompt:
            return make_response(CLASSIFICATIONS[name])
        return make_response(CAPTIONS[name])

    return mock_vision_client(side_effect=respond)


@pytest.fixture
def export_dir(temp_dir, make_image, sample_posts):
    export = temp_dir / "export"
    for name in ("egret.jpg", "heron.jpg", "ridge.jpg"):
        make_image(export / "media" / "posts" / name)
    metadata = export / "content" / "posts_1.json"
    metadata.parent.mkdir(parents=True)
    metadata.write_text(json.dumps(sample_posts))
    return export


class TestStagedPipeline:
    """Test StagedPipeline."""

    @pytest.mark.asyncio
    async def test_full_import(self, test_config, export_dir, routed_client):
        """Test an export travels through all four stages into the store."""
        pipeline = StagedPipeline(test_config, client=routed_client)

        added = await pipeline.run_import(export_dir)

        assert [(r.id, r.slug) for r in added] == [
            ("bird-001", "snowy-egret"),
            ("bird-002", "heron-at-dawn"),
            ("landscape-001", "granite-ridge"),
        ]
        heron = added[1]
        assert heron.description == "A heron hunts at first light"
        assert heron.location == "Point Reyes"
        assert heron.date_taken == "2023-06-15"
        assert heron.instagram_caption == "Great blue heron hunting at dawn #birds #wildlifephotography"
        ridge = added[2]
        assert ridge.filters == ["mountains"]
        assert ridge.location == "Yosemite"

        store = PhotoStore(test_config.paths.photos_yaml).load()
        assert len(store) == 3

        photos_dir = test_config.paths.resolve(test_config.paths.photos_dir)
        assert (photos_dir / "birds" / "heron-at-dawn.jpg").exists()
        assert (photos_dir / "landscapes" / "granite-ridge.jpg").exists()
        pending = test_config.paths.resolve(test_config.paths.pending_dir)
        assert list(pending.iterdir()) == []

        assert not test_config.paths.manifest_file.exists()
        assert not test_config.paths.classified_file.exists()
        assert not test_config.paths.captioned_file.exists()

    @pytest.mark.asyncio
    async def test_pending_leftover_is_skipped(self, test_config, export_dir, routed_client):
        """Test a second import skips files still in pending and leaves the store alone."""
        pipeline = StagedPipeline(test_config, client=routed_client)
        await pipeline.run_import(export_dir)
        pending = test_config.paths.resolve(test_config.paths.pending_dir)
        pending.mkdir(parents=True, exist_ok=True)

        # A photo left in pending from an earlier run is not imported again
        (pending / "heron.jpg").write_bytes(b"leftover")
        second = StagedPipeline(test_config, client=routed_client)
        entries = second.process_export(export_dir)

        assert "heron.jpg" not in [e.filename for e in entries]
        assert len(PhotoStore(test_config.paths.photos_yaml).load()) == 3

    @pytest.mark.asyncio
    async def test_merge_rerun_after_failed_save(self, test_config, export_dir, routed_client):
        """Test rerunning merge after the store write failed publishes the moved images."""
        pipeline = StagedPipeline(test_config, client=routed_client)
        pipeline.process_export(export_dir)
        await pipeline.classify()
        await pipeline.caption()

        with patch.object(PhotoStore, "save", side_effect=OSError("disk full")):
            with pytest.raises(OSError):
                await pipeline.merge()

        added = await StagedPipeline(test_config, client=routed_client).merge()

        photos_dir = test_config.paths.resolve(test_config.paths.photos_dir)
        assert [r.filename for r in added] == ["snowy-egret.jpg", "heron-at-dawn.jpg", "granite-ridge.jpg"]
        for record in added:
            assert (photos_dir / record.category / record.filename).exists()
            assert record.width == 64
        assert sorted(p.name for p in (photos_dir / "birds").iterdir()) == ["heron-at-dawn.jpg", "snowy-egret.jpg"]
        assert len(PhotoStore(test_config.paths.photos_yaml).load()) == 3

    @pytest.mark.asyncio
    async def test_stages_write_intermediate_files(self, test_config, export_dir, routed_client):
        pipeline = StagedPipeline(test_config, client=routed_client)

        entries = pipeline.process_export(export_dir)
        classified = await pipeline.classify()
        captioned = await pipeline.caption()

        assert len(entries) == 3
        assert test_config.paths.manifest_file.exists()
        assert [c.classification.category for c in classified] == ["birds", "birds", "landscapes"]
        assert all(c.classification_error is None for c in classified)
        saved = json.loads(test_config.paths.captioned_file.read_text())
        assert saved[2]["caption"]["title"] == "Granite Ridge"
        assert saved[2]["classification"]["filter"] == "mountains"
        assert captioned[0].caption.title == "Snowy Egret"

    @pytest.mark.asyncio
    async def test_classify_failure_uses_fallback(self, test_config, export_dir, mock_vision_client, make_response):
        client = mock_vision_client(return_value=make_response("not json at all"))
        pipeline = StagedPipeline(test_config, client=client)
        pipeline.process_export(export_dir)

        classified = await pipeline.classify()

        assert all(c.classification.category == "flora-macro" for c in classified)
        assert all(c.classification_error for c in classified)

    @pytest.mark.asyncio
    async def test_missing_stage_inputs(self, test_config, routed_client):
        """Test each stage names the command to run first."""
        pipeline = StagedPipeline(test_config, client=routed_client)

        with pytest.raises(FileNotFoundError, match="portfolio process"):
            await pipeline.classify()
        with pytest.raises(FileNotFoundError, match="portfolio classify"):
            await pipeline.caption()
        with pytest.raises(FileNotFoundError, match="portfolio caption"):
            await pipeline.merge()

    @pytest.mark.asyncio
    async def test_empty_export_stops_early(self, test_config, temp_dir, routed_client):
        empty = temp_dir / "empty"
        empty.mkdir()

        added = await StagedPipeline(test_config, client=routed_client).run_import(empty)

        assert added == []
        routed_client.analyze_image.assert_not_called()
        assert not test_config.paths.manifest_file.exists()

    @pytest.mark.asyncio
    async def test_missing_credentials_copy_nothing(self, test_config, export_dir):
        """Test a hosted provider without a key fails before the pending area is touched."""
        test_config.vision = VisionConfig(provider="openai", api_key="")

        with pytest.raises(ConfigurationError):
            await StagedPipeline(test_config).run_import(export_dir)

        assert not test_config.paths.resolve(test_config.paths.pending_dir).exists()
