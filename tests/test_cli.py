"""Tests for the command line interface."""

import json
import logging
from unittest.mock import AsyncMock, patch

import pytest
import yaml
from click.testing import CliRunner
from rich.console import Console

from portfolio_pipeline.cli.main import main
from portfolio_pipeline.core.config import VisionConfig, set_config
from portfolio_pipeline.core.logger import ROOT_LOGGER
from portfolio_pipeline.store.photo_store import PhotoStore


@pytest.fixture
def runner(monkeypatch):
    # Wide enough that messages with temp paths are not wrapped
    monkeypatch.setattr("portfolio_pipeline.cli.main.console", Console(width=250))
    return CliRunner()


@pytest.fixture
def cli_config(test_config):
    """Make the CLI pick up the test configuration."""
    set_config(test_config)
    yield test_config
    # Handlers point at the runner's streams, which are closed after each invoke
    logging.getLogger(ROOT_LOGGER).handlers.clear()


@pytest.fixture
def posts_dir(cli_config, make_image):
    posts = cli_config.paths.resolve(cli_config.paths.posts_dir)
    make_image(posts / "202401" / "a.jpg")
    make_image(posts / "202401" / "b.jpg")
    make_image(posts / "202402" / "c.jpg")
    return posts


@pytest.fixture
def categories(cli_config):
    path = cli_config.paths.categories_yaml
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump({"categories": [
        {"id": "birds", "name": "Birds", "slug": "birds"},
        {"id": "landscapes", "name": "Landscapes", "slug": "landscapes"},
    ]}))
    return path


class TestBatchCommand:
    """Test the batch command."""

    def test_dry_run(self, runner, posts_dir):
        result = runner.invoke(main, ["batch", "--dry-run", "--batch-size", "2"])

        assert result.exit_code == 0
        assert "DRY RUN" in result.output
        assert "202401/a.jpg" in result.output
        assert "202402/c.jpg" not in result.output

    @pytest.mark.parametrize("size", ["0", "-3"])
    def test_batch_size_must_be_positive(self, runner, posts_dir, size):
        result = runner.invoke(main, ["batch", "--dry-run", "--batch-size", size])

        assert result.exit_code == 2
        assert "--batch-size" in result.output
        assert "DRY RUN" not in result.output

    def test_status(self, runner, cli_config, posts_dir):
        """Test the status table shows progress and the cost estimate."""
        progress = cli_config.paths.progress_file
        progress.parent.mkdir(parents=True, exist_ok=True)
        progress.write_text(json.dumps({
            "processed": ["202401/a.jpg"],
            "successful": 0,
            "failed": 1,
            "errors": [{"path": "202401/a.jpg", "error": "Empty response"}],
            "cost": 0.5,
        }))

        result = runner.invoke(main, ["batch", "--status"])

        assert result.exit_code == 0
        assert "Batch Processing Status" in result.output
        assert "$1.00" in result.output
        assert "Empty response" in result.output

    def test_run(self, runner, cli_config, posts_dir, mock_vision_client, make_response):
        client = mock_vision_client(return_value=make_response({
            "category": "birds", "species": "Wren", "title": "Wren", "description": "A wren.",
        }))

        with patch("portfolio_pipeline.pipeline.batch.VisionClient", return_value=client):
            result = runner.invoke(main, ["batch"])

        assert result.exit_code == 0, result.output
        assert "Successful: 3" in result.output
        store = PhotoStore(cli_config.paths.photos_yaml).load()
        assert [r.slug for r in store.records] == ["wren", "wren-2", "wren-3"]

    def test_all_processed(self, runner, cli_config, posts_dir):
        progress = cli_config.paths.progress_file
        progress.parent.mkdir(parents=True, exist_ok=True)
        progress.write_text(json.dumps({"processed": ["202401/a.jpg", "202401/b.jpg", "202402/c.jpg"]}))

        result = runner.invoke(main, ["batch"])

        assert result.exit_code == 0
        assert "All photos have been processed!" in result.output

    def test_missing_api_key_exits_nonzero(self, runner, cli_config, posts_dir):
        """Test the hosted provider without a key stops with exit code 1."""
        cli_config.vision = VisionConfig(provider="openai", api_key=None)

        result = runner.invoke(main, ["batch"])

        assert result.exit_code == 1
        assert "OPENAI_API_KEY" in result.output

    def test_missing_posts_dir(self, runner, cli_config):
        result = runner.invoke(main, ["batch", "--dry-run"])

        assert result.exit_code == 1
        assert "not found" in result.output


class TestStagedCommands:
    """Test the staged import commands."""

    def test_import(self, runner, cli_config, temp_dir, make_image, mock_vision_client, make_response):
        export = temp_dir / "export"
        make_image(export / "media" / "fern.jpg")

        def respond(image_path, prompt, *args, **kwargs):
            if "provide classification data" in prompt:
                return make_response({"category": "flora-macro", "species": None})
            return make_response({"title": "Fern Curl", "description": "A fern unrolls."})

        client = mock_vision_client(side_effect=respond)
        with patch("portfolio_pipeline.pipeline.stages.VisionClient", return_value=client):
            result = runner.invoke(main, ["import", str(export)])

        assert result.exit_code == 0, result.output
        assert "flora-001" in result.output
        assert PhotoStore(cli_config.paths.photos_yaml).load().records[0].slug == "fern-curl"

    def test_classify_without_manifest(self, runner, cli_config):
        result = runner.invoke(main, ["classify"])

        assert result.exit_code == 1
        assert "portfolio process" in result.output

    def test_process_empty_export(self, runner, cli_config, temp_dir):
        empty = temp_dir / "empty"
        empty.mkdir()

        result = runner.invoke(main, ["process", str(empty)])

        assert result.exit_code == 0
        assert "No new photos" in result.output


class TestPhotosCommands:
    """Test manual photo management commands."""

    def test_add(self, runner, cli_config, categories):
        result = runner.invoke(main, [
            "photos", "add",
            "--category", "birds",
            "--title", "Snowy Egret",
            "--cloudinary-id", "photo-gallery/birds/egret",
            "--filters", "",
            "--date", "2023-05-01",
            "--not-for-print",
        ])

        assert result.exit_code == 0, result.output
        record = PhotoStore(cli_config.paths.photos_yaml).load().records[0]
        assert record.id == "bird-001"
        assert record.slug == "snowy-egret"
        assert record.date_taken == "2023-05-01"
        assert record.available_for_print is False

    def test_add_unknown_category(self, runner, cli_config, categories):
        result = runner.invoke(main, [
            "photos", "add", "--category", "insects", "--title", "Moth", "--cloudinary-id", "photo-gallery/x/moth",
        ])

        assert result.exit_code == 1
        assert "Unknown category" in result.output
        assert not cli_config.paths.photos_yaml.exists()

    def test_add_dry_run(self, runner, cli_config, categories):
        result = runner.invoke(main, [
            "photos", "add", "--category", "birds", "--title", "Wren",
            "--cloudinary-id", "photo-gallery/birds/wren", "--dry-run",
        ])

        assert result.exit_code == 0
        assert "Dry run" in result.output
        assert not cli_config.paths.photos_yaml.exists()

    def test_remove(self, runner, cli_config, categories):
        runner.invoke(main, [
            "photos", "add", "--category", "birds", "--title", "Wren", "--cloudinary-id", "photo-gallery/birds/wren",
        ])

        result = runner.invoke(main, [
            "photos", "remove", "https://res.cloudinary.com/demo/image/upload/photo-gallery/birds/wren",
        ])

        assert result.exit_code == 0, result.output
        assert "Removing 1 photo(s)" in result.output
        assert len(PhotoStore(cli_config.paths.photos_yaml).load()) == 0

    def test_remove_no_match(self, runner, cli_config):
        result = runner.invoke(main, ["photos", "remove", "nothing"])

        assert result.exit_code == 0
        assert "No matching photos" in result.output


class TestSearchIndexCommand:

    def test_search_index(self, runner, cli_config, categories, temp_dir):
        runner.invoke(main, [
            "photos", "add", "--category", "birds", "--title", "Wren", "--cloudinary-id", "photo-gallery/birds/wren",
        ])
        output = temp_dir / "index.json"

        result = runner.invoke(main, ["search-index", "--output", str(output)])

        assert result.exit_code == 0, result.output
        entries = json.loads(output.read_text())
        assert entries[0]["categoryName"] == "Birds"
        assert entries[0]["slug"] == "wren"

    def test_search_index_default_path(self, runner, cli_config):
        result = runner.invoke(main, ["search-index"])

        assert result.exit_code == 0
        assert json.loads((cli_config.paths.project_dir / "public" / "search-index.json").read_text()) == []


class TestStatusCommand:

    def test_status(self, runner, cli_config):
        """Test the status table reports provider reachability and pending stages."""
        cli_config.paths.manifest_file.parent.mkdir(parents=True, exist_ok=True)
        cli_config.paths.manifest_file.write_text("[]")

        with patch("portfolio_pipeline.cli.main.VisionClient") as mock_client:
            mock_client.return_value.check_connection = AsyncMock(return_value=True)
            result = runner.invoke(main, ["status"])

        assert result.exit_code == 0, result.output
        assert "✓ Connected" in result.output
        assert "0 photos" in result.output
        assert "portfolio classify" in result.output

    def test_status_missing_key(self, runner, cli_config):
        cli_config.vision = VisionConfig(provider="openai", api_key=None)

        result = runner.invoke(main, ["status"])

        assert result.exit_code == 0
        assert "Missing API key" in result.output
