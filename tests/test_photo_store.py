"""Tests for the YAML photo store."""

import pytest
import yaml

from portfolio_pipeline.core.exceptions import StoreError
from portfolio_pipeline.models.photo import PhotoRecord
from portfolio_pipeline.store.photo_store import PhotoStore, dump_photos, load_photo_records

EXISTING_STORE = """\
photos:
  - id: bird-002
    filename: heron.jpg
    slug: heron
    category: birds
    filters: []
    title: Heron
    description: "A heron: wading."
    date_taken: 2023-06-15
    available_for_print: false
    featured: true
"""


class TestPhotoStore:
    """Test PhotoStore."""

    @pytest.fixture
    def store_path(self, temp_dir):
        path = temp_dir / "config" / "photos.yaml"
        path.parent.mkdir(parents=True)
        path.write_text(EXISTING_STORE)
        return path

    def test_load_existing(self, store_path):
        """Test hand-written YAML is read into records."""
        store = PhotoStore(store_path).load()

        assert len(store) == 1
        record = store.records[0]
        assert record.id == "bird-002"
        assert record.date_taken == "2023-06-15"
        assert record.available_for_print is False
        assert store.slugs == {"heron"}
        assert store.has_filename("heron.jpg")

    def test_missing_file_is_empty_store(self, temp_dir):
        store = PhotoStore(temp_dir / "photos.yaml").load()

        assert len(store) == 0

    def test_save_preserves_unknown_fields_and_order(self, store_path):
        """Test a rewrite keeps existing records and their extra keys."""
        store = PhotoStore(store_path).load()
        store.add(PhotoRecord(id="bird-003", filename="egret.jpg", slug="egret", category="birds", title="Egret"))

        store.save()

        data = yaml.safe_load(store_path.read_text())
        assert [p["id"] for p in data["photos"]] == ["bird-002", "bird-003"]
        assert data["photos"][0]["featured"] is True
        assert data["photos"][0]["description"] == "A heron: wading."
        assert "species" not in data["photos"][1]

    def test_string_values_are_quoted(self):
        text = dump_photos([PhotoRecord(id="bird-001", slug="yes", category="birds", title="On: Off", width=10)])

        assert 'id: "bird-001"' in text
        assert 'slug: "yes"' in text
        assert 'title: "On: Off"' in text
        assert "width: 10" in text
        assert "available_for_print: true" in text

    def test_duplicate_slug_rejected(self, store_path):
        store = PhotoStore(store_path).load()

        with pytest.raises(StoreError, match="heron"):
            store.add(PhotoRecord(id="bird-009", slug="heron", category="birds"))

    def test_remove(self, store_path):
        store = PhotoStore(store_path).load()

        removed = store.remove(lambda r: r.slug == "heron")

        assert [r.id for r in removed] == ["bird-002"]
        assert len(store) == 0
        assert not store.has_filename("heron.jpg")

    def test_save_requires_load(self, temp_dir):
        """Test an unloaded store cannot clobber the file."""
        with pytest.raises(StoreError):
            PhotoStore(temp_dir / "photos.yaml").save()

    def test_non_mapping_top_level(self, temp_dir):
        path = temp_dir / "photos.yaml"
        path.write_text("- just\n- a list\n")

        with pytest.raises(StoreError, match="mapping"):
            load_photo_records(path)

    def test_invalid_yaml(self, temp_dir):
        path = temp_dir / "photos.yaml"
        path.write_text("photos: [unclosed\n")

        with pytest.raises(StoreError, match="Could not parse"):
            load_photo_records(path)

    def test_invalid_record(self, temp_dir):
        path = temp_dir / "photos.yaml"
        path.write_text("photos:\n  - title: no id or slug\n")

        with pytest.raises(StoreError, match="Invalid photo entry"):
            load_photo_records(path)
