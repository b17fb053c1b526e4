"""Pytest configuration and fixtures."""

import json
import shutil
import tempfile
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest
from PIL import Image

from portfolio_pipeline.analyzer.llm_client import VisionClient, VisionResponse
from portfolio_pipeline.core.config import BatchConfig, CDNConfig, Config, PathsConfig, VisionConfig, reset_config
from portfolio_pipeline.models.photo import TokenUsage


@pytest.fixture
def temp_dir():
    """Create temporary directory for tests."""
    temp_dir = Path(tempfile.mkdtemp())
    yield temp_dir
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture(autouse=True)
def clean_global_config():
    """Keep the module-level configuration from leaking between tests."""
    reset_config()
    yield
    reset_config()


@pytest.fixture
def test_config(temp_dir):
    """Create test configuration rooted in the temporary directory."""
    return Config(
        log_dir=temp_dir / "logs",
        paths=PathsConfig(project_dir=temp_dir),
        vision=VisionConfig(
            provider="ollama",
            ollama_url="http://ollama.test",
            ollama_model="test-vision",
            request_delay=0,
        ),
        cdn=CDNConfig(cloud_name=None, api_key=None, api_secret=None),
        batch=BatchConfig(delay=0),
    )


@pytest.fixture
def make_image():
    """Factory writing a small real JPEG/PNG so Pillow can read it."""
    def _make(path: Path, size=(64, 48), color=(40, 120, 200)) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        image_format = "PNG" if path.suffix.lower() == ".png" else "JPEG"
        Image.new("RGB", size, color).save(path, format=image_format)
        return path
    return _make


@pytest.fixture
def make_response():
    """Wrap a dict (as JSON) or raw text as a model response."""
    def _make(payload, usage=None, model="test-vision") -> VisionResponse:
        text = payload if isinstance(payload, str) else json.dumps(payload)
        return VisionResponse(text=text, model=model, usage=usage or TokenUsage())
    return _make


@pytest.fixture
def mock_vision_client(test_config):
    """Factory for a VisionClient double whose analyze_image is an AsyncMock."""
    def _make(side_effect=None, return_value=None, vision_config=None):
        client = MagicMock(spec=VisionClient)
        client.config = vision_config or test_config.vision
        client.model = client.config.model
        client.analyze_image = AsyncMock(side_effect=side_effect, return_value=return_value)
        return client
    return _make


@pytest.fixture
def sample_posts():
    """Instagram posts_1.json content in the shape of a real export."""
    return [
        {
            "creation_timestamp": 1686839400,
            "title": "Morning at the marsh #birds #heron",
            "media": [
                {
                    "uri": "media/posts/202306/heron.jpg",
                    "creation_timestamp": 1686839400,
                    "title": "Great blue heron hunting at dawn #birds #wildlifephotography",
                }
            ],
            "location": {"name": "Point Reyes"},
        },
        {
            "taken_at": 1700000000000,
            "media": [
                {"uri": "media/posts/202311/ridge.jpg"},
                {"media_uri": "media/posts/202311/valley.jpg", "caption": "Valley floor"},
            ],
            "location_name": "Yosemite",
        },
    ]


# Markers for different test categories
def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )
    config.addinivalue_line(
        "markers", "llm: mark test as requiring a vision model connection"
    )
