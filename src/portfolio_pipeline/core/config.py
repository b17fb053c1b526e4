"""Configuration management for the portfolio pipeline."""

import os
from pathlib import Path
from typing import Any, Dict, Optional

import toml
import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from portfolio_pipeline.core.exceptions import ConfigurationError


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() in ("1", "true", "yes", "on")


def _default_provider() -> str:
    if _env_flag("USE_OLLAMA"):
        return "ollama"
    if os.environ.get("OPENAI_API_KEY"):
        return "openai"
    return "ollama"


class PathsConfig(BaseModel):
    """Filesystem layout of the portfolio project.

    Relative paths are resolved against ``project_dir``.
    """

    project_dir: Path = Field(default_factory=Path.cwd, description="Portfolio project root")
    content_dir: Path = Field(default=Path("config"), description="YAML content directory")
    photos_dir: Path = Field(default=Path("public/photos"), description="Published photo directory")
    pending_dir: Path = Field(default=Path("public/photos/pending"), description="Staging area for imports")
    posts_dir: Path = Field(default=Path("photos/posts"), description="Flat YYYYMM photo tree for batch mode")
    instagram_export_dir: Path = Field(
        default=Path("photos/instagram-export"), description="Unpacked Instagram export"
    )
    work_dir: Path = Field(default=Path(".portfolio"), description="Intermediate files and progress")

    def resolve(self, path: Path) -> Path:
        path = Path(path)
        return path if path.is_absolute() else self.project_dir / path

    @property
    def photos_yaml(self) -> Path:
        return self.resolve(self.content_dir) / "photos.yaml"

    @property
    def categories_yaml(self) -> Path:
        return self.resolve(self.content_dir) / "categories.yaml"

    @property
    def site_yaml(self) -> Path:
        return self.resolve(self.content_dir) / "site.yaml"

    @property
    def manifest_file(self) -> Path:
        return self.resolve(self.work_dir) / "pending-photos.json"

    @property
    def classified_file(self) -> Path:
        return self.resolve(self.work_dir) / "classified-photos.json"

    @property
    def captioned_file(self) -> Path:
        return self.resolve(self.work_dir) / "captioned-photos.json"

    @property
    def progress_file(self) -> Path:
        return self.resolve(self.work_dir) / "batch-progress.json"


class VisionConfig(BaseModel):
    """Vision model configuration settings."""

    provider: str = Field(default_factory=_default_provider, description="ollama (local) or openai (hosted)")
    openai_url: str = Field(
        default="https://api.openai.com/v1/chat/completions", description="OpenAI-compatible chat endpoint"
    )
    openai_model: str = Field(default="gpt-4o-mini", description="Hosted vision model")
    api_key: Optional[str] = Field(
        default_factory=lambda: os.environ.get("OPENAI_API_KEY"), description="Hosted API key"
    )
    ollama_url: str = Field(
        default_factory=lambda: os.environ.get("OLLAMA_URL") or os.environ.get("OLLAMA_HOST") or "http://localhost:11434",
        description="Ollama API URL",
    )
    ollama_model: str = Field(
        default_factory=lambda: os.environ.get("OLLAMA_MODEL", "llama3.2-vision:11b"),
        description="Local vision model",
    )
    timeout: float = Field(default=120.0, gt=0, description="Request timeout in seconds")
    max_tokens: int = Field(default=300, gt=0, description="Maximum response tokens")
    temperature: float = Field(default=0.2, ge=0, description="Model temperature")
    max_image_edge: int = Field(default=1024, gt=0, description="Longest edge sent to the model")
    request_delay: float = Field(default=0.5, ge=0, description="Pause after each staged request")

    @field_validator("provider")
    @classmethod
    def _check_provider(cls, value: str) -> str:
        value = value.strip().lower()
        if value not in ("ollama", "openai"):
            raise ValueError(f"Unsupported vision provider: {value}")
        return value

    @property
    def model(self) -> str:
        return self.openai_model if self.provider == "openai" else self.ollama_model

    @property
    def is_local(self) -> bool:
        return self.provider == "ollama"


class CDNConfig(BaseModel):
    """Cloudinary upload settings."""

    cloud_name: Optional[str] = Field(default_factory=lambda: os.environ.get("CLOUDINARY_CLOUD_NAME"))
    api_key: Optional[str] = Field(default_factory=lambda: os.environ.get("CLOUDINARY_API_KEY"))
    api_secret: Optional[str] = Field(default_factory=lambda: os.environ.get("CLOUDINARY_API_SECRET"))
    folder: str = Field(default="photo-gallery", description="Root asset folder")
    api_base: str = Field(default="https://api.cloudinary.com/v1_1", description="Upload API base URL")
    delivery_base: str = Field(default="https://res.cloudinary.com", description="Delivery base URL")
    timeout: float = Field(default=120.0, gt=0)

    @property
    def enabled(self) -> bool:
        return bool(self.cloud_name and self.api_key and self.api_secret)


class BatchConfig(BaseModel):
    """Single-pass batch mode settings."""

    batch_size: int = Field(default=50, gt=0, description="Photos per invocation")
    delay: float = Field(default=0.3, ge=0, description="Pause between photos in seconds")
    relocate: str = Field(default="copy", description="copy keeps the posts tree intact, move empties it")

    @field_validator("relocate")
    @classmethod
    def _check_relocate(cls, value: str) -> str:
        if value not in ("copy", "move"):
            raise ValueError(f"relocate must be 'copy' or 'move', not {value!r}")
        return value


class Config(BaseSettings):
    """Main configuration class."""

    model_config = SettingsConfigDict(
        env_prefix="PORTFOLIO_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = Field(default="Photo Portfolio", description="Application name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Logging level")
    log_dir: Optional[Path] = Field(default=None, description="Log directory (defaults to <work_dir>/logs)")

    paths: PathsConfig = Field(default_factory=PathsConfig)
    vision: VisionConfig = Field(default_factory=VisionConfig)
    cdn: CDNConfig = Field(default_factory=CDNConfig)
    batch: BatchConfig = Field(default_factory=BatchConfig)

    def __init__(self, config_file: Optional[Path] = None, **kwargs):
        """Initialize configuration with optional config file."""
        if config_file and Path(config_file).exists():
            file_config = self._load_config_file(Path(config_file))
            file_config.update(kwargs)
            kwargs = file_config

        super().__init__(**kwargs)

    @staticmethod
    def _load_config_file(config_file: Path) -> Dict[str, Any]:
        """Load configuration from file."""
        if config_file.suffix.lower() in ['.yaml', '.yml']:
            with open(config_file, 'r') as f:
                return yaml.safe_load(f) or {}
        elif config_file.suffix.lower() == '.toml':
            return toml.load(config_file)
        else:
            raise ConfigurationError(f"Unsupported config file format: {config_file.suffix}")

    @classmethod
    def load_from_file(cls, config_file: Path) -> "Config":
        """Load configuration from file."""
        return cls(config_file=config_file)

    @property
    def resolved_log_dir(self) -> Path:
        if self.log_dir is not None:
            return self.paths.resolve(self.log_dir)
        return self.paths.resolve(self.paths.work_dir) / "logs"

    def batch_vision(self) -> VisionConfig:
        """Vision settings for batch mode.

        Batch mode uses the hosted provider unless USE_OLLAMA is set or a
        provider was configured explicitly.
        """
        if "provider" in self.vision.model_fields_set or _env_flag("USE_OLLAMA"):
            return self.vision
        return self.vision.model_copy(update={"provider": "openai"})

    def require_vision_credentials(self, vision: Optional[VisionConfig] = None) -> None:
        """Fail fast when the hosted provider is selected without a key."""
        vision = vision or self.vision
        if vision.provider == "openai" and not (vision.api_key or "").strip():
            raise ConfigurationError(
                "OPENAI_API_KEY is required for the hosted vision provider "
                "(set it, or set USE_OLLAMA=true to use a local model)"
            )


# Global configuration instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        default_config_file = Path.cwd() / "portfolio.yaml"
        if default_config_file.exists():
            _config = Config.load_from_file(default_config_file)
        else:
            _config = Config()
    return _config


def set_config(config: Config) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config


def reset_config() -> None:
    """Reset the global configuration instance."""
    global _config
    _config = None
