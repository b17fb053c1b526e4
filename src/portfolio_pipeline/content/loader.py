"""Typed access to the site content files (site.yaml, categories.yaml, photos.yaml)."""

import json
import random
from datetime import date
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from portfolio_pipeline.core.config import PathsConfig
from portfolio_pipeline.core.exceptions import StoreError
from portfolio_pipeline.core.logger import get_logger
from portfolio_pipeline.models.photo import PhotoRecord
from portfolio_pipeline.store.cdn import delivery_url
from portfolio_pipeline.store.photo_store import load_photo_records
from portfolio_pipeline.utils.file_utils import write_text_atomic

logger = get_logger(__name__)


class HeroConfig(BaseModel):
    image: str = ""
    alt: str = ""


class PhotoWallConfig(BaseModel):
    mode: Literal["recent", "random"] = "recent"
    count: int = 12


class SiteConfig(BaseModel):
    """site.yaml"""

    model_config = ConfigDict(extra="allow")

    site_name: str = ""
    tagline: str = ""
    hero: HeroConfig = Field(default_factory=HeroConfig)
    photo_wall: PhotoWallConfig = Field(default_factory=PhotoWallConfig)
    social: Dict[str, Optional[str]] = Field(default_factory=dict)
    analytics: Dict[str, Any] = Field(default_factory=dict)
    contact: Dict[str, Any] = Field(default_factory=dict)


class CategoryFilter(BaseModel):
    id: str
    name: str


class CategoryRecord(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    name: str
    slug: str
    description: str = ""
    cover_image: str = ""
    filters: List[CategoryFilter] = Field(default_factory=list)


class NavItem(BaseModel):
    name: str
    slug: str


def _load_yaml(path: Path) -> Any:
    try:
        with path.open('r', encoding='utf-8') as f:
            return yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise StoreError(f"Could not parse {path}: {e}") from e


def _date_key(photo: PhotoRecord) -> date:
    try:
        return date.fromisoformat(photo.date_taken or "")
    except ValueError:
        return date.min


class ContentLoader:
    """Read-only queries over the content directory.

    Files are read on first use and cached for the life of the loader.
    """

    def __init__(self, paths: PathsConfig, rng: Optional[random.Random] = None, cloud_name: str = ""):
        self.paths = paths
        self.rng = rng or random.Random()
        self.cloud_name = cloud_name
        self._site: Optional[SiteConfig] = None
        self._categories: Optional[List[CategoryRecord]] = None
        self._photos: Optional[List[PhotoRecord]] = None

    def site(self) -> SiteConfig:
        if self._site is None:
            path = self.paths.site_yaml
            data = _load_yaml(path) if path.exists() else {}
            self._site = SiteConfig.model_validate(data or {})
        return self._site

    def categories(self) -> List[CategoryRecord]:
        if self._categories is None:
            path = self.paths.categories_yaml
            data = (_load_yaml(path) if path.exists() else None) or {}
            try:
                self._categories = [CategoryRecord.model_validate(c) for c in data.get("categories") or []]
            except ValidationError as e:
                raise StoreError(f"Invalid category in {path}: {e}") from e
        return self._categories

    def category_ids(self) -> List[str]:
        return [c.id for c in self.categories()]

    def nav_items(self) -> List[NavItem]:
        return [NavItem(name=c.name, slug=f"/{c.slug}/") for c in self.categories()]

    def category_by_id(self, category_id: str) -> Optional[CategoryRecord]:
        return next((c for c in self.categories() if c.id == category_id), None)

    def category_by_slug(self, slug: str) -> Optional[CategoryRecord]:
        return next((c for c in self.categories() if c.slug == slug), None)

    def photos(self) -> List[PhotoRecord]:
        if self._photos is None:
            self._photos = load_photo_records(self.paths.photos_yaml)
        return self._photos

    def photos_by_category(self, category_id: str, filter_id: Optional[str] = None) -> List[PhotoRecord]:
        """Photos of one category, optionally narrowed to a filter, in shuffled order."""
        selected = [p for p in self.photos() if p.category == category_id]
        if filter_id:
            selected = [p for p in selected if filter_id in p.filters]
        self.rng.shuffle(selected)
        return selected

    def photo_by_slug(self, slug: str, category_id: Optional[str] = None) -> Optional[PhotoRecord]:
        return next(
            (p for p in self.photos() if p.slug == slug and (category_id is None or p.category == category_id)),
            None,
        )

    def recent_photos(self, count: int) -> List[PhotoRecord]:
        return sorted(self.photos(), key=_date_key, reverse=True)[:count]

    def random_photos(self, count: int) -> List[PhotoRecord]:
        photos = list(self.photos())
        self.rng.shuffle(photos)
        return photos[:count]

    def photo_wall(self) -> List[PhotoRecord]:
        wall = self.site().photo_wall
        if wall.mode == "random":
            return self.random_photos(wall.count)
        return self.recent_photos(wall.count)

    def image_url(self, photo: PhotoRecord, **transforms) -> Optional[str]:
        if not photo.cloudinary_id or not self.cloud_name:
            return None
        return delivery_url(photo.cloudinary_id, self.cloud_name, **transforms)


def build_search_index(photos: List[PhotoRecord], categories: List[CategoryRecord]) -> List[Dict[str, Any]]:
    """Flatten the store into the entries the site search consumes."""
    names = {c.id: c.name for c in categories}
    return [
        {
            "id": photo.id,
            "slug": photo.slug,
            "category": photo.category,
            "categoryName": names.get(photo.category, photo.category),
            "title": photo.title,
            "description": photo.description,
            "species": photo.species or "",
            "location": photo.location or "",
            "filters": photo.filters,
            "cloudinary_id": photo.cloudinary_id,
            "width": photo.width,
            "height": photo.height,
        }
        for photo in photos
    ]


def write_search_index(loader: ContentLoader, output: Union[str, Path]) -> int:
    index = build_search_index(loader.photos(), loader.categories())
    write_text_atomic(output, json.dumps(index, ensure_ascii=False))
    logger.info(f"Wrote search index with {len(index)} entries to {output}")
    return len(index)
