"""Merging analyzed photos into the persisted store."""

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional, Set

from portfolio_pipeline.core.logger import get_logger
from portfolio_pipeline.models.photo import CATEGORY_ID_PREFIXES, Caption, Classification, PhotoRecord
from portfolio_pipeline.store.cdn import CloudinaryUploader
from portfolio_pipeline.store.photo_store import PhotoStore
from portfolio_pipeline.utils.date_utils import resolve_date_taken
from portfolio_pipeline.utils.file_utils import copy_file, move_file
from portfolio_pipeline.utils.image import get_image_dimensions

logger = get_logger(__name__)

MAX_SLUG_LENGTH = 50
ID_SUFFIX = re.compile(r'(\d+)$')


def slugify(title: str, max_length: int = MAX_SLUG_LENGTH) -> str:
    """Lower-case, hyphen-separated, at most ``max_length`` characters."""
    slug = re.sub(r'[^a-z0-9]+', '-', (title or "").lower()).strip('-')
    slug = slug[:max_length].rstrip('-')
    return slug or "photo"


def ensure_unique_slug(slug: str, taken: Iterable[str]) -> str:
    """Return ``slug`` or the first free ``slug-2``, ``slug-3``, ..."""
    taken = set(taken)
    if slug not in taken:
        return slug

    counter = 2
    while f"{slug}-{counter}" in taken:
        counter += 1
    return f"{slug}-{counter}"


def id_prefix(category: str) -> str:
    return CATEGORY_ID_PREFIXES.get(category, category)


def next_photo_id(category: str, records: Iterable[PhotoRecord]) -> str:
    """Category prefix plus one more than the highest sequence number in that category."""
    highest = 0
    for record in records:
        if record.category != category or not record.id:
            continue
        match = ID_SUFFIX.search(record.id)
        if match:
            highest = max(highest, int(match.group(1)))
    return f"{id_prefix(category)}-{highest + 1:03d}"


@dataclass
class MergeCandidate:
    """An analyzed photo ready to be published."""
    source_path: Path
    filename: str
    classification: Classification
    caption: Caption
    instagram_caption: str = ""
    instagram_date: str = ""
    instagram_timestamp: Optional[int] = None
    instagram_location: str = ""
    folder_date: Optional[str] = None


class PhotoMerger:
    """Allocate ids and slugs, relocate the image, upload it and add the record.

    Records accumulate in the store; the caller writes the store once.
    """

    def __init__(
        self,
        store: PhotoStore,
        photos_dir: Path,
        uploader: Optional[CloudinaryUploader] = None,
        relocate: str = "move",
    ):
        if relocate not in ("move", "copy"):
            raise ValueError(f"relocate must be 'move' or 'copy', not {relocate!r}")
        self.store = store
        self.photos_dir = Path(photos_dir)
        self.uploader = uploader
        self.relocate = relocate

    def _allocate_slug(self, title: str, category_dir: Path, ext: str) -> str:
        base = slugify(title)
        taken: Set[str] = self.store.slugs
        slug = ensure_unique_slug(base, taken)
        # Files left behind by earlier runs also block a slug
        while (category_dir / f"{slug}{ext}").exists():
            taken.add(slug)
            slug = ensure_unique_slug(base, taken)
        return slug

    async def merge(self, candidate: MergeCandidate) -> Optional[PhotoRecord]:
        """Publish one photo; returns None when it is already in the store or its image is gone."""
        if self.store.has_filename(candidate.filename):
            logger.info(f"Skipping {candidate.filename} (already in photos.yaml)")
            return None

        classification = candidate.classification
        category = classification.category
        category_dir = self.photos_dir / category
        ext = Path(candidate.filename).suffix.lower()

        source = Path(candidate.source_path)
        if source.exists():
            slug = self._allocate_slug(candidate.caption.title, category_dir, ext)
        else:
            # An interrupted merge may already have relocated this image
            slug = ensure_unique_slug(slugify(candidate.caption.title), self.store.slugs)
            if not (category_dir / f"{slug}{ext}").exists():
                logger.warning(f"Source image missing for {candidate.filename}, skipping: {source}")
                return None
            logger.warning(f"Source image missing for {candidate.filename}, reusing {slug}{ext}")

        photo_id = next_photo_id(category, self.store.records)
        new_filename = f"{slug}{ext}"
        dest_path = category_dir / new_filename

        if source.exists():
            if self.relocate == "move":
                move_file(source, dest_path)
            else:
                copy_file(source, dest_path)

        width = height = None
        cloudinary_id = None
        if dest_path.exists():
            dimensions = get_image_dimensions(dest_path)
            if dimensions:
                width, height = dimensions
            if self.uploader is not None and self.uploader.enabled:
                cloudinary_id = await self.uploader.upload(dest_path, category, slug)

        record = PhotoRecord(
            id=photo_id,
            filename=new_filename,
            slug=slug,
            category=category,
            filters=[classification.filter] if classification.filter else [],
            species=classification.species,
            location=candidate.instagram_location or classification.location,
            title=candidate.caption.title,
            description=candidate.caption.description,
            instagram_caption=candidate.instagram_caption or None,
            date_taken=resolve_date_taken(
                candidate.instagram_date, candidate.instagram_timestamp, candidate.folder_date
            ),
            available_for_print=True,
            cloudinary_id=cloudinary_id,
            width=width,
            height=height,
        )

        self.store.add(record)
        logger.info(f'Added "{record.title}" as {record.id} ({record.slug})')
        return record
