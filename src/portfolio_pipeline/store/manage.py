"""Manual additions to and removals from the photo store."""

import re
from typing import Iterable, List, Optional, Sequence
from urllib.parse import urlparse

from portfolio_pipeline.core.exceptions import StoreError
from portfolio_pipeline.core.logger import audit_log, get_logger
from portfolio_pipeline.models.photo import PhotoRecord
from portfolio_pipeline.pipeline.merger import ensure_unique_slug, next_photo_id, slugify
from portfolio_pipeline.store.photo_store import PhotoStore
from portfolio_pipeline.utils.date_utils import today

logger = get_logger(__name__)

GALLERY_ID_PATTERN = re.compile(r'photo-gallery/[\w\-/]+')


def normalize_cloudinary_id(value: Optional[str]) -> str:
    """Reduce a public id or a Cloudinary delivery URL to the bare public id."""
    if not value:
        return ""
    trimmed = value.strip()

    match = GALLERY_ID_PATTERN.search(trimmed)
    if match:
        return match.group(0)

    parsed = urlparse(trimmed)
    if not parsed.scheme or "cloudinary.com" not in (parsed.hostname or ""):
        return trimmed

    segments = [s for s in parsed.path.split("/") if s]
    if "upload" not in segments:
        return trimmed
    after_upload = segments[segments.index("upload") + 1:]
    if "photo-gallery" in after_upload:
        return "/".join(after_upload[after_upload.index("photo-gallery"):])
    return trimmed


def remove_photos(store: PhotoStore, targets: Iterable[str]) -> List[PhotoRecord]:
    """Remove records whose cloudinary id, slug, id or filename matches a target.

    The store is modified in memory only; the caller decides whether to save.
    """
    wanted = {t for t in (normalize_cloudinary_id(target) for target in targets) if t}
    if not wanted:
        raise StoreError("No valid targets provided")

    def matches(record: PhotoRecord) -> bool:
        keys = (record.cloudinary_id, record.slug, record.id, record.filename)
        return any(key and key in wanted for key in keys)

    removed = store.remove(matches)
    for record in removed:
        audit_log("PHOTO_REMOVED", id=record.id, slug=record.slug, cloudinary_id=record.cloudinary_id)
    return removed


def parse_filters(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


def add_photo(
    store: PhotoStore,
    category: str,
    title: str,
    cloudinary_id: str,
    valid_categories: Sequence[str] = (),
    slug: Optional[str] = None,
    description: str = "",
    filters: Optional[List[str]] = None,
    species: Optional[str] = None,
    location: Optional[str] = None,
    date_taken: Optional[str] = None,
    available_for_print: bool = True,
    width: Optional[int] = None,
    height: Optional[int] = None,
    filename: Optional[str] = None,
) -> PhotoRecord:
    """Append a record for an image that is already hosted on Cloudinary.

    ``valid_categories`` is usually the ids from categories.yaml; when it is
    empty any category is accepted.
    """
    if not category:
        raise StoreError("Missing category")
    if valid_categories and category not in valid_categories:
        raise StoreError(f'Unknown category "{category}". Expected one of: {", ".join(valid_categories)}')
    if not title:
        raise StoreError("Missing title")

    public_id = normalize_cloudinary_id(cloudinary_id)
    if not public_id:
        raise StoreError("Missing cloudinary id")

    unique_slug = ensure_unique_slug(slugify(slug or title), store.slugs)
    record = PhotoRecord(
        id=next_photo_id(category, store.records),
        filename=filename or f"{unique_slug}.jpg",
        slug=unique_slug,
        category=category,
        filters=filters or [],
        species=species or None,
        location=location or None,
        title=title,
        description=description or "",
        date_taken=date_taken or today(),
        available_for_print=available_for_print,
        cloudinary_id=public_id,
        width=width,
        height=height,
    )
    store.add(record)
    audit_log("PHOTO_ADDED", id=record.id, slug=record.slug, cloudinary_id=public_id)
    logger.info(f"Added {record.title} as {record.id} ({record.slug})")
    return record
