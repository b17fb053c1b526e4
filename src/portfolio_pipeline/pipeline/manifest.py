"""Import of Instagram exports into the pending area."""

import json
import re
import shutil
import tempfile
import zipfile
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from portfolio_pipeline.core.config import Config, get_config
from portfolio_pipeline.core.logger import audit_log, get_logger
from portfolio_pipeline.models.photo import PendingImport
from portfolio_pipeline.utils.date_utils import normalize_timestamp, timestamp_to_date, utc_now_iso
from portfolio_pipeline.utils.file_utils import copy_file, find_media_files, write_text_atomic

logger = get_logger(__name__)

METADATA_CANDIDATES = (
    Path("content") / "posts_1.json",
    Path("your_instagram_activity") / "content" / "posts_1.json",
    Path("posts_1.json"),
    Path("posts.json"),
)
POSTS_FILE_PATTERN = re.compile(r'^posts_\d+\.json$', re.IGNORECASE)
POST_LIST_KEYS = ("posts", "data", "ig_archived_post_media")


def find_metadata_file(folder: Union[str, Path]) -> Optional[Path]:
    """Locate the posts JSON of an export folder."""
    folder = Path(folder)
    for candidate in METADATA_CANDIDATES:
        path = folder / candidate
        if path.is_file():
            return path

    for path in sorted(folder.rglob("*.json")):
        if path.is_file() and POSTS_FILE_PATTERN.match(path.name):
            return path
    return None


def load_posts(path: Optional[Union[str, Path]]) -> List[Dict[str, Any]]:
    """Read a posts file; unreadable metadata only costs captions, so it yields []."""
    if not path:
        return []
    path = Path(path)
    if not path.exists():
        logger.warning(f"Metadata file not found: {path}")
        return []

    try:
        with path.open('r', encoding='utf-8') as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        logger.warning(f"Could not read metadata {path}: {e}")
        return []

    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        for key in POST_LIST_KEYS:
            if isinstance(data.get(key), list):
                return data[key]
    return []


def extract_location(value: Any) -> str:
    if not value:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, dict):
        for key in ("name", "location_name", "title", "city_name"):
            if value.get(key):
                return str(value[key])
    return ""


def _first(mapping: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = mapping.get(key)
        if value:
            return value
    return None


def build_metadata_index(posts: List[Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
    """Map media base filename to caption, timestamp, date and location."""
    index: Dict[str, Dict[str, Any]] = {}

    for post in posts:
        if not isinstance(post, dict):
            continue
        media_items = post.get("media") if isinstance(post.get("media"), list) else []
        post_timestamp = normalize_timestamp(_first(post, "creation_timestamp", "taken_at", "timestamp"))
        post_location = extract_location(_first(post, "location", "location_name"))

        for media in media_items:
            if not isinstance(media, dict):
                continue
            uri = _first(media, "uri", "media_uri", "path") or ""
            filename = Path(str(uri)).name
            if not filename:
                continue

            caption = _first(media, "title", "caption") or _first(post, "title", "caption") or ""
            timestamp_ms = (
                normalize_timestamp(_first(media, "creation_timestamp", "taken_at")) or post_timestamp
            )
            index[filename] = {
                "caption": caption,
                "timestamp_ms": timestamp_ms,
                "date": timestamp_to_date(timestamp_ms),
                "location": extract_location(media.get("location")) or post_location,
            }

    return index


def save_manifest(path: Union[str, Path], entries: List[PendingImport]) -> None:
    payload = [entry.model_dump() for entry in entries]
    write_text_atomic(path, json.dumps(payload, indent=2, ensure_ascii=False))


def load_manifest(path: Union[str, Path]) -> List[PendingImport]:
    with Path(path).open('r', encoding='utf-8') as f:
        return [PendingImport.model_validate(item) for item in json.load(f)]


class ManifestBuilder:
    """Copy new export images into the pending area and describe them."""

    def __init__(self, config: Optional[Config] = None):
        self.config = config or get_config()
        self.pending_dir = self.config.paths.resolve(self.config.paths.pending_dir)

    def build(
        self,
        source: Union[str, Path],
        metadata: Optional[Union[str, Path]] = None,
    ) -> List[PendingImport]:
        """Import a folder or ``.zip`` export.

        Files whose name already exists in the pending area are skipped and
        left out of the manifest.
        """
        source = Path(source)
        if not source.exists():
            raise FileNotFoundError(f"File or folder not found: {source}")

        if source.is_file() and source.suffix.lower() == ".zip":
            temp_dir = Path(tempfile.mkdtemp(prefix="portfolio-export-"))
            try:
                logger.info(f"Extracting {source}")
                with zipfile.ZipFile(source) as archive:
                    archive.extractall(temp_dir)
                return self._import_folder(temp_dir, metadata)
            finally:
                shutil.rmtree(temp_dir, ignore_errors=True)

        return self._import_folder(source, metadata)

    def _import_folder(self, folder: Path, metadata: Optional[Union[str, Path]]) -> List[PendingImport]:
        metadata_path = Path(metadata) if metadata else find_metadata_file(folder)
        if metadata_path:
            logger.info(f"Using metadata: {metadata_path}")
        else:
            logger.info("No Instagram metadata file found; importing without captions, dates or locations")
        index = build_metadata_index(load_posts(metadata_path))

        media_files = find_media_files(folder)
        if not media_files:
            logger.info(f"No images found in {folder}")
            return []

        self.pending_dir.mkdir(parents=True, exist_ok=True)
        entries: List[PendingImport] = []

        for file_path in media_files:
            dest_path = self.pending_dir / file_path.name
            if dest_path.exists():
                logger.info(f"Skipping (exists): {file_path.name}")
                continue

            copy_file(file_path, dest_path)
            meta = index.get(file_path.name, {})
            entries.append(PendingImport(
                filename=file_path.name,
                path=str(dest_path),
                original_path=str(file_path),
                instagram_caption=meta.get("caption") or "",
                instagram_timestamp=meta.get("timestamp_ms"),
                instagram_date=meta.get("date") or "",
                instagram_location=meta.get("location") or "",
                processed_at=utc_now_iso(),
            ))

        logger.info(f"Copied {len(entries)} new photos to {self.pending_dir}")
        audit_log("EXPORT_IMPORTED", source=folder, count=len(entries))
        return entries
