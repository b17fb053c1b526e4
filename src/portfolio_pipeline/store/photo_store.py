"""The persisted photo store (photos.yaml)."""

from pathlib import Path
from typing import Callable, Iterable, List, Set, Union

import yaml
from pydantic import ValidationError

from portfolio_pipeline.core.exceptions import StoreError
from portfolio_pipeline.core.logger import audit_log, get_logger
from portfolio_pipeline.models.photo import PhotoRecord
from portfolio_pipeline.utils.file_utils import write_text_atomic

logger = get_logger(__name__)


class QuotedDumper(yaml.SafeDumper):
    """Dumper that double-quotes every string value but leaves mapping keys plain."""

    def represent_mapping(self, tag, mapping, flow_style=None):
        node = super().represent_mapping(tag, mapping, flow_style)
        for key_node, _ in node.value:
            if isinstance(key_node, yaml.ScalarNode):
                key_node.style = None
        return node


def _represent_quoted_str(dumper: yaml.SafeDumper, value: str):
    return dumper.represent_scalar('tag:yaml.org,2002:str', value, style='"')


QuotedDumper.add_representer(str, _represent_quoted_str)


def dump_photos(records: Iterable[PhotoRecord]) -> str:
    """Serialize records in store order, one quoted scalar per string field."""
    return yaml.dump(
        {"photos": [record.to_yaml_dict() for record in records]},
        Dumper=QuotedDumper,
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=False,
        width=float("inf"),
    )


def load_photo_records(path: Union[str, Path]) -> List[PhotoRecord]:
    """Read photos.yaml into records; a missing file is an empty store."""
    path = Path(path)
    if not path.exists():
        return []

    try:
        with path.open('r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise StoreError(f"Could not parse {path}: {e}") from e

    if not isinstance(data, dict):
        raise StoreError(f"Expected a mapping with a 'photos' list in {path}")
    raw_photos = data.get("photos") or []

    try:
        return [PhotoRecord.model_validate(raw) for raw in raw_photos]
    except ValidationError as e:
        raise StoreError(f"Invalid photo entry in {path}: {e}") from e


class PhotoStore:
    """In-memory view of photos.yaml, read once and written once per run."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self.records: List[PhotoRecord] = []
        self.added: List[PhotoRecord] = []
        self._slugs: Set[str] = set()
        self._filenames: Set[str] = set()
        self._loaded = False

    def load(self) -> "PhotoStore":
        self.records = load_photo_records(self.path)
        self.added = []
        self._slugs = {r.slug for r in self.records if r.slug}
        self._filenames = {r.filename for r in self.records if r.filename}
        self._loaded = True
        logger.debug(f"Loaded {len(self.records)} photos from {self.path}")
        return self

    def __len__(self) -> int:
        return len(self.records)

    @property
    def slugs(self) -> Set[str]:
        return set(self._slugs)

    def has_filename(self, filename: str) -> bool:
        return filename in self._filenames

    def add(self, record: PhotoRecord) -> None:
        if record.slug in self._slugs:
            raise StoreError(f"Slug already in store: {record.slug}")
        self.records.append(record)
        self.added.append(record)
        self._slugs.add(record.slug)
        if record.filename:
            self._filenames.add(record.filename)

    def remove(self, predicate: Callable[[PhotoRecord], bool]) -> List[PhotoRecord]:
        """Drop every record matching ``predicate`` and return them."""
        removed = [r for r in self.records if predicate(r)]
        if removed:
            self.records = [r for r in self.records if not predicate(r)]
            self._slugs = {r.slug for r in self.records if r.slug}
            self._filenames = {r.filename for r in self.records if r.filename}
        return removed

    def save(self) -> None:
        """Rewrite the whole store in one replace."""
        if not self._loaded:
            raise StoreError("Refusing to write a store that was never loaded")

        write_text_atomic(self.path, dump_photos(self.records))
        logger.info(f"Wrote {len(self.records)} photos to {self.path} (+{len(self.added)} new)")
        audit_log("STORE_WRITTEN", path=self.path, total=len(self.records), added=len(self.added))
