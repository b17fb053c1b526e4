"""Staged import pipeline: process, classify, caption, merge.

Each stage reads the previous stage's JSON file from the work directory,
so a failed run can be resumed from the last completed stage.
"""

import json
from pathlib import Path
from typing import List, Optional, Type, TypeVar, Union

from pydantic import BaseModel

from portfolio_pipeline.analyzer.captioner import CaptionGenerator
from portfolio_pipeline.analyzer.classifier import Classifier
from portfolio_pipeline.analyzer.llm_client import VisionClient
from portfolio_pipeline.core.config import Config, get_config
from portfolio_pipeline.core.logger import audit_log, get_logger
from portfolio_pipeline.models.photo import CaptionedPhoto, ClassifiedPhoto, PhotoRecord, TokenUsage
from portfolio_pipeline.pipeline.manifest import ManifestBuilder, load_manifest, save_manifest
from portfolio_pipeline.pipeline.merger import MergeCandidate, PhotoMerger
from portfolio_pipeline.store.cdn import CloudinaryUploader
from portfolio_pipeline.store.photo_store import PhotoStore
from portfolio_pipeline.utils.file_utils import remove_files, write_text_atomic

logger = get_logger(__name__)

M = TypeVar("M", bound=BaseModel)


def _write_models(path: Path, items: List[BaseModel]) -> None:
    write_text_atomic(path, json.dumps([item.model_dump() for item in items], indent=2, ensure_ascii=False))


def _read_models(path: Path, model: Type[M], hint: str) -> List[M]:
    if not path.exists():
        raise FileNotFoundError(f"{path} not found. Run `portfolio {hint}` first.")
    with path.open('r', encoding='utf-8') as f:
        return [model.model_validate(item) for item in json.load(f)]


class StagedPipeline:
    """Runs the import stages against the configured work directory."""

    def __init__(
        self,
        config: Optional[Config] = None,
        client: Optional[VisionClient] = None,
        uploader: Optional[CloudinaryUploader] = None,
    ):
        self.config = config or get_config()
        self.paths = self.config.paths
        self._client = client
        self.uploader = uploader if uploader is not None else CloudinaryUploader(self.config.cdn)
        self.usage = TokenUsage()

    @property
    def client(self) -> VisionClient:
        if self._client is None:
            self.config.require_vision_credentials()
            self._client = VisionClient(self.config.vision)
        return self._client

    def process_export(self, source: Union[str, Path], metadata: Optional[Union[str, Path]] = None):
        """Copy new images into the pending area and write the manifest."""
        entries = ManifestBuilder(self.config).build(source, metadata)
        if entries:
            save_manifest(self.paths.manifest_file, entries)
            logger.info(f"Manifest written to {self.paths.manifest_file}")
        else:
            logger.info("No new photos to process")
        return entries

    async def classify(self) -> List[ClassifiedPhoto]:
        if not self.paths.manifest_file.exists():
            raise FileNotFoundError(
                f"{self.paths.manifest_file} not found. Run `portfolio process <export>` first."
            )
        manifest = load_manifest(self.paths.manifest_file)
        classifier = Classifier(self.client)
        classified: List[ClassifiedPhoto] = []

        for i, entry in enumerate(manifest, 1):
            logger.info(f"[{i}/{len(manifest)}] Classifying {entry.filename}")
            outcome = await classifier.classify(entry.path, entry.instagram_location or None)
            self.usage = self.usage + outcome.usage
            classified.append(ClassifiedPhoto(
                **entry.model_dump(),
                classification=outcome.classification,
                classification_error=outcome.reason if outcome.is_fallback else None,
            ))

        _write_models(self.paths.classified_file, classified)
        logger.info(f"Classified {len(classified)} photos; results in {self.paths.classified_file}")
        return classified

    async def caption(self) -> List[CaptionedPhoto]:
        photos = _read_models(self.paths.classified_file, ClassifiedPhoto, "classify")
        generator = CaptionGenerator(self.client)
        captioned: List[CaptionedPhoto] = []

        for i, photo in enumerate(photos, 1):
            logger.info(f"[{i}/{len(photos)}] Captioning {photo.filename}")
            outcome = await generator.generate(
                photo.path,
                photo.classification,
                original_caption=photo.instagram_caption,
                location_hint=photo.instagram_location or None,
                filename=photo.filename,
            )
            self.usage = self.usage + outcome.usage
            captioned.append(CaptionedPhoto(
                **photo.model_dump(),
                caption=outcome.caption,
                caption_error=outcome.reason if outcome.is_fallback else None,
            ))

        _write_models(self.paths.captioned_file, captioned)
        logger.info(f"Captioned {len(captioned)} photos; results in {self.paths.captioned_file}")
        return captioned

    async def merge(self) -> List[PhotoRecord]:
        """Publish captioned photos, write the store once and remove the intermediate files."""
        photos = _read_models(self.paths.captioned_file, CaptionedPhoto, "caption")
        store = PhotoStore(self.paths.photos_yaml).load()
        merger = PhotoMerger(
            store,
            self.paths.resolve(self.paths.photos_dir),
            uploader=self.uploader,
            relocate="move",
        )

        if not self.uploader.enabled:
            logger.info("Cloudinary not configured; photos will be stored locally only")

        added: List[PhotoRecord] = []
        for i, photo in enumerate(photos, 1):
            logger.info(f"[{i}/{len(photos)}] Merging {photo.filename}")
            record = await merger.merge(MergeCandidate(
                source_path=Path(photo.path),
                filename=photo.filename,
                classification=photo.classification,
                caption=photo.caption,
                instagram_caption=photo.instagram_caption,
                instagram_date=photo.instagram_date,
                instagram_timestamp=photo.instagram_timestamp,
                instagram_location=photo.instagram_location,
            ))
            if record is not None:
                added.append(record)

        if not added:
            logger.info("No new photos to add to photos.yaml")
            return added

        store.save()
        removed = remove_files([
            self.paths.manifest_file,
            self.paths.classified_file,
            self.paths.captioned_file,
        ])
        logger.info(f"Cleaned up {removed} intermediate files")
        audit_log("STAGED_MERGE_COMPLETED", added=len(added), total=len(store))
        return added

    async def run_import(
        self,
        source: Union[str, Path],
        metadata: Optional[Union[str, Path]] = None,
    ) -> List[PhotoRecord]:
        """All four stages in sequence; stops early when nothing new was imported."""
        # Credentials are checked before any file is copied
        if self._client is None:
            self.config.require_vision_credentials()
        if not self.process_export(source, metadata):
            return []
        await self.classify()
        await self.caption()
        return await self.merge()
