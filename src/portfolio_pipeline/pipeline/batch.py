"""Single-pass batch processing over the YYYYMM posts tree with resume support."""

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from portfolio_pipeline.analyzer.combined import PhotoAnalyzer
from portfolio_pipeline.analyzer.llm_client import VisionClient
from portfolio_pipeline.core.config import Config, get_config
from portfolio_pipeline.core.logger import audit_log, get_logger
from portfolio_pipeline.models.photo import PhotoRecord, TokenUsage
from portfolio_pipeline.pipeline.manifest import build_metadata_index, load_posts
from portfolio_pipeline.pipeline.merger import MergeCandidate, PhotoMerger
from portfolio_pipeline.pipeline.progress import ProgressSummary, ProgressTracker, estimate_cost
from portfolio_pipeline.store.cdn import CloudinaryUploader
from portfolio_pipeline.store.photo_store import PhotoStore
from portfolio_pipeline.utils.date_utils import folder_to_date, is_month_folder
from portfolio_pipeline.utils.image import is_supported_image

logger = get_logger(__name__)


@dataclass
class PhotoCandidate:
    """One image under ``<posts_dir>/<YYYYMM>/``."""
    filename: str
    folder: str
    full_path: Path
    date: str
    instagram_caption: str = ""
    instagram_location: str = ""
    instagram_timestamp: Optional[int] = None

    @property
    def relative_path(self) -> str:
        return f"{self.folder}/{self.filename}"


@dataclass
class PhotoResult:
    candidate: PhotoCandidate
    record: Optional[PhotoRecord]
    cost: float = 0.0
    usage: TokenUsage = field(default_factory=TokenUsage)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class BatchReport:
    """What one invocation found and did."""
    total: int
    already_processed: int
    pending: int
    batch: List[PhotoCandidate] = field(default_factory=list)
    results: List[PhotoResult] = field(default_factory=list)
    dry_run: bool = False
    batch_tokens: TokenUsage = field(default_factory=TokenUsage)
    batch_cost: float = 0.0
    total_cost: float = 0.0

    @property
    def successful(self) -> int:
        return sum(1 for r in self.results if r.ok)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.ok)

    @property
    def remaining(self) -> int:
        return self.pending - len(self.batch)

    @property
    def added(self) -> List[PhotoRecord]:
        return [r.record for r in self.results if r.record is not None]


def caption_sources(config: Config) -> List[Path]:
    """Instagram posts files that may hold captions for the posts tree."""
    export_dir = config.paths.resolve(config.paths.instagram_export_dir)
    posts_root = config.paths.resolve(config.paths.posts_dir).parent
    return [
        export_dir / "content" / "posts_1.json",
        export_dir / "content" / "archived_posts.json",
        export_dir / "your_instagram_activity" / "content" / "posts_1.json",
        posts_root / "content" / "posts_1.json",
    ]


def load_caption_map(sources: List[Path]) -> Dict[str, Dict[str, Any]]:
    """Merge the metadata of every existing source, later files winning."""
    captions: Dict[str, Dict[str, Any]] = {}
    for path in sources:
        if not path.exists():
            continue
        index = build_metadata_index(load_posts(path))
        if index:
            logger.info(f"Loaded {len(index)} captions from {path.name}")
        captions.update(index)

    if captions:
        logger.info(f"Total: {len(captions)} captions loaded")
    else:
        logger.info("No Instagram captions found; descriptions will come from the model alone")
    return captions


def discover_photos(
    posts_dir: Path,
    folder: Optional[str] = None,
    captions: Optional[Dict[str, Dict[str, Any]]] = None,
) -> List[PhotoCandidate]:
    """List images in the YYYYMM folders (or a single named folder), in sorted order."""
    posts_dir = Path(posts_dir)
    if not posts_dir.is_dir():
        raise FileNotFoundError(f"Photos directory not found: {posts_dir}")

    captions = captions or {}
    if folder:
        folders = [folder]
    else:
        folders = sorted(p.name for p in posts_dir.iterdir() if p.is_dir() and is_month_folder(p.name))

    photos: List[PhotoCandidate] = []
    for name in folders:
        folder_path = posts_dir / name
        if not folder_path.is_dir():
            logger.warning(f"Folder not found: {folder_path}")
            continue

        for path in sorted(folder_path.iterdir()):
            if not (path.is_file() and is_supported_image(path)):
                continue
            meta = captions.get(path.name, {})
            photos.append(PhotoCandidate(
                filename=path.name,
                folder=name,
                full_path=path,
                date=folder_to_date(name),
                instagram_caption=meta.get("caption") or "",
                instagram_location=meta.get("location") or "",
                instagram_timestamp=meta.get("timestamp_ms"),
            ))

    return photos


class BatchProcessor:
    """Analyze and publish photos a batch at a time, resuming from the progress file."""

    def __init__(
        self,
        config: Optional[Config] = None,
        client: Optional[VisionClient] = None,
        uploader: Optional[CloudinaryUploader] = None,
    ):
        self.config = config or get_config()
        self.paths = self.config.paths
        self.vision = self.config.batch_vision()
        self._client = client
        self.uploader = uploader if uploader is not None else CloudinaryUploader(self.config.cdn)
        self.tracker = ProgressTracker(self.paths.progress_file)

    @property
    def client(self) -> VisionClient:
        if self._client is None:
            self.config.require_vision_credentials(self.vision)
            self._client = VisionClient(self.vision)
        return self._client

    def discover(self, folder: Optional[str] = None) -> List[PhotoCandidate]:
        captions = load_caption_map(caption_sources(self.config))
        return discover_photos(self.paths.resolve(self.paths.posts_dir), folder, captions)

    def plan(self, folder: Optional[str] = None) -> Tuple[List[PhotoCandidate], List[PhotoCandidate]]:
        """All candidates and the ones progress has not seen yet."""
        self.tracker.load()
        candidates = self.discover(folder)
        return candidates, self.tracker.pending(candidates, key=lambda c: c.relative_path)

    def status(self) -> ProgressSummary:
        self.tracker.load()
        return self.tracker.summary(total=len(self.discover()))

    async def run(
        self,
        batch_size: Optional[int] = None,
        folder: Optional[str] = None,
        dry_run: bool = False,
        progress_callback: Optional[Callable[[int, int], None]] = None,
    ) -> BatchReport:
        """Process the next ``batch_size`` unprocessed photos.

        Each photo is recorded in the progress file as soon as it is done; the
        store is written once after the loop.
        """
        batch_size = batch_size or self.config.batch.batch_size
        candidates, pending = self.plan(folder)
        batch = pending[:batch_size]

        report = BatchReport(
            total=len(candidates),
            already_processed=len(self.tracker.state.processed),
            pending=len(pending),
            batch=batch,
            dry_run=dry_run,
            total_cost=self.tracker.state.cost,
        )
        if dry_run or not batch:
            return report

        client = self.client
        analyzer = PhotoAnalyzer(client)
        store = PhotoStore(self.paths.photos_yaml).load()
        merger = PhotoMerger(
            store,
            self.paths.resolve(self.paths.photos_dir),
            uploader=self.uploader,
            relocate=self.config.batch.relocate,
        )

        logger.info(f"Processing batch of {len(batch)} photos with {client.model}")
        audit_log("BATCH_STARTED", size=len(batch), model=client.model)

        for i, candidate in enumerate(batch, 1):
            logger.info(f"[{i}/{len(batch)}] {candidate.relative_path}")
            result = await self._process_one(candidate, analyzer, merger, client)
            report.results.append(result)
            report.batch_cost += result.cost
            report.batch_tokens = report.batch_tokens + result.usage
            # Rewritten after every photo
            self.tracker.save()
            if progress_callback:
                progress_callback(i, len(batch))

            if self.config.batch.delay:
                await asyncio.sleep(self.config.batch.delay)

        if report.added:
            store.save()
        report.total_cost = self.tracker.state.cost

        logger.info(
            f"Batch complete: {report.successful} successful, {report.failed} failed, "
            f"{report.remaining} remaining, batch cost ${report.batch_cost:.4f}"
        )
        audit_log(
            "BATCH_COMPLETED",
            successful=report.successful,
            failed=report.failed,
            cost=f"{report.batch_cost:.4f}",
        )
        return report

    async def _process_one(
        self,
        candidate: PhotoCandidate,
        analyzer: PhotoAnalyzer,
        merger: PhotoMerger,
        client: VisionClient,
    ) -> PhotoResult:
        try:
            analysis = await analyzer.analyze(
                candidate.full_path,
                original_caption=candidate.instagram_caption,
                location_hint=candidate.instagram_location or None,
            )
            record = await merger.merge(MergeCandidate(
                source_path=candidate.full_path,
                filename=candidate.filename,
                classification=analysis.classification,
                caption=analysis.caption,
                instagram_caption=candidate.instagram_caption,
                instagram_timestamp=candidate.instagram_timestamp,
                instagram_location=candidate.instagram_location,
                folder_date=candidate.date,
            ))
        except Exception as e:
            logger.error(f"Failed to process {candidate.relative_path}: {e}")
            self.tracker.record_failure(candidate.relative_path, str(e))
            return PhotoResult(candidate=candidate, record=None, error=str(e))

        cost = estimate_cost(client.model, analysis.usage, local=client.config.is_local)
        self.tracker.record_success(candidate.relative_path, analysis.usage, cost)
        if record is not None:
            logger.info(f'{record.category} - "{record.title}" (${cost:.4f})')
        return PhotoResult(candidate=candidate, record=record, cost=cost, usage=analysis.usage)
