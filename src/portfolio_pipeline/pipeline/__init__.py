"""Import, merge and batch pipelines."""

from portfolio_pipeline.pipeline.batch import BatchProcessor, BatchReport, PhotoCandidate, discover_photos
from portfolio_pipeline.pipeline.manifest import ManifestBuilder, build_metadata_index, find_metadata_file, load_posts
from portfolio_pipeline.pipeline.merger import (
    MergeCandidate,
    PhotoMerger,
    ensure_unique_slug,
    next_photo_id,
    slugify,
)
from portfolio_pipeline.pipeline.progress import PRICING, ProgressTracker, estimate_cost
from portfolio_pipeline.pipeline.stages import StagedPipeline

__all__ = [
    "BatchProcessor",
    "BatchReport",
    "ManifestBuilder",
    "MergeCandidate",
    "PRICING",
    "PhotoCandidate",
    "PhotoMerger",
    "ProgressTracker",
    "StagedPipeline",
    "build_metadata_index",
    "discover_photos",
    "ensure_unique_slug",
    "estimate_cost",
    "find_metadata_file",
    "load_posts",
    "next_photo_id",
    "slugify",
]
