"""Data models for the portfolio pipeline."""

from .photo import (
    Caption,
    CaptionedPhoto,
    CaptionOutcome,
    Category,
    Classification,
    ClassificationOutcome,
    ClassifiedPhoto,
    LandscapeFilter,
    PendingImport,
    PhotoRecord,
    TokenUsage,
)
from .progress import ProgressError, ProgressState

__all__ = [
    "Caption",
    "CaptionedPhoto",
    "CaptionOutcome",
    "Category",
    "Classification",
    "ClassificationOutcome",
    "ClassifiedPhoto",
    "LandscapeFilter",
    "PendingImport",
    "PhotoRecord",
    "ProgressError",
    "ProgressState",
    "TokenUsage",
]
