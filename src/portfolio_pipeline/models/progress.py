"""Batch progress record."""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from portfolio_pipeline.models.photo import TokenUsage


class ProgressError(BaseModel):
    path: str
    error: str


class ProgressState(BaseModel):
    """Everything batch mode needs to resume after an interruption.

    Timestamps use the camelCase keys of existing progress files.
    """

    model_config = ConfigDict(populate_by_name=True)

    processed: List[str] = Field(default_factory=list)
    successful: int = 0
    failed: int = 0
    errors: List[ProgressError] = Field(default_factory=list)
    tokens: TokenUsage = Field(default_factory=TokenUsage)
    cost: float = 0.0
    started_at: Optional[str] = Field(default=None, alias="startedAt")
    updated_at: Optional[str] = Field(default=None, alias="updatedAt")
