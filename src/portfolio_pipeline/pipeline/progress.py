"""Resumable batch progress and token cost accounting."""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, TypeVar, Union

from pydantic import ValidationError

from portfolio_pipeline.core.exceptions import PortfolioError
from portfolio_pipeline.core.logger import get_logger
from portfolio_pipeline.models.photo import TokenUsage
from portfolio_pipeline.models.progress import ProgressError, ProgressState
from portfolio_pipeline.utils.date_utils import utc_now_iso
from portfolio_pipeline.utils.file_utils import write_text_atomic

logger = get_logger(__name__)

T = TypeVar("T")

# USD per million tokens
PRICING: Dict[str, Dict[str, float]] = {
    "gpt-4o-mini": {"input": 0.15, "output": 0.60},
    "gpt-4o": {"input": 2.50, "output": 10.00},
}

RECENT_ERROR_COUNT = 5


def estimate_cost(model: str, usage: TokenUsage, local: bool = False) -> float:
    """Dollar cost of one request; local models and unpriced models are free."""
    if local:
        return 0.0
    prices = PRICING.get(model)
    if prices is None:
        return 0.0
    return (usage.input * prices["input"] + usage.output * prices["output"]) / 1_000_000


@dataclass
class ProgressSummary:
    total: int
    processed: int
    successful: int
    failed: int
    pending: int
    tokens: TokenUsage
    cost: float
    estimated_remaining_cost: Optional[float]
    recent_errors: List[ProgressError] = field(default_factory=list)
    started_at: Optional[str] = None
    updated_at: Optional[str] = None


class ProgressTracker:
    """Keeps batch-progress.json in step with every processed photo."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self.state = ProgressState(started_at=utc_now_iso())

    def load(self) -> "ProgressTracker":
        if not self.path.exists():
            self.state = ProgressState(started_at=utc_now_iso())
            return self

        try:
            with self.path.open('r', encoding='utf-8') as f:
                self.state = ProgressState.model_validate(json.load(f))
        except (ValueError, ValidationError) as e:
            raise PortfolioError(f"Corrupt progress file {self.path}: {e}") from e

        if not self.state.started_at:
            self.state.started_at = utc_now_iso()
        logger.debug(f"Loaded progress: {len(self.state.processed)} processed")
        return self

    def save(self) -> None:
        self.state.updated_at = utc_now_iso()
        payload = self.state.model_dump(by_alias=True)
        write_text_atomic(self.path, json.dumps(payload, indent=2))

    def is_processed(self, path: str) -> bool:
        return path in self.state.processed

    def pending(self, candidates: Iterable[T], key: Callable[[T], str] = str) -> List[T]:
        """Candidates whose key has not been processed, in their original order."""
        done = set(self.state.processed)
        return [candidate for candidate in candidates if key(candidate) not in done]

    def record_success(self, path: str, usage: TokenUsage, cost: float) -> None:
        self.state.processed.append(path)
        self.state.successful += 1
        self.state.tokens = self.state.tokens + usage
        self.state.cost += cost

    def record_failure(self, path: str, error: str) -> None:
        # Failed photos count as processed so a rerun does not retry them
        self.state.processed.append(path)
        self.state.failed += 1
        self.state.errors.append(ProgressError(path=path, error=error))

    def summary(self, total: int) -> ProgressSummary:
        processed = len(self.state.processed)
        pending = max(total - processed, 0)
        estimated = None
        if pending > 0 and processed > 0:
            estimated = self.state.cost / processed * pending

        return ProgressSummary(
            total=total,
            processed=processed,
            successful=self.state.successful,
            failed=self.state.failed,
            pending=pending,
            tokens=self.state.tokens,
            cost=self.state.cost,
            estimated_remaining_cost=estimated,
            recent_errors=self.state.errors[-RECENT_ERROR_COUNT:],
            started_at=self.state.started_at,
            updated_at=self.state.updated_at,
        )
