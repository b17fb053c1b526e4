"""Photo analysis module."""

from portfolio_pipeline.analyzer.captioner import CaptionGenerator
from portfolio_pipeline.analyzer.classifier import Classifier
from portfolio_pipeline.analyzer.combined import AnalysisResult, PhotoAnalyzer
from portfolio_pipeline.analyzer.llm_client import VisionClient, VisionResponse

__all__ = [
    "AnalysisResult",
    "CaptionGenerator",
    "Classifier",
    "PhotoAnalyzer",
    "VisionClient",
    "VisionResponse",
]
