"""Single-request classification and captioning used by batch mode."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

from portfolio_pipeline.analyzer.llm_client import VisionClient
from portfolio_pipeline.analyzer.parsing import (
    clean_text,
    has_meaningful_caption,
    load_json_object,
    normalize_classification,
    strip_hashtags,
)
from portfolio_pipeline.core.logger import get_logger
from portfolio_pipeline.models.photo import Caption, Classification, TokenUsage

logger = get_logger(__name__)

COMBINED_PROMPT = """Analyze this photograph and provide classification and caption.
{caption_hint}{location_hint}

Return a JSON object with these fields:

1. category: Choose exactly one: "birds", "wildlife", "landscapes", "flora-macro"
   - birds: Any bird species
   - wildlife: Mammals, reptiles, amphibians, insects (not birds)
   - landscapes: Scenic views, mountains, waterfalls, cityscapes, seascapes
   - flora-macro: Flowers, plants, trees, macro/close-up photography

2. filter: For landscapes only, one of: "mountains", "waterfalls", "cityscapes", or null

3. species: For birds/wildlife, the specific species name (e.g., "Great Blue Heron"), or null

4. location: Inferred or known location, or null

5. title: A short, evocative title (3-8 words). Include species name if applicable.

6. description: 1-2 sentences. If Instagram caption provided, clean it up (remove hashtags, keep meaning). Otherwise describe the scene.

Respond ONLY with valid JSON:
{{"category":"string","filter":"string|null","species":"string|null","location":"string|null","title":"string","description":"string"}}"""


@dataclass
class AnalysisResult:
    classification: Classification
    caption: Caption
    model: str
    usage: TokenUsage = field(default_factory=TokenUsage)


def build_combined_prompt(original_caption: Optional[str] = None, location_hint: Optional[str] = None) -> str:
    caption_hint = (
        f'\nOriginal Instagram caption:\n"{original_caption.strip()}"'
        if has_meaningful_caption(original_caption) else ""
    )
    location = f"\nKnown location: {location_hint}" if location_hint else ""
    return COMBINED_PROMPT.format(caption_hint=caption_hint, location_hint=location)


class PhotoAnalyzer:
    """Classify and caption a photo with one model call."""

    def __init__(self, client: VisionClient):
        self.client = client

    async def analyze(
        self,
        image_path: Union[str, Path],
        original_caption: Optional[str] = None,
        location_hint: Optional[str] = None,
    ) -> AnalysisResult:
        """Raises AnalysisError (or an httpx error) when the photo cannot be analyzed."""
        response = await self.client.analyze_image(
            image_path, build_combined_prompt(original_caption, location_hint)
        )
        data = load_json_object(response.text)

        description = clean_text(data.get("description")) or ""
        if has_meaningful_caption(original_caption):
            description = strip_hashtags(description)

        return AnalysisResult(
            classification=normalize_classification(data),
            caption=Caption(
                title=clean_text(data.get("title")) or "Untitled",
                description=description,
            ),
            model=response.model,
            usage=response.usage,
        )
