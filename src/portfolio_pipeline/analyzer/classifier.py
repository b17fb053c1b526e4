"""Category classification of a single photo."""

import asyncio
from pathlib import Path
from typing import Optional, Union

from portfolio_pipeline.analyzer.llm_client import VisionClient
from portfolio_pipeline.analyzer.parsing import parse_classification
from portfolio_pipeline.core.logger import get_logger
from portfolio_pipeline.models.photo import ClassificationOutcome

logger = get_logger(__name__)

CLASSIFICATION_PROMPT = """Analyze this photograph and provide classification data.

1. CATEGORY: Choose exactly one: birds, wildlife, landscapes, flora-macro
   - birds: Any bird species
   - wildlife: Mammals, reptiles, amphibians, insects (not birds)
   - landscapes: Scenic views, mountains, waterfalls, cityscapes, seascapes
   - flora-macro: Flowers, plants, trees, macro/close-up photography

2. FILTER (only if category is "landscapes"): mountains, waterfalls, cityscapes, or null

3. SPECIES (if birds or wildlife): Specific species name, or null if uncertain

4. LOCATION: Inferred location based on habitat, species, or visual cues. Use null if cannot determine.{location_hint}

Respond ONLY with valid JSON in this exact format:
{{
  "category": "string",
  "filter": "string or null",
  "species": "string or null",
  "location": "string or null"
}}"""


def build_classification_prompt(location_hint: Optional[str] = None) -> str:
    hint = f"\n\nKnown location from metadata: {location_hint}" if location_hint else ""
    return CLASSIFICATION_PROMPT.format(location_hint=hint)


class Classifier:
    """Classify photos into gallery categories, degrading to a fallback on any failure."""

    def __init__(self, client: VisionClient, request_delay: Optional[float] = None):
        self.client = client
        self.request_delay = client.config.request_delay if request_delay is None else request_delay

    async def classify(
        self,
        image_path: Union[str, Path],
        location_hint: Optional[str] = None,
    ) -> ClassificationOutcome:
        """Classify one image. Always returns exactly one outcome."""
        image_path = Path(image_path)

        try:
            response = await self.client.analyze_image(image_path, build_classification_prompt(location_hint))
            outcome = parse_classification(response.text)
            outcome.usage = response.usage
        except Exception as e:
            logger.error(f"Classification failed for {image_path.name}: {e}")
            outcome = ClassificationOutcome.fallback(str(e))
        finally:
            # Stay under provider rate limits
            if self.request_delay:
                await asyncio.sleep(self.request_delay)

        if outcome.is_fallback:
            logger.warning(f"Using fallback classification for {image_path.name}: {outcome.reason}")
        else:
            c = outcome.classification
            logger.info(f"Classified {image_path.name}: {c.category}{f' ({c.species})' if c.species else ''}")

        return outcome
