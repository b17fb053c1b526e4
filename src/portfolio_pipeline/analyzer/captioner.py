"""Title and description generation."""

import asyncio
import re
from pathlib import Path
from typing import Optional, Union

from portfolio_pipeline.analyzer.llm_client import VisionClient
from portfolio_pipeline.analyzer.parsing import has_meaningful_caption, parse_caption, strip_hashtags
from portfolio_pipeline.core.logger import get_logger
from portfolio_pipeline.models.photo import Caption, CaptionOutcome, Classification

logger = get_logger(__name__)


def _context_lines(classification: Classification, location_hint: Optional[str]) -> str:
    lines = [f"- Category: {classification.category}"]
    if classification.species:
        lines.append(f"- Species: {classification.species}")
    if classification.location:
        lines.append(f"- Location: {classification.location}")
    if location_hint:
        lines.append(f"- Instagram location: {location_hint}")
    return "\n".join(lines)


def build_caption_prompt(
    classification: Classification,
    original_caption: Optional[str] = None,
    location_hint: Optional[str] = None,
) -> str:
    context = _context_lines(classification, location_hint)

    if has_meaningful_caption(original_caption):
        return f"""Create a title and clean description for this photograph.

Context:
{context}

Original Instagram caption:
"{original_caption.strip()}"

Requirements:
- Title: Extract or create a short title (3-8 words) from the caption. Include species name if applicable.
- Description: Clean up the Instagram caption into 1-2 professional sentences. Remove hashtags but keep the meaning. Keep details the photographer mentioned.
- Do not invent details that are not in the caption or visible in the image.

Respond ONLY with JSON:
{{"title":"string","description":"string"}}"""

    return f"""Generate a title and description for this photograph.

Context:
{context}

Requirements:
- Title: Short, evocative (3-8 words). Include species name if applicable.
- Description: 1-2 sentences. Describe the scene, highlight notable features, mention location if known.
- Tone: Professional but warm, suitable for a photography portfolio.
- Do not invent specific details not visible in the image or provided in context.

Respond ONLY with JSON:
{{"title":"string","description":"string"}}"""


def fallback_title(filename: str, classification: Classification) -> str:
    """Species if known, else the filename as a title."""
    if classification.species:
        return classification.species

    stem = Path(filename).stem
    name = re.sub(r'[-_]+', ' ', stem).strip()
    name = re.sub(r'\b\w', lambda m: m.group(0).upper(), name)
    return name or f"{classification.category} Photo"


def fallback_caption(
    filename: str,
    classification: Classification,
    original_caption: Optional[str] = None,
) -> Caption:
    description = strip_hashtags(original_caption) if has_meaningful_caption(original_caption) else ""
    return Caption(
        title=fallback_title(filename, classification),
        description=description or f"A {classification.category} photograph.",
    )


class CaptionGenerator:
    """Generate portfolio titles and descriptions."""

    def __init__(self, client: VisionClient, request_delay: Optional[float] = None):
        self.client = client
        self.request_delay = client.config.request_delay if request_delay is None else request_delay

    async def generate(
        self,
        image_path: Union[str, Path],
        classification: Classification,
        original_caption: Optional[str] = None,
        location_hint: Optional[str] = None,
        filename: Optional[str] = None,
    ) -> CaptionOutcome:
        """Caption one image. Failures produce a fallback caption instead of raising."""
        image_path = Path(image_path)
        filename = filename or image_path.name
        prompt = build_caption_prompt(classification, original_caption, location_hint)

        try:
            response = await self.client.analyze_image(image_path, prompt)
            caption = parse_caption(response.text)
            if has_meaningful_caption(original_caption):
                caption.description = strip_hashtags(caption.description) or caption.description
            outcome = CaptionOutcome.parsed(caption)
            outcome.usage = response.usage
            logger.info(f'Captioned {filename}: "{caption.title}"')
        except Exception as e:
            logger.error(f"Caption generation failed for {filename}: {e}")
            outcome = CaptionOutcome.fallback(
                fallback_caption(filename, classification, original_caption), str(e)
            )
            logger.info(f'Fallback caption for {filename}: "{outcome.caption.title}"')
        finally:
            if self.request_delay:
                await asyncio.sleep(self.request_delay)

        return outcome
