"""Image utilities."""

import base64
import io
from pathlib import Path
from typing import Optional, Tuple, Union

from PIL import Image, ImageOps

from ..core.logger import get_logger

logger = get_logger(__name__)

SUPPORTED_EXTENSIONS = {'.jpg', '.jpeg', '.png', '.webp'}


def is_supported_image(file_path: Union[str, Path]) -> bool:
    """Check if file has an importable image extension."""
    return Path(file_path).suffix.lower() in SUPPORTED_EXTENSIONS


def get_image_dimensions(file_path: Union[str, Path]) -> Optional[Tuple[int, int]]:
    """Return (width, height) after EXIF orientation, or None if unreadable."""
    path = Path(file_path)
    try:
        with Image.open(path) as img:
            img = ImageOps.exif_transpose(img)
            return img.size
    except Exception as e:
        logger.warning(f"Could not read dimensions of {path}: {e}")
        return None


def encode_image(file_path: Union[str, Path], max_edge: int = 1024, quality: int = 85) -> str:
    """Encode an image as a base64 JPEG, downscaled to save tokens."""
    path = Path(file_path)

    with Image.open(path) as img:
        img = ImageOps.exif_transpose(img)
        if img.mode not in ('RGB', 'L'):
            img = img.convert('RGB')

        if max(img.size) > max_edge:
            img.thumbnail((max_edge, max_edge), Image.Resampling.LANCZOS)
            logger.debug(f"Resized {path.name} to {img.size}")

        buffer = io.BytesIO()
        img.save(buffer, format='JPEG', quality=quality)

    return base64.b64encode(buffer.getvalue()).decode('utf-8')
