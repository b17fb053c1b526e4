"""Cloudinary asset upload and delivery URLs."""

import hashlib
import time
from pathlib import Path
from typing import Dict, Optional, Union

import httpx

from portfolio_pipeline.core.config import CDNConfig
from portfolio_pipeline.core.logger import audit_log, get_logger

logger = get_logger(__name__)


def sign_params(params: Dict[str, str], api_secret: str) -> str:
    """Cloudinary request signature: SHA-1 of sorted ``k=v`` pairs plus the secret."""
    payload = "&".join(f"{key}={params[key]}" for key in sorted(params) if params[key] != "")
    return hashlib.sha1(f"{payload}{api_secret}".encode("utf-8")).hexdigest()


def delivery_url(
    public_id: str,
    cloud_name: str,
    width: Optional[int] = None,
    height: Optional[int] = None,
    quality: Optional[Union[int, str]] = None,
    format: Optional[str] = None,
    crop: Optional[str] = None,
    base_url: str = "https://res.cloudinary.com",
) -> str:
    """Build a delivery URL with optional transformations."""
    transforms = []
    if width:
        transforms.append(f"w_{width}")
    if height:
        transforms.append(f"h_{height}")
    if quality:
        transforms.append(f"q_{quality}")
    if format:
        transforms.append(f"f_{format}")
    if crop:
        transforms.append(f"c_{crop}")

    transform = ",".join(transforms) + "/" if transforms else ""
    return f"{base_url}/{cloud_name}/image/upload/{transform}{public_id}"


class CloudinaryUploader:
    """Upload published photos to Cloudinary under ``<folder>/<category>/<slug>``."""

    def __init__(self, config: CDNConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    def public_id_for(self, category: str, slug: str) -> str:
        return f"{self.config.folder}/{category}/{slug}"

    async def upload(self, image_path: Union[str, Path], category: str, slug: str) -> Optional[str]:
        """Upload one image; returns its public id, or None when the upload failed."""
        if not self.enabled:
            return None

        image_path = Path(image_path)
        folder = f"{self.config.folder}/{category}"
        params = {
            "folder": folder,
            "overwrite": "true",
            "public_id": slug,
            "timestamp": str(int(time.time())),
        }
        form = dict(params, api_key=self.config.api_key, signature=sign_params(params, self.config.api_secret))
        url = f"{self.config.api_base.rstrip('/')}/{self.config.cloud_name}/image/upload"

        try:
            with image_path.open("rb") as f:
                async with httpx.AsyncClient(timeout=self.config.timeout, transport=self._transport) as client:
                    response = await client.post(url, data=form, files={"file": (image_path.name, f)})
                    response.raise_for_status()
        except (httpx.HTTPError, OSError) as e:
            logger.warning(f"Cloudinary upload failed for {image_path.name}: {e}")
            return None

        public_id = self.public_id_for(category, slug)
        logger.info(f"Uploaded {image_path.name} to Cloudinary as {public_id}")
        audit_log("CDN_UPLOADED", public_id=public_id)
        return public_id
