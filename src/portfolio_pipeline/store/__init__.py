"""Persisted photo store, manual management and CDN upload."""

from .cdn import CloudinaryUploader, delivery_url
from .photo_store import PhotoStore, dump_photos, load_photo_records

__all__ = [
    'CloudinaryUploader',
    'PhotoStore',
    'delivery_url',
    'dump_photos',
    'load_photo_records',
]
