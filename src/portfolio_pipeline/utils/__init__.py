"""Utility modules for the portfolio pipeline."""

from .date_utils import folder_to_date, normalize_timestamp, resolve_date_taken, timestamp_to_date
from .file_utils import copy_file, find_media_files, move_file, remove_files, write_text_atomic
from .image import SUPPORTED_EXTENSIONS, encode_image, get_image_dimensions, is_supported_image

__all__ = [
    'SUPPORTED_EXTENSIONS',
    'copy_file',
    'encode_image',
    'find_media_files',
    'folder_to_date',
    'get_image_dimensions',
    'is_supported_image',
    'move_file',
    'normalize_timestamp',
    'remove_files',
    'resolve_date_taken',
    'timestamp_to_date',
    'write_text_atomic',
]
