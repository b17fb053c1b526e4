"""File system utilities."""

import os
import shutil
import tempfile
from pathlib import Path
from typing import Iterable, List, Union

from ..core.logger import audit_log, get_logger
from .image import is_supported_image

logger = get_logger(__name__)


def find_media_files(directory: Union[str, Path]) -> List[Path]:
    """Recursively find importable images below a directory."""
    dir_path = Path(directory)

    if not dir_path.exists():
        logger.warning(f"Directory does not exist: {dir_path}")
        return []

    return sorted(
        path for path in dir_path.rglob("*")
        if path.is_file() and is_supported_image(path)
    )


def move_file(source: Union[str, Path], destination: Union[str, Path]) -> Path:
    """Move a file with a single rename; the destination directory is created."""
    src_path = Path(source)
    dst_path = Path(destination)

    dst_path.parent.mkdir(parents=True, exist_ok=True)
    src_path.rename(dst_path)

    logger.info(f"Moved file: {src_path} -> {dst_path}")
    audit_log("FILE_MOVED", source=src_path, destination=dst_path)
    return dst_path


def copy_file(source: Union[str, Path], destination: Union[str, Path]) -> Path:
    """Copy a file preserving metadata."""
    src_path = Path(source)
    dst_path = Path(destination)

    dst_path.parent.mkdir(parents=True, exist_ok=True)
    shutil.copy2(str(src_path), str(dst_path))

    logger.debug(f"Copied file: {src_path} -> {dst_path}")
    return dst_path


def write_text_atomic(path: Union[str, Path], content: str) -> None:
    """Write via a temporary sibling and os.replace so readers never see half a file."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", dir=str(target.parent))
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            f.write(content)
        os.replace(tmp_name, target)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def remove_files(paths: Iterable[Union[str, Path]]) -> int:
    """Delete the given files if they exist; returns how many were removed."""
    removed = 0
    for path in paths:
        path = Path(path)
        if path.exists():
            path.unlink()
            removed += 1
    return removed
