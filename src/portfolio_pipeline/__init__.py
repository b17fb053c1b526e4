"""Photo Portfolio - import, classify, caption and publish photos to a YAML content store."""

__version__ = "0.1.0"
__author__ = "Photo Portfolio Team"
__description__ = "Batch pipeline that turns Instagram exports into portfolio entries"

from .core.config import Config, get_config
from .core.logger import get_logger, setup_logging
from .pipeline.batch import BatchProcessor
from .pipeline.stages import StagedPipeline
from .store.photo_store import PhotoStore

__all__ = [
    'Config',
    'get_config',
    'get_logger',
    'setup_logging',
    'BatchProcessor',
    'StagedPipeline',
    'PhotoStore',
]
