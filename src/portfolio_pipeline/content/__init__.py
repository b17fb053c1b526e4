"""Site content files and derived artifacts."""

from portfolio_pipeline.content.loader import (
    CategoryRecord,
    ContentLoader,
    SiteConfig,
    build_search_index,
    write_search_index,
)

__all__ = [
    "CategoryRecord",
    "ContentLoader",
    "SiteConfig",
    "build_search_index",
    "write_search_index",
]
