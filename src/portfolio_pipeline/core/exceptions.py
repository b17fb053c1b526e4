"""Exception types raised by the portfolio pipeline."""


class PortfolioError(Exception):
    """Base class for pipeline errors."""


class ConfigurationError(PortfolioError):
    """Missing or invalid configuration; fatal before any photo is processed."""


class AnalysisError(PortfolioError):
    """A vision request failed or returned something unusable for one photo."""


class StoreError(PortfolioError):
    """The persisted photo store could not be read or written."""
