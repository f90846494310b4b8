"""
Exceptions raised by the crawler core.
"""


class CrawlerError(Exception):
    """Base exception for all crawler errors."""
    pass


class ConfigurationError(CrawlerError, ValueError):
    """Invalid crawler setup, detected before any run starts."""
    pass


class MalformedUrlError(CrawlerError, ValueError):
    """URL cannot be canonicalized (missing scheme or host, bad port)."""
    pass


class CrawlerStateError(CrawlerError, RuntimeError):
    """Operation not allowed in the current crawler or stopwatch state."""
    pass


class FetchError(CrawlerError):
    """The fetch collaborator failed to retrieve a page."""

    def __init__(self, message: str, url: str = None):
        super().__init__(message)
        self.url = url


class FetchTimeoutError(FetchError):
    """The page did not load within the timeout period."""
    pass


class StateStoreError(CrawlerError):
    """Crawler state could not be saved or loaded."""
    pass
