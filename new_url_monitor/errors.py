"""Exception types raised by the monitor."""


class MonitorError(Exception):
    """Base class for all monitor errors."""


class FetchError(MonitorError):
    """A sitemap document could not be retrieved."""

    def __init__(self, url: str, message: str):
        super().__init__(message)
        self.url = url


class NetworkError(FetchError):
    """Navigation failed: DNS, connection, bad status or browser error."""


class FetchTimeoutError(FetchError):
    """Navigation did not complete within the configured bound."""


class PersistenceError(MonitorError):
    """An archive, log or output file could not be read or written."""
