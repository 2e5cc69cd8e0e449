"""Exception types raised inside the discovery pipeline.

Most of these never reach a caller: fetch failures are reported as
``CrawlError`` values, provider failures are replaced by synthetic
metrics, and conflicts are resolved by upserts or skipped runs.
"""


class LinkDripError(Exception):
    """Base class for pipeline errors."""


class TransientFetchError(LinkDripError):
    """A page could not be fetched (network, timeout or non-2xx)."""

    def __init__(self, url: str, message: str, status_code: int | None = None, kind: str = "network"):
        super().__init__(message)
        self.url = url
        self.status_code = status_code
        self.kind = kind


class ProviderUnavailable(LinkDripError):
    """A domain metrics provider failed or returned an unusable payload."""

    def __init__(self, provider: str, message: str):
        super().__init__(f"{provider}: {message}")
        self.provider = provider


class PersistenceConflict(LinkDripError):
    """A unique key was already taken by a concurrent writer."""


class ScheduleConflict(LinkDripError):
    """The discovery pipeline is already running."""


class InvalidJobTransition(LinkDripError):
    """A crawl job was moved out of a terminal state."""
