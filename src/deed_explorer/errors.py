from __future__ import annotations

from typing import Optional


class DeedExplorerError(Exception):
    """Base class for lookup failures."""


class NotFound(DeedExplorerError):
    """The remote store has no document for the key (HTTP 404)."""

    def __init__(self, url: str):
        super().__init__(f"not found: {url}")
        self.url = url


class TransportFailure(DeedExplorerError):
    """Connect, DNS, timeout or read failure before a status was seen."""

    def __init__(self, url: str, reason: str):
        super().__init__(f"transport failure for {url}: {reason}")
        self.url = url
        self.reason = reason


class ProtocolFailure(DeedExplorerError):
    """Unexpected status, malformed JSON, or a payload of the wrong shape."""

    def __init__(self, url: str, reason: str, status: Optional[int] = None):
        super().__init__(f"protocol failure for {url}: {reason}")
        self.url = url
        self.reason = reason
        self.status = status


class LoadAbandoned(DeedExplorerError):
    """A joined fetch settled without producing a value."""

    def __init__(self, key: str):
        super().__init__(f"load abandoned for key {key!r}")
        self.key = key
