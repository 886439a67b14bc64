from __future__ import annotations


class TileAnalysisError(Exception):
    """Base class for every failure raised while fetching or decoding a tile."""


class TransportError(TileAnalysisError):
    """The tile could not be retrieved (DNS, refused/reset connection, timeout)."""

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Transport error for {url}: {reason}")


class HttpError(TileAnalysisError):
    """The tile server answered with a non-success status."""

    def __init__(self, status: int, status_text: str, url: str | None = None):
        self.status = status
        self.status_text = status_text
        self.url = url
        super().__init__(f"HTTP error: {status} {status_text}".rstrip())


class FormatError(TileAnalysisError):
    """The payload is not a well-formed vector tile."""

    def __init__(self, reason: str, offset: int):
        self.reason = reason
        self.offset = offset
        super().__init__(f"{reason} (at byte {offset})")
