from __future__ import annotations


class FeedError(Exception):
    def __init__(self, source_id: str, reason: str, *, status_code: int | None = None) -> None:
        super().__init__(f"{source_id}: {reason}")
        self.source_id = source_id
        self.reason = reason
        self.status_code = status_code


class FeedUnavailable(FeedError):
    """Network failure or non-2xx response."""


class ParseFailure(FeedError):
    """Payload could not be decoded into records."""
