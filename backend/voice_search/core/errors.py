"""Exception types raised by the search engine."""

from __future__ import annotations


class VoiceSearchError(Exception):
    """Base class for engine errors."""


class NotInitializedError(VoiceSearchError):
    """Raised when a component is used before it has been initialised or built."""


class SearchUnavailableError(VoiceSearchError):
    """Raised when both the vector and the keyword search paths failed."""


class RecordNotFoundError(VoiceSearchError):
    """Raised when a record requested by id does not exist in the record store."""

    def __init__(self, record_id: str) -> None:
        super().__init__(f"Record not found: {record_id}")
        self.record_id = record_id


__all__ = [
    "VoiceSearchError",
    "NotInitializedError",
    "SearchUnavailableError",
    "RecordNotFoundError",
]
