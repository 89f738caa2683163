"""Content fingerprints used to decide whether a record needs re-indexing.

Only searchable fields take part in the digest. Timestamps, durations, file
sizes and paths are excluded: they change when notes are copied between
devices while the searchable content stays the same.
"""

from __future__ import annotations

from typing import Any, Iterable

from voice_search.models.entities import Record
from voice_search.utils.hashing import sha256_text


def fingerprint(record: Record) -> str:
    """Compute a stable SHA-256 hex digest over the record's searchable fields."""
    return fingerprint_fields(
        title=getattr(record, "title", ""),
        summary=getattr(record, "summary", ""),
        context=getattr(record, "context", ""),
        tags=getattr(record, "tags", ()),
        text=getattr(record, "text", ""),
    )


def fingerprint_fields(
    title: Any = "",
    summary: Any = "",
    context: Any = "",
    tags: Iterable[Any] | None = (),
    text: Any = "",
) -> str:
    """Same digest as :func:`fingerprint`, from loose field values."""
    content = "\n".join(
        [
            _as_text(title),
            _as_text(summary),
            _as_text(context),
            ",".join(sorted(_as_text(tag) for tag in (tags or ()))),
            _as_text(text),
        ]
    )
    return sha256_text(content)


def has_changed(record: Record, stored_fingerprint: str | None) -> bool:
    """Return True when the record was never indexed or its content differs."""
    if stored_fingerprint is None:
        return True
    return fingerprint(record) != stored_fingerprint


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


__all__ = ["fingerprint", "fingerprint_fields", "has_changed"]
