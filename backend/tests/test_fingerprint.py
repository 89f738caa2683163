"""Tests for content fingerprints."""

from __future__ import annotations

import hashlib
from datetime import datetime, timezone
from pathlib import Path

from voice_search.ingest.fingerprint import fingerprint, fingerprint_fields, has_changed
from voice_search.models.entities import Record


def _record(**overrides) -> Record:
    fields = {
        "id": "r1",
        "title": "Weekly sync",
        "summary": "Planning notes",
        "context": "Office",
        "tags": ("work", "planning"),
        "text": "We discussed project alpha.",
    }
    fields.update(overrides)
    return Record(**fields)


def test_fingerprint_is_sha256_of_joined_fields() -> None:
    expected = hashlib.sha256(
        "Weekly sync\nPlanning notes\nOffice\nplanning,work\nWe discussed project alpha.".encode("utf-8")
    ).hexdigest()
    digest = fingerprint(_record())
    assert digest == expected
    assert len(digest) == 64
    assert digest == digest.lower()


def test_fingerprint_is_stable() -> None:
    assert fingerprint(_record()) == fingerprint(_record())


def test_tag_order_does_not_matter() -> None:
    assert fingerprint(_record(tags=("work", "planning"))) == fingerprint(_record(tags=("planning", "work")))


def test_non_searchable_metadata_is_ignored() -> None:
    base = fingerprint(_record())
    moved = _record(
        timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
        duration_seconds=93.0,
        size_bytes=2048,
        path=Path("/elsewhere/note.md"),
    )
    assert fingerprint(moved) == base


def test_each_searchable_field_changes_digest() -> None:
    base = fingerprint(_record())
    for change in (
        {"title": "Other"},
        {"summary": "Other"},
        {"context": "Other"},
        {"tags": ("work",)},
        {"text": "We discussed project beta."},
    ):
        assert fingerprint(_record(**change)) != base, change


def test_fingerprint_fields_treats_none_as_empty() -> None:
    assert fingerprint_fields(title=None, summary=None, context=None, tags=None, text=None) == fingerprint_fields()
    assert fingerprint_fields(tags=[3, "a"]) == fingerprint_fields(tags=["3", "a"])


def test_fingerprint_of_object_missing_fields() -> None:
    class Partial:
        id = "p1"
        title = "Only a title"

    assert fingerprint(Partial()) == fingerprint_fields(title="Only a title")


def test_has_changed() -> None:
    record = _record()
    assert has_changed(record, None)
    assert not has_changed(record, fingerprint(record))
    assert has_changed(record, "0" * 64)
