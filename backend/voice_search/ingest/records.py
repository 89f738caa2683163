"""Record providers: markdown files on disk and an in-memory store."""

from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Iterable

import yaml

from voice_search.models.entities import Record
from voice_search.utils.time import parse_iso

logger = logging.getLogger(__name__)

FILENAME_TIMESTAMP_FORMAT = "%Y-%m-%d_%H-%M-%S"
UNTITLED = "Untitled"


class MarkdownRecordStore:
    """Reads one record per ``*.md`` file in ``directory``.

    Front matter may carry ``id``, ``title``, ``summary``, ``context``,
    ``tags``, ``created`` and ``duration``; the body is the transcript.
    Missing ids fall back to the file stem and missing titles to the first
    line of the transcript.
    """

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory).expanduser()

    async def list_records(self) -> list[Record]:
        return await asyncio.to_thread(self._load_all)

    async def get_record(self, record_id: str) -> Record | None:
        candidate = self.directory / f"{record_id}.md"
        if candidate.is_file():
            record = await asyncio.to_thread(self._load_safely, candidate)
            if record is not None and record.id == record_id:
                return record
        for record in await self.list_records():
            if record.id == record_id:
                return record
        return None

    def _load_all(self) -> list[Record]:
        if not self.directory.is_dir():
            logger.warning("Records directory %s does not exist", self.directory)
            return []
        records = [
            record
            for record in (self._load_safely(path) for path in sorted(self.directory.glob("*.md")))
            if record is not None
        ]
        floor = datetime.min.replace(tzinfo=timezone.utc)
        records.sort(key=lambda record: record.timestamp or floor, reverse=True)
        logger.debug("Loaded %d records from %s", len(records), self.directory)
        return records

    def _load_safely(self, path: Path) -> Record | None:
        try:
            return load_markdown_record(path)
        except (OSError, UnicodeDecodeError, ValueError, yaml.YAMLError) as exc:
            logger.warning("Skipping unreadable record %s: %s", path, exc)
            return None


def load_markdown_record(path: Path) -> Record:
    raw = path.read_bytes()
    front_matter, body = split_front_matter(raw.decode("utf-8"))
    meta = front_matter or {}
    text = body.strip()
    return Record(
        id=str(meta.get("id") or path.stem),
        title=_string(meta.get("title")) or title_from_text(text),
        summary=_string(meta.get("summary")),
        context=_string(meta.get("context")),
        tags=_tags(meta.get("tags")),
        text=text,
        timestamp=_timestamp(meta.get("created"), path),
        duration_seconds=_duration(meta.get("duration")),
        size_bytes=len(raw),
        path=path,
    )


def split_front_matter(text: str) -> tuple[dict[str, Any] | None, str]:
    if text.startswith("---"):
        parts = text.split("---", 2)
        if len(parts) >= 3:
            front_matter = yaml.safe_load(parts[1]) or {}
            if isinstance(front_matter, dict):
                return front_matter, parts[2]
    return None, text


def title_from_text(text: str, max_length: int = 50) -> str:
    """First transcript line, without markdown heading marks, shortened to ``max_length``."""
    for line in text.splitlines():
        line = line.lstrip("#").strip()
        if line:
            if len(line) <= max_length:
                return line
            return f"{line[: max_length - 3]}..."
    return UNTITLED


def _string(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _tags(value: Any) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        items: Iterable[Any] = value.split(",")
    elif isinstance(value, (list, tuple, set)):
        items = value
    else:
        items = [value]
    return tuple(tag for tag in (_string(item) for item in items) if tag)


def _timestamp(value: Any, path: Path) -> datetime | None:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if isinstance(value, str) and value.strip():
        return parse_iso(value.strip())
    try:
        parsed = datetime.strptime(path.stem, FILENAME_TIMESTAMP_FORMAT)
    except ValueError:
        return datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)
    return parsed.replace(tzinfo=timezone.utc)


def _duration(value: Any) -> float | None:
    """Seconds from a number or an ``MM:SS`` string."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip()
    if ":" in text:
        minutes, _, seconds = text.partition(":")
        return float(int(minutes or 0) * 60 + int(seconds or 0))
    return float(text) if text else None


class InMemoryRecordStore:
    """Record provider backed by a dict, for embedding hosts and tests."""

    def __init__(self, records: Iterable[Record] = ()) -> None:
        self._records: dict[str, Record] = {record.id: record for record in records}

    def put(self, record: Record) -> None:
        self._records[record.id] = record

    def remove(self, record_id: str) -> bool:
        return self._records.pop(record_id, None) is not None

    async def list_records(self) -> list[Record]:
        return list(self._records.values())

    async def get_record(self, record_id: str) -> Record | None:
        return self._records.get(record_id)

    def __len__(self) -> int:
        return len(self._records)


__all__ = [
    "MarkdownRecordStore",
    "InMemoryRecordStore",
    "load_markdown_record",
    "split_front_matter",
    "title_from_text",
]
