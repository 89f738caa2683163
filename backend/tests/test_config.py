"""Tests for settings, logging and status fan-out."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest
from pydantic import ValidationError

from voice_search.core.config import Settings
from voice_search.core.events import StatusBroadcaster
from voice_search.core.logging import JsonFormatter


def test_yaml_sections_map_to_fields(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("VSRCH_DB_PATH")
    config = tmp_path / "config.yaml"
    config.write_text(
        "storage:\n"
        "  db_path: ~/custom/index.db\n"
        "search:\n"
        "  rrf_k: 30\n"
        "  limit: 5\n"
        "chunking:\n"
        "  max_tokens: 128\n"
        "unknown:\n"
        "  key: ignored\n",
        encoding="utf-8",
    )
    settings = Settings.from_yaml(config)
    assert settings.db_path == Path("~/custom/index.db").expanduser()
    assert settings.rrf_k == 30
    assert settings.default_limit == 5
    assert settings.chunk_max_tokens == 128
    assert settings.embedding_dim == 256


def test_environment_overrides_yaml(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config = tmp_path / "config.yaml"
    config.write_text("search:\n  rrf_k: 30\n", encoding="utf-8")
    monkeypatch.setenv("VSRCH_RRF_K", "90")
    monkeypatch.setenv("VSRCH_CONFIG", str(config))
    settings = Settings.from_yaml()
    assert settings.rrf_k == 90
    assert settings.records_dir == tmp_path / "records"
    assert settings.sync_on_startup is False


def test_missing_config_file_uses_defaults(tmp_path: Path) -> None:
    settings = Settings.from_yaml(tmp_path / "absent.yaml")
    assert settings.rrf_k == 60
    assert settings.default_limit == 20


def test_invalid_values_are_rejected() -> None:
    with pytest.raises(ValidationError):
        Settings(rrf_k=0)
    with pytest.raises(ValidationError):
        Settings(chunk_min_tokens=300, chunk_max_tokens=256)


def test_json_formatter_includes_context_fields() -> None:
    record = logging.LogRecord("voice_search.test", logging.INFO, __file__, 1, "synced %d", (3,), None)
    record.ctx_record_id = "r1"
    payload = json.loads(JsonFormatter().format(record))
    assert payload["message"] == "synced 3"
    assert payload["level"] == "INFO"
    assert payload["ctx_record_id"] == "r1"


def test_broadcaster_isolates_failing_subscribers(caplog: pytest.LogCaptureFixture) -> None:
    broadcaster: StatusBroadcaster[int] = StatusBroadcaster()
    received: list[int] = []

    def broken(value: int) -> None:
        raise RuntimeError("bad listener")

    broadcaster.subscribe(broken)
    unsubscribe = broadcaster.subscribe(received.append)
    with caplog.at_level(logging.ERROR):
        broadcaster.publish(1)
    assert received == [1]
    assert "failed" in caplog.text

    unsubscribe()
    unsubscribe()
    broadcaster.publish(2)
    assert received == [1]
    assert len(broadcaster) == 1
    broadcaster.clear()
    assert len(broadcaster) == 0


def test_reset_singletons_rereads_settings(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    from voice_search.api import dependencies as deps

    monkeypatch.setenv("VSRCH_DB_PATH", str(tmp_path / "first.db"))
    deps.reset_singletons()
    assert deps.get_app_settings().db_path == tmp_path / "first.db"

    monkeypatch.setenv("VSRCH_DB_PATH", str(tmp_path / "second.db"))
    deps.reset_singletons()
    assert deps.get_app_settings().db_path == tmp_path / "second.db"
    assert deps.get_vector_store().db.db_path == tmp_path / "second.db"
