from __future__ import annotations

import json

import pytest

from backend import db
from backend.config import ConfigurationError, SyncSettings, first_env, get_bool, get_int, require_env
from backend.scripts import db_sanity
from runner.sync.http import _http_log


def test_settings_defaults() -> None:
    settings = SyncSettings.from_env()

    assert settings.cooldown_sec == 30.0
    assert settings.max_rate_limit_retries == 0
    assert settings.transient_retries == 0
    assert settings.idle_pause_sec == 5.0
    assert settings.table == "characters"
    assert settings.rawg_ordering == "-rating"


def test_settings_read_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SYNC_RATE_LIMIT_COOLDOWN_SEC", "12.5")
    monkeypatch.setenv("SYNC_TRANSIENT_RETRIES", "3")
    monkeypatch.setenv("SYNC_MAX_RATE_LIMIT_RETRIES", "-4")
    monkeypatch.setenv("SYNC_UPSERT_BATCH", "not-a-number")
    monkeypatch.setenv("SYNC_TABLE", " characters_staging ")

    settings = SyncSettings.from_env()

    assert settings.cooldown_sec == 12.5
    assert settings.transient_retries == 3
    assert settings.max_rate_limit_retries == 0
    assert settings.upsert_batch == 50
    assert settings.table == "characters_staging"


def test_env_getters(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SYNC_TEST_FLAG", "Yes")
    monkeypatch.setenv("SYNC_TEST_INT", "7")
    monkeypatch.setenv("SYNC_TEST_B", "second")

    assert get_bool("SYNC_TEST_FLAG") is True
    assert get_bool("SYNC_TEST_MISSING", default=True) is True
    assert get_int("SYNC_TEST_INT") == 7
    assert first_env("SYNC_TEST_A", "SYNC_TEST_B") == "second"
    with pytest.raises(ConfigurationError, match="SYNC_TEST_A.*--sources"):
        require_env("SYNC_TEST_A", hint="--sources")


def test_create_client_names_missing_variables() -> None:
    with pytest.raises(ConfigurationError) as exc:
        db.create_client()
    assert "SUPABASE_URL or NEXT_PUBLIC_SUPABASE_URL" in str(exc.value)
    assert "SUPABASE_SERVICE_ROLE_KEY" in str(exc.value)


def test_db_sanity_json(fake_db, monkeypatch: pytest.MonkeyPatch, capsys) -> None:
    monkeypatch.setattr(db_sanity, "load_env", lambda: None)
    monkeypatch.setattr(db_sanity, "get_client", lambda: fake_db)
    fake_db.tables["characters"] = [
        {"name": "Frieren", "source_api": "anilist", "external_id": "11"},
        {"name": "Vi", "source_api": "tmdb", "external_id": "tv_100_7"},
    ]

    assert db_sanity.main(["--json"]) == 0

    out = json.loads(capsys.readouterr().out)
    assert out["counts"] == {"anilist": 1, "tmdb": 1, "rawg": 0, "fandom": 0}
    assert [r["name"] for r in out["sample"]] == ["Frieren", "Vi"]


def test_zero_is_a_valid_setting(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SYNC_IDLE_PAUSE_SEC", "0")
    monkeypatch.setenv("SYNC_RATE_LIMIT_COOLDOWN_SEC", "0")
    monkeypatch.setenv("SYNC_UPSERT_BATCH", "0")
    monkeypatch.setenv("SYNC_BACKOFF_CAP_SEC", "inf")

    settings = SyncSettings.from_env()

    assert settings.idle_pause_sec == 0.0
    assert settings.cooldown_sec == 0.0
    assert settings.upsert_batch == 1
    assert settings.backoff_cap_sec == 30.0


def test_http_log_flag_reads_boolean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    assert _http_log() is False
    monkeypatch.setenv("SYNC_HTTP_LOG", "true")
    assert _http_log() is True
