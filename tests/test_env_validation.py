import os

import pytest

import env_validation
from env_validation import get_env_bool, get_env_int, validate_environment


def test_validate_environment_applies_db_default(monkeypatch):
    monkeypatch.setenv("DB_PATH", "")
    validate_environment()
    assert os.environ["DB_PATH"] == "data.db"


def test_validate_environment_rejects_bad_gap(monkeypatch):
    monkeypatch.setenv("SESSION_GAP_MINUTES", "-5")
    with pytest.raises(env_validation.EnvironmentError, match="SESSION_GAP_MINUTES"):
        validate_environment()


def test_get_env_int(monkeypatch):
    monkeypatch.delenv("RECENT_RESULTS_LIMIT", raising=False)
    assert get_env_int("RECENT_RESULTS_LIMIT", 500) == 500
    monkeypatch.setenv("RECENT_RESULTS_LIMIT", " 25 ")
    assert get_env_int("RECENT_RESULTS_LIMIT", 500) == 25
    monkeypatch.setenv("RECENT_RESULTS_LIMIT", "many")
    with pytest.raises(env_validation.EnvironmentError):
        get_env_int("RECENT_RESULTS_LIMIT", 500)


@pytest.mark.parametrize("value,expected", [("1", True), ("Yes", True), ("off", False), ("", False)])
def test_get_env_bool(monkeypatch, value, expected):
    monkeypatch.setenv("STATS_DEBUG_SESSIONS", value)
    assert get_env_bool("STATS_DEBUG_SESSIONS") is expected
