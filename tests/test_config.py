import pytest
from pydantic import ValidationError

from sprig.config import SprigSettings


def test_sprig_settings_defaults(monkeypatch):
    for name in ("SPRIG_CLIENT", "SPRIG_TIMEOUT", "SPRIG_RETRY_LIMIT", "SPRIG_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)

    settings = SprigSettings(_env_file=None)
    assert settings.client == "httpx"
    assert settings.timeout == 30.0
    assert settings.request_timeout is None
    assert settings.retry_limit == 2
    assert settings.log_level == "INFO"


def test_sprig_settings_env(monkeypatch):
    # Set environment variables to test values
    monkeypatch.setenv("SPRIG_CLIENT", "aiohttp")
    monkeypatch.setenv("SPRIG_TIMEOUT", "15")
    monkeypatch.setenv("SPRIG_REQUEST_TIMEOUT", "2.5")
    monkeypatch.setenv("SPRIG_RETRY_LIMIT", "4")

    settings = SprigSettings(_env_file=None)
    assert settings.client == "aiohttp"
    assert settings.timeout == 15
    assert settings.request_timeout == 2.5
    assert settings.retry_limit == 4


def test_sprig_settings_rejects_negative_retry_limit(monkeypatch):
    monkeypatch.setenv("SPRIG_RETRY_LIMIT", "-1")
    with pytest.raises(ValidationError):
        SprigSettings(_env_file=None)
