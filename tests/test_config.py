import pytest
from pydantic import ValidationError

from squadbot.shared.config import Settings


def test_defaults():
    settings = Settings(_env_file=None)

    assert settings.posting_ttl_seconds == 11 * 60 * 60
    assert settings.squad_ttl_seconds > settings.posting_ttl_seconds
    assert settings.reconcile_interval_seconds == 30
    assert settings.max_capacity == 10
    assert settings.is_development


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("SQUADBOT_REDIS_URL", "redis://cache:6379/2")
    monkeypatch.setenv("SQUADBOT_RECONCILE_INTERVAL_SECONDS", "5")
    monkeypatch.setenv("SQUADBOT_ENVIRONMENT", "production")

    settings = Settings(_env_file=None)

    assert settings.redis_url == "redis://cache:6379/2"
    assert settings.reconcile_interval_seconds == 5
    assert settings.is_production


def test_squad_must_outlive_posting():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, posting_ttl_seconds=3600, squad_ttl_seconds=3600)
