"""Tests for settings validation."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from clipsync.core.config import Settings

REQUIRED = {
    "twitch_client_id": "cid",
    "twitch_client_secret": "secret",
    "twitch_username": "streamer",
}


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("TWITCH_CLIENT_ID", "TWITCH_CLIENT_SECRET", "TWITCH_USERNAME", "CHECK_MODE"):
        monkeypatch.delenv(name, raising=False)


class TestSettings:
    def test_missing_credentials_fail(self) -> None:
        with pytest.raises(ValidationError):
            Settings(_env_file=None)  # type: ignore[call-arg]

    def test_defaults(self) -> None:
        settings = Settings(_env_file=None, **REQUIRED)

        assert settings.cron_schedule == "0 */6 * * *"
        assert settings.check_mode == "adaptive"
        assert settings.port == 3000
        assert settings.push_enabled is False
        assert len(settings.twitch_webhook_secret) == 64

    def test_reads_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TWITCH_CLIENT_ID", "from-env")
        monkeypatch.setenv("TWITCH_CLIENT_SECRET", "s")
        monkeypatch.setenv("TWITCH_USERNAME", "someone")
        monkeypatch.setenv("CHECK_MODE", "fixed")

        settings = Settings(_env_file=None)  # type: ignore[call-arg]

        assert settings.twitch_client_id == "from-env"
        assert settings.check_mode == "fixed"

    def test_invalid_cron_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Settings(_env_file=None, cron_schedule="every six hours", **REQUIRED)

    def test_page_size_bounds(self) -> None:
        with pytest.raises(ValidationError):
            Settings(_env_file=None, backfill_page_size=500, **REQUIRED)

    def test_log_level_falls_back_to_info(self) -> None:
        settings = Settings(_env_file=None, log_level="chatty", **REQUIRED)
        assert settings.log_level == "INFO"
