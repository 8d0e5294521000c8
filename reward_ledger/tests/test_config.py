"""Tests for environment-driven settings."""

from reward_ledger.config import Settings


class TestSettingsFromEnv:
    def test_defaults(self, monkeypatch):
        for name in (
            "REWARD_LEDGER_DB_PATH", "REWARD_LEDGER_LOCK_TIMEOUT",
            "REWARD_LEDGER_ONE_CLAIM_PER_USER", "REWARD_LEDGER_ADMIN_TOKEN",
            "REWARD_LEDGER_CORS_ORIGINS", "REWARD_LEDGER_LOG_LEVEL",
        ):
            monkeypatch.delenv(name, raising=False)

        settings = Settings.from_env()

        assert settings.db_path == "rewards.db"
        assert settings.lock_timeout == 5.0
        assert settings.once_per_user is False
        assert settings.admin_token is None
        assert settings.cors_origins == ["*"]
        assert settings.log_level == "INFO"

    def test_overrides(self, monkeypatch):
        monkeypatch.setenv("REWARD_LEDGER_DB_PATH", "/tmp/ledger.db")
        monkeypatch.setenv("REWARD_LEDGER_LOCK_TIMEOUT", "0.5")
        monkeypatch.setenv("REWARD_LEDGER_ONE_CLAIM_PER_USER", "Yes")
        monkeypatch.setenv("REWARD_LEDGER_ADMIN_TOKEN", "s3cret")
        monkeypatch.setenv("REWARD_LEDGER_CORS_ORIGINS", "https://a.example, https://b.example")
        monkeypatch.setenv("REWARD_LEDGER_LOG_LEVEL", "debug")

        settings = Settings.from_env()

        assert settings.db_path == "/tmp/ledger.db"
        assert settings.lock_timeout == 0.5
        assert settings.once_per_user is True
        assert settings.admin_token == "s3cret"
        assert settings.cors_origins == ["https://a.example", "https://b.example"]
        assert settings.log_level == "DEBUG"

    def test_invalid_timeout_keeps_default(self, monkeypatch):
        monkeypatch.setenv("REWARD_LEDGER_LOCK_TIMEOUT", "soon")

        assert Settings.from_env().lock_timeout == 5.0
