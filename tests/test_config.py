"""Tests for environment-driven settings."""
from agentflow_core.config import Settings


class TestSettingsFromEnv:
    """Test Settings.from_env."""

    def test_defaults(self, monkeypatch):
        for name in ("AGENTFLOW_AUDIT_LOG_DEFAULT_LIMIT", "AGENTFLOW_AUDIT_LOG_MAX_LIMIT", "AGENTFLOW_CORS_ORIGINS"):
            monkeypatch.delenv(name, raising=False)

        settings = Settings.from_env()

        assert settings.audit_log_default_limit == 50
        assert settings.audit_log_max_limit == 500
        assert settings.cors_origins == ["*"]

    def test_overrides(self, monkeypatch):
        monkeypatch.setenv("AGENTFLOW_AUDIT_LOG_DEFAULT_LIMIT", "20")
        monkeypatch.setenv("AGENTFLOW_AUDIT_LOG_MAX_LIMIT", "200")
        monkeypatch.setenv("AGENTFLOW_CORS_ORIGINS", "http://a.test, http://b.test")
        monkeypatch.setenv("AGENTFLOW_LOG_LEVEL", "debug")

        settings = Settings.from_env()

        assert settings.audit_log_default_limit == 20
        assert settings.audit_log_max_limit == 200
        assert settings.cors_origins == ["http://a.test", "http://b.test"]
        assert settings.log_level == "DEBUG"
