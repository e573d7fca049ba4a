import importlib

import pytest

import backend.config as config
import backend.main as main
from backend.logger import logger


def test_test_environment_passes_startup_check():
    assert config.validate_startup_config() == []


def test_default_secrets_are_rejected(monkeypatch):
    monkeypatch.setattr(config, "SESSION_SECRET", "ticketdesk-session-secret-change-me")
    monkeypatch.setattr(config, "ADMIN_PASSWORD", "admin123")

    violations = config.validate_startup_config()
    assert "TICKETDESK_SESSION_SECRET uses a known insecure default." in violations
    assert "TICKETDESK_ADMIN_PASSWORD uses a known insecure default." in violations


def test_missing_and_short_secrets_are_rejected(monkeypatch):
    monkeypatch.setattr(config, "SESSION_SECRET", "")
    monkeypatch.setattr(config, "ADMIN_PASSWORD", "")
    violations = config.validate_startup_config()
    assert "TICKETDESK_SESSION_SECRET is not set." in violations
    assert "TICKETDESK_ADMIN_PASSWORD is not set." in violations

    monkeypatch.setattr(config, "SESSION_SECRET", "too-short")
    assert any("at least 32 characters" in v for v in config.validate_startup_config())


def test_samesite_none_requires_secure_cookie(monkeypatch):
    monkeypatch.setattr(config, "COOKIE_SAMESITE", "none")
    monkeypatch.setattr(config, "COOKIE_SECURE", False)
    assert config.validate_startup_config() == [
        "TICKETDESK_COOKIE_SAMESITE=none requires TICKETDESK_COOKIE_SECURE=true."
    ]

    monkeypatch.setattr(config, "COOKIE_SECURE", True)
    assert config.validate_startup_config() == []


def test_enforce_startup_config_exits_non_zero(monkeypatch, caplog):
    monkeypatch.setattr(config, "SESSION_SECRET", "changeme")

    with pytest.raises(SystemExit) as excinfo:
        main.enforce_startup_config()

    assert excinfo.value.code == 1
    assert any("Startup check failed" in r.getMessage() for r in caplog.records)


def test_parse_helpers():
    assert config._parse_bool("Yes", False) is True
    assert config._parse_bool("off", True) is False
    assert config._parse_bool("maybe", True) is True
    assert config._parse_csv(" a, ,b ", ["x"]) == ["a", "b"]
    assert config._parse_csv("", ["x"]) == ["x"]
    assert config._parse_samesite("Strict") == "strict"
    assert config._parse_samesite("bogus") == "lax"


def test_unknown_log_level_falls_back_to_info(monkeypatch):
    assert config._parse_log_level(" debug ") == "DEBUG"
    assert config._parse_log_level("verbose") == "INFO"
    assert config._parse_log_level(None) == "INFO"

    monkeypatch.setenv("TICKETDESK_LOG_LEVEL", "verbose")
    try:
        importlib.reload(config)
        assert config.LOG_LEVEL == "INFO"
    finally:
        monkeypatch.delenv("TICKETDESK_LOG_LEVEL")
        importlib.reload(config)


def test_log_format_matches_documented_layout():
    (handler,) = logger.handlers
    assert handler.formatter._fmt == "%(asctime)s - %(levelname)s - %(message)s"
