import pytest

from exavy.config import AppConfig, load_config


def test_load_config_requires_secret_key_in_non_dev(monkeypatch):
    monkeypatch.setenv("RENDER", "true")
    monkeypatch.delenv("FLASK_ENV", raising=False)
    monkeypatch.delenv("SENTRY_ENVIRONMENT", raising=False)
    monkeypatch.delenv("ENV", raising=False)
    monkeypatch.delenv("FLASK_SECRET_KEY", raising=False)

    with pytest.raises(RuntimeError):
        load_config()


def test_load_config_allows_missing_secret_in_dev(monkeypatch):
    monkeypatch.delenv("RENDER", raising=False)
    monkeypatch.setenv("FLASK_ENV", "development")
    monkeypatch.setenv("FLASK_SECRET_KEY", "")

    cfg = load_config()
    assert cfg.flask_secret_key == ""


def test_otp_pepper_defaults_to_secret_key(monkeypatch):
    monkeypatch.setenv("FLASK_SECRET_KEY", "secret-1")
    monkeypatch.delenv("OTP_PEPPER", raising=False)

    assert AppConfig().effective_otp_pepper == "secret-1"

    monkeypatch.setenv("OTP_PEPPER", "pepper-1")
    assert AppConfig().effective_otp_pepper == "pepper-1"


def test_integer_settings_are_clamped(monkeypatch):
    monkeypatch.setenv("OTP_VERIFY_RATE_LIMIT_MAX_REQUESTS", "0")
    monkeypatch.setenv("OTP_SEND_RATE_LIMIT_WINDOW_SECONDS", "not-a-number")

    cfg = AppConfig()

    assert cfg.otp_verify_rate_limit_max_requests == 1
    assert cfg.otp_send_rate_limit_window_seconds == 600


def test_admin_lists_are_parsed(monkeypatch):
    monkeypatch.setenv("ADMIN_UIDS", "u1, u2,,")
    monkeypatch.setenv("ADMIN_EMAILS", "Admin@Example.com")

    cfg = AppConfig()

    assert cfg.admin_uids == frozenset({"u1", "u2"})
    assert cfg.admin_emails == frozenset({"admin@example.com"})
