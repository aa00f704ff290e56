"""Unit tests for connection configuration and settings."""

import io

import pytest
from pydantic import ValidationError

from imap_mail_driver.config import ConnectionConfig, DriverSettings, configure_logging, imap_host_for, smtp_host_for


@pytest.mark.parametrize(
    "email,imap,smtp",
    [
        ("user@gmail.com", "imap.gmail.com", "smtp.gmail.com"),
        ("user@Hotmail.com", "outlook.office365.com", "smtp.office365.com"),
        ("user@icloud.com", "imap.mail.me.com", "smtp.mail.me.com"),
        ("user@example.org", "imap.example.org", "smtp.example.org"),
    ],
)
def test_host_derivation(email, imap, smtp):
    assert imap_host_for(email) == imap
    assert smtp_host_for(email) == smtp


def test_overrides_win_over_derived_hosts():
    config = ConnectionConfig(email="user@gmail.com", secret="pw", imap_host="mail.internal", smtp_port=587)

    assert config.resolved_imap_host == "mail.internal"
    assert config.resolved_smtp_host == "smtp.gmail.com"
    assert config.smtp_start_tls is True


def test_default_ports_use_implicit_tls():
    config = ConnectionConfig(email="user@gmail.com", secret="pw")

    assert config.imap_port == 993
    assert config.smtp_port == 465
    assert config.smtp_start_tls is False


def test_secret_is_not_exposed_in_repr():
    config = ConnectionConfig(email="user@gmail.com", secret="hunter2")

    assert "hunter2" not in repr(config)
    assert config.secret.get_secret_value() == "hunter2"


def test_email_without_at_is_rejected():
    with pytest.raises(ValidationError):
        ConnectionConfig(email="not-an-address", secret="pw")


def test_settings_from_environment(monkeypatch):
    monkeypatch.setenv("IMAP_DRIVER_AUTH_TIMEOUT", "12")
    monkeypatch.setenv("IMAP_DRIVER_DEFAULT_PAGE_SIZE", "25")

    settings = DriverSettings()

    assert settings.auth_timeout == 12
    assert settings.default_page_size == 25
    assert settings.fatal_error_codes == ["invalid_grant", "invalid_credentials"]


def test_configure_logging_respects_level():
    from loguru import logger

    sink = io.StringIO()
    configure_logging(DriverSettings(log_level="warning"), sink=sink)

    logger.info("quiet")
    logger.warning("loud")

    output = sink.getvalue()
    assert "loud" in output
    assert "quiet" not in output
