"""Connection configuration and driver settings."""

import sys
from functools import lru_cache
from typing import Any

from loguru import logger
from pydantic import BaseModel, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_IMAP_PORT = 993
DEFAULT_SMTP_PORT = 465

# SMTP ports that speak plain SMTP first and upgrade with STARTTLS
STARTTLS_PORTS = frozenset({25, 587})

IMAP_HOSTS: dict[str, str] = {
    "gmail.com": "imap.gmail.com",
    "outlook.com": "outlook.office365.com",
    "hotmail.com": "outlook.office365.com",
    "live.com": "outlook.office365.com",
    "yahoo.com": "imap.mail.yahoo.com",
    "aol.com": "imap.aol.com",
    "icloud.com": "imap.mail.me.com",
}

SMTP_HOSTS: dict[str, str] = {
    "gmail.com": "smtp.gmail.com",
    "outlook.com": "smtp.office365.com",
    "hotmail.com": "smtp.office365.com",
    "live.com": "smtp.office365.com",
    "yahoo.com": "smtp.mail.yahoo.com",
    "aol.com": "smtp.aol.com",
    "icloud.com": "smtp.mail.me.com",
}


def email_domain(email: str) -> str:
    return email.rsplit("@", 1)[1].lower()


def imap_host_for(email: str) -> str:
    """IMAP host for an address, falling back to ``imap.<domain>``."""
    domain = email_domain(email)
    return IMAP_HOSTS.get(domain, f"imap.{domain}")


def smtp_host_for(email: str) -> str:
    """SMTP host for an address, falling back to ``smtp.<domain>``."""
    domain = email_domain(email)
    return SMTP_HOSTS.get(domain, f"smtp.{domain}")


class DriverSettings(BaseSettings):
    """Process-wide driver settings loaded from ``IMAP_DRIVER_*`` environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="IMAP_DRIVER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    auth_timeout: float = Field(default=30.0, gt=0)
    verify_tls: bool = True
    fatal_error_codes: list[str] = Field(default_factory=lambda: ["invalid_grant", "invalid_credentials"])
    default_page_size: int = Field(default=100, gt=0)
    log_level: str = "INFO"


@lru_cache
def get_settings() -> DriverSettings:
    return DriverSettings()


class ConnectionConfig(BaseModel):
    """Account credentials plus optional server overrides.

    Absent overrides, hosts are derived from the email domain.
    """

    email: str
    secret: SecretStr
    user_id: str | None = None
    imap_host: str | None = None
    imap_port: int = DEFAULT_IMAP_PORT
    smtp_host: str | None = None
    smtp_port: int = DEFAULT_SMTP_PORT

    @field_validator("email")
    @classmethod
    def _validate_email(cls, value: str) -> str:
        value = value.strip()
        local, sep, domain = value.rpartition("@")
        if not sep or not local or not domain:
            raise ValueError(f"Invalid email address: {value}")
        return value

    @property
    def resolved_imap_host(self) -> str:
        return self.imap_host or imap_host_for(self.email)

    @property
    def resolved_smtp_host(self) -> str:
        return self.smtp_host or smtp_host_for(self.email)

    @property
    def smtp_start_tls(self) -> bool:
        return self.smtp_port in STARTTLS_PORTS


def configure_logging(settings: DriverSettings | None = None, sink: Any = sys.stderr) -> int:
    """Route loguru output to ``sink`` at ``settings.log_level``.

    Intended for host applications and scripts; the driver itself only logs.

    Returns:
        The loguru handler id
    """
    settings = settings or get_settings()
    logger.remove()
    return logger.add(
        sink,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>",
        level=settings.log_level.upper(),
    )
