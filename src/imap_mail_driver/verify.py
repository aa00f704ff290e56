"""Connection check used when an account is first set up."""

from loguru import logger
from pydantic import BaseModel

from imap_mail_driver.config import ConnectionConfig, DriverSettings
from imap_mail_driver.driver import ImapMailDriver
from imap_mail_driver.errors import ClassifiedError, ErrorKind


class VerificationResult(BaseModel):
    ok: bool
    kind: ErrorKind | None = None
    message: str | None = None


async def verify_connection(config: ConnectionConfig, settings: DriverSettings | None = None) -> VerificationResult:
    """Log in and list one INBOX message with a throw-away driver.

    Nothing is persisted and no credential store is consulted, so a failed
    check never removes an existing connection.

    Returns:
        VerificationResult; ``kind`` carries the classified error on failure
    """
    async with ImapMailDriver(config, settings=settings) as driver:
        try:
            await driver.list("INBOX", max_results=1)
        except ClassifiedError as e:
            logger.warning("Connection check failed for {}: {} ({})", config.email, e.kind.value, e.message)
            return VerificationResult(ok=False, kind=e.kind, message=e.message)

    logger.info("Connection check succeeded for {}", config.email)
    return VerificationResult(ok=True)
