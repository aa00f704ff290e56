"""SMTP transport: one connection per message, independent of the IMAP session."""

from email.message import EmailMessage

import aiosmtplib
from loguru import logger


class SmtpTransport:
    """Send messages over SMTP.

    SMTP sends are stateless per message, so no connection is held between
    sends; each ``send()`` connects, authenticates, delivers and quits.

    Args:
        host: SMTP server hostname
        port: SMTP port (465 implicit TLS; 25/587 upgrade with STARTTLS)
        username: SMTP username (usually the email address)
        password: SMTP password or app-specific password
        start_tls: Use STARTTLS instead of implicit TLS
        timeout: Connect/command timeout in seconds
        verify_tls: Verify the server certificate
    """

    def __init__(
        self,
        host: str,
        port: int = 465,
        username: str = "",
        password: str = "",
        start_tls: bool = False,
        timeout: float = 30.0,
        verify_tls: bool = True,
    ):
        self._host = host
        self._port = port
        self._username = username
        self._password = password
        self._start_tls = start_tls
        self._timeout = timeout
        self._verify_tls = verify_tls

    async def send(self, message: EmailMessage, recipients: list[str]) -> str:
        """Deliver ``message`` to ``recipients``.

        Returns:
            The server's final response line

        Raises:
            aiosmtplib.SMTPException: On any SMTP failure (classified by the driver)
        """
        logger.debug("Sending message via SMTP {}:{} to {} recipient(s)", self._host, self._port, len(recipients))
        _, response = await aiosmtplib.send(
            message,
            recipients=recipients,
            hostname=self._host,
            port=self._port,
            username=self._username,
            password=self._password,
            use_tls=not self._start_tls,
            start_tls=self._start_tls,
            timeout=self._timeout,
            validate_certs=self._verify_tls,
        )
        return response
