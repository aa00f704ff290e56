"""Shared fixtures: a mocked IMAPClient and raw RFC 822 message builders."""

from email.message import EmailMessage
from unittest.mock import AsyncMock, Mock, patch

import pytest
from imapclient.response_types import SearchIds

from imap_mail_driver import ConnectionConfig, DriverSettings, ImapMailDriver, ImapSession


def make_raw_message(
    subject: str = "Quarterly report",
    sender: str = "John Doe <john@example.com>",
    to: str = "Jane Doe <jane@example.com>",
    cc: str | None = None,
    text: str = "Hello World",
    html: str | None = None,
    attachment: tuple[str, bytes, str] | None = None,
    message_id: str = "<msg-123@example.com>",
) -> bytes:
    """Build raw message bytes the way a server would return BODY[]."""
    msg = EmailMessage()
    msg["From"] = sender
    msg["To"] = to
    if cc:
        msg["Cc"] = cc
    msg["Subject"] = subject
    msg["Date"] = "Mon, 15 Dec 2025 10:00:00 +0000"
    msg["Message-ID"] = message_id
    msg.set_content(text)
    if html:
        msg.add_alternative(html, subtype="html")
    if attachment:
        filename, content, content_type = attachment
        maintype, subtype = content_type.split("/")
        msg.add_attachment(content, maintype=maintype, subtype=subtype, filename=filename)
    return msg.as_bytes()


@pytest.fixture
def mock_imap_client():
    """Create mocked IMAPClient instance."""
    client = Mock()
    # Mock login to return successfully
    client.login.return_value = None
    # Mock select_folder to return select info
    client.select_folder.return_value = {
        b"EXISTS": 100,
        b"UNSEEN": 5,
        b"UIDNEXT": 150,
    }
    client.search.return_value = SearchIds([])
    client.fetch.return_value = {}
    client.append.return_value = b"[APPENDUID 1 77] APPEND completed"
    client.list_folders.return_value = [
        ((b"\\HasNoChildren",), b"/", "INBOX"),
        ((b"\\HasNoChildren", b"\\Sent"), b"/", "Sent"),
    ]
    return client


@pytest.fixture
def imap_client_class(mock_imap_client):
    """Patch the IMAPClient class used by the session."""
    with patch("imap_mail_driver.session.IMAPClient", return_value=mock_imap_client) as client_class:
        yield client_class


@pytest.fixture
def session(imap_client_class):
    """ImapSession whose connections go to the mocked client."""
    session = ImapSession(
        host="imap.test.com",
        port=993,
        username="test@test.com",
        password="password",  # pragma: allowlist secret
    )
    yield session
    session.shutdown()


@pytest.fixture
def settings():
    return DriverSettings(auth_timeout=5, default_page_size=2)


@pytest.fixture
def config():
    return ConnectionConfig(
        email="test@test.com",
        secret="password",  # pragma: allowlist secret
        user_id="user-1",
    )


@pytest.fixture
def store():
    store = Mock()
    store.delete_active_connection = AsyncMock(return_value=None)
    return store


@pytest.fixture
def driver(imap_client_class, config, settings, store):
    """ImapMailDriver wired to the mocked IMAPClient and a mock connection store."""
    driver = ImapMailDriver(config, settings=settings, store=store)
    yield driver
    driver.session.shutdown()
