"""Unit tests for the account-setup connection check."""

import pytest
from imapclient.exceptions import LoginError

from imap_mail_driver import ErrorKind, verify_connection


@pytest.mark.asyncio
async def test_verify_connection_success(imap_client_class, mock_imap_client, config, settings):
    result = await verify_connection(config, settings)

    assert result.ok is True
    assert result.kind is None
    mock_imap_client.select_folder.assert_called_once_with("INBOX", readonly=True)
    mock_imap_client.logout.assert_called_once()


@pytest.mark.asyncio
async def test_verify_connection_reports_kind(imap_client_class, mock_imap_client, config, settings):
    mock_imap_client.login.side_effect = LoginError("[AUTHENTICATIONFAILED] Invalid credentials")

    result = await verify_connection(config, settings)

    assert result.ok is False
    assert result.kind is ErrorKind.AUTHENTICATION_ERROR
    assert "credentials" in result.message
