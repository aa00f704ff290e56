"""Unit tests for message ids, folder names and page tokens."""

import pytest

from imap_mail_driver.errors import InvalidIdentifierError, InvalidPageTokenError
from imap_mail_driver.identifiers import MessageId, PageToken, decode, encode, normalize_folder


def test_encode_decode_round_trip():
    assert decode(encode("INBOX", 42)) == ("INBOX", 42)
    assert encode("INBOX", 42) == "INBOX:42"


def test_mailbox_names_with_colons_split_on_first_colon():
    # Everything after the first colon must be the numeric UID
    with pytest.raises(InvalidIdentifierError):
        MessageId.parse("Work:Clients:7")


def test_mailbox_with_hierarchy_delimiter_round_trips():
    message_id = MessageId.parse("Work/Clients:7")

    assert message_id.mailbox == "Work/Clients"
    assert message_id.uid == 7
    assert str(message_id) == "Work/Clients:7"


@pytest.mark.parametrize("value", ["INBOX", ":42", "INBOX:", "INBOX:abc", "INBOX:-3", "INBOX:0", "INBOX:４２"])
def test_malformed_ids_are_rejected(value):
    with pytest.raises(InvalidIdentifierError):
        MessageId.parse(value)


def test_non_string_id_is_rejected():
    with pytest.raises(InvalidIdentifierError):
        MessageId.parse(42)


def test_invalid_identifier_is_a_value_error():
    with pytest.raises(ValueError):
        MessageId.parse("nope")


@pytest.mark.parametrize(
    "name,expected",
    [
        ("inbox", "INBOX"),
        ("INBOX", "INBOX"),
        ("Inbox", "INBOX"),
        ("sent", "Sent"),
        ("drafts", "Drafts"),
        ("bin", "Trash"),
        ("trash", "Trash"),
        ("spam", "Spam"),
        ("archive", "Archive"),
        ("Projects", "Projects"),
    ],
)
def test_normalize_folder(name, expected):
    assert normalize_folder(name) == expected


def test_page_token_encodes_last_uid_and_size():
    assert PageToken(4, 2).encode() == "4:2"
    assert PageToken.decode("4:2", default_page_size=100) == PageToken(4, 2)


def test_bare_page_token_uses_default_size():
    assert PageToken.decode("17", default_page_size=50) == PageToken(17, 50)
    assert PageToken.decode(17, default_page_size=50) == PageToken(17, 50)


@pytest.mark.parametrize("value", ["abc", "4:x", "-1:2", "4:0", ""])
def test_bad_page_tokens_are_rejected(value):
    with pytest.raises(InvalidPageTokenError):
        PageToken.decode(value, default_page_size=100)
