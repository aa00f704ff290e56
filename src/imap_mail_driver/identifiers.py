"""Identifier codec: message ids, folder names and page tokens.

A message id is the opaque string ``"<mailbox>:<uid>"``. UIDs are only
meaningful inside their mailbox, so a UID is never inferred without an
explicit mailbox name.
"""

from dataclasses import dataclass

from imap_mail_driver.errors import InvalidIdentifierError, InvalidPageTokenError

# User-facing folder name → provider mailbox name (case-insensitive keys)
FOLDER_ALIASES: dict[str, str] = {
    "inbox": "INBOX",
    "sent": "Sent",
    "drafts": "Drafts",
    "trash": "Trash",
    "bin": "Trash",
    "spam": "Spam",
    "archive": "Archive",
}


@dataclass(frozen=True)
class MessageId:
    """Validated (mailbox, uid) pair behind an opaque message id."""

    mailbox: str
    uid: int

    def __post_init__(self) -> None:
        if not self.mailbox:
            raise InvalidIdentifierError("Message id has an empty mailbox name")
        if isinstance(self.uid, bool) or not isinstance(self.uid, int) or self.uid <= 0:
            raise InvalidIdentifierError(f"Message id has an invalid UID: {self.uid!r}")

    @classmethod
    def parse(cls, value: str) -> "MessageId":
        """Decode ``"mailbox:uid"``, splitting on the first colon.

        Raises:
            InvalidIdentifierError: If the colon, the mailbox or a numeric UID is missing
        """
        if not isinstance(value, str):
            raise InvalidIdentifierError(f"Message id must be a string, got {type(value).__name__}")
        mailbox, sep, uid_text = value.partition(":")
        if not sep:
            raise InvalidIdentifierError(f"Message id is not of the form mailbox:uid: {value!r}")
        if not (uid_text.isascii() and uid_text.isdigit()):
            raise InvalidIdentifierError(f"Message id has a non-numeric UID: {value!r}")
        return cls(mailbox, int(uid_text))

    def __str__(self) -> str:
        return f"{self.mailbox}:{self.uid}"


def encode(mailbox: str, uid: int) -> str:
    return str(MessageId(mailbox, uid))


def decode(value: str) -> tuple[str, int]:
    message_id = MessageId.parse(value)
    return message_id.mailbox, message_id.uid


def normalize_folder(name: str) -> str:
    """Map a user-facing folder name to the provider mailbox name.

    Unknown names (custom mailboxes) pass through unchanged.

    Example:
        >>> normalize_folder("inbox")
        'INBOX'
        >>> normalize_folder("Projects")
        'Projects'
    """
    return FOLDER_ALIASES.get(name.lower(), name)


@dataclass(frozen=True)
class PageToken:
    """Continuation point of a descending UID scan.

    ``last_uid`` is the highest UID the next page may contain; it is always
    one less than the last UID already returned, so resuming never yields a
    UID that a previous page returned.
    """

    last_uid: int
    page_size: int

    def encode(self) -> str:
        return f"{self.last_uid}:{self.page_size}"

    @classmethod
    def decode(cls, value: str | int, default_page_size: int) -> "PageToken":
        """Decode ``"<last_uid>:<page_size>"``; a bare ``"<last_uid>"`` is accepted too.

        Raises:
            InvalidPageTokenError: If either part is not a non-negative integer
        """
        text = str(value).strip()
        last_text, sep, size_text = text.partition(":")
        try:
            last_uid = int(last_text)
            page_size = int(size_text) if sep else default_page_size
        except ValueError as e:
            raise InvalidPageTokenError(f"Invalid page token: {value!r}") from e
        if last_uid < 0 or page_size <= 0:
            raise InvalidPageTokenError(f"Invalid page token: {value!r}")
        return cls(last_uid, page_size)
