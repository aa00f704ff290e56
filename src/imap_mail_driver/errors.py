"""Error taxonomy and classifier for the IMAP mail driver.

Every public driver operation funnels failures through ``classify()`` so that
callers only ever see ``ClassifiedError``. Raw transport errors (socket,
imapclient, aiosmtplib) are first reduced to a string code, then matched in a
fixed order against the signature table; the first match wins.
"""

import errno
import re
import socket
import ssl
from collections.abc import Iterable, Mapping
from enum import Enum
from typing import Any

import aiosmtplib
from imapclient.exceptions import CapabilityError, IMAPClientError, LoginError


class ErrorKind(str, Enum):
    """Closed set of error kinds produced by ``classify()``."""

    CONNECTION_REFUSED = "CONNECTION_REFUSED"
    AUTHENTICATION_ERROR = "AUTHENTICATION_ERROR"
    TLS_ERROR = "TLS_ERROR"
    QUOTA_ERROR = "QUOTA_ERROR"
    SMTP_ERROR = "SMTP_ERROR"
    CAPABILITY_ERROR = "CAPABILITY_ERROR"
    NOT_FOUND = "NOT_FOUND"
    INVALID_REQUEST = "INVALID_REQUEST"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"

    @property
    def http_status(self) -> int:
        return _HTTP_STATUS[self]


_HTTP_STATUS: dict[ErrorKind, int] = {
    ErrorKind.CONNECTION_REFUSED: 503,
    ErrorKind.AUTHENTICATION_ERROR: 401,
    ErrorKind.TLS_ERROR: 502,
    ErrorKind.QUOTA_ERROR: 507,
    ErrorKind.SMTP_ERROR: 502,
    ErrorKind.CAPABILITY_ERROR: 501,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.INVALID_REQUEST: 400,
    ErrorKind.UNKNOWN_ERROR: 500,
}

CONNECTION_CODES = frozenset({"ECONNREFUSED", "ETIMEDOUT", "ENOTFOUND"})
AUTHENTICATION_CODES = frozenset({"AUTHENTICATIONFAILED", "INVALIDCREDENTIALS"})
TLS_CODES = frozenset({"ETLSNOTCAPABLE", "ESSLNOTCAPABLE"})

# Keys dropped from error context before it leaves the driver
_SECRET_KEY_PARTS = ("password", "secret", "token", "credential", "authorization")

_RESPONSE_CODE_RE = re.compile(r"\[([A-Z][A-Z-]*)[\] ]")


class MailDriverError(Exception):
    """Base class for errors raised by the driver itself (not the transport)."""


class InvalidIdentifierError(MailDriverError, ValueError):
    """Raised when a message identifier is not of the form ``mailbox:uid``."""


class InvalidRequestError(MailDriverError, ValueError):
    """Raised when an operation argument is out of range or malformed."""


class InvalidPageTokenError(InvalidRequestError):
    """Raised when a page token cannot be decoded."""


class MessageNotFoundError(MailDriverError):
    """Raised when a UID is not present in the selected mailbox."""

    def __init__(self, mailbox: str, uid: int):
        super().__init__(f"Message not found: mailbox={mailbox}, uid={uid}")
        self.mailbox = mailbox
        self.uid = uid


class FolderNotFoundError(MailDriverError):
    """Raised when a mailbox cannot be selected because it does not exist."""

    def __init__(self, folder: str):
        super().__init__(f"Mailbox does not exist: {folder}")
        self.folder = folder


class SessionNotReadyError(MailDriverError, RuntimeError):
    """Raised when a protocol step is attempted before ``connect()`` succeeded."""


class ClassifiedError(Exception):
    """Structured error surfaced to every caller of the driver.

    Attributes:
        kind: One of ``ErrorKind``
        http_status: HTTP-like status code for the kind
        operation: Public driver operation that failed (e.g. ``"list"``)
        message: Human readable description
        fatal: True if the session must be discarded (credentials likely invalid)
        context: Sanitised diagnostic context (never contains secrets)
        code: Raw error code the classification was based on, if any
    """

    def __init__(
        self,
        kind: ErrorKind,
        operation: str,
        message: str,
        fatal: bool,
        context: dict[str, Any] | None = None,
        code: str | None = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.http_status = kind.http_status
        self.operation = operation
        self.message = message
        self.fatal = fatal
        self.context = context or {}
        self.code = code

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "httpStatus": self.http_status,
            "operation": self.operation,
            "message": self.message,
            "fatal": self.fatal,
            "context": self.context,
        }

    def __repr__(self) -> str:
        return (
            f"ClassifiedError(kind={self.kind.value}, operation={self.operation!r}, "
            f"fatal={self.fatal}, message={self.message!r})"
        )


def sanitize_context(context: Mapping[str, Any] | None) -> dict[str, Any]:
    """Drop credential-looking keys and stringify values that are not JSON scalars."""
    clean: dict[str, Any] = {}
    for key, value in (context or {}).items():
        if any(part in key.lower() for part in _SECRET_KEY_PARTS):
            continue
        if isinstance(value, Mapping):
            clean[key] = sanitize_context(value)
        elif value is None or isinstance(value, (str, int, float, bool)):
            clean[key] = value
        elif isinstance(value, (list, tuple)):
            clean[key] = [v if isinstance(v, (str, int, float, bool)) else repr(v) for v in value]
        else:
            clean[key] = repr(value)
    return clean


def error_code(exc: BaseException) -> str | None:
    """Reduce a raw transport error to a string code.

    Order matters: aiosmtplib exceptions subclass OSError/TimeoutError and
    ssl.SSLError subclasses OSError, so both are checked before the errno path.
    """
    code = getattr(exc, "code", None)
    if isinstance(code, str) and code:
        return code

    if isinstance(exc, aiosmtplib.SMTPException):
        return _smtp_error_code(exc)

    if isinstance(exc, LoginError):
        return "AUTHENTICATIONFAILED"
    if isinstance(exc, IMAPClientError):
        match = _RESPONSE_CODE_RE.search(str(exc))
        if match:
            return match.group(1)
        if isinstance(exc, CapabilityError):
            return "ECAPABILITY"
        return None

    if isinstance(exc, ssl.SSLError):
        return "ESSLNOTCAPABLE"
    if isinstance(exc, socket.gaierror):
        return "ENOTFOUND"
    if isinstance(exc, TimeoutError):
        return "ETIMEDOUT"
    if isinstance(exc, OSError) and exc.errno is not None:
        return errno.errorcode.get(exc.errno)

    if isinstance(code, int):
        return str(code)
    return None


def _smtp_error_code(exc: aiosmtplib.SMTPException) -> str:
    if isinstance(exc, aiosmtplib.SMTPAuthenticationError):
        return "AUTHENTICATIONFAILED"
    if isinstance(exc, aiosmtplib.SMTPTimeoutError):
        return "ETIMEDOUT"
    if isinstance(exc, aiosmtplib.SMTPConnectError):
        return "ECONNREFUSED"
    if isinstance(exc, aiosmtplib.SMTPResponseException):
        return f"SMTP{exc.code}"
    # aiosmtplib reports a missing STARTTLS extension as a bare SMTPException
    if "tls" in str(exc).lower():
        return "ETLSNOTCAPABLE"
    return "SMTPERROR"


def classify(
    operation: str,
    raw_error: BaseException,
    context: Mapping[str, Any] | None = None,
    fatal_codes: Iterable[str] = (),
) -> ClassifiedError:
    """Map a raw failure into a ``ClassifiedError``.

    Signature table (first match wins):

    ======================================  ==================  ======  =====
    Signature                               Kind                Status  Fatal
    ======================================  ==================  ======  =====
    driver not-found / bad identifier       NOT_FOUND           404     no
    bad argument / undecodable page token  INVALID_REQUEST     400     no
    connection refused / timeout / DNS      CONNECTION_REFUSED  503     yes
    authentication failed / bad creds       AUTHENTICATION_ERROR 401    yes
    TLS/SSL not supported                   TLS_ERROR           502     no
    message mentions quota/storage          QUOTA_ERROR         507     no
    SMTP-prefixed code                      SMTP_ERROR          502     no
    "not supported" / "capability"          CAPABILITY_ERROR    501     no
    anything else                           UNKNOWN_ERROR       500     allowlist
    ======================================  ==================  ======  =====

    Args:
        operation: Public operation name
        raw_error: Exception raised by the transport or the driver
        context: Extra diagnostic context (sanitised before attaching)
        fatal_codes: Codes that make an otherwise unknown error fatal

    Returns:
        ClassifiedError (the input itself if it is already classified)
    """
    if isinstance(raw_error, ClassifiedError):
        return raw_error

    code = error_code(raw_error)
    detail = str(raw_error) or raw_error.__class__.__name__
    lowered = detail.lower()
    ctx = sanitize_context({**(context or {}), "error": detail, "error_type": type(raw_error).__name__})
    if code:
        ctx["code"] = code

    def build(kind: ErrorKind, message: str, fatal: bool) -> ClassifiedError:
        return ClassifiedError(kind, operation, message, fatal, ctx, code)

    if isinstance(raw_error, (MessageNotFoundError, FolderNotFoundError, InvalidIdentifierError)):
        return build(ErrorKind.NOT_FOUND, detail, False)
    if isinstance(raw_error, InvalidRequestError):
        return build(ErrorKind.INVALID_REQUEST, detail, False)

    if code in CONNECTION_CODES:
        return build(ErrorKind.CONNECTION_REFUSED, f"Connection to IMAP server failed: {detail}", True)
    if code in AUTHENTICATION_CODES:
        return build(
            ErrorKind.AUTHENTICATION_ERROR,
            "IMAP authentication failed. Please check your credentials.",
            True,
        )
    if code in TLS_CODES:
        return build(ErrorKind.TLS_ERROR, "The IMAP server does not support secure connections.", False)
    if code == "OVERQUOTA" or "quota" in lowered or "storage" in lowered:
        return build(ErrorKind.QUOTA_ERROR, "Email storage quota exceeded.", False)
    if code and code.startswith("SMTP"):
        return build(ErrorKind.SMTP_ERROR, f"Email sending failed: {detail}", False)
    if code == "ECAPABILITY" or "not supported" in lowered or "capability" in lowered:
        return build(
            ErrorKind.CAPABILITY_ERROR,
            f"The IMAP server doesn't support required features: {detail}",
            False,
        )

    fatal = code is not None and code in set(fatal_codes)
    return build(ErrorKind.UNKNOWN_ERROR, f"IMAP operation {operation} failed: {detail}", fatal)
