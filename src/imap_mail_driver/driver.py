"""Provider-agnostic mailbox driver over an IMAP session plus SMTP sends.

Every public operation follows the same path: ensure a ready session,
resolve identifiers, run the protocol steps, and route any failure through
``classify()`` so callers only ever see ``ClassifiedError``. Operations are
serialised with a lock because the selected mailbox is session-global state.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from email.message import EmailMessage
from email.policy import SMTP as SMTP_POLICY
from typing import Any

from loguru import logger

from imap_mail_driver.compose import build_draft, build_outgoing
from imap_mail_driver.config import ConnectionConfig, DriverSettings, get_settings
from imap_mail_driver.errors import (
    ClassifiedError,
    ErrorKind,
    InvalidIdentifierError,
    InvalidRequestError,
    MessageNotFoundError,
    classify,
)
from imap_mail_driver.identifiers import MessageId, PageToken, encode, normalize_folder
from imap_mail_driver.labels import LabelManager, label_for
from imap_mail_driver.models import (
    DraftData,
    DraftResult,
    EmailAlias,
    FolderCount,
    Label,
    ListResult,
    NormalizedMessage,
    OutgoingMessage,
    ParsedDraft,
    SendResult,
    ThreadSummary,
    ThreadView,
    TokenSet,
    UserInfo,
)
from imap_mail_driver.parsing import parse_message
from imap_mail_driver.search import build_criteria, paginate
from imap_mail_driver.session import ImapSession
from imap_mail_driver.smtp import SmtpTransport
from imap_mail_driver.store import ConnectionStore

SENT_MAILBOX = "Sent"
DRAFTS_MAILBOX = "Drafts"
TRASH_MAILBOX = "Trash"

COUNT_FOLDERS = ("INBOX", "Sent", "Drafts", "Trash", "Spam", "Archive")

SEEN = "\\Seen"
DELETED = "\\Deleted"
DRAFT = "\\Draft"

CLIENT_DRAFT_PREFIX = "draft-"


class ImapMailDriver:
    """Mailbox operations (list/get/send/delete/label/draft) for one IMAP account.

    The driver owns exactly one IMAP session, created lazily on the first
    operation, and sends mail over a fresh SMTP connection per message.

    Args:
        config: Account credentials and optional server overrides
        settings: Driver settings (default: ``get_settings()``)
        store: Connection store asked to forget credentials the server rejects

    Example:
        >>> config = ConnectionConfig(email="user@example.com", secret="app-password")
        >>> async with ImapMailDriver(config) as driver:
        ...     page = await driver.list("inbox", max_results=20)
        ...     thread = await driver.get(page.threads[0].id)
    """

    def __init__(
        self,
        config: ConnectionConfig,
        settings: DriverSettings | None = None,
        store: ConnectionStore | None = None,
    ):
        self._config = config
        self._settings = settings or get_settings()
        self._store = store
        secret = config.secret.get_secret_value()

        self._session = ImapSession(
            host=config.resolved_imap_host,
            port=config.imap_port,
            username=config.email,
            password=secret,
            timeout=self._settings.auth_timeout,
            verify_tls=self._settings.verify_tls,
        )
        self._smtp = SmtpTransport(
            host=config.resolved_smtp_host,
            port=config.smtp_port,
            username=config.email,
            password=secret,
            start_tls=config.smtp_start_tls,
            timeout=self._settings.auth_timeout,
            verify_tls=self._settings.verify_tls,
        )
        self._labels = LabelManager(self._session)
        self._lock = asyncio.Lock()

    @property
    def session(self) -> ImapSession:
        return self._session

    async def __aenter__(self) -> ImapMailDriver:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Log out and release the session worker thread."""
        async with self._lock:
            await self._session.close()
            self._session.shutdown()

    # ------------------------------------------------------------------
    # Failure handling
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _operation(self, operation: str, **context: Any) -> AsyncIterator[None]:
        """Serialise an operation and classify anything it raises."""
        async with self._lock:
            try:
                yield
            except Exception as e:
                error = classify(operation, e, context, self._settings.fatal_error_codes)
                await self._handle_failure(error)
                raise error from e

    async def _handle_failure(self, error: ClassifiedError) -> None:
        logger.error(
            "IMAP operation {} failed for {}: {} {} ({})",
            error.operation,
            self._config.email,
            error.kind.value,
            error.http_status,
            error.message,
        )
        if not error.fatal:
            return

        await self._session.close()

        credential_failure = error.kind in (ErrorKind.AUTHENTICATION_ERROR, ErrorKind.UNKNOWN_ERROR)
        if credential_failure and self._store is not None and self._config.user_id:
            try:
                await self._store.delete_active_connection(self._config.user_id)
                logger.info("Removed stored connection for user {} after {}", self._config.user_id, error.kind.value)
            except Exception as e:
                logger.warning("Could not remove stored connection for user {}: {}", self._config.user_id, e)

    # ------------------------------------------------------------------
    # Shared protocol steps
    # ------------------------------------------------------------------

    async def _fetch_full(self, message_id: MessageId, mark_seen: bool) -> NormalizedMessage:
        """Fetch and parse one complete message.

        ``BODY[]`` on a read-write selection sets ``\\Seen`` server-side;
        ``BODY.PEEK[]`` leaves flags alone.
        """
        await self._session.select_mailbox(message_id.mailbox, readonly=not mark_seen)
        field = "BODY[]" if mark_seen else "BODY.PEEK[]"
        data = await self._session.fetch([message_id.uid], [field, "FLAGS"])

        item = data.get(message_id.uid)
        if not item or b"BODY[]" not in item:
            raise MessageNotFoundError(message_id.mailbox, message_id.uid)

        return parse_message(
            item[b"BODY[]"],
            str(message_id),
            message_id.mailbox,
            flags=item.get(b"FLAGS"),
        )

    async def _list_mailbox(
        self,
        mailbox: str,
        query: str | None,
        max_results: int | None,
        page_token: str | int | None,
    ) -> ListResult:
        if max_results is not None and max_results <= 0:
            raise InvalidRequestError(f"max_results must be positive, got {max_results}")

        token = PageToken.decode(page_token, self._settings.default_page_size) if page_token else None
        page_size = max_results or (token.page_size if token else self._settings.default_page_size)

        await self._session.select_mailbox(mailbox, readonly=True)
        criteria, charset = build_criteria(query)
        uids = await self._session.search(criteria, charset)
        page = paginate(uids, page_size, token)

        # Header-level data only; bodies are deferred to get()
        data = await self._session.fetch(page.uids, ["BODY.PEEK[HEADER]", "FLAGS"])

        threads: list[ThreadSummary] = []
        for uid in page.uids:
            if uid not in data:
                continue
            item_id = encode(mailbox, uid)
            message = parse_message(
                data[uid].get(b"BODY[HEADER]", b""),
                item_id,
                mailbox,
                flags=data[uid].get(b"FLAGS"),
                headers_only=True,
            )
            threads.append(ThreadSummary(id=item_id, message=message))

        logger.debug("Listed {} of {} message(s) in {}", len(threads), len(uids), mailbox)
        return ListResult(
            threads=threads,
            next_page_token=page.next_token.encode() if page.next_token else None,
        )

    async def _delete_message(self, message_id: MessageId) -> None:
        """Move to Trash; if that fails, set ``\\Deleted`` in place."""
        await self._session.select_mailbox(message_id.mailbox, readonly=False)
        if message_id.mailbox != TRASH_MAILBOX:
            try:
                await self._session.move([message_id.uid], TRASH_MAILBOX)
                logger.debug("Moved {} to {}", message_id, TRASH_MAILBOX)
                return
            except Exception as e:
                if not self._session.is_ready:
                    # Connection lost mid-move; there is nothing to flag through
                    raise
                logger.info("Move of {} to {} failed ({}); flagging as deleted instead", message_id, TRASH_MAILBOX, e)
        await self._session.add_flags([message_id.uid], [DELETED])

    async def _save_sent_copy(self, message: EmailMessage) -> None:
        """Best-effort APPEND of a sent message into Sent; failures are only logged."""
        try:
            await self._session.connect()
            await self._session.append(SENT_MAILBOX, message.as_bytes(policy=SMTP_POLICY), (SEEN,))
            logger.debug("Saved sent copy of {} to {}", message["Message-ID"], SENT_MAILBOX)
        except Exception as e:
            logger.warning("Failed to save sent message {} to {}: {}", message["Message-ID"], SENT_MAILBOX, e)

    async def _send(self, data: OutgoingMessage) -> EmailMessage:
        message, recipients = build_outgoing(data, self._config.email)
        if not recipients:
            raise InvalidRequestError("Outgoing message has no recipients")
        await self._smtp.send(message, recipients)
        logger.info("Sent message {} to {} recipient(s)", message["Message-ID"], len(recipients))
        await self._save_sent_copy(message)
        return message

    async def _set_seen(self, ids: list[str], seen: bool) -> None:
        message_ids = [MessageId.parse(i) for i in ids]
        # Sequential on purpose: flag commands are scoped to the selected mailbox
        for message_id in message_ids:
            await self._session.select_mailbox(message_id.mailbox, readonly=False)
            if seen:
                await self._session.add_flags([message_id.uid], [SEEN])
            else:
                await self._session.remove_flags([message_id.uid], [SEEN])

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def get(self, id: str) -> ThreadView:
        """Fetch one message as a single-message thread, marking it seen."""
        async with self._operation("get", id=id):
            await self._session.connect()
            message = await self._fetch_full(MessageId.parse(id), mark_seen=True)
            return ThreadView(
                messages=[message],
                latest=message,
                has_unread=message.unread,
                total_replies=1,
                labels=[],
            )

    async def list(
        self,
        folder: str,
        query: str | None = None,
        max_results: int | None = None,
        page_token: str | int | None = None,
    ) -> ListResult:
        """List a folder newest-first.

        Args:
            folder: User-facing folder name (inbox, sent, ...) or a mailbox name
            query: Optional subject substring filter
            max_results: Page size (default: settings.default_page_size)
            page_token: ``next_page_token`` from the previous page

        Returns:
            ListResult; ``next_page_token`` is None on the last page
        """
        async with self._operation("list", folder=folder, query=query, max_results=max_results):
            await self._session.connect()
            # Label ids use "/" for nesting; the server may use another delimiter
            mailbox = await self._labels.mailbox_name(normalize_folder(folder))
            return await self._list_mailbox(mailbox, query, max_results, page_token)

    async def create(self, data: OutgoingMessage) -> SendResult:
        """Send a message over SMTP and keep a copy in Sent (best effort)."""
        async with self._operation("create", subject=data.subject):
            message = await self._send(data)
            return SendResult(id=str(message["Message-ID"]))

    async def delete(self, id: str) -> None:
        """Delete a message: move to Trash, or flag ``\\Deleted`` if the move fails."""
        async with self._operation("delete", id=id):
            await self._session.connect()
            await self._delete_message(MessageId.parse(id))

    async def modify_labels(
        self,
        ids: list[str],
        add_labels: list[str] | None = None,
        remove_labels: list[str] | None = None,
    ) -> None:
        """Apply label changes by moving messages between mailboxes.

        A message lives in exactly one mailbox, so only the first of
        ``add_labels`` can be honoured; removing a label has no mailbox
        equivalent and is ignored.
        """
        add_labels = add_labels or []
        remove_labels = remove_labels or []
        async with self._operation("modifyLabels", ids=ids, add_labels=add_labels, remove_labels=remove_labels):
            await self._session.connect()
            message_ids = [MessageId.parse(i) for i in ids]

            if remove_labels:
                logger.debug("Ignoring label removal {}: no mailbox equivalent", remove_labels)
            if not add_labels:
                return
            if len(add_labels) > 1:
                logger.warning("Only the first label is applied ({}); ignoring {}", add_labels[0], add_labels[1:])

            target = await self._labels.mailbox_name(normalize_folder(add_labels[0]))
            for message_id in message_ids:
                if message_id.mailbox == target:
                    continue
                await self._session.select_mailbox(message_id.mailbox, readonly=False)
                await self._session.move([message_id.uid], target)

    async def mark_as_read(self, ids: list[str]) -> None:
        async with self._operation("markAsRead", ids=ids):
            await self._session.connect()
            await self._set_seen(ids, seen=True)

    async def mark_as_unread(self, ids: list[str]) -> None:
        async with self._operation("markAsUnread", ids=ids):
            await self._session.connect()
            await self._set_seen(ids, seen=False)

    async def get_attachment(self, message_id: str, attachment_id: str) -> str | None:
        """Base64 content of an attachment, matched by attachment id or filename."""
        async with self._operation("getAttachment", message_id=message_id, attachment_id=attachment_id):
            await self._session.connect()
            message = await self._fetch_full(MessageId.parse(message_id), mark_seen=False)
            for attachment in message.attachments:
                if attachment_id in (attachment.attachment_id, attachment.filename):
                    return attachment.body
            return None

    async def count(self) -> list[FolderCount]:
        """Message totals for the standard folders; unreachable folders count as 0."""
        async with self._operation("count"):
            await self._session.connect()
            counts: list[FolderCount] = []
            for folder in COUNT_FOLDERS:
                try:
                    total = await self._session.folder_message_count(folder)
                except Exception as e:
                    logger.debug("Counting {} failed, reporting 0: {}", folder, e)
                    total = 0
                counts.append(FolderCount(label=folder, count=total))
            return counts

    def normalize_ids(self, ids: list[str]) -> dict[str, list[str]]:
        """IMAP has no thread ids; message ids are returned as-is."""
        return {"thread_ids": list(ids)}

    # ------------------------------------------------------------------
    # Drafts
    # ------------------------------------------------------------------

    async def create_draft(self, data: DraftData) -> DraftResult:
        """APPEND a draft into Drafts with the ``\\Draft`` flag.

        Returns ``Drafts:<uid>`` when the server reports APPENDUID, otherwise a
        client-side ``draft-<ms>-<suffix>`` id.
        """
        async with self._operation("createDraft", subject=data.subject):
            await self._session.connect()
            message = build_draft(data, self._config.email)
            uid = await self._session.append(DRAFTS_MAILBOX, message.as_bytes(policy=SMTP_POLICY), (DRAFT,))
            draft_id = encode(DRAFTS_MAILBOX, uid) if uid else _client_draft_id()
            logger.info("Draft created with id {}", draft_id)
            return DraftResult(id=draft_id, success=True)

    async def get_draft(self, id: str) -> ParsedDraft:
        async with self._operation("getDraft", id=id):
            draft_id = _parse_draft_id(id)
            await self._session.connect()
            message = await self._fetch_full(draft_id, mark_seen=False)
            return ParsedDraft(
                id=id,
                to=[address.email for address in message.to],
                subject=message.subject,
                content=message.decoded_body,
                message=message,
            )

    async def list_drafts(
        self,
        query: str | None = None,
        max_results: int | None = None,
        page_token: str | int | None = None,
    ) -> ListResult:
        async with self._operation("listDrafts", query=query, max_results=max_results):
            await self._session.connect()
            return await self._list_mailbox(DRAFTS_MAILBOX, query, max_results, page_token)

    async def send_draft(self, id: str, data: OutgoingMessage) -> SendResult:
        """Send ``data`` and then remove the draft it came from.

        Removing the draft is best effort once the send has succeeded.
        Client-side draft ids have nothing to remove on the server.
        """
        async with self._operation("sendDraft", id=id):
            draft_id = None if id.startswith(CLIENT_DRAFT_PREFIX) else _parse_draft_id(id)
            message = await self._send(data)
            if draft_id is None:
                logger.info("Draft {} has no server copy; nothing to remove", id)
                return SendResult(id=str(message["Message-ID"]))
            try:
                await self._session.connect()
                await self._delete_message(draft_id)
            except Exception as e:
                logger.warning("Sent draft {} but could not remove it: {}", id, e)
            return SendResult(id=str(message["Message-ID"]))

    # ------------------------------------------------------------------
    # Labels
    # ------------------------------------------------------------------

    async def get_user_labels(self) -> list[Label]:
        """Every mailbox (nested ones flattened to ``/`` paths) as a folder label."""
        async with self._operation("getUserLabels"):
            await self._session.connect()
            return await self._labels.list_labels()

    async def get_label(self, id: str) -> Label:
        return label_for(id)

    async def create_label(self, name: str) -> Label:
        async with self._operation("createLabel", name=name):
            await self._session.connect()
            return await self._labels.create(name)

    async def update_label(self, id: str, name: str) -> Label:
        async with self._operation("updateLabel", id=id, name=name):
            await self._session.connect()
            return await self._labels.rename(id, name)

    async def delete_label(self, id: str) -> None:
        async with self._operation("deleteLabel", id=id):
            await self._session.connect()
            await self._labels.delete(id)

    # ------------------------------------------------------------------
    # Account
    # ------------------------------------------------------------------

    def get_scope(self) -> str:
        return "imap smtp"

    async def get_email_aliases(self) -> list[EmailAlias]:
        # IMAP exposes no aliases; the account address is the only one
        return [EmailAlias(email=self._config.email, primary=True)]

    async def get_user_info(self) -> UserInfo:
        return UserInfo(address=self._config.email)

    async def get_tokens(self, code: str) -> TokenSet:
        """Static pseudo tokens; password-based IMAP has no OAuth exchange."""
        expiry = datetime.now(timezone.utc) + timedelta(days=365)
        return TokenSet(
            access_token="imap-direct-access",
            refresh_token="imap-no-refresh-token",
            expiry_date=int(expiry.timestamp() * 1000),
        )

    async def revoke_refresh_token(self, refresh_token: str) -> bool:
        return True


def _client_draft_id() -> str:
    return f"{CLIENT_DRAFT_PREFIX}{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}"


def _parse_draft_id(value: str) -> MessageId:
    """Decode a server draft id; ids outside the Drafts mailbox are not drafts."""
    draft_id = MessageId.parse(value)
    if draft_id.mailbox != DRAFTS_MAILBOX:
        raise InvalidIdentifierError(f"Not a draft id: {value!r}")
    return draft_id
