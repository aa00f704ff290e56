"""IMAP session wrapping the synchronous IMAPClient library.

Each protocol round-trip (connect, select, search, fetch, store, move, append,
folder commands) is exposed as a coroutine. The blocking IMAPClient calls run
on a single-worker ThreadPoolExecutor because IMAP allows only one command in
flight per connection.

Session state is explicit: ``disconnected → connecting → ready`` on success,
``errored`` after a failed connect or a dropped connection. The currently
selected mailbox is a plain field; ``select_mailbox()`` always replaces it.
"""

import asyncio
import re
import ssl
from concurrent.futures import ThreadPoolExecutor
from functools import partial
from typing import Any

from imapclient import IMAPClient  # type: ignore[import-untyped]
from imapclient.exceptions import CapabilityError, IMAPClientAbortError
from loguru import logger

from imap_mail_driver.errors import FolderNotFoundError, SessionNotReadyError
from imap_mail_driver.models import FolderInfo, SessionState

_APPENDUID_RE = re.compile(rb"\[APPENDUID \d+ (\d+)\]")

_MISSING_MAILBOX_MARKERS = (
    "nonexistent namespace",
    "does not exist",
    "doesn't exist",
    "no such mailbox",
    "[nonexistent]",
    "unknown mailbox",
)


class ImapSession:
    """One authenticated IMAP connection, created lazily on first ``connect()``.

    Args:
        host: IMAP server hostname
        port: IMAP server port (default: 993 for SSL)
        username: IMAP username (usually the email address)
        password: IMAP password or app-specific password
        ssl: Use implicit TLS (default: True)
        timeout: Socket timeout in seconds, also bounds authentication
        verify_tls: Verify the server certificate (default: True)

    Example:
        >>> session = ImapSession("imap.gmail.com", username="user@gmail.com", password="app-password")
        >>> await session.connect()
        >>> await session.select_mailbox("INBOX")
        >>> uids = await session.search(["ALL"])
    """

    def __init__(
        self,
        host: str,
        port: int = 993,
        username: str = "",
        password: str = "",
        ssl: bool = True,
        timeout: float = 30.0,
        verify_tls: bool = True,
    ):
        self._host = host
        self._port = port
        self._username = username
        self._password = password
        self._ssl = ssl
        self._timeout = timeout
        self._verify_tls = verify_tls

        # Single worker: IMAP is a single-connection command/response protocol
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="imap-session")

        self._client: IMAPClient | None = None
        self.state = SessionState.DISCONNECTED

        # Folder caching to avoid redundant SELECT calls
        self._selected_folder: str | None = None
        self._selected_folder_readonly: bool = True

    @property
    def selected_mailbox(self) -> str | None:
        return self._selected_folder

    @property
    def is_ready(self) -> bool:
        return self.state is SessionState.READY and self._client is not None

    async def _run_sync(self, func: Any, *args: Any, **kwargs: Any) -> Any:
        """Run a synchronous IMAPClient call on the session worker thread.

        A dropped connection moves the session to ``errored`` so the next
        ``connect()`` reconnects instead of reusing a dead socket.
        """
        loop = asyncio.get_event_loop()
        try:
            return await loop.run_in_executor(self._executor, partial(func, *args, **kwargs))
        except (IMAPClientAbortError, ConnectionError, TimeoutError):
            self._mark_errored()
            raise

    def _mark_errored(self) -> None:
        self.state = SessionState.ERRORED
        self._selected_folder = None
        self._selected_folder_readonly = True

    def _require_client(self) -> IMAPClient:
        if not self.is_ready:
            raise SessionNotReadyError(f"IMAP session is {self.state.value}, not ready")
        return self._client

    def _ssl_context(self) -> ssl.SSLContext | None:
        if not self._ssl:
            return None
        context = ssl.create_default_context()
        if not self._verify_tls:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
        return context

    def _open(self) -> IMAPClient:
        client = IMAPClient(
            host=self._host,
            port=self._port,
            ssl=self._ssl,
            ssl_context=self._ssl_context(),
            timeout=self._timeout,
        )
        try:
            client.login(self._username, self._password)
        except Exception:
            client.shutdown()
            raise
        return client

    async def connect(self) -> None:
        """Establish and authenticate the IMAP connection.

        Idempotent: returns immediately when the session is already ready.

        Raises:
            OSError / LoginError: Transport or authentication failure (classified by the driver)
        """
        if self.is_ready:
            return

        if self._client is not None:
            # Leftover from an errored session
            self._discard_client()

        self.state = SessionState.CONNECTING
        logger.debug("Connecting to IMAP {}:{} as {}", self._host, self._port, self._username)
        loop = asyncio.get_event_loop()
        try:
            self._client = await loop.run_in_executor(self._executor, self._open)
        except Exception:
            self._client = None
            self._mark_errored()
            raise

        self._selected_folder = None
        self._selected_folder_readonly = True
        self.state = SessionState.READY
        logger.debug("IMAP session ready for {}", self._username)

    def _discard_client(self) -> None:
        client, self._client = self._client, None
        if client is None:
            return
        try:
            client.shutdown()
        except Exception as e:
            logger.debug("Ignoring error while dropping IMAP socket: {}", e)

    async def close(self) -> None:
        """Log out (best effort) and return to ``disconnected``."""
        client = self._client
        if client is not None and self.state is SessionState.READY:
            try:
                await self._run_sync(client.logout)
            except Exception as e:
                logger.warning("IMAP logout failed for {}: {}", self._username, e)
                self._discard_client()
        self._client = None
        self.state = SessionState.DISCONNECTED
        self._selected_folder = None
        self._selected_folder_readonly = True

    def shutdown(self) -> None:
        """Release the worker thread. The session cannot be reused afterwards."""
        self._executor.shutdown(wait=False)

    async def select_mailbox(self, folder: str, readonly: bool = False) -> dict[bytes, Any]:
        """Select a mailbox, replacing any prior selection.

        Re-selecting the mailbox that is already selected in the same mode is
        skipped.

        Args:
            folder: Mailbox name
            readonly: Select read-only (EXAMINE semantics, never sets \\Seen)

        Returns:
            SELECT response info (empty when served from the cache)

        Raises:
            SessionNotReadyError: If ``connect()`` has not succeeded
            FolderNotFoundError: If the mailbox doesn't exist
        """
        client = self._require_client()
        if self._selected_folder == folder and self._selected_folder_readonly == readonly:
            return {}

        # Invalidate before the round trip: a cancelled await leaves the
        # SELECT running on the worker, so the server selection is unknown
        self._selected_folder = None
        self._selected_folder_readonly = True
        try:
            info = await self._run_sync(client.select_folder, folder, readonly=readonly)
        except Exception as e:
            error_msg = str(e).lower()
            if any(marker in error_msg for marker in _MISSING_MAILBOX_MARKERS):
                raise FolderNotFoundError(folder) from e
            raise

        self._selected_folder = folder
        self._selected_folder_readonly = readonly
        return info

    async def search(self, criteria: list[Any], charset: str | None = None) -> list[int]:
        """UID SEARCH in the selected mailbox; order of the result is unspecified."""
        client = self._require_client()
        return list(await self._run_sync(client.search, criteria, charset))

    async def fetch(self, uids: list[int], fields: list[str]) -> dict[int, dict[bytes, Any]]:
        """UID FETCH ``fields`` for ``uids``; returns ``{uid: {field: value}}``."""
        if not uids:
            return {}
        client = self._require_client()
        return dict(await self._run_sync(client.fetch, uids, fields))

    async def add_flags(self, uids: list[int], flags: list[str]) -> None:
        client = self._require_client()
        await self._run_sync(client.add_flags, uids, flags)

    async def remove_flags(self, uids: list[int], flags: list[str]) -> None:
        client = self._require_client()
        await self._run_sync(client.remove_flags, uids, flags)

    async def move(self, uids: list[int], to_folder: str) -> None:
        """Move messages out of the selected mailbox.

        Uses IMAP MOVE if available, otherwise COPY + STORE \\Deleted + EXPUNGE.
        """
        client = self._require_client()
        try:
            await self._run_sync(client.move, uids, to_folder)
            return
        except CapabilityError:
            logger.debug("Server lacks MOVE, falling back to COPY + EXPUNGE into {}", to_folder)

        await self._run_sync(client.copy, uids, to_folder)
        await self._run_sync(client.add_flags, uids, ["\\Deleted"])
        await self._run_sync(client.expunge)

    async def append(self, folder: str, message: bytes, flags: tuple[str, ...] = ()) -> int | None:
        """APPEND a raw message to ``folder``.

        Returns:
            The new UID when the server reports APPENDUID (UIDPLUS), else None
        """
        client = self._require_client()
        response = await self._run_sync(client.append, folder, message, flags)
        if isinstance(response, str):
            response = response.encode()
        match = _APPENDUID_RE.search(response or b"")
        return int(match.group(1)) if match else None

    async def list_folders(self) -> list[FolderInfo]:
        """LIST every mailbox."""
        client = self._require_client()
        folders_raw = await self._run_sync(client.list_folders)

        folders: list[FolderInfo] = []
        for flags, delimiter, name in folders_raw:
            # IMAPClient decodes modified UTF-7 names to str by default
            folder_name = name.decode("utf-7", errors="replace") if isinstance(name, bytes) else name
            if isinstance(delimiter, bytes):
                delimiter = delimiter.decode()
            flag_names = [flag.decode() if isinstance(flag, bytes) else str(flag) for flag in flags]
            folders.append(
                FolderInfo(
                    name=folder_name,
                    delimiter=delimiter,
                    flags=flag_names,
                    has_children="\\HasChildren" in flag_names,
                )
            )
        return folders

    async def folder_message_count(self, folder: str) -> int:
        """Total messages in ``folder``.

        Uses STATUS (no SELECT needed); falls back to SELECT's EXISTS.
        """
        client = self._require_client()
        try:
            status = await self._run_sync(client.folder_status, folder, ["MESSAGES"])
            return int(status.get(b"MESSAGES", 0))
        except (IMAPClientAbortError, ConnectionError, TimeoutError):
            raise
        except Exception:
            logger.debug("STATUS failed for {}, falling back to SELECT", folder)

        info = await self.select_mailbox(folder, readonly=True)
        if not info:
            # Served from the cache: force a fresh SELECT to read EXISTS
            self._selected_folder = None
            info = await self.select_mailbox(folder, readonly=True)
        return int(info.get(b"EXISTS", 0))

    async def create_folder(self, name: str) -> None:
        client = self._require_client()
        await self._run_sync(client.create_folder, name)

    async def rename_folder(self, old_name: str, new_name: str) -> None:
        client = self._require_client()
        await self._run_sync(client.rename_folder, old_name, new_name)
        if self._selected_folder == old_name:
            self._selected_folder = None

    async def delete_folder(self, name: str) -> None:
        client = self._require_client()
        await self._run_sync(client.delete_folder, name)
        if self._selected_folder == name:
            self._selected_folder = None
