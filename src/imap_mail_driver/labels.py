"""Mailboxes presented as a folder-typed label collection.

Nested mailboxes are flattened into ``/``-separated paths regardless of the
server's hierarchy delimiter; label ids are translated back to server names
before any mailbox command.
"""

from typing import Any

from loguru import logger

from imap_mail_driver.models import FolderInfo, Label
from imap_mail_driver.session import ImapSession

LABEL_SEPARATOR = "/"

MailboxTree = dict[str, dict[str, Any]]


def build_mailbox_tree(folders: list[FolderInfo]) -> MailboxTree:
    """Nest a flat LIST response into ``{name: {"children": {...}}}``."""
    tree: MailboxTree = {}
    for folder in folders:
        parts = folder.name.split(folder.delimiter) if folder.delimiter else [folder.name]
        level = tree
        for part in parts:
            node = level.setdefault(part, {})
            level = node.setdefault("children", {})
    return tree


def flatten_mailbox_tree(tree: MailboxTree, prefix: str = "") -> list[str]:
    """Depth-first list of ``/``-joined mailbox paths.

    Example:
        >>> flatten_mailbox_tree({"Work": {"children": {"Clients": {}}}})
        ['Work', 'Work/Clients']
    """
    names: list[str] = []
    for name, node in tree.items():
        full_name = f"{prefix}{name}"
        names.append(full_name)
        children = node.get("children") if node else None
        if children:
            names.extend(flatten_mailbox_tree(children, f"{full_name}{LABEL_SEPARATOR}"))
    return names


def label_for(name: str) -> Label:
    return Label(id=name, name=name)


class LabelManager:
    """Create, rename, delete and enumerate mailboxes as labels.

    Expects a ready session; the driver connects before calling in.
    """

    def __init__(self, session: ImapSession):
        self._session = session
        self._delimiter: str | None = None

    async def list_labels(self) -> list[Label]:
        folders = await self._session.list_folders()
        delimiters = {folder.delimiter for folder in folders if folder.delimiter}
        if delimiters:
            self._delimiter = sorted(delimiters)[0]
        return [label_for(name) for name in flatten_mailbox_tree(build_mailbox_tree(folders))]

    async def mailbox_name(self, label_id: str) -> str:
        """Server mailbox name for a label id (``/`` → server delimiter)."""
        if LABEL_SEPARATOR not in label_id:
            return label_id
        if self._delimiter is None:
            await self.list_labels()
        if self._delimiter and self._delimiter != LABEL_SEPARATOR:
            return label_id.replace(LABEL_SEPARATOR, self._delimiter)
        return label_id

    async def create(self, name: str) -> Label:
        mailbox = await self.mailbox_name(name)
        await self._session.create_folder(mailbox)
        logger.info("Created mailbox {}", mailbox)
        return label_for(name)

    async def rename(self, label_id: str, new_name: str) -> Label:
        """Rename the mailbox behind ``label_id``; no-op if the name is unchanged."""
        if label_id == new_name:
            return label_for(label_id)
        old_mailbox = await self.mailbox_name(label_id)
        new_mailbox = await self.mailbox_name(new_name)
        await self._session.rename_folder(old_mailbox, new_mailbox)
        logger.info("Renamed mailbox {} to {}", old_mailbox, new_mailbox)
        return label_for(new_name)

    async def delete(self, label_id: str) -> None:
        mailbox = await self.mailbox_name(label_id)
        await self._session.delete_folder(mailbox)
        logger.info("Deleted mailbox {}", mailbox)
