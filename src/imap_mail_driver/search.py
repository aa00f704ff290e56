"""Search criteria and newest-first pagination over UID result sets.

IMAP SEARCH returns UIDs in no particular order. Within one mailbox a higher
UID means a later arrival, so pages are cut from the UID set sorted
descending. The continuation token records the highest UID the next page may
contain; no token means the scan is complete.
"""

from dataclasses import dataclass
from typing import Any

from imap_mail_driver.identifiers import PageToken


def build_criteria(query: str | None = None) -> tuple[list[Any], str | None]:
    """Build UID SEARCH criteria for an optional free-text query.

    The query is matched against the subject only; this is a coarse filter,
    not full-text search.

    Returns:
        Tuple of (criteria, charset); charset is ``"UTF-8"`` for non-ASCII queries
    """
    criteria: list[Any] = ["ALL"]
    query = (query or "").strip()
    if not query:
        return criteria, None
    criteria.extend(["SUBJECT", query])
    return criteria, (None if query.isascii() else "UTF-8")


@dataclass(frozen=True)
class Page:
    uids: list[int]
    next_token: PageToken | None


def paginate(uids: list[int], max_results: int, token: PageToken | None = None) -> Page:
    """Slice one page out of an unordered UID set.

    Args:
        uids: Every UID matching the search (any order)
        max_results: Page size
        token: Continuation point from the previous page, if any

    Returns:
        Page with UIDs in descending order and the token for the next page
        (None once the set is exhausted)

    Example:
        >>> page = paginate([5, 3, 9, 1], 2)
        >>> page.uids, page.next_token.encode()
        ([9, 5], '4:2')
    """
    if max_results <= 0:
        raise ValueError("max_results must be positive")

    ordered = sorted(set(uids), reverse=True)
    if token is not None:
        ordered = [uid for uid in ordered if uid <= token.last_uid]

    page = ordered[:max_results]
    if len(ordered) > max_results:
        return Page(page, PageToken(page[-1] - 1, max_results))
    return Page(page, None)
