"""Unit tests for search criteria and descending UID pagination."""

import pytest

from imap_mail_driver.identifiers import PageToken
from imap_mail_driver.search import build_criteria, paginate


def test_no_query_matches_everything():
    assert build_criteria(None) == (["ALL"], None)
    assert build_criteria("   ") == (["ALL"], None)


def test_query_filters_on_subject():
    assert build_criteria("invoice") == (["ALL", "SUBJECT", "invoice"], None)


def test_non_ascii_query_sets_utf8_charset():
    criteria, charset = build_criteria("Grüße")

    assert criteria == ["ALL", "SUBJECT", "Grüße"]
    assert charset == "UTF-8"


def test_first_page_is_newest_first():
    page = paginate([5, 3, 9, 1], 2)

    assert page.uids == [9, 5]
    assert page.next_token == PageToken(4, 2)
    assert page.next_token.encode() == "4:2"


def test_resuming_continues_strictly_below_last_returned():
    first = paginate([5, 3, 9, 1], 2)
    second = paginate([5, 3, 9, 1], 2, first.next_token)

    assert second.uids == [3, 1]
    assert second.next_token is None


def test_last_page_has_no_token():
    page = paginate([1, 2, 3], 3)

    assert page.uids == [3, 2, 1]
    assert page.next_token is None


def test_empty_result_set():
    page = paginate([], 10)

    assert page.uids == []
    assert page.next_token is None


def test_duplicates_are_collapsed():
    assert paginate([7, 7, 3], 5).uids == [7, 3]


def test_walking_all_pages_yields_every_uid_exactly_once():
    uids = [17, 2, 40, 8, 33, 5, 21, 11, 1]
    seen = []
    token = None
    for _ in range(len(uids) + 1):
        page = paginate(uids, 4, token)
        seen.extend(page.uids)
        token = page.next_token
        if token is None:
            break

    assert seen == sorted(uids, reverse=True)
    assert token is None


def test_new_arrivals_do_not_leak_into_later_pages():
    first = paginate([10, 9, 8, 7], 2)
    # UID 11 arrives between page requests
    second = paginate([11, 10, 9, 8, 7], 2, first.next_token)

    assert second.uids == [8, 7]


def test_page_size_must_be_positive():
    with pytest.raises(ValueError):
        paginate([1, 2], 0)
