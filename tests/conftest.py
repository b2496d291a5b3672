"""Shared pytest fixtures for mail-search-index tests."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from mail_search_index.index import SearchIndex

DAY_MS = 24 * 60 * 60 * 1000

# 2024-03-15T12:00:00Z, a fixed "now" so recency boosts are deterministic
NOW = 1710504000000


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Keep MAIL_SEARCH_* settings from the host out of the tests."""
    for name in (
        "MAIL_SEARCH_SNAPSHOT_PATH",
        "MAIL_SEARCH_DEFAULT_LIMIT",
        "MAIL_SEARCH_FUZZY",
        "MAIL_SEARCH_SIMILARITY_THRESHOLD",
        "MAIL_SEARCH_SUGGESTION_LIMIT",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def now() -> int:
    return NOW


@pytest.fixture
def sample_emails() -> list[dict]:
    """Return sample email input records."""
    return [
        {
            "id": "m1",
            "thread_id": "t1",
            "subject": "Q1 Budget Review",
            "snippet": "Please review the attached budget before Friday",
            "sender": "Carol Finance <cfo@acme.com>",
            "to": ["team@acme.com"],
            "date": NOW - 1 * DAY_MS,
            "labels": ["work", "finance"],
            "is_read": False,
            "is_starred": True,
            "has_attachment": True,
        },
        {
            "id": "m2",
            "thread_id": "t2",
            "subject": "Random newsletter",
            "snippet": "Ten budget tips for spring",
            "sender": "news@acme.com",
            "to": ["me@example.com"],
            "date": NOW - 60 * DAY_MS,
            "labels": ["newsletters"],
            "is_read": True,
        },
        {
            "id": "m3",
            "thread_id": "t3",
            "subject": "Invoice #12345 attached",
            "snippet": "Your invoice for January is attached",
            "sender": "billing@vendor.com",
            "to": ["me@example.com"],
            "cc": ["accounts@example.com"],
            "date": NOW - 10 * DAY_MS,
            "labels": ["finance"],
            "is_read": False,
            "has_attachment": True,
        },
        {
            "id": "m4",
            "thread_id": "t4",
            "subject": "Project deadline moved",
            "snippet": "The project deadline has been extended",
            "sender": "Boss Person <boss@co.com>",
            "to": ["me@example.com"],
            "date": NOW - 3 * DAY_MS,
            "labels": ["work"],
            "is_read": False,
            "body": "Let's talk about the roadmap on Monday.",
        },
    ]


@pytest.fixture
def index() -> SearchIndex:
    """An empty index with an explicit similarity threshold."""
    return SearchIndex(similarity_threshold=0.3)


@pytest.fixture
def populated_index(index: SearchIndex, sample_emails) -> SearchIndex:
    """Index with the sample emails inserted."""
    for email in sample_emails:
        index.index_email(email)
    return index


@pytest.fixture
def emails_file(tmp_path: Path, sample_emails) -> Path:
    """Sample emails written to a JSON input file."""
    path = tmp_path / "emails.json"
    path.write_text(json.dumps(sample_emails))
    return path


@pytest.fixture
def snapshot_path(tmp_path: Path) -> Path:
    """Return a temporary snapshot location."""
    return tmp_path / "state" / "snapshot.json"
