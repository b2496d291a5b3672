"""Record types for the in-memory email search index.

The index holds one IndexedEmail per email id. Its ``tokens`` list is a
cache derived from the textual fields (subject, snippet, sender, optional
body) and is never edited on its own: an update is a full re-index.

IMPORTANT: The body text is tokenized but not stored, so snapshots carry
``tokens`` and imports trust them rather than re-tokenizing.
"""

from __future__ import annotations

import re
import time
from collections.abc import Mapping
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any

from .text import tokenize


# Current snapshot format version
SNAPSHOT_VERSION = 1

# Approximate bytes per id in a posting set (UUID-sized string)
POSTING_ID_OVERHEAD_BYTES = 36

# "Jane Doe <jane@example.com>"
_NAMED_ADDRESS = re.compile(r"^([^<]+)<[^>]+>$")

# Accepted string spellings for boolean flags
_TRUE_STRINGS = {"true", "1", "yes"}
_FALSE_STRINGS = {"false", "0", "no", ""}


@dataclass
class IndexedEmail:
    """The canonical record held by the index for one email."""

    id: str
    thread_id: str = ""
    subject: str = ""
    snippet: str = ""
    sender: str = ""
    sender_name: str = ""
    to: list[str] = field(default_factory=list)
    cc: list[str] = field(default_factory=list)
    date: int = 0  # epoch millis
    labels: list[str] = field(default_factory=list)
    is_read: bool = False
    is_starred: bool = False
    has_attachment: bool = False
    tokens: list[str] = field(default_factory=list)
    folder: str | None = None
    size: int | None = None

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-ready dict."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> IndexedEmail:
        """Rebuild a record from ``to_dict`` output.

        Unknown keys are ignored so older snapshots still load. Missing or
        null fields take their defaults.

        Raises:
            ValueError: If ``id`` is missing or a field has the wrong type
        """
        if not data.get("id"):
            raise ValueError("Indexed email record has no id")

        folder = data.get("folder")
        return cls(
            id=str(data["id"]),
            thread_id=_to_text(data.get("thread_id")),
            subject=_to_text(data.get("subject")),
            snippet=_to_text(data.get("snippet")),
            sender=_to_text(data.get("sender")),
            sender_name=_to_text(data.get("sender_name")),
            to=_to_list(data.get("to"), "to"),
            cc=_to_list(data.get("cc"), "cc"),
            date=_to_millis(data.get("date")),
            labels=_to_list(data.get("labels"), "labels"),
            is_read=_to_bool(data.get("is_read"), "is_read"),
            is_starred=_to_bool(data.get("is_starred"), "is_starred"),
            has_attachment=_to_bool(
                data.get("has_attachment"), "has_attachment"
            ),
            tokens=_to_list(data.get("tokens"), "tokens"),
            folder=None if folder is None else _to_text(folder),
            size=_to_optional_int(data.get("size"), "size"),
        )


@dataclass
class IndexStats:
    """Statistics about the search index."""

    total_indexed: int
    last_indexed_at: int  # epoch millis, 0 if never
    index_size_bytes: int

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


@dataclass
class IndexSnapshot:
    """Exported index contents: every record plus current stats."""

    emails: list[IndexedEmail]
    stats: IndexStats

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": SNAPSHOT_VERSION,
            "emails": [email.to_dict() for email in self.emails],
            "stats": self.stats.to_dict(),
        }


def now_millis() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def derive_sender_name(sender: str) -> str:
    """
    Derive a display name from a raw sender string.

    ``"Jane Doe <jane@x.com>"`` gives ``"Jane Doe"``; a bare address gives
    its local part (``"jane"``).
    """
    match = _NAMED_ADDRESS.match(sender)
    if match:
        return match.group(1).strip()
    return sender.split("@")[0]


def _to_text(value: Any) -> str:
    """Coerce a text field; None becomes the empty string."""
    if value is None:
        return ""
    if isinstance(value, (list, dict)):
        raise ValueError(f"Expected text, got {type(value).__name__}")
    return str(value)


def _to_list(value: Any, name: str) -> list[str]:
    """Coerce an address or label field to a list of strings.

    A bare string is a single entry, not a sequence of characters.
    """
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value else []
    if isinstance(value, (list, tuple, set)):
        return [str(item) for item in value]
    raise ValueError(f"Field {name!r} must be a list of strings")


def _to_bool(value: Any, name: str) -> bool:
    """Coerce a flag field, accepting "true"/"false" strings."""
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    raise ValueError(f"Field {name!r} must be a boolean, got {value!r}")


def _to_millis(value: Any) -> int:
    """Coerce an epoch-millis number, numeric string or datetime to millis.

    Raises:
        ValueError: If the value is not a date
    """
    if isinstance(value, datetime):
        return int(value.timestamp() * 1000)
    if value is None or value == "":
        return 0
    if isinstance(value, bool):
        raise ValueError(f"Invalid date {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError) as e:
        raise ValueError(f"Invalid date {value!r}") from e


def _to_optional_int(value: Any, name: str) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError) as e:
        raise ValueError(f"Field {name!r} must be an integer") from e


def build_tokens(
    subject: str,
    snippet: str,
    sender_name: str,
    sender: str,
    body: str | None = None,
) -> list[str]:
    """Deduplicated tokens (first-seen order) for a record's text fields."""
    combined = [
        *tokenize(subject),
        *tokenize(snippet),
        *tokenize(sender_name),
        *tokenize(sender),
        *tokenize(body),
    ]
    return list(dict.fromkeys(combined))


def email_to_record(email: Mapping[str, Any]) -> IndexedEmail:
    """
    Convert a raw email mapping into an IndexedEmail.

    Centralizes field extraction so that every caller (index_email, the
    CLI's JSON loader, the MCP server) builds records the same way.

    Accepted keys: id (required), thread_id/threadId, subject, snippet,
    sender/from, to, cc, date (epoch millis or datetime), labels,
    is_read/isRead, is_starred/isStarred, has_attachment/hasAttachment,
    folder, size, body.

    Args:
        email: Raw email mapping from the host application

    Returns:
        IndexedEmail with sender_name and tokens derived

    Raises:
        ValueError: If the email has no id, or a field cannot be
            coerced (e.g. a flag that is not a boolean)
    """
    email_id = email.get("id")
    if email_id is None or email_id == "":
        raise ValueError("Cannot index an email without an id")

    def pick(*keys: str, default: Any = None) -> Any:
        for key in keys:
            if email.get(key) is not None:
                return email[key]
        return default

    subject = _to_text(pick("subject"))
    snippet = _to_text(pick("snippet"))
    sender = _to_text(pick("sender", "from"))
    sender_name = derive_sender_name(sender)
    body = pick("body")
    folder = pick("folder")

    return IndexedEmail(
        id=str(email_id),
        thread_id=_to_text(pick("thread_id", "threadId")),
        subject=subject,
        snippet=snippet,
        sender=sender,
        sender_name=sender_name,
        to=_to_list(pick("to"), "to"),
        cc=_to_list(pick("cc"), "cc"),
        date=_to_millis(pick("date")),
        labels=_to_list(pick("labels"), "labels"),
        is_read=_to_bool(pick("is_read", "isRead"), "is_read"),
        is_starred=_to_bool(pick("is_starred", "isStarred"), "is_starred"),
        has_attachment=_to_bool(
            pick("has_attachment", "hasAttachment"), "has_attachment"
        ),
        tokens=build_tokens(
            subject,
            snippet,
            sender_name,
            sender,
            None if body is None else _to_text(body),
        ),
        folder=None if folder is None else _to_text(folder),
        size=_to_optional_int(pick("size"), "size"),
    )
