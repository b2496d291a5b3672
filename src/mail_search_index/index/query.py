"""Search query mini-language.

Provides:
- SearchQuery: Structured query (free text + typed filters)
- parse_search_query(): Scan a raw query string into a SearchQuery

Supported operators (case-insensitive):
- Field filters: from:, to:, subject:, in:, label: (repeatable)
  Values are a bare word or a double-quoted phrase: from:"Jane Doe"
- Flags: has:attachment, is:read, is:unread, is:starred
- Dates: after:YYYY-MM-DD, before:YYYY/MM/DD

Anything else is free text.
"""

from __future__ import annotations

import logging
import re
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

# operator prefix -> SearchQuery attribute
_FIELD_OPERATORS = {
    "from": "sender",
    "to": "to",
    "subject": "subject",
    "in": "in_folder",
    "label": "labels",
}

_FLAG_OPERATORS = {
    "has:attachment": ("has_attachment", True),
    "is:read": ("is_read", True),
    "is:unread": ("is_read", False),
    "is:starred": ("is_starred", True),
}

_DATE_OPERATORS = {
    "after": "date_after",
    "before": "date_before",
}

_DATE_VALUE = re.compile(r"^(\d{4})[-/](\d{2})[-/](\d{2})$")


@dataclass
class SearchQuery:
    """A parsed search query.

    ``None`` (or an empty ``labels`` list) means "no filter" for that field.
    Dates are epoch milliseconds at UTC midnight.
    """

    text: str = ""
    sender: str | None = None
    to: str | None = None
    subject: str | None = None
    in_folder: str | None = None
    has_attachment: bool | None = None
    is_read: bool | None = None
    is_starred: bool | None = None
    labels: list[str] = field(default_factory=list)
    date_after: int | None = None
    date_before: int | None = None

    @property
    def has_filters(self) -> bool:
        """True if any structural filter is set."""
        return any(
            value not in (None, [])
            for name, value in asdict(self).items()
            if name != "text"
        )

    def to_dict(self) -> dict:
        """Return a JSON-ready dict, omitting unset filters."""
        return {
            name: value
            for name, value in asdict(self).items()
            if name == "text" or value not in (None, [])
        }


def parse_date_literal(value: str) -> int | None:
    """Parse ``YYYY-MM-DD`` or ``YYYY/MM/DD`` to epoch millis (UTC midnight).

    Returns:
        Epoch milliseconds, or None if the value is not a valid date
    """
    match = _DATE_VALUE.match(value)
    if not match:
        return None

    year, month, day = (int(part) for part in match.groups())
    try:
        moment = datetime(year, month, day, tzinfo=timezone.utc)
    except ValueError:
        return None
    return int(moment.timestamp() * 1000)


def _read_quoted(raw: str, quote_at: int) -> tuple[str, int] | None:
    """Read a balanced double-quoted phrase starting at ``quote_at``.

    Returns:
        (phrase, index after the closing quote), or None if unbalanced
    """
    close = raw.find('"', quote_at + 1)
    if close == -1:
        return None
    return raw[quote_at + 1 : close], close + 1


def parse_search_query(raw: str | None) -> SearchQuery:
    """
    Parse a raw query string into a SearchQuery.

    Scans left to right over whitespace-delimited words. Recognized
    operators are consumed; everything else is kept, in order, as the
    free-text portion. Unrecognized syntax is never an error.

    Single-valued operators repeated in one query keep the last value,
    including ``is:read`` vs ``is:unread``. A date operator with a
    well-formed but impossible date (``after:2024-13-45``) is consumed
    and the filter is dropped.

    Args:
        raw: Query string, e.g. ``'budget from:cfo@acme.com is:unread'``

    Returns:
        SearchQuery with ``text`` set to the remaining free text
    """
    query = SearchQuery()
    if not raw:
        return query

    free_text: list[str] = []
    i = 0
    n = len(raw)

    while i < n:
        if raw[i].isspace():
            i += 1
            continue

        start = i
        while i < n and not raw[i].isspace():
            i += 1
        word = raw[start:i]

        prefix, sep, value = word.partition(":")
        key = prefix.lower()

        if sep and key in _FIELD_OPERATORS:
            if value.startswith('"'):
                quoted = _read_quoted(raw, start + len(prefix) + 1)
                if quoted is not None:
                    value, i = quoted
                else:
                    value = value.replace('"', "")
            value = value.strip()
            if not value:
                free_text.append(raw[start:i])
                continue

            attr = _FIELD_OPERATORS[key]
            if attr == "labels":
                query.labels.append(value)
            else:
                setattr(query, attr, value)
            continue

        flag = _FLAG_OPERATORS.get(word.lower())
        if flag is not None:
            attr, flag_value = flag
            setattr(query, attr, flag_value)
            continue

        if sep and key in _DATE_OPERATORS and _DATE_VALUE.match(value):
            millis = parse_date_literal(value)
            if millis is None:
                logger.debug("Dropping invalid date filter %r", word)
            else:
                setattr(query, _DATE_OPERATORS[key], millis)
            continue

        free_text.append(word)

    query.text = " ".join(free_text).strip()
    return query
