"""Search history and interactive search sessions.

SearchHistory keeps what a user has searched for:
- recent searches (most recent first, deduplicated, capped)
- named saved searches, stored as raw query strings
- a log of executed searches with their result counts

SearchSession pairs an index with a history and adds the behavior of a
search box: blank queries do nothing, executed searches are recorded,
and suggestions follow the last word being typed.
"""

from __future__ import annotations

import logging
import re
from dataclasses import asdict, dataclass, field
from typing import TYPE_CHECKING, Any

from .index.schema import now_millis

if TYPE_CHECKING:
    from .index.manager import SearchIndex
    from .index.search import SearchResult

logger = logging.getLogger(__name__)

MAX_RECENT_SEARCHES = 10
MAX_HISTORY_ENTRIES = 100
MIN_SUGGESTION_CHARS = 2


@dataclass
class SavedSearch:
    """A named query string kept for reuse."""

    id: str
    name: str
    query: str


@dataclass
class HistoryEntry:
    """One executed search."""

    query: str
    timestamp: int  # epoch millis
    result_count: int


@dataclass
class SearchHistory:
    """Recent, saved and logged searches."""

    recent_searches: list[str] = field(default_factory=list)
    saved_searches: list[SavedSearch] = field(default_factory=list)
    entries: list[HistoryEntry] = field(default_factory=list)

    def add_recent(self, query: str) -> None:
        """Move ``query`` to the front of the recent list."""
        self.recent_searches = [
            query,
            *(q for q in self.recent_searches if q != query),
        ][:MAX_RECENT_SEARCHES]

    def clear_recent(self) -> None:
        self.recent_searches = []

    def save_search(self, name: str, query: str) -> SavedSearch:
        """
        Save a query under a display name.

        Ids are ``search_<epoch millis>``, bumped if two saves land in the
        same millisecond.
        """
        stamp = now_millis()
        taken = {s.id for s in self.saved_searches}
        while f"search_{stamp}" in taken:
            stamp += 1

        saved = SavedSearch(id=f"search_{stamp}", name=name, query=query)
        self.saved_searches.append(saved)
        return saved

    def delete_saved_search(self, search_id: str) -> bool:
        """Delete a saved search. Returns False if the id was unknown."""
        before = len(self.saved_searches)
        self.saved_searches = [
            s for s in self.saved_searches if s.id != search_id
        ]
        return len(self.saved_searches) < before

    def get_saved_search(self, search_id: str) -> SavedSearch | None:
        for saved in self.saved_searches:
            if saved.id == search_id:
                return saved
        return None

    def record_search(self, query: str, result_count: int) -> None:
        """Log an executed search (newest first, capped)."""
        entry = HistoryEntry(
            query=query, timestamp=now_millis(), result_count=result_count
        )
        self.entries = [entry, *self.entries][:MAX_HISTORY_ENTRIES]

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SearchHistory:
        """Rebuild from ``to_dict`` output, skipping malformed items."""
        recent = [
            q for q in data.get("recent_searches", []) if isinstance(q, str)
        ]
        history = cls(recent_searches=recent[:MAX_RECENT_SEARCHES])

        for item in data.get("saved_searches", []):
            try:
                history.saved_searches.append(SavedSearch(**item))
            except TypeError as e:
                logger.warning("Skipping malformed saved search: %s", e)

        for item in data.get("entries", []):
            try:
                history.entries.append(HistoryEntry(**item))
            except TypeError as e:
                logger.warning("Skipping malformed history entry: %s", e)
        history.entries = history.entries[:MAX_HISTORY_ENTRIES]

        return history


class SearchSession:
    """
    A search box bound to one index and one history.

    Usage:
        session = SearchSession(index)
        results = session.execute("budget is:unread")
        session.suggestions_for_input("quarterly bud")
    """

    def __init__(
        self, index: SearchIndex, history: SearchHistory | None = None
    ):
        self.index = index
        self.history = history if history is not None else SearchHistory()

    def execute(self, query: str, **options: Any) -> list[SearchResult]:
        """
        Run a search and record it.

        Blank queries return no results and are not recorded.

        Args:
            query: Raw query string
            **options: Passed through to SearchIndex.search
                (limit, fuzzy, sort_by, now)
        """
        if not query or not query.strip():
            return []

        results = self.index.search(query, **options)
        self.history.add_recent(query)
        self.history.record_search(query, len(results))
        return results

    def run_saved_search(
        self, search_id: str, **options: Any
    ) -> list[SearchResult]:
        """
        Execute a saved search by id.

        Raises:
            KeyError: If no saved search has this id
        """
        saved = self.history.get_saved_search(search_id)
        if saved is None:
            raise KeyError(search_id)
        return self.execute(saved.query, **options)

    def suggestions_for_input(
        self, text: str, limit: int | None = None
    ) -> list[str]:
        """
        Suggest completions for the last word of partially typed input.

        Returns nothing until at least two characters are typed and the
        last word itself has two characters.
        """
        if not text or len(text) < MIN_SUGGESTION_CHARS:
            return []

        last_word = re.split(r"\s+", text)[-1]
        if len(last_word) < MIN_SUGGESTION_CHARS:
            return []

        return self.index.get_suggestions(last_word, limit)
