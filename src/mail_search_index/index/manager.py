"""SearchIndex - Central interface for the in-memory email search index.

Provides:
- index_email(): Upsert one email (full re-index of its postings)
- remove_from_index(): Drop an email and prune its postings
- search(): Operator-aware, fuzzy, ranked search
- get_suggestions(): Prefix autocomplete over the token vocabulary
- export_snapshot() / import_snapshot(): Persistence round-trip
- get_stats(): Index statistics for status reporting

Thread Safety:
- Every public method holds one instance-level RLock, so a search never
  sees a posting without its record (or the reverse)
- There is no shared instance; callers own and pass around their index
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Mapping
from typing import Any

from ..config import (
    get_default_limit,
    get_fuzzy_enabled,
    get_similarity_threshold,
    get_suggestion_limit,
)
from .schema import (
    POSTING_ID_OVERHEAD_BYTES,
    IndexedEmail,
    IndexSnapshot,
    IndexStats,
    email_to_record,
    now_millis,
)
from .search import SearchResult, SortBy, search_index
from .text import create_ngrams

logger = logging.getLogger(__name__)


def _add_posting(index: dict[str, set[str]], key: str, email_id: str) -> None:
    ids = index.get(key)
    if ids is None:
        ids = index[key] = set()
    ids.add(email_id)


def _remove_posting(
    index: dict[str, set[str]], key: str, email_id: str
) -> None:
    ids = index.get(key)
    if ids is None:
        return
    ids.discard(email_id)
    if not ids:
        del index[key]


class SearchIndex:
    """
    In-memory full-text index over email metadata.

    Holds three maps:
    - id -> IndexedEmail (canonical records, insertion ordered)
    - token -> ids (inverted index)
    - subject n-gram -> ids (fuzzy candidate index)

    Empty posting sets are always pruned, so the key sets of both indexes
    are exactly the vocabulary of the records currently stored.

    Defaults for limit, fuzzy and the similarity threshold come from the
    environment (see config.py) unless passed explicitly.
    """

    def __init__(
        self,
        ngram_size: int = 3,
        similarity_threshold: float | None = None,
    ):
        """
        Initialize an empty index.

        Args:
            ngram_size: Length of subject n-grams for fuzzy candidates
            similarity_threshold: Edit-distance threshold (config default
                if None)
        """
        self._ngram_size = ngram_size
        self._threshold = (
            similarity_threshold
            if similarity_threshold is not None
            else get_similarity_threshold()
        )
        self._emails: dict[str, IndexedEmail] = {}
        self._postings: dict[str, set[str]] = {}
        self._ngrams: dict[str, set[str]] = {}
        self._last_indexed_at = 0
        self._lock = threading.RLock()

    @property
    def ngram_size(self) -> int:
        return self._ngram_size

    @property
    def similarity_threshold(self) -> float:
        return self._threshold

    def __len__(self) -> int:
        with self._lock:
            return len(self._emails)

    def __contains__(self, email_id: object) -> bool:
        with self._lock:
            return email_id in self._emails

    def get_email(self, email_id: str) -> IndexedEmail | None:
        """Get the stored record for an id, or None."""
        with self._lock:
            return self._emails.get(email_id)

    def posting_ids(self, token: str) -> set[str]:
        """Copy of the ids posted under a token."""
        with self._lock:
            return set(self._postings.get(token, ()))

    def ngram_ids(self, ngram: str) -> set[str]:
        """Copy of the ids posted under a subject n-gram."""
        with self._lock:
            return set(self._ngrams.get(ngram, ()))

    @property
    def vocabulary_size(self) -> int:
        """Number of distinct tokens in the inverted index."""
        with self._lock:
            return len(self._postings)

    # ─────────────────────────────────────────────────────────────────
    # Mutation
    # ─────────────────────────────────────────────────────────────────

    def _insert(self, record: IndexedEmail) -> None:
        """Store a record and post its tokens and subject n-grams."""
        self._emails[record.id] = record
        for token in record.tokens:
            _add_posting(self._postings, token, record.id)
        for ngram in create_ngrams(record.subject, self._ngram_size):
            _add_posting(self._ngrams, ngram, record.id)

    def _delete(self, email_id: str) -> bool:
        record = self._emails.get(email_id)
        if record is None:
            return False

        for token in record.tokens:
            _remove_posting(self._postings, token, email_id)
        for ngram in create_ngrams(record.subject, self._ngram_size):
            _remove_posting(self._ngrams, ngram, email_id)

        del self._emails[email_id]
        return True

    def index_email(self, email: Mapping[str, Any] | IndexedEmail) -> None:
        """
        Add or replace an email in the index (upsert by id).

        Any existing postings for the id are removed first, so calling
        this repeatedly for the same id never leaves stale postings.

        Args:
            email: Raw email mapping (see schema.email_to_record) or an
                already-built IndexedEmail

        Raises:
            ValueError: If the email has no id
        """
        record = (
            email
            if isinstance(email, IndexedEmail)
            else email_to_record(email)
        )

        with self._lock:
            replaced = self._delete(record.id)
            self._insert(record)
            self._last_indexed_at = now_millis()

        logger.debug(
            "%s email %s (%d tokens)",
            "Re-indexed" if replaced else "Indexed",
            record.id,
            len(record.tokens),
        )

    def index_emails(
        self, emails: Iterable[Mapping[str, Any] | IndexedEmail]
    ) -> int:
        """
        Upsert a batch of emails.

        Returns:
            Number of emails indexed
        """
        count = 0
        for email in emails:
            self.index_email(email)
            count += 1
        return count

    def remove_from_index(self, email_id: str) -> None:
        """Remove an email and its postings. Unknown ids are a no-op."""
        with self._lock:
            removed = self._delete(email_id)

        if removed:
            logger.debug("Removed email %s", email_id)

    def clear(self) -> None:
        """Drop every record and posting."""
        with self._lock:
            self._emails.clear()
            self._postings.clear()
            self._ngrams.clear()

    # ─────────────────────────────────────────────────────────────────
    # Queries
    # ─────────────────────────────────────────────────────────────────

    def search(
        self,
        query: str,
        limit: int | None = None,
        fuzzy: bool | None = None,
        sort_by: SortBy = "relevance",
        now: int | None = None,
    ) -> list[SearchResult]:
        """
        Search the index.

        Args:
            query: Free text with optional operators
                (from:, to:, subject:, in:, label:, has:attachment,
                is:read, is:unread, is:starred, after:, before:)
            limit: Maximum results (config default if None or negative)
            fuzzy: Typo-tolerant matching (config default if None)
            sort_by: "relevance" or "date"
            now: Reference epoch millis for recency boosts (current time
                if None)

        Returns:
            List of SearchResult ordered by score or date
        """
        if limit is None or limit < 0:
            limit = get_default_limit()
        if fuzzy is None:
            fuzzy = get_fuzzy_enabled()

        with self._lock:
            return search_index(
                self._emails,
                self._postings,
                self._ngrams,
                query,
                limit,
                fuzzy=fuzzy,
                sort_by=sort_by,
                threshold=self._threshold,
                ngram_size=self._ngram_size,
                now=now,
            )

    def get_suggestions(
        self, prefix: str, limit: int | None = None
    ) -> list[str]:
        """
        Get autocomplete suggestions for a prefix.

        Tokens come back in vocabulary insertion order, not ranked.

        Args:
            prefix: Start of a word (case-insensitive)
            limit: Maximum suggestions (config default if None or negative)

        Returns:
            Matching tokens
        """
        if limit is None or limit < 0:
            limit = get_suggestion_limit()
        if limit == 0:
            return []

        lower_prefix = (prefix or "").lower()
        suggestions: list[str] = []

        with self._lock:
            for token in self._postings:
                if token.startswith(lower_prefix):
                    suggestions.append(token)
                    if len(suggestions) >= limit:
                        break

        return suggestions

    def get_stats(self) -> IndexStats:
        """
        Get index statistics.

        ``index_size_bytes`` is an estimate: two bytes per token character
        plus a fixed overhead per posted id.

        Returns:
            IndexStats with count, last index time and size estimate
        """
        with self._lock:
            size = sum(
                len(token) * 2 + len(ids) * POSTING_ID_OVERHEAD_BYTES
                for token, ids in self._postings.items()
            )
            return IndexStats(
                total_indexed=len(self._emails),
                last_indexed_at=self._last_indexed_at,
                index_size_bytes=size,
            )

    # ─────────────────────────────────────────────────────────────────
    # Persistence primitives
    # ─────────────────────────────────────────────────────────────────

    def export_snapshot(self) -> IndexSnapshot:
        """Export every record plus current stats."""
        with self._lock:
            return IndexSnapshot(
                emails=list(self._emails.values()),
                stats=self.get_stats(),
            )

    def import_snapshot(
        self, emails: Iterable[IndexedEmail | Mapping[str, Any]]
    ) -> int:
        """
        Replace the index contents with previously exported records.

        Postings are rebuilt from each record's stored tokens and subject,
        matching what index_email produced originally. Records that cannot
        be read are skipped with a warning.

        Args:
            emails: IndexedEmail objects or their ``to_dict`` output

        Returns:
            Number of records imported
        """
        records: list[IndexedEmail] = []
        for item in emails:
            if isinstance(item, IndexedEmail):
                records.append(item)
                continue
            try:
                records.append(IndexedEmail.from_dict(item))
            except (TypeError, ValueError) as e:
                logger.warning("Skipping unreadable snapshot record: %s", e)

        with self._lock:
            self.clear()
            for record in records:
                self._delete(record.id)
                self._insert(record)
            if records:
                self._last_indexed_at = now_millis()

        logger.debug("Imported %d emails", len(records))
        return len(records)
