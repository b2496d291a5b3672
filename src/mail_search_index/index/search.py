"""Candidate retrieval, filtering and relevance ranking.

Provides:
- search_index(): Run a raw query string against the index maps
- matches_filters(): Structural filter check for one record
- score_email(): Term-level score plus highlights for one record
- apply_boosts(): Recency and starred multipliers

Scoring per search token:
- +10 subject contains the token (subject highlight)
- +5  sender address or display name contains it (from highlight)
- +2  token is in the record's token set
- +1  per record token within edit-distance threshold (fuzzy only)
Then x1.5 if under 7 days old (x1.2 under 30) and x1.3 if starred.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Literal

from .query import SearchQuery, parse_search_query
from .schema import IndexedEmail, now_millis
from .text import create_ngrams, is_similar, tokenize

logger = logging.getLogger(__name__)

SortBy = Literal["relevance", "date"]

DAY_MS = 24 * 60 * 60 * 1000

SUBJECT_WEIGHT = 10
SENDER_WEIGHT = 5
TOKEN_WEIGHT = 2
FUZZY_WEIGHT = 1

# (max age in days, multiplier), checked in order
RECENCY_BOOSTS = ((7, 1.5), (30, 1.2))
STARRED_BOOST = 1.3


@dataclass
class Highlight:
    """Search tokens that matched inside one field."""

    field: str
    matches: list[str] = field(default_factory=list)


@dataclass
class SearchResult:
    """A single search result with ranking info."""

    email: IndexedEmail
    score: float
    highlights: list[Highlight] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "email": self.email.to_dict(),
            "score": round(self.score, 3),
            "highlights": [
                {"field": h.field, "matches": list(h.matches)}
                for h in self.highlights
            ],
        }


def matches_filters(email: IndexedEmail, query: SearchQuery) -> bool:
    """
    Check a record against every structural filter in the query.

    Text filters are case-insensitive substring checks. ``in_folder`` is
    only enforced when the record carries folder data.
    """
    if query.sender:
        needle = query.sender.lower()
        if (
            needle not in email.sender.lower()
            and needle not in email.sender_name.lower()
        ):
            return False

    if query.to:
        needle = query.to.lower()
        if not any(needle in addr.lower() for addr in email.to):
            return False

    if query.subject and query.subject.lower() not in email.subject.lower():
        return False

    if (
        query.has_attachment is not None
        and email.has_attachment != query.has_attachment
    ):
        return False

    if query.is_read is not None and email.is_read != query.is_read:
        return False

    if query.is_starred is not None and email.is_starred != query.is_starred:
        return False

    if query.labels and not any(lbl in email.labels for lbl in query.labels):
        return False

    if query.date_after is not None and email.date < query.date_after:
        return False

    if query.date_before is not None and email.date > query.date_before:
        return False

    if (
        query.in_folder
        and email.folder is not None
        and email.folder.lower() != query.in_folder.lower()
    ):
        return False

    return True


def _add_highlight(
    highlights: list[Highlight], field_name: str, token: str
) -> None:
    for highlight in highlights:
        if highlight.field == field_name:
            if token not in highlight.matches:
                highlight.matches.append(token)
            return
    highlights.append(Highlight(field=field_name, matches=[token]))


def score_email(
    email: IndexedEmail,
    search_tokens: list[str],
    fuzzy: bool = True,
    threshold: float = 0.3,
) -> tuple[float, list[Highlight]]:
    """
    Compute the term-level score for one record.

    Args:
        email: Candidate record
        search_tokens: Tokenized free text of the query
        fuzzy: Award points for near-miss tokens
        threshold: Edit-distance threshold for ``is_similar``

    Returns:
        (score before boosts, highlights)
    """
    score = 0.0
    highlights: list[Highlight] = []

    subject = email.subject.lower()
    sender = email.sender.lower()
    sender_name = email.sender_name.lower()
    token_set = set(email.tokens)

    for token in search_tokens:
        if token in subject:
            score += SUBJECT_WEIGHT
            _add_highlight(highlights, "subject", token)

        if token in sender or token in sender_name:
            score += SENDER_WEIGHT
            _add_highlight(highlights, "from", token)

        if token in token_set:
            score += TOKEN_WEIGHT

        if fuzzy:
            score += FUZZY_WEIGHT * sum(
                1
                for candidate in email.tokens
                if is_similar(candidate, token, threshold)
            )

    return score, highlights


def apply_boosts(score: float, email: IndexedEmail, now: int) -> float:
    """Apply the recency and starred multipliers to a score."""
    age_days = (now - email.date) / DAY_MS
    for max_age, multiplier in RECENCY_BOOSTS:
        if age_days < max_age:
            score *= multiplier
            break

    if email.is_starred:
        score *= STARRED_BOOST

    return score


def collect_candidates(
    search_tokens: list[str],
    postings: Mapping[str, set[str]],
    ngram_postings: Mapping[str, set[str]],
    fuzzy: bool = True,
    ngram_size: int = 3,
) -> set[str]:
    """Union exact token postings and, if fuzzy, subject n-gram postings."""
    candidates: set[str] = set()
    for token in search_tokens:
        candidates.update(postings.get(token, ()))
        if fuzzy:
            for ngram in create_ngrams(token, ngram_size):
                candidates.update(ngram_postings.get(ngram, ()))
    return candidates


def search_index(
    emails: Mapping[str, IndexedEmail],
    postings: Mapping[str, set[str]],
    ngram_postings: Mapping[str, set[str]],
    query: str | SearchQuery,
    limit: int = 50,
    *,
    fuzzy: bool = True,
    sort_by: SortBy = "relevance",
    threshold: float = 0.3,
    ngram_size: int = 3,
    now: int | None = None,
) -> list[SearchResult]:
    """
    Search the index maps with a raw or pre-parsed query.

    Args:
        emails: id -> record store (insertion order is the tiebreaker)
        postings: token -> ids inverted index
        ngram_postings: subject n-gram -> ids index
        query: Query string (operators allowed) or SearchQuery
        limit: Maximum results; 0 returns nothing
        fuzzy: Use n-gram candidates and edit-distance scoring
        sort_by: "relevance" (score desc) or "date" (newest first)
        threshold: Edit-distance threshold for fuzzy scoring
        ngram_size: N-gram length the index was built with
        now: Reference time in epoch millis for recency boosts

    Returns:
        List of SearchResult, best first
    """
    if limit <= 0 or not emails:
        return []

    parsed = (
        query if isinstance(query, SearchQuery) else parse_search_query(query)
    )
    now = now_millis() if now is None else now
    search_tokens = tokenize(parsed.text)

    if parsed.text:
        candidates = collect_candidates(
            search_tokens, postings, ngram_postings, fuzzy, ngram_size
        )
        # Walk the store to keep a stable insertion-order tiebreak
        ordered = [eid for eid in emails if eid in candidates]
    else:
        ordered = list(emails)

    results: list[SearchResult] = []
    for email_id in ordered:
        email = emails[email_id]
        if not matches_filters(email, parsed):
            continue

        if parsed.text:
            score, highlights = score_email(
                email, search_tokens, fuzzy, threshold
            )
        else:
            score, highlights = 1.0, []

        results.append(
            SearchResult(
                email=email,
                score=apply_boosts(score, email, now),
                highlights=highlights,
            )
        )

    if sort_by == "date":
        results.sort(key=lambda r: r.email.date, reverse=True)
    else:
        if sort_by != "relevance":
            logger.debug("Unknown sort_by %r, using relevance", sort_by)
        results.sort(key=lambda r: r.score, reverse=True)

    logger.debug(
        "Query %r matched %d of %d emails",
        parsed.text,
        len(results),
        len(emails),
    )
    return results[:limit]
