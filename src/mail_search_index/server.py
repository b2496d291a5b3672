"""
Mail Search Index MCP Server

Exposes a caller-owned SearchIndex to MCP clients. The server holds no
global index: create_server() binds the tools to the index and history
it is given.

TOOLS (6 total):
- search(query, ...) - Operator-aware ranked search
- suggest(text) - Autocomplete for the last word typed
- parse_query(query) - Show how a query string is interpreted
- index_stats() - Index size and freshness
- index_emails(emails) - Upsert email records
- remove_email(id) - Drop an email from the index
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Literal

from fastmcp import FastMCP
from typing_extensions import TypedDict

from .history import SearchHistory, SearchSession
from .index import SearchIndex, parse_search_query

if TYPE_CHECKING:
    from collections.abc import Callable

    from .index import SearchResult


# ========== Response Type Definitions ==========


class HighlightSummary(TypedDict):
    """Search tokens found in one field."""

    field: str
    matches: list[str]


class SearchHit(TypedDict):
    """One search result as returned to MCP clients."""

    id: str
    thread_id: str
    subject: str
    sender: str
    sender_name: str
    snippet: str
    date: str
    labels: list[str]
    is_read: bool
    is_starred: bool
    has_attachment: bool
    score: float
    matched_in: str
    highlights: list[HighlightSummary]


class StatsSummary(TypedDict):
    """Index statistics."""

    total_indexed: int
    last_indexed_at: str | None
    index_size_bytes: int
    vocabulary_size: int


# ========== Helper Functions ==========


def _format_millis(millis: int) -> str:
    """Format epoch millis as an ISO 8601 UTC timestamp."""
    moment = datetime.fromtimestamp(millis / 1000, tz=timezone.utc)
    return moment.isoformat().replace("+00:00", "Z")


def result_to_hit(result: SearchResult) -> SearchHit:
    """Flatten a SearchResult into a JSON-ready SearchHit."""
    email = result.email
    highlights = [
        HighlightSummary(field=h.field, matches=list(h.matches))
        for h in result.highlights
    ]
    matched = [h["field"] for h in highlights]

    return SearchHit(
        id=email.id,
        thread_id=email.thread_id,
        subject=email.subject,
        sender=email.sender,
        sender_name=email.sender_name,
        snippet=email.snippet,
        date=_format_millis(email.date),
        labels=list(email.labels),
        is_read=email.is_read,
        is_starred=email.is_starred,
        has_attachment=email.has_attachment,
        score=round(result.score, 3),
        matched_in=", ".join(matched) if matched else "content",
        highlights=highlights,
    )


def search_tool(
    session: SearchSession,
    query: str,
    limit: int = 20,
    fuzzy: bool = True,
    sort_by: Literal["relevance", "date"] = "relevance",
) -> list[SearchHit]:
    """Run a recorded search and flatten the results."""
    results = session.execute(
        query, limit=limit, fuzzy=fuzzy, sort_by=sort_by
    )
    return [result_to_hit(r) for r in results]


def stats_tool(index: SearchIndex) -> StatsSummary:
    """Summarize index statistics for clients."""
    stats = index.get_stats()
    return StatsSummary(
        total_indexed=stats.total_indexed,
        last_indexed_at=(
            _format_millis(stats.last_indexed_at)
            if stats.last_indexed_at
            else None
        ),
        index_size_bytes=stats.index_size_bytes,
        vocabulary_size=index.vocabulary_size,
    )


def index_emails_tool(
    index: SearchIndex, emails: list[dict[str, Any]]
) -> dict[str, Any]:
    """Upsert emails, reporting records that could not be indexed."""
    indexed = 0
    errors: list[str] = []
    for position, email in enumerate(emails):
        try:
            index.index_email(email)
            indexed += 1
        except (TypeError, ValueError) as e:
            errors.append(f"email {position}: {e}")
    return {"indexed": indexed, "errors": errors}


# ========== Server Factory ==========


def create_server(
    index: SearchIndex,
    history: SearchHistory | None = None,
    on_change: Callable[[], None] | None = None,
) -> FastMCP:
    """
    Build an MCP server bound to an index.

    Args:
        index: The index to serve
        history: Search history to record into (new if None)
        on_change: Called after any tool that mutates the index or
            history, e.g. to write a snapshot

    Returns:
        Configured FastMCP instance (call ``.run()`` to serve)
    """
    mcp = FastMCP("Mail Search Index")
    session = SearchSession(index, history)

    def changed() -> None:
        if on_change is not None:
            on_change()

    @mcp.tool
    def search(
        query: str,
        limit: int = 20,
        fuzzy: bool = True,
        sort_by: Literal["relevance", "date"] = "relevance",
    ) -> list[SearchHit]:
        """
        Search indexed emails.

        Free text is matched against subject, snippet, sender and body
        tokens, with typo tolerance when fuzzy is on. Operators narrow
        results: from:, to:, subject:, label:, in:, has:attachment,
        is:read, is:unread, is:starred, after:YYYY-MM-DD,
        before:YYYY-MM-DD. Quote multi-word values: from:"Jane Doe".

        Args:
            query: Search text with optional operators
            limit: Maximum results (default: 20)
            fuzzy: Tolerate typos (default: True)
            sort_by: "relevance" (default) or "date"

        Returns:
            Results with score and the fields each term matched in.

        Example:
            >>> search("invoice from:billing after:2024-01-01")
        """
        hits = search_tool(session, query, limit, fuzzy, sort_by)
        if query.strip():
            changed()
        return hits

    @mcp.tool
    def suggest(text: str, limit: int = 10) -> list[str]:
        """
        Autocomplete the last word of a partially typed query.

        Args:
            text: Query typed so far
            limit: Maximum suggestions (default: 10)

        Returns:
            Indexed words starting with the last word of ``text``.
        """
        return session.suggestions_for_input(text, limit)

    @mcp.tool
    def parse_query(query: str) -> dict[str, Any]:
        """
        Show how a query string is split into free text and filters.

        Args:
            query: Search text with optional operators

        Returns:
            Dict with "text" plus every filter the query sets.
        """
        return parse_search_query(query).to_dict()

    @mcp.tool
    def index_stats() -> StatsSummary:
        """
        Get search index statistics.

        Returns:
            Email count, last index time, estimated size and vocabulary.
        """
        return stats_tool(index)

    @mcp.tool
    def index_emails(emails: list[dict[str, Any]]) -> dict[str, Any]:
        """
        Add or replace emails in the index.

        Each email needs an "id"; other keys: thread_id, subject, snippet,
        sender (or from), to, cc, date (epoch millis), labels, is_read,
        is_starred, has_attachment, folder, body.

        Returns:
            {"indexed": count, "errors": [...]}
        """
        outcome = index_emails_tool(index, emails)
        if outcome["indexed"]:
            changed()
        return outcome

    @mcp.tool
    def remove_email(id: str) -> bool:
        """
        Remove an email from the index.

        Returns:
            True if the email was indexed before removal.
        """
        existed = id in index
        index.remove_from_index(id)
        if existed:
            changed()
        return existed

    return mcp
