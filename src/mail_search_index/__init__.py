"""Mail Search Index - In-memory full-text search for email metadata.

Features:
- Inverted token index plus subject n-gram index for typo tolerance
- Gmail-style operators: from:, to:, subject:, label:, is:unread, after:
- Relevance ranking with subject/sender weights, recency and star boosts
- Prefix autocomplete, search history, JSON snapshots

Usage:
    mail-search-index index emails.json   # Index emails into the snapshot
    mail-search-index search "budget"     # Search the snapshot
    mail-search-index status              # Show index statistics
    mail-search-index                     # Run MCP server (default)
"""

from .cli import main
from .history import SearchHistory, SearchSession
from .index import SearchIndex, SearchQuery, SearchResult, parse_search_query

__all__ = [
    "SearchHistory",
    "SearchIndex",
    "SearchQuery",
    "SearchResult",
    "SearchSession",
    "main",
    "parse_search_query",
]
