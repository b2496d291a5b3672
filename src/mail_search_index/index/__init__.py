"""In-memory email search index.

This module provides:
- SearchIndex: Main interface for indexing, searching and autocomplete
- parse_search_query(): The from:/is:/after: query mini-language
- tokenize() / create_ngrams(): Text normalization for postings
- Snapshot export/import for host-side persistence (see .snapshot)
"""

from .manager import SearchIndex
from .query import SearchQuery, parse_search_query
from .schema import IndexedEmail, IndexSnapshot, IndexStats, email_to_record
from .search import Highlight, SearchResult
from .text import create_ngrams, is_similar, levenshtein_distance, tokenize

__all__ = [
    "Highlight",
    "IndexSnapshot",
    "IndexStats",
    "IndexedEmail",
    "SearchIndex",
    "SearchQuery",
    "SearchResult",
    "create_ngrams",
    "email_to_record",
    "is_similar",
    "levenshtein_distance",
    "parse_search_query",
    "tokenize",
]
