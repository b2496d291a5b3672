"""Configuration for the mail search index."""

import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)

# Default snapshot location
DEFAULT_SNAPSHOT_PATH = Path.home() / ".mail-search-index" / "snapshot.json"

DEFAULT_SEARCH_LIMIT = 50
DEFAULT_SUGGESTION_LIMIT = 10
DEFAULT_SIMILARITY_THRESHOLD = 0.3

_FALSE_VALUES = {"0", "false", "no", "off"}


def _env_number(name: str, default, cast):
    """Read a numeric env var, falling back to the default on bad input."""
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return cast(raw)
    except ValueError:
        logger.warning("Ignoring invalid %s=%r, using %s", name, raw, default)
        return default


def get_snapshot_path() -> Path:
    """
    Get the index snapshot file path.

    Set MAIL_SEARCH_SNAPSHOT_PATH to customize the location.
    Defaults to ~/.mail-search-index/snapshot.json

    Returns:
        Path to the snapshot JSON file.
    """
    env_path = os.environ.get("MAIL_SEARCH_SNAPSHOT_PATH")
    if env_path:
        return Path(env_path).expanduser()
    return DEFAULT_SNAPSHOT_PATH


def get_default_limit() -> int:
    """
    Get the default maximum number of search results.

    Set MAIL_SEARCH_DEFAULT_LIMIT to customize. Defaults to 50.
    """
    limit = _env_number("MAIL_SEARCH_DEFAULT_LIMIT", DEFAULT_SEARCH_LIMIT, int)
    return limit if limit >= 0 else DEFAULT_SEARCH_LIMIT


def get_fuzzy_enabled() -> bool:
    """
    Whether fuzzy (n-gram + edit distance) matching is on by default.

    Set MAIL_SEARCH_FUZZY to 0/false/no/off to disable.
    """
    raw = os.environ.get("MAIL_SEARCH_FUZZY", "true")
    return raw.strip().lower() not in _FALSE_VALUES


def get_similarity_threshold() -> float:
    """
    Get the normalized edit-distance threshold for fuzzy token matches.

    Set MAIL_SEARCH_SIMILARITY_THRESHOLD to customize. Defaults to 0.3.
    Values outside [0, 1] fall back to the default.
    """
    value = _env_number(
        "MAIL_SEARCH_SIMILARITY_THRESHOLD",
        DEFAULT_SIMILARITY_THRESHOLD,
        float,
    )
    if not 0.0 <= value <= 1.0:
        logger.warning("Similarity threshold %s out of range", value)
        return DEFAULT_SIMILARITY_THRESHOLD
    return value


def get_suggestion_limit() -> int:
    """
    Get the default number of autocomplete suggestions.

    Set MAIL_SEARCH_SUGGESTION_LIMIT to customize. Defaults to 10.
    """
    limit = _env_number(
        "MAIL_SEARCH_SUGGESTION_LIMIT", DEFAULT_SUGGESTION_LIMIT, int
    )
    return limit if limit >= 0 else DEFAULT_SUGGESTION_LIMIT
