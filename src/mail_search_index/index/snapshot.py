"""JSON snapshot files for the search index.

The index itself is purely in-memory; this module is the host-side
durability layer built on export_snapshot()/import_snapshot().

Snapshot layout (version 1):
    {
      "version": 1,
      "emails": [IndexedEmail.to_dict(), ...],
      "stats": IndexStats.to_dict(),
      "history": SearchHistory.to_dict()   # optional
    }

The format is not guaranteed to be stable across versions.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ..history import SearchHistory
from .manager import SearchIndex
from .schema import SNAPSHOT_VERSION

logger = logging.getLogger(__name__)


@dataclass
class LoadedSnapshot:
    """An index and search history restored from a snapshot file."""

    index: SearchIndex
    history: SearchHistory


def write_snapshot(
    path: Path,
    index: SearchIndex,
    history: SearchHistory | None = None,
) -> None:
    """
    Atomically write the index (and optional history) to ``path``.

    Writes to a sibling temp file and renames it into place, creating
    parent directories if needed.

    Security:
        Sets file permissions to 0600 (owner read/write only) since the
        snapshot contains email subjects, senders and snippets.
    """
    data = index.export_snapshot().to_dict()
    if history is not None:
        data["history"] = history.to_dict()

    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(path.name + ".tmp")

    with open(tmp_path, "w", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False)

    try:
        os.chmod(tmp_path, 0o600)
    except OSError as e:
        logger.warning("Could not set secure permissions on %s: %s", path, e)

    os.replace(tmp_path, path)
    logger.debug(
        "Wrote snapshot with %d emails to %s", len(data["emails"]), path
    )


def _read_json(path: Path) -> Any:
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")
    try:
        with open(path, encoding="utf-8") as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in {path}: {e}") from e


def read_snapshot(
    path: Path, index: SearchIndex | None = None
) -> LoadedSnapshot:
    """
    Load a snapshot file into an index.

    Args:
        path: Snapshot JSON file
        index: Index to import into (a new SearchIndex if None)

    Returns:
        LoadedSnapshot with the populated index and search history

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the file is not a readable snapshot
    """
    data = _read_json(path)
    if not isinstance(data, dict) or not isinstance(data.get("emails"), list):
        raise ValueError(f"Not an index snapshot: {path}")

    version = data.get("version", SNAPSHOT_VERSION)
    if not isinstance(version, int) or version > SNAPSHOT_VERSION:
        raise ValueError(
            f"Unsupported snapshot version {version!r} "
            f"(max {SNAPSHOT_VERSION})"
        )

    index = index if index is not None else SearchIndex()
    index.import_snapshot(data["emails"])

    history_data = data.get("history")
    history = (
        SearchHistory.from_dict(history_data)
        if isinstance(history_data, dict)
        else SearchHistory()
    )
    return LoadedSnapshot(index=index, history=history)


def load_or_create(path: Path) -> LoadedSnapshot:
    """Read a snapshot if it exists, otherwise start empty."""
    if path.exists():
        return read_snapshot(path)
    return LoadedSnapshot(index=SearchIndex(), history=SearchHistory())


def load_emails_file(path: Path) -> list[dict[str, Any]]:
    """
    Read raw email input records from a JSON file.

    Accepts either a top-level list or an object with an ``emails`` list.
    Entries that are not objects are skipped with a warning.

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the JSON has neither shape
    """
    data = _read_json(path)
    if isinstance(data, dict):
        data = data.get("emails")
    if not isinstance(data, list):
        raise ValueError(f"Expected a list of emails in {path}")

    emails = []
    for position, item in enumerate(data):
        if isinstance(item, dict):
            emails.append(item)
        else:
            logger.warning(
                "Skipping entry %d in %s: not an object", position, path
            )
    return emails
