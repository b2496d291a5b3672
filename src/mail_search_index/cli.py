"""Command-line interface for mail-search-index.

Provides commands for:
- index: Add emails from a JSON file to the snapshot
- remove: Drop an email from the snapshot
- search: Search the snapshot
- suggest: Autocomplete a word prefix
- status: Show index statistics
- save / saved: Manage saved searches
- serve: Run the MCP server (default)

Usage:
    mail-search-index                      # Run MCP server (default)
    mail-search-index index emails.json    # Index emails from JSON
    mail-search-index search "budget is:unread"
    mail-search-index suggest bud
    mail-search-index status
"""

import json
import logging
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import Annotated, Literal, NoReturn

import cyclopts

from .config import get_snapshot_path

app = cyclopts.App(
    name="mail-search-index",
    help="In-memory email search index with an MCP server.",
)

SnapshotOption = Annotated[
    Path | None,
    cyclopts.Parameter(
        name=["--snapshot", "-s"],
        help="Snapshot file (default: MAIL_SEARCH_SNAPSHOT_PATH)",
    ),
]

VerboseOption = Annotated[
    bool,
    cyclopts.Parameter(
        name=["--verbose", "-v"],
        help="Enable verbose output",
    ),
]


def _format_size(size_bytes: int) -> str:
    """Format a byte count for display."""
    if size_bytes < 1024:
        return f"{size_bytes} B"
    if size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    return f"{size_bytes / (1024 * 1024):.1f} MB"


def _format_time(seconds: float) -> str:
    """Format duration for display."""
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes = int(seconds // 60)
    secs = seconds % 60
    return f"{minutes}m {secs:.1f}s"


def _format_date(millis: int) -> str:
    return datetime.fromtimestamp(millis / 1000).strftime("%Y-%m-%d %H:%M")


def _setup_logging(verbose: bool) -> None:
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            stream=sys.stderr,
            format="%(levelname)s %(name)s: %(message)s",
        )


def _fail(message: str) -> NoReturn:
    print(f"✗ {message}", file=sys.stderr)
    sys.exit(1)


def _load(snapshot: Path | None, must_exist: bool = False):
    """Load the snapshot, exiting with a message on failure."""
    from .index.snapshot import load_or_create, read_snapshot

    path = snapshot or get_snapshot_path()
    try:
        if must_exist:
            return path, read_snapshot(path)
        return path, load_or_create(path)
    except FileNotFoundError:
        print("No index found.", file=sys.stderr)
        print(f"Expected location: {path}", file=sys.stderr)
        print(
            "\nRun 'mail-search-index index FILE' to build the index.",
            file=sys.stderr,
        )
        sys.exit(1)
    except ValueError as e:
        _fail(f"Cannot read snapshot: {e}")


def _save(path: Path, loaded) -> None:
    from .index.snapshot import write_snapshot

    try:
        write_snapshot(path, loaded.index, loaded.history)
    except OSError as e:
        _fail(f"Cannot write snapshot: {e}")


def _run_serve(snapshot: Path | None) -> None:
    """Internal function to run the MCP server."""
    from .server import create_server

    path, loaded = _load(snapshot)
    print(
        f"Serving {len(loaded.index):,} indexed emails from {path}",
        file=sys.stderr,
    )

    server = create_server(
        loaded.index,
        loaded.history,
        on_change=lambda: _save(path, loaded),
    )
    server.run()


@app.command
def serve(
    snapshot: SnapshotOption = None,
    verbose: VerboseOption = False,
) -> None:
    """
    Run the MCP server.

    This is the default command when no subcommand is specified.
    The index is loaded from the snapshot file and written back whenever
    a client indexes or removes emails.
    """
    _setup_logging(verbose)
    _run_serve(snapshot)


@app.command
def index(
    file: Path,
    snapshot: SnapshotOption = None,
    replace: Annotated[
        bool,
        cyclopts.Parameter(
            name=["--replace"],
            help="Clear the existing index before indexing",
        ),
    ] = False,
    verbose: VerboseOption = False,
) -> None:
    """
    Index emails from a JSON file.

    FILE holds a list of email objects (or {"emails": [...]}). Each email
    needs an "id"; emails already in the index are replaced.
    """
    from .index.snapshot import load_emails_file

    _setup_logging(verbose)
    path, loaded = _load(snapshot)

    try:
        emails = load_emails_file(file)
    except (FileNotFoundError, ValueError) as e:
        _fail(str(e))

    if replace:
        loaded.index.clear()

    start = time.time()
    count = 0
    skipped = 0
    for email in emails:
        try:
            loaded.index.index_email(email)
            count += 1
        except (TypeError, ValueError) as e:
            skipped += 1
            if verbose:
                print(f"  skipped: {e}", file=sys.stderr)
    elapsed = time.time() - start

    _save(path, loaded)

    stats = loaded.index.get_stats()
    print(f"✓ Indexed {count:,} emails in {_format_time(elapsed)}")
    if skipped:
        print(f"  Skipped:    {skipped:,} invalid records")
    print(f"  Total:      {stats.total_indexed:,}")
    print(f"  Index size: {_format_size(stats.index_size_bytes)}")


@app.command
def remove(
    email_id: str,
    snapshot: SnapshotOption = None,
) -> None:
    """Remove an email from the index by id."""
    path, loaded = _load(snapshot, must_exist=True)

    if email_id not in loaded.index:
        print(f"Email {email_id} is not indexed.")
        return

    loaded.index.remove_from_index(email_id)
    _save(path, loaded)
    print(f"✓ Removed {email_id}")


@app.command
def search(
    query: str,
    snapshot: SnapshotOption = None,
    limit: Annotated[
        int,
        cyclopts.Parameter(name=["--limit", "-n"], help="Maximum results"),
    ] = 20,
    fuzzy: Annotated[
        bool,
        cyclopts.Parameter(
            name=["--fuzzy"],
            negative=["--no-fuzzy"],
            help="Tolerate typos",
        ),
    ] = True,
    sort: Annotated[
        Literal["relevance", "date"],
        cyclopts.Parameter(name=["--sort"], help="Result order"),
    ] = "relevance",
    as_json: Annotated[
        bool,
        cyclopts.Parameter(name=["--json"], help="Print results as JSON"),
    ] = False,
    verbose: VerboseOption = False,
) -> None:
    """
    Search the index.

    QUERY accepts free text plus operators: from:, to:, subject:,
    label:, in:, has:attachment, is:read, is:unread, is:starred,
    after:YYYY-MM-DD, before:YYYY-MM-DD.
    """
    from .history import SearchSession

    _setup_logging(verbose)
    path, loaded = _load(snapshot, must_exist=True)
    session = SearchSession(loaded.index, loaded.history)

    start = time.time()
    results = session.execute(query, limit=limit, fuzzy=fuzzy, sort_by=sort)
    elapsed = time.time() - start
    _save(path, loaded)

    if as_json:
        print(json.dumps([r.to_dict() for r in results], indent=2))
        return

    if not results:
        print("No matches.")
        return

    for result in results:
        email = result.email
        flags = ("*" if email.is_starred else " ") + (
            " " if email.is_read else "u"
        )
        subject = email.subject or "(no subject)"
        print(
            f"{result.score:8.2f} {flags} {_format_date(email.date)}  {subject}"
        )
        print(f"{'':12}{email.sender}  [{email.id}]")
        for highlight in result.highlights:
            print(f"{'':12}{highlight.field}: {', '.join(highlight.matches)}")

    print()
    print(f"{len(results)} results in {_format_time(elapsed)}")


@app.command
def suggest(
    prefix: str,
    snapshot: SnapshotOption = None,
    limit: Annotated[
        int,
        cyclopts.Parameter(name=["--limit", "-n"], help="Maximum suggestions"),
    ] = 10,
) -> None:
    """Print indexed words starting with PREFIX."""
    _, loaded = _load(snapshot, must_exist=True)
    for word in loaded.index.get_suggestions(prefix, limit):
        print(word)


@app.command
def status(
    snapshot: SnapshotOption = None,
) -> None:
    """
    Show index statistics.

    Displays:
    - Email count and vocabulary size
    - Last index time
    - Estimated index size
    - Recent and saved searches
    """
    path, loaded = _load(snapshot, must_exist=True)
    stats = loaded.index.get_stats()

    print("Mail Search Index Status")
    print("=" * 40)
    print(f"Location:     {path}")
    print(f"Emails:       {stats.total_indexed:,}")
    print(f"Vocabulary:   {loaded.index.vocabulary_size:,} words")
    print(f"Index size:   {_format_size(stats.index_size_bytes)} (estimate)")
    print(f"Snapshot:     {_format_size(path.stat().st_size)}")
    print()

    if stats.last_indexed_at:
        print(f"Last indexed: {_format_date(stats.last_indexed_at)}")
    else:
        print("Last indexed: Never")

    history = loaded.history
    if history.recent_searches:
        print()
        print("Recent searches:")
        for query in history.recent_searches:
            print(f"  {query}")
    if history.saved_searches:
        print()
        print(f"Saved searches: {len(history.saved_searches)}")


@app.command
def save(
    name: str,
    query: str,
    snapshot: SnapshotOption = None,
) -> None:
    """Save QUERY under NAME for later reuse."""
    path, loaded = _load(snapshot)
    saved = loaded.history.save_search(name, query)
    _save(path, loaded)
    print(f"✓ Saved '{name}' as {saved.id}")


@app.command
def saved(
    snapshot: SnapshotOption = None,
    delete: Annotated[
        str | None,
        cyclopts.Parameter(
            name=["--delete", "-d"],
            help="Delete the saved search with this id",
        ),
    ] = None,
) -> None:
    """List saved searches, or delete one with --delete."""
    path, loaded = _load(snapshot)
    history = loaded.history

    if delete is not None:
        if not history.delete_saved_search(delete):
            _fail(f"No saved search with id {delete}")
        _save(path, loaded)
        print(f"✓ Deleted {delete}")
        return

    if not history.saved_searches:
        print("No saved searches.")
        return

    for entry in history.saved_searches:
        print(f"{entry.id}  {entry.name}: {entry.query}")


@app.default
def default_handler(
    snapshot: SnapshotOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Run the MCP server (default when no command specified)."""
    _setup_logging(verbose)
    _run_serve(snapshot)


def main() -> None:
    """Entry point for the CLI."""
    app()
