"""Tests for the SearchIndex store.

Covers:
- Upsert semantics and stale-posting removal
- Removal completeness and posting pruning
- Autocomplete vocabulary scans
- Statistics
- Export/import round trip
- Serialized access from multiple threads
"""

from __future__ import annotations

import threading

import pytest

from mail_search_index.index import IndexedEmail, SearchIndex
from mail_search_index.index.text import create_ngrams


def _all_posted_ids(index: SearchIndex) -> set[str]:
    ids: set[str] = set()
    for posting in index._postings.values():
        ids |= posting
    for posting in index._ngrams.values():
        ids |= posting
    return ids


class TestIndexEmail:
    """Tests for index_email()."""

    def test_indexes_tokens_and_subject_ngrams(self, index):
        index.index_email({"id": "e1", "subject": "Budget", "snippet": "q1"})

        assert "e1" in index
        assert index.posting_ids("budget") == {"e1"}
        assert index.posting_ids("q1") == {"e1"}
        for ngram in create_ngrams("Budget"):
            assert index.ngram_ids(ngram) == {"e1"}

    def test_accepts_prebuilt_record(self, index):
        record = IndexedEmail(id="r1", subject="Hello", tokens=["hello"])
        index.index_email(record)
        assert index.get_email("r1") is record

    def test_reindex_replaces_old_postings(self, index, now):
        index.index_email({"id": "e1", "subject": "Alpha", "date": now})
        index.index_email({"id": "e1", "subject": "Beta", "date": now})

        assert len(index) == 1
        assert index.posting_ids("alpha") == set()
        assert index.posting_ids("beta") == {"e1"}
        assert index.ngram_ids("alp") == set()
        assert [r.email.id for r in index.search("Alpha", now=now)] == []
        assert [r.email.id for r in index.search("Beta", now=now)] == ["e1"]

    def test_reindex_same_content_is_idempotent(self, index, sample_emails):
        index.index_email(sample_emails[0])
        before = (
            {k: set(v) for k, v in index._postings.items()},
            {k: set(v) for k, v in index._ngrams.items()},
        )
        index.index_email(sample_emails[0])

        assert (index._postings, index._ngrams) == before
        assert len(index) == 1

    def test_missing_id_raises(self, index):
        with pytest.raises(ValueError):
            index.index_email({"subject": "orphan"})
        assert len(index) == 0

    def test_index_emails_batch(self, index, sample_emails):
        assert index.index_emails(sample_emails) == len(sample_emails)
        assert len(index) == len(sample_emails)


class TestRemoveFromIndex:
    """Tests for remove_from_index()."""

    def test_removes_every_posting(self, populated_index):
        record = populated_index.get_email("m2")
        before = populated_index.get_stats().total_indexed

        populated_index.remove_from_index("m2")

        assert "m2" not in populated_index
        assert "m2" not in _all_posted_ids(populated_index)
        for token in record.tokens:
            assert "m2" not in populated_index.posting_ids(token)
        assert populated_index.get_stats().total_indexed == before - 1

    def test_prunes_empty_posting_sets(self, populated_index):
        populated_index.remove_from_index("m2")

        # "newsletter" only appeared in m2; "budget" is shared with m1
        assert "newsletter" not in populated_index._postings
        assert populated_index.posting_ids("budget") == {"m1"}
        assert all(populated_index._postings.values())
        assert all(populated_index._ngrams.values())

    def test_unknown_id_is_noop(self, populated_index):
        before = populated_index.get_stats()
        populated_index.remove_from_index("does-not-exist")
        assert populated_index.get_stats() == before

    def test_removing_everything_empties_indexes(
        self, populated_index, sample_emails
    ):
        for email in sample_emails:
            populated_index.remove_from_index(email["id"])

        assert len(populated_index) == 0
        assert populated_index._postings == {}
        assert populated_index._ngrams == {}


class TestClear:
    """Tests for clear()."""

    def test_clear_drops_all_maps(self, populated_index):
        populated_index.clear()

        assert len(populated_index) == 0
        assert populated_index.vocabulary_size == 0
        assert populated_index._ngrams == {}
        assert populated_index.search("budget") == []


class TestGetSuggestions:
    """Tests for prefix autocomplete."""

    def test_vocabulary_insertion_order(self, populated_index):
        assert populated_index.get_suggestions("new") == [
            "newsletter",
            "news",
            "news@acme.com",
        ]

    def test_prefix_is_case_insensitive(self, populated_index):
        assert populated_index.get_suggestions("BUD") == ["budget"]

    def test_stops_at_limit(self, populated_index):
        assert populated_index.get_suggestions("b", limit=2) == [
            "budget",
            "billing",
        ]

    def test_zero_limit(self, populated_index):
        assert populated_index.get_suggestions("b", limit=0) == []

    def test_negative_limit_uses_default(self, index):
        for i in range(15):
            index.index_email({"id": str(i), "subject": f"word{i:02d}"})
        assert len(index.get_suggestions("word", limit=-5)) == 10

    def test_no_match(self, populated_index):
        assert populated_index.get_suggestions("zzz") == []

    def test_removed_tokens_are_not_suggested(self, populated_index):
        populated_index.remove_from_index("m2")
        assert populated_index.get_suggestions("new") == []


class TestGetStats:
    """Tests for index statistics."""

    def test_empty_index(self, index):
        stats = index.get_stats()
        assert stats.total_indexed == 0
        assert stats.last_indexed_at == 0
        assert stats.index_size_bytes == 0

    def test_size_estimate(self, index):
        index.index_email({"id": "e1", "subject": "hello world"})
        # 2 tokens x (5 chars x 2 bytes + 1 id x 36 bytes)
        assert index.get_stats().index_size_bytes == 92

    def test_shared_token_counts_each_id(self, index):
        index.index_email({"id": "e1", "subject": "hello"})
        index.index_email({"id": "e2", "subject": "hello"})
        assert index.get_stats().index_size_bytes == 5 * 2 + 2 * 36

    def test_last_indexed_at_is_set(self, index):
        index.index_email({"id": "e1", "subject": "hello"})
        assert index.get_stats().last_indexed_at > 0


class TestSnapshotRoundTrip:
    """Tests for export_snapshot() / import_snapshot()."""

    QUERIES = [
        "budget",
        "invoice",
        "invioce",
        "project deadline",
        "is:unread",
        "label:finance",
        "from:acme.com budget",
        "",
    ]

    def test_export_contains_records_and_stats(self, populated_index):
        snapshot = populated_index.export_snapshot()

        assert [e.id for e in snapshot.emails] == ["m1", "m2", "m3", "m4"]
        assert snapshot.stats == populated_index.get_stats()

    def test_import_reproduces_postings(self, populated_index):
        restored = SearchIndex()
        restored.import_snapshot(populated_index.export_snapshot().emails)

        assert restored._emails == populated_index._emails
        assert restored._postings == populated_index._postings
        assert restored._ngrams == populated_index._ngrams

    def test_import_from_dicts(self, populated_index):
        data = populated_index.export_snapshot().to_dict()
        restored = SearchIndex()

        assert restored.import_snapshot(data["emails"]) == 4
        assert restored._postings == populated_index._postings

    @pytest.mark.parametrize("query", QUERIES)
    def test_search_results_identical(self, populated_index, now, query):
        restored = SearchIndex(similarity_threshold=0.3)
        restored.import_snapshot(populated_index.export_snapshot().emails)

        def ranked(idx):
            return [(r.email.id, r.score) for r in idx.search(query, now=now)]

        assert ranked(restored) == ranked(populated_index)

    def test_import_clears_existing_contents(self, populated_index):
        populated_index.import_snapshot([IndexedEmail(id="only")])
        assert len(populated_index) == 1
        assert populated_index.posting_ids("budget") == set()

    def test_import_skips_unreadable_records(self, index):
        count = index.import_snapshot(
            [{"id": "ok", "tokens": ["fine"]}, {"subject": "no id"}]
        )
        assert count == 1
        assert index.posting_ids("fine") == {"ok"}

    def test_imported_null_fields_are_searchable(self, index):
        index.import_snapshot(
            [
                {
                    "id": "a",
                    "subject": None,
                    "date": "1710504000000",
                    "tokens": ["hello"],
                }
            ]
        )

        results = index.search("hello")
        assert [r.email.id for r in results] == ["a"]
        assert index.get_email("a").date == 1710504000000

    def test_import_skips_records_with_bad_types(self, index, caplog):
        with caplog.at_level("WARNING"):
            count = index.import_snapshot(
                [
                    {"id": "ok", "tokens": ["fine"]},
                    {"id": "bad", "date": "not a date", "tokens": ["fine"]},
                ]
            )

        assert count == 1
        assert index.posting_ids("fine") == {"ok"}
        assert "Skipping unreadable snapshot record" in caplog.text
        assert index.search("fine") != []


class TestThreadSafety:
    """Concurrent mutation and search go through one lock."""

    def test_concurrent_index_and_search(self, index):
        errors: list[Exception] = []

        def worker(worker_id: int) -> None:
            try:
                for i in range(50):
                    index.index_email(
                        {
                            "id": f"{worker_id}-{i}",
                            "subject": f"report {worker_id} item {i}",
                        }
                    )
                    index.search("report")
                    index.get_suggestions("rep")
            except Exception as e:  # noqa: BLE001
                errors.append(e)

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert len(index) == 200
        assert len(index.posting_ids("report")) == 200
