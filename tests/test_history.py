"""Tests for SearchHistory and SearchSession."""

from __future__ import annotations

import pytest

from mail_search_index import history as history_module
from mail_search_index.history import (
    MAX_HISTORY_ENTRIES,
    MAX_RECENT_SEARCHES,
    SearchHistory,
    SearchSession,
)


class TestRecentSearches:
    def test_newest_first(self):
        history = SearchHistory()
        history.add_recent("one")
        history.add_recent("two")
        assert history.recent_searches == ["two", "one"]

    def test_repeat_moves_to_front(self):
        history = SearchHistory()
        for query in ["a", "b", "c", "a"]:
            history.add_recent(query)
        assert history.recent_searches == ["a", "c", "b"]

    def test_capped(self):
        history = SearchHistory()
        for i in range(MAX_RECENT_SEARCHES + 5):
            history.add_recent(f"q{i}")

        assert len(history.recent_searches) == MAX_RECENT_SEARCHES
        assert history.recent_searches[0] == f"q{MAX_RECENT_SEARCHES + 4}"

    def test_clear(self):
        history = SearchHistory(recent_searches=["x"])
        history.clear_recent()
        assert history.recent_searches == []


class TestSavedSearches:
    def test_save_and_get(self, monkeypatch):
        monkeypatch.setattr(history_module, "now_millis", lambda: 1000)
        history = SearchHistory()

        saved = history.save_search("Unread work", "is:unread label:work")

        assert saved.id == "search_1000"
        assert history.get_saved_search("search_1000") is saved

    def test_same_millisecond_ids_are_unique(self, monkeypatch):
        monkeypatch.setattr(history_module, "now_millis", lambda: 1000)
        history = SearchHistory()

        first = history.save_search("a", "x")
        second = history.save_search("b", "y")

        assert first.id != second.id
        assert second.id == "search_1001"

    def test_delete(self):
        history = SearchHistory()
        saved = history.save_search("a", "x")

        assert history.delete_saved_search(saved.id) is True
        assert history.get_saved_search(saved.id) is None
        assert history.delete_saved_search(saved.id) is False


class TestHistoryLog:
    def test_record_newest_first_and_capped(self):
        history = SearchHistory()
        for i in range(MAX_HISTORY_ENTRIES + 3):
            history.record_search(f"q{i}", i)

        assert len(history.entries) == MAX_HISTORY_ENTRIES
        assert history.entries[0].query == f"q{MAX_HISTORY_ENTRIES + 2}"
        assert history.entries[0].result_count == MAX_HISTORY_ENTRIES + 2


class TestSerialization:
    def test_round_trip(self):
        history = SearchHistory()
        history.add_recent("budget")
        history.save_search("Finance", "label:finance")
        history.record_search("budget", 2)

        restored = SearchHistory.from_dict(history.to_dict())

        assert restored == history

    def test_skips_malformed_items(self, caplog):
        data = {
            "recent_searches": ["ok", 42],
            "saved_searches": [
                {"id": "s1", "name": "n", "query": "q"},
                {"id": "s2"},
            ],
            "entries": [{"query": "q"}],
        }

        with caplog.at_level("WARNING"):
            restored = SearchHistory.from_dict(data)

        assert restored.recent_searches == ["ok"]
        assert [s.id for s in restored.saved_searches] == ["s1"]
        assert restored.entries == []
        assert "malformed" in caplog.text

    def test_empty_dict(self):
        assert SearchHistory.from_dict({}) == SearchHistory()


class TestSearchSession:
    @pytest.fixture
    def session(self, populated_index) -> SearchSession:
        return SearchSession(populated_index)

    def test_execute_records_history(self, session, now):
        results = session.execute("budget", now=now)

        assert [r.email.id for r in results] == ["m1", "m2"]
        assert session.history.recent_searches == ["budget"]
        assert session.history.entries[0].result_count == 2

    @pytest.mark.parametrize("query", ["", "   "])
    def test_blank_query_is_ignored(self, session, query):
        assert session.execute(query) == []
        assert session.history.recent_searches == []
        assert session.history.entries == []

    def test_options_pass_through(self, session, now):
        results = session.execute("is:unread", sort_by="date", now=now)
        assert [r.email.id for r in results] == ["m1", "m4", "m3"]

    def test_run_saved_search(self, session, now):
        saved = session.history.save_search("Invoices", "invoice")
        results = session.run_saved_search(saved.id, now=now)

        assert [r.email.id for r in results] == ["m3"]
        assert session.history.recent_searches == ["invoice"]

    def test_run_unknown_saved_search(self, session):
        with pytest.raises(KeyError):
            session.run_saved_search("search_0")

    def test_shares_given_history(self, populated_index):
        history = SearchHistory()
        session = SearchSession(populated_index, history)
        session.execute("budget")
        assert history.recent_searches == ["budget"]

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("", []),
            ("b", []),
            ("bu", ["budget"]),
            ("quarterly bud", ["budget"]),
            ("quarterly b", []),
            ("budget ", []),
            ("NEWS", ["newsletter", "news", "news@acme.com"]),
        ],
    )
    def test_suggestions_for_input(self, session, text, expected):
        assert session.suggestions_for_input(text) == expected

    def test_suggestion_limit(self, session):
        assert session.suggestions_for_input("ne", limit=1) == ["newsletter"]
