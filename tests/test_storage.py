from concurrent.futures import ThreadPoolExecutor

import pytest

from webaudit_agent.scoring import fallback_result
from webaudit_agent.storage import (
    InMemoryAnalysisStore,
    JsonFileAnalysisStore,
    seed_demo_data,
)


def _result(url: str, timestamp: str = "2024-05-01T12:00:00+00:00"):
    return fallback_result(url, timestamp=timestamp)


class TestInMemoryStore:
    def test_save_get_delete(self, store):
        analysis_id = store.save("https://acme.example", _result("https://acme.example"))

        assert len(analysis_id) == 9
        record = store.get(analysis_id)
        assert record is not None
        assert record.url == "https://acme.example"
        assert record.result.url == "https://acme.example"

        assert store.delete(analysis_id) is True
        assert store.get(analysis_id) is None
        assert store.delete(analysis_id) is False

    def test_unknown_id(self, store):
        assert store.get("missing") is None
        assert store.delete("missing") is False

    def test_capacity_evicts_oldest_insertions(self):
        store = InMemoryAnalysisStore(capacity=3)
        ids = [store.save(f"https://site{i}.example", _result(f"https://site{i}.example")) for i in range(5)]

        assert [r.id for r in store.list_all()] == ids[2:]
        assert store.get(ids[0]) is None

    def test_list_recent_orders_newest_first(self, store):
        store.save("https://b.example", _result("https://b.example", "2024-05-02T00:00:00+00:00"))
        store.save("https://a.example", _result("https://a.example", "2024-05-01T00:00:00+00:00"))
        store.save("https://c.example", _result("https://c.example", "2024-05-03T00:00:00+00:00"))

        assert [r.url for r in store.list_recent()] == ["https://c.example", "https://b.example", "https://a.example"]
        assert [r.url for r in store.list_recent(limit=1)] == ["https://c.example"]

    def test_list_recent_breaks_ties_by_insertion(self, store):
        first = store.save("https://one.example", _result("https://one.example"))
        second = store.save("https://two.example", _result("https://two.example"))

        assert [r.id for r in store.list_recent()] == [second, first]

    def test_rejects_zero_capacity(self):
        with pytest.raises(ValueError):
            InMemoryAnalysisStore(capacity=0)

    def test_concurrent_saves_respect_capacity(self):
        store = InMemoryAnalysisStore(capacity=50)
        with ThreadPoolExecutor(max_workers=8) as pool:
            ids = list(pool.map(lambda i: store.save(f"https://s{i}.example", _result(f"https://s{i}.example")), range(100)))

        assert len(set(ids)) == 100
        assert len(store.list_all()) == 50


class TestJsonFileStore:
    def test_records_survive_reopen(self, tmp_path):
        path = tmp_path / "data" / "analyses.json"
        analysis_id = JsonFileAnalysisStore(path).save("https://acme.example", _result("https://acme.example"))

        reopened = JsonFileAnalysisStore(path)
        record = reopened.get(analysis_id)
        assert record is not None
        assert record.result == _result("https://acme.example")
        assert '"overallScore"' in path.read_text(encoding="utf-8")

    def test_capacity_applies_to_file(self, tmp_path):
        store = JsonFileAnalysisStore(tmp_path / "analyses.json", capacity=2)
        for i in range(4):
            store.save(f"https://s{i}.example", _result(f"https://s{i}.example"))

        assert [r.url for r in JsonFileAnalysisStore(tmp_path / "analyses.json").list_all()] == [
            "https://s2.example",
            "https://s3.example",
        ]

    def test_unreadable_file_is_moved_aside(self, tmp_path):
        path = tmp_path / "analyses.json"
        path.write_text("{not json", encoding="utf-8")
        store = JsonFileAnalysisStore(path)

        assert store.list_all() == []
        store.save("https://acme.example", _result("https://acme.example"))
        assert len(store.list_all()) == 1
        assert (tmp_path / "analyses.json.corrupt").read_text(encoding="utf-8") == "{not json"


def test_seed_demo_data_only_fills_an_empty_store(store):
    assert seed_demo_data(store) == 3
    assert seed_demo_data(store) == 0

    recent = store.list_recent()
    assert [r.url for r in recent] == ["https://example.com", "https://testsite.org", "https://mywebsite.net"]
    assert all(r.result.fallback for r in recent)


def test_concurrent_seeding_adds_one_demo_set(store):
    with ThreadPoolExecutor(max_workers=8) as pool:
        added = list(pool.map(lambda _: seed_demo_data(store), range(16)))

    assert sorted(added) == [0] * 15 + [3]
    assert len(store.list_all()) == 3


def test_save_all_if_empty_is_one_write(tmp_path):
    store = JsonFileAnalysisStore(tmp_path / "analyses.json")
    items = [(f"https://s{i}.example", _result(f"https://s{i}.example")) for i in range(2)]

    ids = store.save_all_if_empty(items)
    assert [r.id for r in store.list_all()] == ids
    assert store.save_all_if_empty(items) == []
    assert len(store.list_all()) == 2
