"""Tests for registry/store.py — JSON-directory and in-memory repositories."""

import json
from pathlib import Path

import pytest

from termrelay.registry.store import JsonDirStore, MemoryStore, safe_key


@pytest.fixture(params=["json", "memory"])
def store(request, tmp_path: Path):
    if request.param == "json":
        return JsonDirStore(tmp_path / "docs")
    return MemoryStore()


class TestDocumentStore:
    def test_get_missing(self, store):
        assert store.get("nope") is None

    def test_put_get(self, store):
        store.put("a", {"x": 1})
        assert store.get("a") == {"x": 1}

    def test_put_replaces(self, store):
        store.put("a", {"x": 1})
        store.put("a", {"y": 2})
        assert store.get("a") == {"y": 2}

    def test_list_sorted(self, store):
        store.put("b", {"n": 2})
        store.put("a", {"n": 1})
        assert store.list() == [("a", {"n": 1}), ("b", {"n": 2})]

    def test_delete(self, store):
        store.put("a", {})
        assert store.delete("a") is True
        assert store.delete("a") is False
        assert store.get("a") is None

    def test_returned_documents_are_copies(self, store):
        store.put("a", {"items": [1]})
        doc = store.get("a")
        doc["items"].append(2)
        assert store.get("a") == {"items": [1]}


class TestJsonDirStore:
    def test_one_file_per_key(self, tmp_path: Path):
        store = JsonDirStore(tmp_path)
        store.put("1712345678.123456", {"thread_id": "1712345678.123456"})
        path = tmp_path / "1712345678.123456.json"
        assert json.loads(path.read_text()) == {"thread_id": "1712345678.123456"}

    def test_no_temp_files_left(self, tmp_path: Path):
        store = JsonDirStore(tmp_path)
        store.put("a", {"x": 1})
        assert [p.name for p in tmp_path.iterdir()] == ["a.json"]

    def test_corrupt_file_reads_as_none(self, tmp_path: Path):
        (tmp_path / "bad.json").write_text("{not json")
        store = JsonDirStore(tmp_path)
        assert store.get("bad") is None
        assert store.list() == [("bad", None)]

    def test_non_object_reads_as_none(self, tmp_path: Path):
        (tmp_path / "list.json").write_text("[1, 2]")
        assert JsonDirStore(tmp_path).get("list") is None

    def test_missing_directory(self, tmp_path: Path):
        store = JsonDirStore(tmp_path / "absent")
        assert store.list() == []
        assert store.delete("x") is False

    def test_key_cannot_escape_directory(self, tmp_path: Path):
        store = JsonDirStore(tmp_path / "docs")
        store.put("../evil", {"x": 1})
        assert not (tmp_path / "evil.json").exists()
        assert store.get("../evil") == {"x": 1}


class TestSafeKey:
    def test_plain(self):
        assert safe_key("abc-123_x.y") == "abc-123_x.y"

    def test_separators_replaced(self):
        assert safe_key("a/b\\c") == "a_b_c"

    def test_leading_dots_stripped(self):
        assert safe_key("..hidden") == "hidden"

    def test_unusable(self):
        with pytest.raises(ValueError):
            safe_key("...")
