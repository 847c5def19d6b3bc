"""Tests for toledoia.widget.identity."""

from __future__ import annotations

import json
import uuid

import pytest

from toledoia.widget.identity import (
    VISITOR_ID_KEY,
    LocalStorage,
    get_or_create_visitor_id,
    random_visitor_id,
    reset_visitor_id,
)


class TestLocalStorage:
    """Tests for the JSON-backed key/value store."""

    def test_missing_file_reads_empty(self, storage):
        assert storage.get_item("anything") is None

    def test_set_and_get(self, storage):
        storage.set_item("k", "v")
        assert storage.get_item("k") == "v"
        assert json.loads(storage.path.read_text(encoding="utf-8")) == {"k": "v"}

    def test_creates_parent_dirs(self, tmp_path):
        store = LocalStorage(tmp_path / "nested" / "dir" / "storage.json")
        store.set_item("k", "v")
        assert store.path.exists()

    def test_remove_item(self, storage):
        storage.set_item("a", "1")
        storage.set_item("b", "2")
        storage.remove_item("a")
        assert storage.get_item("a") is None
        assert storage.get_item("b") == "2"

    def test_shared_between_instances(self, storage):
        storage.set_item("k", "v")
        assert LocalStorage(storage.path).get_item("k") == "v"

    def test_corrupt_file_raises(self, storage):
        storage.path.write_text("{not json", encoding="utf-8")
        with pytest.raises(ValueError):
            storage.get_item("k")

    def test_non_object_raises(self, storage):
        storage.path.write_text("[1, 2]", encoding="utf-8")
        with pytest.raises(ValueError):
            storage.get_item("k")


class TestVisitorId:
    """Tests for visitor id generation and persistence."""

    def test_generates_uuid(self, storage):
        visitor_id = get_or_create_visitor_id(storage)
        assert str(uuid.UUID(visitor_id)) == visitor_id
        assert storage.get_item(VISITOR_ID_KEY) == visitor_id

    def test_stable_across_calls(self, storage):
        first = get_or_create_visitor_id(storage)
        second = get_or_create_visitor_id(LocalStorage(storage.path))
        assert first == second

    def test_reuses_existing(self, storage):
        storage.set_item(VISITOR_ID_KEY, "legacy-visitor")
        assert get_or_create_visitor_id(storage) == "legacy-visitor"

    def test_unreadable_storage_falls_back(self, storage, caplog):
        storage.path.write_text("garbage", encoding="utf-8")
        visitor_id = get_or_create_visitor_id(storage)
        assert len(visitor_id) == 13
        assert visitor_id.isalnum()
        assert "temporary id" in caplog.text

    def test_unwritable_storage_falls_back(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("", encoding="utf-8")
        store = LocalStorage(blocker / "storage.json")
        visitor_id = get_or_create_visitor_id(store)
        assert len(visitor_id) == 13

    def test_random_ids_differ(self):
        assert random_visitor_id() != random_visitor_id()

    def test_reset(self, storage):
        first = get_or_create_visitor_id(storage)
        reset_visitor_id(storage)
        assert storage.get_item(VISITOR_ID_KEY) is None
        assert get_or_create_visitor_id(storage) != first
