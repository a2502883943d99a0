# tests/test_state.py
# -*- coding: utf-8 -*-

import json

import pytest

from rentwatch.config import Settings
from rentwatch.storage.state import SeenStore, SQLiteSeenStore, open_seen_store


@pytest.fixture(params=["json", "sqlite"])
def make_store(request, tmp_path):
    opened = []

    def _make(namespace="seen_v2"):
        if request.param == "json":
            store = SeenStore(str(tmp_path / "seen.json"), namespace)
        else:
            store = SQLiteSeenStore(str(tmp_path / "state.db"), namespace)
        opened.append(store)
        return store

    yield _make
    for s in opened:
        s.close()


def test_mark_then_seen(make_store):
    store = make_store()
    assert not store.has_seen("101")
    store.mark_seen("101")
    assert store.has_seen("101")
    assert not store.has_seen("102")


def test_mark_is_idempotent(make_store):
    store = make_store()
    store.mark_seen("101")
    store.mark_seen("101")
    assert store.count() == 1


def test_namespaces_are_isolated(make_store):
    old = make_store("seen_v1")
    old.mark_seen("101")
    new = make_store("seen_v2")
    assert not new.has_seen("101")
    assert new.count() == 0


def test_state_survives_reopen(make_store):
    first = make_store()
    first.mark_seen("101")
    first.close()
    assert make_store().has_seen("101")


def test_json_layout_and_atomic_write(tmp_path):
    path = tmp_path / "data" / "seen.json"
    store = SeenStore(str(path), "seen_v2")
    store.mark_seen("7")
    assert json.loads(path.read_text(encoding="utf-8")) == {"seen_v2:7": True}
    assert [p.name for p in path.parent.iterdir()] == ["seen.json"]


def test_json_unreadable_file_starts_empty(tmp_path):
    path = tmp_path / "seen.json"
    path.write_text("{not json", encoding="utf-8")
    assert SeenStore(str(path)).count() == 0


def test_open_seen_store_backend_choice(tmp_path):
    s = open_seen_store(Settings(seen_backend="json", state_file=str(tmp_path / "a.json")))
    assert isinstance(s, SeenStore)
    s = open_seen_store(Settings(state_db=str(tmp_path / "a.db")))
    assert isinstance(s, SQLiteSeenStore)
    s.close()
