import json
import tempfile
from pathlib import Path
from datetime import datetime, timezone

import pytest

from persona_core.domain.exceptions import BusinessError
from persona_core.domain.models import Bot
from persona_core.infrastructure.storage.kv_store import JsonFileKeyValueStore, MemoryKeyValueStore
from persona_core.infrastructure.storage.local_bot_store import STORAGE_KEY, LocalBotStore


def _bot(bot_id: str, name: str = "Bot") -> Bot:
    return Bot(
        id=bot_id,
        name=name,
        persona="You are helpful.",
        avatar_url="https://example.com/a.png",
        created_at=datetime(2024, 5, 1, 12, 30, 15, 123456, tzinfo=timezone.utc),
    )


def test_save_and_list_round_trip():
    with tempfile.TemporaryDirectory() as d:
        store = LocalBotStore(JsonFileKeyValueStore(root=Path(d) / ".storage"))
        assert store.list() == []
        b1, b2 = _bot("b1", "First"), _bot("b2", "Second")
        store.save(b1)
        store.save(b2)
        bots = store.list()
        assert bots == [b1, b2]


def test_list_survives_new_store_instance():
    with tempfile.TemporaryDirectory() as d:
        root = Path(d) / ".storage"
        LocalBotStore(JsonFileKeyValueStore(root=root)).save(_bot("b1"))
        bots = LocalBotStore(JsonFileKeyValueStore(root=root)).list()
        assert [b.id for b in bots] == ["b1"]
        assert (root / f"{STORAGE_KEY}.json").exists()


def test_save_does_not_deduplicate_and_delete_removes_all():
    store = LocalBotStore(MemoryKeyValueStore())
    store.save(_bot("dup"))
    store.save(_bot("keep"))
    store.save(_bot("dup"))
    assert [b.id for b in store.list()] == ["dup", "keep", "dup"]
    store.delete("dup")
    assert [b.id for b in store.list()] == ["keep"]


def test_delete_missing_is_noop():
    kv = MemoryKeyValueStore()
    store = LocalBotStore(kv)
    store.delete("nothing")
    assert kv.get(STORAGE_KEY) is None
    store.save(_bot("b1"))
    store.delete("nothing")
    assert [b.id for b in store.list()] == ["b1"]


@pytest.mark.parametrize("raw", ["{not json", '{"id": "b1"}', '"text"', "42", "[" * 100000])
def test_corrupted_storage_reads_as_empty(raw):
    store = LocalBotStore(MemoryKeyValueStore({STORAGE_KEY: raw}))
    assert store.list() == []


def test_corrupted_file_reads_as_empty():
    with tempfile.TemporaryDirectory() as d:
        root = Path(d) / ".storage"
        kv = JsonFileKeyValueStore(root=root)
        (root / f"{STORAGE_KEY}.json").write_bytes(b"\xff\xfe garbage")
        assert LocalBotStore(kv).list() == []


def test_save_over_corrupted_storage_starts_fresh():
    kv = MemoryKeyValueStore({STORAGE_KEY: "[[["})
    store = LocalBotStore(kv)
    store.save(_bot("b1"))
    assert [b.id for b in store.list()] == ["b1"]
    assert json.loads(kv.get(STORAGE_KEY))[0]["id"] == "b1"


def test_malformed_entries_are_skipped():
    good = {
        "id": "b1",
        "name": "Bot",
        "persona": "p",
        "avatar_url": "",
        "created_at": "2024-05-01T12:00:00Z",
    }
    raw = json.dumps([good, {"id": "b2"}, "oops", {**good, "id": 3}, {**good, "created_at": "yesterday"}])
    store = LocalBotStore(MemoryKeyValueStore({STORAGE_KEY: raw}))
    assert [b.id for b in store.list()] == ["b1"]


def test_file_store_rejects_unsafe_keys():
    with tempfile.TemporaryDirectory() as d:
        kv = JsonFileKeyValueStore(root=Path(d))
        with pytest.raises(BusinessError) as exc:
            kv.set("../escape", "x")
        assert exc.value.code == "INVALID_STORE_KEY"


def test_file_store_unencodable_value_leaves_no_temp_file():
    with tempfile.TemporaryDirectory() as d:
        root = Path(d)
        kv = JsonFileKeyValueStore(root=root)
        with pytest.raises(BusinessError) as exc:
            kv.set("bots", "broken \ud800 surrogate")
        assert exc.value.code == "STORE_WRITE_ERROR"
        assert list(root.glob("*.tmp")) == []
        assert kv.get("bots") is None


def test_file_store_failed_replace_leaves_no_temp_file(monkeypatch):
    with tempfile.TemporaryDirectory() as d:
        root = Path(d)
        kv = JsonFileKeyValueStore(root=root)
        kv.set("bots", "[]")

        def fail_replace(src, dst):
            raise OSError("disk full")

        monkeypatch.setattr("persona_core.infrastructure.storage.kv_store.os.replace", fail_replace)
        with pytest.raises(BusinessError) as exc:
            kv.set("bots", '[{"id": "b1"}]')
        assert exc.value.code == "STORE_WRITE_ERROR"
        assert list(root.glob("*.tmp")) == []
        assert kv.get("bots") == "[]"
