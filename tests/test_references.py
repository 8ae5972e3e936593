"""Tests for legacy-file reverse references."""

from __future__ import annotations

from conftest import read_json

from almig.index.identity import ObjectIdentity
from almig.index.references import ReverseReferenceRecord, ReverseReferenceStore

ITEM = ObjectIdentity("table", 50100)
ITEM_EXT = ObjectIdentity("tableextension", 50110)
LEGACY = "/legacy/Tables/Table27_Item.txt"


def _objects(base):
    return read_json(base / ".index" / "Table27_Item.json")["referencedWorkingObjects"]


class TestReverseReferenceRecord:
    def test_from_json_dedupes(self):
        data = {
            "referencedWorkingObjects": [
                {"type": "Table", "number": "50100"},
                {"type": "table", "number": "50100"},
                {"type": "page", "number": "50200"},
                {"bogus": True},
            ]
        }
        record = ReverseReferenceRecord.from_json("Table27_Item.json", data)
        assert record.objects == [("table", "50100"), ("page", "50200")]
        assert ITEM in record
        assert len(record) == 2

    def test_to_json_keeps_extra_keys(self):
        record = ReverseReferenceRecord.from_json("k.json", {"note": "x", "referencedWorkingObjects": []})
        record.add(ITEM)
        assert record.to_json() == {"note": "x", "referencedWorkingObjects": [{"type": "table", "number": "50100"}]}


class TestReverseReferenceStore:
    def test_add_creates_record(self, tmp_path):
        store = ReverseReferenceStore(tmp_path)
        assert store.add_reference(LEGACY, ITEM) is True
        assert _objects(tmp_path) == [{"type": "table", "number": "50100"}]

    def test_add_is_idempotent(self, tmp_path):
        store = ReverseReferenceStore(tmp_path)
        store.add_reference(LEGACY, ITEM)
        assert store.add_reference(LEGACY, ITEM) is False
        assert len(_objects(tmp_path)) == 1

    def test_add_outside_convention_is_skipped(self, tmp_path):
        store = ReverseReferenceStore(tmp_path)
        assert store.add_reference("/legacy/readme.txt", ITEM) is False
        assert not (tmp_path / ".index").exists()

    def test_remove_drops_the_matching_entry(self, tmp_path):
        store = ReverseReferenceStore(tmp_path)
        store.add_reference(LEGACY, ITEM)
        store.add_reference(LEGACY, ITEM_EXT)
        assert store.remove_reference(LEGACY, ITEM) is True
        assert _objects(tmp_path) == [{"type": "tableextension", "number": "50110"}]
        assert store.remove_reference(LEGACY, ITEM) is False

    def test_replace_swaps_in_place(self, tmp_path):
        store = ReverseReferenceStore(tmp_path)
        store.add_reference(LEGACY, ITEM)
        store.add_reference(LEGACY, ITEM_EXT)
        assert store.replace_reference(LEGACY, ITEM, ObjectIdentity("table", 50105)) is True
        assert _objects(tmp_path) == [
            {"type": "tableextension", "number": "50110"},
            {"type": "table", "number": "50105"},
        ]

    def test_replace_when_new_already_present(self, tmp_path):
        store = ReverseReferenceStore(tmp_path)
        new = ObjectIdentity("table", 50105)
        store.add_reference(LEGACY, ITEM)
        store.add_reference(LEGACY, new)
        store.replace_reference(LEGACY, ITEM, new)
        assert _objects(tmp_path) == [{"type": "table", "number": "50105"}]

    def test_replace_on_missing_record_adds_new(self, tmp_path):
        store = ReverseReferenceStore(tmp_path)
        assert store.replace_reference(LEGACY, ITEM, ObjectIdentity("table", 50105)) is True
        assert _objects(tmp_path) == [{"type": "table", "number": "50105"}]

    def test_get_missing_and_corrupt(self, tmp_path):
        store = ReverseReferenceStore(tmp_path)
        assert len(store.get(LEGACY)) == 0
        (tmp_path / ".index").mkdir()
        (tmp_path / ".index" / "Table27_Item.json").write_text("{", encoding="utf-8")
        record = store.get(LEGACY)
        assert record.key == "Table27_Item.json"
        assert len(record) == 0
        assert store.get("notes.txt").key is None

    def test_legacy_files_for(self, tmp_path, settings):
        store = ReverseReferenceStore(tmp_path)
        store.add_reference(LEGACY, ITEM)
        store.add_reference("Table18_Customer.txt", ObjectIdentity("table", 50101))
        assert store.legacy_files_for(ITEM) == ["Table27_Item.txt"]
        resolved = store.legacy_files_for(ITEM, settings)
        assert resolved == [str(settings.base_path / "Tables" / "Table27_Item.txt")]

    def test_purge(self, tmp_path):
        store = ReverseReferenceStore(tmp_path)
        store.add_reference(LEGACY, ITEM)
        store.add_reference("Table18_Customer.txt", ITEM)
        store.add_reference("Table18_Customer.txt", ITEM_EXT)
        assert store.purge(ITEM) == ["Table18_Customer.json", "Table27_Item.json"]
        assert _objects(tmp_path) == []
        assert [r.objects for r in store.scan_all()] == [[("tableextension", "50110")], []]
