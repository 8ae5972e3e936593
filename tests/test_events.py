"""Tests for the IndexService facade and file event dispatch."""

from __future__ import annotations

import json

import pytest
from conftest import al_source, read_json, write_al

from almig.config import Settings
from almig.events import Created, Deleted, Extracted, IndexService, Saved
from almig.index.identity import ObjectIdentity
from almig.index.reconcile import CREATED, DELETED, FAILED, MOVED, SKIPPED, UPDATED

ITEM = ObjectIdentity("table", 50100)


class TestInertService:
    def test_unconfigured_service_does_nothing(self, tmp_path, caplog):
        service = IndexService(Settings(project_root=tmp_path))
        path = write_al(tmp_path)

        assert not service.configured
        assert service.on_file_created(path, path.read_text()).outcome == SKIPPED
        assert service.rebuild_index().files == 0
        assert service.lookup("table", 50100) is None
        assert service.verify() == []
        assert not (tmp_path / ".index").exists()
        assert caplog.text.count("Base path not configured") == 1


class TestDispatch:
    def test_created(self, service, src):
        path = write_al(src)
        result = service.dispatch(Created(str(path), path.read_text()))
        assert result.outcome == CREATED
        assert service.lookup("table", 50100).referenced_migration_files == []

    def test_saved_with_renumber(self, service, src, base_path):
        path = write_al(src)
        service.on_file_extracted(path, path.read_text(), "Table18_Item.txt")
        old = path.read_text()
        new = al_source(object_id=50101)
        path.write_text(new)

        result = service.dispatch(Saved(str(path), new, old))

        assert result.outcome == MOVED
        assert service.lookup("table", 50100) is None
        assert service.lookup("table", 50101).referenced_migration_files == ["Table18_Item.txt"]
        objects = read_json(base_path / ".index" / "Table18_Item.json")["referencedWorkingObjects"]
        assert objects == [{"type": "table", "number": "50101"}]

    def test_saved_without_previous(self, service, src):
        path = write_al(src)
        service.on_file_created(path, path.read_text())
        assert service.on_file_saved(path, path.read_text()).outcome == UPDATED

    def test_deleted(self, service, src):
        path = write_al(src)
        service.on_file_created(path, path.read_text())
        path.unlink()
        assert service.dispatch(Deleted(str(path))).outcome == DELETED
        assert service.lookup("table", 50100).deleted

    def test_extracted(self, service, src):
        path = write_al(src)
        result = service.dispatch(Extracted(str(path), path.read_text(), "/legacy/Table18_Item.txt"))
        assert result.outcome == CREATED
        assert service.references_for("Table18_Item.txt").identities() == [ITEM]
        assert service.legacy_files_for("table", 50100) == [
            str(service.settings.base_path / "Tables" / "Table18_Item.txt")
        ]

    def test_non_source_files_are_ignored(self, service, src):
        path = src / "Table50100_Item.txt"
        path.write_text(al_source())
        assert service.on_file_created(path, path.read_text()).outcome == SKIPPED
        assert service.lookup("table", 50100) is None

    def test_unknown_event_type_raises(self, service):
        class Renamed:
            path = "x.al"

        with pytest.raises(TypeError):
            service.dispatch(Renamed())

    def test_storage_error_becomes_failed_result(self, service, src, monkeypatch):
        path = write_al(src)

        def broken(*args, **kwargs):
            raise OSError("disk gone")

        monkeypatch.setattr(service.reconciler, "reconcile", broken)
        result = service.on_file_saved(path, path.read_text())
        assert result.outcome == FAILED
        assert "disk gone" in result.errors[0]

    def test_unexpected_error_becomes_failed_result(self, service, src, monkeypatch, caplog):
        path = write_al(src)

        def broken(*args, **kwargs):
            raise KeyError("objectType")

        monkeypatch.setattr(service.reconciler, "forget", broken)
        result = service.on_file_deleted(path)
        assert result.outcome == FAILED
        assert "Deleted failed" in result.errors[0]
        assert "Unexpected error handling Deleted" in caplog.text

    def test_wrongly_typed_record_does_not_break_events(self, service, src, base_path):
        bad = base_path / ".index" / "table" / "50100" / "info.json"
        bad.parent.mkdir(parents=True)
        bad.write_text(json.dumps({"originalPath": 123, "objectType": "table", "objectNumber": "50100"}))
        path = write_al(src, object_id=50101, name="Other")

        assert service.on_file_created(path, path.read_text()).outcome == CREATED
        assert service.on_file_deleted(path).outcome == DELETED
        assert service.lookup("table", 50100) is None
        assert service.lookup("table", 50101).deleted
        assert [p.kind for p in service.verify()] == ["corrupt-record"]
        assert service.clean().objects_purged == 0

    def test_renumber_onto_extracted_object_keeps_references_consistent(self, service, src):
        first = write_al(src, object_id=50100, name="A")
        second = write_al(src, object_id=50101, name="B")
        service.on_file_extracted(first, first.read_text(), "Table18_A.txt")
        service.on_file_extracted(second, second.read_text(), "Table27_B.txt")

        result = service.on_file_saved(first, al_source(object_id=50101, name="A"), first.read_text())

        assert result.outcome == MOVED
        assert service.verify() == []
        assert service.lookup("table", 50100) is None
        assert service.legacy_files_for("table", 50101) == [
            str(service.settings.base_path / "Tables" / "Table18_A.txt"),
            str(service.settings.base_path / "Tables" / "Table27_B.txt"),
        ]

    def test_events_keep_cache_current(self, service, src):
        path = write_al(src)
        service.rebuild_index()
        assert service.cache.get("table", "Item") is not None

        service.on_file_saved(path, al_source(name="Item2"), path.read_text())
        assert service.cache.get("table", "Item2").identity == ITEM
        assert service.cache.get("table", "Item") is None

        service.on_file_deleted(path)
        assert service.cache.get("table", "Item2") is None


class TestClean:
    def test_clean_purges_deleted_objects(self, service, src, base_path):
        path = write_al(src)
        service.on_file_extracted(path, path.read_text(), "Table18_Item.txt")
        service.on_file_deleted(path)

        summary = service.clean()

        assert summary.objects_purged == 1
        assert summary.reference_files == ["Table18_Item.json"]
        assert read_json(base_path / ".index" / "Table18_Item.json")["referencedWorkingObjects"] == []


class TestVerify:
    def test_consistent_index(self, service, src):
        path = write_al(src)
        service.on_file_extracted(path, path.read_text(), "Table18_Item.txt")
        assert service.verify() == []

    def test_missing_reverse_reference(self, service, src, base_path):
        path = write_al(src)
        service.on_file_extracted(path, path.read_text(), "Table18_Item.txt")
        (base_path / ".index" / "Table18_Item.json").unlink()
        kinds = [p.kind for p in service.verify()]
        assert kinds == ["missing-reverse-reference"]

    def test_orphan_reverse_reference(self, service, src):
        path = write_al(src)
        service.on_file_created(path, path.read_text())
        service.references.add_reference("Table18_Item.txt", ObjectIdentity("table", 50199))
        problems = service.verify()
        assert [p.kind for p in problems] == ["orphan-reverse-reference"]
        assert "table 50199" in problems[0].detail

    def test_deleted_object_still_referenced_is_orphan(self, service, src):
        path = write_al(src)
        service.on_file_extracted(path, path.read_text(), "Table18_Item.txt")
        service.on_file_deleted(path)
        assert [p.kind for p in service.verify()] == ["orphan-reverse-reference"]
        service.clean()
        assert service.verify() == []

    def test_corrupt_and_misplaced_records(self, service, src, base_path):
        path = write_al(src)
        service.on_file_created(path, path.read_text())
        info = base_path / ".index" / "table" / "50100" / "info.json"
        data = json.loads(info.read_text())
        data["objectNumber"] = "50999"
        info.write_text(json.dumps(data))
        bad = base_path / ".index" / "page" / "1" / "info.json"
        bad.parent.mkdir(parents=True)
        bad.write_text("nope")

        kinds = sorted(p.kind for p in service.verify())
        assert kinds == ["corrupt-record", "misplaced-record"]

    def test_duplicate_path(self, service, src):
        path = write_al(src)
        service.on_file_created(path, path.read_text())
        record = service.lookup("table", 50100)
        service.index.put(record.relocated(ObjectIdentity("table", 50101), path))
        assert [p.kind for p in service.verify()] == ["duplicate-path"]


class TestRenumber:
    def test_out_of_range_number_moves(self, service, project, src):
        (project / "app.json").write_text(json.dumps({"idRanges": [{"from": 50100, "to": 50150}]}))
        write_al(src, object_id=50100, name="Taken")
        path = write_al(src, object_id=1, name="Item")
        service.rebuild_index()
        service.on_file_extracted(path, path.read_text(), "Table18_Item.txt")

        assignment, result = service.renumber(path)

        assert assignment.changed
        assert assignment.new_id == 50101
        assert result.outcome == MOVED
        assert path.read_text().startswith('table 50101 "Item"')
        assert service.lookup("table", 1) is None
        assert service.lookup("table", 50101).referenced_migration_files == ["Table18_Item.txt"]
        assert service.references_for("Table18_Item.txt").identities() == [ObjectIdentity("table", 50101)]

    def test_valid_number_is_kept(self, service, project, src):
        (project / "app.json").write_text(json.dumps({"idRanges": [{"from": 50100, "to": 50150}]}))
        path = write_al(src, object_id=50120)
        before = path.read_text()

        assignment, result = service.renumber(path)

        assert not assignment.changed
        assert path.read_text() == before
        assert result.outcome == CREATED

    def test_no_header(self, service, src):
        path = src / "Notes.al"
        path.write_text("// todo\n")
        assignment, result = service.renumber(path)
        assert assignment is None
        assert result.outcome == SKIPPED

    def test_non_object_app_json_uses_default_range(self, service, project, src):
        (project / "app.json").write_text("[]")
        path = write_al(src, object_id=50120)

        assignment, _ = service.renumber(path)
        assert not assignment.changed
        assert service.lookup("table", 50120) is not None
