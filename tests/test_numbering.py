"""Tests for object number assignment from app.json id ranges."""

from __future__ import annotations

import json

import pytest
from conftest import al_source, write_al

from almig.exit_codes import EXIT_PARTIAL, NoFreeNumberError
from almig.index.identity import ObjectIdentity
from almig.index.store import IndexRecord, IndexStore
from almig.numbering import assign_available_number, in_ranges, next_free_number, used_numbers


def _app_json(project, *ranges):
    (project / "app.json").write_text(
        json.dumps({"idRanges": [{"from": lo, "to": hi} for lo, hi in ranges]}), encoding="utf-8"
    )


class TestHelpers:
    def test_in_ranges_is_inclusive(self):
        assert in_ranges(50100, [(50100, 50149)])
        assert in_ranges(50149, [(50100, 50149)])
        assert not in_ranges(50150, [(50100, 50149)])

    def test_next_free_number(self):
        assert next_free_number({1, 2, 4}, [(1, 5)]) == 3
        assert next_free_number({1, 2}, [(10, 11), (1, 2)]) == 10
        assert next_free_number({1, 2}, [(1, 2)]) is None


class TestUsedNumbers:
    def test_reads_working_folder_and_index(self, settings, src, base_path):
        write_al(src, object_id=50100)
        write_al(src, object_type="page", object_id=50101, name="Card")
        index = IndexStore(base_path)
        index.put(IndexRecord.new(ObjectIdentity("table", 50110), "/elsewhere/T.al"))
        deleted = IndexRecord.new(ObjectIdentity("table", 50111), "/elsewhere/D.al")
        deleted.deleted = True
        index.put(deleted)

        assert used_numbers("table", settings, index=index) == {50100, 50110}

    def test_excludes_own_file(self, settings, src):
        path = write_al(src, object_id=50100)
        assert used_numbers("table", settings, exclude_path=path) == set()


class TestAssign:
    def test_keeps_valid_number(self, project, settings, src):
        _app_json(project, (50100, 50149))
        path = write_al(src, object_id=50120)
        assignment = assign_available_number(path, path.read_text(), settings)
        assert not assignment.changed
        assert assignment.content == path.read_text()

    def test_picks_lowest_free_number(self, project, settings, src):
        _app_json(project, (50100, 50149))
        write_al(src, object_id=50100, name="A")
        write_al(src, object_id=50101, name="B")
        path = write_al(src, object_id=7, name="C")

        assignment = assign_available_number(path, path.read_text(), settings)

        assert assignment.changed
        assert assignment.new_id == 50102
        assert assignment.identity == ObjectIdentity("table", 7)
        assert assignment.content == al_source(object_id=50102, name="C")

    def test_number_taken_by_other_file_moves(self, project, settings, src):
        _app_json(project, (50100, 50149))
        write_al(src, object_id=50100, name="A")
        path = write_al(src, object_id=50100, name="Dup", file_name="Dup.al")
        assignment = assign_available_number(path, path.read_text(), settings)
        assert assignment.new_id == 50101

    def test_default_range_without_app_json(self, settings, src):
        path = write_al(src, object_id=3)
        assignment = assign_available_number(path, path.read_text(), settings)
        assert assignment.new_id == 50000

    def test_exhausted_range_raises(self, project, settings, src):
        _app_json(project, (50100, 50100))
        write_al(src, object_id=50100, name="A")
        path = write_al(src, object_id=1, name="B")
        with pytest.raises(NoFreeNumberError) as exc_info:
            assign_available_number(path, path.read_text(), settings)
        assert exc_info.value.exit_code == EXIT_PARTIAL
        assert "50100-50100" in exc_info.value.format_message()

    def test_no_header(self, settings, src):
        path = src / "x.al"
        path.write_text("nothing")
        assert assign_available_number(path, "nothing", settings) is None
