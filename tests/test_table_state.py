"""
Tests for the device table state model (filters, sort, columns, CSV,
persisted layout).
"""

import json

import pytest

from core.models import COLUMN_KEYS
from core.table_state import TableState, ORDER_STORAGE_KEY, VISIBILITY_STORAGE_KEY


def _cells(**overrides):
    base = {k: "" for k in COLUMN_KEYS}
    base.update(enrolled="Enrolled")
    base.update(overrides)
    return base


@pytest.fixture
def rows():
    return [
        _cells(serial="SER-B", groupTag="Sales", model="Latitude", upn="bob@contoso.com"),
        _cells(serial="SER-A", groupTag="Kiosk", model="Surface", enrolled="Not Enrolled"),
        _cells(serial="SER-C", groupTag="", model='Pro "X"', upn="carol@contoso.com"),
    ]


class TestFilters:
    def test_status_filter(self, rows):
        state = TableState.initial(rows).with_filters(status="Not Enrolled")
        assert [r["serial"] for r in state.visible_rows()] == ["SER-A"]

    def test_group_tag_filter_includes_blank(self, rows):
        state = TableState.initial(rows).with_filters(group_tags=["Sales", ""])
        assert [r["serial"] for r in state.visible_rows()] == ["SER-B", "SER-C"]

    def test_column_filter_is_case_insensitive_substring(self, rows):
        state = TableState.initial(rows).with_filters(column_filters={"model": "surf"})
        assert state.visible_count == 1

    def test_global_search_ignores_hidden_columns(self, rows):
        state = TableState.initial(rows).with_filters(global_text="carol")
        assert state.visible_count == 1
        assert state.toggle_column("upn", False).visible_count == 0

    def test_filters_combine(self, rows):
        state = TableState.initial(rows).with_filters(status="Enrolled", global_text="contoso", group_tags=["Sales"])
        assert [r["serial"] for r in state.visible_rows()] == ["SER-B"]

    def test_clear_filters(self, rows):
        state = TableState.initial(rows).with_filters(status="Enrolled", column_filters={"serial": "zzz"})
        assert state.visible_count == 0
        assert state.clear_filters().visible_count == 3

    def test_unknown_column_filter_rejected(self, rows):
        with pytest.raises(KeyError):
            TableState.initial(rows).with_filters(column_filters={"nope": "x"})


class TestSort:
    def test_first_sort_ascending(self, rows):
        state = TableState.initial(rows).sort_by("serial")
        assert [r["serial"] for r in state.visible_rows()] == ["SER-A", "SER-B", "SER-C"]
        assert state.sort_dir == "asc"

    def test_double_sort_is_exact_reverse(self, rows):
        once = TableState.initial(rows).sort_by("groupTag")
        twice = once.sort_by("groupTag")
        assert twice.visible_rows() == list(reversed(once.visible_rows()))
        assert twice.sort_dir == "desc"

    def test_sort_does_not_mutate_previous_state(self, rows):
        initial = TableState.initial(rows)
        initial.sort_by("serial")
        assert [r["serial"] for r in initial.visible_rows()] == ["SER-B", "SER-A", "SER-C"]


class TestColumns:
    def test_hide_then_select_all(self, rows):
        state = TableState.initial(rows).toggle_column("model", False)
        assert "model" not in state.visible_columns()
        restored = state.select_all()
        assert restored.visible_columns() == list(COLUMN_KEYS)

    def test_deselect_all(self, rows):
        assert TableState.initial(rows).deselect_all().visible_columns() == []

    def test_move_column(self, rows):
        state = TableState.initial(rows).move_column(5, 0)
        assert state.order[0] == "serial"
        assert state.order[1] == "enrolled"
        assert len(state.order) == 13

    def test_move_out_of_range_is_ignored(self, rows):
        state = TableState.initial(rows)
        assert state.move_column(0, 13) is state
        assert state.move_column(-1, 2) is state


class TestExport:
    def test_export_matches_visible_rows_and_columns(self, rows):
        state = (TableState.initial(rows)
                 .deselect_all()
                 .toggle_column("serial", True)
                 .toggle_column("model", True)
                 .with_filters(status="Enrolled"))

        lines = state.export_csv().split("\n")

        assert lines[0] == '"Serial Number","Model"'
        assert lines[1] == '"SER-B","Latitude"'
        assert lines[2] == '"SER-C","Pro ""X"""'
        assert len(lines) == 3

    def test_export_follows_column_order(self, rows):
        state = TableState.initial(rows).deselect_all().toggle_column("serial", True).toggle_column("model", True)
        state = state.move_column(state.order.index("model"), 0)
        assert state.export_csv().split("\n")[0] == '"Model","Serial Number"'


class TestPersistence:
    def test_reorder_survives_reload(self, rows):
        store = {}
        moved = TableState.initial(rows).move_column(12, 0).toggle_column("model", False)
        moved.persist(store)

        reloaded = TableState.restore(rows, store)

        assert reloaded.order == moved.order
        assert reloaded.hidden == frozenset({"model"})

    def test_wrong_length_order_ignored(self, rows):
        store = {ORDER_STORAGE_KEY: json.dumps(list(COLUMN_KEYS[:12]))}
        assert TableState.restore(rows, store).order == COLUMN_KEYS

    def test_unknown_keys_in_order_ignored(self, rows):
        bad = list(COLUMN_KEYS[:12]) + ["Serial Number"]
        store = {ORDER_STORAGE_KEY: json.dumps(bad)}
        assert TableState.restore(rows, store).order == COLUMN_KEYS

    def test_garbage_ignored(self, rows):
        store = {ORDER_STORAGE_KEY: "{not json", VISIBILITY_STORAGE_KEY: "[true]"}
        state = TableState.restore(rows, store)
        assert state.order == COLUMN_KEYS
        assert state.hidden == frozenset()

    def test_reset_clears_store(self, rows):
        store = {}
        TableState.initial(rows).move_column(1, 2).persist(store)
        state = TableState.restore(rows, store).reset(store)
        assert store == {}
        assert state.order == COLUMN_KEYS
