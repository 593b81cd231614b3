import json

import pytest

from exdrf_tv.column import ColumnDescriptor
from exdrf_tv.errors import ValidationError
from exdrf_tv.persistence import MemoryStore
from exdrf_tv.sorting import (
    SortItem,
    SortManager,
    compare_values,
    sort_records,
)


@pytest.fixture
def columns():
    return [
        ColumnDescriptor(id="name"),
        ColumnDescriptor(id="age"),
        ColumnDescriptor(id="notes", sortable=False),
    ]


@pytest.fixture
def manager(columns):
    return SortManager(columns=columns)


def test_sort_item_validation():
    with pytest.raises(ValidationError):
        SortItem(field="a", direction="up")


def test_sort_item_from_any():
    assert SortItem.from_any(("a", "desc")) == SortItem("a", "desc")
    assert SortItem.from_any({"field": "a"}) == SortItem("a", "asc")


class TestCompare:
    """Tests for comparing cell values."""

    def test_numeric_aware(self):
        assert compare_values("10", "9") == 1
        assert compare_values(2, 10) == -1

    def test_case_insensitive(self):
        assert compare_values("apple", "Banana") == -1

    def test_none_last(self):
        assert compare_values(None, 1) == 1
        assert compare_values(1, None) == -1
        assert compare_values(None, None) == 0


class TestSortRecords:
    """Tests for sorting records."""

    records = [
        {"id": 1, "name": "b", "age": 30},
        {"id": 2, "name": "a", "age": 30},
        {"id": 3, "name": "c", "age": None},
        {"id": 4, "name": "a", "age": 20},
    ]

    def ids(self, records):
        return [r["id"] for r in records]

    def test_empty_spec_keeps_order(self):
        assert self.ids(sort_records(self.records, [])) == [1, 2, 3, 4]

    def test_multi_key(self):
        spec = [SortItem("age", "desc"), SortItem("name")]
        assert self.ids(sort_records(self.records, spec)) == [2, 1, 4, 3]

    def test_stable(self):
        spec = [SortItem("name")]
        assert self.ids(sort_records(self.records, spec)) == [2, 4, 1, 3]

    def test_missing_values_last_in_both_directions(self):
        asc = sort_records(self.records, [SortItem("age")])
        desc = sort_records(self.records, [SortItem("age", "desc")])
        assert asc[-1]["id"] == 3
        assert desc[-1]["id"] == 3


class TestSortManager:
    """Tests for the sort state."""

    def test_multi_sort_appends_and_updates(self, manager):
        manager.set_sort("name", "asc")
        manager.set_sort("age", "desc")
        manager.set_sort("name", "desc")
        assert manager.sorting == [
            SortItem("name", "desc"),
            SortItem("age", "desc"),
        ]

    def test_single_sort_replaces(self, columns):
        manager = SortManager(columns=columns, multi_sort=False)
        manager.set_sort("name", "asc")
        manager.set_sort("age", "asc")
        assert manager.sorting == [SortItem("age", "asc")]

    def test_none_removes(self, manager):
        manager.set_sort("name", "asc")
        manager.set_sort("name", None)
        assert manager.sorting == []

    def test_toggle_cycle(self, manager):
        manager.toggle_sort("age")
        assert manager.get_direction("age") == "asc"
        manager.toggle_sort("age")
        assert manager.get_direction("age") == "desc"
        manager.toggle_sort("age")
        assert manager.get_direction("age") is None

    def test_unsortable_ignored(self, manager):
        manager.set_sort("notes", "asc")
        manager.set_sort("nope", "asc")
        manager.set_sorting([("notes", "asc"), ("age", "desc")])
        assert manager.sorting == [SortItem("age", "desc")]

    def test_reset_and_clear(self, columns):
        manager = SortManager(
            columns=columns, initial_sorting=[("age", "asc")]
        )
        manager.set_sort("name", "desc")
        manager.reset_sorting()
        assert manager.sorting == [SortItem("age", "asc")]
        manager.clear_sorting()
        assert manager.sorting == []

    def test_reconcile_drops_removed_columns(self, manager, columns):
        manager.set_sorting([("name", "asc"), ("age", "asc")])
        assert manager.reconcile(columns[1:])
        assert manager.sorting == [SortItem("age", "asc")]
        assert not manager.reconcile(columns[1:])

    def test_persisted_sorting_is_validated(self, columns):
        store = MemoryStore()
        store.set(
            "sorting-t",
            json.dumps(
                [
                    {"field": "notes", "direction": "asc"},
                    {"field": "age", "direction": "desc"},
                ]
            ),
        )
        manager = SortManager(columns=columns, store=store, storage_key="t")
        assert manager.sorting == [SortItem("age", "desc")]

    def test_changes_are_persisted(self, columns, mocker):
        store = MemoryStore()
        on_change = mocker.Mock()
        manager = SortManager(
            columns=columns,
            store=store,
            storage_key="t",
            on_change=on_change,
        )
        manager.set_sort("name", "asc")
        assert json.loads(store.get("sorting-t")) == [
            {"field": "name", "direction": "asc"}
        ]
        on_change.assert_called_once_with([SortItem("name", "asc")])
