import json

import pytest

from exdrf_tv.column import ColumnDescriptor
from exdrf_tv.persistence import MemoryStore
from exdrf_tv.visibility import (
    ColumnVisibilityManager,
    compute_visibility,
    reconcile_visibility,
)


@pytest.fixture
def columns():
    return [
        ColumnDescriptor(id="name"),
        ColumnDescriptor(id="email", default_visible=False),
        ColumnDescriptor(id="age"),
        ColumnDescriptor(id="notes"),
    ]


@pytest.fixture
def manager(columns):
    return ColumnVisibilityManager(columns=columns, default_hidden=["notes"])


class TestDefaults:
    """Tests for the computation of the initial visibility."""

    def test_default_rules(self, manager):
        assert manager.state == {
            "name": True,
            "email": False,
            "age": True,
            "notes": False,
        }

    def test_explicit_default_wins(self, columns):
        state = compute_visibility(
            columns,
            default_visibility={"email": True, "name": False},
            default_hidden=["notes"],
        )
        assert state["email"] is True
        assert state["name"] is False
        assert state["notes"] is False

    def test_persisted_state_overrides(self, columns):
        store = MemoryStore()
        store.set(
            "column-visibility-t1",
            json.dumps({"name": False, "gone": True}),
        )
        manager = ColumnVisibilityManager(
            columns=columns, store=store, storage_key="t1"
        )
        assert manager.state["name"] is False
        assert "gone" not in manager.state

    def test_corrupt_persisted_state(self, columns):
        store = MemoryStore()
        store.set("column-visibility-t1", "nope{")
        manager = ColumnVisibilityManager(
            columns=columns, store=store, storage_key="t1"
        )
        assert manager.state["name"] is True


class TestReconcile:
    """Tests for adapting to a changing column set."""

    def test_adds_missing_columns(self, manager, columns):
        manager.set("name", False)
        new_columns = columns + [
            ColumnDescriptor(id="city"),
            ColumnDescriptor(id="zip", default_visible=False),
        ]
        state = manager.reconcile(new_columns)
        assert state["name"] is False
        assert state["city"] is True
        assert state["zip"] is False

    def test_is_idempotent(self, columns):
        partial = {"name": False}
        once = reconcile_visibility(columns, partial)
        twice = reconcile_visibility(columns, once)
        assert once == twice

    def test_never_removes_entries(self, columns):
        state = reconcile_visibility(columns[:1], {"age": False})
        assert state == {"age": False, "name": True}

    def test_no_change_no_notification(self, columns, mocker):
        on_change = mocker.Mock()
        manager = ColumnVisibilityManager(columns=columns, on_change=on_change)
        manager.reconcile(columns)
        on_change.assert_not_called()


class TestMutations:
    """Tests for the mutating operations."""

    def test_toggle(self, manager):
        manager.toggle("name")
        assert manager.is_hidden("name")
        manager.toggle("name")
        assert manager.is_visible("name")

    def test_unknown_ids_are_ignored(self, manager, mocker):
        manager.on_change = mocker.Mock()
        before = dict(manager.state)
        manager.toggle("nope")
        manager.set("nope", False)
        assert manager.state == before
        manager.on_change.assert_not_called()

    def test_show_hide_all(self, manager):
        manager.show_all()
        assert all(manager.state.values())
        manager.hide_all()
        assert not any(manager.state.values())

    def test_toggle_all_without_target(self, manager):
        # Not all visible, so everything is shown.
        manager.toggle_all()
        assert manager.all_visible
        manager.toggle_all()
        assert not any(manager.state.values())

    def test_toggle_all_with_target(self, manager):
        manager.toggle_all(False)
        assert not any(manager.state.values())

    def test_reset(self, manager):
        manager.show_all()
        manager.reset()
        assert manager.state["email"] is False
        assert manager.state["notes"] is False

    def test_visible_columns_keep_order(self, manager):
        manager.set("age", False)
        assert [c.column_id for c in manager.visible_columns] == ["name"]
        assert [c.column_id for c in manager.hidden_columns] == [
            "email",
            "age",
            "notes",
        ]

    def test_mutations_persist_and_notify(self, columns, mocker):
        store = MemoryStore()
        on_change = mocker.Mock()
        manager = ColumnVisibilityManager(
            columns=columns,
            store=store,
            storage_key="t1",
            on_change=on_change,
        )
        manager.set("age", False)
        assert json.loads(store.get("column-visibility-t1"))["age"] is False
        on_change.assert_called_once()
        assert on_change.call_args[0][0]["age"] is False

    def test_callback_errors_do_not_undo_change(self, columns):
        def boom(state):
            raise RuntimeError("boom")

        manager = ColumnVisibilityManager(columns=columns, on_change=boom)
        manager.set("name", False)
        assert manager.state["name"] is False
