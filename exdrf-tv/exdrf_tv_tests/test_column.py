import pytest

from exdrf_tv.column import (
    Cell,
    ColumnDescriptor,
    TextRenderer,
    column_from_dict,
    normalize_columns,
)
from exdrf_tv.errors import ValidationError


def test_id_defaults_to_accessor():
    col = ColumnDescriptor(accessor="owner.name")
    assert col.column_id == "owner.name"
    assert col.label == "Name"


def test_accessor_defaults_to_id():
    col = ColumnDescriptor(id="age")
    assert col.accessor == "age"
    assert col.value_of({"age": 3}) == 3


def test_callable_accessor():
    col = ColumnDescriptor(id="full", accessor=lambda r: r["a"] + r["b"])
    assert col.value_of({"a": "x", "b": "y"}) == "xy"
    assert col.path is None


def test_missing_id_and_accessor():
    with pytest.raises(ValidationError):
        ColumnDescriptor()


def test_unknown_filter_type():
    with pytest.raises(ValidationError) as exc:
        ColumnDescriptor(id="a", filter_type="fuzzy")
    assert exc.value.field == "filter_type"


class TestRendering:
    """Tests for the cell rendering capability."""

    def test_default_renderer(self):
        col = ColumnDescriptor(id="n")
        assert isinstance(col.renderer, TextRenderer)
        cell = col.render({"n": 4}, index=2)
        assert cell == Cell(text="4", value=4, column_id="n")

    def test_bool_uses_column_texts(self):
        col = ColumnDescriptor(id="ok", true_str="On", false_str="Off")
        assert col.render({"ok": True}).text == "On"
        assert col.render({"ok": False}).text == "Off"

    def test_function_renderer_is_wrapped_once(self):
        calls = []

        def render(ctx):
            calls.append(ctx.index)
            return f"#{ctx.value}"

        col = ColumnDescriptor(id="n", renderer=render)
        renderer = col.renderer
        assert col.render({"n": 1}, 0).text == "#1"
        assert col.render({"n": 2}, 1).text == "#2"
        assert col.renderer is renderer
        assert calls == [0, 1]

    def test_object_renderer(self):
        class Upper:
            def render(self, ctx):
                return Cell(text=str(ctx.value).upper(), value=ctx.value)

        col = ColumnDescriptor(id="s", renderer=Upper())
        assert col.render({"s": "ab"}).text == "AB"


class TestColumnInfo:
    """Tests for creating columns from plain data."""

    def test_camel_case_keys(self):
        col = column_from_dict(
            {
                "accessorKey": "age",
                "header": "Age",
                "filterType": "number",
                "defaultVisible": False,
                "sortable": False,
            }
        )
        assert col.column_id == "age"
        assert col.label == "Age"
        assert col.filter_type == "number"
        assert col.default_visible is False
        assert col.sortable is False
        assert col.filterable is True

    def test_snake_case_keys(self):
        col = column_from_dict({"id": "x", "filter_type": "text"})
        assert col.filter_type == "text"

    def test_invalid_type(self):
        with pytest.raises(ValidationError):
            column_from_dict({"id": "x", "filterType": "nope"})


def test_normalize_columns_rejects_duplicates():
    with pytest.raises(ValidationError):
        normalize_columns([{"id": "a"}, ColumnDescriptor(id="a")])


def test_normalize_columns_keeps_order():
    result = normalize_columns([{"id": "b"}, {"id": "a"}])
    assert [c.column_id for c in result] == ["b", "a"]
