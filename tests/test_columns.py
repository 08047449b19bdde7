import pytest

from reflex_query_table.columns import (
    CellCheckboxState,
    ColumnSetBuilder,
    HeaderCheckboxState,
    SelectionColumn,
    header_state,
)
from reflex_query_table.selection import SelectionStore


@pytest.fixture
def rows(page_rows):
    return page_rows[0]


@pytest.fixture
def selection(rows):
    return SelectionStore(page_index=lambda: 0, visible_rows=lambda: rows)


class TestHeaderState:
    @pytest.mark.parametrize(
        "keys,expected",
        [
            ({}, HeaderCheckboxState(checked=False, indeterminate=False)),
            ({"1": True}, HeaderCheckboxState(checked=False, indeterminate=True)),
            ({"1": True, "2": True}, HeaderCheckboxState(checked=True, indeterminate=False)),
            ({"1": False, "2": False}, HeaderCheckboxState(checked=False, indeterminate=False)),
        ],
    )
    def test_tri_state(self, keys, expected):
        assert header_state(["1", "2"], keys) == expected

    def test_no_rows(self):
        assert header_state([], {"1": True}) == HeaderCheckboxState(False, False)


class TestSelectionColumn:
    def test_toggle_all_selects_then_clears(self, selection, rows):
        column = SelectionColumn(selection, lambda: rows)
        column.toggle_all()
        assert column.header().checked
        assert selection.get_all_selected_records() == rows
        column.toggle_all()
        assert not column.header().checked
        assert selection.get_selected_count() == 0

    def test_toggle_row(self, selection, rows):
        column = SelectionColumn(selection, lambda: rows)
        column.toggle_row(rows[1], True)
        assert column.cell(rows[1]) == CellCheckboxState(checked=True)
        assert column.cell(rows[0]) == CellCheckboxState(checked=False)
        assert column.header().indeterminate
        column.toggle_row(rows[1], False)
        assert selection.get_selected_count() == 0


class TestColumnSetBuilder:
    def test_disabled_returns_columns_unchanged(self):
        columns = [{"field": "name"}, {"field": "age"}]
        assert ColumnSetBuilder(False).build(columns) == columns

    def test_enabled_prepends_selection_column(self, selection, rows):
        builder = ColumnSetBuilder(True, selection=selection, visible_rows=lambda: rows, column_id="pick")
        columns = builder.build(["a", "b"])
        assert columns[0] is builder.selection_column
        assert columns[0].id == "pick"
        assert columns[1:] == ["a", "b"]

    def test_enabled_needs_store(self):
        with pytest.raises(ValueError):
            ColumnSetBuilder(True)
