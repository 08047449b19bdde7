"""Column set assembly with an optional synthetic selection column."""

from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from reflex_query_table.selection import SelectionStore, default_row_id
from reflex_query_table.updates import Derive

TData = TypeVar("TData")


@dataclass(frozen=True)
class HeaderCheckboxState:
    """Tri-state header checkbox: checked, indeterminate or neither."""

    checked: bool
    indeterminate: bool


@dataclass(frozen=True)
class CellCheckboxState:
    checked: bool
    disabled: bool = False


def header_state(row_ids: Iterable[str], keys: Mapping[str, bool]) -> HeaderCheckboxState:
    """Compute the header checkbox for the rows of the current page."""
    flags = [bool(keys.get(row_id)) for row_id in row_ids]
    all_selected = bool(flags) and all(flags)
    some_selected = any(flags) and not all_selected
    return HeaderCheckboxState(checked=all_selected, indeterminate=some_selected)


class SelectionColumn(Generic[TData]):
    """The synthetic checkbox column placed ahead of the caller's columns.

    It reads flags from the :class:`SelectionStore` and writes back through
    the store's two handlers, exactly as a rendered checkbox would.
    """

    def __init__(
        self,
        selection: SelectionStore[TData],
        visible_rows: Callable[[], Sequence[TData]],
        get_row_id: Callable[[TData], str] = default_row_id,
        column_id: str = "select",
    ) -> None:
        self.id = column_id
        self._selection = selection
        self._visible_rows = visible_rows
        self._get_row_id = get_row_id

    def _row_ids(self) -> list[str]:
        return [self._get_row_id(row) for row in self._visible_rows()]

    def header(self) -> HeaderCheckboxState:
        return header_state(self._row_ids(), self._selection.page_keys())

    def toggle_all(self) -> None:
        """Select every visible row, or clear them all when all are selected."""
        row_ids = self._row_ids()
        target = not self.header().checked

        def _apply(keys: dict[str, bool]) -> dict[str, bool]:
            return {**keys, **{row_id: target for row_id in row_ids}}

        self._selection.on_row_selection_change(Derive(_apply))

    def cell(self, row: TData) -> CellCheckboxState:
        row_id = self._get_row_id(row)
        return CellCheckboxState(checked=bool(self._selection.page_keys().get(row_id)))

    def toggle_row(self, row: TData, value: bool) -> None:
        """Record the row snapshot, then flip its flag the way the grid does."""
        row_id = self._get_row_id(row)
        self._selection.handle_row_selection_change(row_id, row, value)
        self._selection.on_row_selection_change(
            Derive(lambda keys: {**keys, row_id: value})
        )


class ColumnSetBuilder(Generic[TData]):
    """Prepend the selection column (when enabled) to the caller's columns.

    Caller columns are opaque here and come back unchanged, in order.
    """

    def __init__(
        self,
        enable_row_selection: bool,
        selection: SelectionStore[TData] | None = None,
        visible_rows: Callable[[], Sequence[TData]] | None = None,
        get_row_id: Callable[[TData], str] = default_row_id,
        column_id: str = "select",
    ) -> None:
        self.selection_column: SelectionColumn[TData] | None = None
        if enable_row_selection:
            if selection is None or visible_rows is None:
                raise ValueError(
                    "row selection needs both a selection store and a visible_rows provider"
                )
            self.selection_column = SelectionColumn(
                selection, visible_rows, get_row_id=get_row_id, column_id=column_id
            )

    def build(self, columns: Sequence[Any]) -> list[Any]:
        if self.selection_column is None:
            return list(columns)
        return [self.selection_column, *columns]
