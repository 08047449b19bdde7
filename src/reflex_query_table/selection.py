"""Cross-page row selection.

Selection is kept per page index in two parallel maps: ``keys`` holds the
checkbox flags the grid shows for that page and ``records`` holds the row
payload captured when the row was selected.  Neither map is reset by page
changes or data refetches, so rows picked on page 1 stay selected while the
user browses page 5.

Example::

    store = SelectionStore(page_index=lambda: 0, visible_rows=lambda: rows)
    store.on_row_selection_change({"1": True, "2": True})
    store.get_selected_count()  # -> 2
"""

import logging
from collections.abc import Callable, Mapping, Sequence
from typing import Any, Generic, TypeVar

from reflex_query_table.updates import Update, resolve_update

logger = logging.getLogger(__name__)

TData = TypeVar("TData")

RowSelection = dict[str, bool]


def default_row_id(row: Any) -> str:
    """Read ``row["id"]`` (or ``row.id``) as a string."""
    if isinstance(row, Mapping):
        return str(row["id"])
    return str(row.id)


class SelectionStore(Generic[TData]):
    """Own the per-page selection flags and selected-row snapshots.

    Args:
        page_index: Returns the page index currently shown by the grid.
        visible_rows: Returns the rows currently shown by the grid.
        get_row_id: Extracts the unique row id from a row.
        initial_keys: Flags to seed for the page current at construction.
    """

    def __init__(
        self,
        page_index: Callable[[], int],
        visible_rows: Callable[[], Sequence[TData]],
        get_row_id: Callable[[TData], str] = default_row_id,
        initial_keys: Mapping[str, bool] | None = None,
    ) -> None:
        self._page_index = page_index
        self._visible_rows = visible_rows
        self._get_row_id = get_row_id
        self.keys: dict[int, RowSelection] = {}
        self.records: dict[int, dict[str, TData]] = {}
        if initial_keys:
            self.keys[page_index()] = dict(initial_keys)

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def handle_row_selection_change(self, row_id: str, row_data: TData, is_selected: bool) -> None:
        """Add or drop one row's snapshot on the current page.

        Only ``records`` is touched; the flags arrive separately through
        :meth:`on_row_selection_change`.
        """
        page_records = self.records.setdefault(self._page_index(), {})
        if is_selected:
            page_records[row_id] = row_data
        else:
            page_records.pop(row_id, None)

    def on_row_selection_change(self, update: "Update[RowSelection] | Any") -> RowSelection:
        """Apply a flag update for the current page and rebuild its records.

        Records are rebuilt from the visible rows because select-all and
        clear-all do not go through :meth:`handle_row_selection_change` row
        by row.  Rows that are not visible cannot be selected this way.
        """
        page_index = self._page_index()
        current = dict(self.keys.get(page_index, {}))
        updated = {str(k): bool(v) for k, v in resolve_update(update, current).items()}

        page_records: dict[str, TData] = {}
        for row in self._visible_rows():
            row_id = self._get_row_id(row)
            if updated.get(row_id):
                page_records[row_id] = row

        self.keys[page_index] = updated
        self.records[page_index] = page_records
        logger.debug(
            "page %d selection rebuilt: %d flagged, %d recorded",
            page_index,
            sum(updated.values()),
            len(page_records),
        )
        return dict(updated)

    def capture_visible_rows(self) -> int:
        """Record snapshots for flagged rows of the current page that have none yet.

        Used after new data arrives so flags seeded before the rows loaded
        get their payloads.  Existing snapshots are kept as they are.
        Returns the number of snapshots added.
        """
        page_index = self._page_index()
        flags = self.keys.get(page_index)
        if not flags:
            return 0
        page_records = self.records.setdefault(page_index, {})
        added = 0
        for row in self._visible_rows():
            row_id = self._get_row_id(row)
            if flags.get(row_id) and row_id not in page_records:
                page_records[row_id] = row
                added += 1
        return added

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def page_keys(self, page_index: int | None = None) -> RowSelection:
        """Flags for *page_index* (default: current page), empty when unknown."""
        if page_index is None:
            page_index = self._page_index()
        return dict(self.keys.get(page_index, {}))

    def get_all_selected_records(self) -> list[TData]:
        """All selected rows, by ascending page index then selection order."""
        selected: list[TData] = []
        for page_index in sorted(self.records):
            selected.extend(self.records[page_index].values())
        return selected

    def selected_ids(self) -> list[str]:
        ids: list[str] = []
        for page_index in sorted(self.records):
            ids.extend(self.records[page_index])
        return ids

    def get_selected_count(self) -> int:
        return sum(len(page_records) for page_records in self.records.values())

    # ------------------------------------------------------------------
    # Reset
    # ------------------------------------------------------------------

    def clear_page(self, page_index: int) -> None:
        self.keys.pop(page_index, None)
        self.records.pop(page_index, None)

    def clear(self) -> None:
        self.keys = {}
        self.records = {}
