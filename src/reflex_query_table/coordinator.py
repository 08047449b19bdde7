"""The table state coordinator: one state object, four handlers.

:class:`TableStateCoordinator` wires pagination, filter sync, selection and
column assembly together over a persisted query store and is the only thing
the rendering layer talks to.  The grid it feeds always runs in remote-data
mode: rows and page count come from the data-fetch collaborator and are
never re-paginated, re-filtered or re-sorted locally.

Typical usage::

    store = MemoryQueryStore({"page": 1, "perPage": 10})
    table = TableStateCoordinator(store, columns, filter_fields=fields,
                                  config=DataTableConfig(enable_row_selection=True))
    await table.refresh(fetcher)
    state = table.state
"""

import inspect
import logging
import time
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Generic, Protocol, TypeVar

from reflex_query_table.columns import ColumnSetBuilder, SelectionColumn
from reflex_query_table.debounce import Scheduler
from reflex_query_table.filters import FilterSyncController
from reflex_query_table.models import (
    ColumnFilterEntry,
    DataTableConfig,
    FetchResult,
    FilterFieldSpec,
    PaginationState,
)
from reflex_query_table.pagination import PaginationController
from reflex_query_table.query_state import PersistedQueryStore, QueryValue
from reflex_query_table.selection import RowSelection, SelectionStore, default_row_id
from reflex_query_table.updates import Update, resolve_update

logger = logging.getLogger(__name__)

TData = TypeVar("TData")


class DataFetcher(Protocol):
    """The remote data source.  May return a ``FetchResult`` or an awaitable of one."""

    def fetch(
        self,
        page_index: int,
        page_size: int,
        filters: Mapping[str, QueryValue],
    ) -> Any: ...


@dataclass(frozen=True)
class TableState:
    """Everything the rendering layer needs for one render."""

    pagination: PaginationState
    column_visibility: dict[str, bool]
    row_selection: RowSelection
    column_filters: list[ColumnFilterEntry]
    sorting: list[dict[str, Any]] = field(default_factory=list)
    rows: list[Any] = field(default_factory=list)
    page_count: int = 0
    is_fetching: bool = False
    manual_pagination: bool = True
    manual_filtering: bool = True
    manual_sorting: bool = True


@dataclass(frozen=True)
class TableHandlers:
    on_pagination_change: Callable[[Any], Any]
    on_column_filters_change: Callable[[Any], Any]
    on_row_selection_change: Callable[[Any], Any]
    on_column_visibility_change: Callable[[Any], Any]


class TableStateCoordinator(Generic[TData]):
    """Compose pagination, filters, selection and columns into one table state.

    Args:
        store: The persisted query store (``page``, ``perPage`` and filters).
        columns: Caller column descriptors, opaque to the coordinator.
        filter_fields: Filter field specs used to classify filter ids.
        config: Resolved table configuration.
        get_row_id: Extracts the unique id of a row.
        scheduler: Timer source for the filter debounce.
        sorting: Sort model passed through to the data source untouched.
        on_query_change: Called with the new snapshot after every store
            write, when the store supports ``subscribe``.
    """

    def __init__(
        self,
        store: PersistedQueryStore,
        columns: Sequence[Any] = (),
        filter_fields: Sequence[FilterFieldSpec] = (),
        config: DataTableConfig | None = None,
        get_row_id: Callable[[TData], str] = default_row_id,
        scheduler: Scheduler | None = None,
        sorting: Sequence[Mapping[str, Any]] = (),
        on_query_change: Callable[[dict[str, Any]], None] | None = None,
    ) -> None:
        self.config = config or DataTableConfig()
        self.store = store
        self._get_row_id = get_row_id
        self._rows: list[TData] = []
        self._page_count = 0
        self._row_count: int | None = None
        self._column_visibility: dict[str, bool] = dict(self.config.initial_column_visibility)
        self._sorting: list[dict[str, Any]] = [dict(s) for s in sorting]
        self._fetch_seq = 0
        self._in_flight = 0

        self.pagination = PaginationController(store, self.config)
        self.filters = FilterSyncController(
            store, filter_fields, self.config, scheduler=scheduler
        )
        self.selection: SelectionStore[TData] = SelectionStore(
            page_index=lambda: self.pagination.pagination.page_index,
            visible_rows=lambda: self._rows,
            get_row_id=get_row_id,
            initial_keys=self.config.initial_row_selection,
        )
        self._column_builder: ColumnSetBuilder[TData] = ColumnSetBuilder(
            self.config.enable_row_selection,
            selection=self.selection,
            visible_rows=lambda: self._rows,
            get_row_id=get_row_id,
            column_id=self.config.selection_column_id,
        )
        self.columns: list[Any] = self._column_builder.build(columns)

        self._unsubscribe: Callable[[], None] | None = None
        subscribe = getattr(store, "subscribe", None)
        if on_query_change is not None and callable(subscribe):
            self._unsubscribe = subscribe(on_query_change)

        logger.info(
            "table coordinator ready: %s, %d column(s), %d filter field(s), selection=%s",
            self.pagination.pagination.to_query(),
            len(self.columns),
            len(self.filters.fields),
            self.config.enable_row_selection,
        )

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def rows(self) -> list[TData]:
        return list(self._rows)

    @property
    def page_count(self) -> int:
        return self._page_count

    @property
    def row_count(self) -> int:
        """Total matching rows; estimated from the page count when the source gives none."""
        if self._row_count is not None:
            return self._row_count
        return self._page_count * self.pagination.pagination.page_size

    @property
    def is_fetching(self) -> bool:
        return self._in_flight > 0

    @property
    def selection_column(self) -> SelectionColumn[TData] | None:
        return self._column_builder.selection_column

    @property
    def state(self) -> TableState:
        """Recompose the table state from the store and the controllers."""
        pagination = self.pagination.pagination
        return TableState(
            pagination=pagination,
            column_visibility=dict(self._column_visibility),
            row_selection=self.selection.page_keys(pagination.page_index),
            column_filters=self.filters.column_filters,
            sorting=[dict(s) for s in self._sorting],
            rows=list(self._rows),
            page_count=self._page_count,
            is_fetching=self.is_fetching,
        )

    @property
    def handlers(self) -> TableHandlers:
        return TableHandlers(
            on_pagination_change=self.on_pagination_change,
            on_column_filters_change=self.on_column_filters_change,
            on_row_selection_change=self.on_row_selection_change,
            on_column_visibility_change=self.on_column_visibility_change,
        )

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def on_pagination_change(self, update: "Update[PaginationState] | Any") -> PaginationState:
        return self.pagination.on_pagination_change(update)

    def on_column_filters_change(
        self,
        update: "Update[list[ColumnFilterEntry]] | Any",
    ) -> list[ColumnFilterEntry]:
        return self.filters.on_column_filters_change(update)

    def on_row_selection_change(self, update: "Update[RowSelection] | Any") -> RowSelection:
        return self.selection.on_row_selection_change(update)

    def handle_row_selection_change(self, row_id: str, row_data: TData, is_selected: bool) -> None:
        self.selection.handle_row_selection_change(row_id, row_data, is_selected)

    def on_column_visibility_change(
        self,
        update: "Update[dict[str, bool]] | Any",
    ) -> dict[str, bool]:
        self._column_visibility = dict(resolve_update(update, dict(self._column_visibility)))
        return dict(self._column_visibility)

    def on_sorting_change(self, update: "Update[list[dict[str, Any]]] | Any") -> list[dict[str, Any]]:
        """Store the sort model for the next fetch; no local sorting happens."""
        self._sorting = [dict(s) for s in resolve_update(update, [dict(s) for s in self._sorting])]
        return [dict(s) for s in self._sorting]

    # ------------------------------------------------------------------
    # Selection shortcuts
    # ------------------------------------------------------------------

    def get_all_selected_records(self) -> list[TData]:
        return self.selection.get_all_selected_records()

    def get_selected_count(self) -> int:
        return self.selection.get_selected_count()

    # ------------------------------------------------------------------
    # Data
    # ------------------------------------------------------------------

    def set_data(self, rows: Sequence[TData], page_count: int, row_count: int | None = None) -> None:
        """Replace the visible rows; selection on every page is kept."""
        if page_count < 0:
            raise ValueError(f"page_count must be >= 0, got {page_count}")
        self._rows = list(rows)
        self._page_count = page_count
        self._row_count = row_count
        self.selection.capture_visible_rows()

    async def refresh(self, fetcher: DataFetcher | Callable[..., Any]) -> FetchResult | None:
        """Fetch the current page and apply it unless a newer fetch started meanwhile.

        Returns the applied result, or ``None`` when the result was stale.
        """
        pagination = self.pagination.pagination
        filters = self.filters.persisted_filters()
        self._fetch_seq += 1
        seq = self._fetch_seq
        self._in_flight += 1
        fetch = fetcher.fetch if hasattr(fetcher, "fetch") else fetcher
        t0 = time.perf_counter()
        try:
            result = fetch(pagination.page_index, pagination.page_size, filters)
            if inspect.isawaitable(result):
                result = await result
        finally:
            self._in_flight -= 1

        elapsed_ms = (time.perf_counter() - t0) * 1000
        if seq != self._fetch_seq:
            logger.debug("discarding stale fetch #%d (latest is #%d)", seq, self._fetch_seq)
            return None

        self.set_data(result.rows, result.page_count, result.row_count)
        logger.info(
            "fetched page %d (size %d): %d row(s), %d page(s), %.1fms",
            pagination.page_index,
            pagination.page_size,
            len(result.rows),
            result.page_count,
            elapsed_ms,
        )
        return result

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def grid_props(self) -> dict[str, Any]:
        """Props for the MUI DataGrid in server (remote-data) mode."""
        state = self.state
        return {
            "rows": state.rows,
            "row_count": self.row_count,
            "pagination_mode": "server",
            "filter_mode": "server",
            "sorting_mode": "server",
            "pagination_model": state.pagination.to_grid_model(),
            "page_size_options": list(self.config.page_size_options),
            "sort_model": state.sorting,
            "column_visibility_model": state.column_visibility,
            "checkbox_selection": self.selection_column is not None,
            "row_selection_model": {
                "type": "include",
                "ids": [row_id for row_id, flag in state.row_selection.items() if flag],
            },
            "loading": state.is_fetching,
        }

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Cancel the pending filter write and stop listening to the store."""
        self.filters.close()
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def __enter__(self) -> "TableStateCoordinator[TData]":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()
