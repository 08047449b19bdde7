"""Reflex state mixin and UI helpers for a query-synchronised DataGrid.

Users inherit from :class:`QueryTableMixin` **and** ``rx.State``, call
:meth:`~QueryTableMixin.set_table_source` with a polars LazyFrame and render
with :func:`query_table`.  Pagination and filters are mirrored into the page
URL, and selected rows survive page changes and refetches.

``QueryTableMixin`` is a Reflex **state mixin** (``mixin=True``), so each
subclass gets its own independent set of ``qt_*`` reactive variables.

Typical usage::

    from reflex_query_table import DataTableConfig, QueryTableMixin, query_table, scan_table

    class PeopleState(QueryTableMixin, rx.State):
        def load(self):
            yield from self.set_table_source(
                scan_table(Path("people.csv")),
                config=DataTableConfig(enable_row_selection=True),
            )

    def index():
        return query_table(PeopleState)

    app.add_page(index, on_load=PeopleState.load)
"""

import asyncio
import json
import logging
from collections import OrderedDict
from collections.abc import Mapping, Sequence
from typing import Any

import polars as pl
import reflex as rx

from reflex_query_table.coordinator import TableStateCoordinator
from reflex_query_table.datagrid import data_grid
from reflex_query_table.fetch import (
    LazyFrameFetcher,
    column_defs_from_schema,
    infer_filter_fields,
)
from reflex_query_table.models import (
    ColumnFilterEntry,
    DataTableConfig,
    FilterableField,
    FilterFieldSpec,
    PaginationState,
)
from reflex_query_table.query_state import (
    MemoryQueryStore,
    build_query_string,
    parse_query_params,
)
from reflex_query_table.updates import Direct

logger = logging.getLogger(__name__)

# Operators the grid offers; see the QueryDataGrid wrapper in datagrid.py.
FILTER_OPERATORS: frozenset[str] = frozenset({"contains", "isAnyOf"})


# ---------------------------------------------------------------------------
# MUI model <-> controller conversions
# ---------------------------------------------------------------------------

def pagination_from_grid_model(model: Mapping[str, Any]) -> PaginationState:
    """MUI ``{page, pageSize}`` (zero-indexed page) -> :class:`PaginationState`."""
    return PaginationState(page_index=int(model.get("page", 0)), page_size=int(model["pageSize"]))


def filter_model_to_entries(filter_model: Mapping[str, Any]) -> list[ColumnFilterEntry]:
    """Turn a MUI filter model into column filter entries.

    Items without a field or without a value (the user just opened the
    panel) are skipped, and so are items whose operator is not one of
    :data:`FILTER_OPERATORS`.  List values become option sets.
    """
    entries: list[ColumnFilterEntry] = []
    for item in filter_model.get("items", []) or []:
        field = item.get("field")
        value = item.get("value")
        if not field or value is None or value == "" or value == []:
            continue
        operator = item.get("operator")
        if operator is not None and operator not in FILTER_OPERATORS:
            logger.debug("ignoring %r filter on %s", operator, field)
            continue
        if isinstance(value, (list, tuple)):
            entries.append(ColumnFilterEntry.create(field, [str(v) for v in value]))
        else:
            entries.append(ColumnFilterEntry(id=field, value=str(value)))
    return entries


def entries_to_filter_model(
    entries: Sequence[ColumnFilterEntry],
    fields: Sequence[FilterFieldSpec] = (),
) -> dict[str, Any]:
    """Render column filter entries as a MUI filter model."""
    filterable = {f.id for f in fields if isinstance(f, FilterableField)}
    items: list[dict[str, Any]] = []
    for entry in entries:
        if entry.id in filterable or not isinstance(entry.value, str):
            values = [entry.value] if isinstance(entry.value, str) else list(entry.value)
            items.append({"field": entry.id, "operator": "isAnyOf", "value": values})
        else:
            items.append({"field": entry.id, "operator": "contains", "value": entry.value})
    return {"items": items, "logicOperator": "and"}


def selection_model_to_keys(
    model: Mapping[str, Any],
    visible_ids: Sequence[str],
) -> dict[str, bool]:
    """Turn a MUI v8 selection model into flags for the visible page.

    ``include`` lists the selected ids, ``exclude`` lists the unselected
    ones (MUI's "select all" shape).
    """
    ids = {str(i) for i in model.get("ids", []) or []}
    if model.get("type") == "exclude":
        return {row_id: row_id not in ids for row_id in visible_ids}
    return {row_id: row_id in ids for row_id in visible_ids}


# ---------------------------------------------------------------------------
# Module-level session registry
# ---------------------------------------------------------------------------

class _TableSession:
    """Objects that cannot live inside ``rx.State`` (not JSON-serialisable)."""

    def __init__(
        self,
        coordinator: TableStateCoordinator[dict[str, Any]],
        fetcher: LazyFrameFetcher,
    ) -> None:
        self.coordinator = coordinator
        self.fetcher = fetcher
        self.filter_generation = 0


# Least recently used first.
_session_registry: OrderedDict[str, _TableSession] = OrderedDict()

_MAX_SESSIONS = 256


def _close_session(session_id: str) -> None:
    session = _session_registry.pop(session_id, None)
    if session is not None:
        session.coordinator.close()


def _register_session(session_id: str, session: _TableSession) -> None:
    """Store *session*, closing the least recently used ones beyond the cap."""
    _close_session(session_id)
    _session_registry[session_id] = session
    while len(_session_registry) > _MAX_SESSIONS:
        stale_id, stale = _session_registry.popitem(last=False)
        stale.coordinator.close()
        logger.info("%s: table session evicted", stale_id)


def _lookup_session(session_id: str) -> _TableSession | None:
    session = _session_registry.get(session_id)
    if session is not None:
        _session_registry.move_to_end(session_id)
    return session


# ---------------------------------------------------------------------------
# QueryTableMixin
# ---------------------------------------------------------------------------

class QueryTableMixin(rx.State, mixin=True):
    """Reflex State mixin wiring a :class:`TableStateCoordinator` to a DataGrid.

    All state variable names are prefixed with ``qt_`` to avoid collisions
    when composed with other state.
    """

    # -- Frontend state vars --
    qt_rows: list[dict[str, Any]] = []
    qt_columns: list[dict[str, Any]] = []
    qt_row_count: int = 0
    qt_loading: bool = False
    qt_loaded: bool = False
    qt_checkbox_selection: bool = False
    qt_pagination_model: dict[str, int] = {"page": 0, "pageSize": 10}
    qt_page_size_options: list[int] = [10, 20, 50, 100]
    qt_filter_model: dict[str, Any] = {"items": []}
    qt_row_selection_model: dict[str, Any] = {"type": "include", "ids": []}
    qt_column_visibility_model: dict[str, bool] = {}
    qt_selected_count: int = 0
    qt_query_string: str = ""

    # -- Backend-only vars --
    _qt_session_id: str = ""

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def set_table_source(
        self,
        lf: pl.LazyFrame,
        filter_fields: Sequence[FilterFieldSpec] | None = None,
        config: DataTableConfig | None = None,
        id_field: str | None = None,
    ):
        """Attach a LazyFrame and load the page named by the current URL.

        This is a **generator** -- use ``yield from self.set_table_source(...)``
        so the loading state reaches the frontend immediately.

        Args:
            lf: The polars LazyFrame to browse.
            filter_fields: Filter field specs.  When ``None`` they are
                inferred from the string columns of *lf*.
            config: Table configuration.
            id_field: Column holding unique row ids (``None`` numbers the
                rows of *lf* in a ``__row_id__`` column).
        """
        self.qt_loading = True  # type: ignore[assignment]
        yield

        config = config or DataTableConfig()
        if filter_fields is None:
            filter_fields = infer_filter_fields(lf, exclude=[id_field] if id_field else ())

        session_id = f"{type(self).__name__}:{self.router.session.client_token}"
        self._qt_session_id = session_id  # type: ignore[assignment]

        array_keys = [f.id for f in filter_fields if isinstance(f, FilterableField)]
        store = MemoryQueryStore(
            parse_query_params(self.router.page.params, array_keys, config)
        )
        fetcher = LazyFrameFetcher(lf, filter_fields, id_field=id_field)
        column_defs = column_defs_from_schema(fetcher.schema, filter_fields)
        coordinator: TableStateCoordinator[dict[str, Any]] = TableStateCoordinator(
            store,
            columns=column_defs,
            filter_fields=filter_fields,
            config=config,
            get_row_id=fetcher.row_id,
        )
        _register_session(session_id, _TableSession(coordinator, fetcher))
        logger.info(
            "%s: table source attached (%d column(s), query %s)",
            session_id,
            len(fetcher.schema),
            build_query_string(store.snapshot()),
        )

        self.qt_columns = [c.dict() for c in column_defs]  # type: ignore[assignment]
        self.qt_checkbox_selection = config.enable_row_selection  # type: ignore[assignment]
        self.qt_page_size_options = list(config.page_size_options)  # type: ignore[assignment]
        self.qt_filter_model = entries_to_filter_model(  # type: ignore[assignment]
            coordinator.filters.column_filters, filter_fields
        )
        self._qt_refresh()
        self.qt_loaded = True  # type: ignore[assignment]
        self.qt_loading = False  # type: ignore[assignment]

    # ------------------------------------------------------------------
    # Event handlers
    # ------------------------------------------------------------------

    def handle_qt_pagination(self, model: dict[str, Any]):
        """Write the new page / page size to the query and load that page."""
        session = self._qt_session()
        if session is None:
            return
        self.qt_loading = True  # type: ignore[assignment]
        yield

        session.coordinator.on_pagination_change(pagination_from_grid_model(model))
        self._qt_refresh()
        self.qt_loading = False  # type: ignore[assignment]
        yield self._qt_url_event()

    @rx.event(background=True)
    async def handle_qt_filter(self, filter_model: dict[str, Any]):
        """Apply a filter edit locally now, reload once the debounce window settles."""
        async with self:
            session = self._qt_session()
            if session is None:
                return
            self.qt_filter_model = filter_model  # type: ignore[assignment]
            session.coordinator.on_column_filters_change(
                Direct(filter_model_to_entries(filter_model))
            )
            session.filter_generation += 1
            generation = session.filter_generation
            delay = session.coordinator.config.debounce_ms / 1000

        await asyncio.sleep(delay)

        async with self:
            if session.filter_generation != generation:
                return  # a newer edit owns the reload
            session.coordinator.filters.flush()
            self.qt_loading = True  # type: ignore[assignment]
            self._qt_refresh()
            self.qt_loading = False  # type: ignore[assignment]
        yield self._qt_url_event()

    def handle_qt_row_selection(self, model: dict[str, Any]) -> None:
        """Update the current page's selection flags from the MUI model."""
        session = self._qt_session()
        if session is None:
            return
        coordinator = session.coordinator
        visible_ids = [session.fetcher.row_id(row) for row in coordinator.rows]
        coordinator.on_row_selection_change(Direct(selection_model_to_keys(model, visible_ids)))
        self._qt_sync_selection()

    def handle_qt_column_visibility(self, model: dict[str, bool]) -> None:
        session = self._qt_session()
        if session is None:
            return
        self.qt_column_visibility_model = session.coordinator.on_column_visibility_change(  # type: ignore[assignment]
            Direct(model)
        )

    def clear_qt_selection(self) -> None:
        """Drop the selection on every page."""
        session = self._qt_session()
        if session is None:
            return
        session.coordinator.selection.clear()
        self._qt_sync_selection()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _qt_session(self) -> _TableSession | None:
        if not self._qt_session_id:
            return None
        return _lookup_session(self._qt_session_id)

    def _qt_refresh(self) -> None:
        """Fetch the current page synchronously and push it to the frontend vars."""
        session = self._qt_session()
        if session is None:
            return
        coordinator = session.coordinator
        pagination = coordinator.pagination.pagination
        result = session.fetcher.fetch(
            pagination.page_index,
            pagination.page_size,
            coordinator.filters.persisted_filters(),
        )
        coordinator.set_data(result.rows, result.page_count, result.row_count)
        props = coordinator.grid_props()
        self.qt_rows = props["rows"]  # type: ignore[assignment]
        self.qt_row_count = props["row_count"]  # type: ignore[assignment]
        self.qt_pagination_model = props["pagination_model"]  # type: ignore[assignment]
        self.qt_column_visibility_model = props["column_visibility_model"]  # type: ignore[assignment]
        self.qt_query_string = build_query_string(coordinator.store.snapshot())  # type: ignore[assignment]
        self._qt_sync_selection()

    def _qt_sync_selection(self) -> None:
        session = self._qt_session()
        if session is None:
            return
        props = session.coordinator.grid_props()
        self.qt_row_selection_model = props["row_selection_model"]  # type: ignore[assignment]
        self.qt_selected_count = session.coordinator.get_selected_count()  # type: ignore[assignment]

    def _qt_url_event(self) -> rx.event.EventSpec:
        """Mirror the persisted query into the address bar without navigating."""
        url = json.dumps(f"?{self.qt_query_string}")
        return rx.call_script(f"window.history.replaceState(null, '', {url})")


def selected_records(state: QueryTableMixin) -> list[dict[str, Any]]:
    """All rows selected in *state*'s table, by page then selection order.

    Call from an event handler of the state class::

        def export(self):
            rows = selected_records(self)
    """
    session = state._qt_session()
    if session is None:
        return []
    return session.coordinator.get_all_selected_records()


# ---------------------------------------------------------------------------
# UI helpers
# ---------------------------------------------------------------------------

def query_table(
    state_cls: type,
    *,
    row_id_field: str = "__row_id__",
    height: str = "600px",
    width: str = "100%",
    density: str = "compact",
    show_toolbar: bool = True,
    **extra_props: Any,
) -> rx.Component:
    """Return a ``data_grid(...)`` bound to a :class:`QueryTableMixin` state.

    Args:
        state_cls: The ``rx.State`` subclass that also inherits from
            :class:`QueryTableMixin`.
        row_id_field: Row field holding the unique id (must match the
            ``id_field`` given to ``set_table_source``).
        height: CSS height of the grid container.
        width: CSS width of the grid container.
        density: Grid density.
        show_toolbar: Show the MUI toolbar.
        **extra_props: Additional props forwarded to ``data_grid()``.
    """
    return data_grid(
        rows=state_cls.qt_rows,
        columns=state_cls.qt_columns,
        row_id_field=row_id_field,
        # -- Remote data --
        row_count=state_cls.qt_row_count,
        disable_column_sorting=True,
        pagination_model=state_cls.qt_pagination_model,
        page_size_options=state_cls.qt_page_size_options,
        filter_model=state_cls.qt_filter_model,
        # -- Selection --
        checkbox_selection=state_cls.qt_checkbox_selection,
        disable_row_selection_on_click=True,
        row_selection_model=state_cls.qt_row_selection_model,
        # -- Columns --
        column_visibility_model=state_cls.qt_column_visibility_model,
        # -- Display --
        loading=state_cls.qt_loading,
        density=density,
        show_toolbar=show_toolbar,
        # -- Events --
        on_pagination_model_change=state_cls.handle_qt_pagination,
        on_filter_model_change=state_cls.handle_qt_filter,
        on_row_selection_model_change=state_cls.handle_qt_row_selection,
        on_column_visibility_model_change=state_cls.handle_qt_column_visibility,
        height=height,
        width=width,
        **extra_props,
    )


def query_table_selection_bar(state_cls: type) -> rx.Component:
    """Show how many rows are selected across all pages, with a clear button."""
    return rx.hstack(
        rx.text(
            state_cls.qt_selected_count.to(str),  # type: ignore[union-attr]
            " row(s) selected across pages",
            size="2",
            weight="medium",
        ),
        rx.spacer(),
        rx.button(
            rx.icon("x", size=14),
            "Clear selection",
            size="1",
            variant="outline",
            on_click=state_cls.clear_qt_selection,
            disabled=state_cls.qt_selected_count == 0,
        ),
        align="center",
        spacing="2",
        width="100%",
        padding="0.4em 0.8em",
        border_radius="6px",
        background="var(--blue-a2)",
        border="1px solid var(--blue-a5)",
        margin_bottom="0.5em",
    )
