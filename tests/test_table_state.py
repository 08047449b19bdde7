"""MUI model conversions and the QueryTableMixin event handlers."""

import asyncio
from types import SimpleNamespace

import polars as pl
import pytest

from reflex_query_table import table_state
from reflex_query_table.coordinator import TableStateCoordinator
from reflex_query_table.fetch import LazyFrameFetcher
from reflex_query_table.models import ColumnFilterEntry, DataTableConfig, PaginationState
from reflex_query_table.query_state import MemoryQueryStore
from reflex_query_table.table_state import (
    QueryTableMixin,
    _register_session,
    _session_registry,
    _TableSession,
    entries_to_filter_model,
    filter_model_to_entries,
    pagination_from_grid_model,
    selected_records,
    selection_model_to_keys,
)

NAMES = ["Ann", "Bob", "Cyd", "Bea", "Eli", "Ben"]


def people_lf() -> pl.LazyFrame:
    return pl.LazyFrame(
        {
            "id": list(range(1, 7)),
            "name": NAMES,
            "status": ["active" if i % 2 == 0 else "inactive" for i in range(6)],
        }
    )


class GridState:
    """Plain object running the mixin's handler code without a Reflex app."""

    def __init__(self, params=None, token="token-1"):
        self.router = SimpleNamespace(
            session=SimpleNamespace(client_token=token),
            page=SimpleNamespace(params=dict(params or {})),
        )
        self._qt_session_id = ""
        self.qt_rows = []
        self.qt_columns = []
        self.qt_row_count = 0
        self.qt_loading = False
        self.qt_loaded = False
        self.qt_checkbox_selection = False
        self.qt_pagination_model = {"page": 0, "pageSize": 10}
        self.qt_page_size_options = []
        self.qt_filter_model = {"items": []}
        self.qt_row_selection_model = {"type": "include", "ids": []}
        self.qt_column_visibility_model = {}
        self.qt_selected_count = 0
        self.qt_query_string = ""

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return None

    def _qt_url_event(self):
        return self.qt_query_string


for _name in (
    "set_table_source",
    "handle_qt_pagination",
    "handle_qt_filter",
    "handle_qt_row_selection",
    "handle_qt_column_visibility",
    "clear_qt_selection",
    "_qt_session",
    "_qt_refresh",
    "_qt_sync_selection",
):
    setattr(GridState, _name, QueryTableMixin.__dict__[_name])


class CountingFetcher(LazyFrameFetcher):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.calls = []

    def fetch(self, page_index, page_size, filters=None):
        self.calls.append((page_index, page_size, dict(filters or {})))
        return super().fetch(page_index, page_size, filters)


def drain(events):
    return [event for event in events if event is not None]


async def drain_async(events):
    return [event async for event in events if event is not None]


@pytest.fixture(autouse=True)
def clean_registry():
    yield
    for session in _session_registry.values():
        session.coordinator.close()
    _session_registry.clear()


@pytest.fixture
def grid():
    return GridState()


@pytest.fixture
def attach(scheduler, fields):
    """Register a session for *state* backed by the people frame."""

    def _attach(state, query=None, **config):
        store = MemoryQueryStore(query or {"page": 1, "perPage": 2})
        fetcher = CountingFetcher(people_lf(), fields, id_field="id")
        coordinator = TableStateCoordinator(
            store,
            filter_fields=fields,
            config=DataTableConfig(**config),
            get_row_id=fetcher.row_id,
            scheduler=scheduler,
        )
        session_id = f"GridState:{state.router.session.client_token}"
        _register_session(session_id, _TableSession(coordinator, fetcher))
        state._qt_session_id = session_id
        state._qt_refresh()
        fetcher.calls.clear()
        return store, fetcher, coordinator

    return _attach


class TestGridModels:
    def test_pagination_model(self):
        assert pagination_from_grid_model({"page": 2, "pageSize": 50}) == PaginationState(2, 50)

    def test_filter_model_skips_empty_items(self):
        model = {
            "items": [
                {"field": "name", "operator": "contains", "value": "jo"},
                {"field": "status", "operator": "isAnyOf", "value": ["a", "b"]},
                {"field": "city", "operator": "contains"},
                {"field": "zip", "operator": "contains", "value": ""},
                {"operator": "contains", "value": "x"},
            ]
        }
        assert filter_model_to_entries(model) == [
            ColumnFilterEntry("name", "jo"),
            ColumnFilterEntry("status", ("a", "b")),
        ]

    def test_filter_model_scalars_become_strings(self):
        model = {"items": [{"field": "age", "operator": "contains", "value": 42}]}
        assert filter_model_to_entries(model) == [ColumnFilterEntry("age", "42")]

    @pytest.mark.parametrize("operator", ["equals", "startsWith", "isEmpty", "is"])
    def test_filter_model_ignores_other_operators(self, operator):
        model = {"items": [{"field": "name", "operator": operator, "value": "Ann"}]}
        assert filter_model_to_entries(model) == []

    def test_entries_to_filter_model(self, fields):
        model = entries_to_filter_model(
            [ColumnFilterEntry("name", "jo"), ColumnFilterEntry("status", ("active",))],
            fields,
        )
        assert model == {
            "items": [
                {"field": "name", "operator": "contains", "value": "jo"},
                {"field": "status", "operator": "isAnyOf", "value": ["active"]},
            ],
            "logicOperator": "and",
        }

    def test_include_selection_model(self):
        keys = selection_model_to_keys({"type": "include", "ids": [2, "9"]}, ["1", "2"])
        assert keys == {"1": False, "2": True}

    def test_exclude_selection_model(self):
        keys = selection_model_to_keys({"type": "exclude", "ids": ["1"]}, ["1", "2", "3"])
        assert keys == {"1": False, "2": True, "3": True}


class TestSetTableSource:
    def test_store_seeded_from_url(self, fields):
        grid = GridState({"page": "2", "perPage": "2", "status": "inactive", "name": "b"})
        drain(
            grid.set_table_source(
                people_lf(),
                filter_fields=fields,
                config=DataTableConfig(enable_row_selection=True),
                id_field="id",
            )
        )
        session = _session_registry["GridState:token-1"]
        assert session.coordinator.store.snapshot() == {
            "page": 2,
            "perPage": 2,
            "status": ["inactive"],
            "name": "b",
        }
        assert [row["name"] for row in grid.qt_rows] == ["Ben"]
        assert grid.qt_row_count == 3
        assert grid.qt_pagination_model == {"page": 1, "pageSize": 2}
        assert {item["field"] for item in grid.qt_filter_model["items"]} == {"status", "name"}
        assert grid.qt_query_string == "page=2&perPage=2&status=inactive&name=b"
        assert grid.qt_loaded and not grid.qt_loading

    def test_selection_renders_as_grid_checkboxes(self, fields):
        grid = GridState()
        drain(
            grid.set_table_source(
                people_lf(),
                filter_fields=fields,
                config=DataTableConfig(enable_row_selection=True),
            )
        )
        assert grid.qt_checkbox_selection is True
        assert [col["field"] for col in grid.qt_columns] == ["id", "name", "status"]

    def test_reattach_closes_previous_session(self, fields):
        grid = GridState()
        drain(grid.set_table_source(people_lf(), filter_fields=fields))
        previous = _session_registry["GridState:token-1"]
        drain(grid.set_table_source(people_lf(), filter_fields=fields))
        assert len(_session_registry) == 1
        assert _session_registry["GridState:token-1"] is not previous
        assert previous.coordinator.filters._debounced.closed

    def test_handlers_without_source_do_nothing(self, grid):
        assert drain(grid.handle_qt_pagination({"page": 1, "pageSize": 2})) == []
        grid.handle_qt_row_selection({"type": "include", "ids": ["1"]})
        assert grid.qt_selected_count == 0
        assert selected_records(grid) == []


class TestSessionRegistry:
    def test_least_recently_used_session_is_evicted(self, monkeypatch, fields):
        monkeypatch.setattr(table_state, "_MAX_SESSIONS", 2)
        grids = [GridState(token=f"t{i}") for i in range(3)]
        drain(grids[0].set_table_source(people_lf(), filter_fields=fields))
        drain(grids[1].set_table_source(people_lf(), filter_fields=fields))
        evicted = _session_registry["GridState:t1"]
        assert grids[0]._qt_session() is not None

        drain(grids[2].set_table_source(people_lf(), filter_fields=fields))

        assert list(_session_registry) == ["GridState:t0", "GridState:t2"]
        assert grids[1]._qt_session() is None
        assert evicted.coordinator.filters._debounced.closed


class TestPaginationHandler:
    def test_writes_query_and_loads_page(self, grid, attach):
        store, fetcher, _ = attach(grid)
        events = drain(grid.handle_qt_pagination({"page": 1, "pageSize": 2}))
        assert store.history == [{"page": 2, "perPage": 2}]
        assert fetcher.calls == [(1, 2, {})]
        assert [row["name"] for row in grid.qt_rows] == ["Cyd", "Bea"]
        assert grid.qt_pagination_model == {"page": 1, "pageSize": 2}
        assert events == ["page=2&perPage=2"]
        assert grid.qt_loading is False


class TestFilterHandler:
    def test_quick_edits_write_and_reload_once(self, grid, attach):
        store, fetcher, _ = attach(grid, {"page": 2, "perPage": 2}, debounce_ms=20)
        first = {"items": [{"field": "name", "operator": "contains", "value": "b"}]}
        second = {"items": [{"field": "name", "operator": "contains", "value": "be"}]}

        async def edit_twice():
            return await asyncio.gather(
                drain_async(grid.handle_qt_filter(first)),
                drain_async(grid.handle_qt_filter(second)),
            )

        first_events, second_events = asyncio.run(edit_twice())

        assert first_events == []
        assert second_events == ["page=1&perPage=2&name=be"]
        assert store.history == [{"name": "be", "page": 1}]
        assert fetcher.calls == [(0, 2, {"name": "be"})]
        assert [row["name"] for row in grid.qt_rows] == ["Bea", "Ben"]
        assert grid.qt_filter_model == second

    def test_cleared_filter_removes_key(self, grid, attach):
        store, fetcher, _ = attach(grid, {"page": 1, "perPage": 2, "name": "b"}, debounce_ms=5)
        asyncio.run(drain_async(grid.handle_qt_filter({"items": []})))
        assert "name" not in store.snapshot()
        assert grid.qt_row_count == 6
        assert fetcher.calls == [(0, 2, {})]


class TestSelectionHandlers:
    def test_flags_follow_visible_rows_across_pages(self, grid, attach):
        _, _, coordinator = attach(grid, enable_row_selection=True)
        grid.handle_qt_row_selection({"type": "include", "ids": ["2", "99"]})
        assert coordinator.selection.page_keys(0) == {"1": False, "2": True}
        assert grid.qt_row_selection_model == {"type": "include", "ids": ["2"]}
        assert grid.qt_selected_count == 1

        drain(grid.handle_qt_pagination({"page": 1, "pageSize": 2}))
        assert grid.qt_row_selection_model == {"type": "include", "ids": []}
        grid.handle_qt_row_selection({"type": "exclude", "ids": []})

        assert grid.qt_selected_count == 3
        assert [row["name"] for row in selected_records(grid)] == ["Bob", "Cyd", "Bea"]

    def test_clear_selection(self, grid, attach):
        attach(grid, enable_row_selection=True)
        grid.handle_qt_row_selection({"type": "include", "ids": ["1"]})
        grid.clear_qt_selection()
        assert grid.qt_selected_count == 0
        assert selected_records(grid) == []

    def test_column_visibility(self, grid, attach):
        attach(grid)
        grid.handle_qt_column_visibility({"status": False})
        assert grid.qt_column_visibility_model == {"status": False}
