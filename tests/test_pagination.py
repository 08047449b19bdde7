import pytest

from reflex_query_table.models import DataTableConfig, PaginationState
from reflex_query_table.pagination import PaginationController, coerce_pagination
from reflex_query_table.query_state import MemoryQueryStore
from reflex_query_table.updates import Derive, Direct


class TestPaginationController:
    def test_reads_store(self):
        store = MemoryQueryStore({"page": 4, "perPage": 20})
        assert PaginationController(store).pagination == PaginationState(3, 20)

    def test_configured_default_page_size(self):
        controller = PaginationController(MemoryQueryStore(), DataTableConfig(default_per_page=25))
        assert controller.pagination == PaginationState(0, 25)

    def test_direct_update_writes_immediately(self):
        store = MemoryQueryStore({"page": 1, "perPage": 10})
        controller = PaginationController(store)
        result = controller.on_pagination_change(Direct(PaginationState(2, 10)))
        assert result == PaginationState(2, 10)
        assert store.history == [{"page": 3, "perPage": 10}]
        assert controller.pagination == PaginationState(2, 10)

    def test_derive_update(self):
        store = MemoryQueryStore({"page": 2, "perPage": 10})
        controller = PaginationController(store)
        controller.on_pagination_change(
            Derive(lambda p: PaginationState(p.page_index + 1, p.page_size))
        )
        assert store.history == [{"page": 3, "perPage": 10}]

    def test_grid_mapping_payload(self):
        store = MemoryQueryStore()
        PaginationController(store).on_pagination_change({"pageIndex": 1, "pageSize": 50})
        assert store.snapshot() == {"page": 2, "perPage": 50}

    def test_page_size_change_leaves_filters_alone(self):
        store = MemoryQueryStore({"page": 1, "perPage": 10, "name": "jo"})
        PaginationController(store).on_pagination_change(Direct(PaginationState(0, 50)))
        assert store.history == [{"page": 1, "perPage": 50}]
        assert store.snapshot()["name"] == "jo"


class TestCoercePagination:
    def test_rejects_unknown_payload(self):
        with pytest.raises(TypeError):
            coerce_pagination("next")

    def test_rejects_negative_index(self):
        with pytest.raises(ValueError):
            coerce_pagination({"pageIndex": -1, "pageSize": 10})
