import pytest

from reflex_query_table.models import (
    ColumnFilterEntry,
    DataTableConfig,
    FilterableField,
    FilterOption,
    PaginationState,
    SearchableField,
    classify_filter_fields,
    filter_field,
)


class TestPaginationState:
    def test_query_conversion(self):
        state = PaginationState.from_query(3, 20)
        assert state == PaginationState(page_index=2, page_size=20)
        assert state.to_query() == {"page": 3, "perPage": 20}
        assert state.to_grid_model() == {"page": 2, "pageSize": 20}

    @pytest.mark.parametrize("page_index,page_size", [(-1, 10), (0, 0), (0, -5)])
    def test_rejects_invalid(self, page_index, page_size):
        with pytest.raises(ValueError):
            PaginationState(page_index=page_index, page_size=page_size)


class TestFilterFields:
    def test_variant_follows_options(self):
        assert filter_field("name", "Name") == SearchableField(id="name", label="Name")
        field = filter_field("status", "Status", options=[{"label": "On", "value": "on", "count": 4}])
        assert field == FilterableField(
            id="status",
            label="Status",
            options=(FilterOption(label="On", value="on", count=4),),
        )

    def test_empty_options_is_still_filterable(self):
        assert isinstance(filter_field("status", "Status", options=[]), FilterableField)

    def test_classify(self, fields):
        searchable, filterable = classify_filter_fields(fields)
        assert searchable == frozenset({"name"})
        assert filterable == frozenset({"status"})

    def test_entry_create_normalises_sequences(self):
        assert ColumnFilterEntry.create("status", ["a", "b"]).value == ("a", "b")
        assert ColumnFilterEntry.create("name", "jo").value == "jo"


class TestDataTableConfig:
    def test_defaults(self):
        config = DataTableConfig()
        assert config.debounce_ms == 300
        assert config.enable_row_selection is False
        assert config.default_page == 1
        assert config.default_per_page == 10
        assert config.selection_column_id == "select"

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"debounce_ms": -1},
            {"default_page": 0},
            {"default_per_page": 0},
            {"selection_column_id": ""},
        ],
    )
    def test_invalid_values(self, kwargs):
        with pytest.raises(ValueError):
            DataTableConfig(**kwargs)
