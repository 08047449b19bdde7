"""reflex-query-table – a URL-synchronised table controller for Reflex and MUI X DataGrid.

Pagination and column filters are persisted in the page query string,
filter writes are debounced, and row selection survives page changes.
The controller core (``TableStateCoordinator``) is plain Python; the
Reflex binding (``QueryTableMixin`` + ``query_table``) renders it with the
MUI X DataGrid in server mode and fetches pages from a polars LazyFrame::

    pip install reflex-query-table
"""

from reflex_query_table.columns import (
    CellCheckboxState,
    ColumnSetBuilder,
    HeaderCheckboxState,
    SelectionColumn,
)
from reflex_query_table.coordinator import (
    DataFetcher,
    TableHandlers,
    TableState,
    TableStateCoordinator,
)
from reflex_query_table.datagrid import DataGrid, DataGridNamespace, WrappedDataGrid, data_grid
from reflex_query_table.debounce import DebouncedCall
from reflex_query_table.fetch import (
    LazyFrameFetcher,
    column_defs_from_schema,
    infer_filter_fields,
    polars_dtype_to_grid_type,
    scan_table,
)
from reflex_query_table.filters import FilterSyncController
from reflex_query_table.models import (
    ColumnDef,
    ColumnFilterEntry,
    DataTableConfig,
    FetchResult,
    FilterableField,
    FilterFieldSpec,
    FilterOption,
    PaginationState,
    SearchableField,
    filter_field,
)
from reflex_query_table.pagination import PaginationController
from reflex_query_table.query_state import (
    MemoryQueryStore,
    PersistedQueryStore,
    build_query_string,
    parse_query_params,
    parse_query_string,
    read_pagination,
)
from reflex_query_table.selection import SelectionStore
from reflex_query_table.table_state import (
    QueryTableMixin,
    query_table,
    query_table_selection_bar,
    selected_records,
)
from reflex_query_table.updates import Derive, Direct, Update, resolve_update
