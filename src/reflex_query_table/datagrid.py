"""Reflex wrapper for the MUI X DataGrid (v8) in remote-data mode.

The wrapper component (``QueryDataGrid``) is injected into Reflex's compiled
pages via ``add_imports()`` + ``add_custom_code()``.  MUI v8 expects
``rowSelectionModel.ids`` to be a ``Set``, which cannot travel over JSON, so
the Python side sends an array and the wrapper turns it back into a ``Set``
before handing the props to MUI.  The wrapper also narrows each filterable
column to the operators the backend applies: ``contains`` for text columns
and ``isAnyOf`` for ``singleSelect`` ones.
"""

from typing import Any, Literal

import reflex as rx
from reflex.components.el import Div

from reflex_query_table.models import ColumnDef

_SERVER_MODES = ("pagination_mode", "filter_mode", "sorting_mode")


def _model_arg(model: rx.Var) -> list[rx.Var]:
    """Pass a JSON-safe grid model (pagination, filter, sort, visibility) through as-is."""
    return [model]


def _selection_model_arg(model: rx.Var) -> list[rx.Var]:
    """MUI v8 sends ``{type, ids: Set}``; ship ``ids`` to the backend as an array."""
    return [rx.Var(f"({{ type: ({model}).type, ids: [...({model}).ids].map(String) }})")]


_INLINE_WRAPPER_JS = """
const QueryDataGrid = React.forwardRef((props, ref) => {
  const { rowSelectionModel, columns, ...rest } = props;
  const gridColumns = React.useMemo(() => (columns || []).map((col) => {
    if (col.filterable === false) return col;
    const singleSelect = col.type === "singleSelect";
    const operators = singleSelect ? getGridSingleSelectOperators() : getGridStringOperators();
    const keep = singleSelect ? "isAnyOf" : "contains";
    return { ...col, filterOperators: operators.filter((op) => op.value === keep) };
  }), [columns]);
  const selectionModel = React.useMemo(() => {
    if (!rowSelectionModel) return undefined;
    const ids = Array.isArray(rowSelectionModel.ids) ? rowSelectionModel.ids : [];
    return { type: rowSelectionModel.type || "include", ids: new Set(ids) };
  }, [rowSelectionModel]);
  const gridProps = selectionModel === undefined
    ? { ...rest, columns: gridColumns }
    : { ...rest, columns: gridColumns, rowSelectionModel: selectionModel };
  return React.createElement(
    "div",
    { style: { width: "100%", height: "100%" } },
    React.createElement(MuiDataGrid_, { ...gridProps, ref })
  );
});
QueryDataGrid.displayName = "QueryDataGrid";
"""


class DataGrid(rx.Component):
    """MUI X DataGrid (Community, v8) fed one page at a time by the backend.

    Pagination, filtering and sorting default to ``"server"``: the grid
    shows ``rows`` as the whole current page and reports model changes
    through the ``on_*_model_change`` events instead of computing them.
    Needs a parent with explicit dimensions; ``data_grid(...)`` adds one.
    """

    library: str = "@mui/x-data-grid"
    tag: str = "QueryDataGrid"
    is_default: bool = False

    lib_dependencies: list[str] = [
        "@mui/material@^7.0.0",
        "@emotion/react@^11.14.0",
        "@emotion/styled@^11.14.0",
    ]

    @property
    def import_var(self) -> rx.ImportVar:
        """Install the npm package but import nothing named ``QueryDataGrid`` from it."""
        return rx.ImportVar(tag=None, render=False)

    def add_imports(self) -> dict:
        return {
            "@mui/x-data-grid": [
                rx.ImportVar(tag="DataGrid", alias="MuiDataGrid_"),
                rx.ImportVar(tag="getGridStringOperators"),
                rx.ImportVar(tag="getGridSingleSelectOperators"),
            ],
            "react": [rx.ImportVar(tag="React", is_default=True)],
        }

    def add_custom_code(self) -> list[str]:
        return [_INLINE_WRAPPER_JS]

    # ---- current page ----
    rows: rx.Var[list[dict[str, Any]]]
    columns: rx.Var[list[dict[str, Any]]]
    row_count: rx.Var[int]
    get_row_id: rx.Var[Any]

    # ---- server-side models ----
    pagination_mode: rx.Var[Literal["client", "server"]]
    filter_mode: rx.Var[Literal["client", "server"]]
    sorting_mode: rx.Var[Literal["client", "server"]]
    pagination_model: rx.Var[dict[str, int]]
    page_size_options: rx.Var[list[int]]
    filter_model: rx.Var[dict[str, Any]]
    filter_debounce_ms: rx.Var[int]
    sort_model: rx.Var[list[dict[str, Any]]]
    disable_column_sorting: rx.Var[bool]
    column_visibility_model: rx.Var[dict[str, bool]]

    # ---- selection (current page ids only) ----
    checkbox_selection: rx.Var[bool]
    disable_row_selection_on_click: rx.Var[bool]
    row_selection_model: rx.Var[dict[str, Any]]

    # ---- look ----
    loading: rx.Var[bool]
    density: rx.Var[Literal["comfortable", "compact", "standard"]]
    show_toolbar: rx.Var[bool]
    hide_footer: rx.Var[bool]

    # ---- model change events ----
    on_pagination_model_change: rx.EventHandler[_model_arg]
    on_filter_model_change: rx.EventHandler[_model_arg]
    on_sort_model_change: rx.EventHandler[_model_arg]
    on_column_visibility_model_change: rx.EventHandler[_model_arg]
    on_row_selection_model_change: rx.EventHandler[_selection_model_arg]

    @classmethod
    def create(
        cls,
        *children: rx.Component,
        row_id_field: str | None = None,
        **props: Any,
    ) -> rx.Component:
        """Create the grid in server mode.

        Args:
            *children: Child components (typically unused).
            row_id_field: Row field holding the unique id.  A ``getRowId``
                callback returning it as a string is generated, so grid ids
                match the string ids kept by the selection store.
            **props: All other DataGrid props; explicit ``*_mode`` values win.
        """
        for mode in _SERVER_MODES:
            props.setdefault(mode, "server")
        if row_id_field is not None:
            props["get_row_id"] = rx.Var(f"(row) => String(row.{row_id_field})")
        return super().create(*children, **props)


class WrappedDataGrid(DataGrid):
    """DataGrid inside a ``<div>`` sized by ``width`` / ``height``."""

    @classmethod
    def create(cls, *children: rx.Component, **props: Any) -> rx.Component:
        size = {"width": props.pop("width", "100%"), "height": props.pop("height", "400px")}
        return Div.create(super().create(*children, **props), **size)


class DataGridNamespace(rx.ComponentNamespace):
    """Namespace for the server-mode DataGrid component family."""

    column_def = ColumnDef
    root = DataGrid.create
    __call__ = WrappedDataGrid.create


data_grid = DataGridNamespace()
