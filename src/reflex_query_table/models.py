"""Data model for the query-synchronised table controller.

Plain frozen dataclasses describe the controller's own state (pagination,
filters, filter fields, configuration).  :class:`ColumnDef` maps to the MUI
``GridColDef`` and is only used when rendering through the Reflex binding.
"""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Literal, Union

import reflex as rx
from reflex.components.props import PropsBase

FilterValue = Union[str, tuple[str, ...]]


# ---------------------------------------------------------------------------
# Pagination
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PaginationState:
    """Zero-indexed pagination as seen by the grid.

    The persisted query stores the one-indexed ``page`` and ``perPage``;
    :meth:`from_query` and :meth:`to_query` convert between the two without
    loss.
    """

    page_index: int = 0
    page_size: int = 10

    def __post_init__(self) -> None:
        if self.page_index < 0:
            raise ValueError(f"page_index must be >= 0, got {self.page_index}")
        if self.page_size <= 0:
            raise ValueError(f"page_size must be > 0, got {self.page_size}")

    @classmethod
    def from_query(cls, page: int, per_page: int) -> "PaginationState":
        return cls(page_index=page - 1, page_size=per_page)

    def to_query(self) -> dict[str, int]:
        return {"page": self.page_index + 1, "perPage": self.page_size}

    def to_grid_model(self) -> dict[str, int]:
        """Return the MUI ``paginationModel`` shape (``page`` is zero-indexed there)."""
        return {"page": self.page_index, "pageSize": self.page_size}


# ---------------------------------------------------------------------------
# Filters
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ColumnFilterEntry:
    """One active column filter: a free-text string or a set of option values."""

    id: str
    value: FilterValue

    @classmethod
    def create(cls, id: str, value: str | Sequence[str]) -> "ColumnFilterEntry":
        if isinstance(value, str):
            return cls(id=id, value=value)
        return cls(id=id, value=tuple(value))


@dataclass(frozen=True)
class FilterOption:
    label: str
    value: str
    count: int | None = None


@dataclass(frozen=True)
class SearchableField:
    """A free-text filter field (no enumerated options)."""

    id: str
    label: str
    placeholder: str | None = None


@dataclass(frozen=True)
class FilterableField:
    """A filter field restricted to a discrete set of options."""

    id: str
    label: str
    options: tuple[FilterOption, ...]
    placeholder: str | None = None


FilterFieldSpec = Union[SearchableField, FilterableField]


def filter_field(
    id: str,
    label: str,
    options: Sequence[FilterOption | Mapping[str, Any]] | None = None,
    placeholder: str | None = None,
) -> FilterFieldSpec:
    """Build the filter-field variant implied by the presence of *options*.

    ``options`` entries may be :class:`FilterOption` instances or mappings
    with ``label`` / ``value`` (and optionally ``count``) keys.
    """
    if options is None:
        return SearchableField(id=id, label=label, placeholder=placeholder)
    parsed = tuple(
        opt if isinstance(opt, FilterOption) else FilterOption(**opt)
        for opt in options
    )
    return FilterableField(id=id, label=label, options=parsed, placeholder=placeholder)


def classify_filter_fields(
    fields: Sequence[FilterFieldSpec],
) -> tuple[frozenset[str], frozenset[str]]:
    """Split *fields* into ``(searchable_ids, filterable_ids)``."""
    searchable = frozenset(f.id for f in fields if isinstance(f, SearchableField))
    filterable = frozenset(f.id for f in fields if isinstance(f, FilterableField))
    return searchable, filterable


# ---------------------------------------------------------------------------
# Fetching
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class FetchResult:
    """Rows of one page plus the page count reported by the data source."""

    rows: list[Any]
    page_count: int
    row_count: int | None = None


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DataTableConfig:
    """Every option the table coordinator recognises, with its default.

    Attributes:
        debounce_ms: Quiescence window before a filter edit is written to
            the persisted query.  ``0`` writes synchronously.
        enable_row_selection: Inject the selection column and track
            selected rows across pages.
        initial_column_visibility: Starting ``{column_id: visible}`` map.
        initial_row_selection: Starting ``{row_id: selected}`` map for the
            page that is current at mount.
        default_page: ``page`` used when the store holds none (or an
            invalid one).
        default_per_page: ``perPage`` used when the store holds none (or an
            invalid one).
        page_size_options: Page sizes offered by the grid footer.
        selection_column_id: Id of the synthetic selection column.
    """

    debounce_ms: int = 300
    enable_row_selection: bool = False
    initial_column_visibility: Mapping[str, bool] = field(default_factory=dict)
    initial_row_selection: Mapping[str, bool] = field(default_factory=dict)
    default_page: int = 1
    default_per_page: int = 10
    page_size_options: tuple[int, ...] = (10, 20, 50, 100)
    selection_column_id: str = "select"

    def __post_init__(self) -> None:
        if self.debounce_ms < 0:
            raise ValueError(f"debounce_ms must be >= 0, got {self.debounce_ms}")
        if self.default_page < 1:
            raise ValueError(f"default_page must be >= 1, got {self.default_page}")
        if self.default_per_page <= 0:
            raise ValueError(
                f"default_per_page must be > 0, got {self.default_per_page}"
            )
        if not self.selection_column_id:
            raise ValueError("selection_column_id must not be empty")


# ---------------------------------------------------------------------------
# Grid column definitions
# ---------------------------------------------------------------------------

class ColumnDef(PropsBase):
    """Column definition for the MUI X DataGrid, maps to GridColDef.

    Attributes are automatically converted from snake_case to camelCase
    when serialized to JavaScript props via PropsBase.
    """

    field: str
    header_name: str | None = None
    width: int | None = None
    min_width: int | None = None
    flex: int | None = None
    type: Literal["string", "number", "date", "dateTime", "boolean", "singleSelect"] | None = None
    align: Literal["left", "center", "right"] | None = None
    header_align: Literal["left", "center", "right"] | None = None
    sortable: bool | rx.Var[bool] = True
    filterable: bool | rx.Var[bool] = True
    hideable: bool | rx.Var[bool] = True
    resizable: bool | rx.Var[bool] = True
    disable_column_menu: bool | rx.Var[bool] = False
    description: str | None = None
    value_options: list[str] | None = None
    render_cell: rx.Var | None = None
