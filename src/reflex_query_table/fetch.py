"""Polars-backed data-fetch collaborator.

:class:`LazyFrameFetcher` serves one page at a time from a polars
LazyFrame: persisted filters are pushed down as polars expressions, the
matching rows are counted with ``select(pl.len())`` and only the requested
slice is ever collected.
"""

import logging
import math
import time
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

import polars as pl

from reflex_query_table.models import (
    ColumnDef,
    FetchResult,
    FilterableField,
    FilterFieldSpec,
    FilterOption,
    SearchableField,
    classify_filter_fields,
)
from reflex_query_table.query_state import QueryValue

logger = logging.getLogger(__name__)

ROW_ID_FIELD = "__row_id__"

_DEFAULT_MAX_OPTIONS: int = 50


# ---------------------------------------------------------------------------
# File scanner
# ---------------------------------------------------------------------------

def scan_table(path: Path) -> pl.LazyFrame:
    """Open a tabular file lazily, picking the reader from its extension.

    Supports ``.csv``, ``.tsv``, ``.parquet`` / ``.pq``, ``.ndjson`` /
    ``.jsonl``, ``.ipc`` / ``.arrow`` / ``.feather`` and ``.json`` (read
    eagerly, then made lazy).

    Raises:
        FileNotFoundError: If *path* does not exist.
        ValueError: If the extension is not recognised.
    """
    path = Path(path).resolve()
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")

    suffix = path.suffix.lower()
    if suffix in (".parquet", ".pq"):
        return pl.scan_parquet(path)
    if suffix == ".csv":
        return pl.scan_csv(path)
    if suffix == ".tsv":
        return pl.scan_csv(path, separator="\t")
    if suffix == ".json":
        return pl.read_json(path).lazy()
    if suffix in (".ndjson", ".jsonl"):
        return pl.scan_ndjson(path)
    if suffix in (".ipc", ".arrow", ".feather"):
        return pl.scan_ipc(path)

    raise ValueError(
        f"Unsupported file extension: {suffix!r}. "
        "Supported: .csv, .tsv, .parquet, .pq, .json, .ndjson, .jsonl, "
        ".ipc, .arrow, .feather"
    )


# ---------------------------------------------------------------------------
# Column and filter-field inference
# ---------------------------------------------------------------------------

def polars_dtype_to_grid_type(dtype: pl.DataType) -> str:
    """Map a polars DataType to the closest MUI DataGrid column type."""
    if isinstance(dtype, pl.Boolean):
        return "boolean"
    if dtype.is_numeric():
        return "number"
    if isinstance(dtype, pl.Date):
        return "date"
    if isinstance(dtype, pl.Datetime):
        return "dateTime"
    return "string"


def _humanize_field_name(field: str) -> str:
    """``"first_name"`` -> ``"First Name"``."""
    return field.strip("_").replace("_", " ").title()


def infer_filter_fields(
    lf: pl.LazyFrame,
    *,
    max_options: int = _DEFAULT_MAX_OPTIONS,
    exclude: Sequence[str] = (),
) -> list[FilterFieldSpec]:
    """Derive filter fields from the string-like columns of *lf*.

    Each column is scanned on its own (projection pushdown) and stops after
    ``max_options + 1`` distinct values.  Low-cardinality columns become
    :class:`FilterableField` with their sorted values as options, the rest
    become :class:`SearchableField`.
    """
    schema = lf.collect_schema()
    fields: list[FilterFieldSpec] = []
    for col_name, dtype in schema.items():
        if col_name in exclude:
            continue
        if not isinstance(dtype, (pl.String, pl.Categorical, pl.Enum)):
            continue
        label = _humanize_field_name(col_name)
        values = (
            lf.select(pl.col(col_name).cast(pl.String).drop_nulls().unique().head(max_options + 1))
            .collect()[col_name]
            .to_list()
        )
        if 0 < len(values) <= max_options:
            options = tuple(FilterOption(label=str(v), value=str(v)) for v in sorted(values))
            fields.append(FilterableField(id=col_name, label=label, options=options))
        else:
            fields.append(SearchableField(id=col_name, label=label))
    return fields


def column_defs_from_schema(
    schema: pl.Schema,
    filter_fields: Sequence[FilterFieldSpec] = (),
    *,
    hidden: Sequence[str] = (ROW_ID_FIELD,),
) -> list[ColumnDef]:
    """Build :class:`ColumnDef` entries from a polars schema without collecting data.

    Columns backed by a :class:`FilterableField` become ``singleSelect`` with
    the field's option values.  Columns without a filter field are not
    filterable in the grid.
    """
    options_by_id = {
        f.id: [opt.value for opt in f.options]
        for f in filter_fields
        if isinstance(f, FilterableField)
    }
    labels = {f.id: f.label for f in filter_fields}
    column_defs: list[ColumnDef] = []
    for col_name, dtype in schema.items():
        if col_name in hidden:
            continue
        grid_type = polars_dtype_to_grid_type(dtype)
        value_options = options_by_id.get(col_name)
        if value_options is not None:
            grid_type = "singleSelect"
        column_defs.append(
            ColumnDef(
                field=col_name,
                header_name=labels.get(col_name, _humanize_field_name(col_name)),
                type=grid_type,
                value_options=value_options,
                filterable=col_name in labels,
            )
        )
    return column_defs


# ---------------------------------------------------------------------------
# Row conversion
# ---------------------------------------------------------------------------

def _dataframe_to_dicts(df: pl.DataFrame) -> list[dict[str, Any]]:
    """Convert a DataFrame to JSON-safe dicts.

    Temporal columns become ISO-8601 strings, list columns comma-joined
    strings and struct columns their string form.
    """
    exprs: list[pl.Expr] = []
    needs_cast = False
    for name, dtype in df.schema.items():
        if isinstance(dtype, (pl.Date, pl.Datetime, pl.Time, pl.Duration, pl.Struct)):
            exprs.append(pl.col(name).cast(pl.String))
            needs_cast = True
        elif isinstance(dtype, pl.List):
            exprs.append(pl.col(name).cast(pl.List(pl.String)).list.join(","))
            needs_cast = True
        else:
            exprs.append(pl.col(name))
    if not needs_cast:
        return df.to_dicts()
    return df.select(exprs).to_dicts()


# ---------------------------------------------------------------------------
# Fetcher
# ---------------------------------------------------------------------------

class LazyFrameFetcher:
    """Serve pages of a LazyFrame filtered by the persisted query.

    Searchable filters match case-insensitively as literal substrings,
    filterable filters match any of the selected values.  Filter ids that
    are not configured fields, or not columns of the frame, are ignored.

    Args:
        lf: The LazyFrame to browse.
        filter_fields: Filter field specs (decide how each filter applies).
        id_field: Column holding the unique row id.  When ``None``, a
            ``__row_id__`` column numbering the rows of the unfiltered
            frame is added, so a row keeps its id whatever the filters.
    """

    def __init__(
        self,
        lf: pl.LazyFrame,
        filter_fields: Sequence[FilterFieldSpec] = (),
        id_field: str | None = None,
    ) -> None:
        if id_field is None and ROW_ID_FIELD not in lf.collect_schema():
            lf = lf.with_row_index(ROW_ID_FIELD)
        self.lf = lf
        self.schema = lf.collect_schema()
        self.filter_fields = tuple(filter_fields)
        self.searchable_ids, self.filterable_ids = classify_filter_fields(self.filter_fields)
        if id_field is not None and id_field not in self.schema:
            raise ValueError(f"id_field {id_field!r} is not a column of the frame")
        self.id_field = id_field

    def row_id(self, row: Mapping[str, Any]) -> str:
        return str(row[self.id_field or ROW_ID_FIELD])

    def _filter_exprs(self, filters: Mapping[str, QueryValue]) -> list[pl.Expr]:
        exprs: list[pl.Expr] = []
        for key, value in filters.items():
            if value is None or key not in self.schema:
                continue
            str_col = pl.col(key).cast(pl.String)
            if key in self.searchable_ids:
                needle = value if isinstance(value, str) else ",".join(map(str, value))
                exprs.append(
                    str_col.str.to_lowercase().str.contains(needle.lower(), literal=True)
                )
            elif key in self.filterable_ids:
                values = [value] if isinstance(value, str) else [str(v) for v in value]
                exprs.append(str_col.is_in(values))
        return exprs

    def filtered(self, filters: Mapping[str, QueryValue]) -> pl.LazyFrame:
        lf = self.lf
        exprs = self._filter_exprs(filters)
        if exprs:
            combined = exprs[0]
            for expr in exprs[1:]:
                combined = combined & expr
            lf = lf.filter(combined)
        return lf

    def fetch(
        self,
        page_index: int,
        page_size: int,
        filters: Mapping[str, QueryValue] | None = None,
    ) -> FetchResult:
        if page_index < 0:
            raise ValueError(f"page_index must be >= 0, got {page_index}")
        if page_size <= 0:
            raise ValueError(f"page_size must be > 0, got {page_size}")

        t0 = time.perf_counter()
        lf = self.filtered(filters or {})
        row_count: int = lf.select(pl.len()).collect().item()

        offset = page_index * page_size
        page_df = lf.slice(offset, page_size).collect()

        rows = _dataframe_to_dicts(page_df)
        page_count = math.ceil(row_count / page_size)
        logger.debug(
            "lazyframe page: offset=%d, slice=%d, total=%d, elapsed=%.1fms",
            offset,
            len(rows),
            row_count,
            (time.perf_counter() - t0) * 1000,
        )
        return FetchResult(rows=rows, page_count=page_count, row_count=row_count)
