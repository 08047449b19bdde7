"""CLI for reflex-query-table -- page through tabular files from the shell or the browser.

Usage::

    # Print page 2 of a CSV, 20 rows per page, filtered by name
    reflex-query-table preview people.csv --page 2 --per-page 20 --filter name=jo

    # Restrict a column to a set of values
    reflex-query-table preview people.csv --options status=active,pending --filter status=active

    # Machine-readable output
    reflex-query-table preview people.parquet --json

    # Browse the file in an interactive grid with URL-synced pagination
    reflex-query-table view people.csv
"""

import asyncio
import json
import logging
import os
import subprocess
import sys
import tempfile
from pathlib import Path
from typing import Annotated, Any, Optional

import polars as pl
import typer

from reflex_query_table.coordinator import TableStateCoordinator
from reflex_query_table.fetch import LazyFrameFetcher, scan_table
from reflex_query_table.models import (
    DataTableConfig,
    FilterableField,
    FilterFieldSpec,
    FilterOption,
    SearchableField,
)
from reflex_query_table.query_state import (
    MemoryQueryStore,
    build_query_string,
    parse_query_params,
)

logger = logging.getLogger(__name__)

_VIEWER_APP = "viewer_app"

app = typer.Typer(
    name="reflex-query-table",
    help="Page through tabular data files with URL-style pagination and filters.",
    no_args_is_help=True,
)


def _split_pair(raw: str, flag: str) -> tuple[str, str]:
    """``"name=jo"`` -> ``("name", "jo")``."""
    key, sep, value = raw.partition("=")
    if not sep or not key.strip():
        raise ValueError(f"{flag} expects ID=VALUE, got {raw!r}")
    return key.strip(), value.strip()


def _build_filter_fields(
    filters: list[str],
    options: list[str],
) -> tuple[list[FilterFieldSpec], dict[str, str]]:
    """Turn ``--options`` / ``--filter`` flags into filter fields and raw query params.

    ``--options`` declares a filterable field; any other ``--filter`` id is
    a free-text search field.
    """
    fields: dict[str, FilterFieldSpec] = {}
    for raw in options:
        field_id, values = _split_pair(raw, "--options")
        opts = tuple(FilterOption(label=v, value=v) for v in values.split(",") if v)
        fields[field_id] = FilterableField(id=field_id, label=field_id, options=opts)

    params: dict[str, str] = {}
    for raw in filters:
        field_id, value = _split_pair(raw, "--filter")
        if field_id not in fields:
            fields[field_id] = SearchableField(id=field_id, label=field_id)
        params[field_id] = value
    return list(fields.values()), params


def _check_columns(schema: pl.Schema, fields: list[FilterFieldSpec]) -> None:
    unknown = [f.id for f in fields if f.id not in schema]
    if unknown:
        raise ValueError(
            f"unknown column(s): {', '.join(unknown)}. Available: {', '.join(schema.names())}"
        )


def _render_page(rows: list[dict[str, Any]]) -> str:
    if not rows:
        return "(no rows)"
    with pl.Config(tbl_rows=len(rows), tbl_cols=-1, tbl_hide_dataframe_shape=True):
        return str(pl.DataFrame(rows))


def _load_page(
    file: Path,
    page: int,
    per_page: int,
    filters: list[str],
    options: list[str],
) -> tuple[TableStateCoordinator[dict[str, Any]], MemoryQueryStore]:
    lf = scan_table(file)
    fields, params = _build_filter_fields(filters, options)
    fetcher = LazyFrameFetcher(lf, fields)
    _check_columns(fetcher.schema, fields)

    config = DataTableConfig(default_per_page=per_page)
    params.update({"page": str(page), "perPage": str(per_page)})
    array_keys = [f.id for f in fields if isinstance(f, FilterableField)]
    store = MemoryQueryStore(parse_query_params(params, array_keys, config))

    coordinator: TableStateCoordinator[dict[str, Any]] = TableStateCoordinator(
        store,
        filter_fields=fields,
        config=config,
        get_row_id=fetcher.row_id,
    )
    asyncio.run(coordinator.refresh(fetcher))
    return coordinator, store


@app.command()
def preview(
    file: Annotated[Path, typer.Argument(help="Path to the data file (CSV, TSV, Parquet, JSON, etc.)")],
    page: Annotated[int, typer.Option("--page", "-p", help="One-indexed page number")] = 1,
    per_page: Annotated[int, typer.Option("--per-page", "-n", help="Rows per page")] = 10,
    filters: Annotated[
        Optional[list[str]],
        typer.Option("--filter", "-f", help="Filter as ID=VALUE (repeatable)"),
    ] = None,
    options: Annotated[
        Optional[list[str]],
        typer.Option("--options", "-o", help="Declare ID=A,B,... as an option filter (repeatable)"),
    ] = None,
    as_json: Annotated[bool, typer.Option("--json", help="Print the page as JSON")] = False,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Log query writes and fetches")] = False,
) -> None:
    """Print one page of a data file, filtered the same way the grid filters it."""
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")

    try:
        coordinator, store = _load_page(file, page, per_page, filters or [], options or [])
    except (FileNotFoundError, ValueError) as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1)

    pagination = coordinator.pagination.pagination
    query_string = build_query_string(store.snapshot())
    if as_json:
        payload = {
            "page": pagination.page_index + 1,
            "perPage": pagination.page_size,
            "pageCount": coordinator.page_count,
            "rowCount": coordinator.row_count,
            "query": query_string,
            "rows": coordinator.rows,
        }
        typer.echo(json.dumps(payload, default=str))
        return

    typer.echo(_render_page(coordinator.rows))
    typer.echo(
        f"page {pagination.page_index + 1} of {coordinator.page_count} "
        f"({coordinator.row_count} matching rows) ?{query_string}"
    )


# ---------------------------------------------------------------------------
# App template -- uses __PLACEHOLDER__ tokens for dynamic parts.
# ---------------------------------------------------------------------------

_APP_TEMPLATE = '''"""Auto-generated query table app for: __FILENAME__"""

from pathlib import Path

import reflex as rx

from reflex_query_table import (
    DataTableConfig,
    QueryTableMixin,
    query_table,
    query_table_selection_bar,
    scan_table,
)


class ViewerState(QueryTableMixin, rx.State):
    """Viewer state: pages and filters live in the URL."""

    def load_data(self):
        yield from self.set_table_source(
            scan_table(Path("__SAFE_PATH__")),
            config=DataTableConfig(default_per_page=__PER_PAGE__, enable_row_selection=True),
        )


def index() -> rx.Component:
    return rx.box(
        rx.heading("__TITLE__", size="6", margin_bottom="0.5em"),
        rx.cond(
            ViewerState.qt_loaded,
            rx.fragment(
                query_table_selection_bar(ViewerState),
                query_table(ViewerState, height="__HEIGHT__"),
            ),
            rx.text("Loading...", color="var(--gray-9)"),
        ),
        padding="2em",
        max_width="1400px",
        margin="0 auto",
    )


app = rx.App()
app.add_page(index, on_load=ViewerState.load_data)
'''


def _build_app_code(file_path: Path, per_page: int, height: str, title: str) -> str:
    """Fill the ``__PLACEHOLDER__`` tokens of the viewer app template."""
    escaped = str(file_path.resolve()).replace("\\", "\\\\").replace('"', '\\"')
    tokens = {
        "__FILENAME__": file_path.name,
        "__SAFE_PATH__": escaped,
        "__PER_PAGE__": str(per_page),
        "__TITLE__": title,
        "__HEIGHT__": height,
    }
    code = _APP_TEMPLATE
    for token, value in tokens.items():
        code = code.replace(token, value)
    return code


def _write_viewer_project(app_code: str, port: int) -> Path:
    """Lay out a throwaway Reflex project around *app_code* and return its root."""
    root = Path(tempfile.mkdtemp(prefix="query_table_viewer_"))
    package = root / _VIEWER_APP
    package.mkdir()
    (package / "__init__.py").write_text("")
    (package / f"{_VIEWER_APP}.py").write_text(app_code)
    (root / "rxconfig.py").write_text(
        "import reflex as rx\n"
        f'config = rx.Config(app_name="{_VIEWER_APP}", frontend_port={port})\n'
    )
    return root


@app.command()
def view(
    file: Annotated[Path, typer.Argument(help="Path to the data file (CSV, TSV, Parquet, JSON, etc.)")],
    per_page: Annotated[int, typer.Option("--per-page", "-n", help="Initial rows per page")] = 20,
    height: Annotated[str, typer.Option("--height", "-h", help="CSS height of the grid")] = "calc(100vh - 200px)",
    port: Annotated[int, typer.Option("--port", "-p", help="Port for the Reflex frontend")] = 3000,
    title: Annotated[Optional[str], typer.Option("--title", "-t", help="Page title")] = None,
) -> None:
    """Browse a data file in an interactive grid with URL-synced pagination and filters."""
    path = file.resolve()
    if not path.is_file():
        typer.echo(f"Error: file not found: {path}", err=True)
        raise typer.Exit(code=1)

    app_code = _build_app_code(path, per_page, height, title or f"{path.name} -- Query Table")
    project = _write_viewer_project(app_code, port)
    logger.debug("viewer project written to %s", project)

    typer.echo(f"Preparing grid viewer for {path} in {project}")
    # `reflex init` exits the interpreter when done.
    subprocess.run([sys.executable, "-m", "reflex", "init"], cwd=project, check=True)

    os.chdir(project)
    typer.echo(f"Serving on http://localhost:{port}")
    os.execvp(sys.executable, [sys.executable, "-m", "reflex", "run"])


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
