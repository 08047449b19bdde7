"""Example Reflex app demonstrating the query-synchronised table.

The page and the active filters live in the URL: reload the page, or share
the link, and the same slice of the employee table comes back.  Rows ticked
on one page stay selected while browsing the others, and the selection
panel lists every selected employee.
"""

from typing import Any

import polars as pl
import reflex as rx

from reflex_query_table import (
    DataTableConfig,
    QueryTableMixin,
    filter_field,
    query_table,
    query_table_selection_bar,
    selected_records,
)

_FIRST_NAMES = [
    "Alice", "Bob", "Charlie", "Diana", "Eve",
    "Frank", "Grace", "Hank", "Ivy", "Jack",
    "Karen", "Leo", "Mona", "Nick", "Olivia",
    "Paul", "Quinn", "Rita", "Sam", "Tina",
]
_LAST_NAMES = [
    "Smith", "Johnson", "Williams", "Brown", "Jones",
    "Garcia", "Miller", "Davis", "Rodriguez", "Martinez",
    "Hernandez", "Lopez", "Gonzalez", "Wilson", "Anderson",
    "Thomas", "Taylor", "Moore", "Jackson", "Martin",
]
_DEPARTMENTS = ["Engineering", "Marketing", "Sales", "Support"]


def _build_employee_lazyframe(n: int = 240) -> pl.LazyFrame:
    """Create a sample LazyFrame with *n* employees."""
    return pl.LazyFrame(
        {
            "id": list(range(1, n + 1)),
            "first_name": [_FIRST_NAMES[i % 20] for i in range(n)],
            "last_name": [_LAST_NAMES[(i * 7) % 20] for i in range(n)],
            "department": [_DEPARTMENTS[(i * 3) % 4] for i in range(n)],
            "salary": [60000 + (i * 1373) % 70000 for i in range(n)],
            "active": [i % 5 != 3 for i in range(n)],
        }
    )


FILTER_FIELDS = [
    filter_field("first_name", "First name", placeholder="Search first names..."),
    filter_field("last_name", "Last name", placeholder="Search last names..."),
    filter_field(
        "department",
        "Department",
        options=[{"label": d, "value": d} for d in _DEPARTMENTS],
    ),
]


# ---------------------------------------------------------------------------
# State
# ---------------------------------------------------------------------------

class EmployeeState(QueryTableMixin, rx.State):
    """Employee table with URL-synced pagination and filters."""

    selected_names: list[str] = []

    def load(self):
        yield from self.set_table_source(
            _build_employee_lazyframe(),
            filter_fields=FILTER_FIELDS,
            config=DataTableConfig(enable_row_selection=True, debounce_ms=400),
            id_field="id",
        )

    def show_selection(self) -> None:
        records: list[dict[str, Any]] = selected_records(self)
        self.selected_names = [
            f"{r['first_name']} {r['last_name']} ({r['department']})" for r in records
        ]


# ---------------------------------------------------------------------------
# UI
# ---------------------------------------------------------------------------

def selection_panel() -> rx.Component:
    return rx.box(
        rx.button("Show selected employees", on_click=EmployeeState.show_selection, size="2"),
        rx.vstack(
            rx.foreach(EmployeeState.selected_names, lambda name: rx.text(name, size="2")),
            spacing="1",
            margin_top="0.5em",
        ),
        margin_top="1em",
    )


def index() -> rx.Component:
    """Render the main page."""
    return rx.box(
        rx.heading("Query Table -- Reflex Demo", size="6", margin_bottom="0.5em"),
        rx.text(
            "Pagination and filters are mirrored into the URL. "
            "Selections survive page changes.",
            color="var(--gray-11)",
            margin_bottom="1em",
        ),
        rx.cond(
            EmployeeState.qt_loaded,
            rx.fragment(
                query_table_selection_bar(EmployeeState),
                query_table(EmployeeState, row_id_field="id", height="560px"),
                selection_panel(),
            ),
            rx.text("Loading...", color="var(--gray-9)"),
        ),
        padding="2em",
        max_width="1400px",
        margin="0 auto",
    )


app = rx.App()
app.add_page(index, on_load=EmployeeState.load)
