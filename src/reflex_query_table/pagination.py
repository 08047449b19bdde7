"""Pagination events <-> persisted ``page`` / ``perPage``."""

import logging
from collections.abc import Mapping
from typing import Any

from reflex_query_table.models import DataTableConfig, PaginationState
from reflex_query_table.query_state import PersistedQueryStore, read_pagination
from reflex_query_table.updates import Update, resolve_update

logger = logging.getLogger(__name__)


def coerce_pagination(value: Any) -> PaginationState:
    """Accept a :class:`PaginationState` or a ``{pageIndex, pageSize}`` mapping."""
    if isinstance(value, PaginationState):
        return value
    if isinstance(value, Mapping):
        return PaginationState(
            page_index=int(value["pageIndex"]),
            page_size=int(value["pageSize"]),
        )
    raise TypeError(f"Cannot interpret {value!r} as pagination state")


class PaginationController:
    """Translate grid pagination changes into immediate persisted writes.

    The current pagination is always read back from the store, so the two
    representations never drift apart.
    """

    def __init__(
        self,
        store: PersistedQueryStore,
        config: DataTableConfig | None = None,
    ) -> None:
        self._store = store
        self._config = config or DataTableConfig()

    @property
    def pagination(self) -> PaginationState:
        return read_pagination(self._store.snapshot(), self._config)

    def on_pagination_change(self, update: "Update[PaginationState] | Any") -> PaginationState:
        """Resolve *update* and write ``page`` and ``perPage`` in one update."""
        current = self.pagination
        next_pagination = coerce_pagination(resolve_update(update, current))
        self._store.update(next_pagination.to_query())
        logger.debug(
            "pagination %s -> %s",
            current.to_query(),
            next_pagination.to_query(),
        )
        return next_pagination
