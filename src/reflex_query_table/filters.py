"""Column filter state and its debounced synchronisation to the persisted query.

Local ``column_filters`` update synchronously for immediate UI feedback.  The
persisted write is debounced: partial updates produced inside one quiet
window are merged (later keys win) and written once, always together with
``page = 1``.
"""

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from reflex_query_table.debounce import DebouncedCall, Scheduler
from reflex_query_table.models import (
    ColumnFilterEntry,
    DataTableConfig,
    FilterFieldSpec,
    classify_filter_fields,
)
from reflex_query_table.query_state import (
    PAGE_KEY,
    PAGINATION_KEYS,
    PersistedQueryStore,
    QueryValue,
)
from reflex_query_table.updates import Update, resolve_update

logger = logging.getLogger(__name__)


def coerce_filter_entry(value: Any) -> ColumnFilterEntry:
    """Accept a :class:`ColumnFilterEntry` or an ``{id, value}`` mapping."""
    if isinstance(value, ColumnFilterEntry):
        if isinstance(value.value, str):
            return value
        return ColumnFilterEntry.create(value.id, value.value)
    if isinstance(value, Mapping):
        return ColumnFilterEntry.create(str(value["id"]), value["value"])
    raise TypeError(f"Cannot interpret {value!r} as a column filter")


def _is_string_sequence(value: Any) -> bool:
    return (
        isinstance(value, (list, tuple))
        and all(isinstance(v, str) for v in value)
    )


def initial_column_filters(
    snapshot: Mapping[str, Any],
    fields: Sequence[FilterFieldSpec] = (),
) -> list[ColumnFilterEntry]:
    """Build the mount-time filter list from a persisted-query snapshot.

    Every non-pagination key holding a value becomes an entry.  Searchable
    fields must hold a string and filterable fields a string or a sequence
    of strings (a bare string is wrapped).  Values of any other shape are
    treated as absent.
    """
    searchable, filterable = classify_filter_fields(fields)
    entries: list[ColumnFilterEntry] = []
    for key, value in snapshot.items():
        if key in PAGINATION_KEYS or value is None:
            continue
        if key in searchable:
            if isinstance(value, str):
                entries.append(ColumnFilterEntry(id=key, value=value))
                continue
        elif key in filterable:
            if isinstance(value, str):
                entries.append(ColumnFilterEntry(id=key, value=(value,)))
                continue
            if _is_string_sequence(value):
                entries.append(ColumnFilterEntry(id=key, value=tuple(value)))
                continue
        elif isinstance(value, str):
            entries.append(ColumnFilterEntry(id=key, value=value))
            continue
        elif _is_string_sequence(value):
            entries.append(ColumnFilterEntry(id=key, value=tuple(value)))
            continue
        logger.debug("skipping malformed persisted filter %r=%r", key, value)
    return entries


def filter_changes(
    previous: Sequence[ColumnFilterEntry],
    next_filters: Sequence[ColumnFilterEntry],
    searchable: frozenset[str],
    filterable: frozenset[str],
) -> dict[str, QueryValue]:
    """Compute the persisted partial update for a ``previous -> next`` transition.

    Searchable ids persist a single string, filterable ids a list of
    strings.  Empty values, and ids present before but gone now, are
    written as ``None`` (cleared).  Ids matching no configured field are not
    persisted.
    """
    changes: dict[str, QueryValue] = {}
    for entry in next_filters:
        if entry.id in searchable:
            if isinstance(entry.value, str):
                text = entry.value
            else:
                text = ",".join(entry.value)
            changes[entry.id] = text or None
        elif entry.id in filterable:
            if isinstance(entry.value, str):
                values = [entry.value]
            else:
                values = list(entry.value)
            changes[entry.id] = values or None

    next_ids = {entry.id for entry in next_filters}
    for entry in previous:
        if entry.id not in next_ids:
            changes[entry.id] = None
    return changes


class FilterSyncController:
    """Keep local column filters and the persisted query in step.

    Args:
        store: Persisted query store receiving the debounced writes.
        fields: Filter field specs; they decide whether an id persists as a
            string (searchable) or a list (filterable).
        config: Table configuration (``debounce_ms`` is used here).
        scheduler: Timer source for the debounce, see
            :class:`~reflex_query_table.debounce.DebouncedCall`.
        initial: Starting filter list.  When ``None`` it is built from the
            store snapshot with :func:`initial_column_filters`.
    """

    def __init__(
        self,
        store: PersistedQueryStore,
        fields: Sequence[FilterFieldSpec] = (),
        config: DataTableConfig | None = None,
        scheduler: Scheduler | None = None,
        initial: Sequence[ColumnFilterEntry] | None = None,
    ) -> None:
        self._store = store
        self._config = config or DataTableConfig()
        self.fields: tuple[FilterFieldSpec, ...] = tuple(fields)
        self.searchable_ids, self.filterable_ids = classify_filter_fields(self.fields)
        if initial is None:
            initial = initial_column_filters(store.snapshot(), self.fields)
        self._column_filters: list[ColumnFilterEntry] = [
            coerce_filter_entry(entry) for entry in initial
        ]
        self._pending: dict[str, QueryValue] = {}
        self._debounced = DebouncedCall(
            self._write_pending,
            self._config.debounce_ms,
            scheduler=scheduler,
            name="filter-sync",
        )

    @property
    def column_filters(self) -> list[ColumnFilterEntry]:
        return list(self._column_filters)

    @property
    def pending_changes(self) -> dict[str, QueryValue]:
        return dict(self._pending)

    @property
    def write_pending(self) -> bool:
        return self._debounced.pending

    def on_column_filters_change(
        self,
        update: "Update[list[ColumnFilterEntry]] | Any",
    ) -> list[ColumnFilterEntry]:
        """Apply *update* locally now and schedule the persisted write."""
        previous = self._column_filters
        resolved = resolve_update(update, list(previous))
        next_filters = [coerce_filter_entry(entry) for entry in resolved]

        changes = filter_changes(
            previous, next_filters, self.searchable_ids, self.filterable_ids
        )
        self._column_filters = next_filters
        if self._debounced.closed:
            logger.debug("filter sync closed, not persisting %s", changes)
            return self.column_filters
        self._pending.update(changes)
        logger.debug("filters changed: %s (pending %s)", changes, self._pending)
        self._debounced.schedule()
        return self.column_filters

    def persisted_filters(self) -> dict[str, QueryValue]:
        """Return the filter keys currently held by the store."""
        return {
            key: value
            for key, value in self._store.snapshot().items()
            if key not in PAGINATION_KEYS and value is not None
        }

    def flush(self) -> None:
        """Write any pending filter change right away."""
        self._debounced.flush()

    def close(self) -> None:
        """Cancel a pending write; the store is left untouched."""
        if self._debounced.pending:
            logger.debug("dropping pending filter write on teardown: %s", self._pending)
        self._debounced.close()
        self._pending = {}

    def _write_pending(self) -> None:
        update: dict[str, QueryValue] = {**self._pending, PAGE_KEY: 1}
        self._pending = {}
        self._store.update(update)
