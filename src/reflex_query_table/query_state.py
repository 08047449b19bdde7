"""Persisted query state: the store protocol, an in-memory store and a URL codec.

The persisted query holds ``page`` (one-indexed), ``perPage`` and one key per
active filter.  Writes are partial: keys present in an update replace the
stored value, and a key mapped to ``None`` is removed.
"""

import logging
from collections.abc import Callable, Iterable, Mapping, Sequence
from typing import Any, Protocol, Union
from urllib.parse import parse_qsl, urlencode

from reflex_query_table.models import DataTableConfig, PaginationState

logger = logging.getLogger(__name__)

QueryValue = Union[str, list[str], int, None]

PAGE_KEY = "page"
PER_PAGE_KEY = "perPage"
PAGINATION_KEYS: frozenset[str] = frozenset({PAGE_KEY, PER_PAGE_KEY})


class PersistedQueryStore(Protocol):
    """Anything that can read and merge-write the persisted query."""

    def snapshot(self) -> dict[str, Any]: ...

    def update(self, changes: Mapping[str, QueryValue]) -> None: ...


class MemoryQueryStore:
    """In-process :class:`PersistedQueryStore` with write history and subscribers.

    ``history`` keeps every partial update in arrival order, which makes it
    easy to check how many writes a burst of edits produced.
    """

    def __init__(self, initial: Mapping[str, QueryValue] | None = None) -> None:
        self._state: dict[str, Any] = {}
        self.history: list[dict[str, QueryValue]] = []
        self._subscribers: list[Callable[[dict[str, Any]], None]] = []
        if initial:
            self._merge(initial)

    def snapshot(self) -> dict[str, Any]:
        return {
            key: list(value) if isinstance(value, list) else value
            for key, value in self._state.items()
        }

    def update(self, changes: Mapping[str, QueryValue]) -> None:
        change_dict = dict(changes)
        self._merge(change_dict)
        self.history.append(change_dict)
        logger.debug("query store write: %s", change_dict)
        snapshot = self.snapshot()
        for callback in list(self._subscribers):
            callback(snapshot)

    def subscribe(self, callback: Callable[[dict[str, Any]], None]) -> Callable[[], None]:
        """Register *callback* to run after each write; returns an unsubscribe callable."""
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe

    def _merge(self, changes: Mapping[str, QueryValue]) -> None:
        for key, value in changes.items():
            if value is None:
                self._state.pop(key, None)
            elif isinstance(value, (list, tuple)):
                self._state[key] = [str(v) for v in value]
            else:
                self._state[key] = value


# ---------------------------------------------------------------------------
# Boundary helpers
# ---------------------------------------------------------------------------

def _coerce_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def read_pagination(
    snapshot: Mapping[str, Any],
    config: DataTableConfig | None = None,
) -> PaginationState:
    """Read ``page`` / ``perPage`` from *snapshot* as a :class:`PaginationState`.

    Missing or unparsable values fall back to the configured defaults, a
    ``page`` below 1 is clamped to 1 and a non-positive ``perPage`` falls
    back to the default.
    """
    config = config or DataTableConfig()
    page = _coerce_int(snapshot.get(PAGE_KEY))
    per_page = _coerce_int(snapshot.get(PER_PAGE_KEY))
    if page is None:
        page = config.default_page
    if per_page is None or per_page <= 0:
        per_page = config.default_per_page
    return PaginationState.from_query(max(1, page), per_page)


# ---------------------------------------------------------------------------
# URL codec
# ---------------------------------------------------------------------------

def parse_query_params(
    params: Mapping[str, str | Sequence[str]],
    array_keys: Iterable[str] = (),
    config: DataTableConfig | None = None,
) -> dict[str, QueryValue]:
    """Turn decoded URL parameters into a persisted-query mapping.

    Keys listed in *array_keys* are split on commas into ordered string
    lists; every other filter key stays a plain string.  A parameter given
    several times keeps its last value.  Pagination keys are always present
    in the result.
    """
    array_keys = set(array_keys)
    raw: dict[str, str] = {}
    for key, value in params.items():
        if isinstance(value, str):
            raw[key] = value
        elif value:
            raw[key] = str(value[-1])
    result: dict[str, QueryValue] = {}
    for key, value in raw.items():
        if key in PAGINATION_KEYS:
            continue
        if key in array_keys:
            result[key] = [part for part in value.split(",") if part]
        else:
            result[key] = value
    pagination = read_pagination(raw, config)
    result.update(pagination.to_query())
    return result


def build_query_string(state: Mapping[str, Any]) -> str:
    """Render a persisted-query mapping as a URL query string (no leading ``?``).

    ``None`` values are omitted and list values are comma-joined.  Pagination
    keys come first, the rest keep their mapping order.
    """
    ordered: list[tuple[str, str]] = []
    for key in (PAGE_KEY, PER_PAGE_KEY):
        if state.get(key) is not None:
            ordered.append((key, str(state[key])))
    for key, value in state.items():
        if key in PAGINATION_KEYS or value is None:
            continue
        if isinstance(value, Sequence) and not isinstance(value, str):
            if not value:
                continue
            ordered.append((key, ",".join(str(v) for v in value)))
        else:
            ordered.append((key, str(value)))
    return urlencode(ordered, safe=",")


def parse_query_string(
    query: str,
    array_keys: Iterable[str] = (),
    config: DataTableConfig | None = None,
) -> dict[str, QueryValue]:
    """Parse a URL query string (with or without ``?``) like :func:`parse_query_params`."""
    params = dict(parse_qsl(query.lstrip("?"), keep_blank_values=False))
    return parse_query_params(params, array_keys, config)
