"""Value-or-updater payloads for table change handlers.

Grid change events arrive either as a replacement value or as a function
from the previous value to the next one.  Both shapes are modelled
explicitly so each handler resolves them exactly once per event::

    resolve_update(Direct(5), 1)              # -> 5
    resolve_update(Derive(lambda n: n + 1), 1)  # -> 2
"""

from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar, Union

T = TypeVar("T")


@dataclass(frozen=True)
class Direct(Generic[T]):
    """Replace the current value with ``value``."""

    value: T


@dataclass(frozen=True)
class Derive(Generic[T]):
    """Compute the next value from the current one with ``fn``."""

    fn: Callable[[T], T]


Update = Union[Direct[T], Derive[T]]


def as_update(payload: Any) -> "Update[Any]":
    """Coerce a raw handler payload into an :data:`Update`.

    ``Direct`` / ``Derive`` instances pass through, callables become
    ``Derive`` and anything else becomes ``Direct``.
    """
    if isinstance(payload, (Direct, Derive)):
        return payload
    if callable(payload):
        return Derive(payload)
    return Direct(payload)


def resolve_update(update: "Update[T] | T | Callable[[T], T]", current: T) -> T:
    """Resolve *update* against *current* and return the next value.

    Exceptions raised by a ``Derive`` function are not caught.
    """
    resolved = as_update(update)
    if isinstance(resolved, Derive):
        return resolved.fn(current)
    return resolved.value
