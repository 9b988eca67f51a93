import inspect
from collections.abc import Iterable
from itertools import count
from typing import Any, TypeVar

T = TypeVar("T")

# Short, readable IDs for the nodes and renders in TRACE logs, e.g. `ssr1a`
_id_counter = count(1)


def gen_id() -> str:
    """Generate a unique ID that can be used e.g. to identify a node in the logs."""
    return f"ssr{next(_id_counter):x}"


def default(val: T | None, default: T) -> T:
    return val if val is not None else default


def is_awaitable(value: Any) -> bool:
    return inspect.isawaitable(value)


def is_renderable(value: Any) -> bool:
    """
    Whether given content would produce any output at all.

    `None`, `False` and empty strings render nothing, so e.g. a suspense boundary
    with such a fallback does not need a render cycle for it.
    """
    return value is not None and value is not False and value != ""


def to_list(children: Any) -> list[Any]:
    """Normalize the `children` prop to a list, without flattening nested lists."""
    if children is None:
        return []
    if isinstance(children, (list, tuple)):
        return list(children)
    return [children]


def find_index(items: Iterable[Any], item: Any) -> int:
    """Like `list.index()`, but compares by identity."""
    for index, curr in enumerate(items):
        if curr is item:
            return index
    raise ValueError("Item not found")
