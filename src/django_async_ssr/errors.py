"""Errors raised by the async renderer, and packing of errors that are falsy."""

from typing import Any

MISSING_BOUNDARY_MESSAGE = (
    "A component suspended while rendering, but no fallback UI was specified.\n\n"
    "Add a `Suspense` element with a `fallback` higher in the tree to provide "
    "a loading indicator or placeholder to display."
)


class RenderError(Exception):
    """Base class for the errors raised by the renderer itself."""


class MissingBoundaryError(RenderError):
    """
    Raised when a component raises a [`Deferred`](api.md#django_async_ssr.Deferred)
    (or a client-only component is rendered) and there is no `Suspense` boundary above it.
    """

    def __init__(self) -> None:
        super().__init__(MISSING_BOUNDARY_MESSAGE)


class DeferredCancelledError(RenderError):
    """Raised when a deferred value was cancelled by someone else than the renderer."""


# Exception classes may define `__bool__()`, so an error may be falsy.
# Internally we store errors packed, so that "is there an error" is simply `error is not None`
# and a falsy error can never be mistaken for "no error". The error is unpacked once it leaves
# the renderer.
class FalsyError:
    __slots__ = ("error",)

    def __init__(self, error: Any):
        self.error = error

    def __repr__(self) -> str:
        return f"FalsyError({self.error!r})"


def pack_error(error: Any) -> Any:
    if not error:
        return FalsyError(error)
    return error


def unpack_error(error: Any) -> Any:
    if isinstance(error, FalsyError):
        return error.error
    return error
