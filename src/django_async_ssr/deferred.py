import asyncio
import inspect
from collections.abc import Awaitable, Callable
from typing import Any

from django_async_ssr.elements import h
from django_async_ssr.util.logger import trace
from django_async_ssr.util.misc import is_awaitable


class Deferred(Exception):  # noqa: N818
    """
    Raise this from a component when its content depends on data that is not available yet.

    The renderer catches it, waits for the `awaitable` to complete, and then renders
    the component again. The component must be inside a [`Suspense`](api.md#django_async_ssr.Suspense)
    boundary.

    ```python
    _cache = {}

    def UserName(props):
        user_id = props["user_id"]
        if user_id not in _cache:
            raise Deferred(load_user(user_id))
        return _cache[user_id].name
    ```

    Args:
        awaitable: Coroutine, task or future to wait for. If omitted, the deferred never settles.
        abort: Called (at most once) when the renderer no longer needs the value,
            e.g. because the boundary above it renders its fallback instead.
        no_ssr: If `True`, the content cannot be rendered on the server at all,
            and the closest `Suspense` boundary renders its fallback.
        on_mount: Called after the render with `True` if the content was part of the output,
            or `False` if it ended up inside a boundary that rendered its fallback.
    """

    def __init__(
        self,
        awaitable: Awaitable[Any] | None = None,
        *,
        abort: Callable[[], Any] | None = None,
        no_ssr: bool = False,
        on_mount: Callable[[bool], Any] | None = None,
    ):
        super().__init__("Deferred value was raised outside of an async render")
        self.awaitable = awaitable
        self.abort_hook = abort
        self.no_ssr = no_ssr
        self.on_mount = on_mount
        self.aborted = False
        self._future: asyncio.Future | None = None

    @property
    def future(self) -> asyncio.Future:
        """The awaitable normalized to a future. Must be accessed from within a running event loop."""
        if self._future is None:
            if self.awaitable is None:
                self._future = asyncio.get_running_loop().create_future()
            else:
                self._future = asyncio.ensure_future(self.awaitable)
        return self._future

    @property
    def started(self) -> bool:
        return self._future is not None

    def abort(self) -> None:
        if self.aborted:
            return
        self.aborted = True

        # Whatever the awaitable ends up with, nobody is interested anymore.
        if self._future is not None:
            self._future.add_done_callback(_consume_result)
        elif inspect.iscoroutine(self.awaitable):
            self.awaitable.close()

        trace(f"ABORT DEFERRED {self!r}")
        if self.abort_hook is not None:
            self.abort_hook()

    def mount(self, rendered: bool) -> None:
        if self.on_mount is not None:
            self.on_mount(rendered)

    def __repr__(self) -> str:
        flags = " no_ssr" if self.no_ssr else ""
        return f"<Deferred{flags} {self.awaitable!r}>"


def _consume_result(future: asyncio.Future) -> None:
    # Retrieve the exception so asyncio doesn't log "exception was never retrieved"
    if not future.cancelled():
        future.exception()


class Lazy:
    """
    A component that loads the actual component asynchronously on its first render.

    Created with [`lazy()`](api.md#django_async_ssr.lazy).
    """

    def __init__(
        self,
        loader: Callable[[], Any],
        *,
        ssr: bool = True,
        name: str | None = None,
    ):
        self.loader = loader
        self.ssr = ssr
        self.display_name = name or "Lazy"
        self.component: Any = None
        self.loaded = False
        self.error: Exception | None = None
        self.deferred: Deferred | None = None

    def __call__(self, props: dict[str, Any]) -> Any:
        if self.loaded:
            return h(self.component, props)
        if self.error is not None:
            raise self.error

        if not self.ssr:
            raise Deferred(no_ssr=True)

        # An aborted Deferred that was never started has its loader coroutine closed
        if self.deferred is None or (self.deferred.aborted and not self.deferred.started):
            self.deferred = Deferred(self._load())
        raise self.deferred

    async def _load(self) -> None:
        # NOTE: Errors are not propagated through the awaitable, but raised
        # when the component is rendered again. Same as if the component raised it.
        try:
            component = self.loader()
            if is_awaitable(component):
                component = await component
        except Exception as err:  # noqa: BLE001
            self.error = err
        else:
            self.component = component
            self.loaded = True


def lazy(loader: Callable[[], Any], *, ssr: bool = True, name: str | None = None) -> Lazy:
    """
    Create a lazily-loaded component.

    `loader` is called on the first render, and should return (or resolve to)
    the component to render. Until then, the lazy component suspends.

    If `ssr=False`, the loader is not called at all during server-side rendering,
    and the closest `Suspense` boundary renders its fallback instead.

    ```python
    async def load_chart():
        from myapp.charts import Chart
        return Chart

    Chart = lazy(load_chart)

    h(Suspense, {"fallback": "Loading chart..."}, h(Chart, {"data": data}))
    ```
    """
    return Lazy(loader, ssr=ssr, name=name)
