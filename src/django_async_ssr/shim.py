"""
Capture the interrupts that happen while the evaluator resolves components.

When the evaluator comes across a component or a `Suspense` element, it asks the
[`Interceptor`](api.md#django_async_ssr.shim.Interceptor) to resolve it. The interceptor
lets the evaluator continue as if nothing happened, but records what happened as an interrupt:

- For a `Suspense` boundary, the interceptor returns the boundary's children.
  The evaluator pushes them as a new frame, and that frame is then recorded
  as the boundary's frame.
- When a component raises a [`Deferred`](api.md#django_async_ssr.Deferred), the interceptor
  returns an empty list. The evaluator pushes an empty frame, which is then removed again
  and reused when the component is rendered again.

The interrupt is picked up by the renderer once the evaluator has finished the current child.
"""

from collections.abc import Callable
from typing import Any, NamedTuple, TypeAlias

from django_async_ssr.deferred import Deferred
from django_async_ssr.elements import Element, Suspense, get_type_name
from django_async_ssr.util.logger import trace
from django_async_ssr.util.misc import to_list


class BoundaryInterrupt(NamedTuple):
    element: Element


class DeferredInterrupt(NamedTuple):
    element: Element
    deferred: Deferred


Interrupt: TypeAlias = BoundaryInterrupt | DeferredInterrupt


class Interceptor:
    def __init__(self) -> None:
        self.interrupt: Interrupt | None = None

    def intercept(self, element: Element, invoke: Callable[[], Any]) -> Any:
        if element.type is Suspense:
            return self.interrupt_suspense(element)

        try:
            return invoke()
        except Deferred as deferred:
            return self.interrupt_deferred(element, deferred)

    def interrupt_suspense(self, element: Element) -> list[Any]:
        # Without `fallback`, Suspense is NOT a boundary, and renders just its children.
        if "fallback" in element.props:
            trace("INTERRUPT SUSPENSE")
            self.interrupt = BoundaryInterrupt(element)
        return to_list(element.children)

    def interrupt_deferred(self, element: Element, deferred: Deferred) -> list[Any]:
        trace(f"INTERRUPT DEFERRED raised by '{get_type_name(element.type)}'")
        self.interrupt = DeferredInterrupt(element, deferred)
        return []

    def take(self) -> Interrupt | None:
        """Return the recorded interrupt, if any, and clear it."""
        interrupt = self.interrupt
        self.interrupt = None
        return interrupt
