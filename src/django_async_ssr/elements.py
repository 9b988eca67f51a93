"""
The element tree that is rendered by the async renderer.

An element is created with [`h()`](api.md#django_async_ssr.h) and has a `type`:

- `str` - an intrinsic HTML tag, e.g. `h("div", {"class": "box"}, "Hello")`
- `Component` subclass or a function - a composite that renders other content
- [`Fragment`](api.md#django_async_ssr.Fragment) - groups children without a wrapper tag
- [`Suspense`](api.md#django_async_ssr.Suspense) - a boundary with a `fallback`
- `Provider` / `Consumer` of a [`ContextSlot`](api.md#django_async_ssr.ContextSlot)

Anything else in the tree (strings, numbers, `None`, lists) is a primitive leaf.
"""

from collections.abc import Iterable
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, ClassVar

if TYPE_CHECKING:
    from django_async_ssr.evaluator import Evaluator


class ElementMarker:
    """Type of the built-in elements that are handled by the renderer itself."""

    def __init__(self, name: str):
        self.name = name

    def __repr__(self) -> str:
        return self.name


Fragment = ElementMarker("Fragment")
"""Renders its children without any wrapping tag."""

Suspense = ElementMarker("Suspense")
"""
Marks a suspense boundary.

While any content inside the boundary is waiting on a [`Deferred`](api.md#django_async_ssr.Deferred),
the render waits. If the content cannot be rendered on the server, the `fallback` prop
is rendered in place of the boundary's children.

```python
h(Suspense, {"fallback": h("span", None, "Loading...")},
    h(UserProfile, {"user_id": 1}),
)
```

A `Suspense` element without the `fallback` prop is NOT a boundary, and its children are
rendered as if it wasn't there.
"""


@dataclass(frozen=True, eq=False)
class Element:
    type: Any
    props: dict[str, Any] = field(default_factory=dict)
    key: Any = None

    @property
    def children(self) -> Any:
        return self.props.get("children")

    def __repr__(self) -> str:
        type_name = self.type if isinstance(self.type, (str, ElementMarker)) else get_type_name(self.type)
        return f"<Element {type_name}>"


def h(type: Any, props: dict[str, Any] | None = None, *children: Any) -> Element:  # noqa: A002
    """
    Create an element.

    Children may be given either as the `children` prop, or as extra positional arguments.

    ```python
    h("ul", {"class": "list"},
        h("li", None, "One"),
        h("li", None, "Two"),
    )
    ```
    """
    props = dict(props) if props else {}
    key = props.pop("key", None)
    if len(children) == 1:
        props["children"] = children[0]
    elif children:
        props["children"] = list(children)
    return Element(type=type, props=props, key=key)


def get_type_name(type: Any) -> str:  # noqa: A002
    return getattr(type, "display_name", None) or getattr(type, "__name__", None) or type.__class__.__name__


class Component:
    """
    Base class for class-based components.

    Subclasses implement [`render()`](api.md#django_async_ssr.Component.render),
    which returns the content to render in place of the component.

    ```python
    class Greeting(Component):
        def render(self):
            return h("p", None, "Hello, ", self.props["name"])
    ```

    Context can be received in two ways:

    - Set `context_type` to a [`ContextSlot`](api.md#django_async_ssr.ContextSlot), and
      `self.context` will be the slot's current value.
    - Set `context_types` to a list of keys, and `self.context` will be a dict with the values
      for these keys, as provided by `get_child_context()` of the components above.
    """

    context_type: ClassVar["ContextSlot | None"] = None
    context_types: ClassVar[Iterable[str] | None] = None

    def __init__(self, props: dict[str, Any], context: Any = None):
        self.props = props
        self.context = context

    def render(self) -> Any:
        raise NotImplementedError(f"Component {type(self).__name__} must implement render()")

    def get_child_context(self) -> dict[str, Any] | None:
        """
        Provide values to the legacy context of all descendants.
        The returned dict is merged over the context received from above.
        """
        return None


def is_component_class(value: Any) -> bool:
    return isinstance(value, type) and issubclass(value, Component)


def is_composite(value: Any) -> bool:
    """Whether the element type is user-defined, and so renders other content."""
    if isinstance(value, (str, ElementMarker, ContextProvider, ContextConsumer)):
        return False
    return is_component_class(value) or callable(value)


class ContextSlot:
    """
    A slot of context that is available to all descendants of its `Provider`.

    Create one with [`create_context()`](api.md#django_async_ssr.create_context).
    """

    def __init__(self, default_value: Any = None, name: str | None = None):
        self.default_value = default_value
        self.name = name
        self.Provider = ContextProvider(self)
        self.Consumer = ContextConsumer(self)

    def __repr__(self) -> str:
        return f"<ContextSlot {self.name or id(self)}>"


class ContextProvider:
    """Element type that sets the slot's `value` prop for its children."""

    def __init__(self, slot: ContextSlot):
        self.slot = slot


class ContextConsumer:
    """Element type whose `children` is a function that receives the slot's value."""

    def __init__(self, slot: ContextSlot):
        self.slot = slot


def create_context(default_value: Any = None, name: str | None = None) -> ContextSlot:
    """
    Create a context slot.

    ```python
    ThemeContext = create_context("light")

    def Button(props):
        theme = use_context(ThemeContext)
        return h("button", {"class": theme}, props["children"])

    h(ThemeContext.Provider, {"value": "dark"}, h(Button, None, "OK"))
    ```
    """
    return ContextSlot(default_value, name=name)


# Set by the evaluator only while it calls a component.
_current_evaluator: ContextVar["Evaluator | None"] = ContextVar("ssr_current_evaluator", default=None)


def use_context(slot: ContextSlot) -> Any:
    """Read the current value of the context slot. May be called only from inside a component."""
    evaluator = _current_evaluator.get()
    if evaluator is None:
        raise RuntimeError("use_context() may be called only while a component is being rendered")
    return evaluator.read_context(slot)
