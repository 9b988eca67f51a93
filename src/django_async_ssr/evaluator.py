"""
Synchronous, resumable evaluator of the element tree.

The evaluator walks the tree depth-first using an explicit stack of frames instead of
recursion. Each frame holds a list of children to render, and the markup to output once
all children are done (e.g. the closing tag).

Because all its state lives in the frame stack and in a few ambient values (context,
DOM namespace), the evaluator can be snapshotted at any position with
[`Evaluator.snapshot()`](api.md#django_async_ssr.evaluator.Evaluator.snapshot),
and a new evaluator created later with the same state to render the content
that was skipped at that position.

The evaluator reports everything to its visitor:

- `intercept(element, invoke)` - Called for each component and `Suspense` element.
  `invoke()` renders the component and returns its content. The visitor returns
  the content to render in its place.
- `write(html)` - Output markup.
- `after_render()` - Called after each child was evaluated.
- `frame_closed(frame)` - Called when a frame was removed from the stack.
"""

import functools
import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

from django.forms.utils import flatatt
from django.utils.html import conditional_escape

from django_async_ssr.app_settings import app_settings
from django_async_ssr.elements import (
    ContextConsumer,
    ContextProvider,
    ContextSlot,
    Element,
    Fragment,
    Suspense,
    _current_evaluator,
    get_type_name,
    is_component_class,
    is_composite,
)
from django_async_ssr.nodes import DomNamespace, StackState
from django_async_ssr.util.logger import trace
from django_async_ssr.util.misc import default, to_list

# See https://developer.mozilla.org/en-US/docs/Glossary/Void_element
VOID_ELEMENTS = frozenset(
    {
        "area",
        "base",
        "br",
        "col",
        "embed",
        "hr",
        "img",
        "input",
        "link",
        "meta",
        "param",
        "source",
        "track",
        "wbr",
    }
)

TAG_NAME_PATTERN = re.compile(r"^[a-zA-Z][a-zA-Z:_.\-\d]*$")
ATTR_NAME_PATTERN = re.compile(r"^[^\s\"'>/=]+$")

_MISSING = object()


@dataclass(eq=False)
class Frame:
    children: list[Any]
    context: dict[str, Any]
    dom_namespace: DomNamespace = "html"
    footer: str = ""
    child_index: int = 0
    exhausted: bool = False
    """If set, the remaining children are skipped."""
    provider: ContextSlot | None = None
    is_dom: bool = False


class EvaluatorVisitor(Protocol):
    def intercept(self, element: Element, invoke: Callable[[], Any]) -> Any: ...

    def write(self, html: str) -> None: ...

    def after_render(self) -> None: ...

    def frame_closed(self, frame: Frame) -> None: ...


class Evaluator:
    def __init__(
        self,
        content: Any,
        visitor: EvaluatorVisitor,
        *,
        make_static_markup: bool = False,
        stack_state: StackState | None = None,
        separator: str | None = None,
        root_attribute: str | None = None,
    ):
        self.visitor = visitor
        self.make_static_markup = make_static_markup
        self.separator = default(separator, app_settings.SEPARATOR)
        self.root_attribute = default(root_attribute, app_settings.ROOT_ATTRIBUTE)

        # Whether the last output was text, so next text has to be separated.
        self.previous_was_text = False
        # Number of HTML elements on the stack.
        self.dom_depth = 0
        self.dom_root_above = stack_state.dom_root_above if stack_state else False

        self.context_values: dict[ContextSlot, Any] = {}
        self.provider_stack: list[tuple[ContextSlot, Any, Any]] = []

        root_frame = Frame(
            children=to_list(content),
            context=dict(stack_state.legacy_context) if stack_state else {},
            dom_namespace=stack_state.dom_namespace if stack_state else "html",
        )
        self.stack: list[Frame] = [root_frame]

        # Reinstate context values from the position where the render was interrupted
        if stack_state is not None:
            for slot, value in stack_state.contexts:
                self._push_provider(slot, value)

        # Context after the last component's `get_child_context()`, see `resolve()`
        self._resolved_context: dict[str, Any] = {}

    def read(self) -> None:
        """Render until the stack is empty."""
        while self.stack:
            frame = self.stack[-1]
            if frame.exhausted or frame.child_index >= len(frame.children):
                self._close_frame()
                continue

            child = frame.children[frame.child_index]
            frame.child_index += 1

            html = self.render(child, frame.context, frame.dom_namespace)
            if html:
                self.visitor.write(html)
            self.visitor.after_render()

    def destroy(self) -> None:
        while self.provider_stack:
            self._pop_provider()
        self.stack.clear()

    ######################################
    # Stack manipulation
    ######################################

    def push_frame(
        self,
        children: list[Any],
        context: dict[str, Any],
        dom_namespace: DomNamespace,
        footer: str = "",
    ) -> Frame:
        frame = Frame(children=children, context=context, dom_namespace=dom_namespace, footer=footer)
        self.stack.append(frame)
        return frame

    def pop_frame(self) -> Frame:
        """Remove the top frame WITHOUT triggering `frame_closed()`."""
        return self.stack.pop()

    def exhaust_frames_to(self, frame: Frame) -> None:
        """Skip the remaining children of all frames from the top of the stack down to the given frame."""
        for curr_frame in reversed(self.stack):
            curr_frame.exhausted = True
            if curr_frame is frame:
                return

    def snapshot(self, frame: Frame) -> StackState:
        """Capture the state needed to later render the content of the given frame."""
        return StackState(
            legacy_context=dict(frame.context),
            contexts=tuple((slot, value) for slot, value, _ in self.provider_stack),
            dom_namespace=frame.dom_namespace,
            dom_root_above=self.dom_root_above or self.dom_depth > 0,
        )

    def _close_frame(self) -> None:
        frame = self.stack.pop()
        if frame.footer:
            self.previous_was_text = False
            self.visitor.write(frame.footer)
        if frame.provider is not None:
            self._pop_provider()
        if frame.is_dom:
            self.dom_depth -= 1
        self.visitor.frame_closed(frame)

    ######################################
    # Context
    ######################################

    def read_context(self, slot: ContextSlot) -> Any:
        return self.context_values.get(slot, slot.default_value)

    def _push_provider(self, slot: ContextSlot, value: Any) -> None:
        previous = self.context_values.get(slot, _MISSING)
        self.provider_stack.append((slot, value, previous))
        self.context_values[slot] = value

    def _pop_provider(self) -> None:
        slot, _, previous = self.provider_stack.pop()
        if previous is _MISSING:
            del self.context_values[slot]
        else:
            self.context_values[slot] = previous

    ######################################
    # Rendering
    ######################################

    def render(self, node: Any, context: dict[str, Any], dom_namespace: DomNamespace) -> str:
        if node is None or isinstance(node, bool):
            return ""
        if isinstance(node, (str, int, float)):
            return self.render_text(node)
        if isinstance(node, (list, tuple)):
            self.push_frame(list(node), context, dom_namespace)
            return ""
        if not isinstance(node, Element):
            raise TypeError(f"Objects of type '{type(node).__name__}' are not valid as a child")

        node, context = self.resolve(node, context)
        if not isinstance(node, Element):
            return self.render(node, context, dom_namespace)

        element_type = node.type
        if isinstance(element_type, str):
            return self.render_dom(node, context, dom_namespace)

        if element_type is Fragment:
            self.push_frame(to_list(node.children), context, dom_namespace)
            return ""

        if isinstance(element_type, ContextProvider):
            frame = self.push_frame(to_list(node.children), context, dom_namespace)
            frame.provider = element_type.slot
            self._push_provider(element_type.slot, node.props.get("value"))
            return ""

        if isinstance(element_type, ContextConsumer):
            render_fn = node.children
            if not callable(render_fn):
                raise TypeError("Children of a context Consumer must be a function")
            self.push_frame([render_fn(self.read_context(element_type.slot))], context, dom_namespace)
            return ""

        raise TypeError(f"Unknown element type: {element_type!r}")

    def render_text(self, value: str | float) -> str:
        text = str(value)
        if not text:
            return ""

        html = conditional_escape(text)
        if self.previous_was_text and not self.make_static_markup:
            html = self.separator + html
        self.previous_was_text = True
        return html

    def render_dom(self, element: Element, context: dict[str, Any], dom_namespace: DomNamespace) -> str:
        tag: str = element.type
        if not TAG_NAME_PATTERN.match(tag):
            raise ValueError(f"Invalid tag: {tag!r}")

        attrs = {key: value for key, value in element.props.items() if key != "children"}
        for attr_name in attrs:
            if not ATTR_NAME_PATTERN.match(attr_name):
                raise ValueError(f"Invalid attribute name {attr_name!r} on <{tag}>")

        # Mark the top-level elements, so the client knows where the server-rendered markup starts.
        if not self.make_static_markup and self.dom_depth == 0 and not self.dom_root_above:
            attrs[self.root_attribute] = ""

        own_namespace = _get_own_namespace(tag, dom_namespace)
        children = to_list(element.children)
        self.previous_was_text = False

        if tag.lower() in VOID_ELEMENTS and own_namespace == "html":
            if children:
                raise ValueError(f"<{tag}> is a void element tag and must not have children")
            return f"<{tag}{flatatt(attrs)}/>"
        if not children and own_namespace != "html":
            return f"<{tag}{flatatt(attrs)}/>"

        frame = self.push_frame(
            children,
            context,
            _get_child_namespace(tag, own_namespace),
            footer=f"</{tag}>",
        )
        frame.is_dom = True
        self.dom_depth += 1
        return f"<{tag}{flatatt(attrs)}>"

    def resolve(self, element: Element, context: dict[str, Any]) -> tuple[Any, dict[str, Any]]:
        """
        Render components and boundaries until we get to content that the evaluator
        renders itself (HTML element, text, list, ...).

        Returns the content together with the legacy context as modified by the components.
        """
        while isinstance(element, Element) and (element.type is Suspense or is_composite(element.type)):
            self._resolved_context = context
            if element.type is Suspense:
                invoke: Callable[[], Any] = functools.partial(to_list, element.children)
            else:
                invoke = functools.partial(self._invoke, element, context)

            element = self.visitor.intercept(element, invoke)
            context = self._resolved_context

        return element, context

    def _invoke(self, element: Element, context: dict[str, Any]) -> Any:
        component = element.type
        trace(f"RENDER COMPONENT '{get_type_name(component)}'")

        token = _current_evaluator.set(self)
        try:
            if is_component_class(component):
                instance = component(element.props, self._get_component_context(component, context))
                content = instance.render()
                child_context = instance.get_child_context()
                if child_context:
                    self._resolved_context = {**context, **child_context}
            else:
                content = component(element.props)
        finally:
            _current_evaluator.reset(token)

        return content

    def _get_component_context(self, component: type, context: dict[str, Any]) -> Any:
        if component.context_type is not None:
            return self.read_context(component.context_type)
        if component.context_types is not None:
            return {key: context[key] for key in component.context_types if key in context}
        return {}


def _get_own_namespace(tag: str, parent_namespace: DomNamespace) -> DomNamespace:
    if tag == "svg":
        return "svg"
    if tag == "math":
        return "math"
    return parent_namespace


def _get_child_namespace(tag: str, own_namespace: DomNamespace) -> DomNamespace:
    # Content of <foreignObject> inside SVG is HTML again
    if own_namespace == "svg" and tag == "foreignObject":
        return "html"
    return own_namespace


class _OutputCollector:
    def __init__(self) -> None:
        self.parts: list[str] = []

    def intercept(self, element: Element, invoke: Callable[[], Any]) -> Any:
        return invoke()

    def write(self, html: str) -> None:
        self.parts.append(html)

    def after_render(self) -> None:
        pass

    def frame_closed(self, frame: Frame) -> None:
        pass


def render_sync(content: Any, *, make_static_markup: bool = False) -> str:
    """
    Render the content synchronously, without any support for suspending.

    `Suspense` boundaries render their children, and a raised `Deferred` fails the render.
    """
    collector = _OutputCollector()
    evaluator = Evaluator(content, collector, make_static_markup=make_static_markup)
    try:
        evaluator.read()
    finally:
        evaluator.destroy()
    return "".join(collector.parts)
