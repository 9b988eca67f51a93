import asyncio
from collections import deque
from collections.abc import Callable
from typing import Any

from django_async_ssr.app_settings import app_settings
from django_async_ssr.elements import Element
from django_async_ssr.errors import DeferredCancelledError, pack_error, unpack_error
from django_async_ssr.evaluator import Evaluator, Frame
from django_async_ssr.nodes import (
    DeferredNode,
    FallbackNode,
    RootNode,
    StackState,
    SuspenseNode,
    TextNode,
    TreeNode,
    replace_with_fallback,
)
from django_async_ssr.serializer import tree_to_html
from django_async_ssr.shim import BoundaryInterrupt, Interceptor
from django_async_ssr.suspension import SuspensionMixin
from django_async_ssr.util.logger import logger, trace_node_msg, trace_render_msg
from django_async_ssr.util.misc import default, gen_id, is_renderable


class AsyncRenderer(SuspensionMixin):
    """
    Render an element tree to HTML, waiting for deferred values to settle.

    The render happens in cycles. Each cycle is a synchronous run of an
    [`Evaluator`](api.md#django_async_ssr.evaluator.Evaluator) that renders as much
    as it can, and records the output into the boundary tree. The cycles are:

    1. Initial render of the whole element tree.
    2. When a deferred value settles, the component that raised it is rendered again,
       and its content is inserted at the position where it was interrupted.
    3. When a boundary that was rendered in an earlier cycle has to show its fallback,
       the fallback is rendered in place of the boundary.

    Once no deferred values are pending, the boundary tree is serialized to HTML.

    ```python
    renderer = AsyncRenderer()
    html = await renderer.render(h(App, {}))
    ```
    """

    def __init__(
        self,
        *,
        make_static_markup: bool = False,
        fallback_fast: bool | None = None,
        separator: str | None = None,
        root_attribute: str | None = None,
    ):
        self.id = gen_id()
        self.make_static_markup = make_static_markup
        self.fallback_fast: bool = default(fallback_fast, app_settings.FALLBACK_FAST)
        self.separator: str = default(separator, app_settings.SEPARATOR)
        self.root_attribute: str = default(root_attribute, app_settings.ROOT_ATTRIBUTE)

        self.tree = RootNode()
        # Node into which the output of the running cycle is written
        self.node: TreeNode | None = None
        # Closest boundary above the position of the running cycle
        self.suspense_node: SuspenseNode | None = None
        self.evaluator: Evaluator | None = None
        self.interceptor = Interceptor()

        self.num_awaiting = 0
        # Boundaries from earlier cycles that have to render their fallback
        self.fallbacks_queue: deque[SuspenseNode] = deque()

        self.done = False
        self.html: str | None = None
        self.error: Any = None
        self._finished: asyncio.Future | None = None

    async def render(self, content: Any) -> str:
        if self._finished is not None:
            raise RuntimeError("AsyncRenderer instance can be used only once")

        self._finished = asyncio.get_running_loop().create_future()
        trace_render_msg("START", self.id)

        self._cycle(content, None, self.tree, None)
        self._after_cycles()

        try:
            await self._finished
        except asyncio.CancelledError as err:
            self.errored(err)
            raise

        if self.error is not None:
            raise unpack_error(self.error)

        trace_render_msg("END", self.id)
        return self.html  # type: ignore[return-value]

    ######################################
    # Cycles
    ######################################

    def _cycle(
        self,
        content: Any,
        stack_state: StackState | None,
        node: TreeNode,
        suspense_node: SuspenseNode | None,
    ) -> None:
        if self.done:
            return

        self.node = node
        self.suspense_node = suspense_node
        self.evaluator = Evaluator(
            content,
            self,
            make_static_markup=self.make_static_markup,
            stack_state=stack_state,
            separator=self.separator,
            root_attribute=self.root_attribute,
        )

        trace_node_msg("CYCLE START", node.node_type, node.id)
        try:
            self.evaluator.read()
        except Exception as err:
            self.errored(err)
        finally:
            self.evaluator.destroy()
            self.evaluator = None
            self.node = None
            self.suspense_node = None
            self.interceptor.interrupt = None
        trace_node_msg("CYCLE END", node.node_type, node.id)

    def _after_cycles(self) -> None:
        while self.fallbacks_queue and not self.done:
            boundary = self.fallbacks_queue.popleft()
            # Boundary was already converted, or it's inside a region that was discarded
            if not self._is_attached(boundary):
                continue
            self._render_queued_fallback(boundary)

        if self.done or self.num_awaiting:
            return

        self.done = True
        try:
            self.html = tree_to_html(
                self.tree,
                make_static_markup=self.make_static_markup,
                fallback_fast=self.fallback_fast,
                separator=self.separator,
            )
        except Exception as err:  # noqa: BLE001
            self.error = pack_error(err)
        self._finish()

    def _render_queued_fallback(self, boundary: SuspenseNode) -> None:
        # Abort hooks of the discarded content run here, outside of any cycle
        try:
            fallback_node = self.convert_to_fallback(boundary)
        except Exception as err:
            self.errored(err)
            return

        fallback = fallback_node.fallback
        stack_state = fallback_node.stack_state
        fallback_node.fallback = None
        fallback_node.stack_state = None

        if is_renderable(fallback):
            self._cycle(fallback, stack_state, fallback_node, fallback_node.parent_suspense)

    def _on_settled(self, node: DeferredNode, future: asyncio.Future) -> None:
        # Superseded by a fallback or by an error. Whatever the outcome, it's ignored.
        if node.resolved or self.done:
            if not future.cancelled() and future.exception() is not None:
                trace_node_msg("IGNORE", node.node_type, node.id, msg=f"error: {future.exception()!r}")
            else:
                trace_node_msg("IGNORE", node.node_type, node.id)
            return

        node.resolved = True
        node.pending = False
        self.num_awaiting -= 1

        if future.cancelled():
            self.errored(DeferredCancelledError(f"Deferred {node.deferred!r} was cancelled"))
            return

        error = future.exception()
        if error is not None:
            node.element = None
            node.stack_state = None
            self.errored(error)
            return

        trace_node_msg("RESUME", node.node_type, node.id)
        element, stack_state = node.element, node.stack_state
        node.element = None
        node.stack_state = None

        self._cycle(element, stack_state, node, node.parent_suspense)
        self._after_cycles()

    def errored(self, err: BaseException) -> None:
        if self.done:
            return

        logger.debug(f"Render {self.id} failed: {err!r}")
        self.done = True
        self.error = pack_error(err)
        try:
            self.abort_descendants(self.tree)
        finally:
            self.fallbacks_queue.clear()
            self._finish()

    def _finish(self) -> None:
        if self._finished is not None and not self._finished.done():
            self._finished.set_result(None)

    ######################################
    # Tree
    ######################################

    def create_node(self, node_cls: type[Any]) -> Any:
        parent = self.node
        if parent is None:
            raise RuntimeError("No render cycle is running")

        node = node_cls(parent)
        parent.children.append(node)
        # Output of the new node is separated from the preceding text when serialized
        if self.evaluator is not None:
            self.evaluator.previous_was_text = False

        trace_node_msg("CREATE", node.node_type, node.id)
        return node

    def create_node_with_state(self, node_cls: type[Any], frame: Frame) -> Any:
        node = self.create_node(node_cls)
        node.parent_suspense = self.suspense_node
        node.stack_state = self._get_evaluator().snapshot(frame)
        return node

    def convert_to_fallback(self, boundary: SuspenseNode) -> FallbackNode:
        fallback_node = replace_with_fallback(boundary)
        self.abort_all_descendants(fallback_node.suspended_children)
        trace_node_msg("FALLBACK", boundary.node_type, boundary.id, msg=f"replaced by {fallback_node.id}")
        return fallback_node

    def _is_attached(self, node: TreeNode) -> bool:
        curr = node
        while curr.parent is not None:
            if not any(child is curr for child in curr.parent.children):
                return False
            curr = curr.parent
        return curr is self.tree

    ######################################
    # Evaluator visitor
    ######################################

    def intercept(self, element: Element, invoke: Callable[[], Any]) -> Any:
        return self.interceptor.intercept(element, invoke)

    def write(self, html: str) -> None:
        node = self.node
        if node is None:
            raise RuntimeError("No render cycle is running")

        last_child = node.children[-1] if node.children else None
        if isinstance(last_child, TextNode):
            last_child.out += html
        else:
            node.children.append(TextNode(node, html))

    def after_render(self) -> None:
        interrupt = self.interceptor.take()
        if interrupt is None:
            return

        if isinstance(interrupt, BoundaryInterrupt):
            self.handle_suspense(interrupt.element)
        else:
            self.handle_deferred(interrupt.element, interrupt.deferred)

    def frame_closed(self, frame: Frame) -> None:
        node = self.node
        if node is None or getattr(node, "frame", None) is not frame:
            return

        node.frame = None
        self.node = node.parent
        trace_node_msg("CLOSE", node.node_type, node.id)

        if not isinstance(node, SuspenseNode):
            return

        self.suspense_node = node.parent_suspense
        if not node.suspended:
            return

        # Boundary suspended while it was being rendered, so render the fallback right away
        fallback_node = self.convert_to_fallback(node)
        fallback = fallback_node.fallback
        fallback_node.fallback = None
        fallback_node.stack_state = None

        evaluator = self._get_evaluator()
        evaluator.previous_was_text = False
        if is_renderable(fallback):
            fallback_node.frame = evaluator.push_frame([fallback], frame.context, frame.dom_namespace)
            self.node = fallback_node
