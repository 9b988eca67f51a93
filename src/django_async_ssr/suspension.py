import functools
from collections import deque
from typing import TYPE_CHECKING, Any

from django_async_ssr.deferred import Deferred
from django_async_ssr.elements import Element, get_type_name
from django_async_ssr.errors import MissingBoundaryError, RenderError
from django_async_ssr.nodes import STOP, DeferredNode, SuspenseNode, TreeNode, walk_tree
from django_async_ssr.util.logger import trace_node_msg

if TYPE_CHECKING:
    import asyncio

    from django_async_ssr.evaluator import Evaluator, Frame


class SuspensionMixin:
    """
    Decides what happens when a component suspends.

    - Which `Suspense` boundary owns the suspended component.
    - Whether to wait for the deferred value, or to abort it because the boundary
      will render its fallback anyway.
    - When a boundary has to render its fallback, which other boundaries and deferred values
      within it are affected.

    Used by [`AsyncRenderer`](api.md#django_async_ssr.renderer.AsyncRenderer),
    which provides the render state.
    """

    # Render state, see `AsyncRenderer`
    node: TreeNode | None
    suspense_node: SuspenseNode | None
    evaluator: "Evaluator | None"
    fallback_fast: bool
    fallbacks_queue: deque[SuspenseNode]
    num_awaiting: int

    def create_node(self, node_cls: type[Any]) -> Any: ...

    def create_node_with_state(self, node_cls: type[Any], frame: "Frame") -> Any: ...

    def _on_settled(self, node: DeferredNode, future: "asyncio.Future") -> None: ...

    def handle_suspense(self, element: Element) -> None:
        evaluator = self._get_evaluator()

        # The frame with the boundary's children was just pushed by the evaluator.
        # When the frame is closed, we know the boundary is done.
        frame = evaluator.stack[-1]
        node: SuspenseNode = self.create_node_with_state(SuspenseNode, frame)
        node.fallback = element.props["fallback"]
        node.frame = frame

        parent_suspense = self.suspense_node
        if parent_suspense is not None:
            node.suspended_above = parent_suspense.suspended or parent_suspense.suspended_above

        self.suspense_node = node
        self.node = node

    def handle_deferred(self, element: Element, deferred: Deferred) -> None:
        suspense = self.suspense_node
        if suspense is None:
            deferred.abort()
            raise MissingBoundaryError()

        evaluator = self._get_evaluator()

        # Remove the empty frame that the evaluator pushed in place of the component's content.
        # If we render the component right away, the frame is reused.
        frame = evaluator.pop_frame()

        suspense.contains_deferred = True
        if suspense.suspended_above and not suspense.suspended:
            suspense.suspended = True

        # The boundary will render its fallback, so the content will never be needed
        if suspense.suspended:
            deferred.abort()
            if not self.fallback_fast:
                self._create_placeholder(deferred)
            return

        if deferred.no_ssr:
            self.handle_no_ssr(deferred)
            return

        cursor = self.node
        if isinstance(cursor, DeferredNode) and cursor.deferred is deferred and cursor.frame is evaluator.stack[-1]:
            raise RenderError(
                f"Component '{get_type_name(element.type)}' raised again a Deferred that has already settled"
            )

        # NOTE: Accessing the future starts the awaitable. Siblings are thus started in document order.
        future = deferred.future

        # Deferred value is already available, so render the component again right away
        if future.done():
            if future.cancelled():
                raise RenderError(f"Deferred raised by '{get_type_name(element.type)}' was cancelled")
            error = future.exception()
            if error is not None:
                raise error

            node: DeferredNode = self.create_node(DeferredNode)
            node.resolved = True
            node.deferred = deferred
            node.frame = frame
            self.node = node

            frame.children = [element]
            frame.child_index = 0
            evaluator.stack.append(frame)
            return

        node = self.create_node_with_state(DeferredNode, frame)
        node.element = element
        node.deferred = deferred
        node.pending = True
        self.num_awaiting += 1

        future.add_done_callback(functools.partial(self._on_settled, node))

    def handle_no_ssr(self, deferred: Deferred) -> None:
        """
        The content can't be rendered on the server, so the closest boundary
        has to render its fallback.
        """
        deferred.abort()

        suspense = self.suspense_node
        if suspense is None:
            raise MissingBoundaryError()

        suspense.suspended = True
        trace_node_msg("SUSPEND", suspense.node_type, suspense.id, msg="(content cannot be rendered on server)")

        # If the boundary was rendered in a previous cycle, its fallback has to be rendered
        # separately. Otherwise the fallback is rendered once the boundary's frame is closed.
        if suspense.frame is None:
            self.fallbacks_queue.append(suspense)
        elif self.fallback_fast:
            self._get_evaluator().exhaust_frames_to(suspense.frame)

        if not self.fallback_fast:
            self._create_placeholder(deferred)

        for child in suspense.children:
            self.suspend_descendants(child)

    def suspend_descendants(self, node: TreeNode) -> None:
        """
        A boundary above this node has been suspended.

        - Abort all deferred values that have not settled yet.
        - Suspend nested boundaries that contain deferred values, and queue them
          to render their fallback.
        - Mark the remaining nested boundaries, so that any deferred value inside them
          is aborted when we come across it.

        Boundaries inside settled deferred nodes are left as they are, because that content
        won't be rendered anymore.
        """

        def visit(curr: TreeNode, in_deferred: bool) -> Any:
            if isinstance(curr, SuspenseNode):
                if curr.suspended:
                    return STOP

                if not in_deferred:
                    if curr.contains_deferred:
                        curr.suspended = True
                        trace_node_msg("SUSPEND", curr.node_type, curr.id)
                        if curr.frame is None:
                            self.fallbacks_queue.append(curr)
                    else:
                        curr.suspended_above = True
            elif isinstance(curr, DeferredNode):
                if not curr.resolved:
                    self.abort_node(curr)
                return True

            return in_deferred

        walk_tree(node, visit, False)

    def abort_node(self, node: DeferredNode) -> None:
        if node.resolved:
            return

        node.resolved = True
        if node.pending:
            node.pending = False
            self.num_awaiting -= 1
        node.stack_state = None
        node.element = None

        trace_node_msg("ABORT", node.node_type, node.id)
        if node.deferred is not None:
            node.deferred.abort()

    def abort_descendants(self, node: TreeNode) -> None:
        """Abort all pending deferred values, except those inside suspended boundaries."""

        def visit(curr: TreeNode, state: Any) -> Any:
            if isinstance(curr, SuspenseNode) and curr.suspended:
                return STOP
            if isinstance(curr, DeferredNode) and not curr.resolved:
                self.abort_node(curr)
            return state

        walk_tree(node, visit)

    def abort_all_descendants(self, nodes: list[TreeNode]) -> None:
        """Abort all pending deferred values within the nodes, including suspended boundaries."""

        def visit(curr: TreeNode, state: Any) -> Any:
            if isinstance(curr, DeferredNode) and not curr.resolved:
                self.abort_node(curr)
            return state

        for node in nodes:
            walk_tree(node, visit)

    def _create_placeholder(self, deferred: Deferred) -> None:
        # Recorded only so that the deferred value is notified it was not mounted
        node: DeferredNode = self.create_node(DeferredNode)
        node.resolved = True
        node.deferred = deferred

    def _get_evaluator(self) -> "Evaluator":
        if self.evaluator is None:
            raise RuntimeError("No render cycle is running")
        return self.evaluator
