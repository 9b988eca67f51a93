import asyncio

from django_async_ssr import Deferred
from django_async_ssr.errors import unpack_error
from django_async_ssr.nodes import DeferredNode, FallbackNode, SuspenseNode
from django_async_ssr.renderer import AsyncRenderer
from django_async_ssr.testing import ssr_test

from .testutils import setup_test_config

setup_test_config()


def add_node(parent, node_cls):
    node = node_cls(parent)
    parent.children.append(node)
    return node


def add_pending(renderer, parent, abort=None):
    node = add_node(parent, DeferredNode)
    node.pending = True
    node.deferred = Deferred(abort=abort)
    renderer.num_awaiting += 1
    return node


def add_resolved(parent):
    node = add_node(parent, DeferredNode)
    node.resolved = True
    node.deferred = Deferred()
    return node


@ssr_test
class TestSuspendDescendants:
    def test_boundary_without_deferreds_is_marked(self):
        renderer = AsyncRenderer()
        outer = add_node(renderer.tree, SuspenseNode)
        inner = add_node(outer, SuspenseNode)

        renderer.suspend_descendants(inner)

        assert inner.suspended_above
        assert not inner.suspended
        assert list(renderer.fallbacks_queue) == []

    def test_boundary_with_deferreds_is_suspended_and_queued(self):
        aborted = []
        renderer = AsyncRenderer()
        outer = add_node(renderer.tree, SuspenseNode)
        inner = add_node(outer, SuspenseNode)
        inner.contains_deferred = True
        pending = add_pending(renderer, inner, abort=lambda: aborted.append("inner"))

        renderer.suspend_descendants(inner)

        assert inner.suspended
        assert not inner.suspended_above
        assert list(renderer.fallbacks_queue) == [inner]
        assert pending.resolved
        assert renderer.num_awaiting == 0
        assert aborted == ["inner"]

    def test_open_boundary_is_not_queued(self):
        renderer = AsyncRenderer()
        inner = add_node(renderer.tree, SuspenseNode)
        inner.contains_deferred = True
        inner.frame = object()

        renderer.suspend_descendants(inner)

        assert inner.suspended
        assert list(renderer.fallbacks_queue) == []

    def test_boundary_inside_settled_deferred_is_left_alone(self):
        aborted = []
        renderer = AsyncRenderer()
        outer = add_node(renderer.tree, SuspenseNode)
        settled = add_resolved(outer)
        inner = add_node(settled, SuspenseNode)
        inner.contains_deferred = True
        pending = add_pending(renderer, inner, abort=lambda: aborted.append("inner"))

        renderer.suspend_descendants(settled)

        assert not inner.suspended
        assert not inner.suspended_above
        assert list(renderer.fallbacks_queue) == []
        assert pending.resolved
        assert renderer.num_awaiting == 0
        assert aborted == ["inner"]

    def test_suspended_boundary_is_skipped(self):
        aborted = []
        renderer = AsyncRenderer()
        inner = add_node(renderer.tree, SuspenseNode)
        inner.suspended = True
        pending = add_pending(renderer, inner, abort=lambda: aborted.append("inner"))

        renderer.suspend_descendants(inner)

        assert not pending.resolved
        assert renderer.num_awaiting == 1
        assert aborted == []


@ssr_test
class TestQueuedFallback:
    async def test_queued_boundary_is_replaced(self):
        aborted = []
        renderer = AsyncRenderer()
        renderer._finished = asyncio.get_running_loop().create_future()
        boundary = add_node(renderer.tree, SuspenseNode)
        boundary.suspended = True
        pending = add_pending(renderer, boundary, abort=lambda: aborted.append("pending"))
        renderer.fallbacks_queue.append(boundary)

        renderer._after_cycles()

        assert isinstance(renderer.tree.children[0], FallbackNode)
        assert pending.resolved
        assert aborted == ["pending"]
        assert renderer.html == ""
        assert renderer._finished.done()

    async def test_abort_error_in_queued_boundary_fails_render(self):
        def abort():
            raise RuntimeError("abort failed")

        renderer = AsyncRenderer()
        renderer._finished = asyncio.get_running_loop().create_future()
        boundary = add_node(renderer.tree, SuspenseNode)
        boundary.suspended = True
        add_pending(renderer, boundary, abort=abort)
        renderer.fallbacks_queue.append(boundary)

        renderer._after_cycles()

        assert renderer.done
        assert isinstance(unpack_error(renderer.error), RuntimeError)
        assert renderer._finished.done()
        assert renderer.html is None
