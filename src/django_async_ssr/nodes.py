"""
The boundary tree.

While rendering, the output is not written into a flat string. Instead it's written into
a tree that records where the render was interrupted:

```
RootNode
├── TextNode "<div><h2>Title</h2>"
├── SuspenseNode (fallback=<span>Loading</span>)
│   ├── TextNode "<p>"
│   ├── DeferredNode (waiting for data)
│   └── TextNode "</p>"
└── TextNode "</div>"
```

When a deferred value settles, its content is rendered as the children of its `DeferredNode`.
When a suspense boundary has to show its fallback, the `SuspenseNode` is replaced with
a `FallbackNode`, and the fallback is rendered as its children.

Once there is nothing more to wait for, the tree is serialized to the final HTML.
"""

from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, ClassVar, Literal, TypeAlias

from django_async_ssr.util.misc import find_index, gen_id

if TYPE_CHECKING:
    from django_async_ssr.deferred import Deferred
    from django_async_ssr.elements import ContextSlot, Element
    from django_async_ssr.evaluator import Frame


NodeType: TypeAlias = Literal["root", "text", "suspense", "deferred", "fallback"]
DomNamespace: TypeAlias = Literal["html", "svg", "math"]


@dataclass(frozen=True)
class StackState:
    """
    Snapshot of the evaluator's ambient state at a position in the tree,
    so that rendering can be resumed from that position later.
    """

    legacy_context: dict[str, Any]
    """Context as provided by `Component.get_child_context()`."""
    contexts: tuple[tuple["ContextSlot", Any], ...]
    """Values of context slots, in the order their providers were entered."""
    dom_namespace: DomNamespace
    dom_root_above: bool
    """Whether there is an HTML element above this position."""


class TreeNode:
    node_type: ClassVar[NodeType]

    def __init__(self, parent: "TreeNode | None" = None):
        self.id = gen_id()
        self.parent = parent
        self.children: list[TreeNode] = []

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.id}>"


class RootNode(TreeNode):
    node_type = "root"


class TextNode(TreeNode):
    node_type = "text"

    def __init__(self, parent: TreeNode | None = None, out: str = ""):
        super().__init__(parent)
        self.out = out


class SuspenseNode(TreeNode):
    node_type = "suspense"

    def __init__(self, parent: TreeNode | None = None):
        super().__init__(parent)
        self.fallback: Any = None
        self.suspended = False
        self.suspended_above = False
        self.contains_deferred = False
        self.frame: Frame | None = None
        self.stack_state: StackState | None = None
        self.parent_suspense: SuspenseNode | None = None


class DeferredNode(TreeNode):
    node_type = "deferred"

    def __init__(self, parent: TreeNode | None = None):
        super().__init__(parent)
        self.resolved = False
        # Whether the node is counted as awaited by the renderer
        self.pending = False
        self.deferred: Deferred | None = None
        self.element: Element | None = None
        self.frame: Frame | None = None
        self.stack_state: StackState | None = None
        self.parent_suspense: SuspenseNode | None = None


class FallbackNode(TreeNode):
    node_type = "fallback"

    def __init__(self, boundary: SuspenseNode):
        super().__init__(boundary.parent)
        self.fallback: Any = boundary.fallback
        self.stack_state = boundary.stack_state
        self.parent_suspense = boundary.parent_suspense
        self.frame: Frame | None = None
        # Never rendered, kept only to notify the deferred values inside that they were not mounted.
        self.suspended_children: list[TreeNode] = boundary.children


def replace_with_fallback(boundary: SuspenseNode) -> FallbackNode:
    """Replace the boundary in its parent with a `FallbackNode`, at the same position."""
    fallback_node = FallbackNode(boundary)

    parent = boundary.parent
    if parent is not None:
        index = find_index(parent.children, boundary)
        parent.children[index] = fallback_node

    boundary.children = []
    boundary.fallback = None
    return fallback_node


# Sentinel returned from the `walk_tree()` callback to skip the node's children
STOP = object()


def walk_tree(node: TreeNode, fn: Callable[[TreeNode, Any], Any], state: Any = None) -> None:
    """
    Call `fn(node, state)` on the node and all its descendants, depth-first.

    Whatever `fn()` returns is passed as `state` to the node's children.
    If it returns `STOP`, the node's children are skipped.
    """
    # NOTE: Iterative to support trees of any depth
    stack: list[tuple[TreeNode, Any]] = [(node, state)]
    while stack:
        curr_node, curr_state = stack.pop()
        child_state = fn(curr_node, curr_state)
        if child_state is STOP:
            continue
        stack.extend((child, child_state) for child in reversed(curr_node.children))
