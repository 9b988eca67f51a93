from django_async_ssr.app_settings import app_settings
from django_async_ssr.nodes import DeferredNode, FallbackNode, TextNode, TreeNode
from django_async_ssr.util.misc import default


class HtmlSerializer:
    """
    Join the output recorded in the boundary tree into the final HTML.

    - Content of boundaries replaced by their fallback is not output.
    - Adjacent pieces of text from different nodes are separated with the separator
      (`<!-- -->` by default), so the client sees the same text nodes as the server rendered.
      Not applied for static markup.
    - Each deferred value is told whether its content was part of the output.
    """

    def __init__(
        self,
        *,
        make_static_markup: bool = False,
        fallback_fast: bool = False,
        separator: str | None = None,
    ):
        self.make_static_markup = make_static_markup
        self.fallback_fast = fallback_fast
        self.separator = default(separator, app_settings.SEPARATOR)

        self.parts: list[str] = []
        self.last_text = False

    def serialize(self, tree: TreeNode) -> str:
        self.parts = []
        self.last_text = False

        # NOTE: Iterative to support trees of any depth
        stack: list[tuple[TreeNode, bool]] = [(tree, False)]
        while stack:
            node, suspended = stack.pop()

            if isinstance(node, TextNode):
                if not suspended:
                    self._output(node.out)
                continue

            to_visit: list[tuple[TreeNode, bool]] = []
            if isinstance(node, DeferredNode):
                if node.deferred is not None:
                    node.deferred.mount(not suspended)
                if suspended:
                    continue
            elif isinstance(node, FallbackNode) and not self.fallback_fast:
                to_visit.extend((child, True) for child in node.suspended_children)

            to_visit.extend((child, suspended) for child in node.children)
            stack.extend(reversed(to_visit))

        return "".join(self.parts)

    def _output(self, out: str) -> None:
        if not out:
            return

        if self.last_text and not out.startswith("<"):
            self.parts.append(self.separator)
        self.parts.append(out)

        if not self.make_static_markup:
            self.last_text = not out.endswith(">")


def tree_to_html(
    tree: TreeNode,
    *,
    make_static_markup: bool = False,
    fallback_fast: bool = False,
    separator: str | None = None,
) -> str:
    serializer = HtmlSerializer(
        make_static_markup=make_static_markup,
        fallback_fast=fallback_fast,
        separator=separator,
    )
    return serializer.serialize(tree)
