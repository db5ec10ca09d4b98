"""Read-only model of the observed application's UI tree."""

from collections.abc import Callable, Iterator
from dataclasses import dataclass, field

from common.constants import MAX_DUMP_DEPTH, MAX_TREE_DEPTH


@dataclass(eq=False)
class TreeNode:
    """A labeled node of the observed UI tree.

    Nodes are owned by the tree accessor. The extractor only reads them and
    never keeps references past a single extraction pass.
    """

    text: str | None = None
    description: str | None = None
    resource_id: str | None = None
    class_name: str | None = None
    package: str | None = None
    children: list["TreeNode"] = field(default_factory=list)
    parent: "TreeNode | None" = field(default=None, repr=False)

    def add_child(self, child: "TreeNode") -> "TreeNode":
        """Append child and set its parent link. Returns the child."""
        child.parent = self
        self.children.append(child)
        return child

    def labels(self) -> tuple[str, str]:
        """Return (text, description), with missing values as empty strings."""
        return (self.text or "", self.description or "")


def walk(root: TreeNode, max_depth: int = MAX_TREE_DEPTH) -> Iterator[tuple[TreeNode, int]]:
    """Yield (node, depth) pairs depth-first, pre-order.

    Nodes deeper than max_depth are not visited, and a node already seen on
    the current pass is never yielded twice, so a malformed tree with cycles
    still terminates.

    Args:
        root: Tree root (depth 0)
        max_depth: Deepest depth to visit
    """
    seen: set[int] = set()
    stack: list[tuple[TreeNode, int]] = [(root, 0)]
    while stack:
        node, depth = stack.pop()
        if node is None or depth > max_depth or id(node) in seen:
            continue
        seen.add(id(node))
        yield node, depth
        # Reverse so the first child is visited first
        for child in reversed(node.children):
            stack.append((child, depth + 1))


def find_nodes(
    root: TreeNode,
    predicate: Callable[[TreeNode], bool],
    max_depth: int = MAX_TREE_DEPTH,
) -> list[TreeNode]:
    """Return all nodes matching predicate, in pre-order."""
    return [node for node, _ in walk(root, max_depth) if predicate(node)]


def find_nodes_by_text(root: TreeNode, needle: str, max_depth: int = MAX_TREE_DEPTH) -> list[TreeNode]:
    """Return all nodes whose text or description contains needle."""

    def contains(node: TreeNode) -> bool:
        text, desc = node.labels()
        return needle in text or needle in desc

    return find_nodes(root, contains, max_depth)


def dump_tree(root: TreeNode, max_depth: int = MAX_DUMP_DEPTH) -> str:
    """Render the tree as indented text for debugging.

    Only nodes carrying a text, description or resource id are printed, e.g.::

        [TextView] id=com.kds:id/tab t="조리중 3"

    Args:
        root: Tree root
        max_depth: Deepest depth to render

    Returns:
        One line per labeled node
    """
    lines = []
    for node, depth in walk(root, max_depth):
        text, desc = node.labels()
        resource_id = node.resource_id or ""
        if not (text or desc or resource_id):
            continue
        cls = (node.class_name or "?").rsplit(".", 1)[-1]
        parts = [f"{'  ' * depth}[{cls}]"]
        if resource_id:
            parts.append(f"id={resource_id}")
        if text:
            parts.append(f't="{text}"')
        if desc:
            parts.append(f'd="{desc}"')
        lines.append(" ".join(parts))
    return "\n".join(lines)
