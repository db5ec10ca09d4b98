"""Counter extraction from the observed KDS UI tree.

The KDS application changes its layout between releases, so the in-progress
count is located with a layered set of strategies. The first strategy that
yields a confident value wins:

1. Direct label: a node whose text or description contains the in-progress
   marker, followed by an integer in the same label ("조리중 3", "조리중\\n3").
2. Sibling number: for marker nodes without an adjacent integer, a purely
   numeric direct child of the marker node's parent, in [0, 99].
3. Subtree scan: when no marker node exists at all, a bounded pre-order scan
   of the whole tree for the same pattern.
4. Empty state: the "no orders" sentinel anywhere means 0.
5. Secondary count: an alternate quantity label elsewhere in the tree.

A marker that is present but has no number anywhere near it means 0. That
rule is applied only after strategies 1-2 are exhausted. Finding nothing at
all yields None, never 0.
"""

import re
from collections.abc import Callable
from typing import TypeVar

from common.constants import (
    COMPLETED_PATTERN,
    EMPTY_STATE_SENTINEL,
    IN_PROGRESS_MARKER,
    IN_PROGRESS_PATTERN,
    MAX_TREE_DEPTH,
    ORDER_ID_PATTERN,
    SECONDARY_COUNT_PATTERN,
    SIBLING_COUNT_RANGE,
)
from common.logger import get_logger

from .models import ObservedState
from .tree import TreeNode, find_nodes_by_text, walk

logger = get_logger(__name__)

T = TypeVar("T")

_IN_PROGRESS_RE = re.compile(IN_PROGRESS_PATTERN)
_COMPLETED_RE = re.compile(COMPLETED_PATTERN)
_SECONDARY_RE = re.compile(SECONDARY_COUNT_PATTERN)
_ORDER_ID_RE = re.compile(ORDER_ID_PATTERN)
_DIGITS_RE = re.compile(r"[0-9]+")


def _match_in_labels(node: TreeNode, pattern: re.Pattern[str]) -> int | None:
    """Return the first integer captured by pattern in the node's text, then description."""
    for label in node.labels():
        match = pattern.search(label)
        if match:
            try:
                return int(match.group(1))
            except ValueError:
                continue
    return None


def _scan(root: TreeNode, pattern: re.Pattern[str]) -> int | None:
    """Pre-order scan of the tree for the first node matching pattern."""
    for node, _ in walk(root, MAX_TREE_DEPTH):
        value = _match_in_labels(node, pattern)
        if value is not None:
            return value
    return None


def _number_in_children(parent: TreeNode) -> int | None:
    """Return the first direct child whose text is a number in [0, 99]."""
    for child in parent.children:
        if child is None:
            continue
        text = (child.text or "").strip()
        if _DIGITS_RE.fullmatch(text):
            value = int(text)
            if value in SIBLING_COUNT_RANGE:
                return value
    return None


def extract_in_progress_count(root: TreeNode) -> int | None:
    """Extract the number of orders currently being prepared.

    Args:
        root: Root of the observed UI tree

    Returns:
        The in-progress count, or None when the tree holds no evidence
    """
    marker_nodes = find_nodes_by_text(root, IN_PROGRESS_MARKER)

    if marker_nodes:
        for node in marker_nodes:
            value = _match_in_labels(node, _IN_PROGRESS_RE)
            if value is not None:
                return value

        for node in marker_nodes:
            if node.parent is None:
                continue
            value = _number_in_children(node.parent)
            if value is not None:
                logger.debug(f"In-progress count {value} found next to marker")
                return value

        # Marker shown without any count: the KDS hides the badge at zero
        return 0

    value = _scan(root, _IN_PROGRESS_RE)
    if value is not None:
        return value

    if find_nodes_by_text(root, EMPTY_STATE_SENTINEL):
        return 0

    return _scan(root, _SECONDARY_RE)


def extract_completed_count(root: TreeNode) -> int | None:
    """Extract the completed-orders counter.

    The per-ticket "조리완료" action button is excluded by the pattern.

    Returns:
        The completed count, or None if not found
    """
    return _scan(root, _COMPLETED_RE)


def extract_order_ids(root: TreeNode) -> list[int]:
    """Extract order identifiers from descriptions of the form "#<digits>".

    Returns:
        Sorted, de-duplicated list of positive order numbers
    """
    order_ids: set[int] = set()
    for node, _ in walk(root, MAX_TREE_DEPTH):
        match = _ORDER_ID_RE.fullmatch(node.description or "")
        if not match:
            continue
        value = int(match.group(1))
        if value > 0:
            order_ids.add(value)
    return sorted(order_ids)


def _safely(extractor: Callable[[TreeNode], T], root: TreeNode, default: T) -> T:
    try:
        return extractor(root)
    except (AttributeError, TypeError, ValueError, RecursionError) as e:
        logger.warning(f"Tree traversal failed in {extractor.__name__}: {e}")
        return default


def extract_state(root: TreeNode | None) -> ObservedState:
    """Derive an ObservedState from a tree snapshot.

    Never raises: a missing or malformed tree yields empty fields.

    Args:
        root: Root of the observed UI tree, or None if unavailable

    Returns:
        Fresh ObservedState for this pass
    """
    if root is None:
        return ObservedState()

    return ObservedState(
        in_progress_count=_safely(extract_in_progress_count, root, None),
        completed_count=_safely(extract_completed_count, root, None),
        order_ids=frozenset(_safely(extract_order_ids, root, [])),
    )
