"""Tree accessors for the observed KDS application.

A tree accessor returns the root of the currently visible UI tree for a given
application package, or None when that tree is unavailable (application not
in the foreground, device disconnected, dump failed). "Unavailable" is a
normal, frequent condition and is never raised as an error.

The concrete accessors read Android ``uiautomator`` XML dumps, either live
over adb or from a saved file.
"""

import subprocess
import xml.etree.ElementTree as ET
from abc import ABC, abstractmethod
from pathlib import Path

from common.constants import CONTROL_TIMEOUT
from common.logger import get_logger

from .tree import TreeNode, walk

logger = get_logger(__name__)


class TreeAccessor(ABC):
    """Read-only access to the observed application's UI tree."""

    @abstractmethod
    def current_root(self, package: str) -> TreeNode | None:
        """Return the current tree root for package, or None if unavailable."""
        pass


def _node_from_element(element: ET.Element) -> TreeNode:
    attrs = element.attrib
    return TreeNode(
        text=attrs.get("text") or None,
        description=attrs.get("content-desc") or None,
        resource_id=attrs.get("resource-id") or None,
        class_name=attrs.get("class") or None,
        package=attrs.get("package") or None,
    )


def parse_uiautomator_xml(xml_text: str) -> TreeNode | None:
    """Parse a uiautomator hierarchy dump into a TreeNode tree.

    Args:
        xml_text: Raw dump output (surrounding non-XML noise is tolerated)

    Returns:
        Root node standing for the <hierarchy> element, or None if the text
        holds no parseable hierarchy
    """
    start = xml_text.find("<hierarchy")
    end = xml_text.rfind("</hierarchy>")
    if start < 0 or end < 0:
        return None

    try:
        element = ET.fromstring(xml_text[start : end + len("</hierarchy>")])
    except ET.ParseError as e:
        logger.debug(f"Unparseable uiautomator dump: {e}")
        return None

    root = TreeNode(class_name="hierarchy")
    stack: list[tuple[ET.Element, TreeNode]] = [(element, root)]
    while stack:
        current_element, current_node = stack.pop()
        for child_element in current_element.findall("node"):
            child_node = current_node.add_child(_node_from_element(child_element))
            stack.append((child_element, child_node))
    return root


def tree_packages(root: TreeNode) -> set[str]:
    """Return the set of application packages present in the tree."""
    return {node.package for node, _ in walk(root) if node.package}


class FileTreeAccessor(TreeAccessor):
    """Accessor reading a saved uiautomator dump file on every call."""

    def __init__(self, path: Path):
        self.path = path

    def current_root(self, package: str) -> TreeNode | None:
        try:
            xml_text = self.path.read_text(encoding="utf-8")
        except OSError:
            return None
        root = parse_uiautomator_xml(xml_text)
        if root is None:
            return None
        if package and package not in tree_packages(root):
            return None
        return root


class AdbTreeAccessor(TreeAccessor):
    """Accessor dumping the foreground window of a device over adb."""

    def __init__(self, serial: str = "", timeout: float = CONTROL_TIMEOUT):
        """Initialize adb accessor.

        Args:
            serial: Device serial (empty for the only connected device)
            timeout: Seconds to wait for the dump
        """
        self.serial = serial
        self.timeout = timeout

    def _command(self) -> list[str]:
        command = ["adb"]
        if self.serial:
            command += ["-s", self.serial]
        return command + ["exec-out", "uiautomator", "dump", "/dev/tty"]

    def current_root(self, package: str) -> TreeNode | None:
        try:
            result = subprocess.run(
                self._command(),
                capture_output=True,
                encoding="utf-8",
                errors="replace",
                timeout=self.timeout,
                check=True,
            )
        except (subprocess.CalledProcessError, subprocess.TimeoutExpired, FileNotFoundError) as e:
            logger.debug(f"uiautomator dump unavailable: {e}")
            return None

        root = parse_uiautomator_xml(result.stdout)
        if root is None:
            return None
        if package and package not in tree_packages(root):
            return None
        return root
