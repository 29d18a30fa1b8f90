"""Live document -- a mutable markup tree that reports its own edits.

The resolver works on frozen Element trees. Editing happens here instead,
on an xml.etree.ElementTree tree: every mutation goes through a
LiveDocument method, which notifies observers with a Mutation record (the
kind of edit and the element it happened on). The change reflector and the
structural patch protocol both build on this.
"""

import copy
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from .markup import ROOT_TAGS, Element, MarkupError, declared_prefixes, element_from_etree, strip_namespace

MUTATION_KINDS = ("attributes", "childList", "characterData")


@dataclass(frozen=True)
class Mutation:
    kind: str
    target: ET.Element
    name: str | None = None


Observer = Callable[[Mutation], None]


class LiveDocument:
    """Mutable markup document addressed by element id.

    Args:
        root: Root ElementTree element.
        prefixes: Namespace URI -> prefix declared by the source text, used
            to keep prefixes like on: stable through serialization.
    """

    def __init__(self, root: ET.Element, prefixes: dict[str, str] | None = None):
        self.root = root
        self.prefixes = dict(prefixes or {})
        self._observers: list[Observer] = []

    @classmethod
    def from_xml(cls, text: str) -> "LiveDocument":
        source = text.strip()
        try:
            root = ET.fromstring(source)
            prefixes = declared_prefixes(source)
        except ET.ParseError as exc:
            raise MarkupError(f"Malformed markup: {exc}") from exc
        return cls(root, prefixes)

    @classmethod
    def load(cls, path: str | Path) -> "LiveDocument":
        return cls.from_xml(Path(path).read_text(encoding="utf-8"))

    @property
    def root_tag(self) -> str:
        return strip_namespace(self.root.tag)

    def copy(self) -> "LiveDocument":
        """Deep copy with no observers."""
        return LiveDocument(copy.deepcopy(self.root), self.prefixes)

    def to_element(self) -> Element:
        """Frozen snapshot for the resolver."""
        return element_from_etree(self.root, self.prefixes)

    def serialize(self) -> str:
        for uri, prefix in self.prefixes.items():
            ET.register_namespace(prefix, uri)
        return ET.tostring(self.root, encoding="unicode")

    # ── observation ──

    def observe(self, fn: Observer) -> Callable[[], None]:
        """Call fn(mutation) after every edit. Returns a disconnect function."""
        self._observers.append(fn)

        def disconnect():
            if fn in self._observers:
                self._observers.remove(fn)

        return disconnect

    def _notify(self, kind: str, target: ET.Element, name: str | None = None) -> None:
        mutation = Mutation(kind, target, name)
        for fn in list(self._observers):
            fn(mutation)

    # ── lookup ──

    def find_by_id(self, element_id: str) -> ET.Element | None:
        """First element in document order whose id attribute matches."""
        for el in self.root.iter():
            if el.get("id") == element_id:
                return el
        return None

    def parent_of(self, node: ET.Element) -> ET.Element | None:
        for parent in self.root.iter():
            for child in parent:
                if child is node:
                    return parent
        return None

    def ancestors(self, node: ET.Element):
        """node, its parent, and so on up to the root."""
        parents = {child: parent for parent in self.root.iter() for child in parent}
        current = node
        while current is not None:
            yield current
            current = parents.get(current)

    def qualify(self, name: str) -> str:
        """'on:scene-start' -> '{uri}scene-start' for a declared prefix."""
        prefix, sep, local = name.partition(":")
        if not sep:
            return name
        for uri, declared in self.prefixes.items():
            if declared == prefix:
                return f"{{{uri}}}{local}"
        return name

    # ── mutation ──

    def set_attribute(self, node: ET.Element, name: str, value: str | None) -> None:
        """Set an attribute, or remove it when value is None."""
        name = self.qualify(name)
        if value is None:
            node.attrib.pop(name, None)
        else:
            node.set(name, value)
        self._notify("attributes", node, name)

    def set_text(self, node: ET.Element, text: str) -> None:
        """Replace all content of node with text."""
        for child in list(node):
            node.remove(child)
        node.text = text
        self._notify("characterData", node)

    def insert(self, parent: ET.Element, child: ET.Element, index: int | None = None) -> None:
        """Insert child before the index-th element child (append if None or past the end)."""
        if index is None or index >= len(parent):
            parent.append(child)
        else:
            parent.insert(max(index, 0), child)
        self._notify("childList", parent)

    def remove(self, node: ET.Element) -> None:
        parent = self.parent_of(node)
        if parent is None:
            raise ValueError("Cannot remove the document root.")
        parent.remove(node)
        self._notify("childList", parent)

    def replace(self, node: ET.Element, replacement: ET.Element) -> None:
        parent = self.parent_of(node)
        if parent is None:
            raise ValueError("Cannot replace the document root.")
        index = list(parent).index(node)
        replacement.tail = node.tail
        parent.remove(node)
        parent.insert(index, replacement)
        self._notify("childList", parent)

    def commit(self, other: "LiveDocument") -> None:
        """Take over other's tree, reporting it as one structural change."""
        self.root = other.root
        self.prefixes.update(other.prefixes)
        self._notify("childList", self.root)


def parse_fragment(node_xml: str, prefixes: dict[str, str] | None = None) -> ET.Element:
    """Parse a markup fragment holding a single root element.

    Prefixes declared by the host document (uri -> prefix) are in scope
    for the fragment.

    Raises:
        MarkupError: Malformed fragment, or no element in it.
    """
    try:
        declarations = "".join(
            f' xmlns:{prefix}="{uri}"' for uri, prefix in (prefixes or {}).items()
        )
        wrapper = ET.fromstring(f"<root{declarations}>{node_xml}</root>")
    except ET.ParseError as exc:
        raise MarkupError(f"Malformed node markup: {exc}") from exc
    children = list(wrapper)
    if not children:
        raise MarkupError("nodeXml must contain a single root element.")
    node = children[0]
    node.tail = None
    return node


def is_root_tag(tag: str) -> bool:
    return strip_namespace(tag) in ROOT_TAGS
