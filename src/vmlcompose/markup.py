"""Markup tree -- immutable attributed elements parsed from VML text.

The resolver never touches raw XML. It walks Element trees: a tag, an
ordered attribute mapping, ordered child elements, and the element's text
content. Raw text goes through xml.etree.ElementTree once and is frozen
into Elements.

Tags lose their namespace. Namespaced attributes keep the prefix the
document declared for them, so handler attributes written as
on:scene-start (with xmlns:on declared) arrive as "on:scene-start".
"""

import io
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from pathlib import Path


ROOT_TAGS = ("vml", "videoml", "video-ml")


class MarkupError(ValueError):
    """Markup text is not well-formed."""


@dataclass(frozen=True)
class Element:
    tag: str
    attributes: dict[str, str] = field(default_factory=dict)
    children: tuple["Element", ...] = ()
    text: str = ""

    def get(self, name: str, default: str | None = None) -> str | None:
        """Attribute value, or default when absent or empty."""
        value = self.attributes.get(name)
        if value is None or value == "":
            return default
        return value

    def child_elements(self, *tags: str) -> list["Element"]:
        """Children with one of the given tags (all children if none)."""
        if not tags:
            return list(self.children)
        return [child for child in self.children if child.tag in tags]

    def iter(self):
        """Depth-first pre-order walk, self included."""
        yield self
        for child in self.children:
            yield from child.iter()


def strip_namespace(tag: str) -> str:
    return tag.split("}", 1)[1] if "}" in tag else tag


def _attribute_name(name: str, prefixes: dict[str, str]) -> str:
    if not name.startswith("{"):
        return name
    uri, local = name[1:].split("}", 1)
    prefix = prefixes.get(uri)
    return f"{prefix}:{local}" if prefix else local


def element_from_etree(node: ET.Element, prefixes: dict[str, str] | None = None) -> Element:
    """Freeze an ElementTree node (recursively) into an Element.

    Args:
        node: Parsed ElementTree node.
        prefixes: Namespace URI -> declared prefix, used to rebuild
            prefixed attribute names.
    """
    prefixes = prefixes or {}
    return Element(
        tag=strip_namespace(node.tag),
        attributes={_attribute_name(k, prefixes): v for k, v in node.attrib.items()},
        children=tuple(element_from_etree(child, prefixes) for child in node),
        text="".join(node.itertext()),
    )


def declared_prefixes(text: str) -> dict[str, str]:
    """Namespace URI -> prefix for every xmlns:prefix declaration."""
    prefixes = {}
    for _, (prefix, uri) in ET.iterparse(io.StringIO(text), events=("start-ns",)):
        if prefix:
            prefixes.setdefault(uri, prefix)
    return prefixes


def parse_markup(text: str) -> Element:
    """Parse markup text into an Element tree.

    Raises:
        MarkupError: The text is not well-formed XML.
    """
    source = text.strip()
    try:
        root = ET.fromstring(source)
        prefixes = declared_prefixes(source)
    except ET.ParseError as exc:
        raise MarkupError(f"Malformed markup: {exc}") from exc
    return element_from_etree(root, prefixes)


def load_markup(path: str | Path) -> Element:
    """Read and parse a markup file."""
    return parse_markup(Path(path).read_text(encoding="utf-8"))
