"""Convert XML text into a nested "element is a list" mapping.

The upstream service answers with QuakeML. Rather than binding to a fixed
schema, the payload is turned into plain dictionaries following a simple,
uniform convention so field extraction can use positional paths:

* The document becomes ``{root_tag: root_value}``.
* Every child element is appended to a list stored under its tag, even when
  it occurs once, so every access is ``element[0]``.
* Namespace URIs are dropped; tags are keyed by their local name.
* An element holding only text (no attributes, no children) collapses to the
  text string itself. An empty element collapses to ``""``.
* Attributes are collected under ``"$"``; text mixed with children or
  attributes is stored under ``"_"``.

Example::

        >>> doc = parse_xml("<a><b x='1'>hi</b><c>2</c><c>3</c></a>")
        >>> doc["a"]["c"]
        ['2', '3']
        >>> doc["a"]["b"][0]
        {'$': {'x': '1'}, '_': 'hi'}

Malformed input raises :class:`xml.etree.ElementTree.ParseError`; callers
decide how to surface it.
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from typing import Any, Dict

ATTRIBUTES_KEY = "$"
TEXT_KEY = "_"


def local_name(tag: str) -> str:
    """Strip a ``{namespace}`` prefix (or ``prefix:``) from a tag name."""
    if tag.startswith("{"):
        tag = tag.split("}", 1)[1]
    return tag.rsplit(":", 1)[-1]


def _element_to_value(element: ET.Element) -> Any:
    text = (element.text or "").strip()
    children = list(element)

    if not children and not element.attrib:
        return text

    node: Dict[str, Any] = {}
    if element.attrib:
        node[ATTRIBUTES_KEY] = {
            local_name(name): value for name, value in element.attrib.items()
        }
    if text:
        node[TEXT_KEY] = text
    for child in children:
        node.setdefault(local_name(child.tag), []).append(_element_to_value(child))
    return node


def parse_xml(text: str) -> Dict[str, Any]:
    """Parse XML text into the nested list convention described above.

    Args:
        text: Complete XML document.
    Returns:
        Single-key dictionary mapping the root's local name to its value.
    Raises:
        xml.etree.ElementTree.ParseError: If the document is not well formed.
    """
    root = ET.fromstring(text)
    return {local_name(root.tag): _element_to_value(root)}
