"""XML-to-dict conversion and typed decoding of EC2 response bodies.

EC2 answers every Query API call with an XML document whose root element is
named after the action (``DescribeInstancesResponse``) or, on failure, a
``Response`` element holding an ``Errors`` list. Bodies are converted into
plain dicts first and then validated into pydantic models, so the field
mapping lives on the models (see resources.py) rather than in a parser.

Repeated EC2 collections are always wrapped as ``<fooSet><item>..</item></fooSet>``,
so ``item`` is forced to a list by default. Without that a one-instance
reservation would decode differently from a two-instance one.

dict_to_xml is the inverse and is used to render canned responses (see
tests/integration/mock_server.py).
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from typing import Any, TypeVar

from pydantic import BaseModel

M = TypeVar("M", bound=BaseModel)

DEFAULT_FORCE_LIST = frozenset({"item"})


# ---------------------------------------------------------------------------
# XML bytes → Python dict
# ---------------------------------------------------------------------------


def xml_to_dict(
    xml_bytes: bytes,
    force_list: set[str] | frozenset[str] | None = None,
) -> dict[str, Any]:
    """Parse *xml_bytes* into ``{root_tag: content}`` with namespaces stripped.

    Tags named in *force_list* are lists even when they occur once.

    Raises:
        ET.ParseError: If the body is not well-formed XML, an empty one included.
    """
    root = ET.fromstring(xml_bytes)
    force_list = force_list or frozenset()
    return {_strip_ns(root.tag): _element_to_dict(root, force_list)}


def _strip_ns(tag: str) -> str:
    return tag.rpartition("}")[2]


def _element_to_dict(
    element: ET.Element,
    force_list: set[str] | frozenset[str],
) -> dict[str, Any] | str | None:
    """Convert one element: leaves to their text (None when empty), others to a dict.

    Attributes, and text beside child elements, are dropped.
    A child tag maps to a list when it repeats or is in *force_list*.
    """
    children: dict[str, list[Any]] = {}
    for child in element:
        children.setdefault(_strip_ns(child.tag), []).append(_element_to_dict(child, force_list))

    if not children:
        return (element.text or "").strip() or None

    return {
        tag: values if tag in force_list or len(values) > 1 else values[0]
        for tag, values in children.items()
    }


def decode_xml(
    xml_bytes: bytes,
    model: type[M],
    force_list: set[str] | frozenset[str] = DEFAULT_FORCE_LIST,
) -> M:
    """Decode an XML document into *model*.

    The root element itself is discarded; its children are validated as the
    model's fields. An empty root element validates as an empty mapping, so
    every field takes its default.

    Raises:
        ET.ParseError: If the body is not well-formed XML.
        pydantic.ValidationError: If the tree does not fit the model.
    """
    tree = xml_to_dict(xml_bytes, force_list)
    content = next(iter(tree.values()))
    if content is None or isinstance(content, str):
        content = {}
    return model.model_validate(content)


# ---------------------------------------------------------------------------
# Python dict → XML bytes
# ---------------------------------------------------------------------------


def dict_to_xml(data: dict[str, Any], namespace: str | None = None) -> bytes:
    """Render a one-key dict as an XML document rooted at that key.

    A list under a key repeats that key as sibling elements; a list given
    directly as a value is written as ``<item>`` children, the way EC2
    writes its sets. None becomes an empty element and booleans are written
    as ``true`` / ``false``.

    Raises:
        ValueError: If *data* does not have exactly one top-level key.
    """
    if not isinstance(data, dict) or len(data) != 1:
        raise ValueError(f"dict_to_xml expects exactly one top-level key, got {data!r}")

    ((root_tag, content),) = data.items()
    root = _dict_to_element(root_tag, content)
    if namespace:
        root.set("xmlns", namespace)
    return ET.tostring(root, encoding="utf-8", xml_declaration=True)


def _dict_to_element(tag: str, value: Any) -> ET.Element:
    element = ET.Element(tag)
    if isinstance(value, dict):
        for key, child in value.items():
            for item in child if isinstance(child, list) else [child]:
                element.append(_dict_to_element(key, item))
    elif isinstance(value, list):
        for item in value:
            element.append(_dict_to_element("item", item))
    elif value is not None:
        element.text = _scalar_text(value)
    return element


def _scalar_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)
