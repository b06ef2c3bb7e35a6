"""AIRLOG — Payload Parsers.

Turns a raw body into a plain document tree (dicts, lists, strings) so that
path resolution never needs to know which wire format it came from.
"""

import json
import re
from typing import Any, Dict, Optional

from defusedxml import DefusedXmlException
from defusedxml import ElementTree as ET

from airlog.core.errors import ParseError

JSON_TYPES = {"http_json", "ws_json"}
XML_TYPES = {"http_xml", "rss"}
TEXT_TYPES = {"http_text"}

_KEY_VALUE = re.compile(r"^([A-Za-z][\w ]{0,40}?)\s*[=:]\s*(.+)$")
_TEXT_RESERVED = {"text", "lines"}


# ── JSON ──


def parse_json(body: str) -> Any:
    if not body.strip():
        raise ParseError("Empty body")
    try:
        return json.loads(body)
    except json.JSONDecodeError as e:
        raise ParseError(
            f"Invalid JSON: {e.msg} (line {e.lineno}, column {e.colno})"
        ) from e


# ── XML / RSS / Atom ──


def _local_name(tag: str) -> str:
    """Strip ``{namespace}`` from an ElementTree tag."""
    if "}" in tag:
        return tag.split("}", 1)[1]
    return tag


def _element_value(elem) -> Any:
    children = list(elem)
    text = (elem.text or "").strip()
    if not children and not elem.attrib:
        return text

    node: Dict[str, Any] = {}
    for attr, value in elem.attrib.items():
        node[f"@{_local_name(attr)}"] = value
    for child in children:
        if not isinstance(child.tag, str):
            continue
        name = _local_name(child.tag)
        value = _element_value(child)
        if name not in node:
            node[name] = value
        elif isinstance(node[name], list):
            node[name].append(value)
        else:
            node[name] = [node[name], value]
    if text:
        node["#text"] = text
    return node


def parse_xml(body: str) -> Dict[str, Any]:
    """Parse XML into ``{root_name: tree}``.

    Repeated elements become lists, attributes are ``@name`` and the text of
    an element that also has attributes/children is ``#text``.
    """
    if not body.strip():
        raise ParseError("Empty body")
    try:
        root = ET.fromstring(body.strip().lstrip("\ufeff"))
    except ET.ParseError as e:
        raise ParseError(f"Invalid XML: {e}") from e
    except DefusedXmlException as e:
        raise ParseError(f"Rejected XML: {e!r}") from e
    return {_local_name(root.tag): _element_value(root)}


# ── Plain text ──


def parse_text(body: str) -> Dict[str, Any]:
    """Expose a text body as ``{text, lines, ...}``.

    ``key=value`` / ``key: value`` lines become fields; otherwise the first
    line is read as ``Artist - Title``.
    """
    text = body.lstrip("\ufeff").strip()
    lines = [line.strip() for line in text.splitlines() if line.strip()]
    doc: Dict[str, Any] = {"text": text, "lines": lines}

    for line in lines:
        match = _KEY_VALUE.match(line)
        if not match:
            continue
        key = match.group(1).strip().lower().replace(" ", "_")
        if key not in _TEXT_RESERVED:
            doc.setdefault(key, match.group(2).strip())

    if lines and "artist" not in doc and "title" not in doc:
        artist, sep, title = lines[0].partition(" - ")
        if sep:
            doc["artist"] = artist.strip()
            doc["title"] = title.strip()
        else:
            doc["title"] = lines[0]
    return doc


# ── Dispatch ──


def _looks_like_xml(body: str, content_type: Optional[str]) -> bool:
    return body.lstrip().startswith("<") and "xml" in (content_type or "").lower()


def parse_document(
    body: str, content_type: Optional[str], connection_type: str
) -> Any:
    """Parse ``body`` according to the connection type.

    Raises:
        ParseError: when the body is not valid for the declared format.
    """
    ctype = connection_type.lower()
    if ctype in XML_TYPES:
        return parse_xml(body)
    if ctype in TEXT_TYPES:
        return parse_text(body)
    if ctype in JSON_TYPES:
        # Some JSON endpoints answer with XML; trust the content type then
        if _looks_like_xml(body, content_type):
            return parse_xml(body)
        return parse_json(body)
    raise ParseError(f"Unsupported connection type '{connection_type}'")
