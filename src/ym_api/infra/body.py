"""Response body decoding: decompression and content-type driven parsing.

JSON bodies are parsed strictly: a body declared as JSON that does not parse
raises JsonParseError. XML and plain text degrade gracefully: a body that
looks like XML but does not parse is returned as text.
"""

from __future__ import annotations

import gzip
import json
import logging
import zlib
from typing import Any, Optional
from xml.etree import ElementTree

import brotli

from ..core.domain.models import ParsedBody
from ..core.errors import DecodeError, JsonParseError

logger = logging.getLogger(__name__)

ATTR_PREFIX = "@_"
TEXT_KEY = "#text"


def decompress_bytes(raw: bytes, encoding: Optional[str]) -> bytes:
    """Undo Content-Encoding; unknown or absent encodings pass through.

    A body that does not match its declared encoding raises DecodeError.
    """
    enc = (encoding or "").strip().lower()
    try:
        if enc == "gzip":
            return gzip.decompress(raw)
        if enc == "deflate":
            return _inflate(raw)
        if enc == "br":
            return brotli.decompress(raw)
    except (OSError, EOFError, zlib.error, brotli.error) as e:
        raise DecodeError(f"Body is not valid {enc} data: {e}") from e
    return raw


def decompress(raw: bytes, encoding: Optional[str]) -> str:
    """Undo Content-Encoding and decode as UTF-8."""
    return decompress_bytes(raw, encoding).decode("utf-8", errors="replace")


def _inflate(raw: bytes) -> bytes:
    try:
        return zlib.decompress(raw)
    except zlib.error:
        # Some servers send raw deflate without the zlib header
        return zlib.decompress(raw, -zlib.MAX_WBITS)


def unwrap_envelope(value: Any) -> Any:
    """Return `result` of an `{invocationInfo, result}` envelope, else the value itself.

    A null or missing `result` yields the whole envelope.
    """
    if isinstance(value, dict) and value.get("result") is not None:
        return value["result"]
    return value


def parse_body(text: str, content_type: Optional[str]) -> ParsedBody:
    ctype = (content_type or "").lower()
    if "json" in ctype:
        try:
            data = json.loads(text)
        except ValueError as e:
            raise JsonParseError(text) from e
        return ParsedBody.json(unwrap_envelope(data))

    if "xml" in ctype or text.lstrip().startswith("<"):
        try:
            return ParsedBody.xml(parse_xml(text))
        except ElementTree.ParseError as e:
            logger.debug("XML-looking body failed to parse (%s); returning raw text", e)
            return ParsedBody.text(text)

    return ParsedBody.text(text)


def parse_xml(text: str) -> dict[str, Any]:
    """Parse an XML document into a nested dict keyed by the root tag.

    Attributes become `@_name` keys, mixed text becomes `#text`, repeated
    child tags become lists and text-only elements collapse to their string.
    """
    root = ElementTree.fromstring(text.strip())
    return {root.tag: _element_to_value(root)}


def _element_to_value(elem: ElementTree.Element) -> Any:
    node: dict[str, Any] = {f"{ATTR_PREFIX}{k}": v for k, v in elem.attrib.items()}

    for child in elem:
        value = _element_to_value(child)
        if child.tag in node:
            existing = node[child.tag]
            if isinstance(existing, list):
                existing.append(value)
            else:
                node[child.tag] = [existing, value]
        else:
            node[child.tag] = value

    text = (elem.text or "").strip()
    if not node:
        return text
    if text:
        node[TEXT_KEY] = text
    return node
