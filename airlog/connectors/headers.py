"""AIRLOG — Connection Header Handling.

Connections store an opaque string→string header map. HTTP-style connections
saved without headers get a per-type default Accept set at storage time; the
engine then sends whatever is stored. For ``ws_json`` a few reserved keys
configure the subscription frame instead of being sent on the handshake.
"""

import json
from typing import Any, Dict, Optional

SUBSCRIBE_PAYLOAD_KEYS = ("subscribe_payload", "subscribe_message")
SERVICE_ID_KEYS = ("serviceId", "service_id")
RESERVED_KEYS = frozenset(SUBSCRIBE_PAYLOAD_KEYS + SERVICE_ID_KEYS)

_NO_CACHE = {"Cache-Control": "no-cache", "Pragma": "no-cache"}

DEFAULT_ACCEPT = {
    "http_json": "application/json, text/javascript, */*; q=0.01",
    "http_xml": "application/xml, text/xml;q=0.9, */*;q=0.8",
    "http_text": "text/plain, */*;q=0.8",
    "rss": "application/rss+xml, application/xml;q=0.9, */*;q=0.8",
}


def should_default_headers(connection_type: str) -> bool:
    return connection_type.lower() != "ws_json"


def default_headers(connection_type: str) -> Dict[str, str]:
    """Default request headers for an HTTP-style connection type."""
    accept = DEFAULT_ACCEPT.get(connection_type.lower(), DEFAULT_ACCEPT["http_json"])
    return {"Accept": accept, **_NO_CACHE}


def coerce_headers(headers: Optional[Dict[str, Any]]) -> Dict[str, str]:
    """Keep string/number/bool values as strings; drop nested values."""
    result: Dict[str, str] = {}
    for key, value in (headers or {}).items():
        if isinstance(value, str):
            result[str(key)] = value
        elif isinstance(value, bool):
            result[str(key)] = "true" if value else "false"
        elif isinstance(value, (int, float)):
            result[str(key)] = str(value)
        elif isinstance(value, (dict, list)) and key in SUBSCRIBE_PAYLOAD_KEYS:
            # Structured subscription frames are kept as JSON text
            result[str(key)] = json.dumps(value)
    return result


def normalize_headers_for_storage(
    connection_type: str, headers: Optional[Dict[str, Any]]
) -> Dict[str, str]:
    """Headers as they should be persisted on a connection."""
    cleaned = coerce_headers(headers)
    if should_default_headers(connection_type) and not cleaned:
        return default_headers(connection_type)
    return cleaned


def request_headers(headers: Optional[Dict[str, str]]) -> Dict[str, str]:
    """Headers to put on the wire (reserved subscription keys removed)."""
    return {k: v for k, v in (headers or {}).items() if k not in RESERVED_KEYS}


def subscribe_message(headers: Optional[Dict[str, str]]) -> Optional[str]:
    """Subscription frame for a ``ws_json`` connection, if one is configured."""
    headers = headers or {}
    for key in SUBSCRIBE_PAYLOAD_KEYS:
        if headers.get(key):
            return headers[key]
    for key in SERVICE_ID_KEYS:
        if headers.get(key):
            return json.dumps({"action": "subscribe", "serviceId": headers[key]})
    return None
