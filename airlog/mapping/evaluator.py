"""AIRLOG — Mapping Evaluator.

Pure function from (payload, content type, connection type, mapping) to an
ordered sequence of NormalizedRecords. No I/O, no state: identical inputs
always produce identical output.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from airlog.core.errors import ParseError
from airlog.mapping.documents import JSON_TYPES, XML_TYPES, parse_document
from airlog.mapping.paths import resolve_path
from airlog.mapping.values import coerce_text, parse_duration, parse_timestamp
from airlog.models.normalized_models import Evaluation, NormalizedRecord


@dataclass(frozen=True)
class FieldPaths:
    """Candidate paths per field; the first one that yields a value wins."""

    artist: Tuple[str, ...] = ()
    title: Tuple[str, ...] = ()
    album: Tuple[str, ...] = ()
    reported_at: Tuple[str, ...] = ()
    duration: Tuple[str, ...] = ()
    list_path: Optional[str] = None

    @classmethod
    def from_mapping(cls, mapping: Any) -> "FieldPaths":
        """Build from a PayloadMapping (or anything with ``*_path`` attributes)."""

        def _paths(attr: str) -> Tuple[str, ...]:
            value = getattr(mapping, attr, None)
            return (value.strip(),) if value and value.strip() else ()

        list_path = getattr(mapping, "list_path", None)
        return cls(
            artist=_paths("artist_path"),
            title=_paths("title_path"),
            album=_paths("album_path"),
            reported_at=_paths("reported_at_path"),
            duration=_paths("duration_path"),
            list_path=list_path.strip() if list_path and list_path.strip() else None,
        )


# ─────────────────────────────────────────────
# DEFAULT PATHS: used when a connection has no mapping
# ─────────────────────────────────────────────

JSON_DEFAULTS = FieldPaths(
    artist=("artist", "artistName", "..artist"),
    title=("title", "song", "trackName", "..title"),
    album=("album", "collectionName", "..album"),
    duration=("duration", "durationSeconds", "duration_seconds"),
)

XML_DEFAULTS = FieldPaths(
    artist=("..artist", "..Artist"),
    title=("..title", "..Title"),
    album=("..album", "..Album"),
    duration=("..duration", "..Duration"),
)

RSS_DEFAULTS = FieldPaths(
    title=(
        "rss.channel.item[0].title",
        "feed.entry[0].title",
        "RDF.item[0].title",
    ),
    reported_at=(
        "rss.channel.item[0].pubDate",
        "feed.entry[0].updated",
        "feed.entry[0].published",
        "RDF.item[0].date",
    ),
)

TEXT_DEFAULTS = FieldPaths(
    artist=("artist",),
    title=("title",),
    album=("album",),
    duration=("duration",),
)


def default_paths(connection_type: str) -> FieldPaths:
    """Stable per-type default extraction paths."""
    ctype = connection_type.lower()
    if ctype == "rss":
        return RSS_DEFAULTS
    if ctype in XML_TYPES:
        return XML_DEFAULTS
    if ctype in JSON_TYPES:
        return JSON_DEFAULTS
    return TEXT_DEFAULTS


# ── Extraction ──


def _first_value(element: Any, paths: Tuple[str, ...], convert) -> Any:
    for path in paths:
        value = convert(resolve_path(element, path))
        if value is not None:
            return value
    return None


def extract_record(element: Any, paths: FieldPaths) -> NormalizedRecord:
    """Evaluate the field paths against one element."""
    return NormalizedRecord(
        artist=_first_value(element, paths.artist, coerce_text),
        title=_first_value(element, paths.title, coerce_text),
        album=_first_value(element, paths.album, coerce_text),
        reported_at=_first_value(element, paths.reported_at, parse_timestamp),
        duration_seconds=_first_value(element, paths.duration, parse_duration),
    )


def _unwrap(document: Any) -> Optional[Any]:
    """Inner value of a single-key wrapper object like ``{"data": {...}}``."""
    if isinstance(document, dict) and len(document) == 1:
        return next(iter(document.values()))
    return None


def extract_records(document: Any, paths: FieldPaths) -> List[NormalizedRecord]:
    """Expand ``list_path`` (if any) and extract one record per element."""
    if paths.list_path:
        items = resolve_path(document, paths.list_path)
        if items is None:
            inner = _unwrap(document)
            if inner is not None:
                items = resolve_path(inner, paths.list_path)
        if items is None:
            return []
        if not isinstance(items, list):
            items = [items]
        return [extract_record(item, paths) for item in items]

    record = extract_record(document, paths)
    if record.is_empty:
        inner = _unwrap(document)
        if inner is not None:
            unwrapped = extract_record(inner, paths)
            if not unwrapped.is_empty:
                return [unwrapped]
    return [record]


def evaluate(
    body: str,
    content_type: Optional[str],
    connection_type: str,
    mapping: Any = None,
) -> Evaluation:
    """Parse ``body`` and apply ``mapping`` (or the type defaults).

    A parse failure never raises: it yields no records and a ``parse_error``
    message for the caller to surface as ``last_error``.
    """
    try:
        document = parse_document(body, content_type, connection_type)
    except ParseError as e:
        return Evaluation(records=[], parse_error=e.describe())

    paths = (
        FieldPaths.from_mapping(mapping)
        if mapping is not None
        else default_paths(connection_type)
    )
    return Evaluation(records=extract_records(document, paths))


def describe_defaults() -> Dict[str, Dict[str, List[str]]]:
    """Default paths per connection type, for API consumers."""
    result: Dict[str, Dict[str, List[str]]] = {}
    for ctype in ("http_json", "ws_json", "http_xml", "rss", "http_text"):
        paths = default_paths(ctype)
        result[ctype] = {
            "artist": list(paths.artist),
            "title": list(paths.title),
            "album": list(paths.album),
            "reported_at": list(paths.reported_at),
            "duration": list(paths.duration),
        }
    return result
