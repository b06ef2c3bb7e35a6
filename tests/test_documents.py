from __future__ import annotations

import pytest

from airlog.core.errors import ParseError
from airlog.mapping.documents import parse_document, parse_json, parse_text, parse_xml


def test_parse_json_rejects_malformed_and_empty_bodies() -> None:
    with pytest.raises(ParseError) as exc:
        parse_json('{"title": ')
    assert exc.value.kind == "ParseError"
    with pytest.raises(ParseError):
        parse_json("   ")


def test_parse_xml_builds_plain_tree() -> None:
    body = """<?xml version="1.0"?>
    <playlist xmlns="urn:example">
      <track id="1"><artist>Alpha</artist><title>One</title></track>
      <track id="2"><artist>Beta</artist><title>Two</title></track>
      <station name="RTST">Radio Test</station>
    </playlist>"""
    doc = parse_xml(body)
    tracks = doc["playlist"]["track"]
    assert isinstance(tracks, list)
    assert tracks[0]["@id"] == "1"
    assert tracks[1]["title"] == "Two"
    assert doc["playlist"]["station"] == {"@name": "RTST", "#text": "Radio Test"}


def test_parse_xml_rejects_malformed_and_entity_expansion() -> None:
    with pytest.raises(ParseError):
        parse_xml("<now><title>Broken</now>")
    bomb = (
        '<?xml version="1.0"?><!DOCTYPE x [<!ENTITY a "aaaa">]>'
        "<now><title>&a;</title></now>"
    )
    with pytest.raises(ParseError):
        parse_xml(bomb)


def test_parse_text_reads_key_value_lines() -> None:
    doc = parse_text("artist=Alpha\ntitle: One\n")
    assert doc["artist"] == "Alpha"
    assert doc["title"] == "One"
    assert doc["lines"] == ["artist=Alpha", "title: One"]


def test_parse_text_splits_artist_dash_title() -> None:
    doc = parse_text("\ufeffAlpha - One Song\n")
    assert doc["artist"] == "Alpha"
    assert doc["title"] == "One Song"


def test_parse_document_dispatches_on_connection_type() -> None:
    assert parse_document('{"a": 1}', "application/json", "http_json") == {"a": 1}
    assert parse_document("<a>1</a>", "text/xml", "http_xml") == {"a": "1"}
    # JSON endpoints that answer in XML are read as XML
    assert parse_document("<a>1</a>", "application/xml", "ws_json") == {"a": "1"}
    with pytest.raises(ParseError):
        parse_document("<a>1</a>", "text/html", "http_json")
    with pytest.raises(ParseError):
        parse_document("x", None, "carrier_pigeon")
