from __future__ import annotations

import pytest

from airlog.mapping.paths import (
    Descend,
    Index,
    Key,
    PathSyntaxError,
    compile_path,
    resolve_path,
    validate_path,
)

DOC = {
    "now": {"track": [{"title": "First"}, {"title": "Second"}]},
    "dc.creator": "Someone",
    "deep": {"a": {"b": {"artist": "Nested"}}},
}


def test_compile_path_produces_typed_steps() -> None:
    assert compile_path("now.track[0].title") == (
        Key("now"),
        Key("track"),
        Index(0),
        Key("title"),
    )
    assert compile_path("..artist") == (Descend("artist"),)
    assert compile_path("['dc.creator']") == (Key("dc.creator"),)


def test_resolve_path_handles_indices_and_quoted_keys() -> None:
    assert resolve_path(DOC, "now.track[0].title") == "First"
    assert resolve_path(DOC, "now.track[-1].title") == "Second"
    assert resolve_path(DOC, "['dc.creator']") == "Someone"
    assert resolve_path(DOC, "..artist") == "Nested"


def test_unresolvable_path_yields_none() -> None:
    assert resolve_path(DOC, "now.track[5].title") is None
    assert resolve_path(DOC, "missing.key") is None
    assert resolve_path(DOC, "now.track[0].title.more") is None
    assert resolve_path(DOC, "") is None
    assert resolve_path(DOC, "bad[") is None


def test_key_lookup_on_list_uses_first_element_with_key() -> None:
    assert resolve_path([{"x": 1}, {"title": "Here"}], "title") == "Here"


def test_index_zero_on_single_value_returns_value() -> None:
    assert resolve_path({"item": {"title": "Only"}}, "item[0].title") == "Only"
    assert resolve_path({"item": {"title": "Only"}}, "item[1].title") is None


@pytest.mark.parametrize("path", ["a..", "a.[0]", "a[x]", "a[0", ".", "a]"])
def test_validate_path_rejects_malformed_paths(path: str) -> None:
    with pytest.raises(PathSyntaxError):
        validate_path(path)


def test_validate_path_strips_and_blanks_to_none() -> None:
    assert validate_path("  data.title ") == "data.title"
    assert validate_path("   ") is None
    assert validate_path(None) is None
