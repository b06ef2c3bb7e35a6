"""AIRLOG — Field Path Expressions.

A path addresses one value inside a parsed payload (JSON value, XML tree or
text document, all of them plain dicts, lists and scalars by the time they
get here):

    artist                  key lookup
    now.track[0].title      nested keys and list indices
    items[-1]               negative indices count from the end
    ['dc.creator']          quoted keys for names containing dots
    ..title                 first descendant named ``title``

Paths are compiled once into a tuple of typed steps and resolved without
reflection. Anything that cannot be resolved yields ``None``; an unresolved
field is an absent field, never an error.
"""

from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Iterable, Optional, Tuple, Union


@dataclass(frozen=True)
class Key:
    name: str


@dataclass(frozen=True)
class Index:
    position: int


@dataclass(frozen=True)
class Descend:
    name: str


Step = Union[Key, Index, Descend]


class PathSyntaxError(ValueError):
    """Raised when a path expression is malformed."""


# ── Compilation ──


def _read_name(path: str, start: int) -> Tuple[str, int]:
    end = start
    while end < len(path) and path[end] not in ".[]":
        end += 1
    return path[start:end].strip(), end


@lru_cache(maxsize=1024)
def compile_path(path: str) -> Tuple[Step, ...]:
    """Compile a path expression into typed steps."""
    path = path.strip()
    if not path:
        raise PathSyntaxError("Empty path")

    steps: list = []
    i = 0
    while i < len(path):
        if path.startswith("..", i):
            name, i = _read_name(path, i + 2)
            if not name:
                raise PathSyntaxError(f"Missing name after '..' in {path!r}")
            steps.append(Descend(name))
        elif path[i] == ".":
            name, i = _read_name(path, i + 1)
            if not name:
                raise PathSyntaxError(f"Missing key after '.' in {path!r}")
            steps.append(Key(name))
        elif path[i] == "[":
            close = path.find("]", i)
            if close == -1:
                raise PathSyntaxError(f"Unclosed '[' in {path!r}")
            inner = path[i + 1 : close].strip()
            if len(inner) >= 2 and inner[0] in "'\"" and inner[-1] == inner[0]:
                steps.append(Key(inner[1:-1]))
            else:
                try:
                    steps.append(Index(int(inner)))
                except ValueError:
                    raise PathSyntaxError(
                        f"Invalid index {inner!r} in {path!r}"
                    ) from None
            i = close + 1
        elif i == 0:
            name, i = _read_name(path, 0)
            if not name:
                raise PathSyntaxError(f"Unexpected character in {path!r}")
            steps.append(Key(name))
        else:
            raise PathSyntaxError(f"Unexpected {path[i]!r} at position {i} in {path!r}")

    return tuple(steps)


def validate_path(path: Optional[str]) -> Optional[str]:
    """Return the stripped path, ``None`` for blank input; raise if malformed."""
    if path is None or not path.strip():
        return None
    compile_path(path.strip())
    return path.strip()


# ── Resolution ──


def _lookup_key(node: Any, name: str) -> Any:
    if isinstance(node, dict):
        return node.get(name)
    if isinstance(node, list):
        # Repeated XML elements and top-level JSON arrays: look in the first
        # element that carries the key
        for item in node:
            if isinstance(item, dict) and name in item:
                return item[name]
    return None


def _lookup_index(node: Any, position: int) -> Any:
    if isinstance(node, list):
        if -len(node) <= position < len(node):
            return node[position]
        return None
    # A single XML element is a one-element list
    if position in (0, -1):
        return node
    return None


def _find_descendant(node: Any, name: str) -> Any:
    if isinstance(node, dict):
        if name in node:
            return node[name]
        children: Iterable[Any] = node.values()
    elif isinstance(node, list):
        children = node
    else:
        return None
    for child in children:
        found = _find_descendant(child, name)
        if found is not None:
            return found
    return None


def resolve_steps(document: Any, steps: Tuple[Step, ...]) -> Any:
    current = document
    for step in steps:
        if current is None:
            return None
        if isinstance(step, Key):
            current = _lookup_key(current, step.name)
        elif isinstance(step, Index):
            current = _lookup_index(current, step.position)
        else:
            current = _find_descendant(current, step.name)
    return current


def resolve_path(document: Any, path: Optional[str]) -> Any:
    """Resolve ``path`` against ``document``; ``None`` when unresolvable."""
    if not path:
        return None
    try:
        steps = compile_path(path)
    except PathSyntaxError:
        return None
    return resolve_steps(document, steps)
