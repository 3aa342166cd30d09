"""
Path addressing for nested form values.

A location inside a nested value tree is encoded as a single string name:
object keys are dot-joined and array indices are bracket-joined, so the
segments ``["tasks", 0, "content"]`` become ``"tasks[0].content"``. The empty
segment sequence is the root path ``""``.

All functions here are pure. Trees passed to ``set_value`` are never mutated;
the containers along the written path are copied (path copying) and every
other branch is shared with the input.
"""

import copy
import datetime
import re
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from formstate.exceptions import PathError

Segment = Union[str, int]

_SEGMENT_PATTERN = re.compile(r"\[(\d+)\]|\.?([^.\[\]]+)")


def format_paths(segments: Sequence[Segment]) -> str:
    """Join segments into a path name.

    Args:
        segments: Object keys (str) and array indices (int)

    Returns:
        Path string, ``""`` for an empty sequence
    """
    name = ""
    for segment in segments:
        if isinstance(segment, bool):
            raise PathError(f"Boolean is not a valid path segment: {segment!r}")
        if isinstance(segment, int):
            name = f"{name}[{segment}]"
        elif name == "" or segment == "":
            name = f"{name}{segment}"
        else:
            name = f"{name}.{segment}"
    return name


def get_paths(name: Optional[str]) -> List[Segment]:
    """Split a path name into its segments.

    Raises:
        PathError: If the name is not a well-formed path
    """
    if not name:
        return []

    segments: List[Segment] = []
    position = 0
    while position < len(name):
        match = _SEGMENT_PATTERN.match(name, position)
        # A leading dot is only allowed between segments
        if match is None or (position == 0 and name.startswith(".")):
            raise PathError(f"Malformed path {name!r} at position {position}")
        index, key = match.groups()
        if index is not None:
            segments.append(int(index))
        else:
            if position > 0 and not match.group(0).startswith("."):
                raise PathError(f"Missing separator in path {name!r} at position {position}")
            segments.append(key)
        position = match.end()
    return segments


def format_name(name: str, index: Optional[Segment] = None) -> str:
    """Append a single segment to ``name`` (no-op when index is None)."""
    if index is None:
        return name
    return format_paths([*get_paths(name), index])


def get_parent(name: str) -> Optional[str]:
    """Return the parent path, or None for the root path."""
    if name == "":
        return None
    return format_paths(get_paths(name)[:-1])


def get_ancestors(name: str) -> List[str]:
    """All strict ancestors of ``name``, nearest first, ending with the root."""
    segments = get_paths(name)
    return [format_paths(segments[:i]) for i in range(len(segments) - 1, -1, -1)]


def is_prefix(name: str, prefix: str) -> bool:
    """Check whether ``prefix`` addresses ``name`` itself or one of its ancestors."""
    if prefix == "":
        return True
    if name == prefix:
        return True
    if not name.startswith(prefix):
        return False
    return name[len(prefix)] in ".["


def is_ancestor(candidate: str, name: str) -> bool:
    """``is_prefix`` with the ancestor first."""
    return is_prefix(name, candidate)


def is_plain_object(value: Any) -> bool:
    return isinstance(value, dict)


def is_container(value: Any) -> bool:
    return isinstance(value, (dict, list))


def normalize(value: Any) -> Any:
    """Bring a value into the shape a form control would submit it in.

    Empty strings, ``False``, empty lists and empty dicts (after normalizing
    their members) all mean "nothing entered" and collapse to None; ``True``
    becomes ``"on"`` (a checked checkbox), numbers and dates become strings.
    Used for dirty checking, where a default of ``False`` must equal an
    unchecked box that submitted nothing.
    """
    if value is None or value == "" or value is False:
        return None
    if value is True:
        return "on"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, (datetime.date, datetime.time)):
        return value.isoformat()
    if isinstance(value, dict):
        result = {}
        for key, item in value.items():
            normalized = normalize(item)
            if normalized is not None:
                result[key] = normalized
        return result or None
    if isinstance(value, list):
        return [normalize(item) for item in value] or None
    return value


def get_value(target: Any, name: str, default: Any = None) -> Any:
    """Read the value at ``name`` inside ``target``.

    Missing keys, out-of-range indices and type mismatches yield ``default``.
    """
    current = target
    for segment in get_paths(name):
        if isinstance(segment, int):
            if not isinstance(current, list) or segment >= len(current):
                return default
            current = current[segment]
        else:
            if not isinstance(current, dict) or segment not in current:
                return default
            current = current[segment]
    return current


def set_value(target: Any, name: str, value: Any) -> Any:
    """Return a copy of ``target`` with ``value`` written at ``name``.

    ``value`` may be a callable, in which case it receives the previous value
    (or None) and its return value is written. Missing containers are created:
    a dict for a key segment and a list for an index segment. Lists are padded
    with None when the index is past the end.
    """
    segments = get_paths(name)
    if not segments:
        return value(target) if callable(value) else value
    return _set_in(target, segments, value)


def _set_in(node: Any, segments: List[Segment], value: Any) -> Any:
    head, rest = segments[0], segments[1:]

    if isinstance(head, int):
        result = list(node) if isinstance(node, list) else []
        while len(result) <= head:
            result.append(None)
        previous = result[head]
    else:
        result = dict(node) if isinstance(node, dict) else {}
        previous = result.get(head)

    if rest:
        result[head] = _set_in(previous, rest, value)
    else:
        result[head] = value(previous) if callable(value) else value
    return result


def flatten(
    data: Any,
    prefix: str = "",
    resolve: Optional[Callable[[Any], Any]] = None,
) -> Dict[str, Any]:
    """Flatten a value tree into a path → value mapping.

    Every node is included, containers too; the entry for ``prefix`` holds the
    whole tree. Values are deep-copied so the flat map owns its data.

    Args:
        data: Nested dicts/lists/scalars
        prefix: Path of ``data`` inside a bigger tree
        resolve: Optional transform applied to every node before storing
    """
    result: Dict[str, Any] = {}

    def process(node: Any, path: str) -> None:
        resolved = resolve(node) if resolve else node
        result[path] = copy.deepcopy(resolved)
        if isinstance(node, list):
            for index, item in enumerate(node):
                process(item, f"{path}[{index}]")
        elif isinstance(node, dict):
            for key, item in node.items():
                process(item, f"{path}.{key}" if path else str(key))

    process(data, prefix)
    return result


def deep_merge(base: Any, patch: Any) -> Any:
    """Merge ``patch`` into ``base`` recursively (dicts only, lists replace)."""
    if not isinstance(base, dict) or not isinstance(patch, dict):
        return copy.deepcopy(patch)
    merged = dict(base)
    for key, value in patch.items():
        merged[key] = deep_merge(base.get(key), value)
    return merged
