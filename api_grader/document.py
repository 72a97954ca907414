"""Document access helpers for parsed OpenAPI documents."""

from __future__ import annotations

import re
from collections.abc import Iterator, Mapping
from pathlib import Path
from typing import Any

import yaml

Document = Mapping[str, Any]

HTTP_METHODS = ("get", "put", "post", "delete", "options", "head", "patch", "trace")
MUTATING_METHODS = ("post", "put", "patch", "delete")

_MAX_REF_HOPS = 32
_LOCATION_TOKEN = re.compile(r"\.([^.\[\]]+)|\['((?:[^'\\]|\\.)*)'\]")


class DocumentError(ValueError):
    """Raised when a document cannot be loaded or addressed."""


def load_document(path: Path) -> dict[str, Any]:
    """Load a YAML or JSON document from disk."""
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise DocumentError(f"Cannot read document {path}: {exc}") from exc
    return parse_document(raw, source=str(path))


def parse_document(raw: str, *, source: str = "<string>") -> dict[str, Any]:
    """Parse YAML or JSON text into a document mapping."""
    try:
        loaded = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        raise DocumentError(f"Invalid YAML/JSON in {source}: {exc}") from exc
    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise DocumentError(f"Document root in {source} must be a mapping")
    return loaded


def iter_operations(
    document: Document, methods: tuple[str, ...] = HTTP_METHODS
) -> Iterator[tuple[str, str, dict[str, Any], dict[str, Any]]]:
    """Yield ``(path, method, operation, path_item)`` for every operation."""
    paths = document.get("paths")
    if not isinstance(paths, Mapping):
        return
    for path, path_item in paths.items():
        if not isinstance(path_item, dict):
            continue
        for method in methods:
            operation = path_item.get(method)
            if isinstance(operation, dict):
                yield (str(path), method, operation, path_item)


def path_location(path: str) -> str:
    """Build the location key for a path item."""
    return f"$.paths['{_escape(path)}']"


def operation_location(path: str, method: str, *suffix: str) -> str:
    """Build the location key for an operation or one of its children."""
    location = f"{path_location(path)}.{method}"
    for part in suffix:
        location += f"['{_escape(part)}']" if not part.isidentifier() else f".{part}"
    return location


def lookup(document: Document, location: str) -> Any:
    """Resolve a location key such as ``$.paths['/users'].get`` to a node.

    Returns ``None`` when any segment is missing.
    """
    if not location.startswith("$"):
        raise DocumentError(f"Location must start with '$': {location}")
    remainder = location[1:]
    current: Any = document
    position = 0
    while position < len(remainder):
        match = _LOCATION_TOKEN.match(remainder, position)
        if match is None:
            raise DocumentError(f"Malformed location: {location}")
        key = match.group(1) if match.group(1) is not None else _unescape(match.group(2))
        position = match.end()
        if isinstance(current, Mapping):
            value = current.get(key)
            # YAML loads unquoted status codes as integers
            if value is None and key.isdigit():
                value = current.get(int(key))
            current = value
        elif isinstance(current, list) and key.isdigit() and int(key) < len(current):
            current = current[int(key)]
        else:
            return None
        if current is None:
            return None
    return current


def resolve_ref(document: Document, node: Any) -> Any:
    """Follow local ``$ref`` pointers until a concrete node is reached.

    External references and reference loops resolve to ``None``.
    """
    seen: set[str] = set()
    current = node
    for _ in range(_MAX_REF_HOPS):
        if not isinstance(current, Mapping) or "$ref" not in current:
            return current
        ref = current["$ref"]
        if not isinstance(ref, str) or not ref.startswith("#/") or ref in seen:
            return None
        seen.add(ref)
        current = _resolve_pointer(document, ref)
    return None


def effective_parameters(
    document: Document, path_item: Mapping[str, Any], operation: Mapping[str, Any]
) -> list[dict[str, Any]]:
    """Merge path-level and operation-level parameters with refs resolved.

    Operation parameters override path parameters with the same name and
    location.
    """
    merged: dict[tuple[str, str], dict[str, Any]] = {}
    for source in (path_item.get("parameters"), operation.get("parameters")):
        if not isinstance(source, list):
            continue
        for raw in source:
            param = resolve_ref(document, raw)
            if not isinstance(param, dict):
                continue
            name = param.get("name")
            location = param.get("in")
            if not isinstance(name, str) or not isinstance(location, str):
                continue
            merged[(name.lower(), location.lower())] = param
    return list(merged.values())


def has_parameter(
    document: Document,
    path_item: Mapping[str, Any],
    operation: Mapping[str, Any],
    name: str,
    location: str = "header",
) -> bool:
    """Return whether the operation effectively declares the parameter.

    Header names compare case-insensitively.
    """
    key = (name.lower(), location.lower())
    for param in effective_parameters(document, path_item, operation):
        if (str(param["name"]).lower(), str(param["in"]).lower()) == key:
            return True
    return False


def iter_responses(
    document: Document, operation: Mapping[str, Any]
) -> Iterator[tuple[str, dict[str, Any]]]:
    """Yield ``(status, response)`` pairs with response refs resolved."""
    responses = operation.get("responses")
    if not isinstance(responses, Mapping):
        return
    for status, raw in responses.items():
        response = resolve_ref(document, raw)
        if isinstance(response, dict):
            yield (str(status), response)


def media_types(document: Document, node: Any) -> dict[str, dict[str, Any]]:
    """Return the ``content`` media map of a response or request body."""
    resolved = resolve_ref(document, node)
    if not isinstance(resolved, Mapping):
        return {}
    content = resolved.get("content")
    if not isinstance(content, Mapping):
        return {}
    return {str(name): media for name, media in content.items() if isinstance(media, dict)}


def has_example(document: Document, media: Mapping[str, Any]) -> bool:
    """Return whether a media type object carries an example."""
    if media.get("example") is not None:
        return True
    examples = media.get("examples")
    if isinstance(examples, Mapping) and examples:
        return True
    schema = resolve_ref(document, media.get("schema"))
    return isinstance(schema, Mapping) and schema.get("example") is not None


def _resolve_pointer(document: Document, ref: str) -> Any:
    current: Any = document
    for token in ref[2:].split("/"):
        token = token.replace("~1", "/").replace("~0", "~")
        if not isinstance(current, Mapping):
            return None
        current = current.get(token)
        if current is None:
            return None
    return current


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace("'", "\\'")


def _unescape(value: str) -> str:
    return re.sub(r"\\(.)", r"\1", value)
