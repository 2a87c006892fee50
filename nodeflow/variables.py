"""``{{dotted.path}}`` interpolation against a run's data bag."""

from __future__ import annotations

import json
import re
from typing import Any, Mapping, Sequence

PLACEHOLDER = re.compile(r"\{\{([^}]+)\}\}")

_MISSING = object()


def lookup(data: Any, path: str) -> Any:
    """Follow ``path`` through nested mappings and sequences.

    Returns ``_MISSING`` when any segment cannot be resolved.
    """
    current = data
    for segment in path.split("."):
        segment = segment.strip()
        if isinstance(current, Mapping):
            if segment in current:
                current = current[segment]
                continue
            return _MISSING
        if isinstance(current, Sequence) and not isinstance(current, (str, bytes)):
            # plain non-negative indexes only; "-1" does not count from the end
            if not segment.isdigit():
                return _MISSING
            try:
                current = current[int(segment)]
            except (ValueError, IndexError):
                return _MISSING
            continue
        return _MISSING
    return current


def render(value: Any) -> str:
    if value is None or value is _MISSING:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (Mapping, list, tuple)):
        return json.dumps(value, separators=(",", ":"), default=str)
    return str(value)


def resolve(template: str, data: Mapping[str, Any]) -> str:
    """Substitute every ``{{path}}`` in ``template`` with its value in ``data``.

    Missing paths become the empty string. Substituted text is not scanned
    again, so values containing braces are inserted literally.
    """
    if "{{" not in template:
        return template
    return PLACEHOLDER.sub(lambda m: render(lookup(data, m.group(1).strip())), template)


def resolve_value(value: Any, data: Mapping[str, Any]) -> Any:
    """Apply :func:`resolve` to every string nested inside ``value``."""
    if isinstance(value, str):
        return resolve(value, data)
    if isinstance(value, Mapping):
        return {key: resolve_value(item, data) for key, item in value.items()}
    if isinstance(value, list):
        return [resolve_value(item, data) for item in value]
    return value
