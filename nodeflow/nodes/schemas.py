"""Subtypes each node kind accepts and the config fields they require."""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Tuple

ACTION_TYPES: Dict[str, Tuple[str, ...]] = {
    "http": ("url",),
    "email": ("to", "subject", "body"),
    "database": ("operation", "table"),
    "chat_message": ("token", "channel"),
    "spreadsheet": ("access_token", "spreadsheet_id"),
}

ACTION_ALIASES: Dict[str, str] = {
    "http_request": "http",
    "chat-message": "chat_message",
    "slack": "chat_message",
    "google_sheets": "spreadsheet",
}

CONDITION_TYPES: Tuple[str, ...] = ("if", "filter")

DEFAULT_ACTION_TYPE = "http"
DEFAULT_CONDITION_TYPE = "if"


def canonical_action_type(action_type: str) -> Optional[str]:
    """Map ``action_type`` or one of its aliases to the registered name."""
    name = ACTION_ALIASES.get(action_type, action_type)
    return name if name in ACTION_TYPES else None


def missing_fields(action_type: str, config: Mapping[str, Any]) -> List[str]:
    """Return required fields of ``action_type`` that are absent or empty."""
    return [
        field
        for field in ACTION_TYPES.get(action_type, ())
        if config.get(field) in (None, "", [], {})
    ]
