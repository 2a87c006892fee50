"""Node type dispatch and configuration schemas."""

from .dispatcher import NodeDispatcher
from .schemas import ACTION_ALIASES, ACTION_TYPES, CONDITION_TYPES

__all__ = ["NodeDispatcher", "ACTION_TYPES", "ACTION_ALIASES", "CONDITION_TYPES"]
