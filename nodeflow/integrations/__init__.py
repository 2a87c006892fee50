"""Pluggable integration executors invoked by action nodes."""

from .base import IntegrationExecutor
from .registry import IntegrationRegistry

__all__ = ["IntegrationExecutor", "IntegrationRegistry"]
