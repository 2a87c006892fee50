"""Integration executor interface."""

from __future__ import annotations

from typing import Any, Awaitable, Mapping, Protocol, Union, runtime_checkable


@runtime_checkable
class IntegrationExecutor(Protocol):
    """Performs the side effect behind one action type.

    Implementations receive the node config with every placeholder already
    resolved plus the data bag the node was given. They may be sync or
    async and must be safe to run again when a whole execution is retried.
    """

    def execute(
        self, config: Mapping[str, Any], data: Mapping[str, Any]
    ) -> Union[Mapping[str, Any], Awaitable[Mapping[str, Any]]]:
        ...
