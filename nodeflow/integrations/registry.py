"""Registry mapping action types to integration executors."""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Union

from .base import IntegrationExecutor

logger = logging.getLogger(__name__)

ExecutorLike = Union[IntegrationExecutor, Callable[[Mapping, Mapping], Any]]


class IntegrationRegistry:
    """Holds the executor for each action type a worker can run."""

    def __init__(self, executors: Optional[Mapping[str, ExecutorLike]] = None) -> None:
        self._executors: Dict[str, ExecutorLike] = {}
        for name, executor in (executors or {}).items():
            self.register(name, executor)

    def register(self, action_type: str, executor: ExecutorLike) -> None:
        if not (callable(executor) or hasattr(executor, "execute")):
            raise TypeError(
                f"Executor for '{action_type}' must be callable or define execute()"
            )
        if action_type in self._executors:
            logger.info(f"Replacing integration executor for '{action_type}'")
        self._executors[action_type] = executor

    def get(self, action_type: str) -> Optional[ExecutorLike]:
        return self._executors.get(action_type)

    def names(self) -> Iterable[str]:
        return sorted(self._executors)

    def __contains__(self, action_type: object) -> bool:
        return action_type in self._executors

    async def invoke(
        self, action_type: str, config: Mapping[str, Any], data: Mapping[str, Any]
    ) -> Any:
        """Call the executor for ``action_type``.

        Coroutine functions are awaited; blocking callables run in a worker
        thread so a slow integration does not stall other runs.
        """
        executor = self._executors[action_type]
        fn = executor.execute if hasattr(executor, "execute") else executor
        if inspect.iscoroutinefunction(fn):
            return await fn(config, data)
        result = await asyncio.to_thread(fn, config, data)
        if inspect.isawaitable(result):
            result = await result
        return result
