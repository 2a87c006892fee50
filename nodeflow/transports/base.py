"""Job queue interface shared by every transport backend."""

from __future__ import annotations

import abc
from typing import AsyncIterator, Generic, Optional, Tuple, TypeVar

from ..contracts import ExecutionJob

RawMessageT = TypeVar("RawMessageT")


class BaseTransport(Generic[RawMessageT], metaclass=abc.ABCMeta):
    """Durable queue of :class:`ExecutionJob` envelopes.

    A delivered job stays owned by the consumer until it is acked or
    nacked. ``RawMessageT`` is whatever handle the backend needs to settle
    a delivery; callers treat it as opaque.
    """

    async def connect(self) -> None:
        pass

    async def disconnect(self) -> None:
        pass

    async def __aenter__(self) -> "BaseTransport[RawMessageT]":
        await self.connect()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.disconnect()

    @abc.abstractmethod
    async def publish(self, topic: str, job: ExecutionJob, delay: float = 0) -> None:
        """Enqueue ``job`` on ``topic``; it becomes deliverable after ``delay`` seconds."""
        raise NotImplementedError

    @abc.abstractmethod
    def subscribe(
        self, topic: str, lifespan: Optional[float] = None
    ) -> AsyncIterator[Tuple[RawMessageT, ExecutionJob]]:
        """Deliver jobs from ``topic`` as ``(raw_message, job)`` pairs.

        Iteration ends once ``lifespan`` seconds have passed; with ``None``
        it never ends on its own.
        """
        raise NotImplementedError

    @abc.abstractmethod
    async def ack(self, raw_message: RawMessageT) -> None:
        """Settle a delivery after the job was handled."""
        raise NotImplementedError

    async def nack(self, raw_message: RawMessageT, requeue: bool = True) -> None:
        """Give a delivery back, or drop it when ``requeue`` is false."""
        await self.ack(raw_message)
