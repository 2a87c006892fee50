"""Queue worker that feeds execution jobs to the job runner."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional, Set

from .constants import DEFAULT_QUEUE_TOPIC
from .contracts import ExecutionJob
from .jobs import ExecutionJobRunner
from .transports import BaseTransport

logger = logging.getLogger(__name__)


class ExecutionWorker:
    """Pulls jobs from a transport and runs up to ``concurrency`` at once."""

    def __init__(
        self,
        transport: BaseTransport,
        runner: ExecutionJobRunner,
        topic: str = DEFAULT_QUEUE_TOPIC,
        concurrency: int = 1,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self._transport = transport
        self._runner = runner
        self._topic = topic
        self._concurrency = concurrency
        self.processed = 0

    async def start(self, lifespan: Optional[float] = None) -> None:
        """Consume jobs until ``lifespan`` expires (forever when ``None``)."""
        slots = asyncio.Semaphore(self._concurrency)
        in_flight: Set[asyncio.Task] = set()
        logger.info(
            f"Worker listening on '{self._topic}' with concurrency={self._concurrency}"
        )

        try:
            async for raw_message, job in self._transport.subscribe(
                self._topic, lifespan=lifespan
            ):
                await slots.acquire()
                task = asyncio.create_task(self._process(raw_message, job, slots))
                in_flight.add(task)
                task.add_done_callback(in_flight.discard)
        finally:
            if in_flight:
                await asyncio.gather(*in_flight, return_exceptions=True)

    async def _process(
        self, raw_message: Any, job: ExecutionJob, slots: asyncio.Semaphore
    ) -> None:
        try:
            outcome = await self._runner.handle(job)
        except Exception as e:
            logger.exception(
                f"Unhandled error while processing job {job.job_id} "
                f"for execution_id={job.execution_id}"
            )
            await self._record_crash(job, e)
            await self._transport.nack(raw_message, requeue=False)
        else:
            logger.debug(f"Job {job.job_id} finished with outcome {outcome.value}")
            await self._transport.ack(raw_message)
            self.processed += 1
        finally:
            slots.release()

    async def _record_crash(self, job: ExecutionJob, error: Exception) -> None:
        # the job is dropped, so its execution must not stay pending or running
        try:
            await self._runner.abandon(job, error)
        except Exception:
            logger.exception(
                f"Could not record failure for execution_id={job.execution_id}"
            )
