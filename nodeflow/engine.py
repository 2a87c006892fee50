"""Graph traversal engine: runs one execution of a workflow node by node."""

from __future__ import annotations

import asyncio
import logging
import time
from collections import defaultdict
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional

from .contracts import Connection, Node, Workflow
from .exceptions import CycleDetectedError, ExecutionCancelled, NoTriggerNodesError
from .nodes import NodeDispatcher
from .persistence import Execution, ExecutionRepository, LogStatus

logger = logging.getLogger(__name__)

CancellationCheck = Callable[[], Awaitable[bool]]


class _RunContext:
    """Indexes and bookkeeping for a single traversal."""

    def __init__(self, workflow: Workflow, execution: Execution) -> None:
        self.workflow = workflow
        self.execution = execution
        self.nodes: Dict[str, Node] = {n.node_id: n for n in workflow.nodes}
        self.outgoing: Dict[str, List[Connection]] = defaultdict(list)
        for connection in workflow.connections:
            self.outgoing[connection.source_node_id].append(connection)


class WorkflowEngine:
    """Depth-first executor for a workflow graph.

    Every trigger node seeds a traversal with the run's trigger data. Each
    node's output becomes the input of every node it connects to; sibling
    branches do not see each other's data. The first failing node aborts
    the whole run. Connection types are carried as metadata only, every
    edge is followed regardless of its type.
    """

    def __init__(
        self, repository: ExecutionRepository, dispatcher: NodeDispatcher | None = None
    ) -> None:
        self._repository = repository
        self._dispatcher = dispatcher or NodeDispatcher()

    async def run(
        self,
        workflow: Workflow,
        execution: Execution,
        trigger_data: Mapping[str, Any],
        is_cancelled: Optional[CancellationCheck] = None,
    ) -> bool:
        """Execute ``workflow`` for ``execution``.

        Returns ``True`` when every reachable node succeeded. Any node
        failure is re-raised after its log row has been finalized.
        """
        triggers = workflow.trigger_nodes()
        if not triggers:
            raise NoTriggerNodesError(workflow.id)

        ctx = _RunContext(workflow, execution)
        logger.info(
            f"Executing workflow {workflow.id} for execution_id={execution.id} "
            f"({len(ctx.nodes)} nodes, {len(workflow.connections)} connections)"
        )

        for trigger in triggers:
            await self._visit(ctx, trigger, dict(trigger_data), [], is_cancelled)
        return True

    async def _visit(
        self,
        ctx: _RunContext,
        node: Node,
        data: Dict[str, Any],
        path: List[str],
        is_cancelled: Optional[CancellationCheck],
    ) -> Dict[str, Any]:
        if node.node_id in path:
            raise CycleDetectedError(node.node_id, path)
        if is_cancelled is not None and await is_cancelled():
            raise ExecutionCancelled(ctx.execution.id)

        log = await self._repository.create_log(ctx.execution.id, node.node_id, data)
        started = time.perf_counter()
        logger.info(f"Executing node {node.node_id} ({node.kind}) {node.label}".rstrip())

        try:
            output = await self._dispatcher.execute(node, data)
        except asyncio.CancelledError:
            # timed out or worker shutdown; the log must not stay running
            await self._repository.finalize_log(
                log.id,
                LogStatus.FAILED,
                error_message="Node execution was interrupted",
                duration_ms=_elapsed_ms(started),
            )
            raise
        except Exception as e:
            logger.error(f"Node {node.node_id} failed: {e}")
            await self._repository.finalize_log(
                log.id,
                LogStatus.FAILED,
                error_message=str(e) or type(e).__name__,
                duration_ms=_elapsed_ms(started),
            )
            raise

        await self._repository.finalize_log(
            log.id,
            LogStatus.SUCCESS,
            output_data=output,
            duration_ms=_elapsed_ms(started),
        )

        branch = [*path, node.node_id]
        for connection in ctx.outgoing.get(node.node_id, []):
            target = ctx.nodes.get(connection.target_node_id)
            if target is None:
                logger.warning(
                    f"Skipping connection {connection.source_node_id} -> "
                    f"{connection.target_node_id}: target node does not exist"
                )
                continue
            await self._visit(ctx, target, dict(output), branch, is_cancelled)
        return output


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)
