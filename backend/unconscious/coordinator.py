"""Fan a batch of tasks out to concurrent executions and fan results back in."""

import asyncio

import structlog

from unconscious.executor import TaskExecutor
from unconscious.tasks import TaskDescriptor, TaskResult

logger = structlog.get_logger(__name__)


class ParallelCoordinator:
    """Runs a batch of tasks concurrently and joins on all of them settling.

    The join is all-settle, never fail-fast: one task's failure cannot
    cancel or abandon its siblings. Results come back in input order.
    """

    def __init__(self, executor: TaskExecutor) -> None:
        self.executor = executor

    async def execute_parallel(self, tasks: list[TaskDescriptor]) -> list[TaskResult]:
        """Execute every task concurrently.

        Args:
            tasks: The batch to run. Ids must be unique.

        Returns:
            One TaskResult per task, ``results[i].task_id == tasks[i].id``.

        Raises:
            TypeError: If an element is not a TaskDescriptor.
            ValueError: If two tasks share an id.
        """
        _validate_batch(tasks)
        if not tasks:
            return []

        start = asyncio.get_running_loop().time()
        logger.debug("parallel_batch_started", task_count=len(tasks))

        # Tasks are created in list order, so spawns start in list order
        running = [
            asyncio.create_task(self.executor.execute(task), name=f"unconscious:{task.id}")
            for task in tasks
        ]
        settled = await asyncio.gather(*running, return_exceptions=True)

        defects = [outcome for outcome in settled if isinstance(outcome, BaseException)]
        if defects:
            logger.error(
                "parallel_batch_defect",
                task_count=len(tasks),
                defect_count=len(defects),
                error=repr(defects[0]),
            )
            raise defects[0]

        results: list[TaskResult] = list(settled)
        logger.debug(
            "parallel_batch_complete",
            task_count=len(tasks),
            failed=sum(1 for r in results if not r.success),
            elapsed_ms=int((asyncio.get_running_loop().time() - start) * 1000),
        )
        return results


def _validate_batch(tasks: list[TaskDescriptor]) -> None:
    seen: set[str] = set()
    for task in tasks:
        if not isinstance(task, TaskDescriptor):
            raise TypeError(f"Expected TaskDescriptor, got {type(task).__name__}")
        if task.id in seen:
            raise ValueError(f"Duplicate task id in batch: {task.id}")
        seen.add(task.id)
