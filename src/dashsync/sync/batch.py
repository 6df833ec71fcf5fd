"""Bounded-concurrency execution of remote write operations.

Operations run in consecutive chunks of ``max_concurrency``. Every operation
in a chunk is started at once and the chunk settles completely before the
next one starts, with a fixed pause in between. This is open-loop pacing:
the executor does not react to rate-limit responses from the provider.
"""

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Sequence

from ..exceptions import SyncError
from .models import BatchItemResult, BatchOperationGroup


logger = logging.getLogger(__name__)

MAX_BATCH_SIZE = 10
BATCH_PAUSE_SECONDS = 0.1

Operation = Callable[[BatchOperationGroup], Awaitable[Optional[str]]]


class BatchExecutor:
    """Runs operation groups in paced chunks, isolating each item's failure."""

    def __init__(self, max_concurrency: int = MAX_BATCH_SIZE, pause_seconds: float = BATCH_PAUSE_SECONDS):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.max_concurrency = max_concurrency
        self.pause_seconds = pause_seconds
        self.logger = logging.getLogger(__name__)

    def chunk(self, groups: Sequence[BatchOperationGroup]) -> List[List[BatchOperationGroup]]:
        size = self.max_concurrency
        return [list(groups[i:i + size]) for i in range(0, len(groups), size)]

    async def execute(self, groups: Sequence[BatchOperationGroup], operation: Operation) -> List[BatchItemResult]:
        """Run ``operation`` for every group.

        Args:
            groups: Pending operations
            operation: Coroutine performing one operation and returning the
                remote id it affected

        Returns:
            One result per group, in input order
        """
        results: List[BatchItemResult] = []
        chunks = self.chunk(groups)

        for index, chunk in enumerate(chunks):
            outcomes = await asyncio.gather(*(operation(group) for group in chunk), return_exceptions=True)

            for group, outcome in zip(chunk, outcomes):
                if isinstance(outcome, BaseException):
                    if not isinstance(outcome, Exception):
                        raise outcome
                    message = str(SyncError.from_error(outcome))
                    self.logger.warning(f"{group.operation.value} failed for {group.id}: {message}")
                    results.append(BatchItemResult(id=group.id, success=False, error=message))
                else:
                    results.append(BatchItemResult(id=group.id, success=True, remote_id=outcome or group.remote_id))

            self.logger.debug(f"Batch chunk {index + 1}/{len(chunks)} settled ({len(chunk)} operations)")
            if index < len(chunks) - 1 and self.pause_seconds > 0:
                await asyncio.sleep(self.pause_seconds)

        return results
