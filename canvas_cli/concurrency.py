"""Fan-out/fan-in helper used by the aggregator and the upload orchestrator."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from typing import Any

logger = logging.getLogger(__name__)


async def join_all(*branches: Awaitable[Any]) -> list[Any]:
    """Run every branch concurrently and return their results in argument order.

    All branches start immediately. The first branch to fail (in completion
    order) wins the error channel; the others are left to run to completion,
    their results and errors are discarded, and then the winning error is
    raised. Callers therefore never see a partial result list.

    Args:
        branches: Coroutines or futures to run.

    Returns:
        One result per branch, in the order the branches were given.

    Raises:
        Exception: The first error raised by any branch.
    """
    tasks = [asyncio.ensure_future(branch) for branch in branches]
    first_error: BaseException | None = None

    for finished in asyncio.as_completed(tasks):
        try:
            await finished
        except Exception as e:
            if first_error is None:
                first_error = e
            else:
                logger.debug("Discarding error from sibling branch: %s", e)

    if first_error is not None:
        raise first_error
    return [task.result() for task in tasks]
