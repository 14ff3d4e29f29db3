"""
Best-effort operation outcomes.

Presence writes and multi-participant fan-out are fire-and-forget: they are
never retried and never raise. They report a BestEffortResult instead, which
callers may inspect or ignore.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Dict, List, Mapping

from chat_sync.core.logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class BestEffortResult:
    """Outcome of a best-effort write against one or more targets."""
    operation: str
    succeeded: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)  # target -> error

    @property
    def ok(self) -> bool:
        return not self.failed

    @property
    def partial(self) -> bool:
        return bool(self.failed) and bool(self.succeeded)


async def best_effort(operation: str, writes: Mapping[str, Awaitable]) -> BestEffortResult:
    """
    Run independent writes concurrently and collect their outcomes.

    Args:
        operation: Name of the best-effort operation (for logs/metrics)
        writes: target name -> awaitable performing that target's write

    Returns:
        BestEffortResult; failures are recorded, not raised
    """
    targets = list(writes.keys())
    results = await asyncio.gather(*writes.values(), return_exceptions=True)

    outcome = BestEffortResult(operation=operation)
    for target, result in zip(targets, results):
        if isinstance(result, BaseException):
            outcome.failed[target] = f"{type(result).__name__}: {result}"
        else:
            outcome.succeeded.append(target)

    if outcome.failed:
        logger.warning(
            "best_effort_write_incomplete",
            operation=operation,
            succeeded=outcome.succeeded,
            failed=outcome.failed,
        )

    return outcome
