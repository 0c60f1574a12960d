"""
Batch Scheduler Module.

Runs a per-item coroutine over a sequence of items with bounded
concurrency: items are split into consecutive groups, each group runs
concurrently and is awaited in full, and the scheduler pauses between
groups (never after the last one).

A failing item never aborts the batch; its exception is converted into a
failed ItemOutcome.

Author: AP Automation Team
"""

import asyncio
import time
from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from config import get_config
from ap_assist.utils.logger import get_logger

# Initialize module logger
logger = get_logger(__name__)


@dataclass
class ItemOutcome:
    """
    Terminal state of one item.

    Attributes:
        name: Item label used in logs and reports.
        success: Whether the item's pipeline completed.
        value: Worker return value (e.g. an UploadReceipt).
        error: Error message for failed items.
        flagged: Completed, but with a recorded problem.
    """
    name: str
    success: bool
    value: Any = None
    error: Optional[str] = None
    flagged: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'success': self.success,
            'error': self.error,
            'flagged': self.flagged
        }


@dataclass
class BatchCounters:
    """Running counters; only ever incremented during a run."""
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    flagged: int = 0

    def record(self, outcome: ItemOutcome) -> None:
        self.processed += 1
        if outcome.success:
            self.succeeded += 1
        else:
            self.failed += 1
        if outcome.flagged:
            self.flagged += 1


@dataclass
class BatchReport:
    """
    Result of one scheduler run.

    Attributes:
        name: Batch label.
        outcomes: Item outcomes in input order.
        counters: Final counters.
        groups: Number of groups run.
        duration: Wall-clock seconds.
    """
    name: str
    outcomes: List[ItemOutcome] = field(default_factory=list)
    counters: BatchCounters = field(default_factory=BatchCounters)
    groups: int = 0
    duration: float = 0.0

    @property
    def failures(self) -> List[ItemOutcome]:
        return [outcome for outcome in self.outcomes if not outcome.success]

    @property
    def all_succeeded(self) -> bool:
        return self.counters.failed == 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'processed': self.counters.processed,
            'succeeded': self.counters.succeeded,
            'failed': self.counters.failed,
            'flagged': self.counters.flagged,
            'groups': self.groups,
            'duration': round(self.duration, 2),
            'outcomes': [outcome.to_dict() for outcome in self.outcomes]
        }


ProgressCallback = Callable[[BatchCounters, ItemOutcome], None]


def _default_name(item: Any) -> str:
    return str(getattr(item, "filename", None) or getattr(item, "name", None) or item)


class BatchScheduler:
    """
    Bounded-concurrency runner for per-item pipelines.

    Attributes:
        group_size: Maximum number of items running at once.
        inter_group_delay: Seconds to pause between groups.

    Example:
        >>> scheduler = BatchScheduler(group_size=3, inter_group_delay=5.0)
        >>> report = await scheduler.run(documents, pipeline.process, name="message 42")
        >>> print(report.counters.succeeded, report.counters.failed)
    """

    def __init__(
        self,
        group_size: Optional[int] = None,
        inter_group_delay: Optional[float] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        progress: Optional[ProgressCallback] = None
    ) -> None:
        self.group_size = group_size or get_config("batch.group_size", 3)
        if inter_group_delay is None:
            inter_group_delay = get_config("batch.inter_group_delay_ms", 5000) / 1000.0
        self.inter_group_delay = inter_group_delay
        self.sleep = sleep
        self.progress = progress

        if self.group_size < 1:
            raise ValueError(f"group_size must be at least 1, got {self.group_size}")

    def partition(self, items: Sequence[Any]) -> List[List[Any]]:
        """Split ``items`` into consecutive groups of at most ``group_size``."""
        items = list(items)
        return [items[i:i + self.group_size] for i in range(0, len(items), self.group_size)]

    async def _run_item(
        self,
        item: Any,
        worker: Callable[[Any], Awaitable[Any]],
        counters: BatchCounters,
        name_of: Callable[[Any], str]
    ) -> ItemOutcome:
        name = name_of(item)
        try:
            value = await worker(item)
        except Exception as e:
            logger.error(f"{name}: {type(e).__name__}: {e}")
            outcome = ItemOutcome(name=name, success=False, error=str(e))
        else:
            if isinstance(value, ItemOutcome):
                outcome = value
            else:
                outcome = ItemOutcome(name=name, success=True, value=value)

        counters.record(outcome)
        logger.debug(
            f"Progress: {counters.processed} processed, "
            f"{counters.succeeded} succeeded, {counters.failed} failed"
        )
        if self.progress is not None:
            try:
                self.progress(replace(counters), outcome)
            except Exception as e:
                logger.error(f"Progress callback failed for {name}: {type(e).__name__}: {e}")
        return outcome

    async def run(
        self,
        items: Sequence[Any],
        worker: Callable[[Any], Awaitable[Any]],
        name: str = "batch",
        item_name: Optional[Callable[[Any], str]] = None
    ) -> BatchReport:
        """
        Process every item exactly once.

        Args:
            items: Items in processing order.
            worker: Coroutine function run per item. It may return an
                ItemOutcome; any other value counts as success.
            name: Batch label for logs.
            item_name: Function naming an item for its outcome.

        Returns:
            BatchReport with outcomes in input order.
        """
        name_of = item_name or _default_name
        groups = self.partition(items)
        report = BatchReport(name=name, groups=len(groups))
        started = time.monotonic()

        total = sum(len(group) for group in groups)
        if total:
            logger.info(
                f"{name}: processing {total} item(s) in {len(groups)} group(s) "
                f"of up to {self.group_size}"
            )

        for index, group in enumerate(groups):
            logger.debug(f"{name}: group {index + 1}/{len(groups)} ({len(group)} item(s))")
            tasks = [
                asyncio.create_task(
                    self._run_item(item, worker, report.counters, name_of),
                    name=name_of(item)
                )
                for item in group
            ]
            outcomes = await asyncio.gather(*tasks)
            report.outcomes.extend(outcomes)

            if index < len(groups) - 1 and self.inter_group_delay > 0:
                logger.debug(f"{name}: waiting {self.inter_group_delay:.1f}s before next group")
                await self.sleep(self.inter_group_delay)

        report.duration = time.monotonic() - started
        if total:
            logger.info(
                f"{name}: complete - {report.counters.succeeded} succeeded, "
                f"{report.counters.failed} failed, {report.counters.flagged} flagged"
            )
        return report
