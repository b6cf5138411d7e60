"""
Detail-page worker pool.

K workers share one TaskQueue. Each worker owns a single DocumentView and
loops: claim a job, visit the detail page, run the heuristic chain, record
exactly one ExtractionResult. Transient failures are retried a fixed number
of times. A destroyed view is not retried: the worker records the job and
every job still queued as skipped, then stops.

Whatever happens, len(results) == len(items).
"""

from __future__ import annotations

import asyncio
import time
from collections import Counter, deque
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Deque, Dict, Iterable, List, Optional

from ..config import WorkerConfig
from ..errors import ConditionTimeout, is_fatal
from ..ops_logger import OpsLogger
from ..schemas import ExtractionResult, JobOutcome, ListingItem
from .document import DocumentView, ViewFactory
from .heuristics import HeuristicChain
from .progress import SafeReporter


class TaskQueue:
    """FIFO of pending jobs.

    claim_next() and drain() contain no await. On a single event loop a claim
    therefore completes before any other worker runs, so a job can never be
    claimed twice. Porting the pool to threads requires a lock around both.
    """

    def __init__(self, items: Iterable[ListingItem] = ()) -> None:
        self._items: Deque[ListingItem] = deque(items)

    def claim_next(self) -> Optional[ListingItem]:
        if not self._items:
            return None
        return self._items.popleft()

    def drain(self) -> List[ListingItem]:
        remaining = list(self._items)
        self._items.clear()
        return remaining

    def __len__(self) -> int:
        return len(self._items)

    def __bool__(self) -> bool:
        return bool(self._items)


@dataclass
class PoolState:
    total: int
    completed_count: int = 0
    final_data: List[ExtractionResult] = field(default_factory=list)
    outcomes: Counter = field(default_factory=Counter)

    def record(self, result: ExtractionResult) -> int:
        self.final_data.append(result)
        self.completed_count += 1
        self.outcomes[result.outcome.value] += 1
        return self.completed_count


@dataclass(frozen=True)
class JobReport:
    result: ExtractionResult
    attempts: int
    strategy: Optional[str] = None
    fatal: bool = False
    error: Optional[str] = None


class WorkerPool:
    def __init__(
        self,
        view_factory: ViewFactory,
        chain: Optional[HeuristicChain] = None,
        config: Optional[WorkerConfig] = None,
        reporter: Optional[SafeReporter] = None,
        *,
        ops_logger: Optional[OpsLogger] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.view_factory = view_factory
        self.chain = chain or HeuristicChain()
        self.config = config or WorkerConfig()
        self.reporter = reporter or SafeReporter()
        self.ops_logger = ops_logger
        self._sleep = sleep
        self.state: Optional[PoolState] = None

    async def run(self, items: List[ListingItem]) -> List[ExtractionResult]:
        queue = TaskQueue(items)
        state = PoolState(total=len(items))
        self.state = state
        workers = min(self.config.concurrency, len(items))
        if workers > 0:
            await asyncio.gather(*(self._worker(i, queue, state) for i in range(workers)))
        # Every worker failed to start a view: nobody drained the queue
        leftover = queue.drain()
        if leftover:
            print(f"⚠️  No worker could process {len(leftover)} remaining jobs; recording them as skipped")
            self._record_skipped(leftover, state, worker_id=None)
            self.reporter.report(f"Partial extraction: {state.completed_count} contacts recorded.", state.completed_count)
        return list(state.final_data)

    async def _worker(self, worker_id: int, queue: TaskQueue, state: PoolState) -> None:
        try:
            view = await self.view_factory()
        except Exception as e:
            print(f"⚠️  Worker {worker_id}: could not open a document view ({e}); worker stopped")
            return
        try:
            while True:
                item = queue.claim_next()
                if item is None:
                    return
                t0 = time.perf_counter()
                report = await self._process(view, item)
                state.record(report.result)
                self._emit_job(worker_id, report, time.perf_counter() - t0)
                if report.fatal:
                    print(f"⚠️  Worker {worker_id}: view destroyed on {item.detail_url}; skipping remaining jobs")
                    self._record_skipped(queue.drain(), state, worker_id)
                    self.reporter.report(f"Partial extraction: {state.completed_count} contacts recorded.", state.completed_count)
                    return
                self.reporter.report(
                    f"Extracting name and phone... ({state.completed_count}/{state.total})",
                    state.completed_count,
                )
        finally:
            try:
                await view.close()
            except Exception as e:
                print(f"⚠️  Worker {worker_id}: closing view failed: {e}")

    async def _attempt(self, view: DocumentView, item: ListingItem) -> tuple[str, Optional[str]]:
        cfg = self.config
        await view.navigate(item.detail_url, cfg.navigation_timeout_ms)
        if cfg.phone_wait_timeout_ms:
            try:
                await view.wait_for_selector(cfg.phone_wait_selector, cfg.phone_wait_timeout_ms)
            except ConditionTimeout:
                pass  # place without a phone
        doc = await view.snapshot()
        match = self.chain.find(doc)
        if match is None:
            return "", None
        return match.phone, match.strategy

    async def _process(self, view: DocumentView, item: ListingItem) -> JobReport:
        retries_left = self.config.max_retries
        attempts = 0
        while True:
            attempts += 1
            try:
                phone, strategy = await self._attempt(view, item)
            except Exception as e:
                if is_fatal(e):
                    result = ExtractionResult.for_item(item, "", JobOutcome.SKIPPED_AFTER_CRASH)
                    return JobReport(result=result, attempts=attempts, fatal=True, error=str(e))
                if retries_left <= 0:
                    print(f"⚠️  Failed for {item.display_name}: {e}")
                    result = ExtractionResult.for_item(item, "", JobOutcome.RETRIES_EXHAUSTED)
                    return JobReport(result=result, attempts=attempts, error=str(e))
                retries_left -= 1
                if self.config.retry_delay_ms:
                    await self._sleep(self.config.retry_delay_ms / 1000.0)
                continue
            outcome = JobOutcome.FOUND if phone else JobOutcome.NOT_FOUND
            return JobReport(result=ExtractionResult.for_item(item, phone, outcome), attempts=attempts, strategy=strategy)

    def _record_skipped(self, items: List[ListingItem], state: PoolState, worker_id: Optional[int]) -> None:
        for item in items:
            result = ExtractionResult.for_item(item, "", JobOutcome.SKIPPED_AFTER_CRASH)
            state.record(result)
            self._emit_job(worker_id, JobReport(result=result, attempts=0), 0.0)

    def _emit_job(self, worker_id: Optional[int], report: JobReport, duration_s: float) -> None:
        if self.ops_logger is None:
            return
        record: Dict[str, Any] = {
            "leadx_ops": 1,
            "event": "job",
            "url": report.result.detail_url,
            "worker": worker_id,
            "outcome": report.result.outcome.value,
            "strategy": report.strategy,
            "attempts": report.attempts,
            "duration_s": round(duration_s, 4),
        }
        if report.error:
            record["error"] = report.error
        self.ops_logger.emit(record)
