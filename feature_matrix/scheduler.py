"""
Bounded Task Scheduler - Fixed-size worker pool over a subject queue.

============================================================
BEHAVIOUR
============================================================
- Subjects are dequeued in input order
- At most `concurrency` workers run; each pulls the next subject as soon
  as it finishes one (no wave boundaries)
- Rows are merged in completion order
- A failed subject is logged and skipped; siblings keep running
- Failed subjects still advance progress since the queue moved past them
- No retries; FAILED is terminal within a batch

Accumulator and counters are only touched between awaits on a single event
loop, so they need no lock.

============================================================
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from .config import DEFAULT_CONCURRENCY_LIMIT
from .models import BatchProgress, BatchResult, FeatureRow, SubjectTaskState


logger = logging.getLogger(__name__)

SubjectWorker = Callable[[int], Awaitable[list[FeatureRow]]]
ProgressCallback = Callable[[list[FeatureRow], BatchProgress], None]


class BoundedTaskScheduler:
    """
    Runs a per-subject worker across a subject list with bounded concurrency.

    Usage:
        scheduler = BoundedTaskScheduler(concurrency=5)
        result = await scheduler.run_batch([1, 2, 3], fetch_one)
    """

    def __init__(self, concurrency: int = DEFAULT_CONCURRENCY_LIMIT) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self._concurrency = concurrency
        self._in_flight = 0
        self._peak_in_flight = 0

    @property
    def concurrency(self) -> int:
        return self._concurrency

    @property
    def peak_in_flight(self) -> int:
        """Highest number of simultaneously running subjects in the last batch."""
        return self._peak_in_flight

    async def run_batch(
        self,
        subject_ids: list[int],
        worker: SubjectWorker,
        on_progress: Optional[ProgressCallback] = None,
    ) -> BatchResult:
        """
        Run worker for every subject and collect the rows.

        Args:
            subject_ids: Subjects to process, dequeued in this order
            worker: Coroutine function fetching one subject's rows
            on_progress: Called with (rows snapshot, progress) after each subject

        Returns:
            BatchResult holding every row that arrived plus per-subject states
        """
        total = len(subject_ids)
        accumulator: list[FeatureRow] = []
        states: dict[int, SubjectTaskState] = {
            subject_id: SubjectTaskState.QUEUED for subject_id in subject_ids
        }
        failed: list[int] = []
        completed = 0

        self._in_flight = 0
        self._peak_in_flight = 0

        if total == 0:
            return BatchResult(rows=[], failed_subjects=[], states=states)

        queue: asyncio.Queue[int] = asyncio.Queue()
        for subject_id in subject_ids:
            queue.put_nowait(subject_id)

        def publish() -> None:
            if on_progress is None:
                return
            try:
                on_progress(list(accumulator), BatchProgress(completed=completed, total=total))
            except Exception as e:
                logger.error(f"Progress callback error: {e}")

        async def run_worker(worker_index: int) -> None:
            nonlocal completed
            while True:
                try:
                    subject_id = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return

                states[subject_id] = SubjectTaskState.IN_FLIGHT
                self._in_flight += 1
                self._peak_in_flight = max(self._peak_in_flight, self._in_flight)
                try:
                    rows = await worker(subject_id)
                except Exception as e:
                    states[subject_id] = SubjectTaskState.FAILED
                    failed.append(subject_id)
                    logger.warning(f"[worker={worker_index}] Subject {subject_id} failed: {e}")
                else:
                    states[subject_id] = SubjectTaskState.COMPLETED
                    accumulator.extend(rows)
                finally:
                    self._in_flight -= 1
                    queue.task_done()

                completed += 1
                publish()

        worker_count = min(self._concurrency, total)
        await asyncio.gather(*(run_worker(i) for i in range(worker_count)))

        if failed:
            logger.info(
                f"Batch finished with {len(failed)}/{total} failed subjects: {failed}"
            )
        else:
            logger.info(f"Batch finished: {total} subjects, {len(accumulator)} rows")

        return BatchResult(rows=accumulator, failed_subjects=failed, states=states)
