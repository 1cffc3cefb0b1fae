"""
Parallel worker pool.

Items are split into contiguous chunks, one chunk per worker thread, and the
results are put back in input order by index. A failing item only marks its
own WorkResult.
"""
import logging
import os
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, List, Optional, Sequence

from schedule_scrapers.config import WorkerPoolSettings, settings as global_settings
from schedule_scrapers.errors import ItemFailure
from schedule_scrapers.models import WorkItem, WorkResult
from schedule_scrapers.utils import random_delay

logger = logging.getLogger(__name__)

ItemProcessor = Callable[[WorkItem, int], WorkResult]


def partition(items: Sequence[WorkItem], chunks: int) -> List[List[WorkItem]]:
    """Split into `chunks` contiguous runs whose sizes differ by at most one."""
    if chunks <= 0:
        raise ValueError("chunks must be positive")
    base, extra = divmod(len(items), chunks)
    result = []
    start = 0
    for i in range(chunks):
        size = base + (1 if i < extra else 0)
        result.append(list(items[start:start + size]))
        start += size
    return result


class WorkerPool:
    def __init__(
        self,
        process_item: ItemProcessor,
        pool_settings: Optional[WorkerPoolSettings] = None,
        max_workers: Optional[int] = None,
    ):
        self.process_item = process_item
        self.settings = pool_settings or global_settings.worker_pool
        self.max_workers = max_workers or self.settings.max_workers

    def degree_of_parallelism(self, item_count: int) -> int:
        available = self.max_workers or os.cpu_count() or 1
        return max(1, min(available, item_count))

    def process_all(self, items: Sequence[str]) -> List[WorkResult]:
        """Process every URL and return one WorkResult per input, in input order."""
        if not items:
            logger.info("No items to process.")
            return []

        work_items = [WorkItem(index=i, url=url) for i, url in enumerate(items)]
        workers = self.degree_of_parallelism(len(work_items))
        chunks = partition(work_items, workers)
        logger.info(f"Processing {len(work_items)} item(s) with {workers} worker(s); chunk sizes {[len(c) for c in chunks]}.")

        results: List[Optional[WorkResult]] = [None] * len(work_items)
        try:
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="schedule-worker") as executor:
                futures = {executor.submit(self._run_chunk, worker_index, chunk): worker_index
                           for worker_index, chunk in enumerate(chunks)}
                for future in as_completed(futures):
                    for result in future.result():
                        results[result.index] = result
        finally:
            close = getattr(self.process_item, "close", None)
            if callable(close):
                close()

        failed = sum(1 for r in results if r.error)
        logger.info(f"Worker pool finished: {len(results) - failed} ok, {failed} failed.")
        return results

    def _run_chunk(self, worker_index: int, chunk: List[WorkItem]) -> List[WorkResult]:
        chunk_results = []
        for position, item in enumerate(chunk):
            if position:
                random_delay(self.settings.min_delay_ms, self.settings.max_delay_ms)
            chunk_results.append(self._process_one(item, worker_index))
        return chunk_results

    def _process_one(self, item: WorkItem, worker_index: int) -> WorkResult:
        try:
            result = self.process_item(item, worker_index)
        except ItemFailure as e:
            logger.warning(f"[worker {worker_index}] item {item.index} failed: {e.reason}")
            return WorkResult(index=item.index, input_url=item.url, error=e.reason, worker_index=worker_index)
        except Exception as e:
            logger.error(f"[worker {worker_index}] item {item.index} ({item.url}) errored: {e}", exc_info=True)
            return WorkResult(index=item.index, input_url=item.url, error=f"{type(e).__name__}: {e}", worker_index=worker_index)

        if result.index != item.index or result.worker_index is None:
            result = result.model_copy(update={"index": item.index, "worker_index": worker_index})
        return result
