from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Callable, Generic, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

ProgressCallback = Callable[[int, int], None]
ErrorCallback = Callable[[BaseException, int], None]


@dataclass(frozen=True)
class BoundedResult(Generic[R]):
    """
    Outcome of a bounded run.

    `results[i]` corresponds to `items[i]`; None marks a worker that raised.
    """

    results: list[R | None] = field(default_factory=list)
    success_count: int = 0
    error_count: int = 0

    def successes(self) -> list[R]:
        return [r for r in self.results if r is not None]


def run_bounded(
    items: Sequence[T],
    worker: Callable[[T], R],
    *,
    concurrency: int = 5,
    on_progress: ProgressCallback | None = None,
    on_error: ErrorCallback | None = None,
) -> BoundedResult[R]:
    """
    Run `worker` over `items` with at most `concurrency` workers in flight.

    A raising worker is isolated: its slot becomes None, `on_error(exc, index)` is
    called and the remaining items keep running. Callbacks run on the calling thread.
    """

    if concurrency < 1:
        raise ValueError(f"concurrency must be >= 1, got {concurrency}")

    total = len(items)
    results: list[R | None] = [None] * total
    if not total:
        return BoundedResult(results=results)

    success_count = 0
    error_count = 0
    completed = 0

    with ThreadPoolExecutor(max_workers=min(concurrency, total)) as pool:
        futures = {pool.submit(worker, item): index for index, item in enumerate(items)}
        for fut in as_completed(futures):
            index = futures[fut]
            completed += 1
            try:
                results[index] = fut.result()
                success_count += 1
            except Exception as exc:  # noqa: BLE001
                error_count += 1
                logger.debug(f"worker failed index={index}: {exc}")
                if on_error is not None:
                    on_error(exc, index)
            if on_progress is not None:
                on_progress(completed, total)

    return BoundedResult(results=results, success_count=success_count, error_count=error_count)


def log_progress(
    label: str,
    *,
    log: logging.Logger | None = None,
    level: int = logging.INFO,
    step_percent: int = 10,
) -> ProgressCallback:
    """`on_progress` callback logging `label: done/total (pct%)` once per `step_percent` step."""

    log = log or logger
    last_step = -1

    def report(done: int, total: int) -> None:
        nonlocal last_step
        percent = done * 100 // total if total else 100
        step = percent // step_percent
        if step > last_step:
            last_step = step
            log.log(level, f"{label}: {done}/{total} ({percent}%)")

    return report
