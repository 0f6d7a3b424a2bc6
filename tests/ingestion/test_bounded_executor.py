from __future__ import annotations

import threading
import time

import pytest

from trek_catalog.ingestion.executor import run_bounded


def test_run_bounded_preserves_input_order_regardless_of_completion_order() -> None:
    delays = [0.05, 0.0, 0.03, 0.01]

    def worker(delay: float) -> float:
        time.sleep(delay)
        return delay * 10

    outcome = run_bounded(delays, worker, concurrency=4)

    assert outcome.results == [0.5, 0.0, 0.3, 0.1]
    assert outcome.success_count == 4
    assert outcome.error_count == 0


def test_run_bounded_isolates_failures_and_reports_index() -> None:
    errors: list[tuple[str, int]] = []

    def worker(value: int) -> int:
        if value % 2:
            raise RuntimeError(f"odd {value}")
        return value

    outcome = run_bounded(
        [0, 1, 2, 3, 4],
        worker,
        concurrency=2,
        on_error=lambda exc, index: errors.append((str(exc), index)),
    )

    assert outcome.results == [0, None, 2, None, 4]
    assert outcome.success_count == 3
    assert outcome.error_count == 2
    assert sorted(errors) == [("odd 1", 1), ("odd 3", 3)]
    assert outcome.successes() == [0, 2, 4]


def test_run_bounded_never_exceeds_concurrency_limit() -> None:
    active = 0
    peak = 0
    lock = threading.Lock()

    def worker(_: int) -> None:
        nonlocal active, peak
        with lock:
            active += 1
            peak = max(peak, active)
        time.sleep(0.02)
        with lock:
            active -= 1

    run_bounded(list(range(12)), worker, concurrency=3)

    assert 1 <= peak <= 3


def test_run_bounded_reports_progress_after_every_completion() -> None:
    progress: list[tuple[int, int]] = []

    def worker(value: int) -> int:
        if value == 2:
            raise ValueError("boom")
        return value

    run_bounded([1, 2, 3], worker, concurrency=1, on_progress=lambda done, total: progress.append((done, total)))

    assert progress == [(1, 3), (2, 3), (3, 3)]


def test_run_bounded_empty_input_and_invalid_concurrency() -> None:
    outcome = run_bounded([], lambda x: x)
    assert outcome.results == []
    assert outcome.success_count == 0

    with pytest.raises(ValueError):
        run_bounded([1], lambda x: x, concurrency=0)


def test_log_progress_reports_each_step_once(caplog: pytest.LogCaptureFixture) -> None:
    import logging

    from trek_catalog.ingestion.executor import log_progress

    caplog.set_level(logging.INFO, logger="trek_catalog.ingestion.executor")
    report = log_progress("tos episodes", step_percent=50)

    for done in range(1, 5):
        report(done, 4)

    assert [r.getMessage() for r in caplog.records] == [
        "tos episodes: 1/4 (25%)",
        "tos episodes: 2/4 (50%)",
        "tos episodes: 4/4 (100%)",
    ]


def test_run_bounded_drives_progress_logging(caplog: pytest.LogCaptureFixture) -> None:
    import logging

    from trek_catalog.ingestion.executor import log_progress

    caplog.set_level(logging.INFO, logger="trek_catalog.ingestion.executor")

    run_bounded(list(range(20)), lambda n: n, concurrency=3, on_progress=log_progress("work"))

    messages = [r.getMessage() for r in caplog.records if r.getMessage().startswith("work:")]
    assert messages[-1] == "work: 20/20 (100%)"
    assert len(messages) == 11
