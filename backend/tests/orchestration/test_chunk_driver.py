
from typing import Any, List

import pytest

from app.orchestration.resumable import ChunkBudget, Page, ScanState, apply_page, run_chunk


class ListStrategy:
    """把一个列表按固定页大小切片扫描；记录每次 persist / finish。"""

    kind = "list_scan"

    def __init__(self, items: List[Any], page_size: int, fail_at: int = -1) -> None:
        self.items = items
        self.page_size = page_size
        self.fail_at = fail_at
        self.fetched: List[int] = []
        self.persisted: List[ScanState] = []
        self.finished: List[ScanState] = []

    def fetch_page(self, position):
        offset = int(position or 0)
        if offset == self.fail_at:
            raise RuntimeError("upstream exploded")
        self.fetched.append(offset)
        records = self.items[offset:offset + self.page_size]
        end = offset + len(records)
        return Page(records=records, has_more=end < len(self.items), next_position=end)

    def fold(self, accumulator, records):
        return (accumulator or 0) + sum(records), len(records)

    def persist(self, state):
        self.persisted.append(state)

    def finish(self, state):
        self.finished.append(state)


def frozen_clock():
    return 0.0


def test_full_scan_in_one_chunk_processes_every_record():
    strategy = ListStrategy(list(range(1, 11)), page_size=3)

    progress = run_chunk(strategy, ScanState(), ChunkBudget(max_seconds=10), clock=frozen_clock)

    assert progress.done is True
    assert progress.processed == 10
    assert progress.pages == 4
    assert progress.suggested_next_poll_ms == 0
    assert strategy.persisted[-1].accumulator == 55
    assert len(strategy.finished) == 1


def test_page_budget_stops_and_resumes_from_persisted_position():
    items = list(range(1, 11))
    strategy = ListStrategy(items, page_size=3)
    budget = ChunkBudget(max_seconds=10, max_pages=2, next_poll_ms=600)

    first = run_chunk(strategy, ScanState(), budget, clock=frozen_clock)
    assert first.done is False
    assert first.position == 6
    assert first.processed == 6
    assert first.suggested_next_poll_ms == 600
    assert strategy.finished == []

    resumed = strategy.persisted[-1]
    second = run_chunk(strategy, resumed, budget, clock=frozen_clock)
    assert second.done is True
    assert second.processed == 10
    assert strategy.persisted[-1].accumulator == sum(items)


def test_time_budget_exhausted_returns_progress():
    ticks = iter([0.0, 0.0, 5.0, 9.0, 9.0, 9.0])
    strategy = ListStrategy(list(range(100)), page_size=10)

    progress = run_chunk(strategy, ScanState(), ChunkBudget(max_seconds=8), clock=lambda: next(ticks))

    assert progress.done is False
    assert progress.pages == 2
    assert strategy.fetched == [0, 10]


def test_already_done_state_fetches_nothing():
    strategy = ListStrategy([1, 2, 3], page_size=3)

    progress = run_chunk(strategy, ScanState(position=3, processed=3, done=True), ChunkBudget(max_seconds=10))

    assert progress.done is True
    assert progress.processed == 3
    assert strategy.fetched == []
    assert strategy.persisted == []


def test_fetch_error_keeps_last_persisted_page():
    strategy = ListStrategy(list(range(10)), page_size=3, fail_at=6)

    with pytest.raises(RuntimeError):
        run_chunk(strategy, ScanState(), ChunkBudget(max_seconds=10), clock=frozen_clock)

    assert [s.position for s in strategy.persisted] == [3, 6]
    assert strategy.finished == []


def test_page_delay_sleeps_between_pages_only():
    sleeps = []
    strategy = ListStrategy(list(range(6)), page_size=2)

    run_chunk(strategy, ScanState(), ChunkBudget(max_seconds=10, page_delay_s=0.25),
              clock=frozen_clock, sleep=sleeps.append)

    # 3 页，最后一页结束后不再 sleep
    assert sleeps == [0.25, 0.25]


def test_apply_page_does_not_mutate_input_state():
    state = ScanState(position=None, processed=2, accumulator=5)
    new_state, items = apply_page(state, Page(records=[1, 2], has_more=False, next_position="end"),
                                  lambda acc, recs: (acc + sum(recs), len(recs)))

    assert state.processed == 2 and state.accumulator == 5
    assert new_state.processed == 4
    assert new_state.accumulator == 8
    assert new_state.done is True
    assert items == 2
