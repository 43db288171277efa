
"""
可续跑的分片扫描驱动（客户端轮询，每次请求跑一个有时间预算的分片）：
  - 每轮：拉一页 → fold 合并 → persist 落库（cursor/offset 与累计结果一起写）
  - 本页没有更多数据 → finish（markDone）并返回终态
  - 预算（时间 / 页数）用完 → 返回非终态进度 + 建议下次轮询间隔
  - 已完成的任务再次调用：直接返回终态，不请求上游
  - 拉页或 fold 抛错：本页不落库，异常原样上抛，任务停留在上一次成功的位置
"""

from __future__ import annotations
import logging, time
from dataclasses import dataclass, replace
from typing import Any, Callable, List, Optional, Protocol, Tuple


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChunkBudget:
    max_seconds: float
    max_pages: Optional[int] = None     # None = 只受时间约束
    page_delay_s: float = 0.0           # 每页之间的节流
    next_poll_ms: int = 1000            # 非终态时建议客户端多久后再轮询


@dataclass(frozen=True)
class ScanState:
    position: Any = None                # cursor（str）或 offset（int）
    processed: int = 0                  # 已处理的上游记录数，只增不减
    done: bool = False
    accumulator: Any = None


@dataclass(frozen=True)
class Page:
    records: List[Any]
    has_more: bool
    next_position: Any


@dataclass(frozen=True)
class ChunkProgress:
    kind: str
    done: bool
    position: Any
    processed: int
    pages: int = 0                      # 本分片拉取的页数
    records_this_chunk: int = 0
    items_this_chunk: int = 0
    suggested_next_poll_ms: int = 0


class ScanStrategy(Protocol):
    """一种可续跑扫描：怎么拉页、怎么合并、怎么落库、怎么收尾。"""

    kind: str

    def fetch_page(self, position: Any) -> Page: ...

    def fold(self, accumulator: Any, records: List[Any]) -> Tuple[Any, int]: ...

    def persist(self, state: ScanState) -> None: ...

    def finish(self, state: ScanState) -> None: ...


FoldFn = Callable[[Any, List[Any]], Tuple[Any, int]]


def apply_page(state: ScanState, page: Page, fold: FoldFn) -> Tuple[ScanState, int]:
    """把一页合并进状态，返回 (新状态, 本页合并的条目数)；不修改入参。"""
    accumulator, items = fold(state.accumulator, page.records)
    new_state = replace(
        state,
        position=page.next_position,
        processed=state.processed + len(page.records),
        done=not page.has_more,
        accumulator=accumulator,
    )
    return new_state, int(items or 0)


def run_chunk(
    strategy: ScanStrategy,
    state: ScanState,
    budget: ChunkBudget,
    *,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> ChunkProgress:

    if state.done:
        return ChunkProgress(kind=strategy.kind, done=True, position=state.position, processed=state.processed)

    started = clock()
    pages = records = items = 0

    while clock() - started < budget.max_seconds:
        if budget.max_pages is not None and pages >= budget.max_pages:
            break

        page = strategy.fetch_page(state.position)
        state, merged = apply_page(state, page, strategy.fold)
        strategy.persist(state)

        pages += 1
        records += len(page.records)
        items += merged

        if state.done:
            strategy.finish(state)
            logger.info("resumable.chunk.done kind=%s pages=%s processed=%s elapsed_ms=%s",
                strategy.kind, pages, state.processed, int((clock() - started) * 1000))
            return ChunkProgress(
                kind=strategy.kind, done=True, position=state.position, processed=state.processed,
                pages=pages, records_this_chunk=records, items_this_chunk=items,
            )

        if budget.page_delay_s > 0:
            sleep(budget.page_delay_s)

    logger.info("resumable.chunk.budget_exhausted kind=%s pages=%s processed=%s position=%s",
        strategy.kind, pages, state.processed, state.position)
    return ChunkProgress(
        kind=strategy.kind, done=False, position=state.position, processed=state.processed,
        pages=pages, records_this_chunk=records, items_this_chunk=items,
        suggested_next_poll_ms=int(budget.next_poll_ms),
    )
