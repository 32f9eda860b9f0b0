"""Per-source sync loop and the round-robin scheduler on top of it.

Each source carries its own ``SyncRunState``. One ``step`` is one page:
fetch, drop nameless items, filter against the dedup index, upsert what is
new, then advance the cursor. Every fetch/write failure ends only that
source's run.
"""

import time
import traceback
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from runner.sources.base import SourceAdapter

from .cursor import SourceCursor
from .dedup import DedupIndex
from .errors import FetchError, RateLimited, SinkWriteError

SAMPLE_NAMES = 5


class SyncState(str, Enum):
    FETCHING = "fetching"
    FILTERING = "filtering"
    WRITING = "writing"
    SLEEPING = "sleeping"
    DONE = "done"


def governor_stats(adapter: SourceAdapter) -> dict[str, int]:
    governor = getattr(adapter.api, "governor", None)
    if governor is None:
        return {}
    return {
        "calls": governor.calls,
        "rate_limited": governor.rate_limited,
        "transient": governor.transient_failures,
    }


@dataclass
class SyncRunState:
    adapter: SourceAdapter
    cursor: SourceCursor
    dedup: DedupIndex
    total_written: int = 0
    total_skipped: int = 0
    pages: int = 0
    done: bool = False
    state: SyncState = SyncState.FETCHING
    reason: str | None = None
    error: str | None = None

    @property
    def name(self) -> str:
        return self.adapter.name

    def finish(self, reason: str, error: str | None = None) -> None:
        if self.done:
            return
        self.done = True
        self.state = SyncState.DONE
        self.reason = reason
        self.error = error
        self.cursor.stop("error" if error else reason)
        line = (
            f"SYNC_SOURCE_DONE source={self.name} reason={reason} "
            f"new={self.total_written} skipped={self.total_skipped} pages={self.pages}"
        )
        for key, value in governor_stats(self.adapter).items():
            line += f" {key}={value}"
        if error:
            line += f" error={error[:300]}"
        print(line, flush=True)


@dataclass
class StepResult:
    progress: bool = False
    fetched: int = 0
    new: int = 0
    skipped: int = 0
    rate_limited: bool = False
    retry_after: float | None = None


def seed_run(adapter: SourceAdapter, sink, start_page: int = 1) -> SyncRunState:
    cursor = adapter.start_cursor(start_page)
    try:
        rows = sink.existing_rows(adapter.source_id)
    except Exception as e:
        # an unseeded index would re-write the whole catalogue
        run = SyncRunState(adapter=adapter, cursor=cursor, dedup=DedupIndex())
        run.finish("seed_error", error=f"{type(e).__name__}: {str(e)[:300]}")
        return run
    dedup = DedupIndex(adapter.seed_token(row) for row in rows)
    print(
        f"SYNC_SEED source={adapter.name} existing_rows={len(rows)} index={len(dedup)} "
        f"start={cursor.position if cursor.position is not None else '-'}",
        flush=True,
    )
    return SyncRunState(adapter=adapter, cursor=cursor, dedup=dedup)


def _print_samples(records) -> None:
    for record in records[:SAMPLE_NAMES]:
        media = f" ({record.group_label})" if record.has_group_label else ""
        print(f"  - {record.display_name}{media}", flush=True)
    if len(records) > SAMPLE_NAMES:
        print(f"  ... and {len(records) - SAMPLE_NAMES} more", flush=True)


def step(run: SyncRunState, sink) -> StepResult:
    if run.done:
        return StepResult()

    adapter = run.adapter
    position = run.cursor.position
    run.state = SyncState.FETCHING
    try:
        page = adapter.fetch_page(position)
    except RateLimited as e:
        run.state = SyncState.SLEEPING
        retry = f" retry_after={e.retry_after:g}" if e.retry_after else ""
        print(f"SYNC_RATE_LIMIT source={run.name} position={position} yield=1{retry}", flush=True)
        return StepResult(rate_limited=True, retry_after=e.retry_after)
    except FetchError as e:
        run.finish("fetch_error", error=str(e))
        return StepResult()
    except Exception as e:
        print(traceback.format_exc(), flush=True)
        run.finish("fetch_error", error=f"{type(e).__name__}: {e}")
        return StepResult()

    run.pages += 1
    if not page.items:
        run.cursor.stop("empty_page")
        run.finish("empty_page")
        return StepResult(progress=True)

    run.state = SyncState.FILTERING
    records = []
    dropped = 0
    for item in page.items:
        record = adapter.normalize(item)
        if record is None:
            dropped += 1
        else:
            records.append(record)
    new, known = run.dedup.partition(records, adapter.dedup_token)
    skipped = dropped + len(known)

    if new:
        run.state = SyncState.WRITING
        try:
            sink.upsert(new)
        except SinkWriteError as e:
            run.finish("sink_error", error=str(e))
            return StepResult(progress=True, fetched=len(page.items))
        run.dedup.update(adapter.dedup_token(record) for record in new)

    run.total_written += len(new)
    run.total_skipped += skipped
    print(
        f"SYNC_PAGE source={run.name} position={position} fetched={len(page.items)} "
        f"new={len(new)} skipped={skipped} dropped={dropped}"
        + (f" source_pages={page.total}" if page.total else ""),
        flush=True,
    )
    _print_samples(new)

    fully_known = bool(records) and not new
    if run.cursor.advance(page.next, fully_known=fully_known):
        run.finish(run.cursor.terminal_reason or "last_page")
    else:
        run.state = SyncState.FETCHING
    return StepResult(
        progress=True,
        fetched=len(page.items),
        new=len(new),
        skipped=skipped,
    )


def run_source(
    run: SyncRunState,
    sink,
    sleep: Callable[[float], None] = time.sleep,
    cooldown: float = 30.0,
) -> SyncRunState:
    while not run.done:
        result = step(run, sink)
        if run.done:
            break
        if result.rate_limited:
            sleep(result.retry_after or cooldown)
        else:
            sleep(run.adapter.page_delay)
    return run


def run_pass(
    runs: list[SyncRunState],
    sink,
    sleep: Callable[[float], None] = time.sleep,
) -> bool:
    any_progress = False
    for run in runs:
        if run.done:
            continue
        result = step(run, sink)
        if result.progress:
            any_progress = True
            if not run.done:
                sleep(run.adapter.page_delay)
    return any_progress


def run_round_robin(
    runs: list[SyncRunState],
    sink,
    idle_pause: float = 5.0,
    sleep: Callable[[float], None] = time.sleep,
) -> list[SyncRunState]:
    passes = 0
    while any(not run.done for run in runs):
        passes += 1
        progressed = run_pass(runs, sink, sleep=sleep)
        active = [run.name for run in runs if not run.done]
        if not progressed and active:
            print(
                f"SYNC_IDLE pass={passes} active={','.join(active)} sleep={idle_pause:g}",
                flush=True,
            )
            sleep(idle_pause)
    return runs


def summarize(runs: list[SyncRunState]) -> dict:
    by_source = {}
    for run in runs:
        by_source[run.name] = {
            "new": run.total_written,
            "skipped": run.total_skipped,
            "pages": run.pages,
            "reason": run.reason,
            "error": run.error,
            **governor_stats(run.adapter),
        }
    return {
        "total_new": sum(run.total_written for run in runs),
        "total_skipped": sum(run.total_skipped for run in runs),
        "failed": [run.name for run in runs if run.error],
        "by_source": by_source,
    }
