import argparse
import sys
import time
from typing import Callable, Sequence

from backend.config import ConfigurationError, SyncSettings, load_env
from backend.db import get_client
from runner.sources.registry import build_adapters, make_api_factory, parse_source_names
from runner.sync.engine import run_round_robin, run_source, seed_run, summarize
from runner.sync.sink import SupabaseSink

EXIT_OK = 0
EXIT_SOURCE_FAILED = 1
EXIT_CONFIG = 2
EXIT_INTERRUPTED = 130


def parse_start_page(raw: str | None) -> int:
    if raw is None or raw == "":
        return 1
    try:
        page = int(str(raw).strip(), 10)
    except ValueError:
        page = 0
    if page < 1:
        raise ConfigurationError(f'Invalid page number: "{raw}". Must be a positive integer.')
    return page


def add_start_page(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "start_page",
        nargs="?",
        default=None,
        help="Page to start from (positive integer, default 1)",
    )


def print_summary(summary: dict, started_ts: float) -> None:
    elapsed = int(time.monotonic() - started_ts)
    for name, row in summary["by_source"].items():
        print(
            f"SYNC_SUMMARY source={name} new={row['new']} skipped={row['skipped']} "
            f"pages={row['pages']} reason={row['reason']}",
            flush=True,
        )
    print(
        f"SYNC_SUMMARY total_new={summary['total_new']} total_skipped={summary['total_skipped']} "
        f"failed={','.join(summary['failed']) or '-'} elapsed={elapsed}s",
        flush=True,
    )


def run_sync(
    source_names: str,
    start_page: str | None = None,
    round_robin: bool = False,
    wiki_url: str | None = None,
    category: str | None = None,
    usage: str | None = None,
    client_factory: Callable | None = None,
    sleep: Callable[[float], None] | None = None,
) -> int:
    sleep = sleep or time.sleep
    # everything that can fail on operator input happens before the first request
    try:
        load_env()
        settings = SyncSettings.from_env()
        names = parse_source_names(source_names)
        first_page = parse_start_page(start_page)
        api_factory = make_api_factory(settings, blocking=not round_robin, sleep=sleep)
        adapters = build_adapters(names, settings, api_factory, wiki_url=wiki_url, category=category)
        sink = SupabaseSink((client_factory or get_client)(), table=settings.table, batch_size=settings.upsert_batch)
    except ConfigurationError as e:
        print(str(e), file=sys.stderr)
        if usage:
            print(f"Usage: {usage}", file=sys.stderr)
        return EXIT_CONFIG

    started_ts = time.monotonic()
    runs = []
    try:
        for adapter in adapters:
            print(f"SYNC_START source={adapter.describe()}", flush=True)
            runs.append(seed_run(adapter, sink, start_page=first_page))
        if round_robin:
            run_round_robin(runs, sink, idle_pause=settings.idle_pause_sec, sleep=sleep)
        else:
            for run in runs:
                run_source(run, sink, sleep=sleep, cooldown=settings.cooldown_sec)
    except KeyboardInterrupt:
        print("SYNC_ABORTED reason=KeyboardInterrupt (safe to re-run)", file=sys.stderr)
        print_summary(summarize(runs), started_ts)
        return EXIT_INTERRUPTED

    summary = summarize(runs)
    print_summary(summary, started_ts)
    return EXIT_SOURCE_FAILED if summary["failed"] else EXIT_OK


def single_source_main(source: str, argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description=f"Sync {source} characters into the catalogue.")
    add_start_page(parser)
    args = parser.parse_args(argv)
    return run_sync(
        source,
        start_page=args.start_page,
        usage=f"python -m runner.jobs.sync_{source} [starting_page]",
    )
