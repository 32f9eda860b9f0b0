import random
import time

import httpx
from supabase import create_client as _create_client

from backend.config import ConfigurationError, first_env

URL_VARS = ("SUPABASE_URL", "NEXT_PUBLIC_SUPABASE_URL")
KEY_VARS = ("SUPABASE_SERVICE_ROLE_KEY", "SUPABASE_KEY", "NEXT_PUBLIC_SUPABASE_ANON_KEY")
SELECT_PAGE_SIZE = 1000
RETRY_DELAYS = (1, 2, 4, 8, 16)

_sb = None


def create_client(url: str | None = None, key: str | None = None):
    url = url or first_env(*URL_VARS)
    key = key or first_env(*KEY_VARS)
    if not url or not key:
        missing = []
        if not url:
            missing.append(" or ".join(URL_VARS))
        if not key:
            missing.append(" or ".join(KEY_VARS))
        raise ConfigurationError(
            f"Missing {', '.join(missing)}. "
            "Sync jobs should use SUPABASE_SERVICE_ROLE_KEY (bypasses RLS)."
        )
    return _create_client(url, key)


def get_client():
    global _sb
    if _sb:
        return _sb

    _sb = create_client()
    return _sb


def is_transient_error(err: Exception) -> bool:
    if isinstance(err, (httpx.ConnectError, httpx.ReadError, httpx.RemoteProtocolError)):
        return True
    if isinstance(err, httpx.TimeoutException):
        return True
    msg = str(err)
    transient_markers = [
        "UNEXPECTED_EOF_WHILE_READING",
        "SSL",
        "Connection reset",
        "Broken pipe",
        "timeout",
    ]
    return any(m in msg for m in transient_markers)


def with_retry(fn, *args, delays=RETRY_DELAYS, sleep=None, **kwargs):
    for i, delay in enumerate(delays, start=1):
        try:
            return fn(*args, **kwargs)
        except Exception as e:
            if not is_transient_error(e) or i == len(delays):
                raise
            jitter = random.uniform(0, 0.2)
            print(f"SINK_RETRY attempt={i} error={str(e)[:200]}", flush=True)
            (sleep or time.sleep)(delay + jitter)


def fetch_existing_rows(
    sb,
    table: str,
    source_api: str,
    columns: str = "external_id,name",
    page_size: int = SELECT_PAGE_SIZE,
) -> list[dict]:
    rows: list[dict] = []
    start = 0
    while True:
        res = with_retry(
            lambda: sb.table(table)
            .select(columns)
            .eq("source_api", source_api)
            .order("external_id")
            .range(start, start + page_size - 1)
            .execute()
        )
        chunk = res.data or []
        # the server may cap rows below page_size, so only an empty window ends the scan
        if not chunk:
            return rows
        rows.extend(chunk)
        start += len(chunk)


def upsert_rows(sb, table: str, rows: list[dict], on_conflict: str) -> None:
    if not rows:
        return
    with_retry(
        lambda: sb.table(table)
        .upsert(rows, on_conflict=on_conflict, ignore_duplicates=False)
        .execute()
    )


def count_by_source(sb, table: str, sources: list[str]) -> dict[str, int]:
    counts: dict[str, int] = {}
    for source in sources:
        res = (
            sb.table(table)
            .select("external_id", count="exact")
            .eq("source_api", source)
            .limit(1)
            .execute()
        )
        counts[source] = int(res.count or 0)
    return counts
