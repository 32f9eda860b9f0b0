from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from runner.sources.base import Page, SourceAdapter  # noqa: E402
from runner.sync.records import CanonicalRecord  # noqa: E402


@dataclass
class FakeResult:
    data: list[dict]
    count: int | None = None


class FakeQuery:
    def __init__(self, db: "FakeSupabase", table: str):
        self.db = db
        self.table_name = table
        self.mode = "select"
        self.columns: list[str] = []
        self.filters: list[tuple[str, Any]] = []
        self.window: tuple[int, int] | None = None
        self.max_rows: int | None = None
        self.count_mode: str | None = None
        self.order_by: str | None = None
        self.payload: list[dict] = []
        self.on_conflict = ""

    def select(self, columns: str = "*", count: str | None = None) -> "FakeQuery":
        self.mode = "select"
        self.columns = [c.strip() for c in columns.split(",") if c.strip()]
        self.count_mode = count
        return self

    def eq(self, column: str, value: Any) -> "FakeQuery":
        self.filters.append((column, value))
        return self

    def order(self, column: str, desc: bool = False) -> "FakeQuery":
        assert desc is False
        self.order_by = column
        return self

    def range(self, start: int, end: int) -> "FakeQuery":
        self.window = (start, end)
        return self

    def limit(self, n: int) -> "FakeQuery":
        self.max_rows = n
        return self

    def upsert(self, rows, on_conflict: str = "", ignore_duplicates: bool = False) -> "FakeQuery":
        assert ignore_duplicates is False
        self.mode = "upsert"
        self.payload = [dict(r) for r in (rows if isinstance(rows, list) else [rows])]
        self.on_conflict = on_conflict
        return self

    def execute(self) -> FakeResult:
        if self.mode == "upsert":
            return self.db._upsert(self.table_name, self.payload, self.on_conflict)
        rows = [
            r
            for r in self.db.tables.setdefault(self.table_name, [])
            if all(r.get(col) == val for col, val in self.filters)
        ]
        total = len(rows)
        if self.order_by:
            rows = sorted(rows, key=lambda r: str(r.get(self.order_by) or ""))
        if self.window is not None:
            rows = rows[self.window[0] : self.window[1] + 1]
        if self.db.max_rows is not None:
            rows = rows[: self.db.max_rows]
        if self.max_rows is not None:
            rows = rows[: self.max_rows]
        if self.columns and self.columns != ["*"]:
            rows = [{c: r.get(c) for c in self.columns} for r in rows]
        self.db.selects.append((self.table_name, list(self.filters), self.window))
        return FakeResult(data=[dict(r) for r in rows], count=total if self.count_mode else None)


class FakeSupabase:
    """Enough of the supabase-py query builder for the sync store helpers."""

    def __init__(self):
        self.tables: dict[str, list[dict]] = {}
        self.upserts: list[list[dict]] = []
        self.selects: list[tuple] = []
        self.fail_upserts: list[Exception] = []
        # PostgREST max_rows
        self.max_rows: int | None = None

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def _upsert(self, table: str, rows: list[dict], on_conflict: str) -> FakeResult:
        if self.fail_upserts:
            raise self.fail_upserts.pop(0)
        keys = [k.strip() for k in on_conflict.split(",")]
        batch_keys = [tuple(r.get(k) for k in keys) for r in rows]
        if len(set(batch_keys)) != len(batch_keys):
            raise RuntimeError("ON CONFLICT DO UPDATE command cannot affect row a second time")
        self.upserts.append([dict(r) for r in rows])
        existing = self.tables.setdefault(table, [])
        for row, key in zip(rows, batch_keys):
            for i, current in enumerate(existing):
                if tuple(current.get(k) for k in keys) == key:
                    existing[i] = dict(row)
                    break
            else:
                existing.append(dict(row))
        return FakeResult(data=[dict(r) for r in rows])


class RecordingSleep:
    def __init__(self):
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@dataclass
class FakeSink:
    existing: list[dict] = field(default_factory=list)
    calls: list[list[CanonicalRecord]] = field(default_factory=list)
    errors: list[Exception] = field(default_factory=list)

    def existing_rows(self, source_id: str) -> list[dict]:
        return [r for r in self.existing if r.get("source_api", source_id) == source_id]

    def upsert(self, records):
        if self.errors:
            raise self.errors.pop(0)
        self.calls.append(list(records))
        return [r.natural_key for r in records]


class ScriptedAdapter(SourceAdapter):
    """Serves pre-built pages keyed by position.

    An entry is a Page, an exception to raise, or a list of those served in
    order (the last one repeats).
    """

    page_delay = 0.0

    def __init__(self, pages: dict, name: str = "scripted", newest_first: bool = False, pagination: str = "page"):
        super().__init__(api=None)
        self.pages = pages
        self.name = name
        self.source_id = name
        self.newest_first = newest_first
        self.pagination = pagination
        self.requested: list[Any] = []

    def fetch_page(self, position):
        self.requested.append(position)
        entry = self.pages[position]
        if isinstance(entry, list):
            entry = entry.pop(0) if len(entry) > 1 else entry[0]
        if isinstance(entry, Exception):
            raise entry
        return entry

    def normalize(self, item):
        if not item.get("name"):
            return None
        return CanonicalRecord(
            source_id=self.source_id,
            external_id=str(item["id"]),
            display_name=item["name"],
        )


def items(*ids: int) -> list[dict]:
    return [{"id": i, "name": f"Character {i}"} for i in ids]


def page(ids, next=None) -> Page:
    return Page(items=items(*ids), next=next)


@pytest.fixture()
def fake_db() -> FakeSupabase:
    return FakeSupabase()


@pytest.fixture()
def sleeper() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture(autouse=True)
def _clean_sync_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for var in (
        "SUPABASE_URL",
        "NEXT_PUBLIC_SUPABASE_URL",
        "SUPABASE_SERVICE_ROLE_KEY",
        "SUPABASE_KEY",
        "NEXT_PUBLIC_SUPABASE_ANON_KEY",
        "TMDB_API_KEY",
        "RAWG_API_KEY",
        "FANDOM_WIKI_URL",
        "FANDOM_CATEGORY",
        "SYNC_SOURCES",
    ):
        monkeypatch.delenv(var, raising=False)
    for var in list(os.environ):
        if var.startswith("SYNC_") or var in ("ANILIST_PER_PAGE", "RAWG_ORDERING"):
            monkeypatch.delenv(var, raising=False)
    # keep a developer's .env out of the tests
    monkeypatch.setattr("backend.config.load_env", lambda: None)
    monkeypatch.setattr("runner.jobs.common.load_env", lambda: None)
