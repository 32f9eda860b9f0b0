from dataclasses import dataclass, field
from typing import Any

from runner.sync.cursor import Position, SourceCursor
from runner.sync.dedup import key_token
from runner.sync.http import ApiClient
from runner.sync.records import CanonicalRecord, normalize_name


@dataclass
class Page:
    items: list[Any] = field(default_factory=list)
    next: Position = None
    total: int | None = None


class SourceAdapter:
    """One external catalogue: fetches raw pages and maps items to records.

    ``fetch_page`` must be safe to repeat for the same position; every HTTP
    call it makes, enrichment included, goes through ``self.api`` so it
    shares the governor's rate-limit handling.
    """

    name = "source"
    source_id = "source"
    pagination = "page"
    newest_first = False
    dedup_by = "key"
    page_delay = 0.0

    def __init__(self, api: ApiClient):
        self.api = api

    def start_cursor(self, start_page: int = 1) -> SourceCursor:
        if self.pagination == "token":
            return SourceCursor.tokens(newest_first=self.newest_first)
        return SourceCursor.pages(start_page, newest_first=self.newest_first)

    def fetch_page(self, position: Position) -> Page:
        raise NotImplementedError

    def normalize(self, item: Any) -> CanonicalRecord | None:
        raise NotImplementedError

    def dedup_token(self, record: CanonicalRecord) -> str:
        if self.dedup_by == "name":
            return record.normalized_name
        return key_token(record.source_id, record.external_id)

    def seed_token(self, row: dict) -> str | None:
        if self.dedup_by == "name":
            return normalize_name(row.get("name")) or None
        external_id = row.get("external_id")
        if external_id is None or external_id == "":
            return None
        return key_token(self.source_id, str(external_id))

    def describe(self) -> str:
        return self.name
