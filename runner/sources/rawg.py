import math
from typing import Any

from runner.sync.cursor import Position
from runner.sync.http import ApiClient
from runner.sync.records import CanonicalRecord, clean_name

from .base import Page, SourceAdapter

RAWG_BASE_URL = "https://api.rawg.io/api"
PAGE_SIZE = 40


class RawgAdapter(SourceAdapter):
    name = "rawg"
    source_id = "rawg"
    page_delay = 0.25

    def __init__(self, api: ApiClient, api_key: str, ordering: str = "-rating"):
        super().__init__(api)
        self.api_key = api_key
        self.ordering = ordering

    def fetch_page(self, position: Position) -> Page:
        data = self.api.get_json(
            f"{RAWG_BASE_URL}/games",
            params={
                "key": self.api_key,
                "page": position,
                "page_size": PAGE_SIZE,
                "ordering": self.ordering,
            },
            error_key="error",
        )
        results = (data or {}).get("results") or []
        next_position = int(position) + 1 if (data or {}).get("next") else None
        count = (data or {}).get("count")
        total_pages = math.ceil(int(count) / PAGE_SIZE) if count else None
        return Page(items=results, next=next_position, total=total_pages)

    def normalize(self, item: Any) -> CanonicalRecord | None:
        if not isinstance(item, dict) or item.get("id") is None:
            return None
        name = clean_name(item.get("name"))
        if not name:
            return None
        return CanonicalRecord(
            source_id=self.source_id,
            external_id=str(item["id"]),
            display_name=name,
            image_url=item.get("background_image") or None,
            group_label=name,
            popularity=item.get("rating_top") or None,
        )
