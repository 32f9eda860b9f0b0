from typing import Any

from runner.sync.cursor import Position
from runner.sync.errors import FetchError
from runner.sync.http import ApiClient
from runner.sync.records import CanonicalRecord, clean_name

from .base import Page, SourceAdapter

TMDB_BASE_URL = "https://api.themoviedb.org/3"
TMDB_IMAGE_BASE = "https://image.tmdb.org/t/p/w500"
MEDIA_TYPES = ("tv", "movie")
CREDITS_DELAY = 0.1


class TmdbAdapter(SourceAdapter):
    """Cast members of TMDB's popular titles, one adapter per media type.

    A page of titles costs one listing call plus one credits call per
    title; each cast entry becomes one item.
    """

    source_id = "tmdb"
    page_delay = 0.25

    def __init__(self, api: ApiClient, api_key: str, media_type: str = "tv"):
        if media_type not in MEDIA_TYPES:
            raise ValueError(f"Unknown TMDB media type: {media_type}")
        super().__init__(api)
        self.api_key = api_key
        self.media_type = media_type
        self.name = f"tmdb:{media_type}"

    def fetch_page(self, position: Position) -> Page:
        data = self.api.get_json(
            f"{TMDB_BASE_URL}/{self.media_type}/popular",
            params={"api_key": self.api_key, "page": position},
        )
        titles = (data or {}).get("results") or []
        total_pages = (data or {}).get("total_pages")
        items: list[dict] = []
        for title in titles:
            if not isinstance(title, dict) or title.get("id") is None:
                continue
            cast = self.fetch_credits(title["id"])
            for member in cast:
                items.append({"media_type": self.media_type, "title": title, "cast": member})
            self.api.pause(CREDITS_DELAY)

        page_no = int(position)
        if not titles or (total_pages is not None and page_no >= int(total_pages)):
            next_position = None
        else:
            next_position = page_no + 1
        # zero cast on a non-empty listing page is not the end of the catalogue
        if titles and not items:
            items = [{"media_type": self.media_type, "title": t, "cast": None} for t in titles]
        return Page(items=items, next=next_position, total=total_pages)

    def fetch_credits(self, title_id: Any) -> list[dict]:
        try:
            data = self.api.get_json(
                f"{TMDB_BASE_URL}/{self.media_type}/{title_id}/credits",
                params={"api_key": self.api_key},
            )
        except FetchError as e:
            print(f"TMDB_CREDITS_SKIP type={self.media_type} id={title_id} error={str(e)[:200]}", flush=True)
            return []
        cast = (data or {}).get("cast") or []
        return [m for m in cast if isinstance(m, dict)]

    def normalize(self, item: Any) -> CanonicalRecord | None:
        member = (item or {}).get("cast")
        title = (item or {}).get("title") or {}
        if not member:
            return None
        character = clean_name(member.get("character"))
        if not character or not clean_name(member.get("name")) or member.get("id") is None:
            return None
        profile_path = member.get("profile_path")
        popularity = member.get("popularity")
        return CanonicalRecord(
            source_id=self.source_id,
            external_id=f"{item['media_type']}_{title.get('id')}_{member['id']}",
            display_name=character,
            image_url=f"{TMDB_IMAGE_BASE}{profile_path}" if profile_path else None,
            group_label=clean_name(title.get("name")) or clean_name(title.get("title")),
            popularity=round(popularity) if popularity else None,
        )
