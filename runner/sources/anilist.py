from typing import Any

from runner.sync.cursor import Position
from runner.sync.http import ApiClient
from runner.sync.records import CanonicalRecord, clean_name

from .base import Page, SourceAdapter

ANILIST_URL = "https://graphql.anilist.co"

CHARACTERS_QUERY = """
query ($page: Int, $perPage: Int) {
  Page(page: $page, perPage: $perPage) {
    pageInfo { hasNextPage currentPage lastPage }
    characters(sort: ID_DESC) {
      id
      name { full }
      image { large }
      favourites
      media(page: 1, perPage: 1, sort: POPULARITY_DESC, type: ANIME) {
        nodes {
          id
          type
          title { romaji english native }
        }
      }
    }
  }
}
"""


def primary_media_title(character: dict) -> str | None:
    nodes = ((character.get("media") or {}).get("nodes")) or []
    if not nodes:
        return None
    title = (nodes[0] or {}).get("title") or {}
    return (
        clean_name(title.get("english"))
        or clean_name(title.get("romaji"))
        or clean_name(title.get("native"))
    )


class AniListAdapter(SourceAdapter):
    name = "anilist"
    source_id = "anilist"
    newest_first = True
    # AniList ids are stable but the catalogue historically deduped on names
    dedup_by = "name"
    page_delay = 0.8

    def __init__(self, api: ApiClient, per_page: int = 50):
        super().__init__(api)
        self.per_page = per_page
        self.last_page_logged = False

    def fetch_page(self, position: Position) -> Page:
        data = self.api.post_json(
            ANILIST_URL,
            {"query": CHARACTERS_QUERY, "variables": {"page": position, "perPage": self.per_page}},
            error_key="errors",
        )
        page = ((data or {}).get("data") or {}).get("Page") or {}
        info = page.get("pageInfo") or {}
        if not self.last_page_logged and info.get("lastPage"):
            print(f"ANILIST_LAST_PAGE last_page={info.get('lastPage')}", flush=True)
            self.last_page_logged = True
        characters = page.get("characters") or []
        next_position = int(position) + 1 if info.get("hasNextPage") else None
        return Page(items=characters, next=next_position, total=info.get("lastPage"))

    def normalize(self, item: Any) -> CanonicalRecord | None:
        if not isinstance(item, dict) or item.get("id") is None:
            return None
        name = clean_name((item.get("name") or {}).get("full"))
        if not name:
            return None
        favourites = item.get("favourites")
        return CanonicalRecord(
            source_id=self.source_id,
            external_id=str(item["id"]),
            display_name=name,
            image_url=(item.get("image") or {}).get("large"),
            group_label=primary_media_title(item),
            popularity=favourites if isinstance(favourites, (int, float)) else None,
        )
