import re
import sys
from typing import Any
from urllib.parse import urlparse

from backend.config import ConfigurationError
from runner.sync.cursor import Position
from runner.sync.errors import FetchError
from runner.sync.http import ApiClient
from runner.sync.records import CanonicalRecord, clean_name

from .base import Page, SourceAdapter

DEFAULT_WIKI_URL = "https://hazbinhotel.fandom.com"
DEFAULT_CATEGORY = "Characters"
MEMBERS_LIMIT = 500
IMAGE_BATCH = 50
IMAGE_BATCH_DELAY = 0.5
THUMB_SIZE = 500

_PAREN_SUFFIX_RE = re.compile(r" \(.*?\)$")


def normalize_wiki_url(raw: str | None) -> str:
    url = (raw or DEFAULT_WIKI_URL).strip().rstrip("/")
    if url.endswith("/api.php"):
        url = url[: -len("/api.php")]
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ConfigurationError(
            f'Invalid wiki URL: "{raw}". Expected something like {DEFAULT_WIKI_URL} '
            "(set FANDOM_WIKI_URL or pass --wiki-url)."
        )
    return url


def wiki_media_name(wiki_url: str) -> str:
    host = urlparse(wiki_url).hostname or ""
    parts = host.split(".")
    if len(parts) < 2 or not parts[0]:
        return "Unknown"
    return parts[0].replace("-", " ").title()


def character_name(page_title: Any) -> str | None:
    name = clean_name(page_title)
    if not name:
        return None
    return clean_name(_PAREN_SUFFIX_RE.sub("", name))


class FandomAdapter(SourceAdapter):
    name = "fandom"
    source_id = "fandom"
    pagination = "token"
    page_delay = 1.0

    def __init__(self, api: ApiClient, wiki_url: str | None = None, category: str | None = None):
        super().__init__(api)
        self.wiki_url = normalize_wiki_url(wiki_url)
        self.api_url = f"{self.wiki_url}/api.php"
        self.category = (category or DEFAULT_CATEGORY).strip() or DEFAULT_CATEGORY
        self.media_name = wiki_media_name(self.wiki_url)

    def describe(self) -> str:
        return f"{self.name} wiki={self.wiki_url} category={self.category}"

    def fetch_page(self, position: Position) -> Page:
        params = {
            "action": "query",
            "format": "json",
            "list": "categorymembers",
            "cmtitle": f"Category:{self.category}",
            "cmlimit": str(MEMBERS_LIMIT),
            "cmnamespace": "0",
        }
        if position:
            params["cmcontinue"] = position
        try:
            data = self.api.get_json(self.api_url, params=params, error_key="error")
        except FetchError:
            self.print_hints()
            raise
        if "query" not in (data or {}):
            print(f"FANDOM_NO_QUERY wiki={self.wiki_url} category={self.category}", flush=True)
        members = [
            m
            for m in ((data or {}).get("query") or {}).get("categorymembers") or []
            if isinstance(m, dict) and m.get("pageid") is not None
        ]
        thumbs = self.fetch_thumbnails([str(m["pageid"]) for m in members])
        items = [dict(m, thumbnail=thumbs.get(str(m["pageid"]))) for m in members]
        next_token = ((data or {}).get("continue") or {}).get("cmcontinue") or None
        return Page(items=items, next=next_token)

    def print_hints(self) -> None:
        print(
            f"FANDOM_HINT check the wiki URL: {self.wiki_url}\n"
            f"FANDOM_HINT check the category exists: {self.wiki_url}/wiki/Category:{self.category}\n"
            "FANDOM_HINT some wikis use a singular category name (Character instead of Characters)",
            file=sys.stderr,
            flush=True,
        )

    def fetch_thumbnails(self, page_ids: list[str]) -> dict[str, str]:
        thumbs: dict[str, str] = {}
        for i in range(0, len(page_ids), IMAGE_BATCH):
            batch = page_ids[i : i + IMAGE_BATCH]
            params = {
                "action": "query",
                "format": "json",
                "pageids": "|".join(batch),
                "prop": "pageimages",
                "piprop": "thumbnail",
                "pithumbsize": str(THUMB_SIZE),
            }
            try:
                data = self.api.get_json(self.api_url, params=params, error_key="error")
            except FetchError as e:
                print(f"FANDOM_IMAGES_SKIP batch={len(batch)} error={str(e)[:200]}", flush=True)
                continue
            pages = ((data or {}).get("query") or {}).get("pages") or {}
            for page_id in batch:
                source = ((pages.get(page_id) or {}).get("thumbnail") or {}).get("source")
                if source:
                    thumbs[page_id] = source
            self.api.pause(IMAGE_BATCH_DELAY)
        return thumbs

    def normalize(self, item: Any) -> CanonicalRecord | None:
        if not isinstance(item, dict) or item.get("pageid") is None:
            return None
        name = character_name(item.get("title"))
        if not name:
            return None
        return CanonicalRecord(
            source_id=self.source_id,
            external_id=str(item["pageid"]),
            display_name=name,
            image_url=item.get("thumbnail"),
            group_label=self.media_name,
        )
