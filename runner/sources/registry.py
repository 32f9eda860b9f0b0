import time
from typing import Callable

from backend.config import ConfigurationError, SyncSettings, get_str, require_env
from runner.sync.governor import Governor
from runner.sync.http import ApiClient

from .anilist import AniListAdapter
from .base import SourceAdapter
from .fandom import FandomAdapter
from .rawg import RawgAdapter
from .tmdb import MEDIA_TYPES, TmdbAdapter

SOURCE_NAMES = ("anilist", "tmdb", "rawg", "fandom")

REQUIRED_ENV = {
    "anilist": (),
    "tmdb": ("TMDB_API_KEY",),
    "rawg": ("RAWG_API_KEY",),
    "fandom": (),
}


def parse_source_names(raw: str | None) -> list[str]:
    names: list[str] = []
    for part in (raw or "").split(","):
        name = part.strip().lower()
        if not name:
            continue
        if name not in SOURCE_NAMES:
            raise ConfigurationError(
                f'Unknown source "{name}". Choose from: {", ".join(SOURCE_NAMES)}.'
            )
        if name not in names:
            names.append(name)
    if not names:
        raise ConfigurationError(f"No sources selected. Choose from: {', '.join(SOURCE_NAMES)}.")
    return names


def check_credentials(names: list[str]) -> dict[str, str]:
    missing = [var for name in names for var in REQUIRED_ENV[name] if not get_str(var)]
    if missing:
        raise ConfigurationError(
            f"Missing {', '.join(missing)} in environment variables "
            "(or drop those sources with --sources)."
        )
    return {var: require_env(var) for name in names for var in REQUIRED_ENV[name]}


def make_api_factory(
    settings: SyncSettings, blocking: bool, sleep: Callable[[float], None] = time.sleep
) -> Callable[[str], ApiClient]:
    """Build one governed client per source label.

    Single-source jobs block on a 429; round-robin runs pass
    ``blocking=False`` so a throttled source gives up its turn instead.
    """

    def make(label: str) -> ApiClient:
        governor = Governor(
            label,
            cooldown=settings.cooldown_sec,
            block_on_rate_limit=blocking,
            max_rate_limit_retries=settings.max_rate_limit_retries,
            transient_retries=settings.transient_retries,
            backoff_cap=settings.backoff_cap_sec,
            sleep=sleep,
        )
        return ApiClient(
            governor, timeout=(settings.connect_timeout_sec, settings.read_timeout_sec)
        )

    return make


def build_adapters(
    names: list[str],
    settings: SyncSettings,
    api_factory: Callable[[str], ApiClient],
    wiki_url: str | None = None,
    category: str | None = None,
) -> list[SourceAdapter]:
    creds = check_credentials(names)
    adapters: list[SourceAdapter] = []
    for name in names:
        if name == "anilist":
            adapters.append(AniListAdapter(api_factory("anilist"), per_page=settings.anilist_per_page))
        elif name == "tmdb":
            for media_type in MEDIA_TYPES:
                adapters.append(
                    TmdbAdapter(
                        api_factory(f"tmdb:{media_type}"),
                        api_key=creds["TMDB_API_KEY"],
                        media_type=media_type,
                    )
                )
        elif name == "rawg":
            adapters.append(
                RawgAdapter(api_factory("rawg"), api_key=creds["RAWG_API_KEY"], ordering=settings.rawg_ordering)
            )
        elif name == "fandom":
            adapters.append(
                FandomAdapter(
                    api_factory("fandom"),
                    wiki_url=wiki_url or get_str("FANDOM_WIKI_URL"),
                    category=category or get_str("FANDOM_CATEGORY"),
                )
            )
    return adapters
