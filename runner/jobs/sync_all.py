import argparse

from backend.config import get_str
from runner.jobs.common import add_start_page, run_sync
from runner.sources.registry import SOURCE_NAMES


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        description="Round-robin sync across several catalogues, one page per source per pass."
    )
    add_start_page(parser)
    parser.add_argument(
        "--sources",
        default=None,
        help=f"Comma-separated sources (default SYNC_SOURCES or {','.join(SOURCE_NAMES)})",
    )
    parser.add_argument("--wiki-url", default=None, help="Fandom wiki base URL")
    parser.add_argument("--category", default=None, help="Fandom category name")
    args = parser.parse_args(argv)
    print("=== Starting multi-source character sync ===", flush=True)
    return run_sync(
        args.sources or get_str("SYNC_SOURCES") or ",".join(SOURCE_NAMES),
        start_page=args.start_page,
        round_robin=True,
        wiki_url=args.wiki_url,
        category=args.category,
        usage="python -m runner.jobs.sync_all [starting_page] [--sources anilist,tmdb]",
    )


if __name__ == "__main__":
    raise SystemExit(main())
