import argparse

from runner.jobs.common import run_sync


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Sync characters from a Fandom wiki category.")
    parser.add_argument("wiki", nargs="?", default=None, metavar="wiki_url", help="Same as --wiki-url")
    parser.add_argument("cat", nargs="?", default=None, metavar="category", help="Same as --category")
    parser.add_argument(
        "--wiki-url",
        default=None,
        help="Wiki base URL (default FANDOM_WIKI_URL or https://hazbinhotel.fandom.com)",
    )
    parser.add_argument(
        "--category",
        default=None,
        help="Category holding the character pages (default FANDOM_CATEGORY or Characters)",
    )
    args = parser.parse_args(argv)
    return run_sync(
        "fandom",
        wiki_url=args.wiki_url or args.wiki,
        category=args.category or args.cat,
        usage="python -m runner.jobs.sync_fandom [wiki_url [category]] [--wiki-url URL] [--category NAME]",
    )


if __name__ == "__main__":
    raise SystemExit(main())
