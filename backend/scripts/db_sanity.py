import argparse
import json

from backend.config import SyncSettings, load_env
from backend.db import count_by_source, get_client
from runner.sources.registry import SOURCE_NAMES


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Check the character table and count rows per source.")
    parser.add_argument("--json", action="store_true")
    args = parser.parse_args(argv)

    load_env()
    settings = SyncSettings.from_env()
    sb = get_client()

    sample = sb.table(settings.table).select("name,source_api,external_id").limit(3).execute()
    counts = count_by_source(sb, settings.table, list(SOURCE_NAMES))

    if args.json:
        print(json.dumps({"table": settings.table, "counts": counts, "sample": sample.data}, ensure_ascii=False))
        return 0

    print(f"{settings.table} sample:", sample.data)
    for source, count in counts.items():
        print(f"{count:>8}  {source}")
    print(f"{sum(counts.values()):>8}  total")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
