from typing import Iterable

from backend.db import fetch_existing_rows, upsert_rows

from .errors import SinkWriteError
from .records import CanonicalRecord

CONFLICT_KEY = "external_id,source_api"


def chunked(items: list, size: int) -> Iterable[list]:
    for i in range(0, len(items), size):
        yield items[i : i + size]


class SupabaseSink:
    def __init__(self, client, table: str = "characters", batch_size: int = 50):
        self.client = client
        self.table = table
        self.batch_size = max(int(batch_size), 1)

    def existing_rows(self, source_id: str) -> list[dict]:
        return fetch_existing_rows(self.client, self.table, source_id)

    def upsert(self, records: list[CanonicalRecord]) -> list[tuple[str, str]]:
        written: list[tuple[str, str]] = []
        for batch in chunked(list(records), self.batch_size):
            rows = [record.to_row() for record in batch]
            try:
                upsert_rows(self.client, self.table, rows, on_conflict=CONFLICT_KEY)
            except Exception as e:
                raise SinkWriteError(
                    f"upsert into {self.table} failed after {len(written)} rows: "
                    f"{type(e).__name__}: {str(e)[:300]}"
                ) from e
            written.extend(record.natural_key for record in batch)
        return written
