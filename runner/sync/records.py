import re
from dataclasses import dataclass
from typing import Any

UNKNOWN_GROUP = "Unknown"


def clean_name(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    text = re.sub(r"\s+", " ", value).strip()
    return text or None


def normalize_name(value: str | None) -> str:
    return (clean_name(value) or "").lower()


@dataclass(frozen=True)
class CanonicalRecord:
    source_id: str
    external_id: str
    display_name: str
    image_url: str | None = None
    group_label: str | None = None
    popularity: float | None = None

    @property
    def natural_key(self) -> tuple[str, str]:
        return (self.source_id, self.external_id)

    @property
    def normalized_name(self) -> str:
        return normalize_name(self.display_name)

    @property
    def has_group_label(self) -> bool:
        return bool(self.group_label) and self.group_label != UNKNOWN_GROUP

    def to_row(self) -> dict:
        # media is NOT NULL in the characters table
        return {
            "name": self.display_name,
            "image": self.image_url,
            "media": self.group_label if self.has_group_label else UNKNOWN_GROUP,
            "source_api": self.source_id,
            "external_id": self.external_id,
            "popularity": self.popularity,
        }
