from typing import Callable, Iterable, TypeVar

T = TypeVar("T")


def key_token(source_id: str, external_id: str) -> str:
    return f"{source_id}:{external_id}"


class DedupIndex:
    """Tokens already present in the destination store for one source.

    Seeded once per run and only ever grows; a token is either a natural key
    (``key_token``) or a normalized display name, depending on the source.
    """

    def __init__(self, tokens: Iterable[str] = ()):
        self._tokens: set[str] = {t for t in tokens if t}

    def __contains__(self, token: object) -> bool:
        return token in self._tokens

    def __len__(self) -> int:
        return len(self._tokens)

    def add(self, token: str) -> None:
        if token:
            self._tokens.add(token)

    def update(self, tokens: Iterable[str]) -> None:
        for token in tokens:
            self.add(token)

    def partition(self, records: Iterable[T], token_fn: Callable[[T], str]) -> tuple[list[T], list[T]]:
        new: list[T] = []
        known: list[T] = []
        seen_on_page: set[str] = set()
        for record in records:
            token = token_fn(record)
            if token in self._tokens or token in seen_on_page:
                known.append(record)
                continue
            seen_on_page.add(token)
            new.append(record)
        return new, known
