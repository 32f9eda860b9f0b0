from dataclasses import dataclass

from backend.config import ConfigurationError

Position = int | str | None


@dataclass
class SourceCursor:
    position: Position
    newest_first: bool = False
    terminal: bool = False
    terminal_reason: str | None = None

    @classmethod
    def pages(cls, start_page: int = 1, newest_first: bool = False) -> "SourceCursor":
        if isinstance(start_page, bool) or not isinstance(start_page, int) or start_page < 1:
            raise ConfigurationError(
                f'Invalid page number: "{start_page}". Must be a positive integer.'
            )
        return cls(position=start_page, newest_first=newest_first)

    @classmethod
    def tokens(cls, newest_first: bool = False) -> "SourceCursor":
        # first request carries no continuation token
        return cls(position=None, newest_first=newest_first)

    def advance(self, next_position: Position, *, fully_known: bool = False) -> bool:
        if self.terminal:
            return True
        if self.newest_first and fully_known:
            self.stop("caught_up")
        elif next_position is None:
            self.stop("last_page")
        else:
            self.position = next_position
        return self.terminal

    def stop(self, reason: str) -> None:
        if not self.terminal:
            self.terminal = True
            self.terminal_reason = reason
