import math
import time
from enum import Enum
from typing import Callable

import requests

from .errors import FetchError, RateLimited, TransientFetchError

RETRY_AFTER_CAP = 60.0


class Outcome(str, Enum):
    SUCCESS = "success"
    RATE_LIMITED = "rate_limited"
    TRANSIENT = "transient"
    FATAL = "fatal"


def classify_response(response: requests.Response) -> Outcome:
    status = response.status_code
    if status == 429:
        return Outcome.RATE_LIMITED
    if status >= 500:
        return Outcome.TRANSIENT
    if 200 <= status < 300:
        return Outcome.SUCCESS
    return Outcome.FATAL


def parse_retry_after(value: str | None, cap: float = RETRY_AFTER_CAP) -> float | None:
    if not value:
        return None
    try:
        seconds = float(value.strip())
    except ValueError:
        return None
    if not math.isfinite(seconds) or seconds <= 0:
        return None
    return min(seconds, cap)


def _snippet(response: requests.Response) -> str:
    body = response.text or ""
    return body[:120].replace("\n", " ").replace("\r", " ")


class Governor:
    """Wraps one outbound call with rate-limit and transient-failure handling.

    A 429 never advances the caller: in blocking mode the same ``fn`` is
    re-invoked after the cool-down, otherwise ``RateLimited`` is raised and
    the caller retries the same position on its next turn.
    ``max_rate_limit_retries=0`` keeps retrying for as long as the source
    keeps throttling. A ``Retry-After`` header replaces the cool-down but is
    bounded by ``max(cooldown, RETRY_AFTER_CAP)``.
    """

    def __init__(
        self,
        label: str,
        cooldown: float = 30.0,
        block_on_rate_limit: bool = True,
        max_rate_limit_retries: int = 0,
        transient_retries: int = 0,
        backoff_base: float = 1.0,
        backoff_cap: float = 30.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.label = label
        self.cooldown = cooldown
        self.block_on_rate_limit = block_on_rate_limit
        self.max_rate_limit_retries = max_rate_limit_retries
        self.transient_retries = transient_retries
        self.backoff_base = backoff_base
        self.backoff_cap = backoff_cap
        self.sleep = sleep
        self.calls = 0
        self.rate_limited = 0
        self.transient_failures = 0

    def call(self, fn: Callable[[], requests.Response]) -> requests.Response:
        rate_limit_hits = 0
        transient_hits = 0
        delay = self.backoff_base
        while True:
            self.calls += 1
            try:
                response = fn()
            except (
                requests.exceptions.ConnectionError,
                requests.exceptions.Timeout,
                requests.exceptions.ChunkedEncodingError,
            ) as e:
                error = TransientFetchError(f"{self.label}: {type(e).__name__}: {str(e)[:200]}")
            except requests.exceptions.RequestException as e:
                raise FetchError(f"{self.label}: {type(e).__name__}: {str(e)[:200]}") from e
            else:
                outcome = classify_response(response)
                if outcome is Outcome.SUCCESS:
                    return response
                if outcome is Outcome.FATAL:
                    raise FetchError(
                        f"{self.label}: HTTP {response.status_code} body='{_snippet(response)}'",
                        status=response.status_code,
                    )
                if outcome is Outcome.RATE_LIMITED:
                    self.rate_limited += 1
                    rate_limit_hits += 1
                    retry_after = parse_retry_after(
                        response.headers.get("retry-after"),
                        cap=max(self.cooldown, RETRY_AFTER_CAP),
                    )
                    capped = (
                        self.max_rate_limit_retries
                        and rate_limit_hits > self.max_rate_limit_retries
                    )
                    if not self.block_on_rate_limit or capped:
                        raise RateLimited(self.label, retry_after=retry_after)
                    wait = retry_after or self.cooldown
                    print(
                        f"SYNC_RATE_LIMIT source={self.label} attempt={rate_limit_hits} "
                        f"sleep={wait:g}",
                        flush=True,
                    )
                    self.sleep(wait)
                    continue
                error = TransientFetchError(
                    f"{self.label}: HTTP {response.status_code}", status=response.status_code
                )

            self.transient_failures += 1
            transient_hits += 1
            if transient_hits > self.transient_retries:
                raise error
            print(
                f"SYNC_BACKOFF source={self.label} attempt={transient_hits} "
                f"sleep={delay:g} error={str(error)[:200]}",
                flush=True,
            )
            self.sleep(delay)
            delay = min(delay * 2, self.backoff_cap)
