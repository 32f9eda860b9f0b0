import time
from typing import Any

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from backend.config import get_bool

from .errors import MalformedResponseError
from .governor import Governor

HEADERS = {
    "User-Agent": "character-sync/1.0 (+catalogue import)",
    "Accept": "application/json",
    "Accept-Encoding": "gzip, deflate",
}

DEFAULT_CONNECT_TIMEOUT = 10.0
DEFAULT_READ_TIMEOUT = 30.0

_session = None


def _http_log() -> bool:
    return get_bool("SYNC_HTTP_LOG")


def get_session() -> requests.Session:
    global _session
    if _session is not None:
        return _session

    session = requests.Session()
    # retries belong to the Governor, not urllib3
    retries = Retry(total=0, status_forcelist=[], respect_retry_after_header=False)
    adapter = HTTPAdapter(max_retries=retries)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    session.headers.update(HEADERS)
    _session = session
    return _session


def _has_error_shape(data: Any, error_key: str | None) -> bool:
    if not error_key or not isinstance(data, dict):
        return False
    return bool(data.get(error_key))


def _error_message(data: dict, error_key: str) -> str:
    err = data.get(error_key)
    if isinstance(err, list) and err:
        first = err[0]
        if isinstance(first, dict):
            return str(first.get("message") or first)
        return str(first)
    if isinstance(err, dict):
        return str(err.get("info") or err.get("message") or err)
    return str(err)


class ApiClient:
    def __init__(
        self,
        governor: Governor,
        session: requests.Session | None = None,
        timeout: tuple[float, float] = (DEFAULT_CONNECT_TIMEOUT, DEFAULT_READ_TIMEOUT),
    ):
        self.governor = governor
        self.session = session or get_session()
        self.timeout = timeout

    @property
    def label(self) -> str:
        return self.governor.label

    def pause(self, seconds: float) -> None:
        if seconds > 0:
            self.governor.sleep(seconds)

    def get_json(
        self,
        url: str,
        params: dict | None = None,
        headers: dict | None = None,
        error_key: str | None = None,
    ) -> Any:
        def call() -> requests.Response:
            return self.session.get(url, params=params, headers=headers, timeout=self.timeout)

        return self._request("GET", url, call, error_key)

    def post_json(
        self,
        url: str,
        payload: dict,
        headers: dict | None = None,
        error_key: str | None = None,
    ) -> Any:
        def call() -> requests.Response:
            return self.session.post(url, json=payload, headers=headers, timeout=self.timeout)

        return self._request("POST", url, call, error_key)

    def _request(self, method: str, url: str, call, error_key: str | None) -> Any:
        start_ts = time.monotonic()
        response = self.governor.call(call)
        if _http_log():
            elapsed_ms = int((time.monotonic() - start_ts) * 1000)
            print(
                f"{method} {url} status={response.status_code} "
                f"bytes={len(response.content or b'')} elapsed={elapsed_ms}ms",
                flush=True,
            )
        try:
            data = response.json()
        except ValueError as e:
            snippet = (response.text or "")[:120].replace("\n", " ")
            raise MalformedResponseError(
                f"{self.label}: invalid JSON from {url} body='{snippet}'",
                status=response.status_code,
            ) from e
        if _has_error_shape(data, error_key):
            raise MalformedResponseError(
                f"{self.label}: API error: {_error_message(data, error_key)}",
                status=response.status_code,
            )
        return data
