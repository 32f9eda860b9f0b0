class SyncError(Exception):
    pass


class RateLimited(SyncError):
    def __init__(self, label: str, retry_after: float | None = None):
        super().__init__(f"{label}: rate limited")
        self.label = label
        self.retry_after = retry_after


class FetchError(SyncError):
    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class TransientFetchError(FetchError):
    pass


class MalformedResponseError(FetchError):
    pass


class SinkWriteError(SyncError):
    pass
