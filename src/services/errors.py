from __future__ import annotations


class ServiceError(Exception):
    pass


class RateLimitedError(ServiceError):
    pass


class MalformedResponseError(ServiceError):
    pass


class ImageSearchNotConfiguredError(ServiceError):
    pass


class UpstreamServiceError(ServiceError):
    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class NetworkTimeoutError(ServiceError):
    def __init__(self, url: str, timeout_seconds: float):
        super().__init__(f"Network timeout after {timeout_seconds}s: {url}")
        self.url = url
        self.timeout_seconds = timeout_seconds
