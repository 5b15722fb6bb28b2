from __future__ import annotations

import pytest

from src.services.errors import (
    ImageSearchNotConfiguredError,
    MalformedResponseError,
    NetworkTimeoutError,
    RateLimitedError,
    ServiceError,
    UpstreamServiceError,
)


class TestServiceError:
    def test_base_exception(self) -> None:
        error = ServiceError("Base service error")
        assert str(error) == "Base service error"
        assert isinstance(error, Exception)


@pytest.mark.parametrize(
    "error_class",
    [RateLimitedError, MalformedResponseError, ImageSearchNotConfiguredError],
)
def test_simple_service_errors(error_class: type[ServiceError]) -> None:
    error = error_class("something broke")
    assert "something broke" in str(error)
    assert isinstance(error, ServiceError)


class TestUpstreamServiceError:
    def test_status_code(self) -> None:
        error = UpstreamServiceError("Bad gateway", status_code=502)

        assert str(error) == "Bad gateway"
        assert error.status_code == 502

    def test_status_code_optional(self) -> None:
        assert UpstreamServiceError("connection reset").status_code is None


class TestNetworkTimeoutError:
    def test_network_timeout(self) -> None:
        error = NetworkTimeoutError("https://api.example.com", 30.0)

        assert error.url == "https://api.example.com"
        assert error.timeout_seconds == 30.0
        assert "30.0" in str(error)
        assert isinstance(error, ServiceError)
