from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

T = TypeVar("T")

# Gateway error codes carried by failed results
TIMEOUT = "timeout"
NETWORK = "network"
AUTH = "auth"
HTTP_ERROR = "http_error"
INVALID_PAYLOAD = "invalid_payload"
NOT_CONFIGURED = "not_configured"


@dataclass
class Result(Generic[T]):
    ok: bool
    value: Optional[T] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    status_code: Optional[int] = None

    @staticmethod
    def success(value: T) -> "Result[T]":
        return Result(ok=True, value=value)

    @staticmethod
    def failure(error: str, code: str = "unknown", status_code: Optional[int] = None) -> "Result[T]":
        return Result(ok=False, error=error, error_code=code, status_code=status_code)
