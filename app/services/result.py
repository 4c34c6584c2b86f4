from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

T = TypeVar("T")

# Failures worth another attempt: the request may succeed unchanged.
TRANSIENT_ERROR_CODES = frozenset({"timeout", "connection", "rate_limited", "server_error"})


@dataclass
class Result(Generic[T]):
    ok: bool
    value: Optional[T] = None
    error: Optional[str] = None
    error_code: Optional[str] = None

    @staticmethod
    def success(value: T = None) -> "Result[T]":
        return Result(ok=True, value=value)

    @staticmethod
    def failure(error: str, code: str = "unknown") -> "Result[T]":
        return Result(ok=False, error=error, error_code=code)

    @property
    def is_transient(self) -> bool:
        return not self.ok and self.error_code in TRANSIENT_ERROR_CODES

    def has_code(self, *codes: str) -> bool:
        return not self.ok and self.error_code in codes

    def unwrap_or(self, default: T) -> T:
        return self.value if self.ok else default
