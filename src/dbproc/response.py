"""
Uniform result envelope returned by every manager operation.
"""
from dataclasses import dataclass
from typing import Any, Generic, Self, TypeVar

T = TypeVar('T')


@dataclass
class Response(Generic[T]):
    """Outcome of one operation.

    `message` is empty on success. On failure `data` is None and `message`
    carries the cause.
    """
    success: bool
    message: str = ''
    data: T | None = None

    def __bool__(self) -> bool:
        return self.success

    @classmethod
    def ok(cls, data: Any = None) -> Self:
        return cls(True, '', data)

    @classmethod
    def fail(cls, message: str) -> Self:
        return cls(False, message or 'unknown error', None)
