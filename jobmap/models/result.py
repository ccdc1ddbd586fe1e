"""
Result convention used at the resolver, cache and adapter boundaries.
jobmap/models/result.py

A boundary call returns Result.success(value) or Result.failure(kind, error);
the caller decides once whether the failure kind is recoverable.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class ConfigurationError(RuntimeError):
    """Missing or invalid credentials. Fatal at process start."""


class FailureKind(str, Enum):
    NOT_FOUND = "not_found"
    TRANSIENT = "transient"
    CONFIGURATION = "configuration"
    BACKEND = "backend"
    INVALID = "invalid"


@dataclass(frozen=True)
class Result(Generic[T]):
    value: Optional[T] = None
    kind: Optional[FailureKind] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.kind is None

    @classmethod
    def success(cls, value: T) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, kind: FailureKind, error: str = "") -> "Result[T]":
        return cls(kind=kind, error=error)

    def unwrap_or(self, default: T) -> T:
        return self.value if self.ok else default
