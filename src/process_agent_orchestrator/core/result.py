"""Uniform success/failure result for public operations.

Public operations never raise across their boundary: they return ``Result``.
``result_boundary`` converts classified exceptions raised inside an operation
into a failed result, so the operation body can raise freely.
"""

from __future__ import annotations

import functools
import inspect
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from pydantic import ValidationError

from process_agent_orchestrator.core.errors import (
    ConflictError,
    DomainValidationError,
    ErrorKind,
    InfrastructureError,
    NotFoundError,
    OrchestratorError,
    TaskTimeoutError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

_ERROR_BY_KIND: dict[ErrorKind, type[OrchestratorError]] = {
    ErrorKind.VALIDATION: DomainValidationError,
    ErrorKind.NOT_FOUND: NotFoundError,
    ErrorKind.CONFLICT: ConflictError,
    ErrorKind.INFRASTRUCTURE: InfrastructureError,
    ErrorKind.TIMEOUT: TaskTimeoutError,
}


@dataclass(frozen=True, slots=True)
class Result(Generic[T]):
    ok: bool
    value: T | None = None
    error: str | None = None
    kind: ErrorKind | None = None

    @staticmethod
    def success(value: T | None = None) -> Result[T]:
        return Result(ok=True, value=value)

    @staticmethod
    def failure(error: str, kind: ErrorKind = ErrorKind.VALIDATION) -> Result[Any]:
        return Result(ok=False, error=error, kind=kind)

    @staticmethod
    def from_error(exc: OrchestratorError) -> Result[Any]:
        return Result(ok=False, error=exc.message, kind=exc.kind)

    def unwrap(self) -> T:
        """Return the value of a successful result, or raise the classified error."""
        if not self.ok:
            raise _ERROR_BY_KIND.get(self.kind or ErrorKind.INFRASTRUCTURE, OrchestratorError)(
                self.error or "operation failed"
            )
        return self.value  # type: ignore[return-value]


def _format_validation_error(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()))
        msg = str(err.get("msg", "invalid value"))
        parts.append(f"{loc}: {msg}" if loc else msg)
    return "; ".join(parts) or str(exc)


def _to_failure(name: str, exc: Exception) -> Result[Any]:
    if isinstance(exc, OrchestratorError):
        logger.debug(
            "Operation failed",
            extra={"operation": name, "kind": exc.kind.value, "error": exc.message},
        )
        return Result.from_error(exc)
    if isinstance(exc, ValidationError):
        return Result.failure(_format_validation_error(exc), ErrorKind.VALIDATION)
    logger.exception("Infrastructure failure", extra={"operation": name})
    return Result.failure(str(exc) or exc.__class__.__name__, ErrorKind.INFRASTRUCTURE)


_CAUGHT = (OrchestratorError, ValidationError, OSError)


def result_boundary(func: Callable[..., Any]) -> Callable[..., Any]:
    """Wrap a sync or async operation so classified failures become ``Result`` objects.

    The wrapped function returns either a ``Result`` (passed through unchanged)
    or a plain value (wrapped in ``Result.success``).
    """

    if inspect.iscoroutinefunction(func):

        @functools.wraps(func)
        async def async_wrapper(*args: Any, **kwargs: Any) -> Result[Any]:
            try:
                out = await func(*args, **kwargs)
            except _CAUGHT as exc:
                return _to_failure(func.__qualname__, exc)
            return out if isinstance(out, Result) else Result.success(out)

        return async_wrapper

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Result[Any]:
        try:
            out = func(*args, **kwargs)
        except _CAUGHT as exc:
            return _to_failure(func.__qualname__, exc)
        return out if isinstance(out, Result) else Result.success(out)

    return wrapper
