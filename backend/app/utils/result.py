"""
Explicit outcome of a background I/O call.

Background paths (override fetch, autosave, artifact checks) return a Result
instead of raising, so the caller has to decide, in code, whether an Err is
ignored or handled.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Generic, Optional, TypeVar, Union

T = TypeVar("T")

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True

    def unwrap_or(self, default: Any) -> T:
        return self.value


@dataclass(frozen=True)
class Err:
    error: Exception

    @property
    def ok(self) -> bool:
        return False

    def unwrap_or(self, default: Any) -> Any:
        return default


Result = Union[Ok[T], Err]


async def capture(awaitable: Awaitable[T], *, label: Optional[str] = None, **log_extra: Any) -> "Result[T]":
    """Await and wrap the outcome. Failures are logged once here, never raised."""
    try:
        return Ok(await awaitable)
    except Exception as e:
        logger.warning(
            f"{label or 'background call'} failed: {e}",
            extra={"status": "error", **log_extra},
        )
        return Err(e)
