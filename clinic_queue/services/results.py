"""Result wrapper returned by every public queue operation."""

from __future__ import annotations

import functools
import logging
import sqlite3
from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar

from sqlalchemy.exc import SQLAlchemyError

from clinic_queue.services.errors import InfrastructureError, QueueError

T = TypeVar("T")

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Result(Generic[T]):
    value: T | None = None
    error: QueueError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]


def returns_result(
    operation: str, *, degrade: Callable[[], Any] | None = None
) -> Callable[[Callable[..., T]], Callable[..., Result[T]]]:
    """Turn raised queue errors into a failed ``Result``.

    Storage failures are logged and reported as ``InfrastructureError``. Read
    operations may pass ``degrade`` to answer with a fallback value instead.
    """

    def decorator(func: Callable[..., T]) -> Callable[..., Result[T]]:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Result[T]:
            try:
                return Result(value=func(*args, **kwargs))
            except QueueError as exc:
                logger.info("%s rejected: %s (%s)", operation, exc.reason, exc.message)
                return Result(error=exc)
            except (sqlite3.Error, SQLAlchemyError) as exc:
                logger.exception("%s failed against the store", operation)
                if degrade is not None:
                    return Result(value=degrade())
                return Result(
                    error=InfrastructureError("storage_unavailable", "The appointment store is unavailable")
                )

        return wrapper

    return decorator
