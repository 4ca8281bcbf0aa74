"""Bound a remote operation by a timer without cancelling it."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Type, TypeVar

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


def _discard_late_result(task: "asyncio.Future[object]") -> None:
    """Retrieve the outcome of an abandoned task so asyncio does not warn about it."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        LOGGER.debug("Abandoned operation failed after its timeout: %s", exc)


async def race_timeout(
    awaitable: Awaitable[T],
    seconds: float,
    message: str,
    *,
    error_cls: Optional[Type[Exception]] = None,
) -> T:
    """Await `awaitable` for at most `seconds`.

    When the timer wins, an exception carrying `message` is raised and the
    underlying operation is left running in the background; its eventual
    result is discarded. This differs from `asyncio.wait_for`, which cancels
    the operation.

    Args:
        awaitable: Coroutine or future to wait on.
        seconds: Upper bound in seconds.
        message: Text of the raised timeout error.
        error_cls: Exception class to raise, `TimeoutError` by default.
    """
    task = asyncio.ensure_future(awaitable)
    done, _ = await asyncio.wait({task}, timeout=seconds)
    if task in done:
        return task.result()

    task.add_done_callback(_discard_late_result)
    raise (error_cls or TimeoutError)(message)


SleepFn = Callable[[float], Awaitable[None]]
