"""Executor factory utilities used by the multipart coordinator and session manager."""

from __future__ import annotations

from concurrent import futures
from typing import Any, Callable, Optional, Tuple, TypeVar

Executor = futures.Executor
T = TypeVar("T")


def create_executor(workers: int, *, name: str = "requestkit") -> Tuple[Optional[Executor], bool]:
    """
    Return a thread pool for IO-bound dispatch work.

    Args:
        workers: Desired concurrency level. Below one, no executor is created
            and callers run work inline.
        name: Thread name prefix.

    Returns:
        Tuple of (executor, needs_shutdown). Caller is responsible for shutting
        down the returned executor when ``needs_shutdown`` is ``True``.
    """
    if workers < 1:
        return None, False
    return futures.ThreadPoolExecutor(max_workers=workers, thread_name_prefix=name), True


def completed_future(fn: Callable[..., T], *args: Any, **kwargs: Any) -> "futures.Future[T]":
    """Run ``fn`` inline and wrap its outcome in an already-finished future."""
    future: "futures.Future[T]" = futures.Future()
    try:
        future.set_result(fn(*args, **kwargs))
    except Exception as exc:  # noqa: BLE001 - delivered through the future
        future.set_exception(exc)
    return future
