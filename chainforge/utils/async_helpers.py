# chainforge/utils/async_helpers.py
"""
Async utilities for safe task management and best-effort sequences.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Coroutine, Iterable, List, Optional, Tuple, TypeVar

logger = logging.getLogger(__name__)

K = TypeVar("K")


def create_safe_task(
    coro: Coroutine[Any, Any, Any],
    name: Optional[str] = None,
    log_errors: bool = True
) -> asyncio.Task:
    """
    Create an asyncio task with automatic error handling.

    This prevents fire-and-forget tasks (health watchers) from silently
    swallowing exceptions.

    Args:
        coro: The coroutine to run as a task
        name: Optional name for the task (for logging)
        log_errors: Whether to log errors (default True)

    Returns:
        The created asyncio.Task
    """
    task = asyncio.create_task(coro, name=name)

    def _handle_exception(t: asyncio.Task):
        if t.cancelled():
            return
        exc = t.exception()
        if exc and log_errors:
            task_name = name or t.get_name()
            logger.error(f"[AsyncTask:{task_name}] Unhandled exception: {exc}", exc_info=exc)

    task.add_done_callback(_handle_exception)
    return task


async def run_best_effort(
    steps: Iterable[Tuple[K, Callable[[], Awaitable[Any]]]],
    timeout: Optional[float] = None,
    name: str = "best_effort",
) -> List[Tuple[K, BaseException]]:
    """
    Run async steps strictly in the given order, continuing past failures.

    Each step is a (key, thunk) pair. A step that raises or exceeds `timeout`
    is logged and collected; the next step still runs.

    Cancellation of the caller interrupts only the step in flight. The
    remaining steps still run, then the CancelledError is re-raised.

    Returns:
        (key, exception) for every step that failed, in execution order.
    """
    failures: List[Tuple[K, BaseException]] = []
    cancelled: Optional[asyncio.CancelledError] = None
    for key, thunk in steps:
        try:
            if timeout is None:
                await thunk()
            else:
                await asyncio.wait_for(thunk(), timeout=timeout)
        except asyncio.TimeoutError as e:
            suffix = f" after {timeout}s" if timeout is not None else ""
            logger.warning(f"[AsyncTask:{name}] Step {key!r} timed out{suffix}")
            failures.append((key, e))
        except asyncio.CancelledError as e:
            logger.warning(f"[AsyncTask:{name}] Step {key!r} interrupted by cancellation; finishing remaining steps")
            cancelled = e
        except Exception as e:
            logger.warning(f"[AsyncTask:{name}] Step {key!r} failed: {e}")
            failures.append((key, e))

    if cancelled is not None:
        raise cancelled
    return failures
