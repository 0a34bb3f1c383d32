"""Thread pool used to acknowledge Slack within its three second window."""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor
from contextvars import copy_context
from typing import Any, Callable

import structlog
from structlog.contextvars import bind_contextvars

_executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="workflow-bot")


def _log_failure(future: Future) -> None:
    exc = future.exception()
    if exc is not None:
        structlog.get_logger().error(
            "background_task_failed",
            error=str(exc),
            error_type=type(exc).__name__,
        )


def run_async(
    func: Callable[..., Any],
    /,
    *args: Any,
    trace_id: str | None = None,
    **kwargs: Any,
) -> Future:
    """Run *func* on the shared pool inside a copy of the caller's context."""

    context = copy_context()
    if trace_id is not None:
        context.run(bind_contextvars, trace_id=trace_id)

    future = _executor.submit(context.run, func, *args, **kwargs)
    future.add_done_callback(_log_failure)
    return future
