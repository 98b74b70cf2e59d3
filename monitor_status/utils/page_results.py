"""
All-or-nothing gathering of page query results.

A reconciliation must not report from a partial set of pages: a page that
never arrived would turn monitors with data into pending ones. The first
failure cancels the remaining pages and surfaces as ``BackendError``.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Dict, List, Optional, TypeVar

import httpx

from ..errors import BackendError
from .backpressure import CircuitOpenError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class FailureInfo:
    """
    Information about a failed page query.

    Attributes
    ----------
    identifier : str
        Page identifier (e.g., "page-2")
    error : str
        Error message
    error_type : str
        Type of error (e.g., "server_error", "timeout", "parse_error")
    retryable : bool
        Whether the reconciliation might succeed if retried
    """

    identifier: str
    error: str
    error_type: str
    retryable: bool = False


async def gather_pages(
    operations: Dict[str, Awaitable[T]],
    timeout_seconds: Optional[float] = None,
) -> List[T]:
    """
    Run page operations concurrently and return results in key order.

    Parameters
    ----------
    operations : Dict[str, Awaitable[T]]
        Page identifier -> awaitable page query.
    timeout_seconds : Optional[float]
        Deadline shared by all pages; None waits indefinitely.

    Returns
    -------
    List[T]
        Results in the insertion order of ``operations``.

    Raises
    ------
    BackendError
        On the first failed page, or when the deadline passes. In-flight
        pages are cancelled before raising.
    """
    if not operations:
        return []

    tasks: Dict[str, "asyncio.Task[Any]"] = {
        identifier: asyncio.ensure_future(operation)
        for identifier, operation in operations.items()
    }
    by_task = {task: identifier for identifier, task in tasks.items()}

    try:
        done, pending = await asyncio.wait(
            tasks.values(),
            timeout=timeout_seconds,
            return_when=asyncio.FIRST_EXCEPTION,
        )
    except asyncio.CancelledError:
        for task in tasks.values():
            task.cancel()
        raise

    failed = next(
        (
            task
            for task in tasks.values()
            if task in done and not task.cancelled() and task.exception() is not None
        ),
        None,
    )
    if pending:
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

    if failed is not None:
        identifier = by_task[failed]
        exc = failed.exception()
        failure = _failure_info(identifier, exc)
        logger.error(
            "page_results.page.failed",
            extra={
                "identifier": identifier,
                "error_type": failure.error_type,
                "retryable": failure.retryable,
                "error": failure.error,
                "cancelled_pages": len(pending),
            },
        )
        raise BackendError(
            f"Page query {identifier} failed ({failure.error_type}): {failure.error}",
            page=identifier,
            failure=failure,
        ) from exc

    if pending:
        identifier = by_task[next(iter(pending))]
        failure = FailureInfo(
            identifier=identifier,
            error=f"timed out after {timeout_seconds}s",
            error_type="timeout",
            retryable=True,
        )
        logger.error(
            "page_results.timeout",
            extra={"timeout_seconds": timeout_seconds, "pending_pages": len(pending)},
        )
        raise BackendError(
            f"{len(pending)} page quer(y/ies) did not finish within "
            f"{timeout_seconds}s",
            page=identifier,
            failure=failure,
        )

    logger.debug("page_results.complete", extra={"pages": len(tasks)})
    return [task.result() for task in tasks.values()]


def _failure_info(identifier: str, exc: BaseException) -> FailureInfo:
    error_type = _classify_error(exc)
    return FailureInfo(
        identifier=identifier,
        error=str(exc) or type(exc).__name__,
        error_type=error_type,
        retryable=_is_retryable(error_type),
    )


def _classify_error(exc: BaseException) -> str:
    """Classify exception into error type."""
    error_type = "unknown_error"

    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        if status >= 500:
            error_type = "server_error"
        elif status == 429:
            error_type = "rate_limit"
        elif status in (401, 403):
            error_type = "auth_error"
        elif status == 404:
            error_type = "not_found"
        else:
            error_type = "http_error"
    elif isinstance(exc, (httpx.TimeoutException, asyncio.TimeoutError)):
        error_type = "timeout"
    elif isinstance(exc, httpx.ConnectError):
        error_type = "connection_error"
    elif isinstance(exc, CircuitOpenError):
        error_type = "circuit_open"
    elif isinstance(exc, (ValueError, KeyError)):
        error_type = "parse_error"

    return error_type


def _is_retryable(error_type: str) -> bool:
    return error_type in {
        "timeout",
        "connection_error",
        "server_error",
        "rate_limit",
        "circuit_open",
    }
