"""
Tolerant fan-out for required and optional backend requests.

Every aggregator issues a fixed set of independent requests. Some are
required (their failure aborts the aggregation) and the rest are optional
(their failure degrades to a default). This module runs both groups
concurrently, waits until every request has settled, and exposes each
optional outcome as either :class:`Present` or :class:`Absent` so that
defaults are applied in one place with :func:`coalesce`.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import (
    Any,
    Awaitable,
    Dict,
    Generic,
    List,
    Mapping,
    Optional,
    TypeVar,
    Union,
)

import httpx

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class FailureInfo:
    """
    Information about a failed request.

    Attributes
    ----------
    identifier : str
        Logical name of the request (e.g., "node_status")
    error : str
        Error message
    error_type : str
        Type of error (e.g., "http_error", "timeout", "parse_error")
    retryable : bool
        Whether the request might succeed if retried
    """

    identifier: str
    error: str
    error_type: str
    retryable: bool = False


@dataclass(frozen=True)
class Present(Generic[T]):
    """Successful outcome of an optional request."""

    value: T


@dataclass(frozen=True)
class Absent:
    """Missing outcome of an optional request, with the reason if it failed."""

    failure: Optional[FailureInfo] = None


Fetched = Union[Present[Any], Absent]


def coalesce(outcome: Fetched, default: Any = None) -> Any:
    """Return the value of a present outcome, else ``default``.

    A present ``None`` is treated like an absent value.
    """
    if isinstance(outcome, Present) and outcome.value is not None:
        return outcome.value
    return default


@dataclass
class SourceResults:
    """
    Settled results of one fan-out.

    Attributes
    ----------
    required : Dict[str, Any]
        Values of the required requests, all of which succeeded
    optional : Dict[str, Fetched]
        Outcome of each optional request
    """

    required: Dict[str, Any] = field(default_factory=dict)
    optional: Dict[str, Fetched] = field(default_factory=dict)

    def get(self, name: str, default: Any = None) -> Any:
        """Return a required value or a coalesced optional value by name."""
        if name in self.required:
            return self.required[name]
        return coalesce(self.optional.get(name, Absent()), default)

    @property
    def failures(self) -> List[FailureInfo]:
        """Failures recorded for optional requests."""
        return [
            o.failure
            for o in self.optional.values()
            if isinstance(o, Absent) and o.failure is not None
        ]


async def gather_sources(
    required: Mapping[str, Awaitable[Any]],
    optional: Optional[Mapping[str, Awaitable[Any]]] = None,
    operation_type: str = "fetch",
) -> SourceResults:
    """
    Run required and optional requests concurrently and settle all of them.

    Parameters
    ----------
    required : Mapping[str, Awaitable]
        Requests whose failure aborts the operation
    optional : Mapping[str, Awaitable], optional
        Requests whose failure degrades to :class:`Absent`
    operation_type : str
        Human-readable type of operation (for logging)

    Returns
    -------
    SourceResults
        Required values and optional outcomes

    Raises
    ------
    Exception
        The first failure among the required requests, re-raised once every
        request has settled
    ValueError
        If no request was given

    Examples
    --------
    >>> results = await gather_sources(
    ...     {"nodes": backend.nodes("c1")},
    ...     {"status": backend.node_status("c1", "pve1")},
    ...     "node",
    ... )
    >>> results.get("status", {})
    """
    optional = optional or {}
    if not required and not optional:
        raise ValueError("gather_sources needs at least one request")

    names = list(required) + list(optional)
    tasks: Dict[str, "asyncio.Task[Any]"] = {
        name: asyncio.ensure_future(aw)
        for name, aw in list(required.items()) + list(optional.items())
    }

    # Wait for all to settle, including failures
    completed = await asyncio.gather(*tasks.values(), return_exceptions=True)

    results = SourceResults()
    first_required_error: Optional[BaseException] = None
    for name, outcome in zip(names, completed):
        if name in required:
            if isinstance(outcome, BaseException):
                logger.error(
                    f"partial_results.{operation_type}.required_failed",
                    extra={
                        "identifier": name,
                        "error_type": _classify_error(outcome),
                        "error": str(outcome),
                    },
                )
                if first_required_error is None:
                    first_required_error = outcome
            else:
                results.required[name] = outcome
            continue

        if isinstance(outcome, BaseException):
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            error_type = _classify_error(outcome)
            failure = FailureInfo(
                identifier=name,
                error=str(outcome),
                error_type=error_type,
                retryable=_is_retryable(error_type),
            )
            results.optional[name] = Absent(failure)
            logger.warning(
                f"partial_results.{operation_type}.optional_absent",
                extra={
                    "identifier": name,
                    "error_type": error_type,
                    "retryable": failure.retryable,
                    "error": failure.error,
                },
            )
        else:
            results.optional[name] = Present(outcome)

    if first_required_error is not None:
        raise first_required_error

    logger.debug(
        f"partial_results.{operation_type}.complete",
        extra={
            "required": len(results.required),
            "optional": len(results.optional),
            "absent": len(results.failures),
        },
    )
    return results


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
    elif isinstance(exc, ValueError):
        error_type = "parse_error"
    elif isinstance(exc, KeyError):
        error_type = "missing_field"

    return error_type


def _is_retryable(error_type: str) -> bool:
    """Determine if an error type is retryable."""
    retryable_types = {
        "timeout",
        "connection_error",
        "server_error",
        "rate_limit",
    }
    return error_type in retryable_types
