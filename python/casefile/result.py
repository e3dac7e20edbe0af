"""Value-or-error results for calls that cross a network boundary.

Remote calls (payment provider, verification hop, storage, auth) are wrapped
so that their exceptions come back as a Failure instead of propagating.
Callers branch on the result explicitly:

    result = await try_catch(provider.capture_order(order_id))
    if is_failure(result):
        ...
    details = unwrap(result)
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")
E = TypeVar("E", bound=BaseException)


@dataclass(frozen=True)
class Success(Generic[T]):
    """A call that produced a value."""

    data: T
    error: None = None


@dataclass(frozen=True)
class Failure(Generic[E]):
    """A call that raised; the exception is kept, not re-raised."""

    error: E
    data: None = None


Result = Success[T] | Failure[E]


async def try_catch(awaitable: Awaitable[T]) -> "Result[T, Exception]":
    """Await and capture any Exception as a Failure.

    Cancellation (BaseException) is not captured.
    """
    try:
        return Success(await awaitable)
    except Exception as e:
        return Failure(e)


def try_call(fn: Callable[..., T], *args, **kwargs) -> "Result[T, Exception]":
    """Synchronous counterpart of try_catch."""
    try:
        return Success(fn(*args, **kwargs))
    except Exception as e:
        return Failure(e)


def is_success(result: "Result") -> bool:
    return isinstance(result, Success)


def is_failure(result: "Result") -> bool:
    return isinstance(result, Failure)


def unwrap(result: "Result[T, E]") -> T:
    """Return the value, raising the captured error on Failure."""
    if isinstance(result, Failure):
        raise result.error
    return result.data


def unwrap_or(result: "Result[T, E]", default: T) -> T:
    """Return the value, or default on Failure."""
    if isinstance(result, Failure):
        return default
    return result.data
