import asyncio
import functools
from typing import TypeVar, Callable, Any, Awaitable, Dict, Optional, Type, Union
from loguru import logger
from ..exceptions import (
    FrameLabelException,
    ProviderException,
    TransientProviderException,
    ValidationException,
)

T = TypeVar('T')

ExceptionTypes = Union[Type[Exception], tuple]


async def retry_async(
    func: Callable[..., Awaitable[T]],
    *args,
    retries: int = 3,
    exceptions: ExceptionTypes = (TransientProviderException,),
    backoff_factor: float = 2.0,
    initial_delay: float = 1.0,
    max_delay: float = 60.0,
    escalate_to: Optional[Type[FrameLabelException]] = ProviderException,
    **kwargs,
) -> T:
    """
    Await ``func(*args, **kwargs)`` up to ``retries`` times.

    Only ``exceptions`` are retried; anything else propagates on the first
    failure. Once the attempts are used up the last error is re-raised, wrapped
    in ``escalate_to`` when given so callers see a non-retryable failure.

    Args:
        func: Coroutine function to call
        retries: Total number of attempts
        exceptions: Exception types to catch and retry
        backoff_factor: Exponential backoff factor
        initial_delay: Delay before the second attempt
        max_delay: Maximum delay between retries
        escalate_to: Exception type raised after the last failed attempt
    """
    last_exception = None
    name = getattr(func, "__qualname__", repr(func))

    for attempt in range(retries):
        try:
            return await func(*args, **kwargs)
        except exceptions as e:
            last_exception = e

            if attempt < retries - 1:
                delay = min(initial_delay * (backoff_factor ** attempt), max_delay)
                logger.warning(f"{name}: attempt {attempt + 1} failed: {e}. Retrying in {delay}s...")
                await asyncio.sleep(delay)
            else:
                logger.error(f"{name}: all {retries} attempts failed: {e}")

    if escalate_to is not None and type(last_exception) is not escalate_to:
        raise escalate_to(
            f"{name} failed after {retries} attempts: {last_exception}",
            error_code="RETRIES_EXHAUSTED",
            details={"original_exception": type(last_exception).__name__},
        ) from last_exception
    raise last_exception


def handle_exceptions(
    retries: int = 3,
    exceptions: ExceptionTypes = (TransientProviderException,),
    backoff_factor: float = 2.0,
    initial_delay: float = 1.0,
    max_delay: float = 60.0,
    escalate_to: Optional[Type[FrameLabelException]] = ProviderException,
):
    """
    Decorator to retry a coroutine with exponential backoff.

    Args:
        retries: Number of attempts
        exceptions: Exception types to catch and retry
        backoff_factor: Exponential backoff factor
        initial_delay: Delay before the second attempt
        max_delay: Maximum delay between retries
        escalate_to: Exception type raised once every attempt has failed
    """
    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs) -> T:
            return await retry_async(
                func,
                *args,
                retries=retries,
                exceptions=exceptions,
                backoff_factor=backoff_factor,
                initial_delay=initial_delay,
                max_delay=max_delay,
                escalate_to=escalate_to,
                **kwargs,
            )

        return async_wrapper

    return decorator


def log_exceptions(
    log_level: str = "ERROR",
    include_traceback: bool = True,
    custom_message: Optional[str] = None
):
    """
    Decorator to log exceptions raised by a coroutine and re-raise them.

    Args:
        log_level: Log level for exception logging
        include_traceback: Whether to include traceback in log
        custom_message: Custom message to include in log
    """
    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs) -> T:
            try:
                return await func(*args, **kwargs)
            except Exception as e:
                message = custom_message or f"Exception in {func.__name__}"
                if include_traceback:
                    logger.opt(exception=True).log(log_level, f"{message}: {e}")
                else:
                    logger.log(log_level, f"{message}: {e}")
                raise

        return async_wrapper

    return decorator


def convert_exceptions(exception_map: dict):
    """
    Decorator to convert third-party exceptions to framelabel exceptions.

    Exceptions that are already ``FrameLabelException`` pass through untouched
    so a transient error keeps its type.

    Args:
        exception_map: Dictionary mapping exception types to framelabel exception types
    """
    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs) -> T:
            try:
                return await func(*args, **kwargs)
            except FrameLabelException:
                raise
            except Exception as e:
                for source_exc, target_exc in exception_map.items():
                    if isinstance(e, source_exc):
                        raise target_exc(str(e), details={"original_exception": type(e).__name__}) from e
                raise

        return async_wrapper

    return decorator


class ErrorHandler:
    """Centralized error handling utilities."""

    @staticmethod
    def describe(e: Exception) -> Dict[str, Any]:
        """Error payload attached to a failed step for the orchestrator."""
        payload = {
            "errorType": type(e).__name__,
            "errorMessage": str(e),
        }
        if isinstance(e, FrameLabelException):
            payload["errorCode"] = e.error_code
            payload["details"] = e.details
        return payload


__all__ = [
    "retry_async",
    "handle_exceptions",
    "log_exceptions",
    "convert_exceptions",
    "ErrorHandler",
    "ProviderException",
    "TransientProviderException",
    "ValidationException",
]
