"""Error classification, reporting and retry with exponential backoff."""

import asyncio
import json
import time
import traceback
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol, TypeVar

from loguru import logger

from card_explorer.config import (
    MAX_ERROR_DETAILS_LEN,
    RETRY_BASE_DELAY,
    RETRY_MAX_ATTEMPTS,
    RETRY_MAX_DELAY,
)

T = TypeVar("T")


class LoadError(RuntimeError):
    """Raised by loaders when the note collection cannot be read."""


class ErrorCategory(str, Enum):
    """Where an error came from; drives the user-facing message."""

    API = "api"
    DATA = "data"
    UI = "ui"
    GENERAL = "general"


@dataclass(frozen=True)
class ErrorInfo:
    """A reported error, ready for display."""

    message: str
    category: ErrorCategory
    timestamp: float
    details: str | None = None
    context: dict[str, Any] = field(default_factory=dict)


class ErrorHandler(Protocol):
    """Callable that reports an error and returns its display form."""

    def __call__(
        self,
        error: object,
        category: ErrorCategory = ErrorCategory.GENERAL,
        context: dict[str, Any] | None = None,
    ) -> ErrorInfo: ...


def extract_error_info(error: object) -> tuple[str, str | None]:
    """Return ``(message, details)`` for exceptions, strings and other objects."""
    if isinstance(error, BaseException):
        message = str(error) or type(error).__name__
        details = "".join(traceback.format_exception(error))
        return message, details[:MAX_ERROR_DETAILS_LEN]

    if isinstance(error, str):
        return error[:MAX_ERROR_DETAILS_LEN], None

    if isinstance(error, dict):
        message = str(error.get("message") or "Unknown error")
        try:
            details = json.dumps(error, default=str)
        except ValueError:
            details = "[object with circular reference]"
        return message, details[:MAX_ERROR_DETAILS_LEN]

    return "An unexpected error occurred", None


def user_friendly_message(message: str, category: ErrorCategory) -> str:
    """Map a technical message onto something a user can act on."""
    lower = message.lower()
    if category is ErrorCategory.API:
        if "vault" in lower:
            return "Failed to access the vault. Check that the notes directory is reachable."
        if "metadata" in lower:
            return "Failed to read note metadata. Some notes may not display correctly."
        return f"Failed to load notes: {message}"
    if category is ErrorCategory.DATA:
        return "Data processing failed. Please try refreshing your notes."
    if category is ErrorCategory.UI:
        return "Interface error occurred. Please try refreshing the view."
    return message


class ErrorReporter:
    """Default error handler: logs with loguru and optionally notifies the user.

    Args:
        notify: Called with the friendly message for every non-UI error.
            The CLI passes a stderr printer; embedding hosts pass their own
            notification hook.
    """

    def __init__(self, notify: Callable[[str], None] | None = None) -> None:
        self._notify = notify

    def __call__(
        self,
        error: object,
        category: ErrorCategory = ErrorCategory.GENERAL,
        context: dict[str, Any] | None = None,
    ) -> ErrorInfo:
        message, details = extract_error_info(error)
        info = ErrorInfo(
            message=user_friendly_message(message, category),
            category=category,
            timestamp=time.time(),
            details=details,
            context=dict(context or {}),
        )
        logger.error(
            "{} error: {} (context {!r})",
            category.value,
            info.message,
            info.context,
        )
        if details:
            logger.debug("Error details:\n{}", details)

        if self._notify is not None and category is not ErrorCategory.UI:
            try:
                self._notify(info.message)
            except Exception:
                logger.opt(exception=True).warning("Error notification hook failed")
        return info


def is_retryable(error: BaseException) -> bool:
    """Permanent failures (permission denied, corruption) are not worth retrying."""
    lower = str(error).lower()
    if "permission" in lower and "denied" in lower:
        return False
    return "corrupt" not in lower


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff.

    ``max_attempts`` counts every call, including the first one.
    """

    max_attempts: int = RETRY_MAX_ATTEMPTS
    base_delay: float = RETRY_BASE_DELAY
    max_delay: float = RETRY_MAX_DELAY

    def delay_before(self, retry_number: int) -> float:
        """Seconds to wait before retry ``retry_number`` (1-based)."""
        return min(self.base_delay * 2 ** (retry_number - 1), self.max_delay)


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy | None = None,
    *,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> T:
    """Await ``operation`` until it succeeds or the policy is exhausted.

    Raises:
        The last exception raised by ``operation``.
    """
    policy = policy or RetryPolicy()
    attempts = max(1, policy.max_attempts)

    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except Exception as e:
            if attempt == attempts or not is_retryable(e):
                raise
            delay = policy.delay_before(attempt)
            logger.warning(
                "Attempt {}/{} failed ({}), retrying in {:.2f}s", attempt, attempts, e, delay
            )
            await sleep(delay)

    msg = "unreachable: retry loop exited without result"
    raise AssertionError(msg)


def safe_call(
    operation: Callable[[], T],
    fallback: T,
    handler: ErrorHandler,
    category: ErrorCategory = ErrorCategory.GENERAL,
    context: dict[str, Any] | None = None,
) -> T:
    """Run a synchronous operation, reporting failures and returning ``fallback``."""
    try:
        return operation()
    except Exception as e:
        handler(e, category, context)
        return fallback
