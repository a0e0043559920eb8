from __future__ import annotations

from collections.abc import Callable
from functools import wraps
from typing import TYPE_CHECKING

from tenacity import (
    RetryCallState,
    Retrying,
    after_nothing,
    before_nothing,
    retry_if_exception_type,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_random_exponential,
)
from tenacity.retry import retry_base

from ..core.types import P, R
from ..logger import get_logger
from .config import RetryConfig
from .types import RetryCallback

if TYPE_CHECKING:
    from structlog.stdlib import BoundLogger

logger: BoundLogger = get_logger(__name__)


class RetryLogicError(RuntimeError): ...


def log_before_sleep(retry_state: RetryCallState) -> None:
    """Log the failed attempt and the upcoming backoff."""
    outcome = retry_state.outcome
    logger.warning(
        "Retrying after failed attempt",
        function=getattr(retry_state.fn, "__qualname__", repr(retry_state.fn)),
        attempt=retry_state.attempt_number,
        sleep_s=retry_state.next_action.sleep if retry_state.next_action else None,
        error=repr(outcome.exception()) if outcome is not None else None,
    )


class Retry:
    def __init__(
        self,
        config: RetryConfig,
        before: RetryCallback | None = None,
        after: RetryCallback | None = None,
        before_sleep: RetryCallback | None = None,
    ) -> None:
        self._config = config
        self._before = before or before_nothing
        self._after = after or after_nothing
        self._before_sleep = before_sleep
        self._stop = stop_after_attempt(config.max_attempts)

        # NOTE: full jitter, https://aws.amazon.com/blogs/architecture/exponential-backoff-and-jitter/
        self._wait = wait_random_exponential(
            multiplier=config.multiplier,
            min=config.wait_min,
            max=config.wait_max,
            exp_base=config.exp_base,
        )
        self._retry_condition = self._build_retry_condition(config)

    def _build_retry_condition(self, config: RetryConfig) -> retry_base:
        if config.retry_on_exceptions:
            condition: retry_base = retry_if_exception_type(config.retry_on_exceptions)
        else:
            condition = retry_if_exception_type(Exception)

        if config.never_retry_on:
            condition = condition & retry_if_not_exception_type(config.never_retry_on)

        return condition

    def __call__(self, func: Callable[P, R]) -> Callable[P, R]:
        @wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            for attempt in Retrying(
                stop=self._stop,
                wait=self._wait,
                retry=self._retry_condition,
                before=self._before,
                after=self._after,
                before_sleep=self._before_sleep,
                reraise=self._config.reraise,
            ):
                with attempt:
                    return func(*args, **kwargs)

            raise RetryLogicError("Retry loop completed without success or failure")

        return wrapper


def retry(
    config: RetryConfig | None = None,
    before: RetryCallback | None = None,
    after: RetryCallback | None = None,
    before_sleep: RetryCallback | None = None,
) -> Retry:
    retry_config = config or RetryConfig()
    return Retry(retry_config, before, after, before_sleep)
