from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from ..core.exceptions import PartialTransactionFailure
from ..logger import get_logger

if TYPE_CHECKING:
    from redis.client import Pipeline
    from structlog.stdlib import BoundLogger

    from .connection import ConnectionHandle

logger: BoundLogger = get_logger(__name__)

type QueueCommands = Callable[[Pipeline], Any]


def all_truthy(results: list[Any]) -> bool:
    """Return True when the batch produced replies and every one is truthy."""
    return bool(results) and all(results)


class TransactionExecutor:
    """Run a short command sequence as one MULTI/EXEC batch on a handle.

    A batch succeeds only if every per-command reply is truthy. Redis cannot
    roll back a batch whose commands were individually accepted, so a falsy
    reply (for example ``EXPIRE`` returning 0) is reported as a
    ``PartialTransactionFailure`` carrying the raw replies.

    Examples
    --------
    >>> executor = TransactionExecutor(handle)
    >>> executor.execute(
    ...     lambda pipe: pipe.set(handle.key("k"), "v").expire(handle.key("k"), 60),
    ...     operation="set",
    ...     context={"key": "k", "expire": 60},
    ... )
    [True, True]
    """

    def __init__(self, handle: ConnectionHandle) -> None:
        self._handle = handle

    def execute(
        self,
        queue: QueueCommands,
        *,
        operation: str,
        context: dict[str, Any] | None = None,
    ) -> list[Any]:
        """Queue commands with ``queue`` and execute them atomically.

        Parameters
        ----------
        queue : QueueCommands
            Callable that queues commands on the pipeline it receives.
        operation : str
            Public operation name, used in logs.
        context : dict[str, Any] | None
            Extra fields (key, value, expiry, ...) logged on failure.

        Returns
        -------
        list[Any]
            Per-command replies, in submission order.

        Raises
        ------
        PartialTransactionFailure
            If any reply is falsy.
        redis.exceptions.RedisError
            If the batch itself fails.
        """
        with self._handle.session.pipeline(transaction=True) as pipe:
            queue(pipe)
            results: list[Any] = pipe.execute()

        if not all_truthy(results):
            logger.error(
                "Transaction reported a failed command",
                operation=operation,
                endpoint=self._handle.endpoint.address,
                results=results,
                **(context or {}),
            )
            raise PartialTransactionFailure(f"{operation} transaction did not fully apply", results)

        return results
