"""Translation of store-level contention into a business rejection."""
import logging
from contextlib import contextmanager
from typing import Iterator
from sqlalchemy.exc import DBAPIError

from database import FailureKind, classify_failure
from errors import ConcurrencyConflict
from monitoring import stock_conflicts_counter

logger = logging.getLogger(__name__)


@contextmanager
def concurrency_guard(operation: str, **context) -> Iterator[None]:
    """
    Turn serialization failures, deadlocks and lock-wait timeouts into
    ConcurrencyConflict.

    Any other exception leaves the block unchanged. Nothing is retried;
    the caller decides whether to try again.

    Args:
        operation: Name of the guarded operation, for logs and metrics
        **context: Extra fields added to the log record
    """
    try:
        yield
    except DBAPIError as e:
        if classify_failure(e) is not FailureKind.CONFLICT:
            raise

        stock_conflicts_counter.add(1, {"operation": operation})
        logger.warning("Transaction aborted due to concurrent demand", extra={
            "operation": operation,
            "error": str(e.orig),
            **context
        })
        raise ConcurrencyConflict(operation) from e
