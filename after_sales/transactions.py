"""
Transaction boundary for after-sales commands.

Each command runs as one database transaction:
1. Isolation level set as the first statement (PostgreSQL and MySQL)
2. Cancellation checked before the work and again just before commit
3. Serialization failures and deadlocks re-run the whole command, so every
   retry re-reads tickets, stock and payments from scratch

Only the outermost boundary retries. A command called inside an existing
atomic block joins it and leaves retries to the caller.
"""

from functools import wraps
from typing import Callable, Optional
import logging
import time

from django.conf import settings
from django.db import DEFAULT_DB_ALIAS, DatabaseError, connections, transaction

from core.exceptions import OperationCancelled

logger = logging.getLogger(__name__)


class IsolationLevel:
    READ_COMMITTED = 'READ COMMITTED'
    REPEATABLE_READ = 'REPEATABLE READ'
    SERIALIZABLE = 'SERIALIZABLE'


# serialization_failure, deadlock_detected
RETRYABLE_SQLSTATES = frozenset({'40001', '40P01'})
# ER_LOCK_DEADLOCK, ER_LOCK_WAIT_TIMEOUT
RETRYABLE_MYSQL_ERRORS = frozenset({1213, 1205})


def is_transient_conflict(exc: DatabaseError) -> bool:
    """True when the driver error behind exc is a retryable concurrency abort."""
    cause = exc.__cause__
    sqlstate = getattr(cause, 'pgcode', None) or getattr(cause, 'sqlstate', None)
    if sqlstate in RETRYABLE_SQLSTATES:
        return True
    args = getattr(cause, 'args', ())
    return bool(args) and args[0] in RETRYABLE_MYSQL_ERRORS


def check_cancelled(cancel) -> None:
    """
    Raise OperationCancelled if the caller's token is set.

    Any object exposing is_set() works, e.g. threading.Event.
    """
    if cancel is not None and cancel.is_set():
        raise OperationCancelled('Operation cancelled by caller; no changes were committed.')


def _set_isolation_level(isolation: Optional[str], using: str) -> None:
    connection = connections[using]
    if isolation and connection.vendor in ('postgresql', 'mysql'):
        with connection.cursor() as cursor:
            cursor.execute(f'SET TRANSACTION ISOLATION LEVEL {isolation}')


def transactional(isolation: Optional[str] = None, using: str = DEFAULT_DB_ALIAS):
    """
    Decorator running a command handler as one retried transaction.

    The handler is called as handler(*args, cancel=cancel, **kwargs).

    Args:
        isolation: IsolationLevel value, or None for the database default
        using: Database alias
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, cancel=None, **kwargs):
            outermost = not connections[using].in_atomic_block
            max_retries = settings.AFTER_SALES_MAX_RETRIES if outermost else 0
            base_delay = settings.AFTER_SALES_RETRY_BASE_DELAY
            max_delay = settings.AFTER_SALES_RETRY_MAX_DELAY

            for attempt in range(max_retries + 1):
                try:
                    with transaction.atomic(using=using):
                        if outermost:
                            _set_isolation_level(isolation, using)
                        check_cancelled(cancel)
                        result = func(*args, cancel=cancel, **kwargs)
                        check_cancelled(cancel)
                    return result
                except DatabaseError as e:
                    if attempt >= max_retries or not is_transient_conflict(e):
                        raise
                    delay = min(base_delay * (2 ** attempt), max_delay)
                    logger.warning(
                        f"Retry {attempt + 1}/{max_retries} for {func.__name__} "
                        f"after {delay:.2f}s: {str(e)}"
                    )
                    time.sleep(delay)
                except OperationCancelled:
                    logger.warning(f"{func.__name__} cancelled; transaction rolled back")
                    raise

        return wrapper
    return decorator
