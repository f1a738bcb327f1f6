# Overview: Transaction boundary, row locking, and retry helpers shared by the services.

from __future__ import annotations

import time
from contextlib import contextmanager

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError


RETRYABLE_ERRORS = (OperationalError, StaleDataError)

# Upserts may also lose a unique-key race to a concurrent first insert;
# the retry then sees the winner's row and increments it instead.
UPSERT_RETRYABLE_ERRORS = RETRYABLE_ERRORS + (IntegrityError,)


@contextmanager
def transaction(session):
    """
    Scope a unit of work: commit on success, roll back on any error.

    Usage:
        with transaction(session):
            ...mutations...

    Nothing inside the block is visible to other connections until the
    commit; a raised error leaves the database exactly as before.
    """
    try:
        yield session
        session.commit()
    except BaseException:
        session.rollback()
        raise


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def run_with_retry(session, func, *, attempts: int = 3, backoff_base: float = 0.1, retry_on=RETRYABLE_ERRORS):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts) by default. ``func`` must be safe to run
    again from scratch; the session is rolled back between attempts.
    """
    for attempt in range(attempts):
        try:
            return func()
        except retry_on:
            session.rollback()
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
