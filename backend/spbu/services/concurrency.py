# Overview: Transaction scope and row-locking helpers for service operations.

from __future__ import annotations

from contextlib import contextmanager


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


@contextmanager
def atomic(session):
    """
    One operation, one database transaction.

    Every read that informs a write decision (balance check, over-delivery
    check, already-closed check) runs inside the block together with the
    write. Commits on success, rolls back on any exception and re-raises.

    No retry: failures surface to the caller.
    """
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
