"""Transaction utilities for explicit transaction boundaries.

This module provides a context manager for managing database transactions
with automatic commit/rollback semantics to prevent partial state updates.
"""

from collections.abc import Generator
from contextlib import contextmanager

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from core.exceptions import PersistenceError


@contextmanager
def transaction(session: Session) -> Generator[Session]:
    """Context manager for explicit transaction boundaries.

    Commits on successful completion, rolls back on any exception.
    SQLite lock timeouts surface as PersistenceError so callers can treat
    them as transient.

    Example:
        with session_factory() as session, transaction(session):
            repo = OrderRepository(session)
            repo.compare_and_set("o1", {"status": "placed"}, {"status": "accepted"})
        # Automatic commit if no exception, rollback otherwise

    Args:
        session: SQLAlchemy session to manage

    Yields:
        The same session for use within the context

    Raises:
        PersistenceError: if the database reported an operational failure
        Any other exception raised within the context (after rollback)
    """
    try:
        yield session
        session.commit()
    except OperationalError as e:
        session.rollback()
        raise PersistenceError(f"Database operation failed: {e}") from e
    except Exception:
        session.rollback()
        raise
