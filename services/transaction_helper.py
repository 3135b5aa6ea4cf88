"""
Transaction Helper Service

Unit-of-work support for the service layer:
- Commit on success, rollback and re-raise on any failure
- Unique-key violations surfaced as ConflictError
- No retries; a failed operation is reported to the caller as-is
"""

from contextlib import contextmanager
from functools import wraps
from typing import Callable
import logging
from sqlalchemy.exc import IntegrityError

from .exceptions import ConflictError

logger = logging.getLogger(__name__)


class TransactionHelper:
    """Helper class for managing database transactions safely"""

    @staticmethod
    @contextmanager
    def unit_of_work(session, conflict_message: str = 'Record conflicts with an existing entry'):
        """
        Run a block of session work as one transaction.

        Usage:
            with TransactionHelper.unit_of_work(db.session):
                invoice.status = InvoiceStatus.PAID
                ...
        """
        try:
            yield session
            session.commit()
        except IntegrityError as e:
            session.rollback()
            logger.warning(f"Integrity error, transaction rolled back: {e.orig}")
            raise ConflictError(conflict_message) from e
        except Exception as e:
            session.rollback()
            logger.debug(f"Transaction rolled back: {type(e).__name__}: {e}")
            raise

    @staticmethod
    def with_transaction(func: Callable) -> Callable:
        """
        Decorator that wraps a service method in a unit of work using the
        service's own ``session``.

        Usage:
            @TransactionHelper.with_transaction
            def decide_step(self, step_id, ...):
                # Your database operations here
                pass

        Decorated methods must not call each other; each one commits.
        """
        @wraps(func)
        def wrapper(self, *args, **kwargs):
            with TransactionHelper.unit_of_work(self.session):
                return func(self, *args, **kwargs)
        return wrapper
