"""
BaseService -- abstract base for all ledger services.

Responsibility:
    Provides the common constructor and session-handling contract for every
    write-side service.  Services receive a SQLAlchemy ``Session`` and use
    ``session.flush()`` -- never ``session.commit()``.

Invariants enforced:
    Transaction boundaries: services flush within the caller's transaction
    and never commit or roll back themselves.  The caller (ARService,
    APService, session_scope(), or the test harness) owns commit/rollback.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from ledger_kernel.db.base import Base
from ledger_kernel.domain.clock import Clock, SystemClock

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for ledger services.

    Guarantees:
        - The service never calls ``session.commit()`` or
          ``session.rollback()``; multi-step operations stay atomic.
        - ``self.clock`` is always set; SystemClock is the default.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        """
        Args:
            session: SQLAlchemy session for database operations.
            clock: Time source for default dates. Defaults to SystemClock.
        """
        self.session = session
        self.clock = clock or SystemClock()
