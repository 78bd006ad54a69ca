"""
Module: ledger_kernel.selectors.base
Responsibility: Abstract base class for all read-only query selectors.
Architecture position: Kernel > Selectors.  May import from db/ and models/.
    MUST NOT import from services/.

Invariants enforced:
    - Read-only access: selectors never add, delete, flush or commit.
    - DTO return convention: selectors return frozen dataclasses, Money, or
      generators of them -- never ORM instances.
    - Derived, never stored: balances come from journal lines at query time.
"""

from abc import ABC

from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock, SystemClock


class BaseSelector(ABC):
    """
    Abstract base class for all selectors.

    Guarantees:
        - session is stored as a public attribute for subclass query use.
        - clock supplies "today" for as-of defaults.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self.clock = clock or SystemClock()
