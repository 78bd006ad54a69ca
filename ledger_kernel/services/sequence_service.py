"""
SequenceService -- monotonic numbers for journal ordering and documents.

Responsibility:
    Provides strictly increasing numbers for journal entry ordering and
    document numbering.  The two needs are served differently:

    - Journal entry seq comes from a store-generated key (a BIGSERIAL on
      PostgreSQL, AUTOINCREMENT on SQLite).  Allocation takes no lock
      shared with other transactions, so postings for different documents
      in one organization never wait on each other.
    - Human-facing document numbers (INV-, BILL-, PMT-, VPMT-) come from a
      named counter row locked with ``SELECT ... FOR UPDATE``, which keeps
      them gap-free and unique.

Architecture position:
    Kernel > Services.  Called by JournalEngine (entry seq) and
    DocumentLifecycleManager (document and payment numbers).

Invariants enforced:
    - Monotonicity: the counter row or the store's key generator is the
      sole source of the next value.  MAX(seq)+1 is never used.
    - Entry seq values are unique across the store and increase in
      allocation order.  A rolled-back posting may leave a gap.
    - Counter values are only visible after the caller commits.  Rollback
      returns them.
    - Tenant isolation: counters are named per organization, so allocation
      for one organization never waits on another.

Failure modes:
    - IntegrityError: concurrent counter creation race (handled via savepoint
      rollback and re-read).
"""

from uuid import UUID

from sqlalchemy import BigInteger, Integer, String, insert, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Mapped, Session, mapped_column

from ledger_kernel.db.base import Base
from ledger_kernel.logging_config import get_logger

logger = get_logger("services.sequence")


class JournalSequence(Base):
    """
    Key generator for journal entry seq.

    One row per allocated value.  The database assigns ``id``.
    """

    __tablename__ = "journal_sequence"
    __table_args__ = {"sqlite_autoincrement": True}

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"),
        primary_key=True,
        autoincrement=True,
    )


class SequenceCounter(Base):
    """
    Sequence counter table.

    Each row is one named sequence with its current value.  Row-level
    locking keeps allocation monotonic under concurrency.
    """

    __tablename__ = "sequence_counters"

    # e.g. "invoice_number:<organization id>"
    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        unique=True,
    )

    current_value: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )


class SequenceService:
    """
    Service for generating transactional sequence numbers.

    Usage:
        number = SequenceService(session).next_value(
            SequenceService.scoped(SequenceService.INVOICE_NUMBER, org_id)
        )
        seq = SequenceService(session).next_entry_seq()
    """

    INVOICE_NUMBER = "invoice_number"
    BILL_NUMBER = "bill_number"
    PAYMENT_NUMBER = "payment_number"
    VENDOR_PAYMENT_NUMBER = "vendor_payment_number"

    def __init__(self, session: Session):
        self._session = session

    @staticmethod
    def scoped(sequence_name: str, organization_id: UUID) -> str:
        """Name of ``sequence_name`` for a single organization."""
        return f"{sequence_name}:{organization_id}"

    def _lock_counter(self, sequence_name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def next_value(self, sequence_name: str) -> int:
        """
        Get the next value for a named sequence.

        Locks the counter row (creating it on first use), increments it and
        returns the new value.  The lock is held until the caller's
        transaction ends.

        Postconditions:
            - Returns an integer > 0 strictly greater than any value
              previously committed for this sequence name.
        """
        counter = self._lock_counter(sequence_name)

        if counter is None:
            # First use: another transaction may be creating it concurrently
            savepoint = self._session.begin_nested()
            try:
                counter = SequenceCounter(name=sequence_name, current_value=1)
                self._session.add(counter)
                self._session.flush()
                savepoint.commit()
                logger.debug(
                    "sequence_allocated",
                    extra={"sequence_name": sequence_name, "value": 1},
                )
                return 1
            except IntegrityError:
                logger.debug(
                    "sequence_counter_race_retry",
                    extra={"sequence_name": sequence_name},
                )
                savepoint.rollback()
                counter = self._lock_counter(sequence_name)
                if counter is None:
                    raise

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def current_value(self, sequence_name: str) -> int | None:
        """Current value of a sequence without incrementing, or None if unused."""
        counter = self._session.execute(
            select(SequenceCounter).where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()
        return counter.current_value if counter else None

    def next_entry_seq(self) -> int:
        """
        Allocate the insertion number for a new journal entry.

        The value is generated by the store on insert, so concurrent
        postings do not serialize here.  Values are unique and increasing
        but not contiguous.
        """
        value = self._session.execute(
            insert(JournalSequence.__table__)
        ).inserted_primary_key[0]
        logger.debug("entry_seq_allocated", extra={"value": value})
        return value
