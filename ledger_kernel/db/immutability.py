"""
ORM-level immutability enforcement for the journal.

Journal entries and journal lines are append-only.  Corrections are made
with compensating entries, never by editing or removing rows.  This module
registers SQLAlchemy mapper events that reject any UPDATE or DELETE of a
journal row before the SQL reaches the database:

    session.flush()
         |
         v
    [before_update] --> _check_journal_update() --> ImmutabilityViolationError
    [before_delete] --> _check_journal_delete() --> ImmutabilityViolationError

Audit columns (updated_at, updated_by_id) are the only fields allowed to
change on a journal row.

Bulk ``UPDATE``/``DELETE`` statements bypass mapper events; the services
never issue them against journal tables.
"""

from sqlalchemy import event, inspect

from ledger_kernel.exceptions import ImmutabilityViolationError
from ledger_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_AUDIT_FIELDS = frozenset({"updated_at", "updated_by_id"})


def _check_journal_update(mapper, connection, target):
    """Reject any change to a non-audit field of a journal entry or line."""
    insp = inspect(target)
    for column_attr in insp.mapper.column_attrs:
        if column_attr.key in _AUDIT_FIELDS:
            continue
        attr = insp.attrs[column_attr.key]
        if attr.history.has_changes():
            entity_type = type(target).__name__
            logger.error(
                "immutability_violation_blocked",
                extra={
                    "entity_type": entity_type,
                    "entity_id": str(target.id),
                    "operation": "UPDATE",
                    "field": attr.key,
                },
            )
            raise ImmutabilityViolationError(
                entity_type=entity_type,
                entity_id=str(target.id),
                reason=f"Cannot modify field '{attr.key}' on a journal row",
            )


def _check_journal_delete(mapper, connection, target):
    """Reject deletion of a journal entry or line."""
    entity_type = type(target).__name__
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": "DELETE",
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason="Journal rows cannot be deleted; post a reversal instead",
    )


def register_immutability_listeners() -> None:
    """
    Register the journal immutability listeners.

    Safe to call more than once; already-registered listeners are skipped.
    """
    from ledger_kernel.models.journal import JournalEntry, JournalLine

    for model in (JournalEntry, JournalLine):
        if not event.contains(model, "before_update", _check_journal_update):
            event.listen(model, "before_update", _check_journal_update)
        if not event.contains(model, "before_delete", _check_journal_delete):
            event.listen(model, "before_delete", _check_journal_delete)


def unregister_immutability_listeners() -> None:
    """Remove the journal immutability listeners. FOR TESTING ONLY."""
    from ledger_kernel.models.journal import JournalEntry, JournalLine

    for model in (JournalEntry, JournalLine):
        if event.contains(model, "before_update", _check_journal_update):
            event.remove(model, "before_update", _check_journal_update)
        if event.contains(model, "before_delete", _check_journal_delete):
            event.remove(model, "before_delete", _check_journal_delete)
