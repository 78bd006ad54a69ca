"""
Transaction boundary shared by the AR and AP facades.

Each public facade call runs one lifecycle operation inside the session's
transaction and then commits.  On ConflictError the transaction is rolled
back and the operation re-run from scratch (re-reading and re-validating)
up to ``settings.conflict_retries`` times.  Store failures surface as
StorageUnavailableError.  Every other exception rolls back and propagates.
"""

from __future__ import annotations

from typing import Callable, TypeVar

from sqlalchemy.exc import OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ledger_config import LedgerSettings, get_active_config
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.context import OrganizationContext
from ledger_kernel.exceptions import ConflictError, StorageUnavailableError
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_modules.documents.lifecycle import DocumentLifecycleManager
from ledger_modules.documents.selectors import DocumentSelector

logger = get_logger("modules.documents.facade")

T = TypeVar("T")


class DocumentFacade:
    """
    Base for ARService and APService.

    Transaction boundary: commits on success, rolls back on failure.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        settings: LedgerSettings | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._settings = settings or get_active_config().settings
        self._lifecycle = DocumentLifecycleManager(session, self._clock, self._settings)
        self._selector = DocumentSelector(session, self._clock)

    @property
    def lifecycle(self) -> DocumentLifecycleManager:
        return self._lifecycle

    @property
    def selector(self) -> DocumentSelector:
        return self._selector

    def _execute(
        self,
        operation: str,
        context: OrganizationContext,
        fn: Callable[[], T],
        **log_fields,
    ) -> T:
        retries = self._settings.conflict_retries
        attempt = 0
        while True:
            attempt += 1
            with LogContext.bind(
                organization_id=str(context.organization_id),
                actor_id=str(context.actor_id),
            ):
                try:
                    result = fn()
                    self._session.commit()
                except StaleDataError as exc:
                    self._session.rollback()
                    conflict = ConflictError(operation, str(log_fields.get("document_id", "")))
                    if attempt > retries:
                        raise conflict from exc
                    self._log_retry(operation, attempt, conflict)
                    continue
                except ConflictError as exc:
                    self._session.rollback()
                    if attempt > retries:
                        raise
                    self._log_retry(operation, attempt, exc)
                    continue
                except (OperationalError, PoolTimeoutError) as exc:
                    self._session.rollback()
                    logger.error(
                        "storage_unavailable",
                        extra={"operation": operation, "error": str(exc)},
                    )
                    raise StorageUnavailableError(operation, str(exc)) from exc
                except Exception:
                    self._session.rollback()
                    raise

                logger.info(
                    f"{operation}_committed",
                    extra={"attempt": attempt, **_stringify(log_fields)},
                )
                return result

    def _log_retry(self, operation: str, attempt: int, exc: ConflictError) -> None:
        logger.warning(
            "conflict_retry",
            extra={
                "operation": operation,
                "attempt": attempt,
                "entity": exc.entity,
                "entity_id": exc.entity_id,
            },
        )


def _stringify(fields: dict) -> dict:
    return {key: str(value) if value is not None else None for key, value in fields.items()}
