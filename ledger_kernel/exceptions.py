"""
Typed Exception Hierarchy for the Ledger Kernel.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from LedgerError:

    LedgerError (base)
    |
    +-- ValidationError
    |   +-- EmptyEntryError
    |   +-- InvalidAccountTypeError
    |   +-- AccountCycleError
    |   +-- CurrencyMismatchError
    |
    +-- InvariantViolationError
    |   +-- UnbalancedEntryError
    |   +-- ForeignAccountError
    |   +-- ImmutabilityViolationError
    |
    +-- InvalidTransitionError
    +-- OverpaymentError
    +-- ConflictError
    +-- StorageUnavailableError
    |
    +-- NotFoundError
    |   +-- OrganizationNotFoundError
    |   +-- AccountNotFoundError
    |   +-- SystemAccountNotFoundError
    |   +-- EntryNotFoundError
    |   +-- DocumentNotFoundError
    |   +-- PaymentNotFoundError
    |   +-- ExpenseNotFoundError
    |
    +-- AccountError
        +-- AccountInactiveError
        +-- AccountReferencedError
        +-- SystemAccountDeletionError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Validation      | VALIDATION_ERROR            | Malformed input (negative amount, ...)
                | EMPTY_ENTRY                 | Journal entry with no lines
                | INVALID_ACCOUNT_TYPE        | Unknown account type
                | ACCOUNT_CYCLE               | Parent link would close a loop
                | CURRENCY_MISMATCH           | Mixed currencies in one operation
----------------|-----------------------------|-----------------------------------------
Invariant       | UNBALANCED_ENTRY            | Debits != Credits
                | FOREIGN_ACCOUNT             | Account belongs to another organization
                | IMMUTABILITY_VIOLATION      | UPDATE/DELETE of a journal row
----------------|-----------------------------|-----------------------------------------
Lifecycle       | INVALID_TRANSITION          | Document state forbids the action
                | OVERPAYMENT                 | Allocation exceeds amount due/payment
----------------|-----------------------------|-----------------------------------------
Concurrency     | CONFLICT                    | Concurrent modification detected
Storage         | STORAGE_UNAVAILABLE         | Store timeout / connection failure
----------------|-----------------------------|-----------------------------------------
Lookup          | ACCOUNT_NOT_FOUND           | Account ID doesn't exist
                | SYSTEM_ACCOUNT_NOT_FOUND    | No seeded account for a role
                | ENTRY_NOT_FOUND             | Journal entry ID doesn't exist
                | DOCUMENT_NOT_FOUND          | Invoice/bill ID doesn't exist
                | PAYMENT_NOT_FOUND           | Payment ID doesn't exist
----------------|-----------------------------|-----------------------------------------
Account         | ACCOUNT_INACTIVE            | Posting to a deactivated account
                | ACCOUNT_REFERENCED          | Can't delete, has journal lines
                | SYSTEM_ACCOUNT_DELETION     | System accounts are permanent

===============================================================================
HANDLING PATTERNS
===============================================================================

1. USER-CORRECTABLE ERRORS (report verbatim):

    except (ValidationError, InvalidTransitionError) as e:
        return {"error": e.code, "message": str(e)}

2. RETRYABLE ERRORS (re-fetch state and try again):

    except (ConflictError, StorageUnavailableError):
        retry()

3. DEFECTS IN A COLLABORATOR (never retry, alert):

    except InvariantViolationError as e:
        log.error("ledger_invariant_violated", extra={"code": e.code})
        raise

Postings are idempotent per (source_document_id, transaction_type), so
retrying after StorageUnavailableError never double-posts.
"""


class LedgerError(Exception):
    """
    Base exception for all ledger kernel errors.

    All subclasses carry a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "LEDGER_ERROR"


# Validation


class ValidationError(LedgerError):
    """Malformed input, rejected before any write."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class EmptyEntryError(ValidationError):
    """Journal entry posted with no lines."""

    code: str = "EMPTY_ENTRY"

    def __init__(self, source_document_id: str, transaction_type: str):
        self.source_document_id = source_document_id
        self.transaction_type = transaction_type
        super().__init__(
            f"Journal entry for {transaction_type} on {source_document_id} has no lines",
            field="lines",
        )


class InvalidAccountTypeError(ValidationError):
    """Account type is not one of asset/liability/equity/income/expense."""

    code: str = "INVALID_ACCOUNT_TYPE"

    def __init__(self, account_type: str):
        self.account_type = account_type
        super().__init__(f"Invalid account type: '{account_type}'", field="account_type")


class AccountCycleError(ValidationError):
    """Parent assignment would make the account its own ancestor."""

    code: str = "ACCOUNT_CYCLE"

    def __init__(self, account_id: str, parent_account_id: str):
        self.account_id = account_id
        self.parent_account_id = parent_account_id
        super().__init__(
            f"Parent {parent_account_id} would create a cycle for account {account_id}",
            field="parent_account_id",
        )


class CurrencyMismatchError(ValidationError, ValueError):
    """Money arithmetic or posting mixes currencies."""

    code: str = "CURRENCY_MISMATCH"

    def __init__(self, expected: str, received: str):
        self.expected = expected
        self.received = received
        super().__init__(
            f"Currency mismatch: expected {expected}, got {received}",
            field="currency",
        )


# Invariant violations (programming defects in a collaborator)


class InvariantViolationError(LedgerError):
    """Base for ledger invariant violations. Always fatal to the operation."""

    code: str = "INVARIANT_VIOLATION"


class UnbalancedEntryError(InvariantViolationError):
    """Journal entry debits do not equal credits."""

    code: str = "UNBALANCED_ENTRY"

    def __init__(self, debits: str, credits: str, currency: str):
        self.debits = debits
        self.credits = credits
        self.currency = currency
        super().__init__(
            f"Unbalanced entry in {currency}: debits={debits}, credits={credits}"
        )


class ForeignAccountError(InvariantViolationError):
    """Account does not belong to the organization of the operation."""

    code: str = "FOREIGN_ACCOUNT"

    def __init__(self, account_id: str, organization_id: str):
        self.account_id = account_id
        self.organization_id = organization_id
        super().__init__(
            f"Account {account_id} does not belong to organization {organization_id}"
        )


class ImmutabilityViolationError(InvariantViolationError):
    """Attempted to modify or delete a journal entry or journal line."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# Lifecycle


class InvalidTransitionError(LedgerError):
    """Document is not in a state that permits the requested action."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, document_id: str, current_status: str, action: str):
        self.document_id = document_id
        self.current_status = current_status
        self.action = action
        super().__init__(
            f"Cannot {action} document {document_id} in status '{current_status}'"
        )


class OverpaymentError(LedgerError):
    """Allocation exceeds the document's amount due or the payment amount."""

    code: str = "OVERPAYMENT"

    def __init__(self, target_id: str, requested: str, available: str):
        self.target_id = target_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Overpayment on {target_id}: requested {requested}, available {available}"
        )


# Concurrency and storage


class ConflictError(LedgerError):
    """Row was modified concurrently; re-fetch and retry."""

    code: str = "CONFLICT"

    def __init__(self, entity: str, entity_id: str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"Concurrent modification of {entity} {entity_id}")


class StorageUnavailableError(LedgerError):
    """Underlying store timed out or refused the connection. Safe to retry."""

    code: str = "STORAGE_UNAVAILABLE"

    def __init__(self, operation: str, reason: str):
        self.operation = operation
        self.reason = reason
        super().__init__(f"Storage unavailable during {operation}: {reason}")


# Lookup


class NotFoundError(LedgerError):
    """Base for missing-entity errors."""

    code: str = "NOT_FOUND"


class OrganizationNotFoundError(NotFoundError):
    """Organization with given ID was not found."""

    code: str = "ORGANIZATION_NOT_FOUND"

    def __init__(self, organization_id: str):
        self.organization_id = organization_id
        super().__init__(f"Organization not found: {organization_id}")


class AccountNotFoundError(NotFoundError):
    """Account with given ID was not found."""

    code: str = "ACCOUNT_NOT_FOUND"

    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__(f"Account not found: {account_id}")


class SystemAccountNotFoundError(NotFoundError):
    """No system account is seeded for the requested role."""

    code: str = "SYSTEM_ACCOUNT_NOT_FOUND"

    def __init__(self, organization_id: str, role: str):
        self.organization_id = organization_id
        self.role = role
        super().__init__(
            f"No system account for role '{role}' in organization {organization_id}"
        )


class EntryNotFoundError(NotFoundError):
    """Journal entry with given ID was not found."""

    code: str = "ENTRY_NOT_FOUND"

    def __init__(self, entry_id: str):
        self.entry_id = entry_id
        super().__init__(f"Journal entry not found: {entry_id}")


class DocumentNotFoundError(NotFoundError):
    """Invoice or bill with given ID was not found."""

    code: str = "DOCUMENT_NOT_FOUND"

    def __init__(self, document_id: str, kind: str):
        self.document_id = document_id
        self.kind = kind
        super().__init__(f"{kind.capitalize()} not found: {document_id}")


class PaymentNotFoundError(NotFoundError):
    """Payment with given ID was not found."""

    code: str = "PAYMENT_NOT_FOUND"

    def __init__(self, payment_id: str):
        self.payment_id = payment_id
        super().__init__(f"Payment not found: {payment_id}")


class ExpenseNotFoundError(NotFoundError):
    """Expense with given ID was not found."""

    code: str = "EXPENSE_NOT_FOUND"

    def __init__(self, expense_id: str):
        self.expense_id = expense_id
        super().__init__(f"Expense not found: {expense_id}")


# Account structure


class AccountError(LedgerError):
    """Base exception for account structure errors."""

    code: str = "ACCOUNT_ERROR"


class AccountInactiveError(AccountError):
    """Account is deactivated and cannot receive postings."""

    code: str = "ACCOUNT_INACTIVE"

    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__(f"Account is inactive: {account_id}")


class AccountReferencedError(AccountError):
    """Account has journal lines and cannot be deleted."""

    code: str = "ACCOUNT_REFERENCED"

    def __init__(self, account_id: str, line_count: int):
        self.account_id = account_id
        self.line_count = line_count
        super().__init__(
            f"Account {account_id} is referenced by {line_count} journal line(s)"
        )


class SystemAccountDeletionError(AccountError):
    """System accounts seeded at provisioning cannot be deleted."""

    code: str = "SYSTEM_ACCOUNT_DELETION"

    def __init__(self, account_id: str, role: str | None):
        self.account_id = account_id
        self.role = role
        super().__init__(f"System account {account_id} ({role}) cannot be deleted")
