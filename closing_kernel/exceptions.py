"""
Typed Exception Hierarchy for the Closing Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Every failure in the ledger and the closing controller is surfaced to a UI
that must render it without reinterpretation.  Callers catch by type, read
the machine-readable ``code`` and the structured attributes, and show the
message, which is always a human-readable reason naming the offending field.

    try:
        closing_service.close(...)
    except JustificationRequiredError as e:
        form.add_error(e.field, str(e))
    except AlreadyClosedError as e:
        toast(f"Ya existe un cierre para {e.period_key}")

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    ClosingKernelError (base)
    |
    +-- LedgerError
    |   +-- InvalidAmountError
    |   +-- UnknownKeyError
    |   +-- InvalidMovementKindError
    |   +-- InvalidCategoryError
    |   +-- InsufficientBalanceError
    |   +-- MovementNotFoundError
    |   +-- MovementAlreadyVoidedError
    |
    +-- ClosingError
    |   +-- AlreadyClosedError
    |   +-- ClosingNotFoundError
    |   +-- ClosingAlreadyReopenedError
    |   +-- ClosingNotConfiguredError
    |   +-- FutureDateError
    |   +-- PhotoRequiredError
    |
    +-- PeriodClosedError
    |
    +-- ValidationError
    |   +-- JustificationRequiredError
    |   +-- NotesRequiredError
    |
    +-- AuthorizationError
    |   +-- ForbiddenError
    |
    +-- AlertError
    |   +-- AlertNotFoundError
    |   +-- AlertAlreadyResolvedError
    |
    +-- AuditError
    |   +-- AuditChainBrokenError
    |
    +-- ImmutabilityViolationError
    |
    +-- StoreUnavailableError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category      | Code                      | When Raised
--------------|---------------------------|-------------------------------------------
Ledger        | INVALID_AMOUNT            | Zero amount, or sign contradicts the kind
              | UNKNOWN_KEY               | Unknown series, product, or bad date key
              | INVALID_MOVEMENT_KIND     | Kind not enabled for the series
              | INVALID_CATEGORY          | Category not configured for the series
              | INSUFFICIENT_BALANCE      | Balance would go negative
              | MOVEMENT_NOT_FOUND        | Movement ID doesn't exist
              | MOVEMENT_ALREADY_VOIDED   | Void attempted twice
--------------|---------------------------|-------------------------------------------
Closing       | ALREADY_CLOSED            | An active closing exists for the day
              | CLOSING_NOT_FOUND         | Closing ID doesn't exist
              | CLOSING_ALREADY_REOPENED  | Reopen of a reopened closing
              | CLOSING_NOT_CONFIGURED    | Series has no closing policy
              | FUTURE_DATE               | Closing a day that hasn't happened
              | PHOTO_REQUIRED            | Series requires the signed report photo
--------------|---------------------------|-------------------------------------------
Period        | PERIOD_CLOSED             | Write into a locked day
--------------|---------------------------|-------------------------------------------
Validation    | JUSTIFICATION_REQUIRED    | Missing/short/long justification
              | NOTES_REQUIRED            | Alert resolution without notes
--------------|---------------------------|-------------------------------------------
Authorization | FORBIDDEN                 | Actor role lacks the grant
--------------|---------------------------|-------------------------------------------
Alert         | ALERT_NOT_FOUND           | Alert ID doesn't exist
              | ALERT_ALREADY_RESOLVED    | Resolve attempted twice
--------------|---------------------------|-------------------------------------------
Audit         | AUDIT_CHAIN_BROKEN        | Hash chain validation failed
--------------|---------------------------|-------------------------------------------
Immutability  | IMMUTABILITY_VIOLATION    | Modifying an append-only record
--------------|---------------------------|-------------------------------------------
Store         | STORE_UNAVAILABLE         | Transient connectivity failure

===============================================================================
DESIGN DECISIONS
===============================================================================

1. Nothing here is retried by the kernel.  STORE_UNAVAILABLE is the only
   code a caller may reasonably retry, and that policy belongs to the caller.

2. Every failure leaves state unchanged: services flush inside the caller's
   transaction and ``session_scope()`` rolls back on any exception.
"""


class ClosingKernelError(Exception):
    """
    Base exception for all closing kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "CLOSING_KERNEL_ERROR"


# Ledger-related exceptions


class LedgerError(ClosingKernelError):
    """Base exception for movement ledger errors."""

    code: str = "LEDGER_ERROR"


class InvalidAmountError(LedgerError):
    """Amount is zero, negative where it must not be, or has the wrong sign."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, amount: str, reason: str, kind: str | None = None):
        self.amount = amount
        self.kind = kind
        self.reason = reason
        super().__init__(f"Invalid amount {amount}: {reason}")


class UnknownKeyError(LedgerError):
    """The ledger series or key does not exist."""

    code: str = "UNKNOWN_KEY"

    def __init__(self, series: str, key: str | None = None, reason: str | None = None):
        self.series = series
        self.key = key
        self.reason = reason
        target = f"{series}:{key}" if key is not None else series
        detail = f" ({reason})" if reason else ""
        super().__init__(f"Unknown ledger key {target}{detail}")


class InvalidMovementKindError(LedgerError):
    """Movement kind is not enabled for the series."""

    code: str = "INVALID_MOVEMENT_KIND"

    def __init__(self, series: str, kind: str):
        self.series = series
        self.kind = kind
        super().__init__(f"Movement kind '{kind}' is not allowed in series {series}")


class InvalidCategoryError(LedgerError):
    """Category is not configured for the series."""

    code: str = "INVALID_CATEGORY"

    def __init__(self, series: str, category: str):
        self.series = series
        self.category = category
        super().__init__(f"Category '{category}' is not configured for series {series}")


class InsufficientBalanceError(LedgerError):
    """The movement would take a category balance below zero."""

    code: str = "INSUFFICIENT_BALANCE"

    def __init__(self, series: str, key: str, category: str, balance: str, amount: str):
        self.series = series
        self.key = key
        self.category = category
        self.balance = balance
        self.amount = amount
        super().__init__(
            f"Insufficient balance for {series}:{key} [{category}]: "
            f"balance {balance}, movement {amount}"
        )


class MovementNotFoundError(LedgerError):
    """Movement with given ID was not found."""

    code: str = "MOVEMENT_NOT_FOUND"

    def __init__(self, movement_id: str):
        self.movement_id = movement_id
        super().__init__(f"Movement not found: {movement_id}")


class MovementAlreadyVoidedError(LedgerError):
    """Movement already has a compensating void, or is itself a void."""

    code: str = "MOVEMENT_ALREADY_VOIDED"

    def __init__(self, movement_id: str):
        self.movement_id = movement_id
        super().__init__(f"Movement {movement_id} was already voided")


# Closing-related exceptions


class ClosingError(ClosingKernelError):
    """Base exception for closing lifecycle errors."""

    code: str = "CLOSING_ERROR"


class AlreadyClosedError(ClosingError):
    """An active (closed) closing already exists for the period."""

    code: str = "ALREADY_CLOSED"

    def __init__(self, series: str, period_key: str):
        self.series = series
        self.period_key = period_key
        super().__init__(f"A closing already exists for {series} on {period_key}")


class ClosingNotFoundError(ClosingError):
    """Closing with given ID was not found."""

    code: str = "CLOSING_NOT_FOUND"

    def __init__(self, closing_id: str):
        self.closing_id = closing_id
        super().__init__(f"Closing not found: {closing_id}")


class ClosingAlreadyReopenedError(ClosingError):
    """Reopen attempted on a closing that is already reopened."""

    code: str = "CLOSING_ALREADY_REOPENED"

    def __init__(self, closing_id: str, closing_number: str):
        self.closing_id = closing_id
        self.closing_number = closing_number
        super().__init__(f"Closing {closing_number} is already reopened")


class ClosingNotConfiguredError(ClosingError):
    """The series has no closing policy (e.g. product-keyed ledgers)."""

    code: str = "CLOSING_NOT_CONFIGURED"

    def __init__(self, series: str):
        self.series = series
        super().__init__(f"Series {series} does not support closings")


class FutureDateError(ClosingError):
    """Closing a day later than today."""

    code: str = "FUTURE_DATE"

    def __init__(self, period_key: str, today: str):
        self.period_key = period_key
        self.today = today
        super().__init__(f"Cannot close future date {period_key} (today is {today})")


class PhotoRequiredError(ClosingError):
    """The series requires the photo of the signed closing report."""

    code: str = "PHOTO_REQUIRED"

    def __init__(self, series: str):
        self.series = series
        self.field = "photo_path"
        super().__init__(f"photo_path is required to close series {series}")


# Period lock


class PeriodClosedError(ClosingKernelError):
    """Write attempted into a day locked by an active closing."""

    code: str = "PERIOD_CLOSED"

    def __init__(self, series: str, period_key: str, closing_number: str | None = None):
        self.series = series
        self.period_key = period_key
        self.closing_number = closing_number
        suffix = f" by closing {closing_number}" if closing_number else ""
        super().__init__(f"Period {period_key} of {series} is closed{suffix}")


# Input validation


class ValidationError(ClosingKernelError):
    """Base exception for operator input validation errors."""

    code: str = "VALIDATION_ERROR"


class JustificationRequiredError(ValidationError):
    """Justification missing, too short, or too long."""

    code: str = "JUSTIFICATION_REQUIRED"

    def __init__(self, field: str, min_length: int, max_length: int, actual_length: int):
        self.field = field
        self.min_length = min_length
        self.max_length = max_length
        self.actual_length = actual_length
        if actual_length > max_length:
            message = f"{field} must be at most {max_length} characters"
        else:
            message = f"{field} must be at least {min_length} characters"
        super().__init__(message)


class NotesRequiredError(ValidationError):
    """Resolution notes missing or too long."""

    code: str = "NOTES_REQUIRED"

    def __init__(self, max_length: int, actual_length: int):
        self.field = "notes"
        self.max_length = max_length
        self.actual_length = actual_length
        if actual_length == 0:
            message = "notes are required"
        else:
            message = f"notes must be at most {max_length} characters"
        super().__init__(message)


# Authorization


class AuthorizationError(ClosingKernelError):
    """Base exception for role authorization errors."""

    code: str = "AUTHORIZATION_ERROR"


class ForbiddenError(AuthorizationError):
    """Actor's role is not granted the requested action."""

    code: str = "FORBIDDEN"

    def __init__(self, action: str, role: str, allowed_roles: tuple[str, ...]):
        self.action = action
        self.role = role
        self.allowed_roles = allowed_roles
        allowed = ", ".join(allowed_roles) or "nobody"
        super().__init__(f"Role '{role}' may not {action} (allowed: {allowed})")


# Alerts


class AlertError(ClosingKernelError):
    """Base exception for alert errors."""

    code: str = "ALERT_ERROR"


class AlertNotFoundError(AlertError):
    """Alert with given ID was not found."""

    code: str = "ALERT_NOT_FOUND"

    def __init__(self, alert_id: str):
        self.alert_id = alert_id
        super().__init__(f"Alert not found: {alert_id}")


class AlertAlreadyResolvedError(AlertError):
    """Alert was already resolved."""

    code: str = "ALERT_ALREADY_RESOLVED"

    def __init__(self, alert_id: str):
        self.alert_id = alert_id
        super().__init__(f"Alert {alert_id} is already resolved")


# Audit


class AuditError(ClosingKernelError):
    """Base exception for audit-related errors."""

    code: str = "AUDIT_ERROR"


class AuditChainBrokenError(AuditError):
    """Audit hash chain validation failed."""

    code: str = "AUDIT_CHAIN_BROKEN"

    def __init__(self, audit_event_id: str, expected_hash: str, actual_hash: str):
        self.audit_event_id = audit_event_id
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Audit chain broken at {audit_event_id}: "
            f"expected {expected_hash}, found {actual_hash}"
        )


# Immutability


class ImmutabilityViolationError(ClosingKernelError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# Store


class StoreUnavailableError(ClosingKernelError):
    """The relational store could not be reached."""

    code: str = "STORE_UNAVAILABLE"

    def __init__(self, operation: str, detail: str):
        self.operation = operation
        self.detail = detail
        super().__init__(f"Store unavailable during {operation}: {detail}")
