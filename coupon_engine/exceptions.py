from typing import Any

from .constants import ErrorKind


class CouponEngineError(Exception):
    """Base class for every failure the engine reports to callers.

    `code` is stable and machine-checkable, `message` is safe to show to end
    users. `context` carries ids for logs and is never sent to callers.
    """

    kind: ErrorKind = ErrorKind.TRANSIENT
    code: str = "internal_error"
    default_message: str = "Internal error"

    def __init__(self, message: str | None = None, context: dict[str, Any] | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)
        self.context = context or {}


class NotFoundError(CouponEngineError):
    kind = ErrorKind.NOT_FOUND
    code = "not_found"
    default_message = "Not found"


class ConflictError(CouponEngineError):
    kind = ErrorKind.CONFLICT
    code = "conflict"
    default_message = "Conflict"


class ExhaustedError(CouponEngineError):
    kind = ErrorKind.EXHAUSTED
    code = "exhausted"
    default_message = "Retry budget exhausted"


class TransientError(CouponEngineError):
    kind = ErrorKind.TRANSIENT


class BookNotFound(NotFoundError):
    code = "book_not_found"
    default_message = "Book not found"


class CodeNotFound(NotFoundError):
    code = "code_not_found"
    default_message = "Code not found"


class CodeNotAssigned(NotFoundError):
    code = "code_not_assigned"
    default_message = "Code not found or not assigned to this user"


class CodeNotAssignedOrNotLocked(NotFoundError):
    code = "code_not_assigned_or_not_locked"
    default_message = "Code not assigned to this user or not locked"


class QuotaExceeded(ConflictError):
    code = "quota_exceeded"
    default_message = "Maximum number of codes per user reached"


class AlreadyAssigned(ConflictError):
    code = "already_assigned"
    default_message = "Code is already assigned"


class NoCodesAvailable(ConflictError):
    code = "no_codes_available"
    default_message = "No codes available in this book"


class AlreadyLocked(ConflictError):
    code = "already_locked"
    default_message = "Code cannot be locked right now"


class RedeemLimitReached(ConflictError):
    code = "redeem_limit_reached"
    default_message = "Maximum number of redemptions reached"


class CodeExpired(ConflictError):
    code = "code_expired"
    default_message = "Code has expired"


class AmbiguousCode(ConflictError):
    code = "ambiguous_code"
    default_message = "Code exists in more than one book, book_id is required"


class ManualCollision(ConflictError):
    code = "manual_collision"
    default_message = "Some codes already exist in this book"


class GenerationExhausted(ExhaustedError):
    code = "generation_exhausted"
    default_message = "Could not generate enough unique codes, increase the code length"


class AssignRetriesExhausted(ExhaustedError):
    code = "assign_retries_exhausted"
    default_message = "Could not assign a code, please try again"


class AddCodesFailed(TransientError):
    code = "add_codes_failed"
    default_message = "Failed to add codes"


class AssignFailed(TransientError):
    code = "assign_failed"
    default_message = "Failed to assign code"


class LockFailed(TransientError):
    code = "lock_failed"
    default_message = "Failed to lock code"


class RedeemFailed(TransientError):
    code = "redeem_failed"
    default_message = "Failed to redeem code"


class SweepFailed(TransientError):
    code = "sweep_failed"
    default_message = "Failed to unlock expired codes"
