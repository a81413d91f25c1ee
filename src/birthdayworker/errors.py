"""Error taxonomy for the birthday worker."""

from enum import Enum


class ErrorKind(Enum):
    """Tag carried by every birthday worker error."""

    DUPLICATE_KEY = "duplicate_key"
    INVALID = "invalid"
    NOT_FOUND = "not_found"
    TRANSIENT = "transient"
    PERMANENT = "permanent"


class BirthdayWorkerError(Exception):
    """Base exception for birthday worker errors."""

    kind: ErrorKind = ErrorKind.TRANSIENT


class DuplicateKeyError(BirthdayWorkerError):
    """Raised when a unique field (the contact address) is already taken."""

    kind = ErrorKind.DUPLICATE_KEY


class ValidationError(BirthdayWorkerError):
    """Raised when member data is malformed."""

    kind = ErrorKind.INVALID


class InvalidTimezoneError(ValidationError):
    """Raised when an IANA timezone identifier cannot be resolved."""


class NotFoundError(BirthdayWorkerError):
    """Raised when a member does not exist."""

    kind = ErrorKind.NOT_FOUND


class TransientDeliveryError(BirthdayWorkerError):
    """Raised by a delivery call for failures worth retrying."""

    kind = ErrorKind.TRANSIENT


class PermanentDeliveryError(BirthdayWorkerError):
    """Raised by a delivery call for failures that retrying cannot fix."""

    kind = ErrorKind.PERMANENT


class CycleFatalError(BirthdayWorkerError):
    """Raised when a cycle cannot proceed past the population lookup."""


def classify(error: BaseException) -> ErrorKind:
    """Map an exception to its error kind.

    Exceptions from outside this package are treated as transient so that
    unknown delivery failures are retried.

    Args:
        error: The exception to classify.

    Returns:
        The ErrorKind tag of the exception.
    """
    if isinstance(error, BirthdayWorkerError):
        return error.kind
    return ErrorKind.TRANSIENT
