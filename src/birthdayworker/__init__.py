"""Birthday worker - greets members on their birthday in their own timezone."""

from birthdayworker.errors import (
    BirthdayWorkerError,
    CycleFatalError,
    DuplicateKeyError,
    ErrorKind,
    InvalidTimezoneError,
    NotFoundError,
    PermanentDeliveryError,
    TransientDeliveryError,
    ValidationError,
    classify,
)
from birthdayworker.models import LocalTime, Member, MonthDay
from birthdayworker.timezones import localize, validate_timezone
from birthdayworker.matcher import (
    BirthdayMatcher,
    CandidateWindow,
    MatchResult,
    MemberError,
    candidate_window,
    match,
)
from birthdayworker.delivery import (
    DeliveryCall,
    LogDelivery,
    TelegramDelivery,
    WebhookDelivery,
    build_delivery,
    format_greeting,
)
from birthdayworker.sender import (
    DeliveryAttempt,
    PermanentFailure,
    RetryingSender,
    Success,
    backoff_delay,
)
from birthdayworker.orchestrator import (
    BatchDeliveryOrchestrator,
    CycleSummary,
    FailureDetail,
)
from birthdayworker.runner import BirthdayRunner, PopulationLookup
from birthdayworker.repository import DatabaseConnectionManager, MemberRepository


__all__ = [
    "backoff_delay",
    "BatchDeliveryOrchestrator",
    "BirthdayMatcher",
    "BirthdayRunner",
    "BirthdayWorkerError",
    "build_delivery",
    "candidate_window",
    "CandidateWindow",
    "classify",
    "CycleFatalError",
    "CycleSummary",
    "DatabaseConnectionManager",
    "DeliveryAttempt",
    "DeliveryCall",
    "DuplicateKeyError",
    "ErrorKind",
    "FailureDetail",
    "format_greeting",
    "InvalidTimezoneError",
    "LocalTime",
    "localize",
    "LogDelivery",
    "match",
    "MatchResult",
    "Member",
    "MemberError",
    "MemberRepository",
    "MonthDay",
    "NotFoundError",
    "PermanentDeliveryError",
    "PermanentFailure",
    "PopulationLookup",
    "RetryingSender",
    "Success",
    "TelegramDelivery",
    "TransientDeliveryError",
    "validate_timezone",
    "ValidationError",
    "WebhookDelivery",
]
