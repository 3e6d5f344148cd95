"""Package verification service.

Asks each package manager's public catalog whether a package still exists,
retries transient failures, flags verified-to-failed regressions for manual
review, and records every result in DynamoDB.
"""

from .errors import NetworkError, RateLimitError, is_retryable_error
from .models import (
    PACKAGE_MANAGERS,
    UNVERIFIABLE_MANAGERS,
    VERIFIABLE_MANAGERS,
    VerificationOutcome,
    VerificationResult,
    VerificationSummary,
)
from .retry import backoff_delay, execute_with_retry
from .service import VerificationService, generate_timestamp
from .storage import ResultStore, VerificationStorage

__all__ = [
    "NetworkError",
    "PACKAGE_MANAGERS",
    "RateLimitError",
    "ResultStore",
    "UNVERIFIABLE_MANAGERS",
    "VERIFIABLE_MANAGERS",
    "VerificationOutcome",
    "VerificationResult",
    "VerificationService",
    "VerificationStorage",
    "VerificationSummary",
    "backoff_delay",
    "execute_with_retry",
    "generate_timestamp",
    "is_retryable_error",
]
