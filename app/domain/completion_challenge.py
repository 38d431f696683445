"""Completion challenge issue/verify.

Completion is irreversible (it triggers invoicing and payout), so the
provider can only close a job by presenting a code that was sent to the
customer. The code space is small, hence the attempt ceiling.

Outcomes of a verification:
- ok: code matched, challenge consumed
- mismatch: wrong code, attempt counted; the challenge is dropped once
  the ceiling is reached
- expired: challenge outlived its TTL and is dropped
- none_outstanding: nothing to verify against
"""

import hmac
from datetime import datetime, timedelta
from enum import Enum

from app.core.clock import CodeSource
from app.models.booking import CompletionChallenge

DEFAULT_CODE_LENGTH = 6
DEFAULT_TTL = timedelta(minutes=30)
DEFAULT_MAX_ATTEMPTS = 5


class VerificationResult(str, Enum):
    """Result of checking a supplied completion code."""

    OK = "ok"
    MISMATCH = "mismatch"
    EXPIRED = "expired"
    NONE_OUTSTANDING = "none_outstanding"


def issue_challenge(
    now: datetime,
    codes: CodeSource,
    ttl: timedelta = DEFAULT_TTL,
    length: int = DEFAULT_CODE_LENGTH,
) -> CompletionChallenge:
    """Create a fresh challenge.

    Attaching the result replaces whatever challenge the booking held, so
    a previously shared code can never be replayed.
    """
    return CompletionChallenge(
        code=codes.digits(length),
        issued_at=now,
        expires_at=now + ttl,
        attempts=0,
    )


def verify_challenge(
    challenge: CompletionChallenge | None,
    supplied_code: str,
    now: datetime,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> tuple[VerificationResult, CompletionChallenge | None]:
    """Check ``supplied_code`` against ``challenge``.

    Args:
        challenge: Outstanding challenge, if any
        supplied_code: Code the provider typed in
        now: Evaluation time
        max_attempts: Failed attempts allowed before the challenge is dropped

    Returns:
        Tuple of (result, challenge to keep on the booking)
    """
    if challenge is None:
        return VerificationResult.NONE_OUTSTANDING, None

    if challenge.is_expired(now):
        return VerificationResult.EXPIRED, None

    if hmac.compare_digest(challenge.code.encode(), supplied_code.encode()):
        return VerificationResult.OK, None

    attempts = challenge.attempts + 1
    if attempts >= max_attempts:
        return VerificationResult.MISMATCH, None
    return VerificationResult.MISMATCH, challenge.model_copy(update={"attempts": attempts})


def attempts_remaining(challenge: CompletionChallenge | None, max_attempts: int = DEFAULT_MAX_ATTEMPTS) -> int:
    if challenge is None:
        return 0
    return max(max_attempts - challenge.attempts, 0)
