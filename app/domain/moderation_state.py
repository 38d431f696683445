"""Provider moderation state machine.

States:
- PENDING: Onboarding, awaiting admin review
- APPROVED: May accept and run bookings
- REJECTED: Onboarding refused; can re-enter review through an appeal
- SUSPENDED: Temporarily barred; admin may restore, or an appeal may
  send the provider back to review

Suspension never touches bookings that are already in flight. It only
removes provider-side actions from future permitted sets.
"""

from __future__ import annotations

import logging
from datetime import datetime

from app.core.exceptions import InvalidProviderStatus, InvariantViolation, UnauthorizedAction
from app.models.provider import Appeal, AppealStatus, ModerationAuditRecord, Provider, ProviderStatus
from app.models.user import Actor, Role

logger = logging.getLogger(__name__)

PROVIDER_TRANSITIONS: dict[ProviderStatus, set[ProviderStatus]] = {
    ProviderStatus.PENDING: {ProviderStatus.APPROVED, ProviderStatus.REJECTED},
    ProviderStatus.APPROVED: {ProviderStatus.SUSPENDED},
    ProviderStatus.SUSPENDED: {ProviderStatus.APPROVED, ProviderStatus.PENDING},
    ProviderStatus.REJECTED: {ProviderStatus.PENDING},
}

# Edges only an approved appeal may take
APPEAL_ONLY_TRANSITIONS: set[tuple[ProviderStatus, ProviderStatus]] = {
    (ProviderStatus.REJECTED, ProviderStatus.PENDING),
    (ProviderStatus.SUSPENDED, ProviderStatus.PENDING),
}

REASON_REQUIRED: set[ProviderStatus] = {ProviderStatus.SUSPENDED, ProviderStatus.REJECTED}


def assert_provider_transition(
    current: ProviderStatus,
    target: ProviderStatus,
    appeal: Appeal | None = None,
) -> None:
    """Validate a provider status change.

    Raises:
        InvalidProviderStatus: If the edge does not exist or needs an appeal
    """
    if current == target:
        raise InvalidProviderStatus(f"Provider is already {current.value.lower()}")

    allowed = PROVIDER_TRANSITIONS.get(current, set())
    if target not in allowed:
        raise InvalidProviderStatus(
            f"Invalid provider transition: {current.value} → {target.value}"
        )

    if (current, target) in APPEAL_ONLY_TRANSITIONS:
        if appeal is None or appeal.status != AppealStatus.APPROVED:
            raise InvalidProviderStatus(
                f"{current.value} → {target.value} requires an approved appeal"
            )


def set_provider_status(
    provider: Provider,
    new_status: ProviderStatus,
    actor: Actor,
    reason: str | None,
    now: datetime,
    appeal: Appeal | None = None,
) -> tuple[Provider, ModerationAuditRecord]:
    """Change a provider's moderation status.

    Args:
        provider: Current provider snapshot
        new_status: Target status
        actor: Must be an ADMIN
        reason: Why; mandatory for suspension and rejection
        now: Time of the change
        appeal: Approved appeal authorising a return to review

    Returns:
        Tuple of (updated provider, audit record to append)
    """
    if actor.role != Role.ADMIN:
        raise UnauthorizedAction("Admin access required")

    if appeal is not None and appeal.provider_id != provider.id:
        raise InvalidProviderStatus("Appeal belongs to a different provider")

    assert_provider_transition(provider.status, new_status, appeal)

    reason = reason.strip() if reason else None
    if new_status in REASON_REQUIRED and not reason:
        raise InvariantViolation(f"A reason is required to mark a provider {new_status.value.lower()}")

    updated = provider.evolve(status=new_status, updated_at=now)
    record = ModerationAuditRecord(
        actor_id=actor.user_id,
        provider_id=provider.id,
        old_status=provider.status,
        new_status=new_status,
        reason=reason,
        at=now,
        appeal_id=appeal.id if appeal else None,
    )

    logger.info(
        f"Provider {provider.id}: {provider.status.value} → {new_status.value} "
        f"by admin {actor.user_id}" + (f" (appeal {appeal.id})" if appeal else "")
    )
    return updated, record
