"""Provider appeal state machine.

States: PENDING → UNDER_REVIEW → APPROVED | REJECTED
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime

from app.core.exceptions import InvalidAppealStatus, UnauthorizedAction
from app.models.provider import Appeal, AppealStatus, AppealType, Provider, ProviderStatus
from app.models.user import Actor, Role

APPEAL_TRANSITIONS: dict[AppealStatus, set[AppealStatus]] = {
    AppealStatus.PENDING: {AppealStatus.UNDER_REVIEW, AppealStatus.APPROVED, AppealStatus.REJECTED},
    AppealStatus.UNDER_REVIEW: {AppealStatus.APPROVED, AppealStatus.REJECTED},
    AppealStatus.APPROVED: set(),  # Terminal state
    AppealStatus.REJECTED: set(),  # Terminal state
}

# Provider status an appeal type applies to
APPEALABLE_STATUS: dict[AppealType, ProviderStatus] = {
    AppealType.SUSPENSION_APPEAL: ProviderStatus.SUSPENDED,
    AppealType.REJECTION_APPEAL: ProviderStatus.REJECTED,
}

# Provider status restored once an appeal is approved
APPEAL_RESTORES: dict[AppealType, ProviderStatus] = {
    AppealType.SUSPENSION_APPEAL: ProviderStatus.APPROVED,
    AppealType.REJECTION_APPEAL: ProviderStatus.PENDING,
}


def assert_appeal_transition(current: AppealStatus, target: AppealStatus) -> None:
    allowed = APPEAL_TRANSITIONS.get(current, set())
    if target not in allowed:
        raise InvalidAppealStatus(f"Invalid appeal transition: {current.value} → {target.value}")


def open_appeal(
    actor: Actor,
    provider: Provider,
    appeal_type: AppealType,
    reason: str,
    details: str | None,
    now: datetime,
    existing: Iterable[Appeal] = (),
) -> Appeal:
    """Create an appeal on behalf of the provider's own account."""
    if not actor.acts_for_provider(provider.id):
        raise UnauthorizedAction("Only the provider can appeal its own status")

    if provider.status == ProviderStatus.APPROVED:
        raise InvalidAppealStatus("Provider is already approved")

    expected = APPEALABLE_STATUS[appeal_type]
    if provider.status != expected:
        raise InvalidAppealStatus(
            f"{appeal_type.value} only applies to {expected.value.lower()} providers"
        )

    if any(a.provider_id == provider.id and a.is_open for a in existing):
        raise InvalidAppealStatus("You already have a pending appeal")

    return Appeal(
        provider_id=provider.id,
        type=appeal_type,
        reason=reason,
        details=details,
        status=AppealStatus.PENDING,
        created_at=now,
    )


def review_appeal(
    appeal: Appeal,
    actor: Actor,
    decision: AppealStatus,
    admin_notes: str | None,
    now: datetime,
) -> Appeal:
    """Record an admin decision on an appeal."""
    if actor.role != Role.ADMIN:
        raise UnauthorizedAction("Admin access required")

    assert_appeal_transition(appeal.status, decision)

    return appeal.evolve(
        status=decision,
        admin_notes=admin_notes,
        reviewed_by=actor.user_id,
        reviewed_at=now,
    )
