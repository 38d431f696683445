import uuid

import pytest

from app.core.exceptions import InvalidAppealStatus, InvalidProviderStatus, UnauthorizedAction
from app.domain.appeal_state import open_appeal, review_appeal
from app.domain.events import AppealReviewed, AppealSubmitted
from app.models.provider import AppealStatus, AppealType, Provider, ProviderStatus
from app.models.user import Actor, Role
from conftest import NOW


@pytest.fixture
def suspended(db, moderation_service, provider, admin):
    return moderation_service.set_provider_status(
        db, provider.id, ProviderStatus.SUSPENDED, admin, "Customer complaints"
    )


def test_open_appeal(suspended, provider_actor):
    appeal = open_appeal(
        provider_actor, suspended, AppealType.SUSPENSION_APPEAL, "Misunderstanding", None, NOW
    )
    assert appeal.status == AppealStatus.PENDING
    assert appeal.provider_id == suspended.id
    assert appeal.created_at == NOW


def test_approved_provider_cannot_appeal(provider, provider_actor):
    with pytest.raises(InvalidAppealStatus):
        open_appeal(provider_actor, provider, AppealType.SUSPENSION_APPEAL, "Why", None, NOW)


def test_appeal_type_must_match_status(suspended, provider_actor):
    with pytest.raises(InvalidAppealStatus):
        open_appeal(provider_actor, suspended, AppealType.REJECTION_APPEAL, "Why", None, NOW)


def test_only_the_provider_itself_can_appeal(suspended, other_provider_actor, customer):
    for actor in (other_provider_actor, customer):
        with pytest.raises(UnauthorizedAction):
            open_appeal(actor, suspended, AppealType.SUSPENSION_APPEAL, "Why", None, NOW)


def test_review_is_admin_only(suspended, provider_actor):
    appeal = open_appeal(provider_actor, suspended, AppealType.SUSPENSION_APPEAL, "Why", None, NOW)
    with pytest.raises(UnauthorizedAction):
        review_appeal(appeal, provider_actor, AppealStatus.APPROVED, None, NOW)


def test_reviewed_appeal_is_final(suspended, provider_actor, admin):
    appeal = open_appeal(provider_actor, suspended, AppealType.SUSPENSION_APPEAL, "Why", None, NOW)
    rejected = review_appeal(appeal, admin, AppealStatus.REJECTED, "Upheld", NOW)
    assert rejected.reviewed_by == admin.user_id
    assert rejected.reviewed_at == NOW
    with pytest.raises(InvalidAppealStatus):
        review_appeal(rejected, admin, AppealStatus.APPROVED, None, NOW)


# ============ SERVICE ============


def test_one_open_appeal_at_a_time(db, moderation_service, suspended, provider_actor):
    moderation_service.submit_appeal(db, provider_actor, AppealType.SUSPENSION_APPEAL, "First")
    with pytest.raises(InvalidAppealStatus):
        moderation_service.submit_appeal(db, provider_actor, AppealType.SUSPENSION_APPEAL, "Second")


def test_approved_suspension_appeal_restores_provider(
    db, moderation_service, notifications, suspended, provider_actor, admin
):
    seen = []
    notifications.subscribe(seen.append, AppealSubmitted, AppealReviewed)

    appeal = moderation_service.submit_appeal(
        db, provider_actor, AppealType.SUSPENSION_APPEAL, "Misunderstanding", "Photos attached"
    )
    moderation_service.review_appeal(db, appeal.id, admin, AppealStatus.UNDER_REVIEW)
    reviewed = moderation_service.review_appeal(db, appeal.id, admin, AppealStatus.APPROVED, "Cleared")

    assert reviewed.status == AppealStatus.APPROVED
    assert db.get_provider(suspended.id).status == ProviderStatus.APPROVED
    last = db.list_audit_records(suspended.id)[-1]
    assert last.appeal_id == appeal.id
    assert last.new_status == ProviderStatus.APPROVED
    assert [type(e) for e in seen] == [AppealSubmitted, AppealReviewed, AppealReviewed]


def test_approved_rejection_appeal_returns_to_review(db, moderation_service, admin):
    rejected = db.add_provider(Provider(user_id=uuid.uuid4(), status=ProviderStatus.REJECTED))
    actor = Actor(user_id=rejected.user_id, role=Role.PROVIDER, provider_id=rejected.id)
    appeal = moderation_service.submit_appeal(db, actor, AppealType.REJECTION_APPEAL, "New licence")
    moderation_service.review_appeal(db, appeal.id, admin, AppealStatus.APPROVED)

    assert db.get_provider(rejected.id).status == ProviderStatus.PENDING


def test_rejected_appeal_leaves_provider_alone(db, moderation_service, suspended, provider_actor, admin):
    appeal = moderation_service.submit_appeal(db, provider_actor, AppealType.SUSPENSION_APPEAL, "Why")
    moderation_service.review_appeal(db, appeal.id, admin, AppealStatus.REJECTED, "Upheld")
    assert db.get_provider(suspended.id).status == ProviderStatus.SUSPENDED


def test_approval_refused_when_provider_already_restored(
    db, moderation_service, suspended, provider_actor, admin
):
    appeal = moderation_service.submit_appeal(db, provider_actor, AppealType.SUSPENSION_APPEAL, "Why")
    moderation_service.set_provider_status(db, suspended.id, ProviderStatus.APPROVED, admin, "Manual")

    with pytest.raises(InvalidProviderStatus):
        moderation_service.review_appeal(db, appeal.id, admin, AppealStatus.APPROVED)
    assert db.get_appeal(appeal.id).status == AppealStatus.PENDING


def test_providers_see_only_their_appeals(db, moderation_service, suspended, provider_actor, admin, customer):
    moderation_service.submit_appeal(db, provider_actor, AppealType.SUSPENSION_APPEAL, "Why")
    assert len(moderation_service.list_appeals(db, provider_actor)) == 1
    assert len(moderation_service.list_appeals(db, admin)) == 1
    with pytest.raises(UnauthorizedAction):
        moderation_service.list_appeals(db, customer)
