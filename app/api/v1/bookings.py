"""Booking endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from app.api.deps import get_booking_service, get_current_actor, get_current_admin, get_db
from app.core.middleware import verify_code_limiter
from app.core.permissions import BookingAction
from app.database import InMemoryDatabase
from app.models.booking import BookingStatus
from app.models.user import Actor
from app.schemas.booking import (
    BookingCreate,
    BookingListResponse,
    BookingReasonRequest,
    BookingResponse,
    CompletionVerifyRequest,
    CustomerInvoiceResponse,
    ExpirySweepResponse,
    InvoiceResponse,
    PermittedActionsResponse,
    invoice_for_viewer,
)
from app.services.booking_service import BookingService

router = APIRouter()


@router.post("", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    request: BookingCreate,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[InMemoryDatabase, Depends(get_db)],
    service: Annotated[BookingService, Depends(get_booking_service)],
) -> BookingResponse:
    """Create a new booking request."""
    booking = service.create_booking(
        db,
        actor,
        provider_id=request.provider_id,
        service_id=request.service_id,
        scheduled_at=request.scheduled_at,
        base_amount=request.base_amount,
    )
    return BookingResponse.from_booking(booking, actor)


@router.get("", response_model=BookingListResponse)
async def list_bookings(
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[InMemoryDatabase, Depends(get_db)],
    service: Annotated[BookingService, Depends(get_booking_service)],
    status_filter: BookingStatus | None = Query(default=None, alias="status"),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100),
) -> BookingListResponse:
    """Get bookings visible to the current user."""
    bookings, total = service.list_bookings(db, actor, status_filter, page, page_size)
    return BookingListResponse(
        bookings=[BookingResponse.from_booking(b, actor) for b in bookings],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.post("/expire-stale", response_model=ExpirySweepResponse)
async def expire_stale_bookings(
    admin: Annotated[Actor, Depends(get_current_admin)],
    db: Annotated[InMemoryDatabase, Depends(get_db)],
    service: Annotated[BookingService, Depends(get_booking_service)],
) -> ExpirySweepResponse:
    """Run the expiry sweep now instead of waiting for the scheduler."""
    expired = service.expire_stale_bookings(db)
    return ExpirySweepResponse(expired_count=len(expired), expired_bookings=expired)


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: UUID,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[InMemoryDatabase, Depends(get_db)],
    service: Annotated[BookingService, Depends(get_booking_service)],
) -> BookingResponse:
    """Get booking details."""
    booking = service.get_booking_for(db, booking_id, actor)
    return BookingResponse.from_booking(booking, actor)


@router.get("/{booking_id}/actions", response_model=PermittedActionsResponse)
async def get_permitted_actions(
    booking_id: UUID,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[InMemoryDatabase, Depends(get_db)],
    service: Annotated[BookingService, Depends(get_booking_service)],
) -> PermittedActionsResponse:
    """Actions the caller may perform on the booking right now."""
    booking = service.get_booking_for(db, booking_id, actor)
    actions = service.permitted_actions(db, booking_id, actor)
    return PermittedActionsResponse(
        booking_id=booking.id,
        status=booking.status,
        actions=sorted(actions, key=lambda a: a.value),
    )


# ============ TRANSITIONS ============


def _transition(
    service: BookingService,
    db: InMemoryDatabase,
    booking_id: UUID,
    actor: Actor,
    action: BookingAction,
    payload: dict | None = None,
) -> BookingResponse:
    booking = service.perform(db, booking_id, actor, action, payload)
    return BookingResponse.from_booking(booking, actor)


@router.post("/{booking_id}/accept", response_model=BookingResponse)
async def accept_booking(
    booking_id: UUID,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[InMemoryDatabase, Depends(get_db)],
    service: Annotated[BookingService, Depends(get_booking_service)],
) -> BookingResponse:
    """Provider accepts a pending booking."""
    return _transition(service, db, booking_id, actor, BookingAction.ACCEPT)


@router.post("/{booking_id}/reject", response_model=BookingResponse)
async def reject_booking(
    booking_id: UUID,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[InMemoryDatabase, Depends(get_db)],
    service: Annotated[BookingService, Depends(get_booking_service)],
    request: BookingReasonRequest | None = None,
) -> BookingResponse:
    """Provider rejects a pending booking."""
    payload = {"reason": request.reason} if request else None
    return _transition(service, db, booking_id, actor, BookingAction.REJECT, payload)


@router.post("/{booking_id}/cancel", response_model=BookingResponse)
async def cancel_booking(
    booking_id: UUID,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[InMemoryDatabase, Depends(get_db)],
    service: Annotated[BookingService, Depends(get_booking_service)],
    request: BookingReasonRequest | None = None,
) -> BookingResponse:
    """Cancel a booking."""
    payload = {"reason": request.reason} if request else None
    return _transition(service, db, booking_id, actor, BookingAction.CANCEL, payload)


@router.post("/{booking_id}/start", response_model=BookingResponse)
async def start_booking(
    booking_id: UUID,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[InMemoryDatabase, Depends(get_db)],
    service: Annotated[BookingService, Depends(get_booking_service)],
) -> BookingResponse:
    """Provider starts work on a confirmed booking."""
    return _transition(service, db, booking_id, actor, BookingAction.START)


@router.post("/{booking_id}/completion/initiate", response_model=BookingResponse)
async def initiate_completion(
    booking_id: UUID,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[InMemoryDatabase, Depends(get_db)],
    service: Annotated[BookingService, Depends(get_booking_service)],
) -> BookingResponse:
    """Issue a completion code to the customer. Replaces any earlier code."""
    return _transition(service, db, booking_id, actor, BookingAction.INITIATE_COMPLETION)


@router.post("/{booking_id}/completion/verify", response_model=BookingResponse)
async def verify_completion(
    booking_id: UUID,
    request: CompletionVerifyRequest,
    actor: Annotated[Actor, Depends(get_current_actor)],
    _: Annotated[None, Depends(verify_code_limiter)],
    db: Annotated[InMemoryDatabase, Depends(get_db)],
    service: Annotated[BookingService, Depends(get_booking_service)],
) -> BookingResponse:
    """Provider submits the customer's code to complete the booking."""
    return _transition(
        service, db, booking_id, actor, BookingAction.VERIFY_COMPLETION, {"code": request.code}
    )


# ============ INVOICE ============


@router.get("/{booking_id}/invoice", response_model=InvoiceResponse | CustomerInvoiceResponse)
async def get_invoice(
    booking_id: UUID,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[InMemoryDatabase, Depends(get_db)],
    service: Annotated[BookingService, Depends(get_booking_service)],
) -> InvoiceResponse | CustomerInvoiceResponse:
    """Invoice for a completed booking. Customers do not see the platform fee."""
    invoice = service.get_invoice(db, booking_id, actor)
    return invoice_for_viewer(invoice, actor)
