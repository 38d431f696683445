"""Pydantic schemas for API validation."""

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
)
from app.schemas.provider import (
    AppealCreate,
    AppealResponse,
    AppealReview,
    ModerationAuditResponse,
    ProviderResponse,
    ProviderStatusUpdate,
)

__all__ = [
    "BookingCreate",
    "BookingListResponse",
    "BookingReasonRequest",
    "BookingResponse",
    "CompletionVerifyRequest",
    "CustomerInvoiceResponse",
    "ExpirySweepResponse",
    "InvoiceResponse",
    "PermittedActionsResponse",
    "AppealCreate",
    "AppealResponse",
    "AppealReview",
    "ModerationAuditResponse",
    "ProviderResponse",
    "ProviderStatusUpdate",
]
