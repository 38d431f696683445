"""Background tasks for the periodic booking expiry sweep."""

import asyncio
import logging
from uuid import UUID

from app.api.deps import get_booking_service
from app.config import settings
from app.database import get_db

logger = logging.getLogger(__name__)

# Flag to stop the background task
_stop_expiry_sweep = False


def run_expiry_sweep(trigger: str = "scheduled") -> list[UUID]:
    """Expire PENDING bookings past their grace period in the shared store."""
    logger.debug(f"Running booking expiry sweep (trigger: {trigger})")
    return get_booking_service().expire_stale_bookings(get_db())


async def start_expiry_scheduler(interval_minutes: int | None = None):
    """Background task that sweeps stale bookings every ``interval_minutes``."""
    global _stop_expiry_sweep
    _stop_expiry_sweep = False
    interval_minutes = interval_minutes or settings.expiry_sweep_minutes

    logger.info(f"Booking expiry scheduler started (every {interval_minutes} min)")

    while not _stop_expiry_sweep:
        try:
            run_expiry_sweep(trigger="scheduled")
        except Exception as e:
            logger.error(f"Scheduled expiry sweep error: {e}")

        # Wait for next interval (check stop flag every minute)
        for _ in range(interval_minutes):
            if _stop_expiry_sweep:
                break
            await asyncio.sleep(60)

    logger.info("Booking expiry scheduler stopped")


def stop_expiry_scheduler():
    """Signal the expiry scheduler to stop."""
    global _stop_expiry_sweep
    _stop_expiry_sweep = True
