"""
Exit teardown: closes a departing bus's open allocations and frees its bay.
Called by the gate on exit (before identification completes, and again from
the RFID fallback). Idempotent: nothing open means nothing changes.
"""

from sqlalchemy.orm import Session
from app.models.allocation import Allocation, CLOSABLE_STATUSES, COMPLETED_DEPARTED
from app.services.occupancy_service import release_bays_held_by
from app.services.result import OperationResult, reports_store_failure
from app.utils.locks import entity_locks, bus_key
from app.utils.logger import get_logger

logger = get_logger(__name__)


@reports_store_failure("closing allocations")
async def close_and_free(db: Session, bus_id: int) -> OperationResult:
    async with entity_locks.hold(bus_key(bus_id)):
        closed = (
            db.query(Allocation)
            .filter(Allocation.bus_id == bus_id, Allocation.status.in_(CLOSABLE_STATUSES))
            .update({Allocation.status: COMPLETED_DEPARTED})
        )
        freed = release_bays_held_by(db, bus_id)
        db.commit()

    if closed or freed:
        logger.info(f"[EXIT] Bus {bus_id}: closed {closed} allocation(s), freed {freed} bay(s)")
    else:
        logger.debug(f"[EXIT] Bus {bus_id}: nothing open to close")
    return OperationResult.success(
        f"Closed {closed} allocation(s) and freed {freed} bay(s).",
        closed_allocations=closed,
        freed_bays=freed,
    )
