"""
Parking verification on driver confirmation.

The bus's latest position must be on the allocated bay's floor and within
PARKING_TOLERANCE of the bay on both axes (a square box, not a circle).
A miss bumps the allocation's wrong-attempt counter; reaching
WRONG_ATTEMPT_THRESHOLD hands over to the override resolver.
"""

from sqlalchemy.orm import Session
from app.config import settings
from app.models.allocation import Allocation, PARKED, OVERRIDE_PARKED, COMPLETED_DEPARTED
from app.models.bay import Bay
from app.models.bus_position import BusPosition
from app.services.movement_service import latest_position
from app.services.occupancy_service import claim_bay, release_bays_held_by
from app.services.override_service import resolve_override
from app.services.result import (
    OperationResult, conflict, not_found, validation_failed, reports_store_failure,
)
from app.utils.locks import entity_locks, bus_key, bay_key
from app.utils.logger import get_logger

logger = get_logger(__name__)


def within_tolerance(position: BusPosition, bay: Bay, tolerance: float = None) -> bool:
    tolerance = settings.PARKING_TOLERANCE if tolerance is None else tolerance
    return (
        position.floor_id == bay.floor_id
        and abs(position.x - bay.x) <= tolerance
        and abs(position.y - bay.y) <= tolerance
    )


@reports_store_failure("confirming parking")
async def confirm_parked(db: Session, allocation_id: int) -> OperationResult:
    allocation = db.query(Allocation).filter(Allocation.id == allocation_id).first()
    if not allocation:
        return not_found("Unable to verify current allocation.", allocation_id=allocation_id)

    async with entity_locks.hold(bus_key(allocation.bus_id), bay_key(allocation.bay_id)):
        # Re-read under the lock; a concurrent confirm may have moved it on
        db.refresh(allocation)

        if allocation.status == OVERRIDE_PARKED:
            return conflict(
                "Parking override already recorded. Please follow controller instructions.",
                allocation_id=allocation.id, status=allocation.status,
            )
        if allocation.status == COMPLETED_DEPARTED:
            return conflict("Allocation already closed; the bus has left the depot.",
                            allocation_id=allocation.id, status=allocation.status)

        position = latest_position(db, allocation.bus_id)
        if not position:
            return validation_failed(
                "Cannot confirm parking – no recent position for this bus. "
                "Please try again after moving on the map.",
                allocation_id=allocation.id,
            )

        bay = allocation.bay
        if within_tolerance(position, bay):
            return _confirm_match(db, allocation, bay)
        return _record_miss(db, allocation, position)


def _confirm_match(db: Session, allocation: Allocation, bay: Bay) -> OperationResult:
    bus_id = allocation.bus_id
    allocation.status = PARKED
    release_bays_held_by(db, bus_id, keep_bay_id=bay.id)
    if not claim_bay(db, bay.id, bus_id):
        db.rollback()
        return conflict(f"Bay {bay.bay_code} is held by another bus.",
                        allocation_id=allocation.id, bay_id=bay.id)
    db.commit()

    logger.info(f"[PARK] Allocation {allocation.id}: bus {bus_id} parked at {bay.bay_code}")
    return OperationResult.success("Thank you. Parking confirmed.",
                                   allocation_id=allocation.id, status=allocation.status,
                                   bay_id=bay.id, bay_code=bay.bay_code)


def _record_miss(db: Session, allocation: Allocation, position: BusPosition) -> OperationResult:
    attempts = (allocation.wrong_attempts or 0) + 1
    allocation.wrong_attempts = attempts
    db.commit()   # persisted before any override work
    logger.warning(f"[PARK] Allocation {allocation.id}: wrong position "
                   f"({position.x}, {position.y}): attempt {attempts}")

    if attempts < settings.WRONG_ATTEMPT_THRESHOLD:
        return validation_failed(
            "You are not at the allocated bay. Please move to the correct lot before confirming.",
            allocation_id=allocation.id, status=allocation.status, wrong_attempts=attempts,
        )

    chosen = resolve_override(db, allocation, position)
    return OperationResult.success(
        f"You have parked at a different bay {attempts} times. "
        "Override recorded – controller will be notified.",
        allocation_id=allocation.id,
        status=allocation.status,
        wrong_attempts=attempts,
        override_bay_id=chosen.id if chosen else None,
        override_bay_code=chosen.bay_code if chosen else None,
    )
