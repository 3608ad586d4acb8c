"""
Bay allocation engine.

Manual assignment (controller picks a bay) and automatic assignment (first
free bay by area/lot, charging bays only for buses that need charging). Both
insert the allocation and claim the bay in one transaction: if the bay claim
loses a race the whole thing rolls back and the caller gets a conflict, so no
orphaned allocation is left behind.

Also serves the read views the driver screen and the controller dashboard
poll: the current parking instruction for a plate, and the bay board.
"""

from typing import Optional
from sqlalchemy.orm import Session
from app.models.allocation import Allocation, ALLOCATED, OPEN_STATUSES
from app.models.bay import Bay
from app.models.bus import Bus, BUS_INSIDE, normalize_plate
from app.models.floor import Floor
from app.services.bus_service import lookup_bus_by_plate, upsert_bus
from app.services.occupancy_service import claim_bay, release_bays_held_by
from app.services.result import (
    OperationResult, conflict, not_found, validation_failed, reports_store_failure,
)
from app.utils.locks import entity_locks, bus_key, bay_key
from app.utils.logger import get_logger

logger = get_logger(__name__)

REASON_MANUAL = "manual"
REASON_CHARGING_MANUAL = "charging_manual"
REASON_DEFAULT = "default"
REASON_CHARGING = "charging"


def open_allocation_for(db: Session, bus_id: int) -> Optional[Allocation]:
    """Latest allocation in an open status for this bus."""
    return (
        db.query(Allocation)
        .filter(Allocation.bus_id == bus_id, Allocation.status.in_(OPEN_STATUSES))
        .order_by(Allocation.created_at.desc(), Allocation.id.desc())
        .first()
    )


def _allocation_out(allocation: Allocation, bay: Bay, bus: Bus) -> dict:
    return {
        "allocation_id": allocation.id,
        "plate": bus.plate_number,
        "bus_id": bus.id,
        "bay_id": bay.id,
        "bay_code": bay.bay_code,
        "area_code": bay.area_code,
        "lot_number": bay.lot_number,
        "level": bay.floor.level_number if bay.floor else None,
        "status": allocation.status,
        "priority_reason": allocation.priority_reason,
    }


async def _allocate(db: Session, bus: Bus, bay: Bay, priority_reason: str) -> OperationResult:
    """Insert the allocation and take the bay, as one transaction."""
    plate, bay_code = bus.plate_number, bay.bay_code
    async with entity_locks.hold(bus_key(bus.id), bay_key(bay.id)):
        existing = open_allocation_for(db, bus.id)
        if existing:
            message = f"Bus {plate} already holds allocation {existing.id} ({existing.status})."
            existing_id = existing.id
            db.rollback()
            return conflict(message, allocation_id=existing_id)

        allocation = Allocation(bus_id=bus.id, bay_id=bay.id, status=ALLOCATED,
                                wrong_attempts=0, priority_reason=priority_reason)
        db.add(allocation)
        db.flush()

        # Drop any stale hold left from an earlier wrong-slot move
        release_bays_held_by(db, bus.id, keep_bay_id=bay.id)
        if not claim_bay(db, bay.id, bus.id):
            bay_id = bay.id
            db.rollback()
            logger.warning(f"[ALLOC] Bay {bay_code} taken before {plate} could claim it")
            return conflict("Bay is no longer available.", bay_id=bay_id)

        db.commit()

    logger.info(f"[ALLOC] {bus.plate_number} → bay {bay.bay_code} "
                f"(allocation {allocation.id}, reason={priority_reason})")
    return OperationResult.success(f"Allocated bay {bay.bay_code} to {bus.plate_number}.",
                                   **_allocation_out(allocation, bay, bus))


@reports_store_failure("creating allocation")
async def assign_bay(db: Session, bay_id: int, plate: str) -> OperationResult:
    """Controller picks a specific bay for a plate."""
    if not normalize_plate(plate):
        return validation_failed("Enter a plate number first.")

    bus = upsert_bus(db, plate)
    bay = db.query(Bay).filter(Bay.id == bay_id).first()
    if not bay:
        db.rollback()
        return not_found("Selected bay not found.", bay_id=bay_id)
    if not bay.is_available and bay.current_bus_id != bus.id:
        db.rollback()
        return conflict("Bay is no longer available.", bay_id=bay_id)

    reason = REASON_CHARGING_MANUAL if bus.needs_charging else REASON_MANUAL
    return await _allocate(db, bus, bay, reason)


@reports_store_failure("creating allocation")
async def auto_assign(db: Session, plate: str) -> OperationResult:
    """First free bay by (area, lot); charging bays only when the bus needs charging."""
    if not normalize_plate(plate):
        return validation_failed("Enter a plate number first.")

    bus = lookup_bus_by_plate(db, plate)
    if not bus:
        return not_found("Bus not found. Ensure it has entered the depot.")

    q = db.query(Bay).filter(Bay.is_available == True)  # noqa: E712
    if bus.needs_charging:
        q = q.filter(Bay.is_charging_bay == True)  # noqa: E712
    chosen = q.order_by(Bay.area_code.asc(), Bay.lot_number.asc()).first()
    if not chosen:
        return not_found("No free bays available for this bus.")

    reason = REASON_CHARGING if bus.needs_charging else REASON_DEFAULT
    return await _allocate(db, bus, chosen, reason)


@reports_store_failure("loading parking instruction")
async def get_parking_instruction(db: Session, plate: str) -> OperationResult:
    """What the driver screen shows: bus status plus the bay to park in."""
    bus = lookup_bus_by_plate(db, plate)
    if not bus:
        return not_found(f"Bus {normalize_plate(plate)} not found.")

    base = {"plate": bus.plate_number, "bus_status": bus.status}
    if bus.status != BUS_INSIDE:
        return OperationResult.success(f"Bus {bus.plate_number} is {bus.status}.", **base)

    allocation = open_allocation_for(db, bus.id)
    if not allocation or not allocation.bay or not allocation.bay.floor:
        return OperationResult.success(f"No bay allocated to {bus.plate_number} yet.", **base)

    bay = allocation.bay
    return OperationResult.success(
        f"Park at Level {bay.floor.level_number}, area {bay.area_code}, lot {bay.lot_number} "
        f"({bay.bay_code}).",
        **base,
        allocation_id=allocation.id,
        status=allocation.status,
        wrong_attempts=allocation.wrong_attempts,
        bay_id=bay.id,
        bay_code=bay.bay_code,
        area_code=bay.area_code,
        lot_number=bay.lot_number,
        level=bay.floor.level_number,
        bay_floor_id=bay.floor_id,
        bay_x=bay.x,
        bay_y=bay.y,
    )


@reports_store_failure("loading bays")
async def list_bays(db: Session, level: Optional[int] = None) -> OperationResult:
    """Bay board: occupancy plus the latest allocation/override status per bay."""
    q = db.query(Bay, Floor.level_number).join(Floor, Floor.id == Bay.floor_id)
    if level is not None:
        q = q.filter(Floor.level_number == level)
    rows = q.order_by(Bay.area_code.asc(), Bay.lot_number.asc()).all()

    bay_ids = [bay.id for bay, _ in rows]
    latest_status, latest_plate, latest_override = {}, {}, {}
    if bay_ids:
        allocs = (
            db.query(Allocation, Bus.plate_number)
            .join(Bus, Bus.id == Allocation.bus_id)
            .filter((Allocation.bay_id.in_(bay_ids)) | (Allocation.override_bay_id.in_(bay_ids)))
            .order_by(Allocation.created_at.desc(), Allocation.id.desc())
            .all()
        )
        for alloc, plate in allocs:
            if alloc.bay_id in bay_ids and alloc.bay_id not in latest_status:
                latest_status[alloc.bay_id] = alloc.status
                latest_plate[alloc.bay_id] = plate
            if alloc.override_bay_id and alloc.override_bay_id not in latest_override:
                latest_override[alloc.override_bay_id] = alloc.status

    bays = [
        {
            "bay_id": bay.id,
            "bay_code": bay.bay_code,
            "area_code": bay.area_code,
            "lot_number": bay.lot_number,
            "level": level_number,
            "x": bay.x,
            "y": bay.y,
            "is_charging_bay": bay.is_charging_bay,
            "is_available": bay.is_available,
            "current_bus_id": bay.current_bus_id,
            "current_plate": bay.current_bus.plate_number if bay.current_bus else None,
            "latest_allocation_status": latest_status.get(bay.id),
            "latest_bus_plate": latest_plate.get(bay.id),
            "latest_override_status": latest_override.get(bay.id),
        }
        for bay, level_number in rows
    ]
    return OperationResult.success(f"{len(bays)} bay(s).", bays=bays)
