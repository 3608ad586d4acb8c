"""
Override resolution after repeated mis-parking.

When a driver confirms at the wrong place WRONG_ATTEMPT_THRESHOLD times, the
bus is recorded where it actually is: the nearest bay to its last position
becomes the allocation's override bay and takes over the bus's occupancy.
"""

from typing import Optional, Sequence
from sqlalchemy import or_
from sqlalchemy.orm import Session
from app.config import settings
from app.models.allocation import Allocation, OVERRIDE_PARKED, COMPLETED_DEPARTED
from app.models.bay import Bay
from app.models.bus import Bus
from app.models.bus_position import BusPosition
from app.services.occupancy_service import claim_bay, release_bays_held_by
from app.services.result import OperationResult, reports_store_failure
from app.utils.logger import get_logger

logger = get_logger(__name__)


def nearest_bay(bays: Sequence[Bay], x: float, y: float) -> Optional[Bay]:
    """
    Bay with the smallest squared distance to (x, y).
    Ties go to the first bay in the given order.
    """
    best, best_dist = None, None
    for bay in bays:
        dx = bay.x - x
        dy = bay.y - y
        dist = dx * dx + dy * dy
        if best_dist is None or dist < best_dist:
            best, best_dist = bay, dist
    return best


def resolve_override(db: Session, allocation: Allocation, position: BusPosition) -> Optional[Bay]:
    """
    Mark the allocation override_parked at the bay nearest the bus.
    Only free bays or bays this bus already holds are candidates, scanned by
    id. Bays on the bus's own floor come first; other floors are searched
    only when that floor has no candidate. With no candidate at all the
    allocation is still marked override_parked, just without an override
    bay. Commits.
    """
    bus_id = allocation.bus_id
    candidates = (
        db.query(Bay)
        .filter(or_(Bay.is_available == True, Bay.current_bus_id == bus_id))  # noqa: E712
        .order_by(Bay.id)
        .all()
    )
    same_floor = [bay for bay in candidates if bay.floor_id == position.floor_id]
    chosen = nearest_bay(same_floor or candidates, position.x, position.y)

    allocation.status = OVERRIDE_PARKED
    allocation.override_bay_id = chosen.id if chosen else None
    if chosen is not None:
        release_bays_held_by(db, bus_id, keep_bay_id=chosen.id)
        claim_bay(db, chosen.id, bus_id)
    db.commit()

    if chosen is not None:
        logger.warning(f"[OVERRIDE] Allocation {allocation.id}: bus {bus_id} recorded at "
                       f"{chosen.bay_code} instead of bay {allocation.bay_id}")
    else:
        logger.warning(f"[OVERRIDE] Allocation {allocation.id}: no bay near "
                       f"({position.x}, {position.y}): override recorded without a bay")
    return chosen


def _bay_out(bay: Optional[Bay]) -> Optional[dict]:
    if bay is None:
        return None
    return {
        "bay_code": bay.bay_code,
        "area_code": bay.area_code,
        "lot_number": bay.lot_number,
        "is_charging_bay": bay.is_charging_bay,
        "level": bay.floor.level_number if bay.floor else None,
    }


@reports_store_failure("loading override alerts")
async def list_override_alerts(db: Session, active_only: bool = False, limit: int = 50) -> OperationResult:
    """Every allocation that ever reached the wrong-attempt threshold, newest first."""
    q = db.query(Allocation).filter(Allocation.wrong_attempts >= settings.WRONG_ATTEMPT_THRESHOLD)
    if active_only:
        q = q.filter(Allocation.status != COMPLETED_DEPARTED)
    rows = q.order_by(Allocation.created_at.desc(), Allocation.id.desc()).limit(limit).all()

    alerts = []
    for alloc in rows:
        bus: Bus = alloc.bus
        alerts.append({
            "allocation_id": alloc.id,
            "created_at": alloc.created_at.isoformat() if alloc.created_at else None,
            "status": alloc.status,
            "is_historical": alloc.status == COMPLETED_DEPARTED,
            "wrong_attempts": alloc.wrong_attempts,
            "plate": bus.plate_number if bus else None,
            "needs_charging": bus.needs_charging if bus else None,
            "needs_maintenance": bus.needs_maintenance if bus else None,
            "allocated_bay": _bay_out(alloc.bay),
            "override_bay": _bay_out(alloc.override_bay),
        })
    if not alerts:
        return OperationResult.success("No override alerts at the moment.", alerts=[])
    return OperationResult.success(f"{len(alerts)} override alert(s).", alerts=alerts)
