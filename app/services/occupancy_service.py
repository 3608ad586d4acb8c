"""
Bay occupancy: claim/release helpers plus the consistency check.

Bay.current_bus_id mirrors the latest open allocation of each bus. Every
service that changes an allocation's occupancy calls claim_bay /
release_bays_held_by inside the same transaction; check_occupancy and
reconcile_occupancy find and repair anything that drifted anyway.
"""

from collections import defaultdict
from typing import Dict, Optional
from sqlalchemy import or_
from sqlalchemy.orm import Session
from app.models.allocation import Allocation, OPEN_STATUSES, OVERRIDE_PARKED
from app.models.bay import Bay
from app.services.result import OperationResult, reports_store_failure
from app.utils.logger import get_logger

logger = get_logger(__name__)


def claim_bay(db: Session, bay_id: int, bus_id: int) -> bool:
    """
    Mark the bay occupied by this bus, but only if it is free or already ours.
    Returns False when another bus got there first.
    """
    updated = (
        db.query(Bay)
        .filter(Bay.id == bay_id, or_(Bay.is_available == True, Bay.current_bus_id == bus_id))  # noqa: E712
        .update({Bay.is_available: False, Bay.current_bus_id: bus_id})
    )
    return updated == 1


def release_bays_held_by(db: Session, bus_id: int, keep_bay_id: Optional[int] = None) -> int:
    """Free every bay this bus occupies, except keep_bay_id. Returns the count."""
    q = db.query(Bay).filter(Bay.current_bus_id == bus_id)
    if keep_bay_id is not None:
        q = q.filter(Bay.id != keep_bay_id)
    return q.update({Bay.is_available: True, Bay.current_bus_id: None})


def occupied_bay_of(allocation: Allocation) -> Optional[int]:
    """The bay an open allocation should be holding."""
    if allocation.status == OVERRIDE_PARKED:
        return allocation.override_bay_id
    return allocation.bay_id


def _expected_holders(db: Session) -> Dict[int, int]:
    """bay_id -> bus_id derived from the latest open allocation of each bus."""
    open_allocs = (
        db.query(Allocation)
        .filter(Allocation.status.in_(OPEN_STATUSES))
        .order_by(Allocation.created_at.desc(), Allocation.id.desc())
        .all()
    )
    seen_buses = set()
    holders: Dict[int, int] = {}
    for alloc in open_allocs:
        if alloc.bus_id in seen_buses:
            continue
        seen_buses.add(alloc.bus_id)
        bay_id = occupied_bay_of(alloc)
        if bay_id is not None and bay_id not in holders:
            holders[bay_id] = alloc.bus_id
    return holders


@reports_store_failure("checking bay occupancy")
async def check_occupancy(db: Session) -> OperationResult:
    violations = []

    for bay in db.query(Bay).order_by(Bay.id).all():
        if bay.is_available != (bay.current_bus_id is None):
            violations.append({"kind": "availability_mismatch", "bay_id": bay.id,
                               "bay_code": bay.bay_code, "current_bus_id": bay.current_bus_id,
                               "is_available": bay.is_available})

    holders = _expected_holders(db)
    for bay in db.query(Bay).filter(Bay.current_bus_id != None).order_by(Bay.id).all():  # noqa: E711
        if holders.get(bay.id) != bay.current_bus_id:
            violations.append({"kind": "held_without_allocation", "bay_id": bay.id,
                               "bay_code": bay.bay_code, "current_bus_id": bay.current_bus_id})

    open_counts = defaultdict(int)
    for (bus_id,) in db.query(Allocation.bus_id).filter(Allocation.status.in_(OPEN_STATUSES)).all():
        open_counts[bus_id] += 1
    for bus_id, count in sorted(open_counts.items()):
        if count > 1:
            violations.append({"kind": "multiple_open_allocations", "bus_id": bus_id, "count": count})

    if violations:
        logger.warning(f"[OCCUPANCY] {len(violations)} consistency violation(s) found")
        return OperationResult.success(f"{len(violations)} occupancy violation(s) found.",
                                       consistent=False, violations=violations)
    return OperationResult.success("Bay occupancy is consistent.", consistent=True, violations=[])


@reports_store_failure("reconciling bay occupancy")
async def reconcile_occupancy(db: Session) -> OperationResult:
    """Rewrite every bay's occupancy from the open allocations."""
    holders = _expected_holders(db)
    repaired = []

    for bay in db.query(Bay).order_by(Bay.id).all():
        expected = holders.get(bay.id)
        if bay.current_bus_id != expected or bay.is_available != (expected is None):
            repaired.append({"bay_id": bay.id, "bay_code": bay.bay_code,
                             "was_bus_id": bay.current_bus_id, "now_bus_id": expected})
            bay.current_bus_id = expected
            bay.is_available = expected is None

    db.commit()
    for fix in repaired:
        logger.warning(f"[OCCUPANCY] Repaired {fix['bay_code']}: "
                       f"bus {fix['was_bus_id']} → {fix['now_bus_id']}")
    return OperationResult.success(f"Reconciled {len(repaired)} bay(s).", repaired=repaired)
