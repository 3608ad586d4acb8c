"""
Movement tracking: the append-only bus position log and the simulated moves
that write to it (checkpoints, level changes, driving into a bay).

Positions are never validated against the previous one; a bus may jump
anywhere. "Where is bus X" is always the newest row for that bus.
"""

import random
from typing import Callable, Optional, Sequence
from sqlalchemy import func
from sqlalchemy.orm import Session
from app.config import settings
from app.models.allocation import Allocation, ALLOCATED
from app.models.bay import Bay
from app.models.bus import Bus, BUS_OUTSIDE, normalize_plate
from app.models.bus_position import (
    BusPosition, LEVEL_UP, LEVEL_DOWN, PARKED_CORRECT, PARKED_WRONG, checkpoint_source,
)
from app.models.checkpoint import Checkpoint, level_transition_name
from app.models.floor import Floor
from app.services.gate_session import gate_sessions
from app.services.occupancy_service import claim_bay, release_bays_held_by
from app.services.result import (
    OperationResult, conflict, not_found, validation_failed, reports_store_failure,
)
from app.services.bus_service import lookup_bus_by_plate
from app.utils.locks import entity_locks, bus_key, bay_key
from app.utils.logger import get_logger

logger = get_logger(__name__)

LEVEL_DIRECTIONS = ("up", "down")


def record_movement(db: Session, bus_id: int, floor_id: int, x: float, y: float,
                    source: str) -> BusPosition:
    """Append a position row. Flushes; the caller commits."""
    position = BusPosition(bus_id=bus_id, floor_id=floor_id, x=x, y=y, source=source)
    db.add(position)
    db.flush()
    logger.info(f"[MOVE] Bus {bus_id} → floor {floor_id} ({x}, {y}) [{source}]")
    return position


def latest_position(db: Session, bus_id: int) -> Optional[BusPosition]:
    return (
        db.query(BusPosition)
        .filter(BusPosition.bus_id == bus_id)
        .order_by(BusPosition.created_at.desc(), BusPosition.id.desc())
        .first()
    )


def floor_for_level(db: Session, level: int) -> Optional[Floor]:
    return db.query(Floor).filter(Floor.level_number == level).first()


def _position_out(position: BusPosition, plate: str = None, level: int = None) -> dict:
    return {
        "bus_id": position.bus_id,
        "plate": plate,
        "floor_id": position.floor_id,
        "level": level,
        "x": position.x,
        "y": position.y,
        "source": position.source,
        "recorded_at": position.created_at.isoformat() if position.created_at else None,
    }


@reports_store_failure("loading bus positions")
async def latest_positions(db: Session) -> OperationResult:
    """Latest position per bus, skipping buses that have left the depot."""
    ranked = (
        db.query(
            BusPosition.id.label("position_id"),
            func.row_number().over(
                partition_by=BusPosition.bus_id,
                order_by=(BusPosition.created_at.desc(), BusPosition.id.desc()),
            ).label("rank"),
        ).subquery()
    )
    rows = (
        db.query(BusPosition, Bus.plate_number, Floor.level_number)
        .join(ranked, ranked.c.position_id == BusPosition.id)
        .join(Bus, Bus.id == BusPosition.bus_id)
        .join(Floor, Floor.id == BusPosition.floor_id)
        .filter(ranked.c.rank == 1, Bus.status != BUS_OUTSIDE)
        .order_by(Bus.plate_number)
        .all()
    )
    markers = [_position_out(pos, plate, level) for pos, plate, level in rows]
    return OperationResult.success(f"{len(markers)} bus(es) on the map.", positions=markers)


@reports_store_failure("locating bus")
async def locate_bus(db: Session, plate: str) -> OperationResult:
    bus = lookup_bus_by_plate(db, plate)
    if not bus:
        return not_found(f"Bus {normalize_plate(plate)} not found.")

    position = latest_position(db, bus.id)
    if not position:
        return not_found(f"No position data for {bus.plate_number} yet.")

    floor = db.query(Floor).filter(Floor.id == position.floor_id).first()
    if not floor:
        return not_found(f"Cannot resolve level for {bus.plate_number}.")

    return OperationResult.success(
        f"Bus {bus.plate_number} is on Level {floor.level_number}.",
        **_position_out(position, bus.plate_number, floor.level_number),
    )


@reports_store_failure("recording checkpoint move")
async def move_to_checkpoint(db: Session, plate: Optional[str], checkpoint_name: str) -> OperationResult:
    session = gate_sessions.resolve(normalize_plate(plate) if plate else None)
    if session is None:
        return not_found("No active bus to move. Enter the depot first.")

    floor = floor_for_level(db, session.level)
    if not floor:
        return not_found(f"Level {session.level} not configured in depot_floors.")

    checkpoint = (
        db.query(Checkpoint)
        .filter(Checkpoint.floor_id == floor.id, Checkpoint.name == checkpoint_name)
        .first()
    )
    if not checkpoint:
        return not_found(f"Checkpoint not found: {checkpoint_name} on Level {session.level}")

    record_movement(db, session.bus_id, checkpoint.floor_id, checkpoint.x, checkpoint.y,
                    checkpoint_source(checkpoint_name))
    db.commit()
    return OperationResult.success(f"Bus moved to {checkpoint_name}.",
                                   plate=session.plate, level=session.level,
                                   x=checkpoint.x, y=checkpoint.y)


@reports_store_failure("recording level change")
async def change_level(db: Session, plate: Optional[str], direction: str) -> OperationResult:
    if direction not in LEVEL_DIRECTIONS:
        return validation_failed(f"Unknown direction '{direction}'. Use 'up' or 'down'.")

    session = gate_sessions.resolve(normalize_plate(plate) if plate else None)
    if session is None:
        return not_found("No active bus to move between levels.")

    current_level = session.level
    target_level = current_level + (1 if direction == "up" else -1)
    if target_level > settings.MAX_LEVEL:
        return validation_failed(f"Already at highest level ({settings.MAX_LEVEL}).")
    if target_level < settings.MIN_LEVEL:
        return validation_failed(f"Already at lowest level ({settings.MIN_LEVEL}).")

    current_floor = floor_for_level(db, current_level)
    if not current_floor:
        return not_found(f"Current level {current_level} not configured.")
    if not floor_for_level(db, target_level):
        return not_found(f"Target level {target_level} not configured.")

    name = level_transition_name(current_level, target_level, direction)
    checkpoint = (
        db.query(Checkpoint)
        .filter(Checkpoint.floor_id == current_floor.id, Checkpoint.name == name)
        .first()
    )
    if not checkpoint:
        return not_found(f"Checkpoint not found: {name}")

    record_movement(db, session.bus_id, checkpoint.floor_id, checkpoint.x, checkpoint.y,
                    LEVEL_UP if direction == "up" else LEVEL_DOWN)
    db.commit()
    session.level = target_level
    return OperationResult.success(f"Bus proceeding to Level {target_level}.",
                                   plate=session.plate, level=target_level)


def _current_allocation(db: Session, bus_id: int) -> Optional[Allocation]:
    return (
        db.query(Allocation)
        .filter(Allocation.bus_id == bus_id, Allocation.status == ALLOCATED)
        .order_by(Allocation.created_at.desc(), Allocation.id.desc())
        .first()
    )


@reports_store_failure("moving bus to allocated bay")
async def move_to_allocated_bay(db: Session, plate: Optional[str]) -> OperationResult:
    session = gate_sessions.resolve(normalize_plate(plate) if plate else None)
    if session is None:
        return not_found("No active bus. Enter the depot and identify first.")

    floor = floor_for_level(db, session.level)
    if not floor:
        return not_found("Current level not configured in depot_floors.")

    allocation = _current_allocation(db, session.bus_id)
    if not allocation or not allocation.bay:
        return not_found("No active allocation found for this bus.")

    bay = allocation.bay
    if bay.floor_id != floor.id:
        return validation_failed(
            f"Bus is on Level {session.level}, but allocation is on a different level."
        )

    record_movement(db, session.bus_id, bay.floor_id, bay.x, bay.y, PARKED_CORRECT)
    db.commit()
    return OperationResult.success(
        f"Bus moved to allocated bay {bay.bay_code} on Level {session.level}.",
        plate=session.plate, bay_id=bay.id, bay_code=bay.bay_code,
    )


@reports_store_failure("moving bus to open bay")
async def move_to_open_bay(db: Session, plate: Optional[str],
                           chooser: Callable[[Sequence[Bay]], Bay] = random.choice) -> OperationResult:
    """Drive into some other free bay on this level, taking its occupancy."""
    session = gate_sessions.resolve(normalize_plate(plate) if plate else None)
    if session is None:
        return not_found("No active bus. Enter the depot and identify first.")

    floor = floor_for_level(db, session.level)
    if not floor:
        return not_found("Current level not configured in depot_floors.")

    q = db.query(Bay).filter(Bay.floor_id == floor.id, Bay.is_available == True)  # noqa: E712
    allocation = _current_allocation(db, session.bus_id)
    if allocation:
        q = q.filter(Bay.id != allocation.bay_id)
    open_bays = q.order_by(Bay.area_code, Bay.lot_number).all()
    if not open_bays:
        return not_found("No other open bays on this level.")

    bay = chooser(open_bays)
    async with entity_locks.hold(bus_key(session.bus_id), bay_key(bay.id)):
        release_bays_held_by(db, session.bus_id)
        if not claim_bay(db, bay.id, session.bus_id):
            db.rollback()
            return conflict(f"Bay {bay.bay_code} was taken before the bus got there.")
        record_movement(db, session.bus_id, bay.floor_id, bay.x, bay.y, PARKED_WRONG)
        db.commit()

    return OperationResult.success(
        f"Bus moved to random open slot {bay.bay_code} on Level {session.level}.",
        plate=session.plate, bay_id=bay.id, bay_code=bay.bay_code,
    )
