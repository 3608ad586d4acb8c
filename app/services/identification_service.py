"""
Gate identification: primary (simulated ANPR) with a timed fallback (simulated RFID).

How it works:
  - start_gate_event upserts the bus, marks it entering/leaving and opens a
    GateSession. On exit the bus's allocations are closed straight away,
    because the bus is already physically leaving.
  - A one-shot fallback timer is armed for IDENTIFICATION_FALLBACK_SECONDS.
  - identify_primary or the timer (identify_fallback) then claims the
    session. The claim is a compare-and-set on the session's method, so
    whichever path loses is a no-op even if the timer already fired.
  - The winner records a position at the gate checkpoint and moves the bus
    inside/outside. Exit identification ends the session.
"""

import asyncio
from typing import Optional
from sqlalchemy.orm import Session
from app.config import settings
from app.database import SessionLocal
from app.models.bus import Bus, BUS_ENTERING, BUS_LEAVING, BUS_INSIDE, BUS_OUTSIDE, normalize_plate
from app.models.bus_position import ANPR_ENTRY, ANPR_EXIT, RFID_ENTRY, RFID_EXIT
from app.models.checkpoint import Checkpoint, ENTRANCE, EXIT
from app.models.floor import Floor
from app.services.bus_service import upsert_bus
from app.services.gate_session import (
    GateSession, gate_sessions, GATES, GATE_ENTRY, GATE_EXIT, METHOD_PRIMARY, METHOD_FALLBACK,
)
from app.services.lifecycle_service import close_and_free
from app.services.movement_service import record_movement
from app.services.result import (
    OperationResult, conflict, not_found, validation_failed, reports_store_failure,
)
from app.utils.logger import get_logger

logger = get_logger(__name__)

_POSITION_SOURCES = {
    (METHOD_PRIMARY, GATE_ENTRY): ANPR_ENTRY,
    (METHOD_PRIMARY, GATE_EXIT): ANPR_EXIT,
    (METHOD_FALLBACK, GATE_ENTRY): RFID_ENTRY,
    (METHOD_FALLBACK, GATE_EXIT): RFID_EXIT,
}

_SUCCESS_MESSAGES = {
    (METHOD_PRIMARY, GATE_ENTRY): "ANPR entry identification successful. Bus visible on map.",
    (METHOD_PRIMARY, GATE_EXIT): "ANPR exit identification successful. Bus leaving depot.",
    (METHOD_FALLBACK, GATE_ENTRY): "ANPR timeout – RFID identified the entering bus.",
    (METHOD_FALLBACK, GATE_EXIT): "ANPR timeout – RFID identified the leaving bus.",
}


def _gate_checkpoint(db: Session, gate: str) -> Optional[Checkpoint]:
    """The reference checkpoint for a gate, lowest level first."""
    name = ENTRANCE if gate == GATE_ENTRY else EXIT
    return (
        db.query(Checkpoint)
        .join(Floor, Floor.id == Checkpoint.floor_id)
        .filter(Checkpoint.name == name)
        .order_by(Floor.level_number)
        .first()
    )


def _arm_fallback_timer(session: GateSession) -> asyncio.Task:
    delay = settings.IDENTIFICATION_FALLBACK_SECONDS

    async def _fire():
        await asyncio.sleep(delay)
        if not session.pending:
            return
        logger.info(f"[GATE] No ANPR read for {session.plate} within {delay}s: falling back to RFID")
        try:
            db = SessionLocal()
            try:
                result = await _complete_identification(db, session, METHOD_FALLBACK)
                if not result.ok:
                    logger.warning(f"[GATE] RFID fallback for {session.plate}: {result.message}")
            finally:
                db.close()

        except Exception as e:
            logger.error(f"[GATE] RFID fallback error for {session.plate}: {e}", exc_info=True)

    return asyncio.get_running_loop().create_task(_fire(), name=f"rfid-fallback-{session.plate}")


@reports_store_failure("starting gate event")
async def start_gate_event(db: Session, plate: str, gate: str) -> OperationResult:
    plate = normalize_plate(plate)
    if not plate:
        return validation_failed("Enter a plate number first.")
    if gate not in GATES:
        return validation_failed(f"Unknown gate '{gate}'. Use 'entry' or 'exit'.")

    bus = upsert_bus(db, plate)
    bus.status = BUS_ENTERING if gate == GATE_ENTRY else BUS_LEAVING
    db.commit()
    logger.info(f"[GATE] {plate} at {gate} gate (bus {bus.id}): awaiting ANPR or RFID")

    if gate == GATE_EXIT:
        closed = await close_and_free(db, bus.id)
        if not closed.ok:
            return closed

    previous = gate_sessions.get(plate)
    session = GateSession(bus_id=bus.id, plate=plate, gate=gate,
                          level=previous.level if previous else settings.MIN_LEVEL)
    gate_sessions.open(session)
    session.timer = _arm_fallback_timer(session)

    return OperationResult.success(
        "Bus entering depot… awaiting ANPR or RFID." if gate == GATE_ENTRY
        else "Bus leaving depot… awaiting ANPR or RFID.",
        plate=plate, bus_id=bus.id, gate=gate, bus_status=bus.status,
    )


@reports_store_failure("identifying bus")
async def _complete_identification(db: Session, session: GateSession, method: str) -> OperationResult:
    if gate_sessions.get(session.plate) is not session:
        return conflict(f"Gate session for {session.plate} is no longer active.")

    checkpoint = _gate_checkpoint(db, session.gate)
    if not checkpoint:
        name = ENTRANCE if session.gate == GATE_ENTRY else EXIT
        return not_found(f"Error fetching checkpoint: {name} not configured.")

    if not session.claim(method):
        return conflict(f"Identification for {session.plate} already completed via {session.method}.")
    if method == METHOD_PRIMARY:
        session.cancel_timer()

    source = _POSITION_SOURCES[(method, session.gate)]
    record_movement(db, session.bus_id, checkpoint.floor_id, checkpoint.x, checkpoint.y, source)
    db.query(Bus).filter(Bus.id == session.bus_id).update(
        {Bus.status: BUS_INSIDE if session.gate == GATE_ENTRY else BUS_OUTSIDE}
    )
    db.commit()
    logger.info(f"[GATE] {session.plate} identified by {method} at {session.gate} [{source}]")

    if session.gate == GATE_EXIT:
        if method == METHOD_FALLBACK:
            # RFID path sweeps again in case something was allocated mid-exit
            closed = await close_and_free(db, session.bus_id)
            if not closed.ok:
                return closed
        # Session ends here; the next gate event starts back on the lowest level
        gate_sessions.close(session)

    return OperationResult.success(
        _SUCCESS_MESSAGES[(method, session.gate)],
        plate=session.plate, gate=session.gate, method=method, source=source,
    )


async def identify_primary(db: Session, plate: Optional[str] = None) -> OperationResult:
    # Without a plate, pick the one bus still waiting at a gate
    session = gate_sessions.resolve(normalize_plate(plate) if plate else None, pending_only=not plate)
    if session is None:
        return validation_failed("No bus waiting at gate. Click Enter/Leave depot first.")
    return await _complete_identification(db, session, METHOD_PRIMARY)


async def identify_fallback(db: Session, plate: Optional[str] = None) -> OperationResult:
    # Without a plate, pick the one bus still waiting at a gate
    session = gate_sessions.resolve(normalize_plate(plate) if plate else None, pending_only=not plate)
    if session is None:
        return validation_failed("No bus waiting at gate. Click Enter/Leave depot first.")
    return await _complete_identification(db, session, METHOD_FALLBACK)
