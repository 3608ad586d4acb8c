"""
Bus lookup, upsert and preference helpers.
Used by the gate, allocation and movement services and the buses router.
"""

from sqlalchemy.orm import Session
from app.models.bus import Bus, normalize_plate
from app.services.result import OperationResult, not_found, validation_failed, reports_store_failure
from app.utils.logger import get_logger

logger = get_logger(__name__)


def lookup_bus_by_plate(db: Session, plate_number: str):
    """Find a bus by plate number (case-insensitive). Returns None if not found."""
    return db.query(Bus).filter(Bus.plate_number == normalize_plate(plate_number)).first()


def upsert_bus(db: Session, plate_number: str) -> Bus:
    """
    Return the bus for this plate, creating it on first contact.
    Flushes but does not commit; the caller owns the transaction.
    """
    plate = normalize_plate(plate_number)
    bus = db.query(Bus).filter(Bus.plate_number == plate).first()
    if bus is None:
        bus = Bus(plate_number=plate)
        db.add(bus)
        db.flush()
        logger.info(f"[BUS] Registered new bus {plate} (id={bus.id})")
    return bus


@reports_store_failure("updating bus preferences")
async def update_preferences(db: Session, plate: str, needs_charging: bool,
                             needs_maintenance: bool) -> OperationResult:
    if not normalize_plate(plate):
        return validation_failed("Enter a plate number first.")

    bus = upsert_bus(db, plate)
    bus.needs_charging = needs_charging
    bus.needs_maintenance = needs_maintenance
    db.commit()
    logger.info(f"[BUS] {bus.plate_number} preferences: charging={needs_charging} "
                f"maintenance={needs_maintenance}")
    return OperationResult.success(
        f"Preferences updated for {bus.plate_number}.",
        plate=bus.plate_number,
        needs_charging=bus.needs_charging,
        needs_maintenance=bus.needs_maintenance,
    )


@reports_store_failure("loading bus")
async def get_bus(db: Session, plate: str) -> OperationResult:
    bus = lookup_bus_by_plate(db, plate)
    if not bus:
        return not_found(f"Bus {normalize_plate(plate)} not found.")
    return OperationResult.success(
        f"Bus {bus.plate_number} is {bus.status}.",
        bus_id=bus.id,
        plate=bus.plate_number,
        status=bus.status,
        needs_charging=bus.needs_charging,
        needs_maintenance=bus.needs_maintenance,
    )
