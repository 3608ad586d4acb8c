"""
Demo depot layout: four levels with gates, waypoints, ramps and bays.
Setup-time reference data; seed_depot() is run by scripts/setup/init_db.py.

Coordinates are in map units on a 200 x 120 grid per floor. Gates sit on
level 1; every level has CP1..CP4 and the ramp checkpoints up/down.
"""

from sqlalchemy.orm import Session
from app.models.bay import Bay
from app.models.checkpoint import Checkpoint, ENTRANCE, EXIT, level_transition_name
from app.models.floor import Floor
from app.utils.logger import get_logger

logger = get_logger(__name__)

LEVELS = (1, 2, 3, 4)

GATE_CHECKPOINTS = {
    ENTRANCE: {"x": 10, "y": 110},
    EXIT: {"x": 190, "y": 110},
}

WAYPOINTS = {
    "CP1": {"x": 40, "y": 90},
    "CP2": {"x": 80, "y": 90},
    "CP3": {"x": 120, "y": 90},
    "CP4": {"x": 160, "y": 90},
}

RAMP_UP = {"x": 185, "y": 60}
RAMP_DOWN = {"x": 15, "y": 60}

# Per level: area code -> (first bay x, row y, lot count, charging lots)
BAY_ROWS = {
    "A": {"x0": 30, "y": 20, "lots": 6, "charging": {1, 2}},
    "B": {"x0": 30, "y": 45, "lots": 6, "charging": set()},
}
LOT_SPACING = 20

DEPOT_LAYOUT = {
    level: {
        "checkpoints": dict(
            WAYPOINTS,
            **(GATE_CHECKPOINTS if level == 1 else {}),
            **({level_transition_name(level, level + 1, "up"): RAMP_UP} if level < max(LEVELS) else {}),
            **({level_transition_name(level, level - 1, "down"): RAMP_DOWN} if level > min(LEVELS) else {}),
        ),
        "bays": [
            {
                "bay_code": f"L{level}-{area}{lot:02d}",
                "area_code": f"L{level}{area}",
                "lot_number": lot,
                "x": row["x0"] + (lot - 1) * LOT_SPACING,
                "y": row["y"],
                "is_charging_bay": lot in row["charging"],
            }
            for area, row in BAY_ROWS.items()
            for lot in range(1, row["lots"] + 1)
        ],
    }
    for level in LEVELS
}


def seed_depot(db: Session, layout: dict = None) -> dict:
    """Insert floors, checkpoints and bays that are not there yet. Safe to re-run."""
    layout = layout or DEPOT_LAYOUT
    counts = {"floors": 0, "checkpoints": 0, "bays": 0}

    for level, spec in layout.items():
        floor = db.query(Floor).filter(Floor.level_number == level).first()
        if not floor:
            floor = Floor(level_number=level, name=f"Level {level}")
            db.add(floor)
            db.flush()
            counts["floors"] += 1

        for name, xy in spec.get("checkpoints", {}).items():
            exists = db.query(Checkpoint).filter(
                Checkpoint.floor_id == floor.id, Checkpoint.name == name
            ).first()
            if not exists:
                db.add(Checkpoint(floor_id=floor.id, name=name, x=xy["x"], y=xy["y"]))
                counts["checkpoints"] += 1

        for bay in spec.get("bays", []):
            if not db.query(Bay).filter(Bay.bay_code == bay["bay_code"]).first():
                db.add(Bay(floor_id=floor.id, is_available=True, current_bus_id=None, **bay))
                counts["bays"] += 1

    db.commit()
    logger.info(f"Depot layout seeded: {counts}")
    return counts
