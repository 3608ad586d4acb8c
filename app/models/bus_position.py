"""
Append-only bus position log.
The current position of a bus is its most recent row; rows are never updated.
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, Float, DateTime, ForeignKey
from app.database import Base

ANPR_ENTRY = "anpr_entry"
ANPR_EXIT = "anpr_exit"
RFID_ENTRY = "rfid_entry"
RFID_EXIT = "rfid_exit"
LEVEL_UP = "level_up"
LEVEL_DOWN = "level_down"
PARKED_CORRECT = "parked_correct"
PARKED_WRONG = "parked_wrong"


def checkpoint_source(checkpoint_name: str) -> str:
    return "checkpoint_" + checkpoint_name.lower()


class BusPosition(Base):
    __tablename__ = "bus_positions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    bus_id = Column(Integer, ForeignKey("buses.id"), nullable=False, index=True)
    floor_id = Column(Integer, ForeignKey("depot_floors.id"), nullable=False)
    x = Column(Float, nullable=False)
    y = Column(Float, nullable=False)
    source = Column(String(50), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    def __repr__(self):
        return f"<BusPosition bus={self.bus_id} floor={self.floor_id} ({self.x}, {self.y}) {self.source}>"
