"""
Buses known to the depot, keyed by plate number.
Created on first gate contact (upsert by plate) and never deleted.
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, Boolean, DateTime
from app.database import Base

BUS_OUTSIDE = "outside"
BUS_ENTERING = "entering"
BUS_INSIDE = "inside"
BUS_LEAVING = "leaving"


def normalize_plate(plate: str) -> str:
    return (plate or "").strip().upper()


class Bus(Base):
    __tablename__ = "buses"

    id = Column(Integer, primary_key=True, autoincrement=True)
    plate_number = Column(String(50), unique=True, nullable=False, index=True)
    status = Column(String(20), default=BUS_OUTSIDE, nullable=False)  # outside | entering | inside | leaving
    needs_charging = Column(Boolean, default=False, nullable=False)
    needs_maintenance = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<Bus {self.plate_number} status={self.status}>"
