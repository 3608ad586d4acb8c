"""
Parking bays.
current_bus_id is a cache of the latest open allocation; is_available must
always equal (current_bus_id is None).
"""

from sqlalchemy import Column, Integer, String, Float, Boolean, ForeignKey
from sqlalchemy.orm import relationship
from app.database import Base


class Bay(Base):
    __tablename__ = "bays"

    id = Column(Integer, primary_key=True, autoincrement=True)
    bay_code = Column(String(20), unique=True, nullable=False)
    area_code = Column(String(10), nullable=False, index=True)
    lot_number = Column(Integer, nullable=False)
    floor_id = Column(Integer, ForeignKey("depot_floors.id"), nullable=False, index=True)
    x = Column(Float, nullable=False)
    y = Column(Float, nullable=False)
    is_charging_bay = Column(Boolean, default=False, nullable=False)
    is_available = Column(Boolean, default=True, nullable=False, index=True)
    current_bus_id = Column(Integer, ForeignKey("buses.id"), index=True)

    floor = relationship("Floor")
    current_bus = relationship("Bus")

    def __repr__(self):
        return f"<Bay {self.bay_code} available={self.is_available} bus={self.current_bus_id}>"
