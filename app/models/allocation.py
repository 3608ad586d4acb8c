"""
Bay allocations: the authoritative link between a bus and a bay.
Rows are never deleted; closed allocations stay behind for the alert view.

Status flow:
  allocated -> parked | override_parked | completed_departed
  parked / override_parked -> completed_departed
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from app.database import Base

ALLOCATED = "allocated"
PARKED = "parked"
EXCEPTION_WRONG_BAY = "exception_wrong_bay"
OVERRIDE_PARKED = "override_parked"
COMPLETED_DEPARTED = "completed_departed"

# Statuses a bus may hold at most one of
OPEN_STATUSES = (ALLOCATED, PARKED, OVERRIDE_PARKED)
# Everything the exit closer sweeps, including the legacy wrong-bay status
CLOSABLE_STATUSES = (ALLOCATED, PARKED, EXCEPTION_WRONG_BAY, OVERRIDE_PARKED)


class Allocation(Base):
    __tablename__ = "allocations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    bus_id = Column(Integer, ForeignKey("buses.id"), nullable=False, index=True)
    bay_id = Column(Integer, ForeignKey("bays.id"), nullable=False, index=True)
    override_bay_id = Column(Integer, ForeignKey("bays.id"))
    status = Column(String(30), default=ALLOCATED, nullable=False, index=True)
    wrong_attempts = Column(Integer, default=0, nullable=False)
    priority_reason = Column(String(30))   # manual | charging_manual | default | charging
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    bus = relationship("Bus")
    bay = relationship("Bay", foreign_keys=[bay_id])
    override_bay = relationship("Bay", foreign_keys=[override_bay_id])

    def __repr__(self):
        return f"<Allocation {self.id} bus={self.bus_id} bay={self.bay_id} status={self.status}>"
