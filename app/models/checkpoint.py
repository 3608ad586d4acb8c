"""
Named waypoints on a floor (static reference data).
Gate checkpoints ("Entrance", "Exit"), in-floor waypoints ("CP1".."CP4") and
level transition points ("Level 1 to Level 2 up") share this table.
"""

from sqlalchemy import Column, Integer, String, Float, ForeignKey, UniqueConstraint
from app.database import Base

ENTRANCE = "Entrance"
EXIT = "Exit"


def level_transition_name(source_level: int, target_level: int, direction: str) -> str:
    return f"Level {source_level} to Level {target_level} {direction}"


class Checkpoint(Base):
    __tablename__ = "checkpoints"
    __table_args__ = (UniqueConstraint("floor_id", "name", name="uq_checkpoint_floor_name"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    floor_id = Column(Integer, ForeignKey("depot_floors.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    x = Column(Float, nullable=False)
    y = Column(Float, nullable=False)

    def __repr__(self):
        return f"<Checkpoint {self.name} floor={self.floor_id} ({self.x}, {self.y})>"
