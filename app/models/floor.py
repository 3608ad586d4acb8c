"""
Depot floors (static reference data).
One row per parking level; level_number runs from 1 (ground) to 4.
"""

from sqlalchemy import Column, Integer, String
from app.database import Base


class Floor(Base):
    __tablename__ = "depot_floors"

    id = Column(Integer, primary_key=True, autoincrement=True)
    level_number = Column(Integer, unique=True, nullable=False, index=True)
    name = Column(String(50))

    def __repr__(self):
        return f"<Floor {self.id} level={self.level_number}>"
