from pydantic import BaseModel
from typing import Literal, Optional


class CheckpointMoveRequest(BaseModel):
    checkpoint: str               # CP1..CP4
    plate: Optional[str] = None


class LevelChangeRequest(BaseModel):
    direction: Literal["up", "down"]
    plate: Optional[str] = None


class BusMoveRequest(BaseModel):
    plate: Optional[str] = None
