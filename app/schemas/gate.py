from pydantic import BaseModel
from typing import Optional


class GateEventRequest(BaseModel):
    plate: str


class IdentifyRequest(BaseModel):
    plate: Optional[str] = None   # omitted: the single bus waiting at a gate
