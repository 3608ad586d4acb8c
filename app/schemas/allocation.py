from pydantic import BaseModel


class ManualAssignRequest(BaseModel):
    bay_id: int
    plate: str


class AutoAssignRequest(BaseModel):
    plate: str
