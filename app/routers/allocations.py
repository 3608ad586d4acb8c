"""Bay allocation (manual/auto), parking confirmation and the bay board."""

from typing import Optional
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from app.database import get_db
from app.schemas.allocation import ManualAssignRequest, AutoAssignRequest
from app.schemas.result import OperationResultOut
from app.services import allocation_service, parking_service
from app.routers.responses import to_response

router = APIRouter()


@router.post("/allocations/manual", response_model=OperationResultOut, summary="Assign a specific bay to a plate")
async def assign_bay(body: ManualAssignRequest, db: Session = Depends(get_db)):
    return to_response(await allocation_service.assign_bay(db, body.bay_id, body.plate))


@router.post("/allocations/auto", response_model=OperationResultOut, summary="Assign the first matching free bay")
async def auto_assign(body: AutoAssignRequest, db: Session = Depends(get_db)):
    return to_response(await allocation_service.auto_assign(db, body.plate))


@router.post("/allocations/{allocation_id}/confirm", response_model=OperationResultOut, summary="Driver confirms parked")
async def confirm_parked(allocation_id: int, db: Session = Depends(get_db)):
    """
    Checks the bus's latest position against the allocated bay.
    Three wrong confirmations record an override at the nearest bay.
    """
    return to_response(await parking_service.confirm_parked(db, allocation_id))


@router.get("/bays", response_model=OperationResultOut, summary="Bay board: filterable by level")
async def list_bays(level: Optional[int] = None, db: Session = Depends(get_db)):
    return to_response(await allocation_service.list_bays(db, level))
