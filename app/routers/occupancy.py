"""Bay occupancy consistency: check and repair."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from app.database import get_db
from app.schemas.result import OperationResultOut
from app.services.occupancy_service import check_occupancy, reconcile_occupancy
from app.routers.responses import to_response

router = APIRouter()


@router.get("/occupancy/check", response_model=OperationResultOut, summary="List occupancy inconsistencies")
async def occupancy_check(db: Session = Depends(get_db)):
    return to_response(await check_occupancy(db))


@router.post("/occupancy/reconcile", summary="Rebuild bay occupancy from open allocations")
async def occupancy_reconcile(db: Session = Depends(get_db)):
    """Use after a crash or manual DB edits left bays out of step with allocations."""
    return to_response(await reconcile_occupancy(db))
