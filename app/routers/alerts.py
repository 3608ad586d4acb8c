from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from app.database import get_db
from app.schemas.result import OperationResultOut
from app.services.override_service import list_override_alerts
from app.routers.responses import to_response

router = APIRouter()


@router.get("/alerts", response_model=OperationResultOut, summary="Override incidents: active and historical")
async def get_override_alerts(active_only: bool = False, limit: int = 50, db: Session = Depends(get_db)):
    """Allocations that hit the wrong-attempt threshold. Filter to active incidents with active_only."""
    return to_response(await list_override_alerts(db, active_only=active_only, limit=limit))
