"""Gate events and bus identification (ANPR primary, RFID fallback)."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from app.database import get_db
from app.schemas.gate import GateEventRequest, IdentifyRequest
from app.schemas.result import OperationResultOut
from app.services import identification_service
from app.routers.responses import to_response

router = APIRouter()


@router.post("/gate/identify/primary", response_model=OperationResultOut, summary="ANPR identification")
async def identify_primary(body: IdentifyRequest, db: Session = Depends(get_db)):
    return to_response(await identification_service.identify_primary(db, body.plate))


@router.post("/gate/identify/fallback", response_model=OperationResultOut, summary="RFID fallback identification")
async def identify_fallback(body: IdentifyRequest, db: Session = Depends(get_db)):
    """Same as the timer firing early. Inert once ANPR has identified the bus."""
    return to_response(await identification_service.identify_fallback(db, body.plate))


@router.post("/gate/{direction}", response_model=OperationResultOut, summary="Bus arrives at entry/exit gate")
async def gate_event(direction: str, body: GateEventRequest, db: Session = Depends(get_db)):
    """
    Opens a gate session and arms the RFID fallback timer.
    On exit, open allocations are closed and the bay freed immediately.
    """
    return to_response(await identification_service.start_gate_event(db, body.plate, direction))
