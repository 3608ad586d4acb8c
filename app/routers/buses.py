"""Bus lookup, driver preferences, location and parking instruction."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from app.database import get_db
from app.schemas.bus import PreferencesUpdate
from app.schemas.result import OperationResultOut
from app.services import allocation_service, bus_service, movement_service
from app.routers.responses import to_response

router = APIRouter()


@router.get("/buses/{plate}", response_model=OperationResultOut, summary="Look up a bus by plate")
async def get_bus(plate: str, db: Session = Depends(get_db)):
    return to_response(await bus_service.get_bus(db, plate))


@router.put("/buses/{plate}/preferences", response_model=OperationResultOut, summary="Set charging/maintenance needs")
async def update_preferences(plate: str, body: PreferencesUpdate, db: Session = Depends(get_db)):
    return to_response(await bus_service.update_preferences(
        db, plate, body.needs_charging, body.needs_maintenance))


@router.get("/buses/{plate}/location", response_model=OperationResultOut, summary="Which level is this bus on")
async def locate_bus(plate: str, db: Session = Depends(get_db)):
    return to_response(await movement_service.locate_bus(db, plate))


@router.get("/buses/{plate}/instruction", response_model=OperationResultOut, summary="Driver parking instruction")
async def parking_instruction(plate: str, db: Session = Depends(get_db)):
    return to_response(await allocation_service.get_parking_instruction(db, plate))
