"""Simulated bus movement inside the depot + position read views."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from app.database import get_db
from app.schemas.movement import CheckpointMoveRequest, LevelChangeRequest, BusMoveRequest
from app.schemas.result import OperationResultOut
from app.services import movement_service
from app.routers.responses import to_response

router = APIRouter()


@router.post("/movements/checkpoint", response_model=OperationResultOut, summary="Move bus to CP1–CP4")
async def move_to_checkpoint(body: CheckpointMoveRequest, db: Session = Depends(get_db)):
    return to_response(await movement_service.move_to_checkpoint(db, body.plate, body.checkpoint))


@router.post("/movements/level", response_model=OperationResultOut, summary="Move bus up/down a level")
async def change_level(body: LevelChangeRequest, db: Session = Depends(get_db)):
    return to_response(await movement_service.change_level(db, body.plate, body.direction))


@router.post("/movements/allocated-bay", response_model=OperationResultOut, summary="Drive into the allocated bay")
async def move_to_allocated_bay(body: BusMoveRequest, db: Session = Depends(get_db)):
    return to_response(await movement_service.move_to_allocated_bay(db, body.plate))


@router.post("/movements/open-bay", response_model=OperationResultOut, summary="Drive into a random open bay")
async def move_to_open_bay(body: BusMoveRequest, db: Session = Depends(get_db)):
    return to_response(await movement_service.move_to_open_bay(db, body.plate))


@router.get("/positions/latest", response_model=OperationResultOut, summary="Latest position of every bus inside")
async def latest_positions(db: Session = Depends(get_db)):
    return to_response(await movement_service.latest_positions(db))
