"""
System health check endpoint.
Returns status of backend + DB + depot counters + gate sessions in flight.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from sqlalchemy import func, text
from app.database import get_db
from app.models.bay import Bay
from app.models.bus import Bus, BUS_INSIDE
from app.services.gate_session import gate_sessions
from datetime import datetime

router = APIRouter()


@router.get("/health", summary="System health check")
def health_check(db: Session = Depends(get_db)):
    """
    Returns:
    - Backend status
    - Database connectivity
    - Bay and bus counters (when the database is up)
    - Plates with an open gate session
    """
    result = {
        "status": "ok",
        "timestamp": datetime.utcnow().isoformat(),
        "backend": "ok",
        "database": "unknown",
        "depot": {},
        "gate_sessions": [
            {"plate": s.plate, "gate": s.gate, "method": s.method, "level": s.level}
            for s in gate_sessions.active()
        ],
    }

    try:
        db.execute(text("SELECT 1"))
        result["database"] = "ok"
        result["depot"] = {
            "bays_total": db.query(func.count(Bay.id)).scalar(),
            "bays_available": db.query(func.count(Bay.id)).filter(Bay.is_available == True).scalar(),  # noqa: E712
            "buses_inside": db.query(func.count(Bus.id)).filter(Bus.status == BUS_INSIDE).scalar(),
        }
    except Exception as e:
        result["database"] = f"error: {str(e)}"
        result["status"] = "degraded"

    return result
