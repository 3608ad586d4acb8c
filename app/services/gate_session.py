"""
Per-bus gate sessions.

A session opens when a bus reaches a gate and lives until exit
identification completes. It carries the gate direction, which
identification method won, the fallback timer task, and the level the bus
is currently driving on (used by the movement service).
"""

import asyncio
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from app.config import settings

GATE_ENTRY = "entry"
GATE_EXIT = "exit"
GATES = (GATE_ENTRY, GATE_EXIT)

METHOD_PRIMARY = "primary"     # simulated ANPR
METHOD_FALLBACK = "fallback"   # simulated RFID


@dataclass
class GateSession:
    bus_id: int
    plate: str
    gate: str
    level: int = settings.MIN_LEVEL
    method: Optional[str] = None
    timer: Optional[asyncio.Task] = field(default=None, repr=False, compare=False)
    _claim_lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    @property
    def pending(self) -> bool:
        return self.method is None

    def claim(self, method: str) -> bool:
        """Compare-and-set on the method. Exactly one caller ever wins."""
        with self._claim_lock:
            if self.method is not None:
                return False
            self.method = method
            return True

    def cancel_timer(self):
        timer, self.timer = self.timer, None
        if timer is None or timer.done():
            return
        try:
            if timer is asyncio.current_task():
                return
        except RuntimeError:
            pass  # no running loop
        timer.cancel()


class GateSessionRegistry:
    """Active gate sessions keyed by normalised plate."""

    def __init__(self):
        self._sessions: Dict[str, GateSession] = {}
        self._lock = threading.Lock()

    def open(self, session: GateSession) -> Optional[GateSession]:
        """Register a session, replacing (and disarming) any previous one for the plate."""
        with self._lock:
            previous = self._sessions.get(session.plate)
            self._sessions[session.plate] = session
        if previous is not None:
            previous.cancel_timer()
        return previous

    def get(self, plate: str) -> Optional[GateSession]:
        with self._lock:
            return self._sessions.get(plate)

    def resolve(self, plate: Optional[str] = None, pending_only: bool = False) -> Optional[GateSession]:
        """
        Session for a plate, or, when no plate is given, the single session
        at the gate. Returns None when that is ambiguous.
        """
        with self._lock:
            if plate:
                session = self._sessions.get(plate)
                if session is not None and pending_only and not session.pending:
                    return None
                return session
            candidates = [s for s in self._sessions.values() if s.pending or not pending_only]
        return candidates[0] if len(candidates) == 1 else None

    def close(self, session: GateSession) -> bool:
        with self._lock:
            if self._sessions.get(session.plate) is not session:
                return False
            del self._sessions[session.plate]
        session.cancel_timer()
        return True

    def active(self) -> List[GateSession]:
        with self._lock:
            return list(self._sessions.values())

    def clear(self):
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        for session in sessions:
            session.cancel_timer()


gate_sessions = GateSessionRegistry()
