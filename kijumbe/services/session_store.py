"""Per-subject conversation sessions kept in memory."""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from kijumbe.logging_config import get_logger
from kijumbe.services.state_machine import Flow, Step, first_step, transition

logger = get_logger("session_store")

DEFAULT_TIMEOUT_SECONDS = 30 * 60


@dataclass
class Session:
    subject_id: str
    active_flow: Optional[Flow] = None
    current_step: Optional[Step] = None
    scratch: dict[str, Any] = field(default_factory=dict)
    last_activity: float = 0.0

    @property
    def in_flow(self) -> bool:
        return self.active_flow is not None

    def start(self, flow: Flow, step: Optional[Step] = None) -> None:
        self.active_flow = flow
        self.current_step = step or first_step(flow)
        self.scratch = {}

    def advance(self, step: Step) -> None:
        if self.active_flow is None or self.current_step is None:
            raise ValueError(f"Session {self.subject_id} has no active flow")
        self.current_step = transition(self.active_flow, self.current_step, step)

    def clear(self) -> None:
        self.active_flow = None
        self.current_step = None
        self.scratch = {}

    def snapshot(self) -> tuple:
        return self.active_flow, self.current_step, dict(self.scratch)

    def restore(self, snapshot: tuple) -> None:
        self.active_flow, self.current_step, scratch = snapshot
        self.scratch = dict(scratch)


class SessionStore:
    """Map of subject id to Session, plus one asyncio.Lock per subject.

    Holding a subject's lock serializes dispatches for that subject; other
    subjects proceed in parallel.
    """

    def __init__(
        self,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.timeout_seconds = timeout_seconds
        self._clock = clock
        self._sessions: dict[str, Session] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, subject_id: str) -> bool:
        return subject_id in self._sessions

    def get(self, subject_id: str) -> Session:
        """Return the subject's session, creating it if needed, and mark it active."""
        session = self._sessions.get(subject_id)
        if session is None:
            session = Session(subject_id=subject_id)
            self._sessions[subject_id] = session
        session.last_activity = self._clock()
        return session

    def peek(self, subject_id: str) -> Optional[Session]:
        return self._sessions.get(subject_id)

    def start_flow(self, subject_id: str, flow: Flow, step: Optional[Step] = None) -> Session:
        session = self.get(subject_id)
        session.start(flow, step)
        return session

    def end_flow(self, subject_id: str) -> Session:
        session = self.get(subject_id)
        session.clear()
        return session

    def lock(self, subject_id: str) -> asyncio.Lock:
        lock = self._locks.get(subject_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[subject_id] = lock
        return lock

    def sweep(self) -> int:
        """Drop sessions idle longer than the timeout. Returns how many were removed."""
        cutoff = self._clock() - self.timeout_seconds
        removed = 0
        for subject_id, session in list(self._sessions.items()):
            if session.last_activity >= cutoff:
                continue
            lock = self._locks.get(subject_id)
            if lock is not None and lock.locked():
                continue
            del self._sessions[subject_id]
            self._locks.pop(subject_id, None)
            removed += 1
        if removed:
            logger.info("Expired sessions removed", extra={"context": {"removed": removed, "active": len(self)}})
        return removed

    def clear(self) -> int:
        cleared = len(self._sessions)
        self._sessions.clear()
        self._locks = {key: lock for key, lock in self._locks.items() if lock.locked()}
        return cleared

    def stats(self) -> dict:
        now = self._clock()
        by_flow: dict[str, int] = {}
        for session in self._sessions.values():
            key = session.active_flow.value if session.active_flow else "none"
            by_flow[key] = by_flow.get(key, 0) + 1
        oldest = max((now - s.last_activity for s in self._sessions.values()), default=0.0)
        return {
            "active_sessions": len(self._sessions),
            "by_flow": by_flow,
            "oldest_idle_seconds": round(oldest, 1),
            "timeout_seconds": self.timeout_seconds,
        }

    async def run_sweeper(self, interval_seconds: float = 300.0) -> None:
        while True:
            try:
                await asyncio.sleep(interval_seconds)
                self.sweep()
            except asyncio.CancelledError:
                break
            except Exception as exc:
                logger.error("Session sweep failed", extra={"context": {"error": str(exc)}})
