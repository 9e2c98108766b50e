from __future__ import annotations

import logging
import threading
import time
import uuid
from datetime import datetime, timezone
from typing import Callable, Dict

from .workflow import ProposalWorkflow

logger = logging.getLogger(__name__)

DEFAULT_SESSION_TTL = 1800.0


class WorkflowSessionStore:
    """Keeps the live workflow of every open acceptance session.

    Sessions idle for longer than ``ttl`` seconds are evicted (and closed)
    whenever the store is touched.
    """

    def __init__(self, *, ttl: float = DEFAULT_SESSION_TTL, clock: Callable[[], float] = time.monotonic) -> None:
        self._sessions: Dict[str, ProposalWorkflow] = {}
        self._last_seen: Dict[str, float] = {}
        self._lock = threading.Lock()
        self._ttl = ttl
        self._clock = clock

    def create_session(self, factory: Callable[[], ProposalWorkflow]) -> tuple[str, ProposalWorkflow]:
        with self._lock:
            self._evict_idle()
            session_id = self._generate_id()
            workflow = factory()
            self._sessions[session_id] = workflow
            self._last_seen[session_id] = self._clock()
            return session_id, workflow

    def get_session(self, session_id: str) -> ProposalWorkflow | None:
        with self._lock:
            self._evict_idle()
            workflow = self._sessions.get(session_id)
            if workflow is not None:
                self._last_seen[session_id] = self._clock()
            return workflow

    def discard_session(self, session_id: str) -> bool:
        with self._lock:
            workflow = self._pop(session_id)
        if workflow is None:
            return False
        workflow.close()
        return True

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def _pop(self, session_id: str) -> ProposalWorkflow | None:
        self._last_seen.pop(session_id, None)
        return self._sessions.pop(session_id, None)

    def _evict_idle(self) -> None:
        cutoff = self._clock() - self._ttl
        expired = [session_id for session_id, seen in self._last_seen.items() if seen < cutoff]
        for session_id in expired:
            workflow = self._pop(session_id)
            if workflow is not None:
                workflow.close()
        if expired:
            logger.info("Evicted idle sessions", extra={"count": len(expired)})

    def _generate_id(self) -> str:
        ts = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
        suffix = uuid.uuid4().hex[:10]
        return f"wf_{ts}_{suffix}"


__all__ = ["DEFAULT_SESSION_TTL", "WorkflowSessionStore"]
