"""
Per-operator dashboard state.

Sort selection and in-flight operations belong to one operator
session, never to the process.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Optional

import structlog

from subsidy_admin.services.reconciliation import SortConfig, SortField, SortState
from subsidy_admin.services.write_coordinator import WriteOperation


logger = structlog.get_logger(__name__)


@dataclass
class DashboardSession:
    session_id: str
    sort: SortState = field(default_factory=SortState)
    in_flight: Dict[str, WriteOperation] = field(default_factory=dict)
    last_seen: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def touch(self) -> None:
        self.last_seen = datetime.now(timezone.utc)

    def request_sort(self, sort_field: SortField) -> SortConfig:
        return self.sort.request(sort_field)

    def busy_with(self, address: str) -> Optional[WriteOperation]:
        """The unfinished operation for ``address``, if any."""
        operation = self.in_flight.get(address)
        if operation is not None and operation.done:
            del self.in_flight[address]
            return None
        return operation

    def track(self, operation: WriteOperation) -> None:
        self.in_flight[operation.address] = operation

    def abandon_all(self) -> int:
        """Detach every unfinished operation (operator left)."""
        count = 0
        for address in list(self.in_flight):
            operation = self.busy_with(address)
            if operation is not None:
                operation.abandon()
                count += 1
        return count


class SessionRegistry:
    """In-memory session lookup with idle expiry."""

    def __init__(self, idle_seconds: int = 3600):
        self.idle_seconds = idle_seconds
        self._sessions: Dict[str, DashboardSession] = {}

    def get(self, session_id: str) -> DashboardSession:
        self._expire()
        session = self._sessions.get(session_id)
        if session is None:
            session = DashboardSession(session_id=session_id)
            self._sessions[session_id] = session
        session.touch()
        return session

    def close(self, session_id: str) -> None:
        session = self._sessions.pop(session_id, None)
        if session is not None:
            session.abandon_all()

    def _expire(self) -> None:
        now = datetime.now(timezone.utc)
        for session_id, session in list(self._sessions.items()):
            if (now - session.last_seen).total_seconds() > self.idle_seconds:
                abandoned = session.abandon_all()
                del self._sessions[session_id]
                logger.info("Dashboard session expired", session_id=session_id, abandoned=abandoned)


# Global registry instance
_session_registry: Optional[SessionRegistry] = None


def get_session_registry() -> SessionRegistry:
    """Get or create the global session registry."""
    global _session_registry
    if _session_registry is None:
        _session_registry = SessionRegistry()
    return _session_registry
