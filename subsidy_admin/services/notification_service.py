"""
Operator notification service.

Holds status messages for operators whose request context is gone (an
abandoned operation that later reached a terminal state) until they are
fetched.
"""

from collections import defaultdict, deque
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Deque, Dict, List, Optional

from pydantic import BaseModel, Field

import structlog

logger = structlog.get_logger(__name__)


class NotificationLevel(str, Enum):
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class OperatorNotification(BaseModel):
    """A status message addressed to one operator session."""
    level: NotificationLevel
    title: str
    message: str
    operation_id: Optional[str] = None
    address: Optional[str] = None
    tx_hash: Optional[str] = None
    explorer_url: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class NotificationService:
    """In-process mailbox per operator session."""

    def __init__(self, max_per_session: int = 100):
        self.max_per_session = max_per_session
        self._mailboxes: Dict[str, Deque[OperatorNotification]] = defaultdict(
            lambda: deque(maxlen=self.max_per_session)
        )

    async def publish(self, session_id: str, notification: OperatorNotification) -> int:
        """Store a notification; returns how many are waiting for the session."""
        mailbox = self._mailboxes[session_id]
        mailbox.append(notification)

        logger.info(
            "Operator notification published",
            session_id=session_id,
            level=notification.level.value,
            title=notification.title,
            operation_id=notification.operation_id,
            pending=len(mailbox),
        )
        return len(mailbox)

    def drain(self, session_id: str) -> List[OperatorNotification]:
        """Return and clear the stored notifications for a session."""
        mailbox = self._mailboxes.pop(session_id, None)
        return list(mailbox) if mailbox else []

    def peek(self, session_id: str) -> List[OperatorNotification]:
        return list(self._mailboxes.get(session_id, ()))


# Global service instance
_notification_service: Optional[NotificationService] = None


def get_notification_service() -> NotificationService:
    """Get or create the global notification service."""
    global _notification_service
    if _notification_service is None:
        _notification_service = NotificationService()
    return _notification_service
