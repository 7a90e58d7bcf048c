"""
API dependencies for FastAPI endpoints.
Provides reusable dependency functions for validation, sessions and data access.
"""

from typing import AsyncGenerator, Optional
from fastapi import Depends, Header, HTTPException, Path, status
from sqlalchemy.ext.asyncio import AsyncSession

import structlog

from subsidy_admin.core.database import get_async_session
from subsidy_admin.core.exceptions import ValidationError
from subsidy_admin.services.dashboard_session import DashboardSession, get_session_registry
from subsidy_admin.services.ledger_client import LedgerQueryClient, get_ledger_client
from subsidy_admin.services.notification_service import NotificationService, get_notification_service
from subsidy_admin.services.profile_store import ProfileStore
from subsidy_admin.services.write_coordinator import WriteCoordinator, get_write_coordinator
from subsidy_admin.utils.validation import normalize_address


logger = structlog.get_logger(__name__)

DEFAULT_SESSION_ID = "default"


async def get_database() -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency."""
    async with get_async_session() as session:
        yield session


async def get_profile_store(db: AsyncSession = Depends(get_database)) -> ProfileStore:
    return ProfileStore(db)


async def validate_address_param(
    address: str = Path(..., description="EVM account address")
) -> str:
    """Validate an address path parameter and return its canonical form."""
    try:
        return normalize_address(address)
    except ValidationError:
        logger.warning("Invalid address provided", address=address)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "error": "INVALID_ADDRESS",
                "message": "Invalid account address format"
            }
        )


async def get_dashboard_session(
    x_session_id: Optional[str] = Header(None, description="Operator session identifier")
) -> DashboardSession:
    """Per-operator dashboard state keyed by the X-Session-Id header."""
    return get_session_registry().get(x_session_id or DEFAULT_SESSION_ID)


async def get_ledger() -> LedgerQueryClient:
    return get_ledger_client()


async def get_coordinator() -> WriteCoordinator:
    return get_write_coordinator()


async def get_notifier() -> NotificationService:
    return get_notification_service()
