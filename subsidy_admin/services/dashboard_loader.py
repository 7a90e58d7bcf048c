"""
Fetches both sources and builds the reconciled view for one request.
"""

import asyncio
from typing import List, Tuple

import structlog

from subsidy_admin.services.ledger_client import LedgerQueryClient
from subsidy_admin.services.profile_store import ProfileStore
from subsidy_admin.services.reconciliation import ReconciledView, reconcile
from subsidy_admin.services.types import DailyClaim


logger = structlog.get_logger(__name__)


async def load_view(ledger: LedgerQueryClient, store: ProfileStore) -> ReconciledView:
    """Fresh reconciled view; recomputed on every call, never cached."""
    records, profiles = await asyncio.gather(ledger.list_beneficiaries(), store.list_all())
    view = reconcile(records, profiles)
    logger.debug(
        "Reconciled view built",
        ledger_rows=len(view.rows),
        orphan_profiles=len(view.orphan_profiles),
    )
    return view


async def load_view_with_claims(
    ledger: LedgerQueryClient,
    store: ProfileStore,
) -> Tuple[ReconciledView, List[DailyClaim]]:
    view, daily_claims = await asyncio.gather(load_view(ledger, store), ledger.list_daily_claims())
    return view, daily_claims
