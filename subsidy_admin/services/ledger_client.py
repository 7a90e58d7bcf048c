"""
Ledger query client.

Read-only access to the indexed on-chain events (enrollment, removal, daily
claims) served by the subgraph's GraphQL endpoint.
"""

import asyncio
from typing import Any, Dict, List, Optional

import aiohttp
import structlog

from subsidy_admin.core.config import settings
from subsidy_admin.core.exceptions import LedgerQueryError
from subsidy_admin.services.types import DailyClaim, LedgerRecord
from subsidy_admin.utils.validation import require_canonical_address


logger = structlog.get_logger(__name__)


BENEFICIARIES_QUERY = """
query Beneficiaries($first: Int!, $skip: Int!) {
  beneficiaries(first: $first, skip: $skip, orderBy: dateAdded, orderDirection: desc) {
    id
    dateAdded
    dateRemoved
    isActive
    totalClaimed
  }
}
"""

BENEFICIARY_QUERY = """
query Beneficiary($id: ID!) {
  beneficiary(id: $id) {
    id
    dateAdded
    dateRemoved
    isActive
    totalClaimed
  }
}
"""

DAILY_CLAIMS_QUERY = """
query DailyClaims($first: Int!, $skip: Int!) {
  dailyClaims(first: $first, skip: $skip, orderBy: date, orderDirection: asc) {
    id
    date
    beneficiaries
  }
}
"""


def parse_ledger_record(raw: Dict[str, Any]) -> LedgerRecord:
    """Build a LedgerRecord from a subgraph entity; ids are lowercased hex."""
    try:
        date_removed = raw.get("dateRemoved")
        return LedgerRecord(
            address=str(raw["id"]).lower(),
            date_added=int(raw["dateAdded"]),
            date_removed=int(date_removed) if date_removed not in (None, "", "0", 0) else None,
            is_active=bool(raw["isActive"]),
            total_claimed=int(raw.get("totalClaimed") or 0),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise LedgerQueryError("Malformed beneficiary entity", {"entity": raw, "error": str(e)}) from e


def parse_daily_claim(raw: Dict[str, Any]) -> DailyClaim:
    """Build a DailyClaim from a subgraph entity."""
    try:
        return DailyClaim(
            date=int(raw["date"]),
            beneficiaries=tuple(str(b).lower() for b in (raw.get("beneficiaries") or [])),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise LedgerQueryError("Malformed daily claim entity", {"entity": raw, "error": str(e)}) from e


class LedgerQueryClient:
    """
    Async GraphQL client for the beneficiary subgraph.

    A miss on lookup returns None; transport and payload problems raise
    LedgerQueryError so callers can tell "not enrolled" from "indexer down".
    """

    def __init__(
        self,
        endpoint: Optional[str] = None,
        page_size: Optional[int] = None,
        timeout: Optional[int] = None,
    ):
        self.endpoint = endpoint or settings.subgraph_url
        self.page_size = page_size or settings.subgraph_page_size
        self.timeout = aiohttp.ClientTimeout(total=timeout or settings.subgraph_timeout)
        self.logger = logger.bind(service="ledger_query_client")

    async def _post_query(self, query: str, variables: Dict[str, Any]) -> Dict[str, Any]:
        """Execute one GraphQL request and return its ``data`` object."""
        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.post(
                    self.endpoint,
                    json={"query": query, "variables": variables},
                ) as response:
                    if response.status != 200:
                        body = await response.text()
                        raise LedgerQueryError(
                            "Indexer returned an error status",
                            {"status": response.status, "body": body[:500]}
                        )
                    payload = await response.json()
        except asyncio.TimeoutError as e:
            self.logger.warning("Indexer request timed out", endpoint=self.endpoint)
            raise LedgerQueryError("Indexer request timed out", {"endpoint": self.endpoint}) from e
        except aiohttp.ClientError as e:
            self.logger.error("Indexer request failed", endpoint=self.endpoint, error=str(e))
            raise LedgerQueryError("Indexer unavailable", {"error": str(e)}) from e

        if payload.get("errors"):
            raise LedgerQueryError("Indexer query failed", {"errors": payload["errors"]})
        return payload.get("data") or {}

    async def _fetch_all(self, query: str, key: str) -> List[Dict[str, Any]]:
        entities: List[Dict[str, Any]] = []
        skip = 0
        while True:
            data = await self._post_query(query, {"first": self.page_size, "skip": skip})
            page = data.get(key) or []
            entities.extend(page)
            if len(page) < self.page_size:
                break
            skip += self.page_size
        return entities

    async def list_beneficiaries(self) -> List[LedgerRecord]:
        """All enrollment records known to the indexer."""
        entities = await self._fetch_all(BENEFICIARIES_QUERY, "beneficiaries")
        records = [parse_ledger_record(e) for e in entities]
        self.logger.debug("Fetched ledger records", count=len(records))
        return records

    async def get_beneficiary(self, address: str) -> Optional[LedgerRecord]:
        """Ledger record for a canonical address, or None if never enrolled."""
        require_canonical_address(address)
        data = await self._post_query(BENEFICIARY_QUERY, {"id": address})
        entity = data.get("beneficiary")
        return parse_ledger_record(entity) if entity else None

    async def list_daily_claims(self) -> List[DailyClaim]:
        """All daily claim batches, oldest first."""
        entities = await self._fetch_all(DAILY_CLAIMS_QUERY, "dailyClaims")
        return [parse_daily_claim(e) for e in entities]


# Global client instance
_ledger_client: Optional[LedgerQueryClient] = None


def get_ledger_client() -> LedgerQueryClient:
    """Get or create the global ledger query client."""
    global _ledger_client
    if _ledger_client is None:
        _ledger_client = LedgerQueryClient()
    return _ledger_client
