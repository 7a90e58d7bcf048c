"""
Referral usage reporter.

Reports confirmed transaction hashes to the referral tracking API. This is
auxiliary telemetry: every failure is logged and swallowed, and nothing here
can change the outcome of the operation that produced the hash.
"""

import asyncio
from typing import Optional

import aiohttp
import structlog

from subsidy_admin.core.config import settings


logger = structlog.get_logger(__name__)


class ReferralReporter:
    """Best-effort reporter for confirmed transactions."""

    def __init__(
        self,
        api_url: Optional[str] = None,
        chain_id: Optional[int] = None,
        enabled: Optional[bool] = None,
        timeout: Optional[int] = None,
    ):
        self.api_url = api_url or settings.referral_api_url
        self.chain_id = chain_id or settings.chain_id
        self.enabled = settings.referral_enabled if enabled is None else enabled
        self.timeout = aiohttp.ClientTimeout(total=timeout or settings.referral_timeout)

    async def report(self, tx_hash: str) -> bool:
        """Submit one transaction hash; returns False instead of raising."""
        if not self.enabled:
            return False

        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.post(
                    self.api_url,
                    json={"txHash": tx_hash, "chainId": self.chain_id},
                ) as response:
                    if response.status >= 400:
                        logger.warning(
                            "Referral report rejected",
                            tx_hash=tx_hash,
                            status=response.status,
                        )
                        return False
            logger.debug("Referral reported", tx_hash=tx_hash)
            return True
        except asyncio.TimeoutError:
            logger.warning("Referral report timed out", tx_hash=tx_hash)
        except aiohttp.ClientError as e:
            logger.warning("Referral report failed", tx_hash=tx_hash, error=str(e))
        return False


# Global reporter instance
_referral_reporter: Optional[ReferralReporter] = None


def get_referral_reporter() -> ReferralReporter:
    """Get or create the global referral reporter."""
    global _referral_reporter
    if _referral_reporter is None:
        _referral_reporter = ReferralReporter()
    return _referral_reporter
