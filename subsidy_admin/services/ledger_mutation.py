"""
Ledger mutation service for sending subsidy contract transactions.
Handles the admin-only enroll / remove beneficiary calls.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

import aiohttp
import structlog
from web3 import AsyncWeb3, AsyncHTTPProvider
from web3.exceptions import ContractLogicError, TransactionNotFound, Web3Exception

from subsidy_admin.core.config import settings, LedgerConfig
from subsidy_admin.core.exceptions import ConfigurationError, MutationRejectedError


logger = structlog.get_logger(__name__)

# Errors that leave a broadcast transaction in an unknown state
TRANSIENT_RPC_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError, OSError, Web3Exception)


class LedgerAction(str, Enum):
    """Mutating contract calls available to operators."""
    ADD = "add"
    REMOVE = "remove"

    @property
    def function_name(self) -> str:
        return LedgerConfig.CONTRACT_FUNCTIONS[self.value]


@dataclass(frozen=True)
class MutationHandle:
    """A submitted, not yet confirmed, transaction."""
    action: LedgerAction
    address: str
    tx_hash: str
    submitted_at: datetime


@dataclass(frozen=True)
class MutationReceipt:
    """Receipt of a mined transaction."""
    tx_hash: str
    block_number: int
    success: bool
    gas_used: Optional[int] = None


class LedgerMutationClient:
    """
    Sends addBeneficiary / removeBeneficiary from the admin account.

    ``submit`` returns as soon as the node accepts the transaction;
    ``wait_for_confirmation`` polls for the receipt with no deadline and
    stays cancellable at every poll.
    """

    def __init__(
        self,
        web3: Optional[AsyncWeb3] = None,
        contract_address: Optional[str] = None,
        private_key: Optional[str] = None,
        poll_interval: float = 2.0,
    ):
        rpc = LedgerConfig.get_rpc_config()
        self.web3 = web3 or AsyncWeb3(
            AsyncHTTPProvider(rpc["endpoint"], request_kwargs={"timeout": rpc["timeout"]})
        )
        self.chain_id = rpc["chain_id"]
        self.contract_address = contract_address or settings.subsidy_contract_address
        self.private_key = private_key or settings.admin_private_key
        self.poll_interval = poll_interval
        self.logger = logger.bind(service="ledger_mutation")
        self._account = None
        self._contract = None

    def _ensure_ready(self) -> None:
        if self._contract is not None:
            return
        if not self.private_key:
            raise ConfigurationError("Admin private key not configured")
        self._account = self.web3.eth.account.from_key(self.private_key)
        self._contract = self.web3.eth.contract(
            address=AsyncWeb3.to_checksum_address(self.contract_address),
            abi=LedgerConfig.SUBSIDY_CONTRACT_ABI,
        )
        self.logger.info(
            "Ledger mutation client initialized",
            admin=self._account.address,
            contract=self.contract_address,
        )

    async def _build_transaction(self, action: LedgerAction, address: str) -> Dict[str, Any]:
        function = getattr(self._contract.functions, action.function_name)
        nonce = await self.web3.eth.get_transaction_count(self._account.address, "pending")
        return await function(AsyncWeb3.to_checksum_address(address)).build_transaction({
            "from": self._account.address,
            "nonce": nonce,
            "chainId": self.chain_id,
        })

    async def submit(self, action: LedgerAction, address: str) -> MutationHandle:
        """
        Sign and broadcast a contract call.

        Args:
            action: add or remove
            address: canonical beneficiary address

        Returns:
            Handle carrying the transaction hash

        Raises:
            MutationRejectedError: the call reverted in simulation or the node refused it
        """
        self._ensure_ready()
        try:
            tx = await self._build_transaction(action, address)
            signed = self._account.sign_transaction(tx)
            tx_hash = await self.web3.eth.send_raw_transaction(signed.raw_transaction)
        except ContractLogicError as e:
            self.logger.warning("Contract call reverted", action=action.value, address=address, error=str(e))
            raise MutationRejectedError(
                f"Transaction reverted: {e}", {"action": action.value, "address": address}
            ) from e
        except (Web3Exception, ValueError, OSError) as e:
            self.logger.error("Failed to submit transaction", action=action.value, address=address, error=str(e))
            raise MutationRejectedError(
                f"Transaction not submitted: {e}", {"action": action.value, "address": address}
            ) from e

        handle = MutationHandle(
            action=action,
            address=address,
            tx_hash=AsyncWeb3.to_hex(tx_hash),
            submitted_at=datetime.now(timezone.utc),
        )
        self.logger.info("Transaction submitted", action=action.value, address=address, tx_hash=handle.tx_hash)
        return handle

    async def wait_for_confirmation(self, handle: MutationHandle) -> MutationReceipt:
        """
        Wait until the transaction is mined.

        RPC failures while polling are logged and the poll continues.

        Raises:
            MutationRejectedError: the transaction was mined but reverted
        """
        while True:
            try:
                receipt = await self.web3.eth.get_transaction_receipt(handle.tx_hash)
                break
            except TransactionNotFound:
                pass
            except TRANSIENT_RPC_ERRORS as e:
                self.logger.warning(
                    "Receipt poll failed, retrying",
                    tx_hash=handle.tx_hash,
                    error_type=type(e).__name__,
                    error=str(e),
                )
            await asyncio.sleep(self.poll_interval)

        result = MutationReceipt(
            tx_hash=handle.tx_hash,
            block_number=int(receipt["blockNumber"]),
            success=receipt["status"] == 1,
            gas_used=receipt.get("gasUsed"),
        )
        if not result.success:
            self.logger.warning("Transaction reverted on-chain", tx_hash=handle.tx_hash, block=result.block_number)
            raise MutationRejectedError(
                "Transaction reverted on-chain",
                {"tx_hash": handle.tx_hash, "block_number": result.block_number}
            )

        self.logger.info("Transaction confirmed", tx_hash=handle.tx_hash, block=result.block_number)
        return result


# Global client instance
_mutation_client: Optional[LedgerMutationClient] = None


def get_ledger_mutation_client() -> LedgerMutationClient:
    """Get or create the global ledger mutation client."""
    global _mutation_client
    if _mutation_client is None:
        _mutation_client = LedgerMutationClient()
    return _mutation_client
