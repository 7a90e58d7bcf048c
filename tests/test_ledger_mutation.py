"""
Tests for the contract mutation client using a stubbed web3 object.
"""

import asyncio
from types import SimpleNamespace

import aiohttp
import pytest
from web3.exceptions import ContractLogicError, TransactionNotFound

from subsidy_admin.core.exceptions import ConfigurationError, MutationRejectedError
from subsidy_admin.services.ledger_mutation import LedgerAction, LedgerMutationClient

from tests.conftest import ADDR_A


ADMIN = "0x" + "1" * 40
CONTRACT = "0x" + "2" * 40
TX_HASH = b"\x12" * 32


class StubFunction:
    def __init__(self, calls, name, error=None):
        self.calls = calls
        self.name = name
        self.error = error

    def __call__(self, address):
        self.calls.append((self.name, address))
        return self

    async def build_transaction(self, params):
        if self.error:
            raise self.error
        return {"to": CONTRACT, "data": "0x", **params}


class StubEth:

    def __init__(self, receipts=None, revert=None):
        self.calls = []
        self.receipts = list(receipts or [])
        self.revert = revert
        self.sent = []
        self.account = SimpleNamespace(from_key=self._from_key)

    def _from_key(self, key):
        return SimpleNamespace(address=ADMIN, sign_transaction=lambda tx: SimpleNamespace(raw_transaction=b"signed"))

    def contract(self, address, abi):
        functions = SimpleNamespace(
            addBeneficiary=StubFunction(self.calls, "addBeneficiary", self.revert),
            removeBeneficiary=StubFunction(self.calls, "removeBeneficiary", self.revert),
        )
        return SimpleNamespace(address=address, functions=functions)

    async def get_transaction_count(self, address, block):
        return 7

    async def send_raw_transaction(self, raw):
        self.sent.append(raw)
        return TX_HASH

    async def get_transaction_receipt(self, tx_hash):
        receipt = self.receipts.pop(0)
        if receipt is None:
            raise TransactionNotFound("not yet")
        if isinstance(receipt, Exception):
            raise receipt
        return receipt


def make_client(eth, private_key="0x" + "3" * 64):
    return LedgerMutationClient(
        web3=SimpleNamespace(eth=eth),
        contract_address=CONTRACT,
        private_key=private_key,
        poll_interval=0,
    )


async def test_submit_calls_the_contract_function():
    eth = StubEth()
    client = make_client(eth)

    handle = await client.submit(LedgerAction.REMOVE, ADDR_A)

    assert handle.tx_hash == "0x" + "12" * 32
    assert handle.action == LedgerAction.REMOVE
    assert eth.calls[0][0] == "removeBeneficiary"
    assert eth.calls[0][1].lower() == ADDR_A
    assert eth.sent == [b"signed"]


async def test_reverted_simulation_is_rejected():
    client = make_client(StubEth(revert=ContractLogicError("execution reverted: not admin")))

    with pytest.raises(MutationRejectedError) as exc_info:
        await client.submit(LedgerAction.ADD, ADDR_A)
    assert "not admin" in exc_info.value.message


async def test_missing_key_is_a_configuration_error():
    client = make_client(StubEth(), private_key="")
    client.private_key = None

    with pytest.raises(ConfigurationError):
        await client.submit(LedgerAction.ADD, ADDR_A)


async def test_wait_polls_until_mined():
    eth = StubEth(receipts=[None, None, {"blockNumber": 12, "status": 1, "gasUsed": 50000}])
    client = make_client(eth)
    handle = await client.submit(LedgerAction.ADD, ADDR_A)

    receipt = await client.wait_for_confirmation(handle)

    assert receipt.success
    assert receipt.block_number == 12
    assert eth.receipts == []


async def test_mined_revert_is_rejected():
    eth = StubEth(receipts=[{"blockNumber": 12, "status": 0}])
    client = make_client(eth)
    handle = await client.submit(LedgerAction.ADD, ADDR_A)

    with pytest.raises(MutationRejectedError):
        await client.wait_for_confirmation(handle)


async def test_rpc_failures_while_polling_keep_waiting():
    eth = StubEth(receipts=[
        aiohttp.ClientConnectionError("connection reset"),
        asyncio.TimeoutError(),
        None,
        {"blockNumber": 13, "status": 1},
    ])
    client = make_client(eth)
    handle = await client.submit(LedgerAction.ADD, ADDR_A)

    receipt = await client.wait_for_confirmation(handle)

    assert receipt.success
    assert receipt.block_number == 13
    assert eth.receipts == []
