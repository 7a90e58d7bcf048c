"""
Tests for the subgraph client: entity parsing, pagination and error mapping.
"""

import pytest
from aiohttp import web
from aiohttp import test_utils

from subsidy_admin.core.exceptions import InvalidAddressError, LedgerQueryError
from subsidy_admin.services.ledger_client import (
    LedgerQueryClient,
    parse_daily_claim,
    parse_ledger_record,
)

from tests.conftest import ADDR_A, ADDR_B


def entity(address, total_claimed="0", date_removed=None, is_active=True):
    return {
        "id": address,
        "dateAdded": "1700000000",
        "dateRemoved": date_removed,
        "isActive": is_active,
        "totalClaimed": total_claimed,
    }


class TestParsing:

    def test_record_fields(self):
        record = parse_ledger_record(entity(ADDR_A.upper().replace("0X", "0x"), "123456789012345678901234567890"))

        assert record.address == ADDR_A
        assert record.date_added == 1_700_000_000
        assert record.date_removed is None
        assert record.total_claimed == 123456789012345678901234567890

    @pytest.mark.parametrize("raw", [None, "", "0", 0])
    def test_unset_removal_dates(self, raw):
        assert parse_ledger_record(entity(ADDR_A, date_removed=raw)).date_removed is None

    def test_removal_date(self):
        assert parse_ledger_record(entity(ADDR_A, date_removed="1700086400", is_active=False)).date_removed == 1_700_086_400

    def test_malformed_record(self):
        with pytest.raises(LedgerQueryError):
            parse_ledger_record({"id": ADDR_A})
        with pytest.raises(LedgerQueryError):
            parse_ledger_record(entity(ADDR_A, total_claimed="lots"))

    def test_daily_claim(self):
        claim = parse_daily_claim({"id": "19675", "date": "1700000000", "beneficiaries": [ADDR_A.upper().replace("0X", "0x")]})
        assert claim.date == 1_700_000_000
        assert claim.beneficiaries == (ADDR_A,)

    def test_malformed_daily_claim(self):
        with pytest.raises(LedgerQueryError):
            parse_daily_claim({"beneficiaries": []})


class FakeSubgraph:
    """Minimal GraphQL endpoint serving canned entities."""

    def __init__(self, beneficiaries=None, daily_claims=None, status=200, errors=None):
        self.beneficiaries = beneficiaries or []
        self.daily_claims = daily_claims or []
        self.status = status
        self.errors = errors
        self.requests = []

    async def handle(self, request: web.Request) -> web.Response:
        body = await request.json()
        self.requests.append(body)
        if self.status != 200:
            return web.Response(status=self.status, text="indexer exploded")
        if self.errors:
            return web.json_response({"errors": self.errors})

        variables = body.get("variables") or {}
        query = body["query"]
        if "beneficiary(id" in query:
            match = next((b for b in self.beneficiaries if b["id"] == variables["id"]), None)
            return web.json_response({"data": {"beneficiary": match}})

        key = "dailyClaims" if "dailyClaims" in query else "beneficiaries"
        source = self.daily_claims if key == "dailyClaims" else self.beneficiaries
        skip, first = variables["skip"], variables["first"]
        return web.json_response({"data": {key: source[skip:skip + first]}})


@pytest.fixture
async def subgraph():
    fake = FakeSubgraph()
    app = web.Application()
    app.router.add_post("/graphql", fake.handle)
    server = test_utils.TestServer(app)
    await server.start_server()
    fake.url = str(server.make_url("/graphql"))
    yield fake
    await server.close()


async def test_list_beneficiaries_pages_through_results(subgraph):
    subgraph.beneficiaries = [entity("0x" + f"{i:040x}") for i in range(5)]
    client = LedgerQueryClient(endpoint=subgraph.url, page_size=2)

    records = await client.list_beneficiaries()

    assert len(records) == 5
    assert [r["variables"]["skip"] for r in subgraph.requests] == [0, 2, 4]


async def test_get_beneficiary_hit_and_miss(subgraph):
    subgraph.beneficiaries = [entity(ADDR_A, "42")]
    client = LedgerQueryClient(endpoint=subgraph.url)

    assert (await client.get_beneficiary(ADDR_A)).total_claimed == 42
    assert await client.get_beneficiary(ADDR_B) is None


async def test_get_beneficiary_requires_canonical_address(subgraph):
    client = LedgerQueryClient(endpoint=subgraph.url)
    with pytest.raises(InvalidAddressError):
        await client.get_beneficiary(ADDR_A.upper())
    assert subgraph.requests == []


async def test_list_daily_claims(subgraph):
    subgraph.daily_claims = [{"id": "1", "date": "86400", "beneficiaries": [ADDR_A]}]
    client = LedgerQueryClient(endpoint=subgraph.url)

    assert [c.date for c in await client.list_daily_claims()] == [86400]


async def test_error_status_is_a_query_error_not_a_miss(subgraph):
    subgraph.status = 503
    client = LedgerQueryClient(endpoint=subgraph.url)

    with pytest.raises(LedgerQueryError) as exc_info:
        await client.get_beneficiary(ADDR_A)
    assert exc_info.value.details["status"] == 503


async def test_graphql_errors_raise(subgraph):
    subgraph.errors = [{"message": "indexing_error"}]
    client = LedgerQueryClient(endpoint=subgraph.url)

    with pytest.raises(LedgerQueryError):
        await client.list_beneficiaries()


async def test_unreachable_indexer_raises():
    client = LedgerQueryClient(endpoint="http://127.0.0.1:9/graphql", timeout=2)
    with pytest.raises(LedgerQueryError):
        await client.list_beneficiaries()
