"""
JSON-RPC Client Tests

Requests and responses go through httpx.MockTransport; no network access.
"""

import base64
import json

import httpx
import pytest

from iota_offchain.client import JsonRpcLedgerClient, RpcError, parse_owner
from iota_offchain.codec import SignedTransaction
from iota_offchain.exceptions import ResolutionError, SubmissionError
from iota_offchain.types import Immutable, Owned, Shared

from tests.mocks import object_id


OWNER = object_id(0xB0B)
RPC_URL = "https://rpc.test"


def make_client(handler):
    """Client whose requests are answered by handler(method, params)"""
    calls = []

    def respond(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        calls.append((body["method"], body["params"]))
        result = handler(body["method"], body["params"])
        if isinstance(result, httpx.Response):
            return result
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], **result})

    return JsonRpcLedgerClient(RPC_URL, transport=httpx.MockTransport(respond)), calls


def object_data(n, version=1, type_="0x2::coin::Coin<0x2::iota::IOTA>"):
    return {
        "objectId": object_id(n),
        "version": str(version),
        "digest": f"d{n}",
        "type": type_,
        "owner": {"AddressOwner": OWNER},
    }


class TestOwners:
    def test_parse_owner(self):
        assert parse_owner({"AddressOwner": "0x2"}) == Owned(object_id(2))
        assert parse_owner({"Shared": {"initial_shared_version": 6286155}}) == Shared(6286155)
        assert parse_owner("Immutable") == Immutable()
        with pytest.raises(ResolutionError):
            parse_owner({"Unknown": 1})


class TestQueries:
    """Tests for read-only RPC calls"""

    def test_owned_objects_paginated(self):
        pages = {
            None: {"data": [{"data": object_data(1)}], "nextCursor": "c1", "hasNextPage": True},
            "c1": {"data": [{"data": object_data(2, version=7)}], "nextCursor": None, "hasNextPage": False},
        }
        client, calls = make_client(lambda method, params: {"result": pages[params[2]]})

        objects = client.get_owned_objects(OWNER, "0x2::coin::Coin<0x2::iota::IOTA>")
        assert [info.object_id for info in objects] == [object_id(1), object_id(2)]
        assert objects[1].ref.version == 7
        assert objects[0].ref.owner == OWNER
        assert calls[0][0] == "iotax_getOwnedObjects"
        assert calls[0][1][1]["filter"] == {"StructType": "0x2::coin::Coin<0x2::iota::IOTA>"}
        assert len(calls) == 2

    def test_reference_price(self):
        client, _ = make_client(lambda method, params: {"result": "1000"})
        assert client.get_reference_price() == 1000

    def test_get_object(self):
        data = object_data(5)
        data["owner"] = {"Shared": {"initial_shared_version": 42}}
        client, _ = make_client(lambda method, params: {"result": {"data": data}})
        info = client.get_object(object_id(5))
        assert info.ref.ownership == Shared(42)

    def test_get_missing_object(self):
        client, _ = make_client(lambda method, params: {"result": {"error": {"code": "notExists"}}})
        assert client.get_object(object_id(5)) is None

    def test_unknown_transaction(self):
        client, _ = make_client(
            lambda method, params: {"error": {"code": -32602, "message": "Could not find the referenced transaction"}}
        )
        assert client.get_transaction("0xabc") is None

    def test_other_rpc_errors_propagate(self):
        client, _ = make_client(lambda method, params: {"error": {"code": -32000, "message": "overloaded"}})
        with pytest.raises(RpcError) as exc_info:
            client.get_transaction("0xabc")
        assert exc_info.value.code == -32000

    def test_not_found_with_another_code_propagates(self):
        client, _ = make_client(lambda method, params: {"error": {"code": -32000, "message": "object not found"}})
        with pytest.raises(RpcError) as exc_info:
            client.get_transaction("0xabc")
        assert exc_info.value.code == -32000

    def test_http_error(self):
        client, _ = make_client(lambda method, params: httpx.Response(503, text="unavailable"))
        with pytest.raises(SubmissionError):
            client.get_reference_price()


class TestSubmit:
    """Tests for iota_executeTransactionBlock"""

    @pytest.fixture
    def signed(self):
        return SignedTransaction.create(b"tx-bytes", [b"signature"])

    def test_success(self, signed):
        response = {
            "digest": signed.digest,
            "effects": {"status": {"status": "success"}},
            "objectChanges": [
                {"type": "created", "objectId": object_id(3), "objectType": "0x2::x::Y", "version": "2",
                 "digest": "d3", "owner": {"AddressOwner": OWNER}},
                {"type": "mutated", "objectId": object_id(4), "objectType": "0x2::x::Z", "version": "9",
                 "digest": "d4", "owner": {"AddressOwner": OWNER}},
                {"type": "published", "packageId": object_id(5)},
            ],
            "confirmedLocalExecution": True,
        }
        client, calls = make_client(lambda method, params: {"result": response})
        result = client.submit(signed)

        method, params = calls[0]
        assert method == "iota_executeTransactionBlock"
        assert base64.b64decode(params[0]) == b"tx-bytes"
        assert [base64.b64decode(s) for s in params[1]] == [b"signature"]
        assert params[3] == "WaitForLocalExecution"

        assert result.finalized and result.success
        assert result.created_ids == {object_id(3)}
        assert [info.object_id for info in result.mutated] == [object_id(4)]

    def test_failure_status(self, signed):
        response = {"digest": signed.digest, "effects": {"status": {"status": "failure", "error": "in command 1"}}}
        client, _ = make_client(lambda method, params: {"result": response})
        result = client.submit(signed, wait_for_finality=False)
        assert result.finalized
        assert not result.success
        assert result.error == "in command 1"

    def test_transport_error_carries_digest(self, signed):
        def refuse(request):
            raise httpx.ConnectError("refused")

        client = JsonRpcLedgerClient(RPC_URL, transport=httpx.MockTransport(refuse))
        with pytest.raises(SubmissionError) as exc_info:
            client.submit(signed)
        assert exc_info.value.digest == signed.digest
