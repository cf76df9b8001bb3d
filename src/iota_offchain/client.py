"""
Ledger Client

Narrow interface the intent builder uses to talk to the ledger, and a JSON-RPC
implementation for IOTA full nodes. Timeout policy lives here: every request
is bounded by the client's request timeout and transport failures surface as
SubmissionError, never masked.
"""

import base64
import itertools
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .codec import SignedTransaction
from .enums import ExecuteRequestType
from .exceptions import ResolutionError, SubmissionError
from .types import (
    Immutable,
    ObjectInfo,
    ObjectRef,
    Owned,
    Ownership,
    Shared,
    SubmissionResult,
    normalize_hex_id,
    normalize_type_tag,
)


logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 50
# JSON-RPC "invalid params", used by the node for unknown digests
TRANSACTION_NOT_FOUND_CODE = -32602


class LedgerClient(ABC):
    """Operations the core needs from the ledger"""

    @abstractmethod
    def get_owned_objects(self, address: str, type_filter: Optional[str] = None) -> List[ObjectInfo]:
        """Objects owned by address, optionally filtered by struct type"""
        pass

    @abstractmethod
    def get_reference_price(self) -> int:
        """Current reference gas price"""
        pass

    @abstractmethod
    def submit(self, signed: SignedTransaction, wait_for_finality: bool = True) -> SubmissionResult:
        """Submit a signed unit and return its result"""
        pass

    @abstractmethod
    def get_transaction(self, digest: str) -> Optional[SubmissionResult]:
        """Finality query: the result of a transaction, or None if unknown"""
        pass

    @abstractmethod
    def get_object(self, object_id: str) -> Optional[ObjectInfo]:
        """Current reference and type of an object, or None if it does not exist"""
        pass


# ============================================================================
# JSON-RPC response schemas
# ============================================================================


def parse_owner(raw: Any) -> Ownership:
    """Convert a JSON-RPC owner field into an Ownership value"""
    if raw == "Immutable" or raw is None:
        return Immutable()
    if isinstance(raw, dict):
        if "AddressOwner" in raw:
            return Owned(normalize_hex_id(raw["AddressOwner"]))
        if "ObjectOwner" in raw:
            return Owned(normalize_hex_id(raw["ObjectOwner"]))
        if "Shared" in raw:
            return Shared(int(raw["Shared"]["initial_shared_version"]))
    raise ResolutionError(f"Unrecognized owner: {raw!r}")


class RpcObjectData(BaseModel):
    """Object data as returned by iota_getObject / iotax_getOwnedObjects"""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    object_id: str = Field(alias="objectId")
    version: int
    digest: Optional[str] = None
    type: Optional[str] = None
    owner: Any = None

    def to_info(self) -> ObjectInfo:
        ref = ObjectRef(normalize_hex_id(self.object_id), self.version, self.digest, parse_owner(self.owner))
        return ObjectInfo(ref, normalize_type_tag(self.type or ""))


class RpcObjectResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    data: Optional[RpcObjectData] = None
    error: Optional[Dict[str, Any]] = None


class RpcObjectPage(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    data: List[RpcObjectResponse] = Field(default_factory=list)
    next_cursor: Optional[str] = Field(default=None, alias="nextCursor")
    has_next_page: bool = Field(default=False, alias="hasNextPage")


class RpcObjectChange(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type: str
    object_id: Optional[str] = Field(default=None, alias="objectId")
    object_type: Optional[str] = Field(default=None, alias="objectType")
    version: Optional[int] = None
    digest: Optional[str] = None
    owner: Any = None

    def to_info(self) -> ObjectInfo:
        ref = ObjectRef(normalize_hex_id(self.object_id), self.version or 0, self.digest, parse_owner(self.owner))
        return ObjectInfo(ref, normalize_type_tag(self.object_type or ""))


class RpcTransactionResponse(BaseModel):
    """Transaction block response (execute / getTransactionBlock)"""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    digest: str
    effects: Optional[Dict[str, Any]] = None
    object_changes: List[RpcObjectChange] = Field(default_factory=list, alias="objectChanges")
    confirmed_local_execution: Optional[bool] = Field(default=None, alias="confirmedLocalExecution")

    def to_result(self) -> SubmissionResult:
        status = (self.effects or {}).get("status", {})
        changes = [c for c in self.object_changes if c.object_id]
        return SubmissionResult(
            digest=self.digest,
            finalized=self.effects is not None,
            success=status.get("status") == "success",
            error=status.get("error"),
            created=tuple(c.to_info() for c in changes if c.type == "created"),
            mutated=tuple(c.to_info() for c in changes if c.type == "mutated"),
            effects=self.model_dump(by_alias=True),
        )


class RpcError(SubmissionError):
    """JSON-RPC error object returned by the node"""

    def __init__(self, code: int, message: str, digest: Optional[str] = None):
        super().__init__(f"RPC error {code}: {message}", digest=digest)
        self.code = code


# ============================================================================
# JSON-RPC client
# ============================================================================


class JsonRpcLedgerClient(LedgerClient):
    """
    LedgerClient over the IOTA JSON-RPC API

    Queries use the node's JSON encoding. Submission sends whatever bytes the
    driver signed: the default CBOR encoding is not the node's BCS wire
    format, so a real node refuses it unless the driver is given a
    ledger-specific encoder through ``ExecutionDriver(encode=...)``.
    """

    RESPONSE_OPTIONS = {"showEffects": True, "showObjectChanges": True, "showInput": False}
    OBJECT_OPTIONS = {"showType": True, "showOwner": True}

    def __init__(self, rpc_url: str, timeout: float = 30.0, transport: Optional[httpx.BaseTransport] = None):
        """
        Initialize client

        Args:
            rpc_url: Full node JSON-RPC endpoint
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.rpc_url = rpc_url
        self._ids = itertools.count(1)
        self._http = httpx.Client(timeout=timeout, transport=transport)

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "JsonRpcLedgerClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def _call(self, method: str, params: List[Any]) -> Any:
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        try:
            response = self._http.post(self.rpc_url, json=payload)
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"HTTP error calling {method}: {e.response.text}")
            raise SubmissionError(f"{method} failed with HTTP {e.response.status_code}")
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Transport error calling {method}: {str(e)}")
            raise SubmissionError(f"{method} failed: {e}")

        if body.get("error"):
            error = body["error"]
            raise RpcError(error.get("code", 0), error.get("message", "unknown error"))
        return body.get("result")

    def get_owned_objects(self, address: str, type_filter: Optional[str] = None) -> List[ObjectInfo]:
        query: Dict[str, Any] = {"options": self.OBJECT_OPTIONS}
        if type_filter:
            query["filter"] = {"StructType": type_filter}

        objects: List[ObjectInfo] = []
        cursor = None
        while True:
            result = self._call("iotax_getOwnedObjects", [address, query, cursor, DEFAULT_PAGE_SIZE])
            try:
                page = RpcObjectPage.model_validate(result)
            except ValidationError as e:
                raise SubmissionError(f"Unexpected iotax_getOwnedObjects response: {e}")
            objects.extend(entry.data.to_info() for entry in page.data if entry.data is not None)
            if not page.has_next_page or page.next_cursor is None:
                return objects
            cursor = page.next_cursor

    def get_reference_price(self) -> int:
        return int(self._call("iotax_getReferenceGasPrice", []))

    def submit(self, signed: SignedTransaction, wait_for_finality: bool = True) -> SubmissionResult:
        request_type = (
            ExecuteRequestType.WAIT_FOR_LOCAL_EXECUTION
            if wait_for_finality
            else ExecuteRequestType.WAIT_FOR_EFFECTS_CERT
        )
        params = [
            base64.b64encode(signed.tx_bytes).decode("ascii"),
            [base64.b64encode(sig).decode("ascii") for sig in signed.signatures],
            self.RESPONSE_OPTIONS,
            request_type.value,
        ]
        try:
            result = self._call("iota_executeTransactionBlock", params)
        except SubmissionError as e:
            e.digest = signed.digest
            raise
        return self._parse_transaction(result)

    def get_transaction(self, digest: str) -> Optional[SubmissionResult]:
        try:
            result = self._call("iota_getTransactionBlock", [digest, self.RESPONSE_OPTIONS])
        except RpcError as e:
            message = e.message.lower()
            if e.code == TRANSACTION_NOT_FOUND_CODE and ("could not find" in message or "not found" in message):
                return None
            raise
        return self._parse_transaction(result)

    def get_object(self, object_id: str) -> Optional[ObjectInfo]:
        result = self._call("iota_getObject", [normalize_hex_id(object_id), self.OBJECT_OPTIONS])
        response = RpcObjectResponse.model_validate(result or {})
        if response.data is None:
            return None
        return response.data.to_info()

    @staticmethod
    def _parse_transaction(result: Any) -> SubmissionResult:
        try:
            return RpcTransactionResponse.model_validate(result).to_result()
        except ValidationError as e:
            raise SubmissionError(f"Unexpected transaction response: {e}")
