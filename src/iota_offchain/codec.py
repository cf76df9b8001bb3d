"""
Canonical Unit Encoding

Deterministic CBOR encoding of units and of the signable transaction data.
Identical contents always serialize to identical bytes, which is what makes
signing reproducible; decoding and re-encoding is byte-identical.
"""

import hashlib
from dataclasses import dataclass
from typing import Any, List

import cbor2

from .builder import (
    Argument,
    MakeMoveVec,
    MergeCoins,
    MoveCall,
    Operation,
    SplitCoins,
    TransferObjects,
    Unit,
)
from .enums import ArgumentKind
from .exceptions import ResolutionError
from .types import (
    Immutable,
    Input,
    MoveTarget,
    ObjectInput,
    ObjectRef,
    Owned,
    Ownership,
    PureInput,
    Shared,
    normalize_hex_id,
)


ENCODING_VERSION = 1

# Intent scope TransactionData, version V0, app id IOTA
TRANSACTION_INTENT = bytes([0, 0, 0])
PERSONAL_MESSAGE_INTENT = bytes([3, 0, 0])


class DecodeError(ResolutionError):
    """Bytes are not a valid canonical encoding"""
    pass


@dataclass(frozen=True)
class TransactionData:
    """Signable envelope around one unit"""

    sender: str
    gas_payment: ObjectRef
    gas_budget: int
    gas_price: int
    unit: Unit

    def to_cbor(self) -> bytes:
        return encode_transaction(self)

    def to_cbor_hex(self) -> str:
        return self.to_cbor().hex()

    @classmethod
    def from_cbor(cls, data: bytes) -> "TransactionData":
        return decode_transaction(data)


# ============================================================================
# Primitive conversion
# ============================================================================


def _id_bytes(value: str) -> bytes:
    return bytes.fromhex(normalize_hex_id(value)[2:])


def _id_str(value: bytes) -> str:
    return "0x" + value.hex()


def _ownership(ownership: Ownership) -> List[Any]:
    if isinstance(ownership, Owned):
        return ["Owned", _id_bytes(ownership.address)]
    if isinstance(ownership, Shared):
        return ["Shared", ownership.initial_version, ownership.mutable]
    return ["Immutable"]


def _ref(ref: ObjectRef) -> List[Any]:
    return [_id_bytes(ref.object_id), ref.version, ref.digest, _ownership(ref.ownership)]


def _argument(arg: Argument) -> List[Any]:
    if arg.kind == ArgumentKind.GAS_COIN:
        return ["GasCoin"]
    if arg.kind == ArgumentKind.NESTED_RESULT:
        return ["NestedResult", arg.index, arg.sub_index]
    return [arg.kind.value, arg.index]


def _arguments(args) -> List[Any]:
    return [_argument(a) for a in args]


def _input(value: Input) -> List[Any]:
    if isinstance(value, PureInput):
        return ["Pure", value.value, value.type_name]
    return ["Object", _ref(value.ref)]


def _operation(op: Operation) -> List[Any]:
    if isinstance(op, MoveCall):
        return [
            op.kind.value,
            _id_bytes(op.target.package),
            op.target.module,
            op.target.function,
            list(op.type_arguments),
            _arguments(op.arguments),
        ]
    if isinstance(op, SplitCoins):
        return [op.kind.value, _argument(op.coin), _arguments(op.amounts)]
    if isinstance(op, MergeCoins):
        return [op.kind.value, _argument(op.destination), _arguments(op.sources)]
    if isinstance(op, TransferObjects):
        return [op.kind.value, _arguments(op.objects), _argument(op.address)]
    if isinstance(op, MakeMoveVec):
        return [op.kind.value, op.type_tag, _arguments(op.elements)]
    raise TypeError(f"Cannot encode operation {op!r}")


def _unit(unit: Unit) -> List[Any]:
    return [[_input(i) for i in unit.inputs], [_operation(op) for op in unit.operations]]


# ============================================================================
# Primitive parsing
# ============================================================================


def _parse_ownership(raw: List[Any]) -> Ownership:
    tag = raw[0]
    if tag == "Owned":
        return Owned(_id_str(raw[1]))
    if tag == "Shared":
        return Shared(raw[1], raw[2])
    if tag == "Immutable":
        return Immutable()
    raise DecodeError(f"Unknown ownership tag {tag!r}")


def _parse_ref(raw: List[Any]) -> ObjectRef:
    return ObjectRef(_id_str(raw[0]), raw[1], raw[2], _parse_ownership(raw[3]))


def _parse_argument(raw: List[Any]) -> Argument:
    kind = ArgumentKind(raw[0])
    if kind == ArgumentKind.GAS_COIN:
        return Argument(kind)
    if kind == ArgumentKind.NESTED_RESULT:
        return Argument(kind, raw[1], raw[2])
    return Argument(kind, raw[1])


def _parse_arguments(raw: List[Any]):
    return tuple(_parse_argument(a) for a in raw)


def _parse_input(raw: List[Any]) -> Input:
    if raw[0] == "Pure":
        return PureInput(raw[1], raw[2])
    if raw[0] == "Object":
        return ObjectInput(_parse_ref(raw[1]))
    raise DecodeError(f"Unknown input tag {raw[0]!r}")


def _parse_operation(raw: List[Any]) -> Operation:
    tag = raw[0]
    if tag == MoveCall.kind.value:
        target = MoveTarget(_id_str(raw[1]), raw[2], raw[3])
        return MoveCall(target, tuple(raw[4]), _parse_arguments(raw[5]))
    if tag == SplitCoins.kind.value:
        return SplitCoins(_parse_argument(raw[1]), _parse_arguments(raw[2]))
    if tag == MergeCoins.kind.value:
        return MergeCoins(_parse_argument(raw[1]), _parse_arguments(raw[2]))
    if tag == TransferObjects.kind.value:
        return TransferObjects(_parse_arguments(raw[1]), _parse_argument(raw[2]))
    if tag == MakeMoveVec.kind.value:
        return MakeMoveVec(raw[1], _parse_arguments(raw[2]))
    raise DecodeError(f"Unknown operation tag {tag!r}")


def _parse_unit(raw: List[Any]) -> Unit:
    inputs, operations = raw
    return Unit(
        inputs=tuple(_parse_input(i) for i in inputs),
        operations=tuple(_parse_operation(op) for op in operations),
    )


def _loads(data: bytes, tag: str) -> List[Any]:
    try:
        raw = cbor2.loads(data)
    except cbor2.CBORDecodeError as e:
        raise DecodeError(f"Invalid CBOR: {e}")
    if not isinstance(raw, list) or len(raw) < 2 or raw[0] != tag or raw[1] != ENCODING_VERSION:
        raise DecodeError(f"Not a version {ENCODING_VERSION} {tag} encoding")
    return raw


# ============================================================================
# Public API
# ============================================================================


def encode_unit(unit: Unit) -> bytes:
    """Canonical bytes of a frozen unit"""
    return cbor2.dumps(["Unit", ENCODING_VERSION, _unit(unit)], canonical=True)


def decode_unit(data: bytes) -> Unit:
    try:
        return _parse_unit(_loads(data, "Unit")[2])
    except (IndexError, TypeError, ValueError) as e:
        raise DecodeError(f"Malformed unit encoding: {e}")


def encode_transaction(tx: TransactionData) -> bytes:
    """Canonical bytes of (sender, gas payment, budget, price, unit)"""
    return cbor2.dumps(
        [
            "TransactionData",
            ENCODING_VERSION,
            _id_bytes(tx.sender),
            _ref(tx.gas_payment),
            tx.gas_budget,
            tx.gas_price,
            _unit(tx.unit),
        ],
        canonical=True,
    )


def decode_transaction(data: bytes) -> TransactionData:
    try:
        raw = _loads(data, "TransactionData")
        return TransactionData(
            sender=_id_str(raw[2]),
            gas_payment=_parse_ref(raw[3]),
            gas_budget=raw[4],
            gas_price=raw[5],
            unit=_parse_unit(raw[6]),
        )
    except (IndexError, TypeError, ValueError) as e:
        raise DecodeError(f"Malformed transaction encoding: {e}")


def intent_message(data: bytes, domain_tag: bytes = TRANSACTION_INTENT) -> bytes:
    """Prefix canonical bytes with the signing domain"""
    return domain_tag + data


def transaction_digest(data: bytes, domain_tag: bytes = TRANSACTION_INTENT) -> str:
    """Blake2b-256 digest of the intent message, hex encoded"""
    return "0x" + hashlib.blake2b(intent_message(data, domain_tag), digest_size=32).hexdigest()


@dataclass(frozen=True)
class SignedTransaction:
    """Canonical transaction bytes together with the sender's signatures"""

    tx_bytes: bytes
    signatures: tuple
    digest: str

    @classmethod
    def create(cls, tx_bytes: bytes, signatures) -> "SignedTransaction":
        return cls(tx_bytes, tuple(signatures), transaction_digest(tx_bytes))
