"""
Reference Resolver

Turns external identifiers (hex object ids, numeric amounts, addresses) into
typed references usable as unit inputs, and resolves bridge rules (the queries
that discover objects created by an earlier, confirmed unit).
"""

import logging
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Tuple, Union

from .enums import ObjectKind
from .exceptions import AmbiguousVersionError, NotFoundError, ResolutionError
from .types import (
    Immutable,
    ObjectInfo,
    ObjectRef,
    Owned,
    PureInput,
    Shared,
    SubmissionResult,
    normalize_hex_id,
    normalize_type_tag,
)


logger = logging.getLogger(__name__)

_UINT_BITS = {"u8": 8, "u16": 16, "u32": 32, "u64": 64, "u128": 128, "u256": 256}


# ============================================================================
# Pure values
# ============================================================================


def _uleb128(length: int) -> bytes:
    out = bytearray()
    while True:
        byte = length & 0x7F
        length >>= 7
        if length:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def encode_pure(value: Any, type_name: str = "u64") -> PureInput:
    """
    Serialize a literal to its canonical bytes

    Args:
        value: Python value (int, bool, str, bytes)
        type_name: Move type: u8..u256, bool, address, string, vector<u8>

    Returns:
        PureInput holding the serialized value

    Raises:
        ResolutionError: If the value does not fit the type
    """
    if isinstance(value, PureInput):
        return value

    if type_name in _UINT_BITS:
        if isinstance(value, bool) or not isinstance(value, int):
            raise ResolutionError(f"{type_name} literal must be an int, got {value!r}")
        bits = _UINT_BITS[type_name]
        if not 0 <= value < (1 << bits):
            raise ResolutionError(f"{value} does not fit in {type_name}")
        return PureInput(value.to_bytes(bits // 8, "little"), type_name)

    if type_name == "bool":
        if not isinstance(value, bool):
            raise ResolutionError(f"bool literal expected, got {value!r}")
        return PureInput(b"\x01" if value else b"\x00", type_name)

    if type_name == "address":
        return PureInput(bytes.fromhex(normalize_hex_id(value)[2:]), type_name)

    if type_name == "string":
        if not isinstance(value, str):
            raise ResolutionError(f"string literal expected, got {value!r}")
        raw = value.encode("utf-8")
        return PureInput(_uleb128(len(raw)) + raw, type_name)

    if type_name == "vector<u8>":
        if not isinstance(value, (bytes, bytearray)):
            raise ResolutionError(f"bytes expected for vector<u8>, got {value!r}")
        return PureInput(_uleb128(len(value)) + bytes(value), type_name)

    raise ResolutionError(f"Unsupported pure type: {type_name}")


# ============================================================================
# Bridge rules
# ============================================================================


@dataclass(frozen=True)
class ObserveCreated:
    """
    First ``count`` objects of ``type_tag`` owned by ``owner`` that were
    created by unit ``source_unit``
    """

    owner: str
    type_tag: str
    count: int
    source_unit: int


@dataclass(frozen=True)
class Refresh:
    """Latest version of an owned object that unit ``source_unit`` touched"""

    object_id: str
    owner: str
    source_unit: int


BridgeRule = Union[ObserveCreated, Refresh]


# ============================================================================
# Resolver
# ============================================================================


class ReferenceResolver:
    """Resolves identifiers against a ledger client"""

    def __init__(self, client=None):
        """
        Initialize resolver

        Args:
            client: LedgerClient used for owned-object and object queries.
                May be omitted when only literals and caller-supplied shared
                references are resolved.
        """
        self.client = client

    def pure(self, value: Any, type_name: str = "u64") -> PureInput:
        return encode_pure(value, type_name)

    def resolve(
        self,
        identifier: str,
        kind: ObjectKind,
        owner: Optional[str] = None,
        type_tag: Optional[str] = None,
        initial_shared_version: Optional[int] = None,
        mutable: bool = True,
    ) -> ObjectRef:
        """
        Resolve an object id to a reference usable as a unit input

        Args:
            identifier: Hex object id
            kind: OWNED, SHARED or IMMUTABLE
            owner: Owner address (owned objects)
            type_tag: Optional type filter for the owned-object query
            initial_shared_version: Version the object was shared at; queried
                when omitted
            mutable: Whether a shared object is taken by mutable reference

        Raises:
            NotFoundError: The object does not exist or is not owned by owner
            AmbiguousVersionError: The ledger reports several versions
            ResolutionError: The identifier is malformed or of another kind
        """
        object_id = normalize_hex_id(identifier)
        try:
            kind = ObjectKind(kind)
        except ValueError:
            raise ResolutionError(f"Unknown object kind: {kind!r}")

        if kind == ObjectKind.SHARED:
            if initial_shared_version is not None:
                return ObjectRef(
                    object_id, initial_shared_version, None, Shared(initial_shared_version, mutable)
                )
            info = self._get_object(object_id)
            if not isinstance(info.ref.ownership, Shared):
                raise ResolutionError(f"Object {object_id} is not shared")
            initial = info.ref.ownership.initial_version
            return ObjectRef(object_id, initial, None, Shared(initial, mutable))

        if kind == ObjectKind.IMMUTABLE:
            info = self._get_object(object_id)
            if not isinstance(info.ref.ownership, Immutable):
                raise ResolutionError(f"Object {object_id} is not immutable")
            return info.ref

        if owner is None:
            info = self._get_object(object_id)
            if not isinstance(info.ref.ownership, Owned):
                raise ResolutionError(f"Object {object_id} is not address-owned")
            return info.ref

        matches = [
            info for info in self._owned(owner, type_tag) if info.object_id == object_id
        ]
        return self._single(object_id, matches).ref

    def resolve_owned(
        self,
        owner: str,
        type_tag: Optional[str],
        count: int,
        created_ids: Optional[Iterable[str]] = None,
    ) -> Tuple[ObjectRef, ...]:
        """
        First ``count`` owned objects of a type, in query order

        Query order is not stable across calls; only "first K of the filtered
        list" is meaningful.

        Args:
            owner: Owner address
            type_tag: Struct type filter
            count: Number of references required
            created_ids: Restrict candidates to these object ids

        Raises:
            NotFoundError: Fewer than ``count`` objects match
        """
        candidates = self._owned(owner, type_tag)
        if created_ids is not None:
            wanted = {normalize_hex_id(i) for i in created_ids}
            candidates = [info for info in candidates if info.object_id in wanted]
        if len(candidates) < count:
            raise NotFoundError(
                f"Expected {count} objects of type {type_tag} owned by {owner}, found {len(candidates)}"
            )
        return tuple(info.ref for info in candidates[:count])

    def resolve_bridge(self, rule: BridgeRule, result: SubmissionResult) -> Tuple[ObjectRef, ...]:
        """
        Resolve a bridge rule against the confirmed result of its source unit

        Raises:
            NotFoundError: The confirmed effects do not provide what the rule needs
        """
        if isinstance(rule, ObserveCreated):
            refs = self.resolve_owned(rule.owner, rule.type_tag, rule.count, result.created_ids)
            logger.debug(f"Bridge from unit {rule.source_unit} resolved {len(refs)} objects of {rule.type_tag}")
            return refs
        if isinstance(rule, Refresh):
            matches = [info for info in self._owned(rule.owner, None) if info.object_id == rule.object_id]
            return (self._single(rule.object_id, matches).ref,)
        raise ResolutionError(f"Unknown bridge rule {rule!r}")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _require_client(self):
        if self.client is None:
            raise ResolutionError("Resolver has no ledger client to query")
        return self.client

    def _owned(self, owner: str, type_tag: Optional[str]) -> List[ObjectInfo]:
        client = self._require_client()
        type_filter = normalize_type_tag(type_tag) if type_tag else None
        return list(client.get_owned_objects(normalize_hex_id(owner), type_filter))

    def _get_object(self, object_id: str) -> ObjectInfo:
        info = self._require_client().get_object(object_id)
        if info is None:
            raise NotFoundError(f"Object {object_id} not found")
        return info

    @staticmethod
    def _single(object_id: str, matches: List[ObjectInfo]) -> ObjectInfo:
        if not matches:
            raise NotFoundError(f"Object {object_id} not found among owned objects")
        versions = {info.ref.version for info in matches}
        if len(versions) > 1:
            raise AmbiguousVersionError(
                f"Object {object_id} reported at versions {sorted(versions)}"
            )
        return matches[0]
