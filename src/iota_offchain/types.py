"""
Ledger Data Model

Typed, versioned references to ledger objects plus the small value types the
builder threads through a transaction: Move call targets, pure and object
inputs, and the result of a submission.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple, Union

from .exceptions import ResolutionError


OBJECT_ID_LENGTH = 32

_HEX_ID = re.compile(r"^0x[0-9a-fA-F]{1,64}$")
_HEX_IN_TAG = re.compile(r"0x[0-9a-fA-F]+")
_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_STRUCT_TAG = re.compile(r"^0x[0-9a-f]{64}::[A-Za-z_]\w*::[A-Za-z_]\w*(<.+>)?$")


def normalize_hex_id(value: str) -> str:
    """
    Normalize an object id or address to 0x + 64 lowercase hex digits

    Args:
        value: Hex string, with or without 0x prefix, possibly short (``0x2``)

    Returns:
        Canonical 32-byte hex identifier

    Raises:
        ResolutionError: If the value is not a hex identifier of at most 32 bytes
    """
    if not isinstance(value, str):
        raise ResolutionError(f"Identifier must be a hex string, got {type(value).__name__}")
    candidate = value.strip()
    if not candidate.startswith("0x"):
        candidate = "0x" + candidate
    if not _HEX_ID.match(candidate):
        raise ResolutionError(f"Malformed identifier: {value!r}")
    return "0x" + candidate[2:].lower().rjust(OBJECT_ID_LENGTH * 2, "0")


def normalize_type_tag(type_tag: str) -> str:
    """Rewrite every address inside a type tag to its canonical long form"""
    return _HEX_IN_TAG.sub(lambda m: normalize_hex_id(m.group(0)), type_tag.replace(" ", ""))


def is_struct_tag(type_tag: str) -> bool:
    """True if the tag names a concrete struct type (the ledger can index it)"""
    try:
        return bool(_STRUCT_TAG.match(normalize_type_tag(type_tag)))
    except ResolutionError:
        return False


def coin_type(inner: str) -> str:
    """Type tag of a ``0x2::coin::Coin<T>`` for the given coin type T"""
    return normalize_type_tag(f"0x2::coin::Coin<{inner}>")


# ============================================================================
# Ownership
# ============================================================================


@dataclass(frozen=True)
class Owned:
    """Object owned by a single address"""

    address: str


@dataclass(frozen=True)
class Shared:
    """Shared object, addressed by the version it was first shared at"""

    initial_version: int
    mutable: bool = True


@dataclass(frozen=True)
class Immutable:
    """Frozen object, readable by anyone"""
    pass


Ownership = Union[Owned, Shared, Immutable]


@dataclass(frozen=True)
class ObjectRef:
    """
    Versioned reference to a ledger object

    A reference is valid for exactly one submission. Once that submission is
    final any surviving object has a new version and must be re-resolved.
    """

    object_id: str
    version: int
    digest: Optional[str] = None
    ownership: Ownership = field(default_factory=Immutable)

    @property
    def is_owned(self) -> bool:
        return isinstance(self.ownership, Owned)

    @property
    def is_shared(self) -> bool:
        return isinstance(self.ownership, Shared)

    @property
    def owner(self) -> Optional[str]:
        if isinstance(self.ownership, Owned):
            return self.ownership.address
        return None


@dataclass(frozen=True)
class ObjectInfo:
    """An object reference together with its Move type"""

    ref: ObjectRef
    type_tag: str

    @property
    def object_id(self) -> str:
        return self.ref.object_id


# ============================================================================
# Move targets
# ============================================================================


@dataclass(frozen=True)
class MoveTarget:
    """Fully qualified Move function: package::module::function"""

    package: str
    module: str
    function: str

    def __post_init__(self):
        object.__setattr__(self, "package", normalize_hex_id(self.package))
        for part in (self.module, self.function):
            if not _IDENTIFIER.match(part):
                raise ResolutionError(f"Invalid Move identifier: {part!r}")

    @classmethod
    def parse(cls, target: str) -> "MoveTarget":
        """Parse ``0xPACKAGE::module::function``"""
        parts = target.split("::")
        if len(parts) != 3:
            raise ResolutionError(f"Move target must be package::module::function, got {target!r}")
        return cls(*parts)

    def __str__(self) -> str:
        return f"{self.package}::{self.module}::{self.function}"


# ============================================================================
# Inputs
# ============================================================================


@dataclass(frozen=True)
class PureInput:
    """A literal already serialized to its canonical bytes"""

    value: bytes
    type_name: Optional[str] = None


@dataclass(frozen=True)
class ObjectInput:
    """An object passed into a unit"""

    ref: ObjectRef


Input = Union[PureInput, ObjectInput]


# ============================================================================
# Submission results
# ============================================================================


@dataclass(frozen=True)
class SubmissionResult:
    """
    Outcome of one submitted unit

    ``finalized`` is True once the network has executed the transaction;
    ``success`` tells whether that execution succeeded.
    """

    digest: str
    finalized: bool
    success: bool
    error: Optional[str] = None
    created: Tuple[ObjectInfo, ...] = ()
    mutated: Tuple[ObjectInfo, ...] = ()
    effects: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @property
    def created_ids(self) -> frozenset:
        return frozenset(info.object_id for info in self.created)
