"""
Shared Enums

Single source of truth for enums used across the resolver, builder,
planner and execution driver.
"""

from enum import Enum


# ============================================================================
# Network Enums
# ============================================================================


class NetworkType(str, Enum):
    """IOTA network types"""

    MAINNET = "mainnet"
    TESTNET = "testnet"
    DEVNET = "devnet"
    LOCALNET = "localnet"


class ExecuteRequestType(str, Enum):
    """Finality mode requested when executing a transaction"""

    WAIT_FOR_EFFECTS_CERT = "WaitForEffectsCert"
    WAIT_FOR_LOCAL_EXECUTION = "WaitForLocalExecution"


# ============================================================================
# Object Enums
# ============================================================================


class ObjectKind(str, Enum):
    """How an object is owned on the ledger"""

    OWNED = "owned"
    SHARED = "shared"
    IMMUTABLE = "immutable"


# ============================================================================
# Builder Enums
# ============================================================================


class ArgumentKind(str, Enum):
    """
    Slot an argument handle points at

    - GAS_COIN: the coin paying for the transaction
    - INPUT: an entry of the unit's input table
    - RESULT: the (single) result of a command
    - NESTED_RESULT: one result of a multi-result command
    """

    GAS_COIN = "GasCoin"
    INPUT = "Input"
    RESULT = "Result"
    NESTED_RESULT = "NestedResult"


class Usage(str, Enum):
    """
    How a command parameter uses its argument

    Declared per operation; the builder never infers it.

    - CONSUMES: the value is moved into the call (by value)
    - BORROWS: the value is read or mutated in place (&T / &mut T)
    """

    CONSUMES = "consumes"
    BORROWS = "borrows"


class ReturnKind(str, Enum):
    """
    Nature of a command result

    - OBJECT: a ledger object that must be consumed or transferred
    - VALUE: a droppable value (numbers, vectors of copyable values...)
    """

    OBJECT = "object"
    VALUE = "value"


class CommandKind(str, Enum):
    """Programmable transaction command kinds"""

    MOVE_CALL = "MoveCall"
    TRANSFER_OBJECTS = "TransferObjects"
    SPLIT_COINS = "SplitCoins"
    MERGE_COINS = "MergeCoins"
    MAKE_MOVE_VEC = "MakeMoveVec"


# ============================================================================
# Execution Enums
# ============================================================================


class UnitStatus(str, Enum):
    """
    Unit processing status

    Lifecycle:
    - BUILT: Unit frozen by the builder, not yet priced
    - FEE_SELECTED: Gas coin chosen and reference price fetched
    - SIGNED: Transaction data signed, ready for submission
    - SUBMITTED: Sent to the network, waiting for finality
    - CONFIRMED: Executed successfully and final
    - REJECTED: Final but execution failed (e.g. Move abort)
    """

    BUILT = "BUILT"
    FEE_SELECTED = "FEE_SELECTED"
    SIGNED = "SIGNED"
    SUBMITTED = "SUBMITTED"
    CONFIRMED = "CONFIRMED"
    REJECTED = "REJECTED"
