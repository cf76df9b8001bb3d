"""
IOTA Offchain Library

Transaction-intent builder for IOTA programmable transactions: resolves object
references, builds units of operations, plans multi-submission flows and
drives them through signing, submission and confirmation.
"""

from .builder import Argument, MoveFunction, OperationGraphBuilder, Unit
from .chain_context import IotaChainContext
from .client import JsonRpcLedgerClient, LedgerClient
from .codec import SignedTransaction, TransactionData, decode_unit, encode_unit
from .driver import ExecutionDriver, PlanOutcome, UnitExecution
from .planner import IntentGraph, Plan, SubmissionPlanner
from .resolver import ReferenceResolver
from .tokens import FlagContract, TokenOperations
from .types import ObjectInfo, ObjectRef, SubmissionResult
from .wallet import KeystoreSigner, Signer


__all__ = [
    "Argument",
    "MoveFunction",
    "OperationGraphBuilder",
    "Unit",
    "IotaChainContext",
    "JsonRpcLedgerClient",
    "LedgerClient",
    "SignedTransaction",
    "TransactionData",
    "decode_unit",
    "encode_unit",
    "ExecutionDriver",
    "PlanOutcome",
    "UnitExecution",
    "IntentGraph",
    "Plan",
    "SubmissionPlanner",
    "ReferenceResolver",
    "FlagContract",
    "TokenOperations",
    "ObjectInfo",
    "ObjectRef",
    "SubmissionResult",
    "KeystoreSigner",
    "Signer",
]
