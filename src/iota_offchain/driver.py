"""
Execution Driver

Takes planned units through BUILT → FEE_SELECTED → SIGNED → SUBMITTED →
CONFIRMED | REJECTED, one at a time. Before each later unit the driver resolves
that unit's bridge rules against the confirmed results of earlier units, so a
shortfall is detected before anything else is submitted.

There is no atomicity across units: when a unit fails, earlier units stay
final on-chain. Errors carry the digests of those units in ``completed``.
"""

import logging
import re
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, FrozenSet, List, Optional

from .builder import Unit
from .client import LedgerClient, RpcError
from .codec import TRANSACTION_INTENT, SignedTransaction, TransactionData, encode_transaction
from .enums import UnitStatus
from .exceptions import (
    ConfirmationTimeoutError,
    ExecutionRejectedError,
    IntentError,
    NoFeeSourceError,
    SubmissionError,
)
from .planner import Plan
from .resolver import ReferenceResolver
from .types import ObjectRef, SubmissionResult, coin_type, normalize_hex_id
from .wallet import Signer


logger = logging.getLogger(__name__)

IOTA_COIN_TYPE = coin_type("0x2::iota::IOTA")
DEFAULT_GAS_BUDGET = 50_000_000

_COMMAND_INDEX = re.compile(r"command\s+(\d+)", re.IGNORECASE)


def failed_command_index(error: Optional[str]) -> Optional[int]:
    """Index of the failing command in an execution error, if reported"""
    if not error:
        return None
    match = _COMMAND_INDEX.search(error)
    return int(match.group(1)) if match else None


@dataclass
class UnitExecution:
    """Progress record of one unit"""

    index: int
    unit: Unit
    status: UnitStatus = UnitStatus.BUILT
    gas_payment: Optional[ObjectRef] = None
    gas_price: Optional[int] = None
    transaction: Optional[TransactionData] = None
    signed: Optional[SignedTransaction] = None
    result: Optional[SubmissionResult] = None
    attempts: int = 0
    error: Optional[str] = None

    @property
    def digest(self) -> Optional[str]:
        if self.result is not None:
            return self.result.digest
        if self.signed is not None:
            return self.signed.digest
        return None


@dataclass
class PlanOutcome:
    """Executions of every unit of a plan, in order"""

    executions: List[UnitExecution] = field(default_factory=list)

    @property
    def results(self) -> List[SubmissionResult]:
        return [e.result for e in self.executions if e.result is not None]

    @property
    def digests(self) -> List[str]:
        return [e.digest for e in self.executions if e.digest]

    @property
    def final(self) -> Optional[SubmissionResult]:
        results = self.results
        return results[-1] if results else None


class ExecutionDriver:
    """Prices, signs, submits and confirms units for one sender"""

    def __init__(
        self,
        client: LedgerClient,
        signer: Signer,
        sender: str,
        resolver: Optional[ReferenceResolver] = None,
        gas_budget: int = DEFAULT_GAS_BUDGET,
        gas_coin_type: str = IOTA_COIN_TYPE,
        confirmation_timeout: float = 60.0,
        poll_interval: float = 1.0,
        max_submit_attempts: int = 2,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
        encode: Callable[[TransactionData], bytes] = encode_transaction,
    ):
        """
        Initialize driver

        Args:
            client: Ledger client used for queries and submission
            signer: Signer holding the sender's key
            sender: Address that pays for and signs every unit
            resolver: Resolver for bridge rules (defaults to one over client)
            gas_budget: Fee budget of each unit
            gas_coin_type: Type of the coins that can pay fees
            confirmation_timeout: Seconds to poll for finality before giving up
            poll_interval: Seconds between finality queries
            max_submit_attempts: Submissions of the same signed unit allowed
                when finality is confirmed unknown
            encode: Serializer for the signed transaction bytes. The default
                is the canonical CBOR encoding; a node that expects another
                wire format needs its own encoder here
        """
        self.client = client
        self.signer = signer
        self.sender = normalize_hex_id(sender)
        self.resolver = resolver or ReferenceResolver(client)
        self.gas_budget = gas_budget
        self.gas_coin_type = gas_coin_type
        self.confirmation_timeout = confirmation_timeout
        self.poll_interval = poll_interval
        self.max_submit_attempts = max(1, max_submit_attempts)
        self._sleep = sleep
        self._clock = clock
        self.encode = encode

    # ------------------------------------------------------------------
    # Plans
    # ------------------------------------------------------------------

    def execute(self, plan: Plan) -> PlanOutcome:
        """
        Execute every unit of a plan in order

        Raises:
            IntentError: The first failure; ``completed`` lists the digests
                of units that are already final
        """
        outcome = PlanOutcome()
        results: Dict[int, SubmissionResult] = {}
        # objects of later units must not be spent as gas by earlier ones
        reserved = plan.object_ids

        for planned in plan:
            try:
                bindings = {}
                for rule in planned.bridge:
                    bindings[rule] = self.resolver.resolve_bridge(rule, results[rule.source_unit])
                unit = planned.materialize(bindings)
            except IntentError as e:
                e.completed = tuple(outcome.digests)
                raise e.at_unit(planned.index)

            execution = UnitExecution(index=planned.index, unit=unit)
            outcome.executions.append(execution)
            try:
                self.run(execution, reserved)
            except IntentError as e:
                e.completed = tuple(x.digest for x in outcome.executions[:-1] if x.digest)
                raise
            results[planned.index] = execution.result

        logger.info(f"Plan complete: {len(outcome.executions)} unit(s), digests {outcome.digests}")
        return outcome

    def execute_unit(self, unit: Unit, index: int = 0) -> UnitExecution:
        """Execute a single, already frozen unit"""
        execution = UnitExecution(index=index, unit=unit)
        self.run(execution)
        return execution

    def run(self, execution: UnitExecution, reserved: FrozenSet[str] = frozenset()) -> UnitExecution:
        try:
            self.select_fee(execution, reserved)
            self.sign(execution)
            self.submit(execution)
        except IntentError as e:
            execution.error = str(e)
            raise e.at_unit(execution.index)
        return execution

    # ------------------------------------------------------------------
    # State transitions
    # ------------------------------------------------------------------

    def select_fee(self, execution: UnitExecution, reserved: FrozenSet[str] = frozenset()) -> None:
        """
        Pick a gas coin the unit does not use and fetch the reference price

        Args:
            execution: Unit being executed
            reserved: Ids of objects other units of the plan pass in

        Raises:
            NoFeeSourceError: The sender owns no usable gas coin
        """
        used = execution.unit.object_ids | reserved
        coins = self.client.get_owned_objects(self.sender, self.gas_coin_type)
        candidates = [info.ref for info in coins if info.object_id not in used]
        if not candidates:
            raise NoFeeSourceError(
                f"No {self.gas_coin_type} owned by {self.sender} outside the inputs of the plan",
                unit_index=execution.index,
            )
        execution.gas_payment = candidates[0]
        execution.gas_price = self.client.get_reference_price()
        execution.status = UnitStatus.FEE_SELECTED
        logger.info(
            f"Unit {execution.index}: gas coin {execution.gas_payment.object_id} "
            f"(found {len(coins)}), price {execution.gas_price}"
        )

    def sign(self, execution: UnitExecution) -> None:
        """
        Sign the canonical encoding of the transaction data

        Raises:
            SigningUnavailableError: The signer has no key for the sender
        """
        execution.transaction = TransactionData(
            sender=self.sender,
            gas_payment=execution.gas_payment,
            gas_budget=self.gas_budget,
            gas_price=execution.gas_price,
            unit=execution.unit,
        )
        tx_bytes = self.encode(execution.transaction)
        signature = self.signer.sign(self.sender, tx_bytes, TRANSACTION_INTENT)
        execution.signed = SignedTransaction.create(tx_bytes, [signature])
        execution.status = UnitStatus.SIGNED
        logger.info(f"Unit {execution.index}: signed, digest {execution.signed.digest}")

    def submit(self, execution: UnitExecution) -> SubmissionResult:
        """
        Submit and wait for finality

        A transport failure is followed by a finality query; the same signed
        unit is only sent again when the network answers that it does not
        know it. An error returned by the node itself is final.

        Raises:
            RpcError: The node refused the submission
            SubmissionError: Transport failure with finality still unknown
            ExecutionRejectedError: The unit was final but failed
        """
        signed = execution.signed
        result = None
        while result is None:
            execution.attempts += 1
            execution.status = UnitStatus.SUBMITTED
            try:
                result = self.client.submit(signed, wait_for_finality=True)
            except RpcError as e:
                e.digest = signed.digest
                execution.error = e.message
                logger.error(f"Unit {execution.index}: node refused {signed.digest}: {e.message}")
                raise e.at_unit(execution.index)
            except SubmissionError as e:
                logger.warning(
                    f"Unit {execution.index}: submission attempt {execution.attempts} failed: {e.message}"
                )
                try:
                    result = self.await_confirmation(signed.digest)
                except ConfirmationTimeoutError:
                    if execution.attempts >= self.max_submit_attempts:
                        raise SubmissionError(
                            f"Submission failed and finality is unknown after {execution.attempts} attempt(s): "
                            f"{e.message}",
                            unit_index=execution.index,
                            digest=signed.digest,
                        )
                    logger.info(f"Unit {execution.index}: not known to the network, resubmitting")

        if not result.finalized:
            result = self.await_confirmation(result.digest)

        execution.result = result
        if not result.success:
            execution.status = UnitStatus.REJECTED
            logger.error(f"Unit {execution.index} rejected ({result.digest}): {result.error}")
            raise ExecutionRejectedError(
                f"Execution failed: {result.error}",
                unit_index=execution.index,
                operation_index=failed_command_index(result.error),
                digest=result.digest,
                effects=result.effects,
            )

        execution.status = UnitStatus.CONFIRMED
        logger.info(
            f"Unit {execution.index} confirmed: {result.digest} "
            f"({len(result.created)} created, {len(result.mutated)} mutated)"
        )
        return result

    def await_confirmation(self, digest: str, timeout: Optional[float] = None) -> SubmissionResult:
        """
        Poll the ledger until the transaction is final or the timeout expires

        Raises:
            ConfirmationTimeoutError: The ledger kept answering that the
                transaction is not final
            SubmissionError: No finality query succeeded, so the status of
                the transaction is unknown
        """
        timeout = self.confirmation_timeout if timeout is None else timeout
        deadline = self._clock() + timeout
        answered = False
        last_error = None
        while True:
            try:
                result = self.client.get_transaction(digest)
                answered = True
            except SubmissionError as e:
                logger.warning(f"Finality query for {digest} failed: {e.message}")
                last_error = e
                result = None
            if result is not None and result.finalized:
                return result
            if self._clock() >= deadline:
                if not answered:
                    raise SubmissionError(
                        f"Finality of {digest} unknown: every query failed, last: {last_error.message}",
                        digest=digest,
                    )
                raise ConfirmationTimeoutError(
                    f"Transaction {digest} not final after {timeout}s", digest=digest
                )
            self._sleep(self.poll_interval)
