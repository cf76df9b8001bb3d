"""
Token Operations

Mint, merge, split and redeem operations for the ``mintcoin`` package:
mint coins, join them, split off an exact amount, pass that amount to
``get_flag`` together with the shared counter, and return leftovers to the
sender. Available as one unit or as two units joined by a bridge rule.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from .builder import MoveFunction, OperationGraphBuilder, Unit
from .driver import ExecutionDriver, PlanOutcome
from .enums import ObjectKind, ReturnKind, Usage
from .exceptions import GraphError
from .planner import IntentGraph, SubmissionPlanner
from .resolver import ReferenceResolver
from .types import ObjectRef, coin_type, normalize_hex_id, normalize_type_tag


logger = logging.getLogger(__name__)

COIN_MODULE = "mintcoin"
COIN_STRUCT = "MINTCOIN"


@dataclass(frozen=True)
class FlagContract:
    """On-chain identifiers of the mintcoin package"""

    package_id: str
    treasury_cap: ObjectRef
    counter: ObjectRef
    flag_consumes_coin: bool = True
    flag_returns_object: bool = True

    @classmethod
    def from_settings(cls, settings, resolver: Optional[ReferenceResolver] = None) -> "FlagContract":
        """
        Resolve the contract objects named in the settings

        Both the treasury cap and the counter are shared objects taken by
        mutable reference.
        """
        resolver = resolver or ReferenceResolver()
        return cls(
            package_id=normalize_hex_id(settings.package_id),
            treasury_cap=resolver.resolve(
                settings.treasury_cap_id,
                ObjectKind.SHARED,
                initial_shared_version=settings.initial_shared_version,
            ),
            counter=resolver.resolve(
                settings.shared_counter_id,
                ObjectKind.SHARED,
                initial_shared_version=settings.initial_shared_version,
            ),
        )

    @property
    def token_type(self) -> str:
        return normalize_type_tag(f"{self.package_id}::{COIN_MODULE}::{COIN_STRUCT}")

    @property
    def coin_type(self) -> str:
        return coin_type(self.token_type)

    # ------------------------------------------------------------------
    # Move functions
    # ------------------------------------------------------------------

    def mint_coin(self) -> MoveFunction:
        return MoveFunction.define(
            f"{self.package_id}::{COIN_MODULE}::mint_coin",
            parameters=[Usage.BORROWS],
            returns=[ReturnKind.OBJECT],
        )

    def join(self) -> MoveFunction:
        return MoveFunction.define(
            "0x2::coin::join",
            parameters=[Usage.BORROWS, Usage.CONSUMES],
            type_arguments=[self.token_type],
        )

    def split(self) -> MoveFunction:
        return MoveFunction.define(
            "0x2::coin::split",
            parameters=[Usage.BORROWS, Usage.BORROWS],
            returns=[ReturnKind.OBJECT],
            type_arguments=[self.token_type],
        )

    def get_flag(self) -> MoveFunction:
        coin_usage = Usage.CONSUMES if self.flag_consumes_coin else Usage.BORROWS
        return MoveFunction.define(
            f"{self.package_id}::{COIN_MODULE}::get_flag",
            parameters=[Usage.BORROWS, coin_usage],
            returns=[ReturnKind.OBJECT] if self.flag_returns_object else [],
        )


def _check_mint_count(mint_count: int) -> None:
    # the flow splits the payment out of the first minted coin
    if mint_count < 1:
        raise GraphError(f"mint_count must be at least 1, got {mint_count}")


class TokenOperations:
    """Builds and runs the mint → merge → split → get_flag flow"""

    def __init__(self, contract: FlagContract, sender: str, driver: Optional[ExecutionDriver] = None):
        """
        Initialize token operations

        Args:
            contract: Resolved contract identifiers
            sender: Address that signs and receives leftovers
            driver: Execution driver; only needed to run plans
        """
        self.contract = contract
        self.sender = normalize_hex_id(sender)
        self.driver = driver

    def build_flag_unit(self, amount: int = 5, mint_count: int = 3) -> Unit:
        """Single unit built directly with the operation graph builder"""
        _check_mint_count(mint_count)
        contract = self.contract
        builder = OperationGraphBuilder()
        cap = builder.object(contract.treasury_cap)
        counter = builder.object(contract.counter)

        coins = [builder.move_call(contract.mint_coin(), cap) for _ in range(mint_count)]
        primary = coins[0]
        for coin in coins[1:]:
            builder.move_call(contract.join(), primary, coin)

        piece = builder.move_call(contract.split(), primary, builder.pure(amount, "u64"))
        builder.move_call(contract.get_flag(), counter, piece)
        builder.transfer_leftovers(self.sender)
        return builder.finish(strict=True)

    def build_flag_graph(self, amount: int = 5, mint_count: int = 3) -> IntentGraph:
        """Whole flow as one atomic unit"""
        _check_mint_count(mint_count)
        contract = self.contract
        graph = IntentGraph()
        cap = graph.object(contract.treasury_cap)
        counter = graph.object(contract.counter)

        coins = [graph.call(contract.mint_coin(), cap) for _ in range(mint_count)]
        self._redeem(graph, counter, coins, amount)
        return graph

    def build_two_stage_graph(self, amount: int = 5, mint_count: int = 3) -> IntentGraph:
        """
        Mint in a first unit, redeem in a second one

        The minted coins return to the sender when the first unit ends; the
        second unit discovers them from the first unit's confirmed effects.
        """
        _check_mint_count(mint_count)
        contract = self.contract
        graph = IntentGraph()
        cap = graph.object(contract.treasury_cap)
        counter = graph.object(contract.counter)

        last = None
        for _ in range(mint_count):
            last = graph.call(contract.mint_coin(), cap)
        minted = graph.observe(contract.coin_type, mint_count, owner=self.sender, created_by=last)
        self._redeem(graph, counter, list(minted), amount)
        return graph

    def _redeem(self, graph: IntentGraph, counter, coins, amount: int) -> None:
        contract = self.contract
        primary = coins[0]
        for coin in coins[1:]:
            graph.call(contract.join(), primary, coin)
        piece = graph.call(contract.split(), primary, graph.pure(amount, "u64"))
        graph.call(contract.get_flag(), counter, piece)

    def get_flag(self, amount: int = 5, mint_count: int = 3, two_stage: bool = False) -> PlanOutcome:
        """
        Plan and execute the flow

        Returns:
            PlanOutcome with one execution per submitted unit

        Raises:
            IntentError: Any resolution, planning, signing, submission or
                execution failure
        """
        if self.driver is None:
            raise ValueError("TokenOperations needs an ExecutionDriver to submit")
        if two_stage:
            graph = self.build_two_stage_graph(amount, mint_count)
        else:
            graph = self.build_flag_graph(amount, mint_count)

        plan = SubmissionPlanner(self.sender).plan(graph)
        logger.info(f"Built get_flag plan with {len(plan)} unit(s) for {self.sender}")
        return self.driver.execute(plan)
