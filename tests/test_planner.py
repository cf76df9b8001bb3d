"""
Submission Planner Tests

Partitioning operation graphs into units and the bridge rules between them.
"""

import pytest

from iota_offchain.builder import Argument, MoveFunction, TransferObjects
from iota_offchain.enums import ArgumentKind, ReturnKind, Usage
from iota_offchain.exceptions import (
    ConsumedHandleError,
    GraphError,
    PlanningError,
    UnresolvableDependencyError,
)
from iota_offchain.planner import IntentGraph, SubmissionPlanner
from iota_offchain.resolver import ObserveCreated, Refresh
from iota_offchain.tokens import TokenOperations
from iota_offchain.types import normalize_type_tag

from tests.mocks import object_id, owned_ref


SENDER = object_id(0xA11CE)
TOKEN = "0x42::token::TOKEN"

MINT = MoveFunction.define("0x42::token::mint", parameters=[Usage.BORROWS], returns=[ReturnKind.OBJECT])
BURN = MoveFunction.define("0x42::token::burn", parameters=[Usage.CONSUMES])
TOUCH = MoveFunction.define("0x42::token::touch", parameters=[Usage.BORROWS])
MERGE = MoveFunction.define("0x42::token::merge", parameters=[Usage.BORROWS, Usage.CONSUMES])


def Input(i):
    return Argument(ArgumentKind.INPUT, i)


def Result(i):
    return Argument(ArgumentKind.RESULT, i)


def two_stage_graph(mint_count=2):
    graph = IntentGraph()
    cap = graph.object(owned_ref(1, SENDER))
    last = None
    for _ in range(mint_count):
        last = graph.call(MINT, cap)
    minted = graph.observe(TOKEN, mint_count, created_by=last)
    for coin in minted:
        graph.call(BURN, coin)
    return graph, minted


class TestSingleUnit:
    """Graphs without network-created dependencies stay in one unit"""

    def test_flag_graph_is_one_unit(self, contract):
        graph = TokenOperations(contract, SENDER).build_flag_graph(amount=5, mint_count=3)
        plan = SubmissionPlanner(SENDER).plan(graph)
        assert len(plan) == 1
        assert plan.units[0].bridge == []

        unit = plan.units[0].materialize()
        functions = [getattr(op, "target", None) and op.target.function for op in unit.operations]
        assert functions == ["mint_coin"] * 3 + ["join", "join", "split", "get_flag", None]
        # primary coin and the flag go back to the sender
        assert unit.operations[-1] == TransferObjects((Result(0), Result(6)), Input(3))

    def test_same_operations_as_direct_builder(self, contract):
        ops = TokenOperations(contract, SENDER)
        planned = SubmissionPlanner(SENDER).plan(ops.build_flag_graph()).units[0].materialize()
        direct = ops.build_flag_unit()
        # inputs are declared on first use, so only the order of inputs differs
        assert set(planned.inputs) == set(direct.inputs)
        assert [op.kind for op in planned.operations] == [op.kind for op in direct.operations]

    def test_node_declared_once_per_unit(self):
        graph = IntentGraph()
        cap = graph.object(owned_ref(1, SENDER))
        graph.call(TOUCH, cap)
        graph.call(TOUCH, cap)
        unit = SubmissionPlanner(SENDER).plan(graph).units[0].materialize()
        assert len(unit.inputs) == 1

    def test_without_leftover_transfer(self):
        graph = IntentGraph()
        graph.call(MINT, graph.object(owned_ref(1, SENDER)))
        unit = SubmissionPlanner(SENDER, return_leftovers=False).plan(graph).units[0].materialize()
        assert len(unit.operations) == 1

    def test_graph_errors_carry_unit_index(self):
        graph = IntentGraph()
        coin = graph.call(MINT, graph.object(owned_ref(1, SENDER)))
        graph.call(BURN, coin)
        graph.call(BURN, coin)
        plan = SubmissionPlanner(SENDER).plan(graph)
        with pytest.raises(ConsumedHandleError) as exc_info:
            plan.units[0].materialize()
        assert exc_info.value.unit_index == 0
        assert exc_info.value.operation_index == 2

    def test_builtin_steps(self):
        graph = IntentGraph()
        gas = graph.gas_coin()
        pieces = graph.split_coins(gas, [graph.pure(1), graph.pure(2)])
        graph.merge_coins(pieces[0], [pieces[1]])
        graph.transfer_objects([pieces[0]], graph.pure(SENDER, "address"))
        unit = SubmissionPlanner(SENDER).plan(graph).units[0].materialize()
        assert [op.kind.value for op in unit.operations] == ["SplitCoins", "MergeCoins", "TransferObjects"]


class TestUnitBoundaries:
    """A new unit starts only where a step reads network-created objects"""

    def test_two_stage(self):
        graph, _ = two_stage_graph(mint_count=2)
        plan = SubmissionPlanner(SENDER).plan(graph)

        assert len(plan) == 2
        assert plan.units[0].step_indices == [0, 1]
        assert plan.units[1].step_indices == [2, 3]
        assert plan.units[1].bridge == [ObserveCreated(SENDER, normalize_type_tag(TOKEN), 2, 0)]

    def test_independent_steps_join_current_unit(self):
        graph, _ = two_stage_graph(mint_count=1)
        graph.call(TOUCH, graph.object(owned_ref(50, SENDER)))
        plan = SubmissionPlanner(SENDER).plan(graph)
        assert len(plan) == 2
        assert plan.units[1].step_indices == [1, 2]

    def test_materialize_with_bindings(self):
        graph, _ = two_stage_graph(mint_count=2)
        plan = SubmissionPlanner(SENDER).plan(graph)
        second = plan.units[1]
        refs = (owned_ref(20, SENDER), owned_ref(21, SENDER))
        unit = second.materialize({second.bridge[0]: refs})
        assert [i.ref for i in unit.inputs] == list(refs)
        assert len(unit.operations) == 2

    def test_missing_binding(self):
        graph, _ = two_stage_graph()
        plan = SubmissionPlanner(SENDER).plan(graph)
        with pytest.raises(UnresolvableDependencyError) as exc_info:
            plan.units[1].materialize()
        assert exc_info.value.unit_index == 1

    def test_owned_object_reused_later_is_refreshed(self):
        graph = IntentGraph()
        cap = graph.object(owned_ref(1, SENDER))
        coin = graph.call(MINT, cap)
        graph.call(BURN, graph.observe(TOKEN, 1, created_by=coin)[0])
        graph.call(TOUCH, cap)
        plan = SubmissionPlanner(SENDER).plan(graph)

        second = plan.units[1]
        observe, refresh = second.bridge
        assert refresh == Refresh(object_id(1), SENDER, 0)
        newer = owned_ref(1, SENDER, version=2)
        unit = second.materialize({observe: (owned_ref(30, SENDER),), refresh: (newer,)})
        assert [i.ref for i in unit.inputs] == [owned_ref(30, SENDER), newer]


class TestUnresolvable:
    """Dependencies that no ledger query can satisfy"""

    def test_result_from_earlier_unit(self):
        graph = IntentGraph()
        coin = graph.call(MINT, graph.object(owned_ref(1, SENDER)))
        observed = graph.observe(TOKEN, 1, created_by=coin)
        graph.call(MERGE, observed[0], coin)
        with pytest.raises(UnresolvableDependencyError) as exc_info:
            SubmissionPlanner(SENDER).plan(graph)
        assert exc_info.value.operation_index == 1

    def test_non_struct_type(self):
        graph = IntentGraph()
        coin = graph.call(MINT, graph.object(owned_ref(1, SENDER)))
        graph.call(BURN, graph.observe("vector<u8>", 1, created_by=coin)[0])
        with pytest.raises(UnresolvableDependencyError):
            SubmissionPlanner(SENDER).plan(graph)

    def test_zero_count(self):
        graph = IntentGraph()
        coin = graph.call(MINT, graph.object(owned_ref(1, SENDER)))
        graph.observe(TOKEN, 0, created_by=coin)
        with pytest.raises(UnresolvableDependencyError):
            SubmissionPlanner(SENDER).plan(graph)

    def test_observe_needs_a_producer(self):
        graph = IntentGraph()
        with pytest.raises(UnresolvableDependencyError):
            graph.observe(TOKEN, 1)
        with pytest.raises(UnresolvableDependencyError):
            graph.observe(TOKEN, 1, created_by=graph.pure(3))

    def test_empty_graph(self):
        with pytest.raises(PlanningError):
            SubmissionPlanner(SENDER).plan(IntentGraph())

    def test_foreign_node(self):
        other = IntentGraph()
        node = other.pure(1)
        graph = IntentGraph()
        with pytest.raises(GraphError):
            graph.call(BURN, node)
