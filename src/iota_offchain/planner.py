"""
Submission Planner

Records a whole operation graph (possibly spanning several submissions) and
partitions it into the minimum number of units. A new unit starts only where a
step reads an object that exists once an earlier unit is confirmed on the
network; everything else is packed into the current unit.
"""

import itertools
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .builder import (
    MERGE_COINS,
    SPLIT_COINS,
    TRANSFER_OBJECTS,
    Argument,
    Builtin,
    MoveFunction,
    OperationGraphBuilder,
    OperationSpec,
    Unit,
)
from .enums import CommandKind
from .exceptions import GraphError, PlanningError, ResolutionError, UnresolvableDependencyError
from .resolver import BridgeRule, ObserveCreated, Refresh, encode_pure
from .types import ObjectRef, PureInput, is_struct_tag, normalize_hex_id, normalize_type_tag


logger = logging.getLogger(__name__)

_graph_ids = itertools.count(1)


@dataclass(frozen=True)
class Node:
    """Plan-level handle: a literal, an object, a step result or an observed object"""

    graph_id: int
    index: int


@dataclass(frozen=True)
class _Pure:
    value: PureInput


@dataclass(frozen=True)
class _Object:
    ref: ObjectRef


@dataclass(frozen=True)
class _Gas:
    pass


@dataclass(frozen=True)
class _StepResult:
    step: int
    sub_index: Optional[int]


@dataclass(frozen=True)
class _Observed:
    observation: int
    position: int


@dataclass(frozen=True)
class Step:
    spec: OperationSpec
    args: Tuple[Node, ...]


@dataclass(frozen=True)
class Observation:
    """Objects that exist only after the unit containing ``created_by`` is final"""

    owner: Optional[str]
    type_tag: str
    count: int
    created_by: int


def _result_count(spec: OperationSpec, arg_count: int) -> int:
    if isinstance(spec, MoveFunction):
        return len(spec.returns)
    if spec.kind == CommandKind.SPLIT_COINS:
        return max(arg_count - 1, 0)
    if spec.kind == CommandKind.MAKE_MOVE_VEC:
        return 1
    return 0


class IntentGraph:
    """Program-ordered operation graph that may span several submissions"""

    def __init__(self):
        self.graph_id = next(_graph_ids)
        self._values: List[Any] = []
        self.steps: List[Step] = []
        self.observations: List[Observation] = []

    def _node(self, value: Any) -> Node:
        self._values.append(value)
        return Node(self.graph_id, len(self._values) - 1)

    def value(self, node: Node) -> Any:
        if not isinstance(node, Node) or node.graph_id != self.graph_id or node.index >= len(self._values):
            raise GraphError(f"Node {node!r} does not belong to this graph", operation_index=len(self.steps))
        return self._values[node.index]

    # ------------------------------------------------------------------
    # Inputs
    # ------------------------------------------------------------------

    def pure(self, value: Any, type_name: str = "u64") -> Node:
        return self._node(_Pure(encode_pure(value, type_name)))

    def object(self, ref: ObjectRef) -> Node:
        return self._node(_Object(ref))

    def gas_coin(self) -> Node:
        return self._node(_Gas())

    def observe(
        self,
        type_tag: str,
        count: int,
        owner: Optional[str] = None,
        created_by: Optional[Node] = None,
    ) -> Tuple[Node, ...]:
        """
        Objects created on-chain by an earlier step, usable by later steps

        Args:
            type_tag: Struct type of the created objects
            count: How many objects the later steps need
            owner: Owner to query (defaults to the plan sender)
            created_by: Result node of the producing step; defaults to the
                last step recorded so far

        Returns:
            One node per expected object, in query order
        """
        if created_by is None:
            if not self.steps:
                raise UnresolvableDependencyError("observe() needs an earlier step that creates the objects")
            producer = len(self.steps) - 1
        else:
            value = self.value(created_by)
            if not isinstance(value, _StepResult):
                raise UnresolvableDependencyError(
                    "observe() created_by must be the result of a step", operation_index=len(self.steps)
                )
            producer = value.step
        self.observations.append(Observation(owner, type_tag, count, producer))
        observation = len(self.observations) - 1
        return tuple(self._node(_Observed(observation, position)) for position in range(count))

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def add(self, spec: OperationSpec, *args: Node):
        for arg in args:
            self.value(arg)
        self.steps.append(Step(spec, tuple(args)))
        step = len(self.steps) - 1
        count = _result_count(spec, len(args))
        if count == 0:
            return None
        if count == 1:
            return self._node(_StepResult(step, None))
        return tuple(self._node(_StepResult(step, sub)) for sub in range(count))

    def call(self, function: MoveFunction, *args: Node):
        return self.add(function, *args)

    def split_coins(self, coin: Node, amounts: Sequence[Node]):
        return self.add(SPLIT_COINS, coin, *amounts)

    def merge_coins(self, destination: Node, sources: Sequence[Node]) -> None:
        self.add(MERGE_COINS, destination, *sources)

    def transfer_objects(self, objects: Sequence[Node], address: Node) -> None:
        self.add(TRANSFER_OBJECTS, *objects, address)

    def make_move_vec(self, elements: Sequence[Node], type_tag: Optional[str] = None) -> Node:
        spec = Builtin(CommandKind.MAKE_MOVE_VEC, normalize_type_tag(type_tag) if type_tag else None)
        return self.add(spec, *elements)


# ============================================================================
# Plan
# ============================================================================


@dataclass
class PlannedUnit:
    """
    One unit of a plan, still to be materialized

    Later units cannot be frozen at planning time: the object references they
    read only exist after earlier units are confirmed. ``bridge`` lists the
    rules that discover them.
    """

    index: int
    graph: IntentGraph
    step_indices: List[int]
    bridge: List[BridgeRule] = field(default_factory=list)
    refreshed: Dict[str, Refresh] = field(default_factory=dict)
    observed: Dict[int, ObserveCreated] = field(default_factory=dict)
    sender: Optional[str] = None
    return_leftovers: bool = True

    def materialize(self, bindings: Optional[Dict[BridgeRule, Tuple[ObjectRef, ...]]] = None) -> Unit:
        """
        Build the frozen unit

        Args:
            bindings: Resolved object references for every bridge rule

        Raises:
            UnresolvableDependencyError: A bridge rule has no binding
            GraphError: The steps misuse handles
        """
        bindings = bindings or {}
        missing = [rule for rule in self.bridge if rule not in bindings]
        if missing:
            raise UnresolvableDependencyError(f"Unbound bridge rules: {missing}", unit_index=self.index)

        builder = OperationGraphBuilder()
        handles: Dict[Node, Argument] = {}
        step_results: Dict[int, Any] = {}

        def argument(node: Node) -> Argument:
            value = self.graph.value(node)
            if isinstance(value, _StepResult):
                result = step_results[value.step]
                if value.sub_index is None:
                    return result
                return result[value.sub_index]
            if node in handles:
                return handles[node]
            if isinstance(value, _Pure):
                handle = builder.declare_input(value.value)
            elif isinstance(value, _Gas):
                handle = builder.gas_coin()
            elif isinstance(value, _Object):
                ref = value.ref
                if ref.object_id in self.refreshed:
                    ref = bindings[self.refreshed[ref.object_id]][0]
                handle = builder.object(ref)
            else:
                rule = self.observed[value.observation]
                handle = builder.object(bindings[rule][value.position])
            handles[node] = handle
            return handle

        try:
            for step_index in self.step_indices:
                step = self.graph.steps[step_index]
                step_results[step_index] = builder.add_operation(step.spec, [argument(a) for a in step.args])
            if self.return_leftovers and self.sender:
                builder.transfer_leftovers(self.sender)
            return builder.finish()
        except GraphError as e:
            raise e.at_unit(self.index)


@dataclass
class Plan:
    """Ordered units connected by bridge rules"""

    sender: str
    units: List[PlannedUnit]

    def __len__(self) -> int:
        return len(self.units)

    def __iter__(self):
        return iter(self.units)

    @property
    def object_ids(self) -> frozenset:
        """Ids of every existing object passed into any unit of the plan"""
        ids = set()
        for planned in self.units:
            graph = planned.graph
            for step_index in planned.step_indices:
                for node in graph.steps[step_index].args:
                    value = graph.value(node)
                    if isinstance(value, _Object):
                        ids.add(value.ref.object_id)
        return frozenset(ids)


class SubmissionPlanner:
    """Partitions an IntentGraph into the minimum number of units"""

    def __init__(self, sender: str, return_leftovers: bool = True):
        """
        Initialize planner

        Args:
            sender: Address that signs every unit and receives leftovers
            return_leftovers: Transfer undisposed object results of each unit
                back to the sender
        """
        self.sender = normalize_hex_id(sender)
        self.return_leftovers = return_leftovers

    def plan(self, graph: IntentGraph) -> Plan:
        """
        Split the graph into units

        Raises:
            UnresolvableDependencyError: A step needs a result from an earlier
                unit, or an observation cannot be expressed as a ledger query
            PlanningError: The graph has no steps
        """
        if not graph.steps:
            raise PlanningError("Operation graph has no steps")
        for index, observation in enumerate(graph.observations):
            self._check_query(observation, index)

        units: List[PlannedUnit] = [self._new_unit(graph, 0)]
        step_unit: Dict[int, int] = {}
        owned_last_unit: Dict[str, int] = {}

        for step_index, step in enumerate(graph.steps):
            current = len(units) - 1
            required = current
            for node in step.args:
                value = graph.value(node)
                if isinstance(value, _Observed):
                    producer = graph.observations[value.observation].created_by
                    if producer >= step_index:
                        raise UnresolvableDependencyError(
                            f"Step {step_index} observes objects of step {producer}, which does not precede it",
                            operation_index=step_index,
                        )
                    required = max(required, step_unit[producer] + 1)

            if required > current:
                logger.debug(f"Step {step_index} reads network-created objects; starting unit {required}")
                units.append(self._new_unit(graph, required))
                current = required
            unit = units[current]

            for node in step.args:
                value = graph.value(node)
                if isinstance(value, _StepResult) and step_unit[value.step] != current:
                    raise UnresolvableDependencyError(
                        f"Step {step_index} reads the result of step {value.step} from unit "
                        f"{step_unit[value.step]}; results do not survive a submission, transfer "
                        f"and observe the object instead",
                        unit_index=current,
                        operation_index=step_index,
                    )
                if isinstance(value, _Observed) and value.observation not in unit.observed:
                    observation = graph.observations[value.observation]
                    rule = ObserveCreated(
                        owner=normalize_hex_id(observation.owner or self.sender),
                        type_tag=normalize_type_tag(observation.type_tag),
                        count=observation.count,
                        source_unit=step_unit[observation.created_by],
                    )
                    unit.observed[value.observation] = rule
                    unit.bridge.append(rule)
                if isinstance(value, _Object) and value.ref.is_owned:
                    object_id = value.ref.object_id
                    last = owned_last_unit.get(object_id)
                    if last is not None and last < current and object_id not in unit.refreshed:
                        rule = Refresh(object_id, normalize_hex_id(value.ref.owner), last)
                        unit.refreshed[object_id] = rule
                        unit.bridge.append(rule)
                    owned_last_unit[object_id] = current

            step_unit[step_index] = current
            unit.step_indices.append(step_index)

        logger.info(f"Planned {len(graph.steps)} steps into {len(units)} unit(s)")
        return Plan(sender=self.sender, units=units)

    def _new_unit(self, graph: IntentGraph, index: int) -> PlannedUnit:
        return PlannedUnit(
            index=index,
            graph=graph,
            step_indices=[],
            sender=self.sender,
            return_leftovers=self.return_leftovers,
        )

    def _check_query(self, observation: Observation, index: int) -> None:
        """Only owner + concrete struct type queries are indexed by the ledger"""
        if observation.count < 1:
            raise UnresolvableDependencyError(f"Observation {index} asks for {observation.count} objects")
        try:
            normalize_hex_id(observation.owner or self.sender)
        except ResolutionError:
            raise UnresolvableDependencyError(f"Observation {index} has no queryable owner address")
        if not is_struct_tag(observation.type_tag):
            raise UnresolvableDependencyError(
                f"Observation {index}: {observation.type_tag!r} is not an indexable struct type"
            )
