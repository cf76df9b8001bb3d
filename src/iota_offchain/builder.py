"""
Operation Graph Builder

Accumulates the inputs and commands of one atomic unit (a programmable
transaction). Every input declaration and every command result yields an
argument handle; later commands read those handles. Handles are arena indices
into the unit's input and result tables, tagged with the builder that issued
them, so a handle leaking into another unit is caught before submission.
"""

import itertools
from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, Iterator, List, Optional, Sequence, Tuple, Union

from .enums import ArgumentKind, CommandKind, ReturnKind, Usage
from .exceptions import (
    ConsumedHandleError,
    DanglingHandleError,
    DuplicateHandleError,
    FrozenUnitError,
    GraphError,
    UndisposedObjectError,
)
from .resolver import encode_pure
from .types import Input, MoveTarget, ObjectInput, ObjectRef, PureInput, normalize_type_tag


_builder_ids = itertools.count(1)


@dataclass(frozen=True)
class Argument:
    """
    Handle to an input slot or a command result within one unit

    ``builder_id`` identifies the issuing builder; it takes no part in
    equality, hashing or encoding.
    """

    kind: ArgumentKind
    index: int = 0
    sub_index: Optional[int] = None
    builder_id: int = field(default=0, compare=False, repr=False)

    def __repr__(self) -> str:
        if self.kind == ArgumentKind.GAS_COIN:
            return "GasCoin"
        if self.kind == ArgumentKind.NESTED_RESULT:
            return f"NestedResult({self.index}, {self.sub_index})"
        return f"{self.kind.value}({self.index})"


ArgumentHandle = Argument


# ============================================================================
# Operation specifications
# ============================================================================


@dataclass(frozen=True)
class MoveFunction:
    """
    Signature of a Move entry point as far as the builder cares

    ``parameters`` declares, per argument, whether the call consumes it or
    only borrows it; ``returns`` declares whether each result is an object
    (must be disposed of) or a droppable value.
    """

    target: MoveTarget
    parameters: Tuple[Usage, ...] = ()
    returns: Tuple[ReturnKind, ...] = ()
    type_arguments: Tuple[str, ...] = ()

    @classmethod
    def define(
        cls,
        target: str,
        parameters: Sequence[Usage] = (),
        returns: Sequence[ReturnKind] = (),
        type_arguments: Sequence[str] = (),
    ) -> "MoveFunction":
        return cls(
            target=MoveTarget.parse(target),
            parameters=tuple(parameters),
            returns=tuple(returns),
            type_arguments=tuple(normalize_type_tag(t) for t in type_arguments),
        )


@dataclass(frozen=True)
class Builtin:
    """A built-in programmable transaction primitive"""

    kind: CommandKind
    type_argument: Optional[str] = None


SPLIT_COINS = Builtin(CommandKind.SPLIT_COINS)
MERGE_COINS = Builtin(CommandKind.MERGE_COINS)
TRANSFER_OBJECTS = Builtin(CommandKind.TRANSFER_OBJECTS)
MAKE_MOVE_VEC = Builtin(CommandKind.MAKE_MOVE_VEC)

OperationSpec = Union[MoveFunction, Builtin]


# ============================================================================
# Operations (frozen unit content)
# ============================================================================


@dataclass(frozen=True)
class MoveCall:
    target: MoveTarget
    type_arguments: Tuple[str, ...]
    arguments: Tuple[Argument, ...]

    kind: ClassVar[CommandKind] = CommandKind.MOVE_CALL

    def reads(self) -> Tuple[Argument, ...]:
        return self.arguments


@dataclass(frozen=True)
class SplitCoins:
    coin: Argument
    amounts: Tuple[Argument, ...]

    kind: ClassVar[CommandKind] = CommandKind.SPLIT_COINS

    def reads(self) -> Tuple[Argument, ...]:
        return (self.coin,) + self.amounts


@dataclass(frozen=True)
class MergeCoins:
    destination: Argument
    sources: Tuple[Argument, ...]

    kind: ClassVar[CommandKind] = CommandKind.MERGE_COINS

    def reads(self) -> Tuple[Argument, ...]:
        return (self.destination,) + self.sources


@dataclass(frozen=True)
class TransferObjects:
    objects: Tuple[Argument, ...]
    address: Argument

    kind: ClassVar[CommandKind] = CommandKind.TRANSFER_OBJECTS

    def reads(self) -> Tuple[Argument, ...]:
        return self.objects + (self.address,)


@dataclass(frozen=True)
class MakeMoveVec:
    type_tag: Optional[str]
    elements: Tuple[Argument, ...]

    kind: ClassVar[CommandKind] = CommandKind.MAKE_MOVE_VEC

    def reads(self) -> Tuple[Argument, ...]:
        return self.elements


Operation = Union[MoveCall, SplitCoins, MergeCoins, TransferObjects, MakeMoveVec]


@dataclass(frozen=True)
class Unit:
    """One atomic submission: ordered inputs followed by ordered operations"""

    inputs: Tuple[Input, ...]
    operations: Tuple[Operation, ...]

    @property
    def object_ids(self) -> frozenset:
        """Ids of every object passed into the unit"""
        return frozenset(i.ref.object_id for i in self.inputs if isinstance(i, ObjectInput))

    def __iter__(self) -> Iterator[Operation]:
        return iter(self.operations)


# ============================================================================
# Builder
# ============================================================================


class OperationGraphBuilder:
    """Builds a single unit, enforcing single-writer handle semantics"""

    def __init__(self):
        self.builder_id = next(_builder_ids)
        self._inputs: List[Input] = []
        self._operations: List[Operation] = []
        self._object_inputs: Dict[str, Argument] = {}
        self._result_kinds: Dict[Argument, ReturnKind] = {}
        self._live: List[Argument] = []
        self._consumed: set = set()
        self._finished = False

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def inputs(self) -> Tuple[Input, ...]:
        return tuple(self._inputs)

    @property
    def operations(self) -> Tuple[Operation, ...]:
        return tuple(self._operations)

    @property
    def is_finished(self) -> bool:
        return self._finished

    def outstanding(self) -> Tuple[Argument, ...]:
        """Object results that no later command has consumed yet"""
        return tuple(arg for arg in self._live if arg not in self._consumed)

    # ------------------------------------------------------------------
    # Inputs
    # ------------------------------------------------------------------

    def declare_input(self, value: Any) -> Argument:
        """
        Declare a unit input and return its handle

        Args:
            value: PureInput, ObjectInput or ObjectRef

        Returns:
            A new Input handle. Equal literals declared twice get two
            distinct handles.

        Raises:
            DuplicateHandleError: If the same object is declared twice
        """
        self._ensure_open()
        if isinstance(value, ObjectRef):
            value = ObjectInput(value)
        if not isinstance(value, (PureInput, ObjectInput)):
            raise GraphError(
                f"Unsupported input {type(value).__name__}; resolve literals first",
                operation_index=len(self._operations),
            )

        handle = Argument(ArgumentKind.INPUT, len(self._inputs), builder_id=self.builder_id)
        if isinstance(value, ObjectInput):
            object_id = value.ref.object_id
            if object_id in self._object_inputs:
                raise DuplicateHandleError(
                    f"Object {object_id} already declared as {self._object_inputs[object_id]!r}",
                    operation_index=len(self._operations),
                )
            self._object_inputs[object_id] = handle
        self._inputs.append(value)
        return handle

    def pure(self, value: Any, type_name: str = "u64") -> Argument:
        """Declare a literal input serialized as the given Move type"""
        return self.declare_input(encode_pure(value, type_name))

    def object(self, ref: ObjectRef) -> Argument:
        return self.declare_input(ObjectInput(ref))

    def gas_coin(self) -> Argument:
        """Handle to the coin that pays the fee"""
        self._ensure_open()
        return Argument(ArgumentKind.GAS_COIN, builder_id=self.builder_id)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def add_operation(
        self, op_spec: OperationSpec, arg_handles: Sequence[Argument]
    ) -> Union[None, Argument, Tuple[Argument, ...]]:
        """
        Append a command and return the handle(s) of its result

        Args:
            op_spec: MoveFunction or one of the Builtin primitives
            arg_handles: Handles issued earlier by this builder

        Returns:
            None for commands without results, a single handle for one result,
            a tuple of handles for several results

        Raises:
            DanglingHandleError: A handle was issued by another builder
            ConsumedHandleError: An object handle was already moved
            FrozenUnitError: The builder was finished
        """
        self._ensure_open()
        args = tuple(arg_handles)
        operation_index = len(self._operations)

        if isinstance(op_spec, MoveFunction):
            if len(args) != len(op_spec.parameters):
                raise GraphError(
                    f"{op_spec.target} expects {len(op_spec.parameters)} arguments, got {len(args)}",
                    operation_index=operation_index,
                )
            usages = op_spec.parameters
            operation: Operation = MoveCall(op_spec.target, op_spec.type_arguments, args)
            returns = op_spec.returns
        elif isinstance(op_spec, Builtin):
            operation, usages, returns = self._builtin(op_spec, args, operation_index)
        else:
            raise GraphError(f"Unknown operation spec {op_spec!r}", operation_index=operation_index)

        self._check_arguments(args, usages, operation_index)
        for arg, usage in zip(args, usages):
            if usage == Usage.CONSUMES and self._is_object(arg):
                self._consumed.add(arg)

        self._operations.append(operation)
        return self._issue_results(operation_index, returns)

    def move_call(self, function: MoveFunction, *args: Argument):
        return self.add_operation(function, args)

    def split_coins(self, coin: Argument, amounts: Sequence[Argument]):
        return self.add_operation(SPLIT_COINS, (coin, *amounts))

    def merge_coins(self, destination: Argument, sources: Sequence[Argument]) -> None:
        self.add_operation(MERGE_COINS, (destination, *sources))

    def transfer_objects(self, objects: Sequence[Argument], address: Argument) -> None:
        self.add_operation(TRANSFER_OBJECTS, (*objects, address))

    def make_move_vec(self, elements: Sequence[Argument], type_tag: Optional[str] = None) -> Argument:
        spec = Builtin(CommandKind.MAKE_MOVE_VEC, normalize_type_tag(type_tag) if type_tag else None)
        return self.add_operation(spec, elements)

    def transfer_leftovers(self, recipient: str) -> Tuple[Argument, ...]:
        """
        Transfer every outstanding object result to the recipient

        Returns:
            The handles that were transferred (empty if nothing was left)
        """
        leftovers = self.outstanding()
        if leftovers:
            self.transfer_objects(leftovers, self.pure(recipient, "address"))
        return leftovers

    def finish(self, strict: bool = False) -> Unit:
        """
        Freeze the unit

        Args:
            strict: Reject units that leave object results undisposed

        Raises:
            UndisposedObjectError: strict and some results are still live
            FrozenUnitError: finish was already called
        """
        self._ensure_open()
        if strict:
            leftovers = self.outstanding()
            if leftovers:
                raise UndisposedObjectError(
                    f"Object results {list(leftovers)} are neither consumed nor transferred"
                )
        self._finished = True
        return Unit(inputs=tuple(self._inputs), operations=tuple(self._operations))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _ensure_open(self) -> None:
        if self._finished:
            raise FrozenUnitError("Unit is already finished", operation_index=len(self._operations))

    def _builtin(self, spec: Builtin, args: Tuple[Argument, ...], operation_index: int):
        kind = spec.kind
        if kind == CommandKind.SPLIT_COINS:
            if len(args) < 2:
                raise GraphError("SplitCoins needs a coin and at least one amount", operation_index=operation_index)
            usages = (Usage.BORROWS,) * len(args)
            return SplitCoins(args[0], args[1:]), usages, (ReturnKind.OBJECT,) * (len(args) - 1)
        if kind == CommandKind.MERGE_COINS:
            if len(args) < 2:
                raise GraphError("MergeCoins needs a destination and at least one source", operation_index=operation_index)
            usages = (Usage.BORROWS,) + (Usage.CONSUMES,) * (len(args) - 1)
            return MergeCoins(args[0], args[1:]), usages, ()
        if kind == CommandKind.TRANSFER_OBJECTS:
            if len(args) < 2:
                raise GraphError("TransferObjects needs at least one object and an address", operation_index=operation_index)
            usages = (Usage.CONSUMES,) * (len(args) - 1) + (Usage.BORROWS,)
            return TransferObjects(args[:-1], args[-1]), usages, ()
        if kind == CommandKind.MAKE_MOVE_VEC:
            if not args and spec.type_argument is None:
                raise GraphError("Empty MakeMoveVec needs a type argument", operation_index=operation_index)
            self._check_arguments(args, (Usage.BORROWS,) * len(args), operation_index)
            holds_objects = any(self._is_object(arg) for arg in args)
            returns = (ReturnKind.OBJECT if holds_objects else ReturnKind.VALUE,)
            return MakeMoveVec(spec.type_argument, args), (Usage.CONSUMES,) * len(args), returns
        raise GraphError(f"Unsupported builtin {kind.value}", operation_index=operation_index)

    def _check_arguments(self, args: Tuple[Argument, ...], usages: Sequence[Usage], operation_index: int) -> None:
        moved = set()
        for position, (arg, usage) in enumerate(zip(args, usages)):
            if not isinstance(arg, Argument):
                raise GraphError(
                    f"Argument {position} is not a handle: {arg!r}", operation_index=operation_index
                )
            if arg.builder_id != self.builder_id or not self._is_issued(arg):
                raise DanglingHandleError(
                    f"Argument {position} ({arg!r}) was not issued by this builder",
                    operation_index=operation_index,
                )
            if arg in self._consumed or arg in moved:
                raise ConsumedHandleError(
                    f"Argument {position} ({arg!r}) was already consumed",
                    operation_index=operation_index,
                )
            if usage == Usage.CONSUMES and self._is_object(arg):
                moved.add(arg)

    def _is_issued(self, arg: Argument) -> bool:
        if arg.kind == ArgumentKind.GAS_COIN:
            return True
        if arg.kind == ArgumentKind.INPUT:
            return 0 <= arg.index < len(self._inputs)
        return arg in self._result_kinds

    def _is_object(self, arg: Argument) -> bool:
        if arg.kind == ArgumentKind.GAS_COIN:
            return True
        if arg.kind == ArgumentKind.INPUT:
            return isinstance(self._inputs[arg.index], ObjectInput)
        return self._result_kinds.get(arg) == ReturnKind.OBJECT

    def _issue_results(self, operation_index: int, returns: Tuple[ReturnKind, ...]):
        if not returns:
            return None
        if len(returns) == 1:
            handles = [Argument(ArgumentKind.RESULT, operation_index, builder_id=self.builder_id)]
        else:
            handles = [
                Argument(ArgumentKind.NESTED_RESULT, operation_index, sub, builder_id=self.builder_id)
                for sub in range(len(returns))
            ]
        for handle, kind in zip(handles, returns):
            self._result_kinds[handle] = kind
            if kind == ReturnKind.OBJECT:
                self._live.append(handle)
        return handles[0] if len(handles) == 1 else tuple(handles)
