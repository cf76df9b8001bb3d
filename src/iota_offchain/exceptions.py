"""
Intent Builder Exceptions

Every failure raised while resolving, building, planning or executing a
transaction intent derives from IntentError. Errors carry the unit index and
operation index they refer to (when known) so the caller can tell which step
of a plan failed.
"""

from typing import Any, Dict, Optional, Tuple


class IntentError(Exception):
    """Base class for all intent builder errors"""

    def __init__(
        self,
        message: str,
        unit_index: Optional[int] = None,
        operation_index: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.unit_index = unit_index
        self.operation_index = operation_index
        self.completed: Tuple[str, ...] = ()

    def at_unit(self, unit_index: int) -> "IntentError":
        """Stamp the unit index on the error unless it already has one"""
        if self.unit_index is None:
            self.unit_index = unit_index
        return self

    def __str__(self) -> str:
        location = []
        if self.unit_index is not None:
            location.append(f"unit {self.unit_index}")
        if self.operation_index is not None:
            location.append(f"operation {self.operation_index}")
        if not location:
            return self.message
        return f"[{', '.join(location)}] {self.message}"


# ============================================================================
# Resolution
# ============================================================================


class ResolutionError(IntentError):
    """Identifier or literal could not be turned into a typed reference"""
    pass


class NotFoundError(ResolutionError):
    """No object matches the identifier or query"""
    pass


class AmbiguousVersionError(ResolutionError):
    """The ledger reported several versions for the same object"""
    pass


# ============================================================================
# Graph construction
# ============================================================================


class GraphError(IntentError):
    """Misuse of argument handles (programmer error, never retried)"""
    pass


class DanglingHandleError(GraphError):
    """Handle was issued by a different builder (cross-unit reference)"""
    pass


class DuplicateHandleError(GraphError):
    """The same object was declared twice as an input of one unit"""
    pass


class ConsumedHandleError(GraphError):
    """Object handle was already moved into an earlier command"""
    pass


class FrozenUnitError(GraphError):
    """Builder was already finished"""
    pass


class UndisposedObjectError(GraphError):
    """Unit leaves object results that are neither consumed nor transferred"""
    pass


# ============================================================================
# Planning
# ============================================================================


class PlanningError(IntentError):
    """Operation graph cannot be split into submittable units"""
    pass


class UnresolvableDependencyError(PlanningError):
    """A cross-unit dependency cannot be satisfied by any ledger query"""
    pass


# ============================================================================
# Local resources
# ============================================================================


class FeeError(IntentError):
    """Fee payment could not be arranged"""
    pass


class NoFeeSourceError(FeeError):
    """Sender owns no gas coin that the unit does not already use"""
    pass


class SigningError(IntentError):
    """Transaction could not be signed"""
    pass


class SigningUnavailableError(SigningError):
    """Signer holds no key for the requested address"""
    pass


# ============================================================================
# Submission
# ============================================================================


class SubmissionError(IntentError):
    """Network or transport failure while submitting or querying a unit"""

    def __init__(
        self,
        message: str,
        unit_index: Optional[int] = None,
        operation_index: Optional[int] = None,
        digest: Optional[str] = None,
    ):
        super().__init__(message, unit_index, operation_index)
        self.digest = digest


class ConfirmationTimeoutError(SubmissionError):
    """Finality of a submitted unit could not be established in time"""
    pass


class ExecutionRejectedError(IntentError):
    """Unit was final but its execution failed on-chain"""

    def __init__(
        self,
        message: str,
        unit_index: Optional[int] = None,
        operation_index: Optional[int] = None,
        digest: Optional[str] = None,
        effects: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, unit_index, operation_index)
        self.digest = digest
        self.effects = effects or {}
