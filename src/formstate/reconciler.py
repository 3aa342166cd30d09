"""
Submission reconciler: runs the validation adapter and folds its result into
the store.

The adapter is an external collaborator with the contract

    adapter(form_data, request) -> {"error": {...}} | {"value": ...} | Submission
                                   | awaitable of any of these

where ``request`` is a ``ValidationRequest``. Synchronous results are
returned right away; an awaitable yields a ``pending`` outcome whose
``completion`` coroutine settles it later. An adapter that raises, directly
or through its awaitable, yields a rejected run carrying the exception
message as an error on the root path.

Ordering: every run takes a generation number. When a pending run settles it
is dropped if a later run already applied a result, or if the form was reset
(or an explicit validate started) after it began. Last request wins.
"""
import inspect
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Coroutine, Dict, List, Mapping, Optional

from formstate.form_state import FormState
from formstate.intent import Intent
from formstate.snapshot_model import SerializedState
from formstate.submission import FormData, SubmissionResult, clean_errors, decode_state, to_entries
from formstate.subscription import ChangeSet

logger = logging.getLogger(__name__)

SUCCESS = "success"
ERROR = "error"
PENDING = "pending"

Commit = Callable[[Callable[[], ChangeSet]], ChangeSet]


@dataclass(frozen=True)
class ValidationRequest:
    """What the adapter learns about the run besides the form data."""
    form_id: str
    scope: Optional[str] = None
    intent: Optional[Intent] = None
    default_value: Optional[Dict[str, Any]] = None


@dataclass
class ValidationOutcome:
    """Result of one validation run.

    Attributes:
        status: ``success``, ``error`` or ``pending``
        generation: Run number, increasing per form
        scope: Path whose event triggered the run; None for a full submit
        value: Validated value (success)
        error: Error map (error)
        completion: Coroutine settling a pending run
        rejected: The adapter raised instead of returning errors
        applied: Whether the result reached the store
    """
    status: str
    generation: int
    scope: Optional[str] = None
    value: Any = None
    error: Dict[str, List[Any]] = field(default_factory=dict)
    completion: Optional[Coroutine[Any, Any, 'ValidationOutcome']] = field(default=None, repr=False)
    rejected: bool = False
    applied: bool = False

    @property
    def submittable(self) -> bool:
        return self.status == SUCCESS


def _run_commit(mutation: Callable[[], ChangeSet]) -> ChangeSet:
    return mutation()


class SubmissionReconciler:
    """Validation bookkeeping of one form."""

    def __init__(
        self,
        state: FormState,
        adapter: Optional[Callable[..., Any]] = None,
        commit: Commit = _run_commit,
    ):
        """
        Args:
            state: Store the results are applied to
            adapter: Validation adapter; None accepts every submission
            commit: Runs a store mutation (the form wraps it to notify observers)
        """
        self.state = state
        self.adapter = adapter
        self._commit = commit
        self._generation = 0
        self._applied_generation = 0
        self._superseded_generation = 0

    @property
    def generation(self) -> int:
        return self._generation

    # ==================== RUNNING ====================

    def run_validation(
        self,
        form_data: Optional[FormData],
        scope: Optional[str] = None,
        intent: Optional[Intent] = None,
    ) -> ValidationOutcome:
        """Start a validation run.

        Args:
            form_data: Submitted entries handed to the adapter
            scope: Path the run was triggered for; errors of a scoped run are
                   limited to validated paths and the submission status is
                   left alone. None validates the whole form.
            intent: Intent being processed, forwarded to the adapter
        """
        self._generation += 1
        generation = self._generation
        request = ValidationRequest(
            form_id=self.state.form_id,
            scope=scope,
            intent=intent,
            default_value=self.state.get_initial_value(""),
        )

        if self.adapter is None:
            return ValidationOutcome(SUCCESS, generation, scope, value=self.state.get_value(""))

        try:
            result = self.adapter(to_entries(form_data), request)
        except Exception as e:
            return self._rejected(e, generation, scope)
        if inspect.isawaitable(result):
            logger.debug(f"Validation run {generation} of {self.state.form_id!r} is pending")
            return ValidationOutcome(
                PENDING, generation, scope,
                completion=self._settle(result, generation, scope),
            )
        return self._to_outcome(result, generation, scope)

    async def _settle(self, awaitable: Awaitable[Any], generation: int, scope: Optional[str]) -> ValidationOutcome:
        try:
            result = await awaitable
            outcome = self._to_outcome(result, generation, scope)
        except Exception as e:
            outcome = self._rejected(e, generation, scope)

        if self.is_stale(generation):
            logger.warning(
                f"Dropping stale validation run {generation} of {self.state.form_id!r} "
                f"(applied={self._applied_generation}, superseded={self._superseded_generation})"
            )
            return outcome
        self.reconcile(outcome)
        return outcome

    def _rejected(self, error: Exception, generation: int, scope: Optional[str]) -> ValidationOutcome:
        """An adapter failure becomes an error on the form as a whole."""
        logger.warning(f"Validation run {generation} of {self.state.form_id!r} failed: {error}")
        return ValidationOutcome(ERROR, generation, scope, error={"": [str(error)]}, rejected=True)

    def _to_outcome(self, result: Any, generation: int, scope: Optional[str]) -> ValidationOutcome:
        if isinstance(result, Mapping):
            error, value = result.get('error'), result.get('value')
        else:
            error, value = getattr(result, 'error', None), getattr(result, 'value', None)
        error = clean_errors(error)
        if error:
            return ValidationOutcome(ERROR, generation, scope, error=error)
        return ValidationOutcome(SUCCESS, generation, scope, value=value)

    def is_stale(self, generation: int) -> bool:
        return generation < self._applied_generation or generation <= self._superseded_generation

    def supersede(self) -> None:
        """Make every run started so far stale (reset, explicit validate)."""
        self._superseded_generation = self._generation

    # ==================== APPLYING ====================

    def reconcile(self, outcome: ValidationOutcome) -> ValidationOutcome:
        """Fold an outcome into the store.

        ``pending`` only flags the submission as pending (previous errors
        stay). ``error`` replaces the error map. ``success`` clears it and
        keeps the live value.
        """
        if outcome.status == PENDING:
            if outcome.scope is None:
                self._commit(lambda: self.state.set_status(PENDING))
            return outcome

        error = outcome.error if outcome.status == ERROR else {}
        if outcome.scope is not None and not outcome.rejected:
            error = {path: errors for path, errors in error.items() if self.state.is_validated(path)}

        def mutation():
            change_set = self.state.apply_errors(error)
            if outcome.scope is None:
                change_set.merge(self.state.set_status(outcome.status))
            return change_set

        self._commit(mutation)
        self._applied_generation = max(self._applied_generation, outcome.generation)
        outcome.applied = True
        logger.debug(
            f"Reconciled run {outcome.generation} of {self.state.form_id!r}: "
            f"{outcome.status} with {len(error)} error paths"
        )
        return outcome

    def apply_result(self, result: SubmissionResult) -> None:
        """Merge a server reply.

        A reset reply restores the default value (the server's one when
        given). Otherwise identity keys, validation flags and errors are
        taken over while live values stay as they are.
        """
        if result.reset:
            self.supersede()
            initial = result.initial_value
            if initial is None:
                initial = self.state.get_initial_value("") or {}
            constraint = dict(self.state.constraint)
            self._commit(lambda: self.state.initialize(initial, constraint))
            return

        def mutation():
            change_set = self.state.set_keys(result.state.key)
            change_set.merge(self.state.restore(result.state.validated, result.error))
            change_set.merge(self.state.set_status(result.status))
            return change_set

        self._commit(mutation)

    # ==================== SERIALIZATION ====================

    def serialize(self) -> str:
        """JSON for the hidden state control."""
        return json.dumps({
            'version': self.state.version,
            'key': dict(self.state.key),
            'validated': dict(self.state.validated),
            'error': {path: list(errors) for path, errors in self.state.error.items()},
        }, sort_keys=True, default=str)

    @staticmethod
    def deserialize(text: Optional[str]) -> SerializedState:
        """Read the hidden state control; unreadable text gives an empty state."""
        return decode_state(text)

    def rehydrate(self, serialized: SerializedState) -> None:
        """Adopt keys, validation flags and errors of a previous page."""
        def mutation():
            change_set = self.state.set_keys(serialized.key)
            change_set.merge(self.state.restore(serialized.validated, serialized.error))
            return change_set

        self._commit(mutation)

