"""
Parsing of submitted form data and building of the reply sent back.

Form data is what a browser posts: an ordered sequence of ``(name, value)``
entries where a name may repeat. ``parse`` turns it into a nested payload,
applies the submitted intent and hands the result to a resolver (the schema
adapter). ``Submission.reply`` packs the outcome for the client, which merges
it through ``SubmissionReconciler.apply_result``.
"""
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from formstate.config import INTENT, STATE
from formstate.exceptions import PathError
from formstate.form_state import FormState
from formstate.intent import Intent, IntentType, apply_intent, apply_intent_to_value, parse_intent
from formstate.paths import flatten, get_paths, is_container, is_prefix, normalize, set_value
from formstate.snapshot_model import SerializedState

logger = logging.getLogger(__name__)

FormData = Union[Mapping[str, Any], Iterable[Tuple[str, Any]]]
Resolver = Callable[[Dict[str, Any]], Mapping[str, Any]]


def to_entries(form_data: Optional[FormData]) -> List[Tuple[str, Any]]:
    """Normalize form data to a list of ``(name, value)`` entries.

    A mapping value that is a list stands for one entry per item.
    """
    if form_data is None:
        return []
    if isinstance(form_data, Mapping):
        entries = []
        for name, value in form_data.items():
            if isinstance(value, (list, tuple)):
                entries.extend((name, item) for item in value)
            else:
                entries.append((name, value))
        return entries
    return [(name, value) for name, value in form_data]


def from_value(tree: Any) -> List[Tuple[str, Any]]:
    """Entries a form showing ``tree`` would submit (leaves only, empties skipped)."""
    entries = []
    for path, node in flatten(tree).items():
        if is_container(node):
            continue
        submitted = normalize(node)
        if submitted is not None:
            entries.append((path, submitted))
    return entries


def clean_errors(error: Optional[Mapping[str, Iterable[Any]]]) -> Dict[str, List[Any]]:
    """Drop empty error lists."""
    return {path: list(errors) for path, errors in (error or {}).items() if errors}


def filter_errors(error: Mapping[str, List[Any]], validated: Mapping[str, bool]) -> Dict[str, List[Any]]:
    """Errors of paths at or below a validated path."""
    return {
        path: errors for path, errors in error.items()
        if any(is_prefix(path, checked) for checked, flag in validated.items() if flag)
    }


@dataclass(frozen=True)
class SubmissionResult:
    """What the server sends back after handling a submission."""
    status: Optional[str] = None
    initial_value: Optional[Dict[str, Any]] = None
    error: Dict[str, List[Any]] = field(default_factory=dict)
    state: SerializedState = field(default_factory=SerializedState)
    intent: Optional[Intent] = None
    reset: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            'status': self.status,
            'initial_value': self.initial_value,
            'error': {path: list(errors) for path, errors in self.error.items()},
            'state': self.state.to_dict(),
            'intent': self.intent.to_dict() if self.intent else None,
            'reset': self.reset,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'SubmissionResult':
        intent = data.get('intent')
        return cls(
            status=data.get('status'),
            initial_value=data.get('initial_value'),
            error=clean_errors(data.get('error')),
            state=SerializedState.from_dict(data.get('state') or {}),
            intent=Intent.from_dict(intent) if intent else None,
            reset=bool(data.get('reset', False)),
        )


@dataclass
class Submission:
    """Parsed submission.

    Attributes:
        payload: Nested value tree after the intent was applied
        intent: Decoded intent, None for a plain submit
        state: State carried by the hidden state control
        value: Resolved value, if the resolver accepted the payload
        error: Error map, if the resolver rejected it
        fields: Names of the submitted entries
    """
    payload: Dict[str, Any]
    intent: Optional[Intent] = None
    state: SerializedState = field(default_factory=SerializedState)
    value: Optional[Any] = None
    error: Optional[Dict[str, List[Any]]] = None
    fields: Tuple[str, ...] = ()

    @property
    def status(self) -> Optional[str]:
        """``success``/``error`` for a plain submit; None while an intent is in play."""
        if self.intent is not None:
            return None
        if self.error:
            return "error"
        if self.value is not None:
            return "success"
        return None

    def reply(
        self,
        reset_form: bool = False,
        form_errors: Optional[List[Any]] = None,
        field_errors: Optional[Mapping[str, Iterable[Any]]] = None,
    ) -> SubmissionResult:
        """Build the result sent back to the client.

        Args:
            reset_form: Ask the client to reset to its default value
            form_errors: Errors for the form as a whole (root path)
            field_errors: Additional errors keyed by path
        """
        if reset_form:
            return SubmissionResult(
                status=self.status,
                intent=Intent(IntentType.RESET, {}),
                reset=True,
            )

        validated = dict(self.state.validated)
        if self.intent is None:
            validated[""] = True
        elif self.intent.type is IntentType.VALIDATE:
            validated[self.intent.name] = True

        # Only validated fields show resolver errors; explicit ones always do
        error = filter_errors(clean_errors(self.error), validated)
        if form_errors:
            error[""] = error.get("", []) + list(form_errors)
        for path, errors in clean_errors(field_errors).items():
            error[path] = error.get(path, []) + errors

        return SubmissionResult(
            status="error" if error else self.status,
            initial_value=self.payload,
            error=error,
            state=SerializedState(key=dict(self.state.key), validated=validated, error=error),
            intent=self.intent,
        )


def decode_state(raw: Any) -> SerializedState:
    """Read the hidden state control; unreadable text gives an empty state."""
    if not isinstance(raw, str) or not raw:
        return SerializedState()
    try:
        data = json.loads(raw)
        if not isinstance(data, dict):
            raise ValueError(f"expected an object, got {type(data).__name__}")
        return SerializedState.from_dict(data)
    except (ValueError, TypeError, AttributeError) as e:
        logger.warning(f"Ignoring unreadable form state {raw!r}: {e}")
        return SerializedState()


def _shift_state(payload: Dict[str, Any], state: SerializedState, intent: Intent) -> SerializedState:
    """Move identity keys, validation flags and errors along with the items a list intent moved."""
    store = FormState("", default_value=payload)
    store.set_keys(state.key)
    store.restore(state.validated, state.error)
    try:
        apply_intent(store, intent)
    except IndexError:
        return state
    return SerializedState(key=dict(store.key), validated=dict(store.validated), error=dict(store.error))


def parse(
    form_data: FormData,
    resolve: Optional[Resolver] = None,
    intent_control: str = INTENT,
    state_control: str = STATE,
) -> Submission:
    """Parse form data into a ``Submission``.

    Repeated names become lists. The reserved intent and state controls are
    not part of the payload. The intent is applied to the payload before
    ``resolve`` runs, so the resolver sees the edited structure.

    Args:
        form_data: Mapping or sequence of ``(name, value)`` entries
        resolve: Called with the payload; returns a mapping holding
                 ``value`` or ``error``
    """
    grouped: Dict[str, List[Any]] = {}
    raw_intent = None
    raw_state = None
    for name, value in to_entries(form_data):
        if name == intent_control:
            raw_intent = value
        elif name == state_control:
            raw_state = value
        else:
            grouped.setdefault(name, []).append(value)

    payload: Dict[str, Any] = {}
    for name, values in grouped.items():
        try:
            if not get_paths(name):
                continue
        except PathError:
            logger.warning(f"Ignoring form entry with malformed name {name!r}")
            continue
        payload = set_value(payload, name, values[0] if len(values) == 1 else values)

    intent = parse_intent(raw_intent)
    state = decode_state(raw_state)
    if intent is not None:
        try:
            edited = apply_intent_to_value(payload, intent)
        except IndexError as e:
            logger.warning(f"Ignoring {intent.type.value} intent: {e}")
            intent = None
        else:
            if intent.type in (IntentType.INSERT, IntentType.REMOVE, IntentType.REORDER):
                state = _shift_state(payload, state, intent)
            payload = edited

    submission = Submission(payload=payload, intent=intent, state=state, fields=tuple(grouped))
    if resolve is not None:
        result = resolve(payload) or {}
        error = clean_errors(result.get('error'))
        if error:
            submission.error = error
        else:
            submission.value = result.get('value', payload)
    logger.debug(
        f"Parsed submission: {len(grouped)} fields, intent={intent.type.value if intent else None}, "
        f"status={submission.status}"
    )
    return submission
