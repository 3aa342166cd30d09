"""
Form: the event handling surface of one form.

Wires the store, the subscription registry, the reconciler and one intent
dispatcher per intent type together. Every store mutation made through the
form reports what it changed as a ``ChangeSet``; the observers whose
subjects cover a changed path are notified.

    form = Form("todos", default_value={"title": "", "tasks": [{"content": ""}]},
                on_validate=validate_todos)
    form.insert(name="tasks")
    outcome = form.handle_submit(form_data)
"""
import itertools
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union

from formstate.config import FormConfig, FormEvent, get_default_config, should_trigger
from formstate.field import FieldProxy, Fieldset
from formstate.form_state import FormState, generate_key
from formstate.intent import (
    Intent, IntentDispatcher, IntentType, apply_intent, parse_intent,
    requires_revalidation, serialize_intent,
)
from formstate.paths import get_value
from formstate.props import get_form_props as build_form_props
from formstate.reconciler import PENDING, SUCCESS, SubmissionReconciler, ValidationOutcome
from formstate.snapshot_model import FormSnapshot
from formstate.submission import FormData, SubmissionResult, from_value, parse, to_entries
from formstate.subscription import ChangeSet, SubscriptionRegistry, SubscriptionSubject

logger = logging.getLogger(__name__)

_form_ids = itertools.count(1)

Submitter = Union[Mapping[str, Any], Tuple[str, Any]]


@dataclass
class SubmissionOutcome:
    """What a submit event led to.

    A submission carrying an intent is never submittable: the intent was
    handled locally and the form stays on the page.
    """
    intent: Optional[Intent]
    validation: Optional[ValidationOutcome]

    @property
    def status(self) -> Optional[str]:
        return self.validation.status if self.validation else None

    @property
    def value(self) -> Any:
        return self.validation.value if self.validation else None

    @property
    def error(self) -> Dict[str, List[Any]]:
        return self.validation.error if self.validation else {}

    @property
    def completion(self):
        return self.validation.completion if self.validation else None

    @property
    def submittable(self) -> bool:
        return self.intent is None and self.validation is not None and self.validation.status == SUCCESS


class Form:
    """One mounted form."""

    def __init__(
        self,
        form_id: Optional[str] = None,
        default_value: Optional[Mapping[str, Any]] = None,
        constraint: Optional[Mapping[str, Any]] = None,
        on_validate: Optional[Callable[..., Any]] = None,
        config: Optional[FormConfig] = None,
        last_result: Union[SubmissionResult, Mapping[str, Any], None] = None,
        serialized_state: Optional[str] = None,
        key_factory: Callable[[], str] = generate_key,
    ):
        """
        Args:
            form_id: Stable id; generated from the config's prefix when omitted
            default_value: Nested default value
            constraint: path → Constraint (or constraint attribute mapping)
            on_validate: Validation adapter, see ``formstate.reconciler``
            config: Options; the thread's default config when omitted
            last_result: Server reply of the previous submission
            serialized_state: Content of the hidden state control of a previous page
            key_factory: Produces identity tokens
        """
        self.config = config or get_default_config()
        self.id = form_id or f"{self.config.id_prefix}-{next(_form_ids)}"
        self.state = FormState(self.id, default_value, constraint, key_factory)
        self.registry = SubscriptionRegistry()
        self.reconciler = SubmissionReconciler(self.state, on_validate, commit=self._mutate)

        self.insert = IntentDispatcher(self, IntentType.INSERT)
        self.remove = IntentDispatcher(self, IntentType.REMOVE)
        self.reorder = IntentDispatcher(self, IntentType.REORDER)
        self.update = IntentDispatcher(self, IntentType.UPDATE)
        self.reset = IntentDispatcher(self, IntentType.RESET)
        self.validate = IntentDispatcher(self, IntentType.VALIDATE)

        if serialized_state:
            self.reconciler.rehydrate(self.reconciler.deserialize(serialized_state))
        if last_result is not None:
            self.sync(last_result=last_result)

        logger.debug(f"Created form {self.id!r}")

    def __repr__(self) -> str:
        return f"Form(id={self.id!r}, version={self.state.version})"

    # ==================== READS ====================

    def get_snapshot(self) -> FormSnapshot:
        return self.state.get_snapshot()

    def subscribe(
        self,
        callback: Callable[[], None],
        get_subject: Optional[Callable[[], Optional[SubscriptionSubject]]] = None,
    ) -> Callable[[], None]:
        return self.registry.subscribe(callback, get_subject)

    def get_field(self, name: str = "", subject: Optional[SubscriptionSubject] = None) -> FieldProxy:
        return FieldProxy(self.get_snapshot(), name, subject, self.id)

    def get_fieldset(self, subject: Optional[SubscriptionSubject] = None) -> Fieldset:
        return Fieldset(self.get_snapshot(), "", subject, self.id)

    @property
    def fields(self) -> Fieldset:
        """Untracked fieldset of the current snapshot."""
        return self.get_fieldset()

    def get_form_props(self) -> Dict[str, Any]:
        return build_form_props(self.get_field())

    def get_serialized_state(self) -> str:
        return self.reconciler.serialize()

    # ==================== EVENTS ====================

    def handle_input(self, form_data: FormData, name: str) -> Optional[ValidationOutcome]:
        """Sync ``name`` from the form data; validate if the trigger policy says so."""
        return self._handle_field_event(FormEvent.INPUT, form_data, name)

    def handle_blur(self, form_data: FormData, name: str) -> Optional[ValidationOutcome]:
        return self._handle_field_event(FormEvent.BLUR, form_data, name)

    def handle_submit(self, form_data: FormData, submitter: Optional[Submitter] = None) -> SubmissionOutcome:
        """Handle a submit event.

        The whole value tree is synced from the form data first. A submitter
        carrying an intent has its intent applied (structural edits
        revalidate the form); otherwise the whole form is validated.

        Args:
            form_data: Entries of the form (without the submitter)
            submitter: The button that submitted, as its props or ``(name, value)``
        """
        entries = to_entries(form_data)
        if submitter is not None:
            if isinstance(submitter, Mapping):
                entries.append((submitter.get("name"), submitter.get("value")))
            else:
                entries.append(tuple(submitter))

        payload, raw_intent = self._read(entries)
        intent = parse_intent(raw_intent)
        self._mutate(lambda: self.state.replace_value(payload))

        if intent is not None:
            return SubmissionOutcome(intent, self.dispatch(intent, entries))

        self._mutate(lambda: self.state.mark_validated(""))
        return SubmissionOutcome(None, self._validate(entries, scope=None))

    def handle_reset(self) -> None:
        """Reset to the default value; in-flight validation is dropped."""
        self.reconciler.supersede()
        self._mutate(self.state.reset)

    def dispatch(self, intent: Intent, form_data: Optional[FormData] = None) -> Optional[ValidationOutcome]:
        """Apply an intent to the store and run the validation it calls for.

        Args:
            intent: Decoded intent
            form_data: Entries handed to the adapter; built from the current
                       value (plus the intent) when omitted

        Returns:
            The validation outcome, or None when nothing was validated
        """
        if form_data is None:
            form_data = from_value(self.state.get_value("")) + [
                (self.config.intent_control, serialize_intent(intent)),
            ]

        try:
            self._mutate(lambda: apply_intent(self.state, intent))
        except IndexError as e:
            logger.warning(f"Ignoring {intent.type.value} intent on form {self.id!r}: {e}")
            return None

        if intent.type is IntentType.RESET:
            self.reconciler.supersede()
            return None
        if intent.type is IntentType.VALIDATE:
            self.reconciler.supersede()
            return self._validate(form_data, scope=intent.name, intent=intent)
        if requires_revalidation(intent):
            return self._validate(form_data, scope=intent.name, intent=intent)
        return None

    def sync(
        self,
        last_result: Union[SubmissionResult, Mapping[str, Any], None] = None,
        default_value: Optional[Mapping[str, Any]] = None,
        constraint: Optional[Mapping[str, Any]] = None,
    ) -> None:
        """Take over new options from the rendering layer.

        A new default value reinitializes the form; a server reply is merged.
        """
        if default_value is not None:
            self.reconciler.supersede()
            self._mutate(lambda: self.state.initialize(default_value, constraint or self.state.constraint))
        if last_result is not None:
            if not isinstance(last_result, SubmissionResult):
                last_result = SubmissionResult.from_dict(last_result)
            self.reconciler.apply_result(last_result)

    def close(self) -> None:
        """Drop every subscription (the form is unmounted)."""
        self.reconciler.supersede()
        self.registry.clear()

    # ==================== INTERNALS ====================

    def _read(self, entries: List[Tuple[str, Any]]) -> Tuple[Dict[str, Any], Any]:
        raw_intent = None
        fields = []
        for name, value in entries:
            if name == self.config.intent_control:
                raw_intent = value
            else:
                fields.append((name, value))
        submission = parse(fields, intent_control=self.config.intent_control,
                           state_control=self.config.state_control)
        return submission.payload, raw_intent

    def _handle_field_event(self, event: FormEvent, form_data: FormData, name: str) -> Optional[ValidationOutcome]:
        entries = to_entries(form_data)
        payload, _ = self._read(entries)
        self._mutate(lambda: self.state.update_value(name, get_value(payload, name)))

        if not should_trigger(self.config, event, self.state.is_validated(name)):
            return None
        self._mutate(lambda: self.state.mark_validated(name))
        return self._validate(entries, scope=name)

    def _validate(
        self,
        form_data: FormData,
        scope: Optional[str],
        intent: Optional[Intent] = None,
    ) -> ValidationOutcome:
        outcome = self.reconciler.run_validation(form_data, scope=scope, intent=intent)
        self.reconciler.reconcile(outcome)
        if outcome.status == PENDING:
            logger.debug(f"Form {self.id!r} awaits validation run {outcome.generation}")
        return outcome

    def _mutate(self, mutation: Callable[[], ChangeSet]) -> ChangeSet:
        change_set = mutation()
        if not change_set.is_empty():
            self.registry.notify(change_set)
        return change_set
