"""
Form scopes: how rendering code finds the form it belongs to.

A ``FormScope`` maps form ids to mounted forms. Scopes are immutable;
providing a form yields a child scope, so nested regions can see more forms
than their parents without affecting them. Lookups are explicit: code that
renders a field receives the scope (or the form) it should read from.

For call chains that cannot pass a scope around, ``form_context()`` makes a
scope current for the duration of a ``with`` block using contextvars:

    with form_context(login_form):
        binding = use_form_context("login", on_change)

Key components:
- FormScope: immutable form id → Form mapping
- SubjectRef: holds the subject of the latest render, reset on every render
- use_form_context(): subscribe to a form and read its snapshot
- get_field_config(): tracked field accessor for one render
- form_state_input(): attributes of the hidden state control
"""

import contextvars
import logging
from contextlib import contextmanager
from types import MappingProxyType
from typing import Any, Callable, Dict, Mapping, NamedTuple, Optional, Union

from formstate.exceptions import FormContextError
from formstate.field import FieldProxy
from formstate.form import Form
from formstate.paths import format_name
from formstate.snapshot_model import FormSnapshot
from formstate.subscription import SubscriptionSubject

logger = logging.getLogger(__name__)


class FormScope:
    """Immutable set of forms visible to a region of the rendering tree."""

    def __init__(self, forms: Optional[Mapping[str, Form]] = None):
        self._forms = MappingProxyType(dict(forms or {}))

    def __contains__(self, form_id: str) -> bool:
        return form_id in self._forms

    def __len__(self) -> int:
        return len(self._forms)

    def __repr__(self) -> str:
        return f"FormScope({sorted(self._forms)})"

    @property
    def forms(self) -> Mapping[str, Form]:
        return self._forms

    def provide(self, form: Form) -> 'FormScope':
        """Child scope that also contains ``form`` (replacing one with the same id)."""
        return FormScope({**self._forms, form.id: form})

    def remove(self, form_id: str) -> 'FormScope':
        """Child scope without ``form_id`` (the form was unmounted)."""
        return FormScope({key: form for key, form in self._forms.items() if key != form_id})

    def get(self, form_id: Optional[str], form: Optional[Form] = None) -> Form:
        """Resolve a form: an explicitly passed form wins over the scope.

        Raises:
            FormContextError: If no form with ``form_id`` is in scope
        """
        if form is not None:
            return form
        found = self._forms.get(form_id) if form_id is not None else None
        if found is None:
            raise FormContextError(form_id)
        return found


# Scope made current by form_context(); empty outside any with block
current_scope: contextvars.ContextVar[FormScope] = contextvars.ContextVar('current_form_scope', default=FormScope())


def get_current_scope() -> FormScope:
    return current_scope.get()


@contextmanager
def form_context(form: Form, scope: Optional[FormScope] = None):
    """Make a scope containing ``form`` current for the duration of the block.

    Args:
        form: Form to provide
        scope: Parent scope; the current one when omitted

    Yields:
        The child scope
    """
    child = (scope or current_scope.get()).provide(form)
    token = current_scope.set(child)
    try:
        yield child
    finally:
        current_scope.reset(token)


class SubjectRef:
    """Holder of the subscription subject built during the latest render."""

    def __init__(self):
        self.current = SubscriptionSubject()

    def reset(self) -> SubscriptionSubject:
        """Start a new render: dependencies of the previous one are forgotten."""
        self.current = SubscriptionSubject()
        return self.current


class FormContextBinding(NamedTuple):
    form: Form
    snapshot: FormSnapshot
    unsubscribe: Callable[[], None]


def _resolve_scope(scope: Optional[FormScope]) -> FormScope:
    return scope if scope is not None else current_scope.get()


def use_form_context(
    form_id: Optional[str],
    on_change: Callable[[], None],
    form: Optional[Form] = None,
    subject_ref: Optional[SubjectRef] = None,
    scope: Optional[FormScope] = None,
) -> FormContextBinding:
    """Subscribe an observer to a form and read its current snapshot.

    The observer is notified only for paths recorded in ``subject_ref`` by
    its latest render; without a subject ref it is never notified by field
    changes.

    Raises:
        FormContextError: If the form is not in scope
    """
    resolved = _resolve_scope(scope).get(form_id, form)
    unsubscribe = resolved.subscribe(
        on_change,
        (lambda: subject_ref.current) if subject_ref is not None else None,
    )
    return FormContextBinding(resolved, resolved.get_snapshot(), unsubscribe)


def get_field_config(
    form_id: str,
    snapshot: FormSnapshot,
    name: str = "",
    key: Union[str, int, None] = None,
    subject_ref: Optional[SubjectRef] = None,
) -> FieldProxy:
    """Tracked accessor for ``name`` (or its child ``key``) in one render."""
    return FieldProxy(
        snapshot,
        format_name(name, key),
        subject_ref.current if subject_ref is not None else None,
        form_id,
    )


def form_state_input(
    form_id: Optional[str] = None,
    form: Optional[Form] = None,
    scope: Optional[FormScope] = None,
) -> Dict[str, Any]:
    """Attributes of the hidden control carrying the serialized state.

    Raises:
        FormContextError: If the form is not in scope
    """
    resolved = _resolve_scope(scope).get(form_id, form)
    return {
        "type": "hidden",
        "name": resolved.config.state_control,
        "value": resolved.get_serialized_state(),
        "form": resolved.id,
    }
