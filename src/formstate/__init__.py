"""
Progressive-enhancement form state engine.

This package keeps the state of HTML forms (values, errors, validity, dirty
flags and list item identity) in flat path-keyed maps, and notifies
observers only about the paths they actually read.

Key Features:
- Path addressing of nested values (``tasks[0].content``)
- Snapshot based store with derived ``valid``/``dirty`` flags
- Fine-grained subscriptions by path and category
- Intents (insert, remove, reorder, update, reset, validate) that work as
  plain submit buttons
- Validation reconciliation with last-request-wins ordering
- Serialized state surviving full page round-trips

Quick Start:
    >>> from formstate import Form, SubjectRef
    >>>
    >>> form = Form("login", default_value={"email": "", "password": ""})
    >>> ref = SubjectRef()
    >>> unsubscribe = form.subscribe(rerender, lambda: ref.current)
    >>>
    >>> email = form.get_field("email", ref.current)
    >>> email.value          # recorded: rerender runs when email changes
    >>> form.handle_input({"email": "a@b.c", "password": ""}, "email")

Modules:
    - paths: path names, flattening and path-copying writes
    - form_state: the store (FormState)
    - subscription: change sets, subjects, registry
    - field: field accessors
    - intent: intent protocol
    - submission: form data parsing and server replies
    - reconciler: validation runs and state serialization
    - form: event handling surface (Form)
    - context: scopes, subject refs, hidden state control
    - props: control attribute builders
    - config: defaults and validation trigger policy
"""

from formstate.exceptions import FormStateError, FormContextError, PathError, InvalidIntentError

# Paths
from formstate.paths import (
    format_paths,
    get_paths,
    format_name,
    get_parent,
    is_prefix,
    is_ancestor,
    get_value,
    set_value,
    flatten,
    normalize,
)

# Store
from formstate.snapshot_model import Constraint, FormSnapshot, SerializedState
from formstate.form_state import FormState, generate_key

# Subscriptions
from formstate.subscription import (
    ChangeSet,
    SubscriptionScope,
    SubscriptionSubject,
    SubscriptionRegistry,
    diff_snapshots,
)

# Fields
from formstate.field import (
    FieldAccessor,
    FieldProxy,
    Fieldset,
    get_default_value,
    get_error,
    get_all_error,
    get_key,
    is_all_valid,
    is_dirty,
    is_valid,
)

# Intents
from formstate.intent import (
    Intent,
    IntentType,
    IntentDispatcher,
    create_intent,
    serialize_intent,
    parse_intent,
    apply_intent,
    requires_revalidation,
)

# Submission
from formstate.submission import Submission, SubmissionResult, parse
from formstate.reconciler import SubmissionReconciler, ValidationOutcome, ValidationRequest

# Form
from formstate.form import Form, SubmissionOutcome
from formstate.context import (
    FormScope,
    SubjectRef,
    form_context,
    get_current_scope,
    use_form_context,
    get_field_config,
    form_state_input,
)

# Props
from formstate.props import (
    get_form_props,
    get_input_props,
    get_textarea_props,
    get_select_props,
    get_fieldset_props,
)

# Configuration
from formstate.config import (
    FormConfig,
    ValidationTrigger,
    set_default_config,
    get_default_config,
    should_trigger,
)

__all__ = [
    # Exceptions
    'FormStateError',
    'FormContextError',
    'PathError',
    'InvalidIntentError',
    # Paths
    'format_paths',
    'get_paths',
    'format_name',
    'get_parent',
    'is_prefix',
    'is_ancestor',
    'get_value',
    'set_value',
    'flatten',
    'normalize',
    # Store
    'Constraint',
    'FormSnapshot',
    'SerializedState',
    'FormState',
    'generate_key',
    # Subscriptions
    'ChangeSet',
    'SubscriptionScope',
    'SubscriptionSubject',
    'SubscriptionRegistry',
    'diff_snapshots',
    # Fields
    'FieldAccessor',
    'FieldProxy',
    'Fieldset',
    'get_default_value',
    'get_error',
    'get_all_error',
    'get_key',
    'is_all_valid',
    'is_dirty',
    'is_valid',
    # Intents
    'Intent',
    'IntentType',
    'IntentDispatcher',
    'create_intent',
    'serialize_intent',
    'parse_intent',
    'apply_intent',
    'requires_revalidation',
    # Submission
    'Submission',
    'SubmissionResult',
    'parse',
    'SubmissionReconciler',
    'ValidationOutcome',
    'ValidationRequest',
    # Form
    'Form',
    'SubmissionOutcome',
    'FormScope',
    'SubjectRef',
    'form_context',
    'get_current_scope',
    'use_form_context',
    'get_field_config',
    'form_state_input',
    # Props
    'get_form_props',
    'get_input_props',
    'get_textarea_props',
    'get_select_props',
    'get_fieldset_props',
    # Configuration
    'FormConfig',
    'ValidationTrigger',
    'set_default_config',
    'get_default_config',
    'should_trigger',
]

__version__ = '1.0.0'
__description__ = 'Progressive-enhancement form state engine'
