"""
Field accessors: per-path, per-render views over a form snapshot.

Reading a tracked property returns the value AND records the read into the
render's ``SubscriptionSubject``, so the subject is built incrementally as
rendering proceeds:

    subject = SubscriptionSubject()
    email = FieldAccessor(snapshot, "email", subject, form_id="login")
    email.value       # records ('value', 'name', 'email')
    email.all_error   # records ('error', 'parent', 'email')

Constructing an accessor never touches the subject. The module-level helpers
(``get_value``, ``get_error``, ...) read through an accessor and are the
preferred way for rendering code to consume state.
"""
from typing import Any, Dict, List, Optional, Set, Tuple

from formstate.paths import format_name, is_prefix
from formstate.snapshot_model import EMPTY_CONSTRAINT, Constraint, FormSnapshot
from formstate.subscription import SubscriptionSubject


class FieldAccessor:
    """Lazy view of one path of a form snapshot."""

    def __init__(
        self,
        snapshot: FormSnapshot,
        name: str,
        subject: Optional[SubscriptionSubject] = None,
        form_id: Optional[str] = None,
    ):
        """
        Args:
            snapshot: Snapshot the accessor reads from
            name: Path name of the field ("" for the form itself)
            subject: Sink for read dependencies; None disables tracking
            form_id: Defaults to the snapshot's form id
        """
        self._snapshot = snapshot
        self._name = name
        self._subject = subject
        self._form_id = form_id if form_id is not None else snapshot.form_id
        self._recorded: Set[Tuple[str, str]] = set()

    def __repr__(self) -> str:
        return f"FieldAccessor(form_id={self._form_id!r}, name={self._name!r})"

    def _track(self, category: str, scope: str) -> None:
        if self._subject is None or (category, scope) in self._recorded:
            return
        self._recorded.add((category, scope))
        self._subject.add(category, scope, self._name)

    # ==================== IDENTIFIERS (untracked) ====================

    @property
    def name(self) -> str:
        return self._name

    @property
    def form_id(self) -> str:
        return self._form_id

    @property
    def id(self) -> str:
        return f"{self._form_id}-{self._name}" if self._name else self._form_id

    @property
    def error_id(self) -> str:
        return f"{self.id}-error"

    @property
    def description_id(self) -> str:
        return f"{self.id}-description"

    @property
    def constraint(self) -> Constraint:
        return self._snapshot.constraint.get(self._name, EMPTY_CONSTRAINT)

    # ==================== TRACKED READS ====================

    @property
    def value(self) -> Any:
        self._track('value', 'name')
        return self._snapshot.value.get(self._name)

    @property
    def default_value(self) -> Any:
        self._track('initial_value', 'name')
        return self._snapshot.initial_value.get(self._name)

    @property
    def error(self) -> Optional[List[Any]]:
        """Errors recorded for this exact path, or None."""
        self._track('error', 'name')
        errors = self._snapshot.error.get(self._name)
        return list(errors) if errors else None

    @property
    def valid(self) -> bool:
        self._track('valid', 'name')
        return self._snapshot.is_valid(self._name)

    @property
    def dirty(self) -> bool:
        self._track('dirty', 'name')
        return self._snapshot.is_dirty(self._name)

    @property
    def key(self) -> Optional[str]:
        self._track('key', 'name')
        return self._snapshot.key.get(self._name)

    @property
    def all_error(self) -> Dict[str, List[Any]]:
        """Errors of this path and every descendant, keyed by path."""
        self._track('error', 'parent')
        return {
            path: list(errors)
            for path, errors in self._snapshot.error.items()
            if is_prefix(path, self._name)
        }

    @property
    def all_valid(self) -> bool:
        """True when neither this path nor any descendant has errors."""
        self._track('valid', 'parent')
        return all(
            self._snapshot.is_valid(path)
            for path in self._snapshot.error
            if is_prefix(path, self._name)
        )

    # ==================== NAVIGATION ====================

    def get_fieldset(self) -> 'Fieldset':
        """Child accessors of an object field."""
        return Fieldset(self._snapshot, self._name, self._subject, self._form_id)

    def get_field_list(self) -> List['FieldAccessor']:
        """One accessor per item of an array field (reads the list value)."""
        self._track('value', 'name')
        items = self._snapshot.value.get(self._name)
        if not isinstance(items, list):
            return []
        return [
            type(self)(self._snapshot, format_name(self._name, index), self._subject, self._form_id)
            for index in range(len(items))
        ]


class Fieldset:
    """Attribute/item access to child fields of an object path.

    Provides dotted access while the state stays flat:
    - External API: fields.tasks[0].content
    - Internal: snapshot.value['tasks[0].content']
    """

    def __init__(
        self,
        snapshot: FormSnapshot,
        name: str,
        subject: Optional[SubscriptionSubject] = None,
        form_id: Optional[str] = None,
    ):
        object.__setattr__(self, '_snapshot', snapshot)
        object.__setattr__(self, '_name', name)
        object.__setattr__(self, '_subject', subject)
        object.__setattr__(self, '_form_id', form_id)

    def __getattr__(self, name: str) -> 'FieldProxy':
        if name.startswith('_'):
            raise AttributeError(name)
        return FieldProxy(self._snapshot, format_name(self._name, name), self._subject, self._form_id)

    def __getitem__(self, key) -> 'FieldProxy':
        return FieldProxy(self._snapshot, format_name(self._name, key), self._subject, self._form_id)

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError("Fieldset is read-only. Dispatch an update intent to change values.")


class FieldProxy(FieldAccessor):
    """Accessor that also supports chained child access (``fields.tasks[0].content``).

    Attribute access only reaches children whose names are not accessor
    attributes: ``fields.user.name`` is the name of ``user`` itself, and the
    same holds for ``value``, ``key``, ``error``, ``id``, ``valid``,
    ``dirty`` and the other properties. Use item access for those children:
    ``fields.user["name"]``.
    """

    def __getattr__(self, name: str) -> 'FieldProxy':
        if name.startswith('_'):
            raise AttributeError(name)
        return FieldProxy(self._snapshot, format_name(self._name, name), self._subject, self._form_id)

    def __getitem__(self, key) -> 'FieldProxy':
        return FieldProxy(self._snapshot, format_name(self._name, key), self._subject, self._form_id)


# ==================== READ HELPERS ====================

def get_value(field: FieldAccessor) -> Any:
    return field.value


def get_default_value(field: FieldAccessor) -> Any:
    return field.default_value


def get_error(field: FieldAccessor) -> Optional[List[Any]]:
    return field.error


def get_all_error(field: FieldAccessor) -> Dict[str, List[Any]]:
    return field.all_error


def is_valid(field: FieldAccessor) -> bool:
    return field.valid


def is_all_valid(field: FieldAccessor) -> bool:
    return field.all_valid


def is_dirty(field: FieldAccessor) -> bool:
    return field.dirty


def get_key(field: FieldAccessor) -> Optional[str]:
    return field.key
