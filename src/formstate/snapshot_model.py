"""
Immutable data structures handed out by the form state store.

Design Philosophy: Correct by Construction
- Snapshots are frozen dataclasses with read-only mapping views
- A snapshot never changes after creation; a new one is built per version
- Serialized state carries data only (no object references)
"""

from dataclasses import dataclass, field, fields
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional


@dataclass(frozen=True)
class Constraint:
    """Declarative constraint for a single field, as reported by the schema adapter.

    The core never evaluates these; they are forwarded to the rendering layer
    (e.g. as ``required``/``minlength`` attributes).
    """
    required: Optional[bool] = None
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    min: Optional[Any] = None
    max: Optional[Any] = None
    step: Optional[Any] = None
    multiple: Optional[bool] = None
    pattern: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'Constraint':
        """Build from a mapping, accepting camelCase keys from schema adapters."""
        aliases = {'minLength': 'min_length', 'maxLength': 'max_length'}
        known = {f.name for f in fields(cls)}
        values = {}
        for key, value in data.items():
            key = aliases.get(key, key)
            if key in known:
                values[key] = value
        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        """Only the constraints that are set."""
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not None}


EMPTY_CONSTRAINT = Constraint()


@dataclass(frozen=True)
class FormSnapshot:
    """Read-only view of one form's state at a given store version.

    Consumed by the rendering layer and by the subscription diff. All maps
    are keyed by path name; the root path ``""`` is always present in
    ``valid`` and ``dirty``.
    """
    form_id: str
    version: int
    status: Optional[str]
    initial_value: Mapping[str, Any]
    value: Mapping[str, Any]
    error: Mapping[str, List[Any]]
    constraint: Mapping[str, Constraint]
    key: Mapping[str, str]
    valid: Mapping[str, bool]
    dirty: Mapping[str, bool]
    validated: Mapping[str, bool]

    @classmethod
    def create(
        cls,
        form_id: str,
        version: int,
        status: Optional[str],
        initial_value: Dict[str, Any],
        value: Dict[str, Any],
        error: Dict[str, List[Any]],
        constraint: Dict[str, Constraint],
        key: Dict[str, str],
        valid: Dict[str, bool],
        dirty: Dict[str, bool],
        validated: Dict[str, bool],
    ) -> 'FormSnapshot':
        """Copy the store's maps and wrap them read-only."""
        return cls(
            form_id=form_id,
            version=version,
            status=status,
            initial_value=MappingProxyType(dict(initial_value)),
            value=MappingProxyType(dict(value)),
            error=MappingProxyType({path: tuple(errors) for path, errors in error.items()}),
            constraint=MappingProxyType(dict(constraint)),
            key=MappingProxyType(dict(key)),
            valid=MappingProxyType(dict(valid)),
            dirty=MappingProxyType(dict(dirty)),
            validated=MappingProxyType(dict(validated)),
        )

    def is_valid(self, name: str) -> bool:
        return self.valid.get(name, True)

    def is_dirty(self, name: str) -> bool:
        return self.dirty.get(name, False)


@dataclass(frozen=True)
class SerializedState:
    """State that survives a full page round-trip inside the hidden state control.

    Identity keys keep list item identity stable across server round-trips;
    the error map lets a freshly mounted form show the last submission's errors.
    """
    key: Dict[str, str] = field(default_factory=dict)
    validated: Dict[str, bool] = field(default_factory=dict)
    error: Dict[str, List[Any]] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Export to JSON-serializable dict."""
        return {
            'key': dict(self.key),
            'validated': dict(self.validated),
            'error': {path: list(errors) for path, errors in self.error.items()},
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'SerializedState':
        """Import from dict (e.g., decoded from the state control)."""
        return cls(
            key={str(path): str(token) for path, token in data.get('key', {}).items()},
            validated={str(path): bool(flag) for path, flag in data.get('validated', {}).items()},
            error={str(path): list(errors) for path, errors in data.get('error', {}).items()},
        )
