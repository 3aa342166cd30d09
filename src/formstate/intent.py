"""
Intent protocol: structural form edits encoded as submit button values.

An intent travels as the value of the reserved ``__intent__`` control, so a
button can request "insert a task" or "validate the email field" without any
script on the page:

    {"type": "insert", "payload": {"name": "tasks", "index": 0}}

Decoding fails closed: a malformed or unknown intent is treated as if no
intent had been submitted.
"""
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional

from formstate.exceptions import InvalidIntentError
from formstate.form_state import FormState
from formstate.paths import deep_merge, format_name, get_value, set_value
from formstate.subscription import ChangeSet

if TYPE_CHECKING:
    from formstate.form import Form

logger = logging.getLogger(__name__)


class IntentType(str, Enum):
    INSERT = "insert"
    REMOVE = "remove"
    REORDER = "reorder"
    UPDATE = "update"
    RESET = "reset"
    VALIDATE = "validate"


@dataclass(frozen=True)
class Intent:
    type: IntentType
    payload: Dict[str, Any] = field(default_factory=dict)

    @property
    def name(self) -> str:
        return self.payload.get("name") or ""

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type.value, "payload": dict(self.payload)}

    @classmethod
    def from_dict(cls, data: Any) -> 'Intent':
        """
        Raises:
            InvalidIntentError: If the type is unknown or the payload is incomplete
        """
        if not isinstance(data, Mapping):
            raise InvalidIntentError(f"Intent must be an object, got {type(data).__name__}")
        try:
            intent_type = IntentType(data.get("type"))
        except ValueError:
            raise InvalidIntentError(f"Unknown intent type {data.get('type')!r}") from None
        payload = data.get("payload", {})
        validate_payload(intent_type, payload)
        return cls(intent_type, dict(payload))


def _require_name(payload: Mapping[str, Any], optional: bool = False) -> None:
    if "name" not in payload:
        if optional:
            return
        raise InvalidIntentError("Intent payload requires 'name'")
    if not isinstance(payload["name"], str):
        raise InvalidIntentError(f"Intent 'name' must be a string, got {payload['name']!r}")


def _require_index(payload: Mapping[str, Any], key: str, optional: bool = False) -> None:
    if key not in payload or (optional and payload[key] is None):
        if optional:
            return
        raise InvalidIntentError(f"Intent payload requires {key!r}")
    value = payload[key]
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidIntentError(f"Intent {key!r} must be an integer, got {value!r}")


def validate_payload(intent_type: IntentType, payload: Mapping[str, Any]) -> None:
    """Check that ``payload`` carries the fields ``intent_type`` needs.

    Raises:
        InvalidIntentError: If a required field is missing or has the wrong type
    """
    if not isinstance(payload, Mapping):
        raise InvalidIntentError(f"Intent payload must be an object, got {type(payload).__name__}")

    if intent_type is IntentType.INSERT:
        _require_name(payload)
        _require_index(payload, "index", optional=True)
    elif intent_type is IntentType.REMOVE:
        _require_name(payload)
        _require_index(payload, "index")
    elif intent_type is IntentType.REORDER:
        _require_name(payload)
        _require_index(payload, "from")
        _require_index(payload, "to")
    elif intent_type is IntentType.UPDATE:
        _require_name(payload)
        _require_index(payload, "index", optional=True)
        if "value" not in payload:
            raise InvalidIntentError("Update intent requires 'value'")
    elif intent_type is IntentType.RESET:
        _require_name(payload, optional=True)
    elif intent_type is IntentType.VALIDATE:
        _require_name(payload)


def create_intent(intent_type, **payload) -> Intent:
    """Build a validated intent.

    ``from_`` is accepted for the ``from`` key. Omitted (None) options are
    dropped; an update's ``value`` may be None.
    """
    intent_type = IntentType(intent_type)
    if "from_" in payload:
        payload["from"] = payload.pop("from_")
    payload = {key: value for key, value in payload.items() if value is not None or key == "value"}
    validate_payload(intent_type, payload)
    return Intent(intent_type, payload)


def serialize_intent(intent: Intent) -> str:
    return json.dumps(intent.to_dict(), sort_keys=True)


def parse_intent(value: Any) -> Optional[Intent]:
    """Decode the reserved control's value; None for anything unusable."""
    if not isinstance(value, str) or not value:
        return None
    try:
        return Intent.from_dict(json.loads(value))
    except (json.JSONDecodeError, InvalidIntentError) as e:
        logger.debug(f"Ignoring intent {value!r}: {e}")
        return None


def requires_revalidation(intent: Intent) -> bool:
    """Structural edits revalidate the form; validate and reset do not."""
    return intent.type not in (IntentType.VALIDATE, IntentType.RESET)


def _update_target(intent: Intent) -> str:
    return format_name(intent.payload["name"], intent.payload.get("index"))


def _updated_value(previous: Any, intent: Intent) -> Any:
    if intent.payload.get("partial"):
        return deep_merge(previous, intent.payload["value"])
    return intent.payload["value"]


def apply_intent(state: FormState, intent: Intent) -> ChangeSet:
    """Perform the intent's edit on the store.

    List edits keep identity keys attached to their items. ``validate`` only
    marks the field as validated; running validation is the caller's job.

    Raises:
        IndexError: If a list index is out of range
    """
    payload = intent.payload
    logger.debug(f"Applying {intent.type.value} intent to {state.form_id!r}: {payload}")

    if intent.type is IntentType.INSERT:
        return state.insert_item(payload["name"], payload.get("index"), payload.get("default_value"))
    if intent.type is IntentType.REMOVE:
        return state.remove_item(payload["name"], payload["index"])
    if intent.type is IntentType.REORDER:
        return state.reorder_item(payload["name"], payload["from"], payload["to"])
    if intent.type is IntentType.UPDATE:
        target = _update_target(intent)
        return state.update_value(target, _updated_value(state.get_value(target), intent))
    if intent.type is IntentType.RESET:
        return state.reset(payload.get("name"))
    return state.mark_validated(payload["name"])


def apply_intent_to_value(tree: Mapping[str, Any], intent: Intent) -> Dict[str, Any]:
    """Perform the intent's edit on a plain value tree (server side parsing).

    ``reset`` and ``validate`` leave the tree unchanged.

    Raises:
        IndexError: If a list index is out of range
    """
    payload = intent.payload
    tree = dict(tree)

    if intent.type in (IntentType.INSERT, IntentType.REMOVE, IntentType.REORDER):
        name = payload["name"]
        current = get_value(tree, name)
        items = list(current) if isinstance(current, list) else []
        if intent.type is IntentType.INSERT:
            index = payload.get("index")
            if index is None:
                index = len(items)
            if not 0 <= index <= len(items):
                raise IndexError(f"Insert index {index} out of range for {name!r}")
            items.insert(index, payload.get("default_value"))
        elif intent.type is IntentType.REMOVE:
            if not 0 <= payload["index"] < len(items):
                raise IndexError(f"Remove index {payload['index']} out of range for {name!r}")
            items.pop(payload["index"])
        else:
            for index in (payload["from"], payload["to"]):
                if not 0 <= index < len(items):
                    raise IndexError(f"Reorder index {index} out of range for {name!r}")
            items.insert(payload["to"], items.pop(payload["from"]))
        return set_value(tree, name, items)

    if intent.type is IntentType.UPDATE:
        target = _update_target(intent)
        return set_value(tree, target, _updated_value(get_value(tree, target), intent))

    return tree


class IntentDispatcher:
    """Entry point for one intent type on one form.

    ``form.insert.get_button_props(name="tasks")`` gives the attributes of a
    submit button carrying the intent; ``form.insert(name="tasks")`` applies
    it right away.
    """

    def __init__(self, form: 'Form', intent_type: IntentType):
        self._form = form
        self.intent_type = IntentType(intent_type)

    def __repr__(self) -> str:
        return f"IntentDispatcher({self.intent_type.value!r}, form_id={self._form.id!r})"

    def get_button_props(self, **payload) -> Dict[str, Any]:
        intent = create_intent(self.intent_type, **payload)
        return {
            "type": "submit",
            "name": self._form.config.intent_control,
            "value": serialize_intent(intent),
            "form": self._form.id,
            "form_no_validate": True,
        }

    def __call__(self, **payload):
        return self._form.dispatch(create_intent(self.intent_type, **payload))
