"""
Form configuration and validation trigger policy.

Provides thread-local storage for the default ``FormConfig``, used by every
``Form`` built without explicit options. Set it once at startup (or per test):

    set_default_config(FormConfig(should_validate=ValidationTrigger.ON_BLUR))
"""

import threading
from dataclasses import dataclass
from enum import Enum
from typing import Optional

INTENT = "__intent__"
STATE = "__state__"


class ValidationTrigger(Enum):
    """When a field is validated."""
    ON_SUBMIT = "on_submit"
    ON_BLUR = "on_blur"
    ON_INPUT = "on_input"


class FormEvent(Enum):
    INPUT = "input"
    BLUR = "blur"
    SUBMIT = "submit"


@dataclass(frozen=True)
class FormConfig:
    """Options shared by every form built from this config.

    Attributes:
        should_validate: Trigger for fields that were never validated
        should_revalidate: Trigger for fields already validated once;
                           None means same as ``should_validate``
        id_prefix: Prepended to generated form ids
        intent_control: Name of the reserved control carrying intents
        state_control: Name of the hidden control carrying serialized state
    """
    should_validate: ValidationTrigger = ValidationTrigger.ON_SUBMIT
    should_revalidate: Optional[ValidationTrigger] = None
    id_prefix: str = "form"
    intent_control: str = INTENT
    state_control: str = STATE

    def __post_init__(self):
        for name in ('should_validate', 'should_revalidate'):
            value = getattr(self, name)
            if isinstance(value, str):
                object.__setattr__(self, name, ValidationTrigger(value))

    @property
    def revalidate_trigger(self) -> ValidationTrigger:
        return self.should_revalidate or self.should_validate


_default_config_context = threading.local()


def set_default_config(config: Optional[FormConfig]) -> None:
    """Set the default config for this thread (None restores the built-in one)."""
    _default_config_context.value = config


def get_default_config() -> FormConfig:
    config = getattr(_default_config_context, 'value', None)
    if config is None:
        config = FormConfig()
        _default_config_context.value = config
    return config


def should_trigger(config: FormConfig, event: FormEvent, validated: bool) -> bool:
    """Decide whether ``event`` on a field runs validation.

    Submit always validates. Input validates under ``on_input``; blur
    validates under ``on_blur`` or ``on_input`` (a blur follows any input).
    Fields validated before use ``should_revalidate``.
    """
    event = FormEvent(event)
    if event is FormEvent.SUBMIT:
        return True
    trigger = config.revalidate_trigger if validated else config.should_validate
    if event is FormEvent.INPUT:
        return trigger is ValidationTrigger.ON_INPUT
    return trigger in (ValidationTrigger.ON_BLUR, ValidationTrigger.ON_INPUT)
