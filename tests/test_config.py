"""Tests for form configuration and the trigger policy."""
import threading

import pytest

from formstate import FormConfig, ValidationTrigger, get_default_config, set_default_config, should_trigger
from formstate.config import FormEvent


def test_defaults():
    config = FormConfig()
    assert config.should_validate is ValidationTrigger.ON_SUBMIT
    assert config.revalidate_trigger is ValidationTrigger.ON_SUBMIT
    assert config.intent_control == "__intent__"
    assert config.state_control == "__state__"


def test_string_triggers_are_coerced():
    config = FormConfig(should_validate="on_blur", should_revalidate="on_input")
    assert config.should_validate is ValidationTrigger.ON_BLUR
    assert config.revalidate_trigger is ValidationTrigger.ON_INPUT

    with pytest.raises(ValueError):
        FormConfig(should_validate="on_hover")


@pytest.mark.parametrize("trigger, event, expected", [
    ("on_submit", "input", False),
    ("on_submit", "blur", False),
    ("on_blur", "input", False),
    ("on_blur", "blur", True),
    ("on_input", "input", True),
    ("on_input", "blur", True),
    ("on_submit", "submit", True),
])
def test_should_trigger(trigger, event, expected):
    assert should_trigger(FormConfig(should_validate=trigger), FormEvent(event), validated=False) is expected


def test_validated_fields_use_revalidate_trigger():
    config = FormConfig(should_validate="on_submit", should_revalidate="on_input")
    assert not should_trigger(config, FormEvent.INPUT, validated=False)
    assert should_trigger(config, FormEvent.INPUT, validated=True)


def test_default_config_roundtrip():
    custom = FormConfig(id_prefix="checkout")
    set_default_config(custom)
    assert get_default_config() is custom

    set_default_config(None)
    assert get_default_config() == FormConfig()


def test_default_config_is_thread_local():
    """Test that another thread does not see this thread's default."""
    set_default_config(FormConfig(id_prefix="main"))
    seen = []
    worker = threading.Thread(target=lambda: seen.append(get_default_config().id_prefix))
    worker.start()
    worker.join()
    assert seen == ["form"]
