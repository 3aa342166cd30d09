"""Pytest configuration and shared fixtures."""
import itertools

import pytest

import formstate.config as config_module
from formstate import Form, FormState, SubjectRef


LOGIN_DEFAULT = {"email": "", "password": ""}

TODOS_DEFAULT = {
    "title": "My list",
    "tasks": [
        {"content": "Write tests", "completed": False},
        {"content": "Ship it", "completed": True},
    ],
}


class RecordingSubscriber:
    """Observer that counts notifications and owns a subject ref."""

    def __init__(self):
        self.calls = 0
        self.ref = SubjectRef()

    def __call__(self):
        self.calls += 1

    def get_subject(self):
        return self.ref.current


def validate_login(form_data, request):
    """Adapter used by the login fixtures: email and password are required."""
    values = dict(form_data)
    error = {}
    if not values.get("email"):
        error["email"] = ["Email is required"]
    elif "@" not in values["email"]:
        error["email"] = ["Email is invalid"]
    if not values.get("password"):
        error["password"] = ["Password is required"]
    if error:
        return {"error": error}
    return {"value": {"email": values["email"], "password": values["password"]}}


@pytest.fixture(autouse=True)
def reset_default_config():
    """Restore the built-in default config after each test."""
    original = getattr(config_module._default_config_context, 'value', None)
    yield
    config_module.set_default_config(original)


@pytest.fixture
def key_factory():
    """Deterministic identity tokens: k1, k2, ..."""
    counter = itertools.count(1)
    return lambda: f"k{next(counter)}"


@pytest.fixture
def login_state():
    return FormState("login", default_value=LOGIN_DEFAULT)


@pytest.fixture
def todos_state(key_factory):
    return FormState("todos", default_value=TODOS_DEFAULT, key_factory=key_factory)


@pytest.fixture
def login_form():
    return Form("login", default_value=LOGIN_DEFAULT, on_validate=validate_login)


@pytest.fixture
def todos_form(key_factory):
    return Form("todos", default_value=TODOS_DEFAULT, key_factory=key_factory)


@pytest.fixture
def subscriber():
    return RecordingSubscriber()
