"""Tests for form scopes and render bindings."""
import json

import pytest

from formstate import FormContextError, FormScope, SubjectRef, form_context, get_current_scope
from formstate.context import form_state_input, get_field_config, use_form_context


def test_scope_is_immutable(login_form, todos_form):
    """Test that providing a form leaves the parent scope untouched."""
    parent = FormScope().provide(login_form)
    child = parent.provide(todos_form)

    assert "todos" in child
    assert "todos" not in parent
    assert len(child) == 2
    assert "login" not in child.remove("login")
    assert "login" in child


def test_lookup(login_form, todos_form):
    scope = FormScope({"login": login_form})
    assert scope.get("login") is login_form
    assert scope.get("missing", form=todos_form) is todos_form
    with pytest.raises(FormContextError):
        scope.get("missing")
    with pytest.raises(FormContextError):
        scope.get(None)


def test_form_context_nests(login_form, todos_form):
    assert len(get_current_scope()) == 0

    with form_context(login_form):
        with form_context(todos_form) as inner:
            assert inner is get_current_scope()
            assert set(inner.forms) == {"login", "todos"}
        assert set(get_current_scope().forms) == {"login"}

    assert len(get_current_scope()) == 0


def test_use_form_context_notifies_through_subject_ref(login_form):
    """Test that the observer is driven by what its latest render read."""
    calls = []
    ref = SubjectRef()
    binding = use_form_context("login", lambda: calls.append(1), subject_ref=ref,
                               scope=FormScope().provide(login_form))

    assert binding.form is login_form
    assert binding.snapshot is login_form.get_snapshot()

    get_field_config("login", binding.snapshot, "password", subject_ref=ref).value
    login_form.handle_input({"email": "a", "password": ""}, "email")
    assert calls == []

    ref.reset()
    get_field_config("login", login_form.get_snapshot(), "email", subject_ref=ref).value
    login_form.handle_input({"email": "ab", "password": ""}, "email")
    assert calls == [1]

    binding.unsubscribe()
    login_form.handle_input({"email": "abc", "password": ""}, "email")
    assert calls == [1]


def test_use_form_context_from_current_scope(login_form):
    with form_context(login_form):
        binding = use_form_context("login", lambda: None)
    assert binding.form is login_form
    binding.unsubscribe()


def test_missing_form_raises():
    with pytest.raises(FormContextError):
        use_form_context("nowhere", lambda: None)


def test_get_field_config_with_key(todos_form):
    field = get_field_config("todos", todos_form.get_snapshot(), "tasks", key=1)
    assert field.name == "tasks[1]"
    assert field.content.value == "Ship it"


def test_form_state_input(todos_form):
    props = form_state_input(form=todos_form)
    assert props["type"] == "hidden"
    assert props["name"] == "__state__"
    assert props["form"] == "todos"
    assert json.loads(props["value"])["key"] == dict(todos_form.get_snapshot().key)
