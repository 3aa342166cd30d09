"""Tests for field accessors and dependency tracking."""
import pytest

from formstate import Constraint, FieldAccessor, FormState, SubscriptionSubject
from formstate.field import get_all_error, get_error, get_key, get_value, is_all_valid, is_dirty, is_valid


@pytest.fixture
def snapshot(todos_state):
    todos_state.update_value("title", "Renamed")
    todos_state.apply_errors({"tasks[0].content": ["Too short"], "tasks": ["At most 2 tasks"]})
    return todos_state.get_snapshot()


def test_identifiers(snapshot):
    """Test that ids derive from the form id and the path."""
    field = FieldAccessor(snapshot, "tasks[0].content")
    assert field.name == "tasks[0].content"
    assert field.form_id == "todos"
    assert field.id == "todos-tasks[0].content"
    assert field.error_id == "todos-tasks[0].content-error"
    assert field.description_id == "todos-tasks[0].content-description"
    assert FieldAccessor(snapshot, "").id == "todos"


def test_reads(snapshot):
    title = FieldAccessor(snapshot, "title")
    content = FieldAccessor(snapshot, "tasks[0].content")

    assert title.value == "Renamed"
    assert title.default_value == "My list"
    assert title.dirty
    assert title.valid
    assert title.error is None
    assert content.error == ["Too short"]
    assert not content.valid
    assert content.key is None
    assert FieldAccessor(snapshot, "tasks[0]").key == snapshot.key["tasks[0]"]


def test_all_error_and_all_valid(snapshot):
    tasks = FieldAccessor(snapshot, "tasks")
    assert tasks.all_error == {"tasks": ["At most 2 tasks"], "tasks[0].content": ["Too short"]}
    assert not tasks.all_valid
    assert FieldAccessor(snapshot, "tasks[1]").all_valid
    assert FieldAccessor(snapshot, "").all_error == dict(tasks.all_error)


def test_construction_does_not_track():
    """Test that only property reads record dependencies."""
    state = FormState("login", default_value={"email": ""})
    subject = SubscriptionSubject()
    field = FieldAccessor(state.get_snapshot(), "email", subject)
    assert subject.is_empty()
    assert field.name == "email"
    assert field.id == "login-email"
    assert subject.is_empty()


def test_reads_record_category_and_scope(snapshot):
    subject = SubscriptionSubject()
    field = FieldAccessor(snapshot, "tasks", subject)

    field.value
    field.default_value
    field.error
    field.valid
    field.dirty
    field.key
    field.all_error
    field.all_valid

    for category in ("value", "initial_value", "error", "valid", "dirty", "key"):
        assert subject.scopes[category].name == {"tasks"}
    assert subject.scopes["error"].parent == {"tasks"}
    assert subject.scopes["valid"].parent == {"tasks"}
    assert subject.scopes["value"].parent == set()


def test_repeated_reads_are_idempotent(snapshot):
    subject = SubscriptionSubject()
    field = FieldAccessor(snapshot, "title", subject)
    field.value
    field.value
    FieldAccessor(snapshot, "title", subject).value
    assert subject.scopes["value"].name == {"title"}


def test_constraint_is_untracked():
    state = FormState("login", default_value={"email": ""}, constraint={"email": {"required": True, "maxLength": 50}})
    subject = SubscriptionSubject()
    field = FieldAccessor(state.get_snapshot(), "email", subject)

    assert field.constraint == Constraint(required=True, max_length=50)
    assert FieldAccessor(state.get_snapshot(), "missing").constraint == Constraint()
    assert subject.is_empty()


def test_fieldset_navigation(snapshot):
    """Test that a fieldset gives dotted access to nested fields."""
    fields = FieldAccessor(snapshot, "").get_fieldset()
    assert fields.title.value == "Renamed"
    assert fields.tasks[0].content.name == "tasks[0].content"
    assert fields["tasks"][1]["completed"].value is True

    task = FieldAccessor(snapshot, "tasks[1]").get_fieldset()
    assert task.content.value == "Ship it"


def test_children_named_like_properties():
    """Test that item access reaches a child whose name shadows an accessor property."""
    state = FormState("profile", default_value={"user": {"name": "Ada", "value": 3}})
    fields = FieldAccessor(state.get_snapshot(), "").get_fieldset()

    assert fields.user.name == "user"
    assert fields.user["name"].value == "Ada"
    assert fields.user["name"].name == "user.name"
    assert fields.user["value"].value == 3


def test_fieldset_is_read_only(snapshot):
    fields = FieldAccessor(snapshot, "").get_fieldset()
    with pytest.raises(AttributeError):
        fields.title = "x"


def test_field_list_tracks_list_value(snapshot):
    subject = SubscriptionSubject()
    items = FieldAccessor(snapshot, "tasks", subject).get_field_list()

    assert [item.name for item in items] == ["tasks[0]", "tasks[1]"]
    assert subject.scopes["value"].name == {"tasks"}
    assert FieldAccessor(snapshot, "title").get_field_list() == []


def test_read_helpers(snapshot):
    content = FieldAccessor(snapshot, "tasks[0].content")
    assert get_value(content) == "Write tests"
    assert get_error(content) == ["Too short"]
    assert get_all_error(content) == {"tasks[0].content": ["Too short"]}
    assert not is_valid(content)
    assert not is_all_valid(content)
    assert not is_dirty(content)
    assert get_key(FieldAccessor(snapshot, "tasks[1]")) == snapshot.key["tasks[1]"]
