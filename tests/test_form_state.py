"""Tests for the FormState store."""
import pytest

from formstate import FormState


def assert_valid_invariant(state):
    """valid(p) holds exactly when p has no errors and every child is valid."""
    for path in state.valid:
        expected = not state.error.get(path) and all(
            state.is_valid(child) for child in state.get_children(path)
        )
        assert state.valid[path] == expected, path


def task_keys(state):
    return [state.key[f"tasks[{index}]"] for index in range(len(state.get_value("tasks")))]


class TestInitialization:

    def test_flattens_default_value(self, todos_state):
        """Test that every node of the default value gets an entry."""
        assert todos_state.get_value("") == todos_state.get_initial_value("")
        assert todos_state.get_value("tasks[1].content") == "Ship it"
        assert todos_state.get_value("tasks[0]") == {"content": "Write tests", "completed": False}

    def test_clean_form_is_valid_and_pristine(self, login_state):
        assert login_state.is_valid("")
        assert not login_state.is_dirty("")
        assert login_state.status is None

    def test_every_array_element_has_a_key(self, todos_state):
        keys = task_keys(todos_state)
        assert len(set(keys)) == 2
        assert "tasks" not in todos_state.key
        assert "title" not in todos_state.key

    def test_initial_value_is_copied(self):
        default = {"tags": ["a"]}
        state = FormState("tags", default_value=default)
        state.update_value("tags[0]", "b")
        assert default == {"tags": ["a"]}
        assert state.get_initial_value("tags") == ["a"]

    def test_empty_form(self):
        state = FormState("empty")
        assert state.get_value("") == {}
        assert state.is_valid("")
        assert not state.is_dirty("")


class TestSnapshot:

    def test_snapshot_is_stable_without_mutation(self, login_state):
        """Test that the same snapshot object is returned until a mutation."""
        first = login_state.get_snapshot()
        assert login_state.get_snapshot() is first

        login_state.update_value("email", "a@b.c")
        second = login_state.get_snapshot()
        assert second is not first
        assert second.version == first.version + 1
        assert first.value["email"] == ""
        assert second.value["email"] == "a@b.c"

    def test_snapshot_maps_are_read_only(self, login_state):
        snapshot = login_state.get_snapshot()
        with pytest.raises(TypeError):
            snapshot.value["email"] = "x"


class TestValues:

    def test_typing_marks_field_and_root_dirty(self, login_state):
        """Test that editing a field makes it and the root dirty, not its siblings."""
        change_set = login_state.update_value("email", "a@b.c")

        assert login_state.is_dirty("email")
        assert login_state.is_dirty("")
        assert not login_state.is_dirty("password")
        assert change_set.changes["value"] == {"email", ""}
        assert change_set.changes["dirty"] == {"email", ""}

    def test_restoring_the_value_clears_dirty(self, login_state):
        login_state.update_value("email", "a@b.c")
        login_state.update_value("email", "")
        assert not login_state.is_dirty("email")
        assert not login_state.is_dirty("")

    def test_nested_update_rebuilds_containers(self, todos_state):
        todos_state.update_value("tasks[0].content", "Write more tests")

        assert todos_state.get_value("tasks[0]")["content"] == "Write more tests"
        assert todos_state.get_value("tasks")[0]["content"] == "Write more tests"
        assert todos_state.get_value("")["tasks"][0]["content"] == "Write more tests"
        assert todos_state.is_dirty("tasks[0].content")
        assert todos_state.is_dirty("tasks[0]")
        assert todos_state.is_dirty("tasks")
        assert not todos_state.is_dirty("tasks[1]")
        assert not todos_state.is_dirty("title")

    def test_unchecked_checkbox_matches_false_default(self, todos_state):
        """Test that a missing checkbox value equals a False default."""
        todos_state.update_value("tasks[0].completed", None)
        todos_state.update_value("tasks[1].completed", "on")
        assert not todos_state.is_dirty("tasks")

    def test_replace_value_keeps_surviving_keys(self, todos_state):
        keys = task_keys(todos_state)
        todos_state.replace_value({
            "title": "My list",
            "tasks": [{"content": "Write tests"}, {"content": "Ship it", "completed": "on"}],
        })
        assert task_keys(todos_state) == keys
        assert not todos_state.is_dirty("")

    def test_writing_past_the_end_keys_every_new_item(self):
        """Test that items padded in by a write past the end of a list get keys."""
        state = FormState("todos", default_value={"tasks": [{"content": "a"}]})
        state.update_value("tasks[2].content", "c")

        assert state.get_value("tasks") == [{"content": "a"}, None, {"content": "c"}]
        assert set(state.key) == {"tasks[0]", "tasks[1]", "tasks[2]"}
        assert len(set(state.key.values())) == 3

    def test_unchanged_write_reports_nothing(self, todos_state):
        version = todos_state.version
        change_set = todos_state.replace_value(todos_state.get_value(""))
        assert change_set.is_empty()
        assert todos_state.version == version

        change_set = todos_state.update_value("title", "My list")
        assert change_set.is_empty()

    def test_write_reports_only_changed_paths(self, todos_state):
        change_set = todos_state.replace_value({
            "title": "Renamed",
            "tasks": [{"content": "Write tests", "completed": False}, {"content": "Ship it", "completed": True}],
        })
        assert change_set.changes["value"] == {"title", ""}


class TestErrors:

    def test_error_invalidates_field_and_root_only(self, login_state):
        """Test that an error invalidates its path and ancestors only."""
        login_state.apply_errors({"password": ["Password is required"]})

        assert not login_state.is_valid("password")
        assert not login_state.is_valid("")
        assert login_state.is_valid("email")
        assert_valid_invariant(login_state)

    def test_errors_are_replaced_wholesale(self, login_state):
        login_state.apply_errors({"password": ["Required"]})
        login_state.apply_errors({"email": ["Invalid"]})

        assert login_state.error == {"email": ["Invalid"]}
        assert login_state.is_valid("password")
        assert_valid_invariant(login_state)

    def test_nested_errors(self, todos_state):
        todos_state.apply_errors({"tasks[0].content": ["Too short"]})

        assert not todos_state.is_valid("tasks[0]")
        assert not todos_state.is_valid("tasks")
        assert todos_state.is_valid("tasks[1]")
        assert_valid_invariant(todos_state)

        todos_state.apply_errors({})
        assert todos_state.is_valid("")
        assert_valid_invariant(todos_state)

    def test_error_on_unknown_path(self, login_state):
        """Test that an error for a path without a value still counts."""
        login_state.apply_errors({"confirm": ["Does not match"]})
        assert not login_state.is_valid("confirm")
        assert not login_state.is_valid("")

        login_state.apply_errors({})
        assert login_state.is_valid("")
        assert "confirm" not in login_state.valid

    def test_empty_and_malformed_entries_are_dropped(self, login_state):
        login_state.apply_errors({"email": [], "a..b": ["x"], "password": ["Required"]})
        assert login_state.error == {"password": ["Required"]}

    def test_change_set_reports_error_and_valid(self, login_state):
        change_set = login_state.apply_errors({"password": ["Required"]})
        assert change_set.changes["error"] == {"password"}
        assert change_set.changes["valid"] == {"password", ""}


class TestListOperations:

    def test_insert_appends_one_item_with_unique_key(self, todos_state):
        """Test that insert without index appends exactly one item with a new key."""
        keys = task_keys(todos_state)
        todos_state.insert_item("tasks", item={"content": "", "completed": False})

        assert len(todos_state.get_value("tasks")) == 3
        assert task_keys(todos_state)[:2] == keys
        new_key = todos_state.key["tasks[2]"]
        assert new_key not in keys
        assert todos_state.is_dirty("tasks")

    def test_insert_then_remove_restores_values(self, todos_state):
        """Test that inserting at 0 and removing at 0 restores the list."""
        values = todos_state.get_value("tasks")
        keys = task_keys(todos_state)

        todos_state.insert_item("tasks", 0, {"content": "First"})
        assert todos_state.get_value("tasks[0].content") == "First"
        assert task_keys(todos_state)[1:] == keys

        todos_state.remove_item("tasks", 0)
        assert todos_state.get_value("tasks") == values
        assert task_keys(todos_state) == keys
        assert not todos_state.is_dirty("")

    def test_removed_key_is_not_reused(self, todos_state):
        removed = todos_state.key["tasks[0]"]
        todos_state.remove_item("tasks", 0)
        todos_state.insert_item("tasks")
        assert removed not in todos_state.key.values()

    def test_reorder_moves_keys_with_items(self, todos_state):
        first, second = task_keys(todos_state)
        todos_state.reorder_item("tasks", 1, 0)

        assert todos_state.get_value("tasks[0].content") == "Ship it"
        assert task_keys(todos_state) == [second, first]
        assert todos_state.is_dirty("tasks[0].content")

    def test_nested_keys_travel_with_item(self):
        state = FormState("nested", default_value={"groups": [{"items": ["a"]}, {"items": ["b"]}]})
        inner = state.key["groups[1].items[0]"]
        state.reorder_item("groups", 1, 0)
        assert state.key["groups[0].items[0]"] == inner

    def test_errors_and_validation_travel_with_items(self):
        """Test that removing an item moves the errors of the items after it."""
        state = FormState("todos", default_value={"tasks": [{"content": "a"}, {"content": "b"}, {"content": ""}]})
        state.mark_validated("tasks[2].content")
        state.apply_errors({"tasks[0].content": ["Too short"], "tasks[2].content": ["Required"]})

        state.remove_item("tasks", 0)

        assert state.error == {"tasks[1].content": ["Required"]}
        assert state.validated == {"tasks[1].content": True}
        assert not state.is_valid("tasks[1]")
        assert state.is_valid("tasks[0]")
        assert_valid_invariant(state)

    def test_reorder_moves_errors(self, todos_state):
        todos_state.mark_validated("tasks[0].content")
        todos_state.apply_errors({"tasks[0].content": ["Too short"], "tasks": ["At most 1 task"]})

        todos_state.reorder_item("tasks", 0, 1)

        assert todos_state.error == {"tasks[1].content": ["Too short"], "tasks": ["At most 1 task"]}
        assert todos_state.validated == {"tasks[1].content": True}
        assert_valid_invariant(todos_state)

    @pytest.mark.parametrize("operation, args", [
        ("insert_item", ("tasks", 5)),
        ("remove_item", ("tasks", 2)),
        ("reorder_item", ("tasks", 0, 2)),
        ("remove_item", ("tasks", -1)),
    ])
    def test_out_of_range_index_raises(self, todos_state, operation, args):
        with pytest.raises(IndexError):
            getattr(todos_state, operation)(*args)

    def test_insert_into_missing_list(self, login_state):
        login_state.insert_item("tags", item="x")
        assert login_state.get_value("tags") == ["x"]
        assert "tags[0]" in login_state.key


class TestReset:

    def test_full_reset(self, todos_state):
        """Test that a full reset restores values and clears errors, flags and status."""
        keys = task_keys(todos_state)
        todos_state.update_value("title", "Changed")
        todos_state.apply_errors({"title": ["Bad"]})
        todos_state.mark_validated("")
        todos_state.set_status("error")

        todos_state.reset()

        assert todos_state.get_value("") == todos_state.get_initial_value("")
        assert todos_state.error == {}
        assert todos_state.validated == {}
        assert todos_state.status is None
        assert not todos_state.is_dirty("")
        assert set(task_keys(todos_state)).isdisjoint(keys)

    def test_partial_reset(self, todos_state):
        todos_state.update_value("tasks[0].content", "x")
        todos_state.update_value("title", "y")
        todos_state.apply_errors({"tasks[0].content": ["e"], "title": ["t"]})
        todos_state.mark_validated("tasks[0].content")

        todos_state.reset("tasks[0].content")

        assert todos_state.get_value("tasks[0].content") == "Write tests"
        assert todos_state.get_value("title") == "y"
        assert todos_state.error == {"title": ["t"]}
        assert not todos_state.is_validated("tasks[0].content")


class TestFlags:

    def test_validated_covers_descendants(self, todos_state):
        todos_state.mark_validated("tasks")
        assert todos_state.is_validated("tasks[0].content")
        assert not todos_state.is_validated("title")

    def test_status_change_is_reported(self, login_state):
        change_set = login_state.set_status("success")
        assert change_set.status_changed
        assert login_state.get_snapshot().status == "success"
        assert not login_state.set_status("success").status_changed

    def test_set_keys_rehydrates_identity(self, todos_state, key_factory):
        fresh = FormState("todos", default_value=todos_state.get_initial_value(""), key_factory=key_factory)
        assert fresh.key != todos_state.key

        fresh.set_keys(dict(todos_state.key, **{"tasks[9]": "ignored"}))
        assert fresh.key == todos_state.key

    def test_restore(self, login_state):
        login_state.restore({"email": True}, {"email": ["Invalid"]})
        assert login_state.is_validated("email")
        assert not login_state.is_valid("email")
