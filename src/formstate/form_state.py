"""
FormState: the path-keyed state store of one form.

This class holds form state independently of any rendering layer.
Lifecycle: created when the form mounts (or is first referenced), discarded
when it unmounts.

Core maps (all keyed by path name, see ``formstate.paths``):
- initial_value: flattened default value tree (containers included)
- value: flattened current value tree
- error: path → list of error descriptors
- constraint: path → Constraint (read-only, from the schema adapter)
- key: array element path → identity token

Derived maps:
- valid: False iff the path or any descendant has errors
- dirty: True iff the path or any descendant differs from its initial value
- validated: paths that went through a validation pass

Every write goes through ``_write``/``_drop`` so each public mutation can
report precisely what changed as a ``ChangeSet`` and bump ``version`` once.
Derived flags are recomputed bottom-up for the touched subtree and its
ancestor chain only.
"""
import copy
import functools
import logging
import uuid
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Set, Tuple

from formstate.paths import (
    flatten, format_name, get_ancestors, get_parent, get_paths, get_value,
    is_prefix, normalize, set_value,
)
from formstate.snapshot_model import Constraint, FormSnapshot
from formstate.subscription import CATEGORIES, ChangeSet

logger = logging.getLogger(__name__)

# Per-item maps that move with a list item: category → {suffix relative to the item path: entry}
ITEM_STATE = ('key', 'validated', 'error')
ItemState = Dict[str, Dict[str, Any]]


def generate_key() -> str:
    """Fresh opaque identity token."""
    return uuid.uuid4().hex


@functools.lru_cache(maxsize=4096)
def _depth(path: str) -> int:
    return len(get_paths(path))


class FormState:
    """Authoritative state of one form.

    Not thread-safe: a form has exactly one logical writer at a time.
    """

    def __init__(
        self,
        form_id: str,
        default_value: Optional[Mapping[str, Any]] = None,
        constraint: Optional[Mapping[str, Any]] = None,
        key_factory: Callable[[], str] = generate_key,
    ):
        """
        Args:
            form_id: Stable identifier of the form
            default_value: Nested default value (dict); None means empty form
            constraint: path → Constraint (or mapping of constraint attributes)
            key_factory: Produces identity tokens; injectable for tests
        """
        self.form_id = form_id
        self._key_factory = key_factory

        self.initial_value: Dict[str, Any] = {}
        self.value: Dict[str, Any] = {}
        self.error: Dict[str, List[Any]] = {}
        self.constraint: Dict[str, Constraint] = {}
        self.key: Dict[str, str] = {}
        self.valid: Dict[str, bool] = {}
        self.dirty: Dict[str, bool] = {}
        self.validated: Dict[str, bool] = {}
        self.status: Optional[str] = None

        # parent path → child paths, over every path known to any map
        self._children: Dict[str, Set[str]] = {}

        self._version = 0
        self._snapshot: Optional[FormSnapshot] = None
        self._pending: ChangeSet = ChangeSet()
        self._modified = False

        self.initialize(default_value, constraint)

    # ==================== SNAPSHOT ====================

    @property
    def version(self) -> int:
        return self._version

    def get_snapshot(self) -> FormSnapshot:
        """Immutable view of the current state.

        Returns the same object until the next mutation, so callers can use
        identity comparison for change detection.
        """
        if self._snapshot is None or self._snapshot.version != self._version:
            self._snapshot = FormSnapshot.create(
                form_id=self.form_id,
                version=self._version,
                status=self.status,
                initial_value=self.initial_value,
                value=self.value,
                error=self.error,
                constraint=self.constraint,
                key=self.key,
                valid=self.valid,
                dirty=self.dirty,
                validated=self.validated,
            )
        return self._snapshot

    # ==================== READS ====================

    def get_value(self, name: str = "") -> Any:
        return self.value.get(name)

    def get_initial_value(self, name: str = "") -> Any:
        return self.initial_value.get(name)

    def is_valid(self, name: str = "") -> bool:
        return self.valid.get(name, True)

    def is_dirty(self, name: str = "") -> bool:
        return self.dirty.get(name, False)

    def get_children(self, name: str) -> Set[str]:
        return set(self._children.get(name, ()))

    # ==================== INITIALIZATION ====================

    def initialize(
        self,
        initial_value: Optional[Mapping[str, Any]] = None,
        constraint: Optional[Mapping[str, Any]] = None,
    ) -> ChangeSet:
        """Seed initial and current value from a (possibly nested) default.

        Clears errors, validation flags and status; every array element gets
        a fresh identity key.
        """
        self._begin()
        tree = copy.deepcopy(dict(initial_value)) if initial_value else {}

        for category in ('value', 'initial_value', 'error', 'key', 'valid', 'dirty', 'validated'):
            for path in list(self._map(category)):
                self._drop(category, path)
        self._children = {"": set()}

        for path, node in flatten(tree).items():
            self._write('initial_value', path, node)
            self._write('value', path, copy.deepcopy(node))
            self._register(path)

        self.constraint = {
            path: item if isinstance(item, Constraint) else Constraint.from_dict(item)
            for path, item in (constraint or {}).items()
        }
        self._assign_missing_keys(list(self.value))
        self._recompute_flags(self._walk(""))
        self._set_status(None)

        logger.debug(f"Initialized FormState {self.form_id!r} with {len(self.value)} paths")
        return self._commit("initialize")

    # ==================== VALUE WRITES ====================

    def update_value(self, name: str, new_value: Any) -> ChangeSet:
        """Write ``new_value`` at ``name`` (the whole subtree is replaced).

        Identity keys of array elements that still exist are kept; new array
        elements get fresh keys, including items padded in when ``name``
        lies past the end of a list.
        """
        self._begin()
        old_paths, touched = self._replace_subtree(name, new_value)
        self._sync_keys(old_paths, touched)
        return self._commit(f"update {name!r}")

    def replace_value(self, tree: Mapping[str, Any]) -> ChangeSet:
        """Sync the whole value tree, e.g. from freshly parsed form data."""
        return self.update_value("", dict(tree))

    def insert_item(self, name: str, index: Optional[int] = None, item: Any = None) -> ChangeSet:
        """Insert ``item`` into the list at ``name`` (append when index is None)."""
        pairs = self._get_pairs(name)
        if index is None:
            index = len(pairs)
        if not 0 <= index <= len(pairs):
            raise IndexError(f"Insert index {index} out of range for {name!r} (length {len(pairs)})")
        state: ItemState = {category: {} for category in ITEM_STATE}
        state['key'][""] = self._key_factory()
        pairs.insert(index, (state, copy.deepcopy(item)))
        return self._write_pairs(name, pairs, f"insert {name!r}[{index}]")

    def remove_item(self, name: str, index: int) -> ChangeSet:
        """Remove the item at ``index``; its identity key is never reused.

        Keys, validation flags and errors of later items move up with them;
        those of the removed item are dropped.
        """
        pairs = self._get_pairs(name)
        if not 0 <= index < len(pairs):
            raise IndexError(f"Remove index {index} out of range for {name!r} (length {len(pairs)})")
        pairs.pop(index)
        return self._write_pairs(name, pairs, f"remove {name!r}[{index}]")

    def reorder_item(self, name: str, from_index: int, to_index: int) -> ChangeSet:
        """Move an item together with its keys, validation flags and errors."""
        pairs = self._get_pairs(name)
        for index in (from_index, to_index):
            if not 0 <= index < len(pairs):
                raise IndexError(f"Reorder index {index} out of range for {name!r} (length {len(pairs)})")
        pairs.insert(to_index, pairs.pop(from_index))
        return self._write_pairs(name, pairs, f"reorder {name!r}[{from_index}->{to_index}]")

    def reset(self, name: Optional[str] = None) -> ChangeSet:
        """Restore the initial value.

        Without a name the whole form is reset: value, errors, validation
        flags and status are cleared and every identity key is reassigned.
        With a name only that subtree is restored and only its errors and
        validation flags are cleared.
        """
        self._begin()
        target = name or ""
        initial = copy.deepcopy(self.initial_value.get(target))
        if target == "" and initial is None:
            initial = {}

        old_paths, touched = self._replace_subtree(target, initial)
        for path in old_paths:
            if path in self.key:
                self._drop('key', path)
        self._assign_missing_keys(touched)

        errors = {path: errors for path, errors in self.error.items() if not is_prefix(path, target)}
        self._replace_errors(errors)
        for path in list(self.validated):
            if is_prefix(path, target):
                self._drop('validated', path)
        if target == "":
            self._set_status(None)

        return self._commit(f"reset {target!r}")

    # ==================== ERRORS / FLAGS ====================

    def apply_errors(self, error_map: Mapping[str, Iterable[Any]]) -> ChangeSet:
        """Replace the entire error map.

        A validation run is authoritative: paths missing from ``error_map``
        lose their previous errors. Empty error lists are dropped.
        """
        self._begin()
        self._replace_errors(error_map)
        return self._commit("apply_errors")

    def mark_validated(self, name: str = "") -> ChangeSet:
        self._begin()
        self._write('validated', name, True)
        return self._commit(f"validated {name!r}")

    def is_validated(self, name: str) -> bool:
        """Whether ``name`` or one of its ancestors went through validation."""
        return any(is_prefix(name, path) for path in self.validated)

    def set_status(self, status: Optional[str]) -> ChangeSet:
        self._begin()
        self._set_status(status)
        return self._commit(f"status {status!r}")

    def set_keys(self, keys: Mapping[str, str]) -> ChangeSet:
        """Adopt identity keys from a previous form instance (rehydration).

        Keys are applied to array element paths that exist in the current
        value; paths that do not exist are ignored.
        """
        self._begin()
        for path, token in keys.items():
            if path in self.value and path in self.key:
                self._write('key', path, token)
        return self._commit("set_keys")

    def restore(self, validated: Mapping[str, bool], error_map: Mapping[str, Iterable[Any]]) -> ChangeSet:
        """Apply validation flags and errors carried over a round-trip."""
        self._begin()
        for path, flag in validated.items():
            if flag:
                self._write('validated', path, True)
        self._replace_errors(error_map)
        return self._commit("restore")

    # ==================== INTERNALS: change tracking ====================

    def _map(self, category: str) -> Dict[str, Any]:
        return getattr(self, category)

    def _begin(self) -> None:
        self._pending = ChangeSet()
        self._modified = False

    def _commit(self, label: str) -> ChangeSet:
        change_set = self._pending
        self._pending = ChangeSet()
        if self._modified:
            self._version += 1
            logger.debug(
                f"FormState {self.form_id!r} {label}: version={self._version} "
                f"categories={sorted(change_set.categories)}"
            )
        return change_set

    def _write(self, category: str, path: str, value: Any, compare: bool = True) -> None:
        target = self._map(category)
        if compare and path in target and target[path] == value:
            return
        target[path] = value
        self._modified = True
        if category in CATEGORIES:
            self._pending.add(category, (path,))

    def _drop(self, category: str, path: str) -> None:
        target = self._map(category)
        if path in target:
            del target[path]
            self._modified = True
            if category in CATEGORIES:
                self._pending.add(category, (path,))

    def _set_status(self, status: Optional[str]) -> None:
        if self.status != status:
            self.status = status
            self._modified = True
            self._pending.status_changed = True

    # ==================== INTERNALS: path index ====================

    def _register(self, path: str) -> None:
        self._children.setdefault(path, set())
        child = path
        parent = get_parent(child)
        while parent is not None:
            siblings = self._children.setdefault(parent, set())
            if child in siblings:
                break
            siblings.add(child)
            child, parent = parent, get_parent(parent)

    def _is_referenced(self, path: str) -> bool:
        return (
            path == ""
            or path in self.value
            or path in self.initial_value
            or path in self.error
            or bool(self._children.get(path))
        )

    def _prune(self, path: str) -> None:
        """Forget a path (and then its ancestors) once no map refers to it."""
        while path is not None and not self._is_referenced(path):
            self._children.pop(path, None)
            self._drop('valid', path)
            self._drop('dirty', path)
            parent = get_parent(path)
            if parent is not None:
                self._children.get(parent, set()).discard(path)
            path = parent

    def _walk(self, name: str) -> Set[str]:
        """``name`` and every known descendant."""
        result = set()
        stack = [name]
        while stack:
            path = stack.pop()
            if path in result:
                continue
            result.add(path)
            stack.extend(self._children.get(path, ()))
        return result

    # ==================== INTERNALS: subtree writes ====================

    def _replace_subtree(self, name: str, new_value: Any) -> Tuple[Set[str], Set[str]]:
        """Write a subtree into ``value`` and recompute the affected flags.

        Only paths whose value actually changed are reported. An unchanged
        subtree that already existed leaves its ancestors alone.

        Returns:
            The paths known under ``name`` before the write, and every path
            written or created by it (padded list items and intermediate
            containers included).
        """
        old_paths = self._walk(name) if name in self._children else {name}
        previous = {path: self.value[path] for path in old_paths if path in self.value}
        new_value = copy.deepcopy(new_value)
        changed = previous.get(name) != new_value

        new_entries = flatten(new_value, prefix=name)
        for path in old_paths:
            if path in self.value and path not in new_entries:
                self._drop('value', path)
        for path, node in new_entries.items():
            if path not in previous or (changed and previous[path] != node):
                self._write('value', path, node, compare=False)
            else:
                self.value[path] = node
            self._register(path)

        touched = set(old_paths) | set(new_entries)
        if changed or name not in previous:
            tree = set_value(self.value.get(""), name, new_value) if name else new_value
            for ancestor in get_ancestors(name):
                container = get_value(tree, ancestor)
                self._write('value', ancestor, container, compare=not changed)
                self._register(ancestor)
                touched.add(ancestor)
                # set_value may have created intermediate containers or padded lists
                touched |= self._fill_missing_children(ancestor, container)

        for path in old_paths:
            if path not in self.value:
                self._prune(path)

        self._recompute_flags(touched)
        return old_paths, touched

    def _fill_missing_children(self, name: str, container: Any) -> Set[str]:
        if isinstance(container, list):
            items = [(format_name(name, index), item) for index, item in enumerate(container)]
        elif isinstance(container, dict):
            items = [(format_name(name, str(key)), item) for key, item in container.items()]
        else:
            return set()
        added = set()
        for path, item in items:
            if path in self.value:
                continue
            for sub_path, node in flatten(item, prefix=path).items():
                self._write('value', sub_path, node, compare=False)
                self._register(sub_path)
                added.add(sub_path)
        return added

    def _replace_errors(self, error_map: Mapping[str, Iterable[Any]]) -> None:
        new_errors: Dict[str, List[Any]] = {}
        for path, errors in error_map.items():
            errors = list(errors or ())
            if not errors:
                continue
            try:
                get_paths(path)
            except ValueError:
                logger.warning(f"Ignoring error for malformed path {path!r} in form {self.form_id!r}")
                continue
            new_errors[path] = errors

        touched = set(self.error) | set(new_errors)
        for path in list(self.error):
            if path not in new_errors:
                self._drop('error', path)
        for path, errors in new_errors.items():
            self._write('error', path, errors)
            self._register(path)

        for path in touched:
            if path not in self.error:
                self._prune(path)
        self._recompute_flags(touched)

    # ==================== INTERNALS: derived flags ====================

    def _recompute_flags(self, touched: Iterable[str]) -> None:
        """Recompute valid/dirty bottom-up for ``touched`` and all their ancestors."""
        affected: Set[str] = set()
        for path in touched:
            if path in affected:
                continue
            affected.add(path)
            affected.update(get_ancestors(path))

        for path in sorted(affected, key=_depth, reverse=True):
            if path not in self._children:
                continue
            children = self._children[path]
            self._write('valid', path, not self.error.get(path) and all(
                self.valid.get(child, True) for child in children
            ))
            self._write('dirty', path, any(
                self.dirty.get(child, False) for child in children
            ) or self._differs(path))

    def _differs(self, path: str) -> bool:
        current = self.value.get(path)
        initial = self.initial_value.get(path)
        if isinstance(current, list) and isinstance(initial, list):
            return len(current) != len(initial)
        if isinstance(current, dict) and isinstance(initial, dict):
            # Differing keys show up as children present on one side only
            return False
        return normalize(current) != normalize(initial)

    # ==================== INTERNALS: identity keys ====================

    def _assign_missing_keys(self, paths: Iterable[str]) -> None:
        missing = [
            path for path in paths
            if path in self.value and path not in self.key and self._is_array_element(path)
        ]
        for path in sorted(missing, key=lambda path: (_depth(path), path)):
            self._write('key', path, self._key_factory())

    def _is_array_element(self, path: str) -> bool:
        segments = get_paths(path)
        return bool(segments) and isinstance(segments[-1], int)

    def _sync_keys(self, old_paths: Set[str], touched: Set[str]) -> None:
        for path in old_paths:
            if path in self.key and path not in self.value:
                self._drop('key', path)
        self._assign_missing_keys(touched)

    # ==================== INTERNALS: list items ====================

    def _get_pairs(self, name: str) -> List[Tuple[ItemState, Any]]:
        """The list at ``name`` as (item state, item) pairs.

        The item state holds the identity keys, validation flags and errors
        at or below each item, keyed by suffix relative to the item path, so
        they can travel with the item when the list is edited.
        """
        current = self.value.get(name)
        items = list(current) if isinstance(current, list) else []
        states: List[ItemState] = [{category: {} for category in ITEM_STATE} for _ in items]
        depth = _depth(name)
        for category in ITEM_STATE:
            for path, entry in self._map(category).items():
                if path == name or not is_prefix(path, name):
                    continue
                index = get_paths(path)[depth]
                if isinstance(index, int) and index < len(items):
                    item_path = format_name(name, index)
                    states[index][category][path[len(item_path):]] = entry
        return [(state, copy.deepcopy(item)) for state, item in zip(states, items)]

    def _write_pairs(self, name: str, pairs: List[Tuple[ItemState, Any]], label: str) -> ChangeSet:
        self._begin()
        old_paths, touched = self._replace_subtree(name, [item for _, item in pairs])

        desired: Dict[str, Dict[str, Any]] = {category: {} for category in ITEM_STATE}
        for index, (state, _) in enumerate(pairs):
            item_path = format_name(name, index)
            for category, entries in state.items():
                for suffix, entry in entries.items():
                    desired[category][item_path + suffix] = entry

        for path in old_paths:
            if path in self.key and desired['key'].get(path) != self.key[path]:
                self._drop('key', path)
        for path, token in desired['key'].items():
            if path in self.value:
                self._write('key', path, token)
        self._assign_missing_keys(touched)

        for path in [path for path in self.validated if path != name and is_prefix(path, name)]:
            if path not in desired['validated']:
                self._drop('validated', path)
        for path in desired['validated']:
            self._write('validated', path, True)

        errors = {
            path: errors for path, errors in self.error.items()
            if path == name or not is_prefix(path, name)
        }
        errors.update(desired['error'])
        self._replace_errors(errors)
        return self._commit(label)
