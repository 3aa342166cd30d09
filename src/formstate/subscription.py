"""
Fine-grained change notification for form state.

Observers subscribe with a *subject supplier*: a callable returning the
``SubscriptionSubject`` built during the observer's latest render. The
registry evaluates the supplier at notification time, so an observer is only
re-invoked when a path it actually read changed.

Categories are the path-keyed maps of a snapshot (``value``,
``initial_value``, ``error``, ``valid``, ``dirty``, ``key``). Each category can
be watched with two scopes:

- ``name``: exact path match
- ``parent``: the changed path is the watched path or one of its descendants

Thread safety: Not thread-safe (all operations expected on one event loop).
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Set

from formstate.paths import is_prefix
from formstate.snapshot_model import FormSnapshot

logger = logging.getLogger(__name__)

CATEGORIES = ('value', 'initial_value', 'error', 'valid', 'dirty', 'key')
SCOPES = ('name', 'parent')


@dataclass
class ChangeSet:
    """Changed paths per category, plus whether the form-level status changed."""
    changes: Dict[str, Set[str]] = field(default_factory=dict)
    status_changed: bool = False

    def add(self, category: str, paths: Iterable[str]) -> 'ChangeSet':
        if category not in CATEGORIES:
            raise ValueError(f"Unknown change category: {category!r}")
        paths = set(paths)
        if paths:
            self.changes.setdefault(category, set()).update(paths)
        return self

    def merge(self, other: 'ChangeSet') -> 'ChangeSet':
        for category, paths in other.changes.items():
            self.add(category, paths)
        self.status_changed = self.status_changed or other.status_changed
        return self

    @property
    def paths(self) -> Set[str]:
        result: Set[str] = set()
        for paths in self.changes.values():
            result |= paths
        return result

    @property
    def categories(self) -> Set[str]:
        return set(self.changes)

    def is_empty(self) -> bool:
        return not self.changes and not self.status_changed

    @classmethod
    def from_paths(cls, changed_paths: Iterable[str], changed_categories: Iterable[str]) -> 'ChangeSet':
        """Pair every changed path with every changed category."""
        paths = set(changed_paths)
        change_set = cls()
        for category in changed_categories:
            change_set.add(category, paths)
        return change_set


@dataclass
class SubscriptionScope:
    name: Set[str] = field(default_factory=set)
    parent: Set[str] = field(default_factory=set)

    def matches(self, changed_paths: Set[str]) -> bool:
        if self.name & changed_paths:
            return True
        return any(
            is_prefix(path, prefix)
            for prefix in self.parent
            for path in changed_paths
        )


@dataclass
class SubscriptionSubject:
    """What one observer read during its latest render.

    Built incrementally by field accessors; recording the same read twice
    has no further effect.
    """
    scopes: Dict[str, SubscriptionScope] = field(default_factory=dict)
    status: bool = False

    def add(self, category: str, scope: str, name: str) -> None:
        if category not in CATEGORIES:
            raise ValueError(f"Unknown subscription category: {category!r}")
        if scope not in SCOPES:
            raise ValueError(f"Unknown subscription scope: {scope!r}")
        getattr(self.scopes.setdefault(category, SubscriptionScope()), scope).add(name)

    def is_empty(self) -> bool:
        return not self.status and not any(
            scope.name or scope.parent for scope in self.scopes.values()
        )

    def matches(self, change_set: ChangeSet) -> bool:
        if self.status and change_set.status_changed:
            return True
        for category, changed_paths in change_set.changes.items():
            scope = self.scopes.get(category)
            if scope is not None and scope.matches(changed_paths):
                return True
        return False


SubjectSupplier = Callable[[], Optional[SubscriptionSubject]]


class _Subscriber:
    __slots__ = ('callback', 'get_subject', 'active')

    def __init__(self, callback: Callable[[], None], get_subject: Optional[SubjectSupplier]):
        self.callback = callback
        self.get_subject = get_subject
        self.active = True


class SubscriptionRegistry:
    """Set of observers for one form, notified by change sets."""

    def __init__(self):
        self._subscribers: List[_Subscriber] = []

    def __len__(self) -> int:
        return len(self._subscribers)

    def subscribe(
        self,
        callback: Callable[[], None],
        get_subject: Optional[SubjectSupplier] = None,
    ) -> Callable[[], None]:
        """Register an observer.

        Args:
            callback: Called (without arguments) when a watched path changed
            get_subject: Returns the observer's current subject; evaluated on
                         every notification, not at subscribe time

        Returns:
            Callable that removes the subscription (safe to call twice)
        """
        subscriber = _Subscriber(callback, get_subject)
        self._subscribers.append(subscriber)
        logger.debug(f"Subscribed observer {callback!r} ({len(self._subscribers)} total)")

        def unsubscribe() -> None:
            if subscriber.active:
                subscriber.active = False
                self._subscribers.remove(subscriber)
                logger.debug(f"Unsubscribed observer {callback!r}")

        return unsubscribe

    def notify(self, change_set: ChangeSet) -> int:
        """Invoke every observer whose current subject matches the change set.

        Matching is decided for all observers before any callback runs, so a
        callback may re-render and re-subscribe within the same tick. Each
        observer runs at most once per call.

        Returns:
            Number of observers notified
        """
        if change_set.is_empty():
            return 0

        matched = []
        for subscriber in list(self._subscribers):
            subject = subscriber.get_subject() if subscriber.get_subject else None
            if subject is not None and subject.matches(change_set):
                matched.append(subscriber)

        logger.debug(
            f"Notify: {len(matched)}/{len(self._subscribers)} observers for "
            f"categories={sorted(change_set.categories)} status_changed={change_set.status_changed}"
        )

        notified = 0
        for subscriber in matched:
            # An earlier callback may have unsubscribed this one
            if not subscriber.active:
                continue
            try:
                subscriber.callback()
                notified += 1
            except Exception as e:
                logger.warning(f"Error in form subscriber callback {subscriber.callback!r}: {e}")
        return notified

    def notify_paths(self, changed_paths: Iterable[str], changed_categories: Iterable[str]) -> int:
        """Notify with every changed path counted in every changed category."""
        return self.notify(ChangeSet.from_paths(changed_paths, changed_categories))

    def clear(self) -> None:
        for subscriber in self._subscribers:
            subscriber.active = False
        self._subscribers.clear()


def _diff_map(previous, current) -> Set[str]:
    changed = set()
    for path in previous.keys() | current.keys():
        if previous.get(path) != current.get(path):
            changed.add(path)
    return changed


def diff_snapshots(previous: Optional[FormSnapshot], current: FormSnapshot) -> ChangeSet:
    """Compute which paths changed per category between two snapshots."""
    change_set = ChangeSet()
    if previous is current:
        return change_set
    if previous is None:
        for category in CATEGORIES:
            change_set.add(category, getattr(current, category).keys())
        change_set.status_changed = True
        return change_set

    for category in CATEGORIES:
        change_set.add(category, _diff_map(getattr(previous, category), getattr(current, category)))
    change_set.status_changed = previous.status != current.status
    return change_set
