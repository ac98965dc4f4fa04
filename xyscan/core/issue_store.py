"""
Issue Store for xyscan
In-memory, replace-only collection of the current scan's issues
"""

import threading
from typing import Iterable, Optional, Tuple

from .events import EventChannel
from .model import Issue, severity_rank


class IssueStore:
    """Holds an immutable snapshot of issues.

    ``replace`` swaps the whole snapshot under a lock and then notifies
    ``changed`` subscribers with the new snapshot. Readers always get a
    tuple that is never mutated afterwards.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._issues: Tuple[Issue, ...] = ()
        self.changed = EventChannel("issues.changed")

    def get_all(self) -> Tuple[Issue, ...]:
        with self._lock:
            return self._issues

    def __len__(self) -> int:
        return len(self.get_all())

    def get_by_category(self, category: str) -> Tuple[Issue, ...]:
        wanted = (category or "").lower()
        return tuple(
            issue for issue in self.get_all()
            if issue.category.lower() == wanted or issue.category_name.lower() == wanted
        )

    def find_by_id(self, issue_id: str) -> Optional[Issue]:
        if not issue_id:
            return None
        wanted = issue_id.lower()
        for issue in self.get_all():
            if issue.id and issue.id.lower() == wanted:
                return issue
        return None

    def replace(self, issues: Iterable[Issue]) -> Tuple[Issue, ...]:
        snapshot = tuple(sorted(issues, key=lambda issue: severity_rank(issue.severity)))
        with self._lock:
            self._issues = snapshot
        self.changed.emit(snapshot)
        return snapshot

    def clear(self) -> None:
        self.replace(())
