"""
Diagnostics for xyscan
Per-file diagnostic index and per-line grouping built on the location matcher
"""

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from .events import Subscription
from .issue_store import IssueStore
from .locations import (
    LinePositionSpan,
    is_issue_for_file,
    line_position_span,
    normalize_path,
    resolve_issue_path,
    text_offsets,
)
from .model import Issue, severity_rank

SEVERITY_ERROR = "error"
SEVERITY_WARNING = "warning"
SEVERITY_INFO = "info"


def diagnostic_severity(severity: Optional[str]) -> str:
    value = (severity or "").strip().lower()
    if value in ("critical", "high"):
        return SEVERITY_ERROR
    if value in ("medium", "low"):
        return SEVERITY_WARNING
    return SEVERITY_INFO


def diagnostic_message(issue: Issue) -> str:
    severity = issue.severity.strip() if issue.severity and issue.severity.strip() else "info"
    issue_type = issue.type.strip() if issue.type and issue.type.strip() else "Issue"
    category = issue.category_name.strip() if issue.category_name and issue.category_name.strip() else "Security"
    return f"[{severity}] {category}: {issue_type}"


@dataclass(frozen=True)
class Diagnostic:
    issue: Issue
    file: str
    severity: str
    message: str
    span: LinePositionSpan

    @property
    def issue_id(self) -> str:
        return self.issue.id

    @property
    def category(self) -> str:
        return self.issue.category


def build_diagnostic(issue: Issue, file_path: str) -> Diagnostic:
    return Diagnostic(
        issue=issue,
        file=file_path,
        severity=diagnostic_severity(issue.severity),
        message=diagnostic_message(issue),
        span=line_position_span(issue),
    )


class DiagnosticIndex:
    """Diagnostics grouped by resolved file path.

    Rebuilt from the store on every change; lookups are case-insensitive on
    the normalized path.
    """

    def __init__(self, store: IssueStore,
                 root_provider: Optional[Callable[[], Optional[str]]] = None):
        self.store = store
        self.root_provider = root_provider or (lambda: None)
        self.logger = logging.getLogger(__name__)
        self._lock = threading.Lock()
        self._by_file: Dict[str, Tuple[Diagnostic, ...]] = {}
        self._subscription: Optional[Subscription] = None

    def attach(self) -> Subscription:
        if self._subscription is None or not self._subscription.active:
            self._subscription = self.store.changed.subscribe(lambda _issues: self.refresh())
        self.refresh()
        return self._subscription

    def detach(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None

    def refresh(self) -> None:
        root = self.root_provider()
        grouped: Dict[str, List[Diagnostic]] = {}
        for issue in self.store.get_all():
            path = resolve_issue_path(issue.file, root)
            if not path:
                continue
            grouped.setdefault(path.lower(), []).append(build_diagnostic(issue, path))

        with self._lock:
            self._by_file = {key: tuple(value) for key, value in grouped.items()}
        self.logger.debug(f"Diagnostics rebuilt for {len(grouped)} files")

    def files(self) -> List[str]:
        with self._lock:
            return sorted({diags[0].file for diags in self._by_file.values() if diags})

    def diagnostics_for_file(self, file_path: str) -> Tuple[Diagnostic, ...]:
        normalized = normalize_path(file_path)
        if not normalized:
            return ()
        with self._lock:
            return self._by_file.get(normalized.lower(), ())

    def spans_for_text(self, file_path: str, text: str) -> List[Tuple[int, int, Diagnostic]]:
        """Character ranges of the file's diagnostics within its current *text*."""
        spans = []
        for diagnostic in self.diagnostics_for_file(file_path):
            offsets = text_offsets(text, diagnostic.issue)
            if offsets is None:
                continue
            spans.append((offsets[0], offsets[1], diagnostic))
        return spans


def issues_by_line(issues: Iterable[Issue], current_file: str,
                   root: Optional[str] = None,
                   allow_filename: bool = False) -> Dict[int, List[Issue]]:
    """Group the issues located in *current_file* by 1-based begin line.

    Issues without a file or begin line are skipped; each line's issues are
    ordered by severity.
    """
    grouped: Dict[int, List[Issue]] = {}
    for issue in issues:
        if not issue.file or issue.begin_line <= 0:
            continue
        if not is_issue_for_file(issue, current_file, root, allow_filename):
            continue
        grouped.setdefault(issue.begin_line, []).append(issue)
    for line_issues in grouped.values():
        line_issues.sort(key=lambda issue: severity_rank(issue.severity))
    return grouped
