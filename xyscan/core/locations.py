"""
Issue location matching for xyscan
Resolves scanner-reported paths against real files and maps line/column
ranges onto text spans
"""

import enum
import os
from dataclasses import dataclass
from typing import List, Optional, Tuple

from .model import Issue


class MatchLevel(enum.IntEnum):
    """How an issue path matched a file; higher values are stronger."""

    NONE = 0
    FILENAME = 1
    SUFFIX = 2
    ROOT = 3
    ABSOLUTE = 4


def normalize_path(path: Optional[str]) -> Optional[str]:
    """Absolute path with unified separators and no trailing separator."""
    if not path or not path.strip():
        return None
    unified = path.replace("\\", "/") if os.sep == "/" else path.replace("/", os.sep)
    normalized = os.path.abspath(unified)
    stripped = normalized.rstrip("/\\")
    return stripped or normalized


def normalize_relative_path(path: Optional[str]) -> Optional[str]:
    """Forward-slash relative path with leading ``./`` and ``/`` removed."""
    if not path or not path.strip():
        return None
    relative = path.replace("\\", "/")
    # Dot-files such as ".env" keep their leading dot
    while relative.startswith("./") or relative.startswith("/"):
        relative = relative[2:] if relative.startswith("./") else relative[1:]
    return relative or None


def _is_absolute(path: str) -> bool:
    return os.path.isabs(path.replace("\\", "/") if os.sep == "/" else path)


def resolve_issue_path(issue_file: Optional[str], root: Optional[str] = None) -> Optional[str]:
    """Absolute, normalized location of *issue_file*.

    Relative paths are joined onto *root* when one is known.
    """
    if not issue_file or not issue_file.strip():
        return None
    if _is_absolute(issue_file) or not root:
        return normalize_path(issue_file)
    return normalize_path(os.path.join(root, issue_file.replace("\\", "/")))


def _same(a: Optional[str], b: Optional[str]) -> bool:
    return a is not None and b is not None and a.lower() == b.lower()


def match_issue_file(issue_file: Optional[str],
                     current_file: Optional[str],
                     root: Optional[str] = None,
                     allow_filename: bool = False) -> MatchLevel:
    """Decide whether *issue_file* refers to *current_file*.

    Tiers, strongest first: absolute equality, root-joined equality,
    relative suffix match, and (only with *allow_filename*) bare filename
    equality, which can match unrelated files sharing a name.
    """
    current = normalize_path(current_file)
    if not current or not issue_file:
        return MatchLevel.NONE

    if _is_absolute(issue_file):
        return MatchLevel.ABSOLUTE if _same(current, normalize_path(issue_file)) else MatchLevel.NONE

    if root:
        if _same(current, resolve_issue_path(issue_file, root)):
            return MatchLevel.ROOT

    relative = normalize_relative_path(issue_file)
    if not relative:
        return MatchLevel.NONE
    current_unix = current.replace("\\", "/").lower()
    relative_lower = relative.lower()
    if current_unix.endswith("/" + relative_lower) or current_unix == relative_lower:
        return MatchLevel.SUFFIX

    if allow_filename:
        issue_name = relative.rsplit("/", 1)[-1]
        current_name = current_unix.rsplit("/", 1)[-1]
        if issue_name and issue_name.lower() == current_name:
            return MatchLevel.FILENAME

    return MatchLevel.NONE


def is_issue_for_file(issue: Issue, current_file: Optional[str],
                      root: Optional[str] = None,
                      allow_filename: bool = False) -> bool:
    return match_issue_file(issue.file, current_file, root, allow_filename) > MatchLevel.NONE


@dataclass(frozen=True)
class LinePositionSpan:
    """0-based line/column range; never empty."""

    start_line: int
    start_column: int
    end_line: int
    end_column: int


def line_position_span(issue: Issue) -> LinePositionSpan:
    start_line = max(0, issue.begin_line - 1)
    start_column = max(0, issue.begin_column - 1)
    end_line = issue.end_line - 1 if issue.end_line > 0 else start_line
    end_column = issue.end_column - 1 if issue.end_column > 0 else start_column + 1

    if end_line < start_line or (end_line == start_line and end_column <= start_column):
        end_line = start_line
        end_column = start_column + 1

    return LinePositionSpan(start_line, start_column, end_line, end_column)


def _line_bounds(text: str) -> List[Tuple[int, int]]:
    """(start, end) offsets of each line, excluding the line break."""
    bounds = []
    start = 0
    for line in text.splitlines(keepends=True):
        content = line.rstrip("\r\n")
        bounds.append((start, start + len(content)))
        start += len(line)
    if not bounds or text.endswith(("\n", "\r")):
        bounds.append((start, start))
    return bounds


def text_offsets(text: str, issue: Issue) -> Optional[Tuple[int, int]]:
    """Character offsets ``(start, end)`` of *issue* within *text*.

    Columns are clamped to their line. Returns None when the start line is
    past the end of the text or no non-empty span fits.
    """
    lines = _line_bounds(text or "")
    start_index = max(0, issue.begin_line - 1)
    if start_index >= len(lines):
        return None

    start_line_start, start_line_end = lines[start_index]
    start_column = max(0, issue.begin_column - 1)
    start = min(start_line_end, start_line_start + start_column)

    end_index = issue.end_line - 1 if issue.end_line > 0 else start_index
    end_index = max(start_index, min(len(lines) - 1, end_index))
    end_line_start, end_line_end = lines[end_index]

    if end_index == start_index:
        end_column = issue.end_column - 1 if issue.end_column > 0 else start_column + 1
        end_column = max(start_column + 1, end_column)
        end = min(end_line_end, end_line_start + end_column)
    elif issue.end_column > 0:
        end = min(end_line_end, end_line_start + max(0, issue.end_column - 1))
    else:
        end = end_line_end

    if end <= start:
        end = min(len(text or ""), start + 1)
    if end <= start:
        return None
    return start, end
