"""
Report Parser for xyscan
Normalizes the scanner's per-category JSON reports into Issue records
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from .config import REPORT_SUFFIX
from .errors import ParseError
from .model import (
    KIND_IAC,
    KIND_MISCONF,
    KIND_SAST,
    KIND_SCA,
    KIND_SECRET,
    REMEDIABLE_AUTO,
    REMEDIABLE_NONE,
    IacDetails,
    Issue,
    MisconfigurationDetails,
    SastDetails,
    SecretDetails,
    VulnerabilityDetails,
    severity_rank,
)

logger = logging.getLogger(__name__)

Document = Dict[str, Any]


# ----------------------------------------------------------------------
# Defensive field access
# ----------------------------------------------------------------------

def as_entries(value: Any) -> List[Dict[str, Any]]:
    """Coerce a report section to a list of objects.

    Lists are used as-is, a single object is wrapped, and ``None`` or
    non-object entries are dropped.
    """
    items = value if isinstance(value, list) else [value]
    return [item for item in items if isinstance(item, dict)]


def text(value: Any, default: str = "") -> str:
    if value is None:
        return default
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def safe_int(value: Any) -> int:
    """Parse an integer field, returning 0 for anything malformed."""
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except ValueError:
        return 0


def safe_float(value: Any) -> float:
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return False


def string_list(value: Any) -> Tuple[str, ...]:
    if not isinstance(value, list):
        return ()
    return tuple(str(item) for item in value if item is not None)


def section(value: Any, key: str) -> Dict[str, Any]:
    """``value[key]`` when both are objects, else an empty dict."""
    if isinstance(value, dict):
        inner = value.get(key)
        if isinstance(inner, dict):
            return inner
    return {}


def tool_name(document: Document) -> str:
    return text(section(section(document, "metadata"), "reportProperties").get("tool.name"))


def location_fields(location: Dict[str, Any]) -> Dict[str, Any]:
    """Common location sub-object mapped onto Issue keyword arguments."""
    return {
        "file": text(location.get("filepath")),
        "begin_line": safe_int(location.get("beginLine")),
        "end_line": safe_int(location.get("endLine")),
        "begin_column": safe_int(location.get("beginColumn")),
        "end_column": safe_int(location.get("endColumn")),
        "code": text(location.get("code")),
    }


def last_rating(ratings: Any) -> Dict[str, Any]:
    # Reports may list several rating systems; the last one wins
    if isinstance(ratings, list) and ratings and isinstance(ratings[-1], dict):
        return ratings[-1]
    return {}


def summarize_version_range(versions: Any) -> str:
    """Summarize affected ranges, e.g. ``>=1.0 <2.0 | >=3.0``.

    Empty or ``"0"`` bounds are omitted; excluded bounds use strict operators.
    """
    if not isinstance(versions, list) or not versions:
        return ""
    parts = []
    for entry in versions:
        if not isinstance(entry, dict):
            continue
        fragments = []
        start = text(entry.get("startVersion"))
        if start and start != "0":
            op = ">" if flag(entry.get("versionStartExcluded")) else ">="
            fragments.append(f"{op}{start}")
        end = text(entry.get("endVersion"))
        if end and end != "0":
            op = "<" if flag(entry.get("versionEndExcluded")) else "<="
            fragments.append(f"{op}{end}")
        parts.append(" ".join(fragments))
    return " | ".join(parts)


def format_publication_date(value: Any) -> str:
    raw = text(value)
    if not raw:
        return ""
    try:
        parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        return raw
    return parsed.strftime("%Y-%m-%d %H:%M")


# ----------------------------------------------------------------------
# Category parsers
# ----------------------------------------------------------------------

def parse_secrets(document: Document) -> List[Issue]:
    tool = tool_name(document)
    issues = []
    for raw in as_entries(document.get("secrets")):
        location = section(raw, "location")
        issues.append(Issue(
            id=text(raw.get("issueId")),
            kind=KIND_SECRET,
            category="secrets",
            category_name="Secrets",
            type=text(raw.get("type")),
            detector=text(raw.get("detector")),
            tool=tool,
            severity=text(raw.get("severity")),
            confidence=text(raw.get("confidence"), "high"),
            explanation=f"Secret of type '{text(raw.get('type'))}' detected by '{text(raw.get('detector'))}'",
            url=text(raw.get("url")),
            tags=string_list(raw.get("tags")),
            remediable_level=REMEDIABLE_NONE,
            details=SecretDetails(
                hash=text(raw.get("hash")),
                secret=text(location.get("secret")),
                resource=text(raw.get("resource")),
                found_by=text(raw.get("detector")),
                branch=text(location.get("branch")),
                commit_hash=text(location.get("commitHash")),
                user=text(location.get("user")),
                time_added=safe_int(location.get("timeAdded")),
            ),
            **location_fields(location),
        ))
    return issues


def parse_misconfigurations(document: Document) -> List[Issue]:
    tool = tool_name(document)
    branch = text(document.get("currentBranch"))
    issues = []
    for raw in as_entries(document.get("misconfigurations")):
        issues.append(Issue(
            id=text(raw.get("issueId")),
            kind=KIND_MISCONF,
            category="misconf",
            category_name="Misconfigurations",
            type=text(raw.get("type")),
            detector=text(raw.get("detector")),
            tool=tool,
            severity=text(raw.get("severity")),
            confidence=text(raw.get("confidence"), "high"),
            explanation=text(raw.get("explanation")),
            url=text(raw.get("url")),
            remediable_level=REMEDIABLE_NONE,
            details=MisconfigurationDetails(
                tool_kind=text(section(raw, "properties").get("tool_kind")),
                branch=branch,
            ),
            **location_fields(section(raw, "location")),
        ))
    return issues


def parse_sast(document: Document) -> List[Issue]:
    tool = tool_name(document)
    branch = text(document.get("currentBranch"))
    issues = []
    for raw in as_entries(document.get("vulnerabilities")):
        issues.append(Issue(
            id=text(raw.get("issueId")),
            kind=KIND_SAST,
            category="sast",
            category_name="SAST",
            # SAST reports carry the issue type under "kind"
            type=text(raw.get("kind")),
            detector=text(raw.get("detector")),
            tool=tool,
            severity=text(raw.get("severity")),
            confidence=text(raw.get("confidence"), "high"),
            explanation=text(raw.get("explanation")),
            url=text(raw.get("url")),
            tags=string_list(raw.get("tags")),
            remediable_level=REMEDIABLE_AUTO,
            details=SastDetails(
                branch=branch,
                cwe=text(raw.get("cwe")),
                cwes=string_list(raw.get("cwes")),
                container=text(raw.get("container")),
                language=text(raw.get("language")),
            ),
            **location_fields(section(raw, "location")),
        ))
    return issues


def parse_iac(document: Document) -> List[Issue]:
    tool = tool_name(document)
    branch = text(document.get("currentBranch"))
    issues = []
    for raw in as_entries(document.get("flaws")):
        issues.append(Issue(
            id=text(raw.get("issueId")),
            kind=KIND_IAC,
            category="iac",
            category_name="IaC",
            type=text(raw.get("type")),
            detector=text(raw.get("detector")),
            tool=tool,
            severity=text(raw.get("severity")),
            confidence=text(raw.get("confidence"), "high"),
            explanation=text(raw.get("explanation")),
            url=text(raw.get("url")),
            tags=string_list(raw.get("tags")),
            remediable_level=REMEDIABLE_NONE,
            details=IacDetails(
                resource=text(raw.get("resource")),
                provider=text(raw.get("provider")),
                found_by=text(raw.get("detector")),
                branch=branch,
            ),
            **location_fields(section(raw, "location")),
        ))
    return issues


def parse_dependencies(document: Document) -> List[Issue]:
    """One issue per (dependency, vulnerability) pair."""
    tool = tool_name(document)
    issues = []
    for dep in as_entries(document.get("dependencies")):
        vulnerabilities = dep.get("vulnerabilities")
        if vulnerabilities is None:
            continue

        paths = section(dep, "paths")
        locations = paths.get("locations")
        location = locations[0] if isinstance(locations, list) and locations and isinstance(locations[0], dict) else {}
        fields = location_fields(location)
        if not location.get("filepath"):
            fields["file"] = text(dep.get("fileName")) or text(dep.get("displayFileName"))

        remediable = text(section(dep, "remediable").get("remediableLevel"))
        tags = string_list(dep.get("tags"))
        if remediable:
            tags = tags + (remediable,)

        for vuln in as_entries(vulnerabilities):
            source = section(vuln, "source")
            rating = last_rating(vuln.get("ratings"))
            description = text(vuln.get("description"))
            issues.append(Issue(
                id=text(vuln.get("id")),
                kind=KIND_SCA,
                category="sca",
                category_name="SCA",
                type=text(vuln.get("id")),
                detector=text(source.get("name")) or "unknown",
                tool=tool,
                severity=text(vuln.get("severity")),
                confidence=text(dep.get("confidence"), "high"),
                explanation=description or f"Vulnerability {text(vuln.get('cve'))}",
                url=text(source.get("url")),
                tags=tags,
                remediable_level=remediable or REMEDIABLE_NONE,
                details=VulnerabilityDetails(
                    group=text(dep.get("group")),
                    name=text(dep.get("name")),
                    version=text(dep.get("version")),
                    language=text(dep.get("language")),
                    base_score=safe_float(rating.get("score")),
                    versions=summarize_version_range(vuln.get("versions")),
                    vector=text(rating.get("vector")),
                    publication_date=format_publication_date(vuln.get("published")),
                    direct_dependency=flag(paths.get("directDependency")),
                    dependency_paths=string_list(paths.get("dependencyPaths")),
                    virtual=flag(dep.get("virtual")),
                    repository_type=text(dep.get("repositoryType")),
                    display_file_name=text(dep.get("displayFileName")),
                    weaknesses=string_list(vuln.get("cwes")),
                    references=string_list(vuln.get("references")),
                ),
                **fields,
            ))
    return issues


# Fixed read order; ties in the final severity sort keep this order
CATEGORY_PARSERS: Tuple[Tuple[str, Callable[[Document], List[Issue]]], ...] = (
    ("secrets", parse_secrets),
    ("misconf", parse_misconfigurations),
    ("sast", parse_sast),
    ("iac", parse_iac),
    ("deps", parse_dependencies),
)


class ReportReader:
    """Reads ``<category>.<suffix>`` report files from a directory."""

    def __init__(self, report_suffix: str = REPORT_SUFFIX):
        self.report_suffix = report_suffix
        self.logger = logging.getLogger(__name__)

    def report_path(self, directory: Path, category: str) -> Path:
        return Path(directory) / f"{category}.{self.report_suffix}"

    def read_category(self, directory: Path, category: str,
                      parser: Callable[[Document], List[Issue]]) -> List[Issue]:
        """Parse one category report; a missing file yields no issues.

        Raises ParseError for unreadable or malformed documents.
        """
        path = self.report_path(directory, category)
        if not path.is_file():
            return []
        try:
            document = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ParseError(category, str(path), str(e)) from e
        if not isinstance(document, dict):
            raise ParseError(category, str(path), "top-level JSON value is not an object")
        try:
            return parser(document)
        except (TypeError, ValueError, AttributeError) as e:
            raise ParseError(category, str(path), str(e)) from e

    def read_reports(self, directory: Path) -> List[Issue]:
        """Read every category and return issues sorted by severity rank.

        A malformed report is logged and skipped; the other categories are
        still read.
        """
        issues: List[Issue] = []
        for category, parser in CATEGORY_PARSERS:
            try:
                found = self.read_category(directory, category, parser)
            except ParseError as e:
                self.logger.error(str(e))
                continue
            if found:
                self.logger.debug(f"Read {len(found)} {category} issues")
            issues.extend(found)
        return sorted(issues, key=lambda issue: severity_rank(issue.severity))


def read_reports(directory: Path, report_suffix: Optional[str] = None) -> List[Issue]:
    return ReportReader(report_suffix or REPORT_SUFFIX).read_reports(directory)
