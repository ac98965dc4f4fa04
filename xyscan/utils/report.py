"""
Report Rendering Utilities for xyscan
Tables, detail views and file exports for normalized issues
"""

import csv
import dataclasses
import json
import logging
from collections import Counter
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from tabulate import tabulate

from xyscan.core.model import (
    KIND_IAC,
    KIND_MISCONF,
    KIND_SAST,
    KIND_SCA,
    KIND_SECRET,
    SEVERITY_RANKS,
    Issue,
    ScanResult,
)

SEVERITY_STYLES = {
    "critical": "bold red",
    "high": "red",
    "medium": "yellow",
    "low": "cyan",
    "info": "dim",
}

Field = Tuple[str, str]


def _join(values: Sequence[str]) -> str:
    return ", ".join(values)


def _vulnerability_fields(issue: Issue) -> List[Field]:
    d = issue.details
    return [
        ("Package", issue.dependency_coordinate or ""),
        ("Affected versions", d.versions),
        ("CVSS score", f"{d.base_score:.1f}" if d.base_score else ""),
        ("Vector", d.vector),
        ("Published", d.publication_date),
        ("Direct dependency", "yes" if d.direct_dependency else "no"),
        ("Dependency paths", _join(d.dependency_paths)),
        ("Weaknesses", _join(d.weaknesses)),
        ("References", _join(d.references)),
    ]


def _secret_fields(issue: Issue) -> List[Field]:
    d = issue.details
    return [
        ("Secret", d.secret),
        ("Resource", d.resource),
        ("Found by", d.found_by),
        ("Branch", d.branch),
        ("Commit", d.commit_hash),
        ("User", d.user),
        ("Hash", d.hash),
    ]


def _misconfiguration_fields(issue: Issue) -> List[Field]:
    d = issue.details
    return [("Tool kind", d.tool_kind), ("Branch", d.branch)]


def _iac_fields(issue: Issue) -> List[Field]:
    d = issue.details
    return [
        ("Resource", d.resource),
        ("Provider", d.provider),
        ("Found by", d.found_by),
        ("Branch", d.branch),
    ]


def _sast_fields(issue: Issue) -> List[Field]:
    d = issue.details
    return [
        ("CWE", d.cwe),
        ("CWEs", _join(d.cwes)),
        ("Language", d.language),
        ("Container", d.container),
        ("Branch", d.branch),
    ]


DETAIL_FIELDS: Dict[str, Callable[[Issue], List[Field]]] = {
    KIND_SCA: _vulnerability_fields,
    KIND_SECRET: _secret_fields,
    KIND_MISCONF: _misconfiguration_fields,
    KIND_IAC: _iac_fields,
    KIND_SAST: _sast_fields,
}


def issue_fields(issue: Issue) -> List[Field]:
    """Common and kind-specific fields of *issue*; empty values are dropped."""
    location = issue.file
    if issue.begin_line:
        location = f"{location}:{issue.begin_line}"
    common = [
        ("Id", issue.id),
        ("Category", issue.category_name),
        ("Type", issue.type),
        ("Severity", issue.severity),
        ("Confidence", issue.confidence),
        ("Detector", issue.detector),
        ("Tool", issue.tool),
        ("Location", location),
        ("Remediable", issue.remediable_level),
        ("Tags", _join(issue.tags)),
        ("Url", issue.url),
    ]
    specific = DETAIL_FIELDS[issue.kind](issue)
    return [(name, value) for name, value in common + specific if value]


def issue_to_dict(issue: Issue) -> Dict[str, Any]:
    data = dataclasses.asdict(issue)
    data["severity_rank"] = issue.severity_rank
    return data


def issues_table(issues: Iterable[Issue], tablefmt: str = "simple") -> str:
    rows = []
    for issue in issues:
        rows.append([
            issue.id,
            issue.severity,
            issue.category_name,
            issue.type,
            issue.file,
            issue.begin_line or "",
        ])
    if not rows:
        return "No issues found."
    return tabulate(rows, headers=["ID", "Severity", "Category", "Type", "File", "Line"], tablefmt=tablefmt)


def severity_summary(issues: Iterable[Issue]) -> Dict[str, int]:
    """Issue counts per severity, in rank order; unknown labels count as ``unknown``."""
    counts = Counter(
        issue.severity.lower() if issue.severity and issue.severity.lower() in SEVERITY_RANKS else "unknown"
        for issue in issues
    )
    ordered = list(SEVERITY_RANKS) + ["unknown"]
    return {severity: counts[severity] for severity in ordered if counts[severity]}


def summary_table(issues: Iterable[Issue], tablefmt: str = "simple") -> str:
    issues = list(issues)
    by_category = Counter(issue.category_name for issue in issues)
    rows = [[category, count] for category, count in sorted(by_category.items())]
    rows.append(["Total", len(issues)])
    return tabulate(rows, headers=["Category", "Issues"], tablefmt=tablefmt)


def scan_history_table(scans: Iterable[ScanResult], tablefmt: str = "simple") -> str:
    rows = [
        [scan.timestamp.strftime("%Y-%m-%d %H:%M:%S"), scan.status, scan.summary]
        for scan in scans
    ]
    return tabulate(rows, headers=["Started", "Status", "Summary"], tablefmt=tablefmt)


def issues_json(issues: Iterable[Issue], indent: Optional[int] = 2) -> str:
    return json.dumps([issue_to_dict(issue) for issue in issues], indent=indent, ensure_ascii=False)


class ReportGenerator:
    """Write issue exports to disk."""

    CSV_COLUMNS = [
        "ID", "Kind", "Category", "Type", "Severity", "Confidence", "Detector",
        "Tool", "File", "Begin_Line", "End_Line", "Remediable", "Tags", "Url",
    ]

    def __init__(self, output_dir: str = "."):
        self.output_dir = Path(output_dir)
        self.logger = logging.getLogger(__name__)

    def _target(self, filename: Optional[str], extension: str) -> Path:
        if not filename:
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            filename = f"issues_{timestamp}.{extension}"
        path = self.output_dir / filename
        path.parent.mkdir(parents=True, exist_ok=True)
        return path

    def generate_json_report(self, issues: Iterable[Issue], filename: Optional[str] = None) -> str:
        filepath = self._target(filename, "json")
        filepath.write_text(issues_json(issues), encoding="utf-8")
        self.logger.info(f"JSON report generated: {filepath}")
        return str(filepath)

    def generate_csv_report(self, issues: Iterable[Issue], filename: Optional[str] = None) -> str:
        filepath = self._target(filename, "csv")
        with open(filepath, "w", newline="", encoding="utf-8") as csvfile:
            writer = csv.writer(csvfile)
            writer.writerow(self.CSV_COLUMNS)
            for issue in issues:
                writer.writerow([
                    issue.id,
                    issue.kind,
                    issue.category,
                    issue.type,
                    issue.severity,
                    issue.confidence,
                    issue.detector,
                    issue.tool,
                    issue.file,
                    issue.begin_line,
                    issue.end_line,
                    issue.remediable_level,
                    "; ".join(issue.tags),
                    issue.url,
                ])
        self.logger.info(f"CSV report generated: {filepath}")
        return str(filepath)
