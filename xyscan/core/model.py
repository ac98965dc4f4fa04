"""
Core models for xyscan

Defines the normalized issue record shared by the parser, the issue store and
every consumer, plus scan history and installer state records.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple, Union

# Issue kinds (the discriminator of the Issue tagged union)
KIND_SCA = "sca_vulnerability"
KIND_SECRET = "secret"
KIND_MISCONF = "misconfiguration"
KIND_IAC = "iac_flaw"
KIND_SAST = "code_vulnerability"

ISSUE_KINDS = (KIND_SCA, KIND_SECRET, KIND_MISCONF, KIND_IAC, KIND_SAST)

REMEDIABLE_AUTO = "AUTO"
REMEDIABLE_MANUAL = "MANUAL"
REMEDIABLE_NONE = "none"

SEVERITY_RANKS = {
    "critical": 0,
    "high": 1,
    "medium": 2,
    "low": 3,
    "info": 4,
}
UNKNOWN_SEVERITY_RANK = 5


def severity_rank(severity: Optional[str]) -> int:
    """Map a severity label to its ordinal rank (critical=0 ... unknown=5)."""
    return SEVERITY_RANKS.get((severity or "").strip().lower(), UNKNOWN_SEVERITY_RANK)


@dataclass(frozen=True)
class VulnerabilityDetails:
    """Payload of an SCA (dependency) vulnerability."""

    group: str = ""
    name: str = ""
    version: str = ""
    language: str = ""
    base_score: float = 0.0
    versions: str = ""
    vector: str = ""
    publication_date: str = ""
    direct_dependency: bool = False
    dependency_paths: Tuple[str, ...] = ()
    virtual: bool = False
    repository_type: str = ""
    display_file_name: str = ""
    weaknesses: Tuple[str, ...] = ()
    references: Tuple[str, ...] = ()


@dataclass(frozen=True)
class SecretDetails:
    """Payload of a leaked secret."""

    hash: str = ""
    secret: str = ""
    resource: str = ""
    found_by: str = ""
    branch: str = ""
    commit_hash: str = ""
    user: str = ""
    time_added: int = 0


@dataclass(frozen=True)
class MisconfigurationDetails:
    """Payload of a misconfiguration."""

    tool_kind: str = ""
    branch: str = ""


@dataclass(frozen=True)
class IacDetails:
    """Payload of an infrastructure-as-code flaw."""

    resource: str = ""
    provider: str = ""
    found_by: str = ""
    branch: str = ""


@dataclass(frozen=True)
class SastDetails:
    """Payload of a code (SAST) vulnerability."""

    branch: str = ""
    cwe: str = ""
    cwes: Tuple[str, ...] = ()
    container: str = ""
    language: str = ""


IssueDetails = Union[
    VulnerabilityDetails,
    SecretDetails,
    MisconfigurationDetails,
    IacDetails,
    SastDetails,
]

_DETAILS_BY_KIND = {
    KIND_SCA: VulnerabilityDetails,
    KIND_SECRET: SecretDetails,
    KIND_MISCONF: MisconfigurationDetails,
    KIND_IAC: IacDetails,
    KIND_SAST: SastDetails,
}


@dataclass(frozen=True)
class Issue:
    """A single normalized finding from any scanner category.

    ``kind`` selects the variant; ``details`` carries the matching payload
    type. Instances are immutable so snapshots can be shared between threads.
    """

    id: str
    kind: str
    category: str
    category_name: str
    type: str = ""
    detector: str = ""
    tool: str = ""
    severity: str = ""
    confidence: str = "high"
    file: str = ""
    begin_line: int = 0
    end_line: int = 0
    begin_column: int = 0
    end_column: int = 0
    code: str = ""
    explanation: str = ""
    url: str = ""
    tags: Tuple[str, ...] = ()
    remediable_level: str = REMEDIABLE_NONE
    details: Optional[IssueDetails] = None

    def __post_init__(self) -> None:
        if self.kind not in ISSUE_KINDS:
            raise ValueError(f"Unknown issue kind: {self.kind}")
        expected = _DETAILS_BY_KIND[self.kind]
        if self.details is None:
            object.__setattr__(self, "details", expected())
        elif not isinstance(self.details, expected):
            raise TypeError(
                f"Issue of kind {self.kind} requires {expected.__name__} details"
            )
        if self.tags is None:
            object.__setattr__(self, "tags", ())

    @property
    def severity_rank(self) -> int:
        return severity_rank(self.severity)

    @property
    def is_remediable(self) -> bool:
        return self.remediable_level == REMEDIABLE_AUTO

    @property
    def short_explanation(self) -> str:
        if not self.explanation:
            return ""
        if len(self.explanation) > 30:
            return self.explanation[:30] + "..."
        return self.explanation

    @property
    def dependency_coordinate(self) -> Optional[str]:
        """``[group:]name:version:language`` for SCA issues, else None."""
        if not isinstance(self.details, VulnerabilityDetails):
            return None
        d = self.details
        coordinate = f"{d.name}:{d.version}:{d.language}"
        if d.group:
            coordinate = f"{d.group}:{coordinate}"
        return coordinate


# Scan history

SCAN_RUNNING = "running"
SCAN_COMPLETED = "completed"
SCAN_FAILED = "failed"


@dataclass(frozen=True)
class ScanResult:
    """One entry of the bounded scan history."""

    timestamp: datetime
    status: str
    summary: str = ""

    @property
    def is_terminal(self) -> bool:
        return self.status in (SCAN_COMPLETED, SCAN_FAILED)


# Installer state

INSTALL_IDLE = "idle"
INSTALL_RUNNING = "running"
INSTALL_SUCCESS = "success"
INSTALL_ERROR = "error"


@dataclass(frozen=True)
class InstallState:
    """Snapshot of the installer state."""

    installation_running: bool = False
    is_installed: bool = False
    status: str = INSTALL_IDLE


@dataclass
class ProxySettings:
    """Outbound proxy configuration."""

    protocol: str = "http"
    host: str = ""
    port: Optional[int] = None
    authentication: str = "none"  # none | basic | default
    username: str = ""
    password: str = ""
    non_proxy_hosts: str = ""

    @property
    def enabled(self) -> bool:
        return bool(self.host and self.host.strip())


@dataclass(frozen=True)
class FixData:
    """Result of a rectify preview: the patched temp copy of a file."""

    temp_file: Optional[str] = None
    explanation: Optional[str] = None
    original_file: Optional[str] = None
