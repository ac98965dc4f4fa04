"""
Test suite for the xyscan issue model
"""

import dataclasses

import pytest

from xyscan.core.model import (
    KIND_SAST,
    KIND_SCA,
    KIND_SECRET,
    SCAN_COMPLETED,
    SCAN_RUNNING,
    Issue,
    ProxySettings,
    SastDetails,
    ScanResult,
    SecretDetails,
    VulnerabilityDetails,
    severity_rank,
)


def make_issue(**overrides):
    values = {"id": "X-1", "kind": KIND_SAST, "category": "sast", "category_name": "SAST"}
    values.update(overrides)
    return Issue(**values)


class TestSeverityRank:
    """Severity labels map onto ordinal ranks."""

    @pytest.mark.parametrize("label,rank", [
        ("critical", 0), ("high", 1), ("medium", 2), ("low", 3), ("info", 4),
        ("CRITICAL", 0), (" High ", 1), ("Medium", 2),
    ])
    def test_known_labels(self, label, rank):
        assert severity_rank(label) == rank

    @pytest.mark.parametrize("label", ["", None, "severe", "unknown", "5"])
    def test_unknown_labels_rank_last(self, label):
        assert severity_rank(label) == 5

    def test_ranks_are_monotonic(self):
        ordered = ["critical", "high", "medium", "low", "info", "bogus"]
        ranks = [severity_rank(label) for label in ordered]
        assert ranks == sorted(ranks)
        assert set(ranks) <= {0, 1, 2, 3, 4, 5}


class TestIssue:
    """Issue construction and derived properties."""

    def test_details_default_to_kind_payload(self):
        issue = make_issue()
        assert isinstance(issue.details, SastDetails)
        assert issue.tags == ()

    def test_rejects_unknown_kind(self):
        with pytest.raises(ValueError):
            make_issue(kind="not_a_kind")

    def test_rejects_mismatched_details(self):
        with pytest.raises(TypeError):
            make_issue(kind=KIND_SECRET, category="secrets", details=SastDetails())

    def test_none_tags_become_empty(self):
        assert make_issue(tags=None).tags == ()

    def test_is_frozen(self):
        issue = make_issue()
        with pytest.raises(dataclasses.FrozenInstanceError):
            issue.severity = "low"

    def test_is_remediable_only_for_auto(self):
        assert make_issue(remediable_level="AUTO").is_remediable
        assert not make_issue(remediable_level="MANUAL").is_remediable
        assert not make_issue().is_remediable

    def test_short_explanation(self):
        assert make_issue(explanation="short").short_explanation == "short"
        long_text = "x" * 40
        assert make_issue(explanation=long_text).short_explanation == "x" * 30 + "..."
        assert make_issue().short_explanation == ""

    def test_dependency_coordinate(self):
        issue = make_issue(
            kind=KIND_SCA, category="sca", category_name="SCA",
            details=VulnerabilityDetails(group="org.acme", name="lib", version="1.2", language="java"),
        )
        assert issue.dependency_coordinate == "org.acme:lib:1.2:java"

        no_group = make_issue(
            kind=KIND_SCA, category="sca", category_name="SCA",
            details=VulnerabilityDetails(name="left-pad", version="1.0.0", language="javascript"),
        )
        assert no_group.dependency_coordinate == "left-pad:1.0.0:javascript"
        assert make_issue().dependency_coordinate is None

    def test_secret_details_accepted(self):
        issue = make_issue(kind=KIND_SECRET, category="secrets", details=SecretDetails(secret="***"))
        assert issue.details.secret == "***"


class TestRecords:
    """Scan history and proxy records."""

    def test_scan_result_terminal(self):
        from datetime import datetime
        assert not ScanResult(datetime.now(), SCAN_RUNNING).is_terminal
        assert ScanResult(datetime.now(), SCAN_COMPLETED).is_terminal

    def test_proxy_enabled_requires_host(self):
        assert not ProxySettings().enabled
        assert not ProxySettings(host="   ").enabled
        assert ProxySettings(host="proxy.local").enabled
