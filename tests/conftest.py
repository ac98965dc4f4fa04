"""
Shared fixtures for the xyscan test suite
"""

import io
import json
import stat
import zipfile
from pathlib import Path

import pytest
import yaml

from xyscan.core.config import ConfigurationService
from xyscan.core.context import reset_context


def write_config(path: Path, data: dict) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return path


def write_report(directory: Path, category: str, document, suffix: str = "scanner.report.json") -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"{category}.{suffix}"
    path.write_text(json.dumps(document), encoding="utf-8")
    return path


def write_script(path: Path, body: str) -> Path:
    """Write an executable POSIX shell script."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("#!/bin/sh\n" + body + "\n", encoding="utf-8")
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


def make_scanner_zip(root: str = "xygeni_scanner", extra: dict = None) -> bytes:
    """In-memory scanner distribution archive."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        launcher = zipfile.ZipInfo(f"{root}/xygeni")
        launcher.external_attr = (0o755 << 16)
        archive.writestr(launcher, "#!/bin/sh\necho xygeni\n")
        archive.writestr(f"{root}/lib/scanner.jar", b"jar-bytes")
        for name, content in (extra or {}).items():
            archive.writestr(name, content)
    return buffer.getvalue()


@pytest.fixture
def config_path(tmp_path):
    return write_config(tmp_path / "home" / "config.yml", {
        "api": {"url": "https://api.example.test", "token": "tok-123"},
        "scanner": {
            "install_dir": str(tmp_path / "home"),
            "metadata_dir": str(tmp_path / "metadata"),
            "timeout_seconds": 30,
        },
    })


@pytest.fixture
def config(config_path):
    """Configuration isolated in a temp directory, ignoring XYGENI_* env vars."""
    return ConfigurationService(str(config_path), use_environment=False)


@pytest.fixture
def sast_report():
    return {
        "metadata": {"reportProperties": {"tool.name": "xygeni-sast"}},
        "currentBranch": "main",
        "vulnerabilities": [
            {
                "issueId": "SAST-001",
                "kind": "sql_injection",
                "detector": "java_sqli",
                "severity": "high",
                "location": {
                    "filepath": "src/App.java",
                    "beginLine": 12,
                    "endLine": 12,
                    "beginColumn": 5,
                    "endColumn": 40,
                    "code": "stmt.execute(query);",
                },
                "explanation": "User input flows into a SQL statement",
                "url": "https://docs.example.test/java_sqli",
                "tags": ["owasp"],
                "cwe": "CWE-89",
                "cwes": ["CWE-89"],
                "language": "java",
            }
        ],
    }


@pytest.fixture(autouse=True)
def clean_context():
    yield
    reset_context()
