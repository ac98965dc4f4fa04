"""
Test suite for remediation previews
"""

import shutil
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from xyscan.core.errors import IssueNotFoundError
from xyscan.core.installer import Installer
from xyscan.core.issue_store import IssueStore
from xyscan.core.model import (
    KIND_IAC,
    KIND_SAST,
    KIND_SCA,
    FixData,
    Issue,
    VulnerabilityDetails,
)
from xyscan.core.remediation import NO_EXPLANATION, RemediationService, unified_diff

ORIGINAL = "query = 'SELECT * FROM t WHERE id=' + user_id\nrun(query)\n"
PATCHED = "query = 'SELECT * FROM t WHERE id=?'\nrun(query, user_id)\n"


def patch_file(file_path, *args):
    Path(file_path).write_text(PATCHED, encoding="utf-8")


@pytest.fixture
def project(config, tmp_path):
    root = tmp_path / "proj"
    (root / "src").mkdir(parents=True)
    (root / "src" / "app.py").write_text(ORIGINAL, encoding="utf-8")
    (root / "pom.xml").write_text("<project/>\n", encoding="utf-8")
    config.set_root_directory(str(root))
    return root


@pytest.fixture
def installer(config):
    installer = Installer(config)
    installer.install_dir.mkdir(parents=True)
    (installer.install_dir / "xygeni").write_text("")
    return installer


@pytest.fixture
def scanner():
    scanner = MagicMock()
    scanner.run_rectify_sast = AsyncMock(side_effect=patch_file)
    scanner.run_rectify_sca = AsyncMock(side_effect=patch_file)
    return scanner


@pytest.fixture
def store():
    store = IssueStore()
    store.replace([
        Issue(id="SAST-9", kind=KIND_SAST, category="sast", category_name="SAST",
              detector="py_sqli", file="src/app.py", begin_line=1),
        Issue(id="CVE-1", kind=KIND_SCA, category="sca", category_name="SCA", file="pom.xml",
              details=VulnerabilityDetails(group="org.acme", name="lib", version="1.0", language="java")),
    ])
    return store


@pytest.fixture
def service(config, installer, scanner, store, project):
    return RemediationService(config, installer, scanner, store)


def cleanup(fix: FixData):
    if fix and fix.temp_file:
        shutil.rmtree(Path(fix.temp_file).parent, ignore_errors=True)


class TestRemediationPreview:
    """Rectify previews on temp copies."""

    @pytest.mark.asyncio
    async def test_sast_preview(self, service, scanner, installer, project):
        fix = await service.launch_remediation_preview(KIND_SAST, "sast-9", "src/app.py")
        try:
            temp_file = Path(fix.temp_file)
            assert temp_file.name == "app.py"
            assert temp_file.parent.name.startswith("xygeni_rem_")
            assert temp_file.read_text(encoding="utf-8") == PATCHED
            assert (project / "src" / "app.py").read_text(encoding="utf-8") == ORIGINAL
            assert fix.explanation == NO_EXPLANATION
            assert Path(fix.original_file) == (project / "src" / "app.py").resolve()

            scanner.run_rectify_sast.assert_awaited_once_with(
                str(temp_file), "py_sqli", 1, str(installer.install_dir)
            )
        finally:
            cleanup(fix)

    @pytest.mark.asyncio
    async def test_sca_preview_uses_dependency_coordinate(self, service, scanner, project):
        fix = await service.launch_remediation_preview(
            KIND_SCA, "CVE-1", str(project / "pom.xml"), install_path="/opt/xygeni"
        )
        try:
            scanner.run_rectify_sca.assert_awaited_once_with(
                fix.temp_file, "org.acme:lib:1.0:java", "/opt/xygeni"
            )
        finally:
            cleanup(fix)

    @pytest.mark.asyncio
    async def test_not_installed(self, service, installer, scanner):
        shutil.rmtree(installer.install_dir)
        assert await service.launch_remediation_preview(KIND_SAST, "SAST-9", "src/app.py") is None
        scanner.run_rectify_sast.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unsupported_kind(self, service):
        assert await service.launch_remediation_preview(KIND_IAC, "X", "main.tf") == FixData()

    @pytest.mark.asyncio
    async def test_empty_issue_id(self, service, scanner):
        assert await service.launch_remediation_preview(KIND_SAST, "", "src/app.py") == FixData()
        scanner.run_rectify_sast.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_issue(self, service):
        with pytest.raises(IssueNotFoundError):
            await service.launch_remediation_preview(KIND_SAST, "nope", "src/app.py")

    @pytest.mark.asyncio
    async def test_missing_file(self, service):
        with pytest.raises(FileNotFoundError):
            await service.launch_remediation_preview(KIND_SAST, "SAST-9", "src/missing.py")

    @pytest.mark.asyncio
    async def test_scanner_failure_propagates(self, service, scanner):
        scanner.run_rectify_sast.side_effect = RuntimeError("rectify failed")
        with pytest.raises(RuntimeError):
            await service.launch_remediation_preview(KIND_SAST, "SAST-9", "src/app.py")


class TestApplyFix:
    """Applying a previewed fix and diffing it."""

    @pytest.mark.asyncio
    async def test_diff_and_apply(self, service, project):
        fix = await service.launch_remediation_preview(KIND_SAST, "SAST-9", "src/app.py")
        try:
            diff = unified_diff(fix.original_file, fix.temp_file)
            assert diff[0].startswith("--- a/app.py")
            assert any(line.startswith("+run(query, user_id)") for line in diff)

            applied = service.apply_fix(fix)
            assert applied == (project / "src" / "app.py").resolve()
            assert applied.read_text(encoding="utf-8") == PATCHED
        finally:
            cleanup(fix)

    def test_apply_requires_patched_file(self, service):
        with pytest.raises(ValueError):
            service.apply_fix(FixData())
