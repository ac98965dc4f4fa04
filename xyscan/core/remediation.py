"""
Remediation Service for xyscan
Produces rectify previews on temporary copies of affected files
"""

import difflib
import logging
import os
import shutil
import tempfile
import uuid
from pathlib import Path
from typing import List, Optional

from .config import ConfigurationService
from .errors import IssueNotFoundError
from .installer import Installer
from .issue_store import IssueStore
from .model import KIND_SAST, KIND_SCA, FixData, Issue, VulnerabilityDetails
from .scanner import ScannerService

NO_EXPLANATION = "No explanation available"


class RemediationService:
    """Runs ``util rectify`` against a temp copy and reports the patched file."""

    def __init__(self,
                 config: ConfigurationService,
                 installer: Installer,
                 scanner: ScannerService,
                 store: IssueStore):
        self.config = config
        self.installer = installer
        self.scanner = scanner
        self.store = store
        self.logger = logging.getLogger(__name__)

    async def launch_remediation_preview(self, kind: str, issue_id: str, file_path: str,
                                         install_path: Optional[str] = None) -> Optional[FixData]:
        """Preview the fix for one issue.

        Returns None when the scanner is not installed and an empty FixData for
        kinds without automatic remediation.
        """
        if not self.installer.check_installation():
            self.logger.warning("Xygeni is not ready. Please install it first.")
            return None

        install_path = install_path or str(self.installer.install_dir)
        self.logger.info(f"Run remediation for kind {kind}")

        if kind == KIND_SAST:
            return await self._preview_sast(issue_id, file_path, install_path)
        if kind == KIND_SCA:
            return await self._preview_sca(issue_id, file_path, install_path)

        self.logger.info(f"Remediation preview not supported for {kind}")
        return FixData()

    async def _preview_sast(self, issue_id: str, file_path: str, install_path: str) -> FixData:
        if not issue_id:
            return FixData()
        issue = self._find_issue(issue_id)
        original = self._absolute_file(file_path)
        temp_file = self._copy_to_temp(original)
        await self.scanner.run_rectify_sast(str(temp_file), issue.detector, issue.begin_line, install_path)
        return FixData(temp_file=str(temp_file), explanation=NO_EXPLANATION, original_file=str(original))

    async def _preview_sca(self, issue_id: str, file_path: str, install_path: str) -> FixData:
        if not issue_id:
            return FixData()
        issue = self._find_issue(issue_id)
        if not isinstance(issue.details, VulnerabilityDetails):
            raise IssueNotFoundError(issue_id)
        original = self._absolute_file(file_path)
        temp_file = self._copy_to_temp(original)
        await self.scanner.run_rectify_sca(str(temp_file), issue.dependency_coordinate, install_path)
        self.logger.info(f"SCA remediation applied to {file_path} on {temp_file}. Check changes before save...")
        return FixData(temp_file=str(temp_file), explanation=NO_EXPLANATION, original_file=str(original))

    def _find_issue(self, issue_id: str) -> Issue:
        issue = self.store.find_by_id(issue_id)
        if issue is None:
            self.logger.error(f"Issue not found: {issue_id}")
            raise IssueNotFoundError(issue_id)
        return issue

    def _absolute_file(self, file_path: str) -> Path:
        path = Path(file_path)
        if not path.is_absolute() and self.config.root_directory:
            path = Path(self.config.root_directory) / path
        if not path.is_file():
            self.logger.error(f"File not found: {path}")
            raise FileNotFoundError(f"File not found: {path}")
        return path

    @staticmethod
    def _copy_to_temp(original: Path) -> Path:
        temp_dir = Path(tempfile.gettempdir()) / f"xygeni_rem_{uuid.uuid4().hex[:8]}"
        temp_dir.mkdir(parents=True, exist_ok=True)
        temp_file = temp_dir / original.name
        shutil.copyfile(original, temp_file)
        return temp_file

    def apply_fix(self, fix: FixData) -> Path:
        """Overwrite the original file with the patched temp copy."""
        if not fix.temp_file or not fix.original_file:
            raise ValueError("Fix has no patched file to apply")
        shutil.copyfile(fix.temp_file, fix.original_file)
        self.logger.info(f"Applied remediation to {fix.original_file}")
        return Path(fix.original_file)


def unified_diff(original_file: str, patched_file: str) -> List[str]:
    """Unified diff lines between the original file and its patched copy."""
    with open(original_file, encoding="utf-8", errors="replace") as fh:
        before = fh.readlines()
    with open(patched_file, encoding="utf-8", errors="replace") as fh:
        after = fh.readlines()
    name = os.path.basename(original_file)
    return list(difflib.unified_diff(before, after, fromfile=f"a/{name}", tofile=f"b/{name}"))
