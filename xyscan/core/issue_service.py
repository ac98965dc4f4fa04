"""
Issue Service for xyscan
Loads scanner reports into the issue store and refreshes after completed scans
"""

import asyncio
import logging
import threading
from pathlib import Path
from typing import Optional, Set, Tuple

import httpx

from ..utils.http_client import HTTPClient
from ..utils.logger import log_banner
from .config import ConfigurationService
from .errors import DetectorDocError
from .events import Subscription
from .issue_store import IssueStore
from .model import SCAN_COMPLETED, Issue, ScanResult
from .report_parser import ReportReader

DOC_TIMEOUT = 30


class IssueService:
    """Reads report files and publishes them through an IssueStore."""

    def __init__(self,
                 config: ConfigurationService,
                 store: Optional[IssueStore] = None,
                 reader: Optional[ReportReader] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self.store = store or IssueStore()
        self.reader = reader or ReportReader(config.report_suffix)
        self.transport = transport
        self.logger = logging.getLogger(__name__)
        self._read_guard = threading.Lock()
        self._pending: Set[asyncio.Task] = set()

    # Store views

    def get_issues(self) -> Tuple[Issue, ...]:
        return self.store.get_all()

    def get_issues_by_category(self, category: str) -> Tuple[Issue, ...]:
        return self.store.get_by_category(category)

    def find_issue_by_id(self, issue_id: str) -> Optional[Issue]:
        return self.store.find_by_id(issue_id)

    def is_reading(self) -> bool:
        return self._read_guard.locked()

    async def read_issues(self, directory: Optional[Path] = None) -> bool:
        """Replace the store contents with the reports found in *directory*.

        Defaults to the project metadata folder. Returns False when another
        read is already in progress; that request is dropped.
        """
        if not self._read_guard.acquire(blocking=False):
            self.logger.info("Issues are already being read, skipping...")
            return False
        try:
            log_banner(self.logger, "Reading issues...")
            working_dir = Path(directory) if directory else self.config.metadata_folder()
            self.logger.info(f"Issues report directory: {working_dir}")

            issues = await asyncio.to_thread(self.reader.read_reports, working_dir)
            self.store.replace(issues)
            self.logger.info(f"{len(issues)} issues read.")
            return True
        finally:
            self._read_guard.release()

    # Scanner integration

    def attach_scanner(self, scanner) -> Subscription:
        """Re-read issues whenever *scanner* reports a completed analysis."""
        return scanner.changed.subscribe(self._on_scan_changed)

    def _on_scan_changed(self, result: Optional[ScanResult]) -> None:
        if result is None or result.status != SCAN_COMPLETED:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            asyncio.run(self.read_issues())
            return
        task = loop.create_task(self.read_issues())
        self._pending.add(task)
        task.add_done_callback(self._read_done)

    def _read_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            self.logger.error(f"Error reading issues output: {task.exception()}")

    async def wait_pending(self) -> None:
        """Wait for refreshes scheduled by scanner notifications."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # Detector documentation

    async def get_detector_doc(self, url: str, token: str) -> str:
        """Fetch detector documentation from *url* using *token*."""
        if not token:
            self.logger.info("Xygeni token not found, skipping detector doc retrieval...")
            raise DetectorDocError(DetectorDocError.TOKEN_NOT_FOUND)

        client = HTTPClient(
            timeout=DOC_TIMEOUT,
            proxy_settings=self.config.get_proxy_settings(),
            transport=self.transport,
        )
        async with client:
            response = await client.get(url, headers={"Authorization": f"Bearer {token}"})

        if not response.is_success:
            if DetectorDocError.DETECTOR_NOT_FOUND in response.text:
                raise DetectorDocError(DetectorDocError.DETECTOR_NOT_FOUND)
            self.logger.error(f"Error loading issue doc from {url}: HTTP {response.status_code}")
            raise DetectorDocError(
                DetectorDocError.HTTP_ERROR,
                f"Error reading detector doc: HTTP {response.status_code}",
            )
        return response.text
