"""
Application context for xyscan
Constructs and wires the process-wide services
"""

import logging
import threading
from typing import Optional

import httpx

from .config import ConfigurationService
from .diagnostics import DiagnosticIndex
from .errors import NotInitializedError
from .installer import Installer
from .issue_service import IssueService
from .issue_store import IssueStore
from .remediation import RemediationService
from .scanner import ScannerService

logger = logging.getLogger(__name__)


class AppContext:
    """One instance of every service, wired together.

    The issue service re-reads reports after each completed scan and the
    diagnostic index follows the issue store.
    """

    def __init__(self,
                 config: Optional[ConfigurationService] = None,
                 installer: Optional[Installer] = None,
                 scanner: Optional[ScannerService] = None,
                 store: Optional[IssueStore] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config or ConfigurationService()
        self.installer = installer or Installer(self.config, transport=transport)
        self.scanner = scanner or ScannerService(self.config)
        self.store = store or IssueStore()
        self.issues = IssueService(self.config, store=self.store, transport=transport)
        self.diagnostics = DiagnosticIndex(self.store, root_provider=lambda: self.config.root_directory)
        self.remediation = RemediationService(self.config, self.installer, self.scanner, self.store)

        self._subscriptions = [
            self.issues.attach_scanner(self.scanner),
            self.diagnostics.attach(),
        ]

    def close(self) -> None:
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions = []


_context: Optional[AppContext] = None
_context_lock = threading.Lock()


def init_context(context: Optional[AppContext] = None, **kwargs) -> AppContext:
    """Install *context* (or a new one built from *kwargs*) as the current context."""
    global _context
    new_context = context or AppContext(**kwargs)
    with _context_lock:
        previous, _context = _context, new_context
    if previous is not None and previous is not new_context:
        previous.close()
    logger.debug("Application context initialized")
    return new_context


def current_context() -> AppContext:
    with _context_lock:
        context = _context
    if context is None:
        raise NotInitializedError("xyscan context has not been initialized")
    return context


def reset_context() -> None:
    global _context
    with _context_lock:
        previous, _context = _context, None
    if previous is not None:
        previous.close()
