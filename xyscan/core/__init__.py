"""
xyscan Core Components
Issue model, errors, configuration and change notification
"""

from .config import ConfigurationService
from .errors import (
    ChecksumMismatchError,
    InstallError,
    NetworkError,
    NotInitializedError,
    ParseError,
    ProcessExitError,
    ProcessTimeoutError,
    ScanError,
    StateConflictError,
    ValidationError,
    XyscanError,
)
from .events import EventChannel, Subscription
from .model import FixData, InstallState, Issue, ProxySettings, ScanResult

__all__ = [
    "ConfigurationService",
    "EventChannel",
    "Subscription",
    "Issue",
    "ScanResult",
    "InstallState",
    "ProxySettings",
    "FixData",
    "XyscanError",
    "ValidationError",
    "NetworkError",
    "InstallError",
    "ChecksumMismatchError",
    "ScanError",
    "ProcessTimeoutError",
    "ProcessExitError",
    "ParseError",
    "StateConflictError",
    "NotInitializedError",
]
