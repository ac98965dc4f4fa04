"""
Error taxonomy for xyscan
Every failure raised by the core services derives from XyscanError
"""

from typing import List, Optional


class XyscanError(Exception):
    """Base class for all xyscan errors."""


class ValidationError(XyscanError):
    """API URL or token rejected by the Xygeni backend."""


class NetworkError(XyscanError):
    """Download or HTTP failure."""

    def __init__(self, message: str, url: Optional[str] = None,
                 status_code: Optional[int] = None):
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class InstallError(XyscanError):
    """Scanner archive could not be installed (bad layout, I/O failure)."""


class ChecksumMismatchError(InstallError):
    """Downloaded archive does not match the published SHA-256 digest."""

    def __init__(self, expected: str, actual: str):
        super().__init__(
            f"Checksum validation failed. Expected: {expected}, Got: {actual}"
        )
        self.expected = expected
        self.actual = actual


class ScanError(XyscanError):
    """Base class for scanner process failures."""


class ProcessTimeoutError(ScanError):
    """Scanner process exceeded its wall-clock budget and was killed."""

    def __init__(self, timeout: float):
        super().__init__(f"Scanner process timeout after {timeout:.0f}s")
        self.timeout = timeout


class ProcessExitError(ScanError):
    """Scanner process exited with a code the exit policy treats as failure."""

    def __init__(self, exit_code: int, output_tail: Optional[List[str]] = None):
        super().__init__(f"Scanner process failed with exit code {exit_code}")
        self.exit_code = exit_code
        self.output_tail = list(output_tail or [])


class ParseError(XyscanError):
    """A scanner report file could not be parsed."""

    def __init__(self, category: str, path: str, reason: str):
        super().__init__(f"Error reading {category} output {path}: {reason}")
        self.category = category
        self.path = path


class StateConflictError(XyscanError):
    """A single-flight operation was started while another one is in flight."""


class NotInitializedError(XyscanError):
    """A process-wide service was used before it was initialized."""


class DetectorDocError(XyscanError):
    """Detector documentation could not be fetched.

    ``reason`` is ``token_not_found``, ``detector_not_found`` or ``http_error``.
    """

    TOKEN_NOT_FOUND = "token_not_found"
    DETECTOR_NOT_FOUND = "detector_not_found"
    HTTP_ERROR = "http_error"

    def __init__(self, reason: str, message: Optional[str] = None):
        super().__init__(message or reason)
        self.reason = reason


class IssueNotFoundError(XyscanError):
    """No issue with the requested id is loaded."""

    def __init__(self, issue_id: str):
        super().__init__(f"Issue not found: {issue_id}")
        self.issue_id = issue_id
