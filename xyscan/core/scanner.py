"""
Scanner Service for xyscan
Runs the Xygeni scanner as a supervised child process
"""

import asyncio
import logging
import os
import re
import signal
import threading
import time
from collections import deque
from datetime import datetime
from pathlib import Path
from typing import Callable, Deque, Dict, List, Optional, Sequence

from ..utils.logger import SCANNER_OUTPUT_LOGGER, log_banner
from .config import ENV_TOKEN, ENV_URL, REPORT_SUFFIX, ConfigurationService
from .errors import (
    ProcessExitError,
    ProcessTimeoutError,
    ScanError,
    StateConflictError,
)
from .events import EventChannel
from .model import SCAN_COMPLETED, SCAN_FAILED, SCAN_RUNNING, ScanResult

HISTORY_SIZE = 5
OUTPUT_TAIL_SIZE = 50
DEFAULT_MAX_CONCURRENT = 3

ANALYSIS_CATEGORIES = "deps,secrets,misconf,iac,suspectdeps,sast"
RECTIFY_SCA_ARGS = ("util", "rectify", "--sca")
RECTIFY_SAST_ARGS = ("util", "rectify", "--sast")

ANSI_ESCAPE = re.compile(r"\x1B(?:[@-Z\\-_]|\[[0-?]*[ -/]*[@-~])")

ExitPolicy = Callable[[int], bool]


def default_exit_policy(exit_code: int) -> bool:
    """True when *exit_code* means the scan failed.

    The scanner wrapper reports errors as 1..128; zero, negative (signalled)
    and larger codes are not treated as failures.
    """
    return 0 < exit_code <= 128


def kill_process_tree(process: asyncio.subprocess.Process) -> None:
    """Kill the scanner and everything it spawned (its own process group on POSIX)."""
    try:
        if os.name != "nt":
            os.killpg(process.pid, signal.SIGKILL)
        else:
            process.kill()
    except ProcessLookupError:
        pass


def strip_ansi(text: str) -> str:
    return ANSI_ESCAPE.sub("", text)


def analysis_args(source_root: str, report_suffix: str = REPORT_SUFFIX) -> List[str]:
    return [
        "scan",
        f"--run={ANALYSIS_CATEGORIES}",
        "-f", "json",
        "-o", report_suffix,
        "--no-upload",
        "--include-vulnerabilities",
        "-d", str(source_root),
    ]


class ScannerService:
    """Invokes the scanner and keeps a short history of analysis runs.

    Only one scanner process runs at a time; the guard is a lock acquired
    without blocking. A bounded slot semaphore caps how many jobs may be
    admitted once several are allowed.
    """

    def __init__(self,
                 config: ConfigurationService,
                 timeout: Optional[float] = None,
                 max_concurrent: Optional[int] = None,
                 exit_policy: ExitPolicy = default_exit_policy,
                 use_powershell: Optional[bool] = None):
        self.config = config
        self.timeout = timeout if timeout is not None else config.timeout_seconds
        self.max_concurrent = max_concurrent or config.max_concurrent or DEFAULT_MAX_CONCURRENT
        self.exit_policy = exit_policy
        self.use_powershell = (os.name == "nt") if use_powershell is None else use_powershell
        self.logger = logging.getLogger(__name__)
        self.output_logger = logging.getLogger(SCANNER_OUTPUT_LOGGER)

        self.changed = EventChannel("scanner.changed")
        self.exit_code: Optional[int] = None

        self._guard = threading.Lock()
        self._slots = asyncio.Semaphore(self.max_concurrent)
        self._counter_lock = threading.Lock()
        self._waiting = 0
        self._active = 0
        self._history: Deque[ScanResult] = deque(maxlen=HISTORY_SIZE)
        self._history_lock = threading.Lock()

    # ------------------------------------------------------------------
    # State queries
    # ------------------------------------------------------------------

    def is_scanner_running(self) -> bool:
        return self._guard.locked()

    def has_queued_scanners(self) -> bool:
        with self._counter_lock:
            return self._waiting > 0 or self._active > 0

    def get_scans(self) -> List[ScanResult]:
        with self._history_lock:
            return list(self._history)

    def _record(self, result: ScanResult, replacing: Optional[ScanResult] = None) -> None:
        with self._history_lock:
            if replacing is not None:
                for index, entry in enumerate(self._history):
                    if entry is replacing:
                        self._history[index] = result
                        return
            self._history.append(result)

    def _discard(self, entry: ScanResult) -> None:
        with self._history_lock:
            for index, existing in enumerate(self._history):
                if existing is entry:
                    del self._history[index]
                    return

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    async def run_analysis(self, source_root: str, install_path: str) -> bool:
        """Run a full scan of *source_root*.

        Scan failures are logged and recorded in the history as ``failed``;
        they are never raised. Returns False as a no-op when a scanner is
        already running.
        """
        if self.is_scanner_running():
            self.logger.warning("Scanner is already running, ignoring scan request")
            return False

        self.exit_code = None
        started = datetime.now()
        start_clock = time.monotonic()

        log_banner(self.logger, f"Running scan on source folder: {source_root}")
        current = ScanResult(timestamp=started, status=SCAN_RUNNING)
        self._record(current)
        self.changed.emit(current)

        final: Optional[ScanResult] = None
        try:
            await self.run_analysis_command(source_root, install_path)
            elapsed = time.monotonic() - start_clock
            self.logger.info("Scanner finished")
            final = ScanResult(
                timestamp=started,
                status=SCAN_COMPLETED,
                summary=f"Duration: {elapsed:.2f}s",
            )
            self.exit_code = 0
            return True
        except StateConflictError as e:
            # Another scan won the guard between the check above and the call
            self.logger.warning(str(e))
            self._discard(current)
            return False
        except Exception as e:
            self.logger.error(f"Error running scanner: {e}")
            final = ScanResult(timestamp=started, status=SCAN_FAILED, summary=str(e))
            self.exit_code = 1
            return False
        finally:
            if final is not None:
                self._record(final, replacing=current)
                self.changed.emit(final)
            else:
                self.changed.emit(None)

    async def run_analysis_command(self, source_root: str, install_path: str) -> None:
        """Scan *source_root*, writing reports into the project metadata folder."""
        project_name = Path(source_root).name or None
        metadata_folder = self.config.metadata_folder(project_name)
        args = analysis_args(source_root, self.config.report_suffix)
        await self._call_scanner(install_path, args, metadata_folder)

    async def run_rectify_sca(self, file_path: str, dependency: str, install_path: str) -> None:
        args = list(RECTIFY_SCA_ARGS) + ["--file-path", str(file_path), "--dependency", dependency]
        await self._call_scanner(install_path, args, Path(file_path).parent)

    async def run_rectify_sast(self, file_path: str, detector: str, line, install_path: str) -> None:
        args = list(RECTIFY_SAST_ARGS) + [
            "--file-path", str(file_path),
            "--detector", detector,
            "--line", str(line),
        ]
        await self._call_scanner(install_path, args, Path(file_path).parent)

    # ------------------------------------------------------------------
    # Process supervision
    # ------------------------------------------------------------------

    async def _call_scanner(self, install_path: str, args: Sequence[str],
                            working_dir: Optional[Path]) -> None:
        if not self._guard.acquire(blocking=False):
            raise StateConflictError("Scanner is already running")
        try:
            with self._counter_lock:
                self._waiting += 1
            try:
                await self._slots.acquire()
            finally:
                with self._counter_lock:
                    self._waiting -= 1
            with self._counter_lock:
                self._active += 1
            try:
                await self._execute(install_path, args, working_dir)
            finally:
                with self._counter_lock:
                    self._active -= 1
                self._slots.release()
        finally:
            self._guard.release()

    def build_command(self, install_path: str, args: Sequence[str]) -> List[str]:
        if not install_path:
            raise ScanError("Xygeni scanner path not configured")
        install = Path(install_path)
        if self.use_powershell:
            return [
                "powershell", "-NoProfile", "-ExecutionPolicy", "Bypass",
                "-File", str(install / "xygeni.ps1"),
                *args,
            ]
        return [str(install / "xygeni"), *args]

    def build_environment(self) -> Dict[str, str]:
        # Proxy settings are not forwarded to the scanner
        env = dict(os.environ)
        env[ENV_URL] = self.config.get_url()
        token = self.config.get_token()
        if token:
            env[ENV_TOKEN] = token
        return env

    async def _execute(self, install_path: str, args: Sequence[str],
                       working_dir: Optional[Path]) -> None:
        command = self.build_command(install_path, args)
        cwd = str(working_dir) if working_dir else None
        self.logger.info(f"Xygeni Working dir: {cwd}")
        self.logger.info(f"Running scanner command: {' '.join(command)}")

        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=cwd,
                env=self.build_environment(),
                start_new_session=(os.name != "nt"),
            )
        except OSError as e:
            raise ScanError(f"Could not start scanner {command[0]}: {e}") from e

        tail: Deque[str] = deque(maxlen=OUTPUT_TAIL_SIZE)
        pumps = [
            asyncio.create_task(self._pump(process.stdout, tail)),
            asyncio.create_task(self._pump(process.stderr, tail)),
        ]

        try:
            await asyncio.wait_for(asyncio.gather(process.wait(), *pumps), timeout=self.timeout)
        except asyncio.TimeoutError:
            self.logger.error(f"Scanner process timeout after {self.timeout}s, killing it")
            kill_process_tree(process)
            await process.wait()
            for pump in pumps:
                pump.cancel()
            await asyncio.gather(*pumps, return_exceptions=True)
            raise ProcessTimeoutError(self.timeout)

        exit_code = process.returncode
        self.logger.debug(f"Scanner exited with code {exit_code}")
        if self.exit_policy(exit_code):
            raise ProcessExitError(exit_code, list(tail))

    async def _pump(self, stream: Optional[asyncio.StreamReader], tail: Deque[str]) -> None:
        if stream is None:
            return
        while True:
            raw = await stream.readline()
            if not raw:
                break
            line = strip_ansi(raw.decode("utf-8", errors="replace").rstrip("\r\n"))
            tail.append(line)
            self.output_logger.info(line)
