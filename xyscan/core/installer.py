"""
Scanner Installer for xyscan
Downloads, verifies and installs the Xygeni scanner distribution
"""

import asyncio
import dataclasses
import logging
import os
import shutil
import stat
import tempfile
import threading
import zipfile
from pathlib import Path
from typing import Optional

import httpx

from ..utils.http_client import HTTPClient
from ..utils.logger import log_banner
from .checksum import fetch_checksum_manifest, verify_checksum
from .config import ConfigurationService
from .errors import InstallError
from .events import EventChannel
from .model import (
    INSTALL_ERROR,
    INSTALL_RUNNING,
    INSTALL_SUCCESS,
    InstallState,
)

SCANNER_BASE_URL = "https://get.xygeni.io/latest/scanner/"
SCANNER_ZIP_NAME = "xygeni_scanner.zip"
SCANNER_ZIP_ROOT = "xygeni_scanner"
SCANNER_CHECKSUM_URL = (
    "https://raw.githubusercontent.com/xygeni/xygeni/main/checksum/latest/xygeni-release.zip.sha256"
)
MCP_LIBRARY_URL = "https://get.xygeni.io/latest/mcp-server/xygeni-mcp-server.jar"
MCP_LIBRARY_NAME = "xygeni-mcp-server.jar"

SCANNER_DIR_NAME = ".xygeni"
MCP_DIR_NAME = ".xygeni-mcp"
LAUNCHERS = ("xygeni", "xygeni.ps1")

DOWNLOAD_TIMEOUT = 300
VALIDATION_TIMEOUT = 30


class Installer:
    """Owns the scanner installation and its state.

    The installer is the only writer of :class:`InstallState`; consumers read
    snapshots through :attr:`state` and subscribe to :attr:`changed`.
    """

    def __init__(self,
                 config: ConfigurationService,
                 base_dir: Optional[Path] = None,
                 scanner_url: str = SCANNER_BASE_URL + SCANNER_ZIP_NAME,
                 checksum_url: str = SCANNER_CHECKSUM_URL,
                 mcp_url: str = MCP_LIBRARY_URL,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self.base_dir = Path(base_dir) if base_dir else config.install_base_dir
        self.scanner_url = scanner_url
        self.checksum_url = checksum_url
        self.mcp_url = mcp_url
        self.transport = transport
        self.logger = logging.getLogger(__name__)

        self.changed = EventChannel("installer.changed")
        self._guard = threading.Lock()
        self._state_lock = threading.Lock()
        self._state = InstallState()

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> InstallState:
        with self._state_lock:
            return self._state

    @property
    def installation_running(self) -> bool:
        return self.state.installation_running

    @property
    def is_installed(self) -> bool:
        return self.state.is_installed

    @property
    def status(self) -> str:
        return self.state.status

    def _update_state(self, **changes) -> InstallState:
        with self._state_lock:
            self._state = dataclasses.replace(self._state, **changes)
            snapshot = self._state
        self.changed.emit(snapshot)
        return snapshot

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    @property
    def install_dir(self) -> Path:
        return self.base_dir / SCANNER_DIR_NAME

    @property
    def mcp_dir(self) -> Path:
        return self.base_dir / MCP_DIR_NAME

    @property
    def mcp_library_path(self) -> Path:
        return self.mcp_dir / MCP_LIBRARY_NAME

    def is_mcp_library_installed(self) -> bool:
        return self.mcp_library_path.is_file()

    def check_installation(self) -> bool:
        """True when the install dir holds a scanner launcher."""
        installed = self._probe_installation()
        if installed != self.is_installed:
            self._update_state(is_installed=installed)
        return installed

    def _http_client(self, timeout: float = DOWNLOAD_TIMEOUT) -> HTTPClient:
        # Proxy settings are read again for every client so edits apply immediately
        return HTTPClient(
            timeout=timeout,
            proxy_settings=self.config.get_proxy_settings(),
            transport=self.transport,
        )

    # ------------------------------------------------------------------
    # Installation
    # ------------------------------------------------------------------

    async def install(self, api_url: Optional[str] = None,
                      token: Optional[str] = None) -> bool:
        """Download, verify and install the scanner.

        Returns False without touching state when another installation is
        running. Any failure sets status ``error`` and is re-raised.
        """
        if not self._guard.acquire(blocking=False):
            self.logger.warning("Scanner installation already running, ignoring request")
            return False

        try:
            self._update_state(installation_running=True, status=INSTALL_RUNNING)
            try:
                log_banner(self.logger, "Starting Xygeni Scanner Installation")
                self.logger.info(f"Installing Xygeni at directory: {self.install_dir}")

                temp_dir = Path(tempfile.mkdtemp(prefix="xygeni_installer_"))
                try:
                    await self._install_into(temp_dir)
                finally:
                    self._cleanup(temp_dir)

                if api_url:
                    self.config.save_url(api_url)
                if token:
                    self.config.save_token(token)
            except Exception as e:
                self.logger.error(f"Installation process failed: {e}")
                self._fail_installation()
                raise

            self.logger.info("Xygeni Scanner installed successfully")
            self._update_state(installation_running=False, status=INSTALL_SUCCESS, is_installed=True)
            return True
        finally:
            # Cancellation skips the except branch above
            if self.installation_running:
                self._fail_installation()
            self._guard.release()

    def _fail_installation(self) -> None:
        self._update_state(
            installation_running=False,
            status=INSTALL_ERROR,
            is_installed=self._probe_installation(),
        )

    async def _install_into(self, temp_dir: Path) -> None:
        zip_path = temp_dir / SCANNER_ZIP_NAME

        async with self._http_client() as client:
            self.logger.info(f"Downloading scanner from {self.scanner_url}")
            await client.download(self.scanner_url, zip_path)
            manifest = await fetch_checksum_manifest(client, self.checksum_url)

        actual = await asyncio.to_thread(verify_checksum, zip_path, manifest)
        self.logger.debug(f"Scanner archive checksum verified: {actual}")

        await asyncio.to_thread(self._extract_and_copy, zip_path, temp_dir)

    def _extract_and_copy(self, zip_path: Path, temp_dir: Path) -> None:
        extract_dir = temp_dir / "extracted"
        try:
            extract_archive(zip_path, extract_dir)
        except zipfile.BadZipFile as e:
            raise InstallError(f"Scanner archive is not a valid zip file: {e}") from e

        extracted_root = extract_dir / SCANNER_ZIP_ROOT
        if not extracted_root.is_dir():
            raise InstallError(f"Expected root folder {SCANNER_ZIP_ROOT} not found in the zip file.")

        install_dir = self.install_dir
        if install_dir.exists():
            shutil.rmtree(install_dir)
        install_dir.mkdir(parents=True)
        shutil.copytree(extracted_root, install_dir, dirs_exist_ok=True)

        launcher = install_dir / LAUNCHERS[0]
        if launcher.is_file():
            mode = launcher.stat().st_mode
            launcher.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)

    def _probe_installation(self) -> bool:
        install_dir = self.install_dir
        return install_dir.is_dir() and any(
            (install_dir / launcher).is_file() for launcher in LAUNCHERS
        )

    def _cleanup(self, temp_dir: Path) -> None:
        try:
            shutil.rmtree(temp_dir, ignore_errors=True)
        except OSError as e:
            self.logger.debug(f"Could not remove temp dir {temp_dir}: {e}")

    async def download_mcp_library(self) -> Path:
        """Fetch the MCP server jar into ``<base>/.xygeni-mcp`` unless present."""
        target = self.mcp_library_path
        if target.is_file():
            self.logger.info(f"MCP Library already exists at: {self.mcp_dir}")
            return target

        self.mcp_dir.mkdir(parents=True, exist_ok=True)
        self.logger.info(f"Downloading MCP library from: {self.mcp_url} to: {self.mcp_dir}")
        async with self._http_client() as client:
            await client.download(self.mcp_url, target)
        self.logger.info(f"Xygeni MCP Library Downloaded to: {self.mcp_dir}")
        return target

    # ------------------------------------------------------------------
    # Backend validation
    # ------------------------------------------------------------------

    async def validate_api_url(self, url: str) -> bool:
        """GET ``{url}/ping``; True only on HTTP 200."""
        if not url:
            return False
        ping_url = f"{url.rstrip('/')}/ping"
        try:
            async with self._http_client(VALIDATION_TIMEOUT) as client:
                response = await client.get(ping_url)
            return response.is_ok
        except Exception as e:
            self.logger.warning(f"API URL validation failed for {ping_url}: {e}")
            return False

    async def validate_token(self, url: str, token: str) -> bool:
        """GET ``{url}/language`` with a bearer token; True only on HTTP 200."""
        if not url or not token:
            return False
        language_url = f"{url.rstrip('/')}/language"
        try:
            async with self._http_client(VALIDATION_TIMEOUT) as client:
                response = await client.get(
                    language_url, headers={"Authorization": f"Bearer {token}"}
                )
            return response.is_ok
        except Exception as e:
            self.logger.warning(f"Token validation failed for {language_url}: {e}")
            return False


def extract_archive(zip_path: Path, destination: Path) -> None:
    """Extract *zip_path*, restoring unix permission bits stored in the archive."""
    destination.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(zip_path) as archive:
        for info in archive.infolist():
            extracted = archive.extract(info, destination)
            mode = (info.external_attr >> 16) & 0o777
            if mode and not info.is_dir():
                os.chmod(extracted, mode)
