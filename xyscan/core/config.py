"""
Configuration Service for xyscan
Persists API URL, token, proxy and scanner settings in a YAML file

Example ``~/.xyscan/config.yml``::

    api:
      url: https://api.xygeni.io
      token: xya_...
    proxy:
      protocol: http
      host: proxy.internal
      port: 3128
      authentication: basic     # none | basic | default
      username: alice
      password: secret
      non_proxy_hosts: "localhost, *.internal"
    scanner:
      install_dir: ~/.xyscan
      metadata_dir: ~/.xygenidata
      report_suffix: scanner.report.json
      timeout_seconds: 1800
      max_concurrent: 3

``XYGENI_URL`` and ``XYGENI_TOKEN`` in the environment override the file.
"""

import logging
import os
import threading
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .model import ProxySettings

DEFAULT_CONFIG_DIR = Path.home() / ".xyscan"
DEFAULT_CONFIG_PATH = DEFAULT_CONFIG_DIR / "config.yml"
DEFAULT_METADATA_DIR = Path.home() / ".xygenidata"
DEFAULT_API_URL = "https://api.xygeni.io"
REPORT_SUFFIX = "scanner.report.json"
DEFAULT_TIMEOUT_SECONDS = 1800
DEFAULT_MAX_CONCURRENT = 3

ENV_URL = "XYGENI_URL"
ENV_TOKEN = "XYGENI_TOKEN"


class ConfigurationService:
    """Read/write access to persisted settings.

    Values are re-read from the in-memory document on every call, so a
    ``save_*`` or ``reload()`` is visible to the next consumer immediately.
    """

    def __init__(self, config_path: Optional[str] = None,
                 use_environment: bool = True):
        self.config_path = Path(config_path).expanduser() if config_path else DEFAULT_CONFIG_PATH
        self.use_environment = use_environment
        self.logger = logging.getLogger(__name__)
        self._lock = threading.Lock()
        self._data: Dict[str, Any] = {}
        self._metadata_folders: Dict[str, Path] = {}
        self.root_directory: Optional[str] = None
        self.reload()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def reload(self) -> None:
        """Re-read the YAML file; missing or invalid files yield defaults."""
        data: Dict[str, Any] = {}
        if self.config_path.is_file():
            try:
                raw = yaml.safe_load(self.config_path.read_text(encoding="utf-8"))
                if isinstance(raw, dict):
                    data = raw
                else:
                    self.logger.warning(f"Ignoring malformed config file {self.config_path}")
            except (OSError, yaml.YAMLError) as e:
                self.logger.warning(f"Could not read config file {self.config_path}: {e}")
        with self._lock:
            self._data = data

    def _save(self) -> None:
        with self._lock:
            snapshot = yaml.safe_dump(self._data, default_flow_style=False, sort_keys=True)
        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        self.config_path.write_text(snapshot, encoding="utf-8")
        self.logger.debug(f"Configuration saved to {self.config_path}")

    def _section(self, name: str) -> Dict[str, Any]:
        with self._lock:
            section = self._data.get(name)
            return dict(section) if isinstance(section, dict) else {}

    def _set(self, section: str, values: Dict[str, Any]) -> None:
        with self._lock:
            current = self._data.get(section)
            if not isinstance(current, dict):
                current = {}
            current.update(values)
            self._data[section] = current
        self._save()

    # ------------------------------------------------------------------
    # API credentials
    # ------------------------------------------------------------------

    def get_url(self) -> str:
        if self.use_environment and os.environ.get(ENV_URL):
            return os.environ[ENV_URL]
        return str(self._section("api").get("url") or DEFAULT_API_URL)

    def get_token(self) -> str:
        if self.use_environment and os.environ.get(ENV_TOKEN):
            return os.environ[ENV_TOKEN]
        return str(self._section("api").get("token") or "")

    def save_url(self, url: str) -> None:
        self._set("api", {"url": url})

    def save_token(self, token: str) -> None:
        self._set("api", {"token": token})

    # ------------------------------------------------------------------
    # Proxy
    # ------------------------------------------------------------------

    def get_proxy_settings(self) -> ProxySettings:
        raw = self._section("proxy")
        port = raw.get("port")
        try:
            port = int(port) if port not in (None, "") else None
        except (TypeError, ValueError):
            self.logger.warning(f"Ignoring invalid proxy port: {port!r}")
            port = None
        return ProxySettings(
            protocol=str(raw.get("protocol") or "http"),
            host=str(raw.get("host") or ""),
            port=port,
            authentication=str(raw.get("authentication") or "none").lower(),
            username=str(raw.get("username") or ""),
            password=str(raw.get("password") or ""),
            non_proxy_hosts=str(raw.get("non_proxy_hosts") or ""),
        )

    def save_proxy_settings(self, settings: ProxySettings) -> None:
        self._set("proxy", {
            "protocol": settings.protocol,
            "host": settings.host,
            "port": settings.port,
            "authentication": settings.authentication,
            "username": settings.username,
            "password": settings.password,
            "non_proxy_hosts": settings.non_proxy_hosts,
        })

    # ------------------------------------------------------------------
    # Scanner settings
    # ------------------------------------------------------------------

    @property
    def install_base_dir(self) -> Path:
        value = self._section("scanner").get("install_dir")
        return Path(value).expanduser() if value else DEFAULT_CONFIG_DIR

    @property
    def metadata_base_dir(self) -> Path:
        value = self._section("scanner").get("metadata_dir")
        return Path(value).expanduser() if value else DEFAULT_METADATA_DIR

    @property
    def report_suffix(self) -> str:
        return str(self._section("scanner").get("report_suffix") or REPORT_SUFFIX)

    @property
    def timeout_seconds(self) -> float:
        value = self._section("scanner").get("timeout_seconds", DEFAULT_TIMEOUT_SECONDS)
        try:
            return float(value)
        except (TypeError, ValueError):
            return float(DEFAULT_TIMEOUT_SECONDS)

    @property
    def max_concurrent(self) -> int:
        value = self._section("scanner").get("max_concurrent", DEFAULT_MAX_CONCURRENT)
        try:
            return max(1, int(value))
        except (TypeError, ValueError):
            return DEFAULT_MAX_CONCURRENT

    # ------------------------------------------------------------------
    # Project paths
    # ------------------------------------------------------------------

    def set_root_directory(self, root: Optional[str]) -> None:
        self.root_directory = str(Path(root).expanduser().resolve()) if root else None

    def get_project_name(self) -> str:
        if not self.root_directory:
            return "unknown"
        return Path(self.root_directory).name or "unknown"

    def metadata_folder(self, project_name: Optional[str] = None) -> Path:
        """Per-project directory holding the scanner reports (created on demand)."""
        name = project_name or self.get_project_name()
        cached = self._metadata_folders.get(name)
        if cached is not None:
            return cached
        folder = self.metadata_base_dir / name
        folder.mkdir(parents=True, exist_ok=True)
        self._metadata_folders[name] = folder
        return folder

    def clear_cache(self) -> None:
        self._metadata_folders.clear()
        self.root_directory = None
