"""
HTTP Client for xyscan
Wrapper around httpx with proxy routing, streamed downloads and response capture
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx

from xyscan.core.errors import NetworkError
from xyscan.core.model import ProxySettings

DEFAULT_USER_AGENT = "xyscan/1.0"
DOWNLOAD_CHUNK_SIZE = 64 * 1024


@dataclass
class Response:
    """Response object with the metadata callers need."""
    status_code: int
    headers: Dict[str, str]
    text: str
    url: str
    elapsed: float
    request_method: str
    redirect_history: List[str] = field(default_factory=list)

    @property
    def is_success(self) -> bool:
        """Check if response indicates success."""
        return 200 <= self.status_code < 300

    @property
    def is_ok(self) -> bool:
        """Exactly HTTP 200, the only status the Xygeni health checks accept."""
        return self.status_code == 200


def proxy_url(settings: ProxySettings) -> Optional[str]:
    """Build ``protocol://host[:port]`` from proxy settings, or None if disabled."""
    if settings is None or not settings.enabled:
        return None
    protocol = (settings.protocol or "").strip() or "http"
    host = settings.host.strip()
    if settings.port:
        return f"{protocol}://{host}:{settings.port}"
    return f"{protocol}://{host}"


def bypass_hosts(settings: ProxySettings) -> List[str]:
    """Split the non-proxy host list on commas, semicolons and spaces."""
    raw = settings.non_proxy_hosts or ""
    for sep in (";", " "):
        raw = raw.replace(sep, ",")
    hosts = []
    for host in raw.split(","):
        host = host.strip()
        if not host:
            continue
        if host.startswith("."):
            host = "*" + host
        hosts.append(host)
    return hosts


def build_proxy_mounts(settings: Optional[ProxySettings]) -> Optional[Dict[str, Optional[httpx.AsyncBaseTransport]]]:
    """Translate proxy settings into httpx transport mounts.

    Returns None when no proxy is configured. Bypassed hosts are mounted to
    None, which makes httpx fall back to the direct transport for them.
    """
    url = proxy_url(settings) if settings else None
    if not url:
        return None

    auth = None
    if settings.username and settings.username.strip():
        auth = (settings.username.strip(), settings.password or "")
    # "default" authentication relies on whatever the proxy grants the host;
    # httpx has no ambient credential store, so no explicit auth is sent.

    proxy = httpx.Proxy(url, auth=auth)
    mounts: Dict[str, Optional[httpx.AsyncBaseTransport]] = {
        "all://": httpx.AsyncHTTPTransport(proxy=proxy),
    }
    for host in bypass_hosts(settings):
        mounts[f"all://{host}"] = None
    return mounts


class HTTPClient:
    """Async HTTP client used by the installer and issue services.

    A client is meant to be short-lived: build one per operation so proxy
    settings changed in between are picked up.
    """

    def __init__(self,
                 timeout: float = 30,
                 user_agent: str = DEFAULT_USER_AGENT,
                 proxy_settings: Optional[ProxySettings] = None,
                 verify_ssl: bool = True,
                 max_retries: int = 0,
                 retry_delay: float = 1.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):

        self.timeout = timeout
        self.user_agent = user_agent
        self.proxy_settings = proxy_settings
        self.verify_ssl = verify_ssl
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.logger = logging.getLogger(__name__)

        # Session configuration
        self.session_config: Dict[str, Any] = {
            "timeout": httpx.Timeout(timeout),
            "verify": verify_ssl,
            "follow_redirects": True,
            "trust_env": False,
        }

        if transport is not None:
            # Injected transports (tests, custom stacks) take precedence over proxy routing
            self.session_config["transport"] = transport
        else:
            mounts = build_proxy_mounts(proxy_settings)
            if mounts:
                self.session_config["mounts"] = mounts
                self.logger.debug(f"Routing requests through proxy {proxy_url(proxy_settings)}")

        self._session: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        """Async context manager entry."""
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()

    async def _ensure_session(self) -> httpx.AsyncClient:
        """Ensure HTTP session is initialized."""
        if self._session is None:
            self._session = httpx.AsyncClient(
                headers={"User-Agent": self.user_agent},
                **self.session_config
            )
        return self._session

    async def close(self):
        """Close the HTTP session."""
        if self._session:
            await self._session.aclose()
            self._session = None

    async def _make_request(self,
                            method: str,
                            url: str,
                            headers: Optional[Dict[str, str]] = None,
                            params: Optional[Dict[str, str]] = None) -> Response:
        """Make HTTP request with error handling and optional retries."""
        session = await self._ensure_session()
        start_time = time.time()

        for attempt in range(self.max_retries + 1):
            try:
                response = await session.request(
                    method=method,
                    url=url,
                    headers=headers,
                    params=params,
                )
                return Response(
                    status_code=response.status_code,
                    headers=dict(response.headers),
                    text=response.text,
                    url=str(response.url),
                    elapsed=time.time() - start_time,
                    request_method=method,
                    redirect_history=[str(r.url) for r in response.history],
                )
            except httpx.HTTPError as e:
                if attempt < self.max_retries:
                    self.logger.debug(f"Error for {url}: {e}, retrying in {self.retry_delay}s (attempt {attempt + 1})")
                    await asyncio.sleep(self.retry_delay)
                    continue
                raise NetworkError(f"Request error for {url}: {e}", url=url) from e

        # Unreachable: the loop either returns or raises
        raise NetworkError(f"Request error for {url}", url=url)

    async def get(self,
                  url: str,
                  headers: Optional[Dict[str, str]] = None,
                  params: Optional[Dict[str, str]] = None) -> Response:
        """Make GET request."""
        return await self._make_request("GET", url, headers=headers, params=params)

    async def download(self, url: str, destination: Path,
                       headers: Optional[Dict[str, str]] = None) -> Path:
        """Stream *url* into *destination*; raises NetworkError on any failure."""
        session = await self._ensure_session()
        destination = Path(destination)
        destination.parent.mkdir(parents=True, exist_ok=True)
        self.logger.debug(f"Downloading {url} -> {destination}")

        # destination only appears once the whole body has been written
        partial = destination.with_name(destination.name + ".part")
        try:
            try:
                async with session.stream("GET", url, headers=headers) as response:
                    if not response.is_success:
                        raise NetworkError(
                            f"Download of {url} failed with HTTP {response.status_code}",
                            url=url,
                            status_code=response.status_code,
                        )
                    with open(partial, "wb") as fh:
                        async for chunk in response.aiter_bytes(DOWNLOAD_CHUNK_SIZE):
                            fh.write(chunk)
            except httpx.HTTPError as e:
                raise NetworkError(f"Download of {url} failed: {e}", url=url) from e
            partial.replace(destination)
        finally:
            partial.unlink(missing_ok=True)

        return destination
