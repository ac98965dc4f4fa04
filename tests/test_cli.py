"""
Test suite for the xyscan command line interface
"""

import hashlib
import json
import os

import httpx
import pytest
from typer.testing import CliRunner

from conftest import make_scanner_zip, write_report, write_script
from xyscan import cli
from xyscan.core.config import ConfigurationService
from xyscan.core.context import init_context
from xyscan.core.installer import SCANNER_BASE_URL, SCANNER_CHECKSUM_URL, SCANNER_ZIP_NAME

runner = CliRunner()

posix_only = pytest.mark.skipif(os.name == "nt", reason="uses POSIX shell launchers")

RECTIFY_SCRIPT = """\
target=""
while [ $# -gt 0 ]; do
  if [ "$1" = "--file-path" ]; then target="$2"; fi
  shift
done
echo "fixed();" > "$target"
"""


@pytest.fixture(autouse=True)
def no_env_credentials(monkeypatch):
    monkeypatch.delenv("XYGENI_URL", raising=False)
    monkeypatch.delenv("XYGENI_TOKEN", raising=False)


@pytest.fixture
def project(tmp_path):
    root = tmp_path / "proj"
    (root / "src").mkdir(parents=True)
    (root / "src" / "App.java").write_text("stmt.execute(query);\n", encoding="utf-8")
    return root


class Backend:
    """MockTransport handler for the download and API endpoints."""

    def __init__(self, manifest=None, ping_status=200):
        self.archive = make_scanner_zip()
        self.manifest = manifest or hashlib.sha256(self.archive).hexdigest()
        self.ping_status = ping_status
        self.requests = []

    def __call__(self, request):
        url = str(request.url)
        self.requests.append(url)
        if url == SCANNER_BASE_URL + SCANNER_ZIP_NAME:
            return httpx.Response(200, content=self.archive)
        if url == SCANNER_CHECKSUM_URL:
            return httpx.Response(200, text=self.manifest)
        if request.url.path == "/ping":
            return httpx.Response(self.ping_status)
        if request.url.path == "/language":
            ok = request.headers.get("Authorization") == "Bearer good-token"
            return httpx.Response(200 if ok else 401)
        return httpx.Response(404)


@pytest.fixture
def backend(monkeypatch):
    backend = Backend()

    def build_context(config_file, root=None):
        config = ConfigurationService(config_file)
        if root:
            config.set_root_directory(root)
        return init_context(config=config, transport=httpx.MockTransport(backend))

    monkeypatch.setattr(cli, "build_context", build_context)
    return backend


class TestInstallCommand:
    """Exit codes of ``xyscan install``."""

    def test_install_success(self, config_path, config, backend):
        result = runner.invoke(cli.app, [
            "install", "--config", str(config_path),
            "--url", "https://api.example.test", "--token", "good-token",
        ])
        assert result.exit_code == 0, result.output
        assert (config.install_base_dir / ".xygeni" / "xygeni").is_file()
        assert ConfigurationService(str(config_path), use_environment=False).get_token() == "good-token"

    def test_invalid_url(self, config_path, backend):
        backend.ping_status = 503
        result = runner.invoke(cli.app, ["install", "--config", str(config_path), "--url", "https://bad.example.test"])
        assert result.exit_code == 1
        assert not any(SCANNER_ZIP_NAME in url for url in backend.requests)

    def test_rejected_token(self, config_path, backend):
        result = runner.invoke(cli.app, ["install", "--config", str(config_path), "--token", "bad-token"])
        assert result.exit_code == 1

    def test_already_installed(self, config_path, config, backend):
        launcher = config.install_base_dir / ".xygeni" / "xygeni"
        launcher.parent.mkdir(parents=True)
        launcher.write_text("")
        result = runner.invoke(cli.app, ["install", "--config", str(config_path)])
        assert result.exit_code == 0
        assert "already installed" in result.output
        assert backend.requests == []

    def test_checksum_failure(self, config_path, config, backend):
        backend.manifest = "0" * 64
        result = runner.invoke(cli.app, ["install", "--config", str(config_path)])
        assert result.exit_code == 2
        assert not (config.install_base_dir / ".xygeni").exists()


class TestScanCommand:
    """``xyscan scan`` drives the scanner and loads findings."""

    def test_missing_root(self, config_path, tmp_path):
        result = runner.invoke(cli.app, ["scan", "--config", str(config_path), "--root", str(tmp_path / "nope")])
        assert result.exit_code == 1

    def test_not_installed(self, config_path, project):
        result = runner.invoke(cli.app, ["scan", "--config", str(config_path), "--root", str(project)])
        assert result.exit_code == 1
        assert "not installed" in result.output

    @posix_only
    def test_scan_success(self, config_path, project, tmp_path, sast_report):
        report = tmp_path / "fixture.json"
        report.write_text(json.dumps(sast_report), encoding="utf-8")
        scanner_dir = tmp_path / "scanner"
        write_script(scanner_dir / "xygeni", f'cp "{report}" sast.scanner.report.json')

        result = runner.invoke(cli.app, [
            "scan", "--config", str(config_path), "--root", str(project), "--scanner-path", str(scanner_dir),
        ])
        assert result.exit_code == 0, result.output
        assert "completed" in result.output
        assert "high: 1" in result.output

    @posix_only
    def test_scan_failure(self, config_path, project, tmp_path):
        scanner_dir = tmp_path / "scanner"
        write_script(scanner_dir / "xygeni", "echo broken >&2\nexit 5")
        result = runner.invoke(cli.app, [
            "scan", "--config", str(config_path), "--root", str(project), "--scanner-path", str(scanner_dir),
        ])
        assert result.exit_code == 1
        assert "Scan failed" in result.output


class TestIssuesCommand:
    """Listing, details and exports."""

    @pytest.fixture(autouse=True)
    def reports(self, config, project, sast_report):
        write_report(config.metadata_folder(project.name), "sast", sast_report)

    def test_json_output(self, config_path, project):
        result = runner.invoke(cli.app, [
            "issues", "--config", str(config_path), "--root", str(project), "--format", "json",
        ])
        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert [item["id"] for item in data] == ["SAST-001"]

    def test_details(self, config_path, project):
        result = runner.invoke(cli.app, [
            "issues", "--config", str(config_path), "--root", str(project), "--details", "sast-001",
        ])
        assert result.exit_code == 0
        assert "java_sqli" in result.output

    def test_details_unknown_issue(self, config_path, project):
        result = runner.invoke(cli.app, [
            "issues", "--config", str(config_path), "--root", str(project), "--details", "nope",
        ])
        assert result.exit_code == 1

    def test_category_filter(self, config_path, project):
        result = runner.invoke(cli.app, [
            "issues", "--config", str(config_path), "--root", str(project), "--category", "secrets",
        ])
        assert result.exit_code == 0
        assert "No issues found" in result.output

    def test_csv_export(self, config_path, project, tmp_path):
        target = tmp_path / "out" / "issues.csv"
        result = runner.invoke(cli.app, [
            "issues", "--config", str(config_path), "--root", str(project), "--output", str(target),
        ])
        assert result.exit_code == 0
        assert "SAST-001" in target.read_text(encoding="utf-8")

    def test_invalid_format(self, config_path):
        result = runner.invoke(cli.app, ["issues", "--config", str(config_path), "--format", "xml"])
        assert result.exit_code == 1


class TestRectifyCommand:
    """Remediation previews from the command line."""

    def test_unknown_kind(self, config_path):
        result = runner.invoke(cli.app, [
            "rectify", "--config", str(config_path), "--kind", "bogus", "--issue", "X", "--file", "a.py",
        ])
        assert result.exit_code == 1

    def test_not_installed(self, config_path, project):
        result = runner.invoke(cli.app, [
            "rectify", "--config", str(config_path), "--root", str(project),
            "--kind", "code_vulnerability", "--issue", "SAST-001", "--file", "src/App.java",
        ])
        assert result.exit_code == 1

    @posix_only
    def test_preview_and_apply(self, config_path, config, project, sast_report):
        write_report(config.metadata_folder(project.name), "sast", sast_report)
        write_script(config.install_base_dir / ".xygeni" / "xygeni", RECTIFY_SCRIPT)

        result = runner.invoke(cli.app, [
            "rectify", "--config", str(config_path), "--root", str(project),
            "--kind", "code_vulnerability", "--issue", "SAST-001", "--file", "src/App.java", "--apply",
        ])
        assert result.exit_code == 0, result.output
        assert "+fixed();" in result.output
        assert (project / "src" / "App.java").read_text(encoding="utf-8") == "fixed();\n"


class TestConfigureCommand:
    """Saving settings."""

    def test_saves_proxy(self, config_path):
        result = runner.invoke(cli.app, [
            "configure", "--config", str(config_path),
            "--proxy-host", "proxy.local", "--proxy-port", "3128", "--proxy-auth", "basic",
        ])
        assert result.exit_code == 0
        assert "Proxy: http://proxy.local:3128" in result.output
        settings = ConfigurationService(str(config_path), use_environment=False).get_proxy_settings()
        assert settings.port == 3128 and settings.authentication == "basic"

    def test_rejects_unknown_auth_mode(self, config_path):
        result = runner.invoke(cli.app, ["configure", "--config", str(config_path), "--proxy-auth", "kerberos"])
        assert result.exit_code == 1

    def test_version(self):
        result = runner.invoke(cli.app, ["version"])
        assert result.exit_code == 0
        assert "xyscan v1.0.0" in result.output
