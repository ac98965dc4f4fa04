#!/usr/bin/env python3
"""
xyscan CLI Interface
Command-line interface for installing and driving the Xygeni scanner
"""

import asyncio
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel

from xyscan.core.config import ConfigurationService
from xyscan.core.context import AppContext, init_context
from xyscan.core.errors import XyscanError
from xyscan.core.model import ISSUE_KINDS, ProxySettings
from xyscan.core.remediation import unified_diff
from xyscan.utils.logger import setup_logger
from xyscan.utils.report import (
    SEVERITY_STYLES,
    ReportGenerator,
    issue_fields,
    issues_json,
    issues_table,
    scan_history_table,
    severity_summary,
    summary_table,
)

app = typer.Typer(
    name="xyscan",
    help="Headless orchestrator for the Xygeni security scanner",
    no_args_is_help=True
)

console = Console()

EXIT_OK = 0
EXIT_VALIDATION = 1
EXIT_INSTALL = 2

CONFIG_HELP = "Path to the YAML configuration file (default: ~/.xyscan/config.yml)"
VERBOSE_HELP = "Verbosity level: 0=warnings, 1=standard, 2=debug"


def build_context(config_file: Optional[str], root: Optional[str] = None) -> AppContext:
    """Create the application context for one command invocation."""
    config = ConfigurationService(config_file)
    if root:
        config.set_root_directory(root)
    return init_context(config=config)


def print_severity_summary(issues) -> None:
    summary = severity_summary(issues)
    if not summary:
        console.print("[green]No issues found[/green]")
        return
    parts = [
        f"[{SEVERITY_STYLES.get(severity, 'white')}]{severity}: {count}[/]"
        for severity, count in summary.items()
    ]
    console.print("  ".join(parts))


@app.command()
def install(
    url: Optional[str] = typer.Option(
        None, "--url", "-u",
        help="Xygeni API URL to validate and save"
    ),
    token: Optional[str] = typer.Option(
        None, "--token", "-t",
        help="Xygeni API token to validate and save"
    ),
    force: bool = typer.Option(
        False, "--force",
        help="Reinstall even if the scanner is already present"
    ),
    mcp: bool = typer.Option(
        False, "--mcp",
        help="Also download the Xygeni MCP server library"
    ),
    config_file: Optional[str] = typer.Option(None, "--config", help=CONFIG_HELP),
    verbose: int = typer.Option(1, "--verbose", "-v", help=VERBOSE_HELP)
):
    """Install the Xygeni scanner (exit 0 ok, 1 validation failure, 2 install failure)."""
    setup_logger(verbose)
    ctx = build_context(config_file)
    installer = ctx.installer

    async def validate() -> bool:
        if url and not await installer.validate_api_url(url):
            console.print(f"[red]ERROR: Xygeni API URL is not reachable: {url}[/red]")
            return False
        if token:
            api_url = url or ctx.config.get_url()
            if not await installer.validate_token(api_url, token):
                console.print("[red]ERROR: Xygeni token was rejected by the API[/red]")
                return False
        return True

    try:
        if not asyncio.run(validate()):
            raise typer.Exit(EXIT_VALIDATION)

        if installer.check_installation() and not force:
            if url:
                ctx.config.save_url(url)
            if token:
                ctx.config.save_token(token)
            console.print(f"[green]Xygeni scanner already installed at {installer.install_dir}[/green]")
        else:
            started = asyncio.run(installer.install(url, token))
            if not started:
                console.print("[yellow]Another installation is already running[/yellow]")
                raise typer.Exit(EXIT_INSTALL)
            console.print(f"[green]Xygeni scanner installed at {installer.install_dir}[/green]")

        if mcp:
            jar = asyncio.run(installer.download_mcp_library())
            console.print(f"MCP library: {jar}")

    except KeyboardInterrupt:
        console.print("[yellow]Installation interrupted by user[/yellow]")
        raise typer.Exit(EXIT_INSTALL)
    except XyscanError as e:
        console.print(f"[red]Installation failed: {e}[/red]")
        raise typer.Exit(EXIT_INSTALL)
    except OSError as e:
        console.print(f"[red]Installation failed: {e}[/red]")
        raise typer.Exit(EXIT_INSTALL)


@app.command()
def scan(
    root: str = typer.Option(
        ..., "--root", "-r",
        help="Source tree to scan"
    ),
    scanner_path: Optional[str] = typer.Option(
        None, "--scanner-path", "-s",
        help="Scanner installation directory (default: the managed install)"
    ),
    timeout: Optional[float] = typer.Option(
        None, "--timeout",
        help="Scanner timeout in seconds (default from configuration)"
    ),
    config_file: Optional[str] = typer.Option(None, "--config", help=CONFIG_HELP),
    verbose: int = typer.Option(1, "--verbose", "-v", help=VERBOSE_HELP)
):
    """Run a full scan of a source tree and load its findings."""
    setup_logger(verbose)

    source_root = Path(root).expanduser()
    if not source_root.is_dir():
        console.print(f"[red]ERROR: Source folder {root} does not exist[/red]")
        raise typer.Exit(1)

    ctx = build_context(config_file, str(source_root))
    if timeout is not None:
        ctx.scanner.timeout = timeout

    install_path = scanner_path
    if not install_path:
        if not ctx.installer.check_installation():
            console.print("[red]ERROR: Xygeni scanner is not installed. Run 'xyscan install' first.[/red]")
            raise typer.Exit(1)
        install_path = str(ctx.installer.install_dir)

    async def run() -> bool:
        completed = await ctx.scanner.run_analysis(ctx.config.root_directory, install_path)
        await ctx.issues.wait_pending()
        return completed

    try:
        completed = asyncio.run(run())
    except KeyboardInterrupt:
        console.print("[yellow]Scan interrupted by user[/yellow]")
        raise typer.Exit(1)

    console.print(scan_history_table(ctx.scanner.get_scans()))
    if not completed:
        console.print("[red]Scan failed[/red]")
        raise typer.Exit(1)

    issues = ctx.issues.get_issues()
    console.print(Panel(summary_table(issues), title="Xygeni findings", border_style="cyan"))
    print_severity_summary(issues)


@app.command()
def rectify(
    kind: str = typer.Option(
        ..., "--kind", "-k",
        help=f"Issue kind ({', '.join(ISSUE_KINDS)})"
    ),
    issue: str = typer.Option(
        ..., "--issue", "-i",
        help="Issue id to remediate"
    ),
    file: str = typer.Option(
        ..., "--file", "-f",
        help="File to fix (relative paths resolve against --root)"
    ),
    root: Optional[str] = typer.Option(
        None, "--root", "-r",
        help="Source tree the issue belongs to"
    ),
    apply: bool = typer.Option(
        False, "--apply",
        help="Write the fix over the original file"
    ),
    config_file: Optional[str] = typer.Option(None, "--config", help=CONFIG_HELP),
    verbose: int = typer.Option(1, "--verbose", "-v", help=VERBOSE_HELP)
):
    """Preview (and optionally apply) the scanner's fix for one issue."""
    setup_logger(verbose)

    if kind not in ISSUE_KINDS:
        console.print(f"[red]ERROR: Kind must be one of {', '.join(ISSUE_KINDS)}[/red]")
        raise typer.Exit(1)

    ctx = build_context(config_file, root)

    async def run():
        await ctx.issues.read_issues()
        return await ctx.remediation.launch_remediation_preview(kind, issue, file)

    try:
        fix = asyncio.run(run())
    except (XyscanError, FileNotFoundError) as e:
        console.print(f"[red]Remediation failed: {e}[/red]")
        raise typer.Exit(1)

    if fix is None:
        console.print("[red]ERROR: Xygeni scanner is not installed. Run 'xyscan install' first.[/red]")
        raise typer.Exit(1)
    if not fix.temp_file:
        console.print(f"[yellow]Remediation preview not supported for {kind}[/yellow]")
        raise typer.Exit(1)

    console.print(f"Patched copy: {fix.temp_file}")
    console.print(fix.explanation or "")
    diff = unified_diff(fix.original_file, fix.temp_file)
    if diff:
        console.print("".join(diff), markup=False, highlight=False)
    else:
        console.print("[yellow]The scanner produced no changes[/yellow]")

    if apply and diff:
        ctx.remediation.apply_fix(fix)
        console.print(f"[green]Fix applied to {fix.original_file}[/green]")


@app.command()
def issues(
    root: Optional[str] = typer.Option(
        None, "--root", "-r",
        help="Source tree whose reports to read"
    ),
    category: Optional[str] = typer.Option(
        None, "--category", "-c",
        help="Only show one category (sca, secrets, misconf, iac, sast)"
    ),
    output_format: str = typer.Option(
        "text", "--format",
        help="Output format: text or json"
    ),
    details: Optional[str] = typer.Option(
        None, "--details", "-d",
        help="Show every field of one issue"
    ),
    output_file: Optional[str] = typer.Option(
        None, "--output", "-o",
        help="Also export the listed issues to a .json or .csv file"
    ),
    config_file: Optional[str] = typer.Option(None, "--config", help=CONFIG_HELP),
    verbose: int = typer.Option(0, "--verbose", "-v", help=VERBOSE_HELP)
):
    """List the findings of the last scan."""
    setup_logger(verbose)

    if output_format not in ("text", "json"):
        console.print("[red]ERROR: Format must be 'text' or 'json'[/red]")
        raise typer.Exit(1)

    ctx = build_context(config_file, root)
    asyncio.run(ctx.issues.read_issues())

    if details:
        found = ctx.issues.find_issue_by_id(details)
        if found is None:
            console.print(f"[red]Issue not found: {details}[/red]")
            raise typer.Exit(1)
        for name, value in issue_fields(found):
            console.print(f"[bold]{name}:[/bold] {value}", highlight=False)
        if found.explanation:
            console.print()
            console.print(found.explanation, markup=False)
        return

    selected = ctx.issues.get_issues_by_category(category) if category else ctx.issues.get_issues()

    if output_file:
        generator = ReportGenerator(str(Path(output_file).parent))
        name = Path(output_file).name
        if name.lower().endswith(".csv"):
            generator.generate_csv_report(selected, name)
        else:
            generator.generate_json_report(selected, name)

    if output_format == "json":
        typer.echo(issues_json(selected))
        return

    console.print(issues_table(selected), markup=False, highlight=False)
    print_severity_summary(selected)


@app.command()
def configure(
    url: Optional[str] = typer.Option(None, "--url", help="Xygeni API URL"),
    token: Optional[str] = typer.Option(None, "--token", help="Xygeni API token"),
    proxy_host: Optional[str] = typer.Option(None, "--proxy-host", help="Proxy host (empty string disables the proxy)"),
    proxy_port: Optional[int] = typer.Option(None, "--proxy-port", help="Proxy port"),
    proxy_protocol: Optional[str] = typer.Option(None, "--proxy-protocol", help="Proxy protocol (http, https, socks5)"),
    proxy_auth: Optional[str] = typer.Option(None, "--proxy-auth", help="Proxy authentication: none, basic or default"),
    proxy_user: Optional[str] = typer.Option(None, "--proxy-user", help="Proxy username"),
    proxy_password: Optional[str] = typer.Option(None, "--proxy-password", help="Proxy password"),
    non_proxy_hosts: Optional[str] = typer.Option(None, "--non-proxy-hosts", help="Hosts that bypass the proxy"),
    config_file: Optional[str] = typer.Option(None, "--config", help=CONFIG_HELP)
):
    """Save API credentials and proxy settings, then show the configuration."""
    config = ConfigurationService(config_file)

    if url is not None:
        config.save_url(url)
    if token is not None:
        config.save_token(token)

    proxy_values = (proxy_host, proxy_port, proxy_protocol, proxy_auth,
                    proxy_user, proxy_password, non_proxy_hosts)
    if any(value is not None for value in proxy_values):
        if proxy_auth is not None and proxy_auth.lower() not in ("none", "basic", "default"):
            console.print("[red]ERROR: Proxy authentication must be 'none', 'basic' or 'default'[/red]")
            raise typer.Exit(1)
        current = config.get_proxy_settings()
        config.save_proxy_settings(ProxySettings(
            protocol=proxy_protocol if proxy_protocol is not None else current.protocol,
            host=proxy_host if proxy_host is not None else current.host,
            port=proxy_port if proxy_port is not None else current.port,
            authentication=proxy_auth.lower() if proxy_auth is not None else current.authentication,
            username=proxy_user if proxy_user is not None else current.username,
            password=proxy_password if proxy_password is not None else current.password,
            non_proxy_hosts=non_proxy_hosts if non_proxy_hosts is not None else current.non_proxy_hosts,
        ))

    proxy = config.get_proxy_settings()
    console.print(f"[cyan]Configuration file:[/cyan] {config.config_path}")
    console.print(f"API URL: {config.get_url()}")
    console.print(f"Token: {'set' if config.get_token() else 'not set'}")
    if proxy.enabled:
        port = f":{proxy.port}" if proxy.port else ""
        console.print(f"Proxy: {proxy.protocol}://{proxy.host}{port} (auth: {proxy.authentication})")
        if proxy.non_proxy_hosts:
            console.print(f"No proxy for: {proxy.non_proxy_hosts}")
    else:
        console.print("Proxy: disabled")


@app.command()
def version():
    """Show version information."""
    from xyscan import __version__, __author__
    console.print(f"xyscan v{__version__}")
    console.print(f"By {__author__}")


if __name__ == "__main__":
    app()
