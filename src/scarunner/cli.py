"""
Command line interface.

Usage:
    scarunner scan --config sca.yaml --project-name my-app
    scarunner scan --project-name my-app --source-type local --source-location ./repo
"""

import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import click
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from . import __version__
from .core.config import load_scan_config
from .core.errors import ConfigurationError, ScaError, TaskSkippedError
from .core.logging import setup_logging
from .core.models import SourceLocationType
from .core.orchestrator import ScanOrchestrator, ScanResult
from .core.stopwatch import format_duration


EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_THRESHOLD_VIOLATION = 2

SOURCE_TYPES = {
    "remote": SourceLocationType.REMOTE_REPOSITORY.value,
    "local": SourceLocationType.LOCAL_DIRECTORY.value,
}

console = Console(stderr=True)


@click.group()
@click.version_option(version=__version__, prog_name="scarunner")
def cli():
    """
    scarunner - SCA scan runner

    Submits dependency scans and checks results against thresholds.
    """
    pass


@cli.command()
@click.option('--config', 'config_path', type=click.Path(exists=True, dir_okay=False, path_type=Path),
              help='YAML configuration file')
@click.option('--project-name', help='Project to scan into (created if missing)')
@click.option('--source-type', type=click.Choice(sorted(SOURCE_TYPES)), help='Where the source comes from')
@click.option('--source-location', type=click.Path(file_okay=False), help='Local directory to scan')
@click.option('--remote-url', help='Remote repository URL to scan')
@click.option('--api-url', help='SCA API base URL')
@click.option('--access-control-url', help='Access control (identity) base URL')
@click.option('--web-app-url', help='SCA web application URL, used for report links')
@click.option('--username', help='SCA username')
@click.option('--tenant', help='SCA tenant (account) name')
@click.option('--sync/--async', 'sync_mode', default=None,
              help='Wait for results (default) or return right after submitting')
@click.option('--max-wait', type=float, help='Seconds to wait for the scan to finish')
@click.option('--output', type=click.Path(dir_okay=False, path_type=Path), help='Save results to JSON file')
@click.option('--log-level', default=None, help='Log level (default: INFO)')
@click.option('--log-format', type=click.Choice(["console", "json"]), default=None, help='Log output format')
def scan(
    config_path: Optional[Path],
    project_name: Optional[str],
    source_type: Optional[str],
    source_location: Optional[str],
    remote_url: Optional[str],
    api_url: Optional[str],
    access_control_url: Optional[str],
    web_app_url: Optional[str],
    username: Optional[str],
    tenant: Optional[str],
    sync_mode: Optional[bool],
    max_wait: Optional[float],
    output: Optional[Path],
    log_level: Optional[str],
    log_format: Optional[str],
):
    """
    Run an SCA scan.

    Options override values from the configuration file. The password is read
    from the file or the SCARUNNER_PASSWORD environment variable.

    Exit codes: 0 success or nothing to scan, 1 failure, 2 threshold violated.

    Example:
        scarunner scan --config sca.yaml --project-name my-app --async
    """
    setup_logging(log_level, log_format)

    overrides: Dict[str, Any] = {
        "project_name": project_name,
        "source_location": source_location,
        "is_sync_mode": sync_mode,
        "sca": {
            "source_location_type": SOURCE_TYPES.get(source_type) if source_type else None,
            "remote_repository_url": remote_url,
            "api_url": api_url,
            "access_control_url": access_control_url,
            "web_app_url": web_app_url,
            "username": username,
            "tenant": tenant,
            "max_wait": max_wait,
        },
    }

    try:
        config = load_scan_config(config_path, overrides)
    except ConfigurationError as e:
        console.print(f"[bold red]Configuration error:[/bold red] {e}")
        sys.exit(EXIT_FAILURE)

    console.print("\n" + "=" * 80)
    console.print("scarunner - SCA Scan")
    console.print("=" * 80 + "\n")
    console.print(f"[green]Project:[/green] {config.project_name}")
    console.print(f"[green]Source:[/green] {config.sca.source_location_type.name}")
    if config.sca.source_location_type is SourceLocationType.REMOTE_REPOSITORY:
        console.print(f"[green]Repository:[/green] {config.sca.remote_repository_url}")
    else:
        console.print(f"[green]Directory:[/green] {config.source_location}")
    console.print(f"[green]Mode:[/green] {'sync' if config.is_sync_mode else 'async'}")
    console.print()

    sys.exit(asyncio.run(run_scan(config, output)))


async def run_scan(config, output: Optional[Path]) -> int:
    """
    Run the scan and report the outcome.

    Returns:
        Process exit code
    """
    orchestrator = ScanOrchestrator()

    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
            transient=True,
        ) as progress:
            task = progress.add_task("[cyan]Scanning...", total=None)
            orchestrator.subscribe(
                lambda event, data: progress.update(task, description=f"[cyan]{event.replace('_', ' ')}")
            )
            result = await orchestrator.scan(config)

    except TaskSkippedError as e:
        console.print(f"[yellow]Scan skipped:[/yellow] {e}")
        return EXIT_OK

    except ScaError as e:
        console.print(f"\n[bold red]Scan failed:[/bold red] {e}")
        return EXIT_FAILURE

    except KeyboardInterrupt:
        console.print("\n[yellow]Scan interrupted by user[/yellow]")
        return EXIT_FAILURE

    print_result(result)

    if output:
        output.parent.mkdir(parents=True, exist_ok=True)
        with open(output, 'w') as f:
            json.dump(result.to_dict(), f, indent=2)
        console.print(f"\n[green]Results saved to:[/green] {output}")

    if result.threshold_evaluation.has_violations():
        console.print("\n[bold red]Vulnerability thresholds exceeded[/bold red]")
        for violation in result.threshold_evaluation:
            console.print(f"  {violation}")
        return EXIT_THRESHOLD_VIOLATION

    console.print("\n[bold green]Scan complete![/bold green]\n")
    return EXIT_OK


def print_result(result: ScanResult) -> None:
    console.print(f"[green]Scan ID:[/green] {result.scan_id}")
    console.print(f"[green]Project ID:[/green] {result.project_id}")

    if not result.sync_mode:
        console.print("[dim]Async mode: results are not retrieved[/dim]")
        return

    if result.elapsed is not None:
        console.print(f"[green]Elapsed:[/green] {format_duration(result.elapsed)}")

    report = result.report
    if report is None:
        return

    summary = report.summary
    table = Table(title="Risk Report Summary")
    table.add_column("Metric", style="cyan", no_wrap=True)
    table.add_column("Value", style="green")

    table.add_row("High vulnerabilities", str(summary.high_vulnerability_count))
    table.add_row("Medium vulnerabilities", str(summary.medium_vulnerability_count))
    table.add_row("Low vulnerabilities", str(summary.low_vulnerability_count))
    table.add_row("Total packages", str(summary.total_packages))
    table.add_row("Direct packages", str(summary.direct_packages))
    table.add_row("Outdated packages", str(summary.total_outdated_packages))
    table.add_row("Risk score", str(summary.risk_score))

    console.print(table)
    if report.web_report_link:
        console.print(f"[green]Report:[/green] {report.web_report_link}")


@cli.command()
def version():
    """Show version information"""
    console.print(f"\n[bold cyan]scarunner v{__version__}[/bold cyan]")
    console.print("[cyan]Software Composition Analysis scan runner[/cyan]\n")


if __name__ == '__main__':
    cli()
