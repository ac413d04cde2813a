"""Rich console utilities for container-attest.

This module provides a shared Rich Console instance and helper functions
for CLI output, optimized for GitHub Actions and CI environments.
"""

import os
from typing import TYPE_CHECKING, Any, List, Optional, Tuple

from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.text import Text
from rich.theme import Theme

if TYPE_CHECKING:
    from ._attestation import RunOutcome

# Detect CI environments
IS_GITHUB_ACTIONS = os.getenv("GITHUB_ACTIONS") == "true"
IS_GITLAB_CI = os.getenv("GITLAB_CI") == "true"
IS_CI = os.getenv("CI") == "true" or IS_GITHUB_ACTIONS or IS_GITLAB_CI

custom_theme = Theme(
    {
        "info": "cyan",
        "warning": "yellow",
        "error": "bold red",
        "success": "bold green",
        "step": "bold blue",
        "highlight": "magenta",
    }
)

# Shared console instance
# Force colors ON in GitHub Actions (it supports ANSI colors but Rich may incorrectly disable them)
console = Console(
    theme=custom_theme,
    force_terminal=IS_GITHUB_ACTIONS or None,
    color_system="auto",
)

STATUS_STYLES = {
    "succeeded": "success",
    "degraded": "warning",
}


def print_banner(version: str = "unknown") -> None:
    """Print the tool banner."""
    banner = Text()
    banner.append("container-attest", style="bold blue")
    # Only prefix with 'v' if version looks like semver (starts with digit)
    version_display = f"v{version}" if version and version[0:1].isdigit() else version
    banner.append(f" {version_display}", style="magenta")
    banner.append(" - build, push, sign, attest\n", style="cyan")
    console.print(banner)


def print_step_header(step_num: int, title: str) -> None:
    """
    Print a styled step header.

    In GitHub Actions, uses ::group:: for collapsible sections.
    In other environments, uses Rich styling.
    """
    step_title = f"STEP {step_num}: {title}"

    if IS_GITHUB_ACTIONS:
        print(f"::group::{step_title}")
        console.print(f"[bold blue]{step_title}[/bold blue]")
    else:
        console.print()
        console.rule(f"[bold blue]{step_title}[/bold blue]", style="blue")


def print_step_end(step_num: int, success: bool = True) -> None:
    """Print step completion status and close the GitHub Actions group."""
    if success:
        console.print(f"[success]✓ Step {step_num} completed successfully[/success]")
    else:
        console.print(f"[error]✗ Step {step_num} failed[/error]")

    if IS_GITHUB_ACTIONS:
        print("::endgroup::")
    else:
        console.print()


def _annotate(level: str, style: str, label: str, message: str, title: Optional[str]) -> None:
    if IS_GITHUB_ACTIONS:
        if title:
            print(f"::{level} title={title}::{message}")
        else:
            print(f"::{level}::{message}")
    else:
        if title:
            console.print(f"[{style}]{label} ({escape(title)}):[/{style}] {escape(message)}")
        else:
            console.print(f"[{style}]{label}:[/{style}] {escape(message)}")


def gha_warning(message: str, title: Optional[str] = None) -> None:
    """Emit a warning that appears in GitHub Actions job summary."""
    _annotate("warning", "warning", "Warning", message, title)


def gha_error(message: str, title: Optional[str] = None) -> None:
    """Emit an error that appears in GitHub Actions job summary."""
    _annotate("error", "error", "Error", message, title)


def gha_notice(message: str, title: Optional[str] = None) -> None:
    """Emit a notice annotation in GitHub Actions."""
    _annotate("notice", "info", "Notice", message, title)


def print_summary_table(
    title: str,
    data: List[Tuple[str, Any]],
    show_if_empty: bool = False,
) -> None:
    """
    Print a two-column summary table.

    Args:
        title: Table title
        data: List of (label, value) tuples
        show_if_empty: Whether to show the table if all values are 0/empty
    """
    if not show_if_empty:
        data = [(label, value) for label, value in data if value]

    if not data:
        return

    table = Table(title=title, show_header=True, header_style="bold")
    table.add_column("Field", style="cyan")
    table.add_column("Value")

    for label, value in data:
        table.add_row(label, str(value))

    console.print(table)


def print_attestation_summary(outcome: "RunOutcome") -> None:
    """Print one row per attestation job."""
    if not outcome.results:
        return

    table = Table(title="Attestations", show_header=True, header_style="bold")
    table.add_column("Kind", style="cyan")
    table.add_column("Status")
    table.add_column("Detail")
    table.add_column("Time", justify="right")

    for result in outcome.results:
        if result.succeeded:
            status = "[success]already attached[/success]" if result.skipped else "[success]attached[/success]"
            detail = (result.record.predicate_type or "") if result.record else ""
        else:
            status = "[error]failed[/error]"
            detail = result.error_detail or ""
        table.add_row(result.kind, status, detail, f"{result.duration:.1f}s")

    console.print(table)
    style = STATUS_STYLES.get(outcome.status, "info")
    console.print(f"Attestation status: [{style}]{outcome.status}[/{style}]")


def print_verification_hints(outcome: "RunOutcome") -> None:
    """Emit the verification hints of every successful job as notices."""
    for result in outcome.results:
        if not result.succeeded:
            continue
        for hint in result.hints:
            gha_notice(hint.command, title=hint.title)


def print_final_success() -> None:
    """Print final success message."""
    console.print()
    if IS_GITHUB_ACTIONS:
        console.print("[bold green]✓ SUCCESS![/bold green] Image published and fully attested.")
    else:
        console.rule("[bold green]SUCCESS[/bold green]", style="green")
        console.print("[bold green]Image published and fully attested![/bold green]", justify="center")
    console.print()


def print_final_degraded(failed_kinds: List[str]) -> None:
    """Print final message for a run where some attestations failed."""
    message = f"Image published, but attestation incomplete: {', '.join(failed_kinds)} failed"
    console.print()
    gha_warning(message, title="Attestation Degraded")
    if not IS_GITHUB_ACTIONS:
        console.rule("[bold yellow]DEGRADED[/bold yellow]", style="yellow")
        console.print(f"[bold yellow]{message}[/bold yellow]", justify="center")
    console.print()


def print_final_failure(message: str) -> None:
    """Print final failure message."""
    console.print()
    gha_error(message, title="Container Publish Failed")
    if not IS_GITHUB_ACTIONS:
        console.rule("[bold red]FAILED[/bold red]", style="red")
        console.print(f"[bold red]{message}[/bold red]", justify="center")
    console.print()
