#!/usr/bin/env python3
"""
Steel CLI - Scaffold and test RISC Zero Steel applications

Usage:
    steel create <project-name>
    steel create
    steel check

The wizard checks the required toolchains, downloads the ERC20 counter
template, rewires its dependencies for standalone use, and can run the
end-to-end test against a local Anvil chain.
"""

import sys
from pathlib import Path
from typing import Optional

import typer
from rich.align import Align
from rich.console import Console
from rich.live import Live
from rich.panel import Panel
from rich.text import Text
from typer.core import TyperGroup

from .config import Settings, _bonsai_api_key, _log_level
from .crash import CrashGuard
from .logging_config import setup_logging
from .probe import REQUIRED_TOOLS, probe as probe_tool
from .process import ProcessRunner
from .supervisor import build_supervisor
from .ui import KeyReader, StepTracker, TerminalState, run_loop
from .wizard import Wizard

__version__ = "0.1.0"

# ASCII Art Banner
BANNER = """
███████╗████████╗███████╗███████╗██╗
██╔════╝╚══██╔══╝██╔════╝██╔════╝██║
███████╗   ██║   █████╗  █████╗  ██║
╚════██║   ██║   ██╔══╝  ██╔══╝  ██║
███████║   ██║   ███████╗███████╗███████╗
╚══════╝   ╚═╝   ╚══════╝╚══════╝╚══════╝
"""

TAGLINE = "RISC Zero Steel - ERC20 Counter App Creator"

console = Console()


class BannerGroup(TyperGroup):
    """Custom group that shows banner before help."""

    def format_help(self, ctx, formatter):
        show_banner()
        super().format_help(ctx, formatter)


app = typer.Typer(
    name="steel",
    help="Create and test RISC Zero Steel projects",
    add_completion=False,
    invoke_without_command=True,
    cls=BannerGroup,
)


def show_banner():
    """Display the ASCII art banner."""
    banner_lines = BANNER.strip().split('\n')
    colors = ["bright_blue", "blue", "cyan", "bright_cyan", "white", "bright_white"]

    styled_banner = Text()
    for i, line in enumerate(banner_lines):
        color = colors[i % len(colors)]
        styled_banner.append(line + "\n", style=color)

    console.print(Align.center(styled_banner))
    console.print(Align.center(Text(TAGLINE, style="italic bright_yellow")))
    console.print()


@app.callback()
def callback(ctx: typer.Context):
    """Show banner when no subcommand is provided."""
    if ctx.invoked_subcommand is None and "--help" not in sys.argv and "-h" not in sys.argv:
        show_banner()
        console.print(Align.center("[dim]Run 'steel --help' for usage information[/dim]"))
        console.print()


@app.command()
def create(
    project_name: str = typer.Argument(None, help="Name for your new project directory (you can also type it in the wizard)"),
    base_dir: Optional[Path] = typer.Option(None, "--base-dir", help="Directory to create the project in (default: current directory)"),
    bonsai_api_key: str = typer.Option(None, "--bonsai-api-key", help="Bonsai API key for the end-to-end test (or set BONSAI_API_KEY environment variable)"),
    local: bool = typer.Option(False, "--local", help="Run the end-to-end test locally without asking for a Bonsai API key"),
    rpc_url: str = typer.Option("http://localhost:8545", "--rpc-url", help="RPC endpoint of the local test chain"),
    ready_retries: int = typer.Option(10, "--ready-retries", help="Readiness checks before giving up on Anvil"),
    ready_delay: float = typer.Option(0.5, "--ready-delay", help="Seconds between readiness checks"),
    timestamps: bool = typer.Option(True, "--timestamps/--no-timestamps", help="Prefix command output with the time it arrived"),
    skip_tls: bool = typer.Option(False, "--skip-tls", help="Skip SSL/TLS verification for the RPC readiness check (not recommended)"),
    debug: bool = typer.Option(False, "--debug", help="Write verbose diagnostics to the log file"),
    log_file: Optional[Path] = typer.Option(None, "--log-file", help="Log file path (default: per-user log directory)"),
):
    """
    Create a new Steel project with an interactive wizard.

    The wizard will:
    1. Check that git, Rust, Foundry and RISC0 1.2.x are installed
    2. Ask for a project name (and what to do if the directory exists)
    3. Download the ERC20 counter template and restructure it
    4. Point Cargo dependencies at git and set up Forge submodules
    5. Optionally run the end-to-end test against a local Anvil chain

    Examples:
        steel create my-app
        steel create my-app --local
        steel create --base-dir ~/src
    """
    if not sys.stdin.isatty():
        console.print(Panel(
            "The wizard needs an interactive terminal.\n"
            "Run [cyan]steel check[/cyan] to verify your toolchain non-interactively.",
            title="[red]No Terminal[/red]",
            border_style="red",
            padding=(1, 2),
        ))
        raise typer.Exit(1)

    log_path = setup_logging(_log_level(debug), log_file)

    settings = Settings(
        base_dir=(base_dir or Path.cwd()).resolve(),
        rpc_url=rpc_url,
        bonsai_api_key=_bonsai_api_key(bonsai_api_key),
        credential_required=not local,
        ready_retries=ready_retries,
        ready_delay=ready_delay,
        timestamps=timestamps,
        verify_tls=not skip_tls,
    )
    runner = ProcessRunner()
    supervisor = build_supervisor(settings, runner)
    wizard = Wizard(settings, runner=runner, supervisor=supervisor, project_name=project_name or "")
    terminal = TerminalState(console)

    with CrashGuard() as guard:
        guard.add(terminal.emergency_restore)
        guard.add(supervisor.emergency_stop)
        exit_code = run_loop(wizard, console, KeyReader())
    terminal.restore()

    if wizard.failure is not None:
        console.print(Panel(f"Initialization failed: {wizard.failure}", title="Failure", border_style="red"))
        console.print(f"[dim]Log file: {log_path}[/dim]")
        raise typer.Exit(exit_code or 1)

    if wizard.pipeline_state is not None and wizard.pipeline_state.done:
        steps_lines = [
            f"1. Go to the project folder: [cyan]cd {wizard.workspace}[/cyan]",
            "2. Build the guest and host: [cyan]cargo build[/cyan]",
            "3. Compile the contracts: [cyan]forge build[/cyan]",
            "4. Run the end-to-end test: [cyan]bash e2e-test.sh[/cyan]",
        ]
        console.print(Panel("\n".join(steps_lines), title="Next Steps", border_style="cyan", padding=(1, 2)))

    raise typer.Exit(exit_code)


@app.command()
def check():
    """Check that all required tools are installed."""
    show_banner()
    console.print("[bold]Checking for installed tools...[/bold]\n")

    tracker = StepTracker("Check Required Tools")
    for spec in REQUIRED_TOOLS:
        tracker.add(spec.command + " " + " ".join(spec.args), spec.name)

    runner = ProcessRunner()
    statuses = []
    with Live(tracker.render(), console=console, refresh_per_second=8, transient=True) as live:
        tracker.attach_refresh(lambda: live.update(tracker.render()))
        for spec in REQUIRED_TOOLS:
            key = spec.command + " " + " ".join(spec.args)
            tracker.start(key, "checking")
            status = probe_tool(spec, runner)
            statuses.append(status)
            if status.satisfied:
                tracker.complete(key, status.detected_version or "available")
            else:
                tracker.error(key, status.message)

    console.print(tracker.render())

    missing = [s for s in statuses if not s.satisfied]
    if missing:
        lines = [f"[red]✗[/red] {s.message}" for s in missing]
        console.print()
        console.print(Panel("\n".join(lines), title="[red]Missing Tools[/red]", border_style="red", padding=(1, 2)))
        raise typer.Exit(1)

    console.print("\n[bold green]Steel CLI is ready to use![/bold green]")


def main():
    app()


if __name__ == "__main__":
    main()
