#!/usr/bin/env python3
"""
TSRpy: Python CLI for TSR Calling

Calls transcription start regions (TSRs) from PRO-Cap fragments: fragments are
collapsed into a per-base TSS signal, scanned with a fixed-size window, and the
deepest non-overlapping windows are reported with their TSS statistics.

Main features:
- TSR calling per chromosome and strand, in parallel
- Tab, BED6 and bedGraph output, plus BigWig/BigBed when available
- Plots of TSR depth and TSS spread

Usage:
    tsrpy <command> [options]

Commands:
    call     - Call TSRs from a BED6 fragment file
    plot     - Generate visualization plots
    version  - Show version information
"""

import typer

from TSRpy import tsr_calling
from TSRpy import plot

__version__ = "0.1.0"

# Create main app
app = typer.Typer(
    name="tsrpy",
    help=f"TSRpy: Python CLI for TSR calling (v{__version__})",
    add_completion=False,
)

# Register all subcommands
app.add_typer(tsr_calling.app, name="call", help="Call TSRs from BED6 fragments")
app.add_typer(plot.app, name="plot", help="Generate visualization plots")


@app.command()
def version():
    """Show version information."""
    typer.echo(f"TSRpy version {__version__}")
    typer.echo("A Python CLI for transcription start region calling")


@app.callback()
def main_callback(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose output"),
):
    """
    TSRpy: Python CLI for TSR Calling

    Calls transcription start regions from PRO-Cap fragment files.
    """
    if verbose:
        import logging
        logging.getLogger().setLevel(logging.DEBUG)


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
