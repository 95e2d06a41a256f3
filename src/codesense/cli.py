"""Command line interface for the Codesense daemon."""

import logging
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.markup import escape

from . import __version__
from .config import ConfigError
from .daemon.lifecycle import DEFAULT_IDLE_TIMEOUT
from .daemon.server import DaemonOptions, start_daemon

logger = logging.getLogger(__name__)

error_console = Console(stderr=True, highlight=False)


def setup_logging(verbose: bool) -> None:
    """Log to stderr; stdout is reserved for the port announcement."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.option(
    "--port",
    type=int,
    default=None,
    help="Port to listen on (default: an ephemeral port)",
)
@click.option(
    "--persistent",
    is_flag=True,
    help="Keep running when idle instead of shutting down",
)
@click.option("--verbose", "-v", is_flag=True, help="Verbose logging")
@click.option(
    "--no-port-file",
    "no_port_file",
    is_flag=True,
    help="Do not write the .codesense-port discovery file",
)
@click.option(
    "--idle-timeout",
    type=click.FloatRange(min=0, min_open=True),
    default=DEFAULT_IDLE_TIMEOUT,
    show_default=True,
    help="Seconds without requests before a non-persistent daemon exits",
)
@click.option(
    "--strip-crs",
    is_flag=True,
    help="Remove carriage returns from files read from disk",
)
@click.option(
    "--project-dir",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=None,
    help="Directory to start the project search from (default: current directory)",
)
@click.version_option(version=__version__, prog_name="codesense")
def main(
    port: Optional[int],
    persistent: bool,
    verbose: bool,
    no_port_file: bool,
    idle_timeout: float,
    strip_crs: bool,
    project_dir: Optional[Path],
) -> None:
    """Serve code analysis for the current project over loopback HTTP."""
    setup_logging(verbose)

    options = DaemonOptions(
        port=port,
        persistent=persistent,
        verbose=verbose,
        write_port_file=not no_port_file,
        idle_timeout=idle_timeout,
        strip_crs=strip_crs,
    )

    try:
        start_daemon(options, start_dir=project_dir)
    except ConfigError as e:
        logger.error(str(e))
        error_console.print(f"[red]ERROR:[/red] {escape(str(e))}")
        sys.exit(1)
    except OSError as e:
        logger.error(f"Failed to start daemon: {e}")
        error_console.print(
            f"[red]ERROR:[/red] Failed to start daemon: {escape(str(e))}"
        )
        sys.exit(1)


if __name__ == "__main__":
    main()
