"""Daemon startup: configuration, engine, port publication and serving.

One daemon serves one project. The listener is bound before uvicorn starts so
the chosen port is known and published before the first request can arrive.
"""

import logging
import signal
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import uvicorn
from rich.console import Console

from ..config import ConfigManager
from ..resolver import resolve_libraries, resolve_plugins
from .app import create_app
from .bridge import EngineBridge
from .lifecycle import DEFAULT_IDLE_TIMEOUT, IdleLifecycleManager, LifecycleState
from .port_file import LOOPBACK_HOST, PortCoordinator

logger = logging.getLogger(__name__)

console = Console(highlight=False)


@dataclass
class DaemonOptions:
    """Process-level settings taken from the command line."""

    port: Optional[int] = None
    persistent: bool = False
    verbose: bool = False
    write_port_file: bool = True
    idle_timeout: float = DEFAULT_IDLE_TIMEOUT
    strip_crs: bool = False


def build_bridge(config_manager: ConfigManager, options: DaemonOptions) -> EngineBridge:
    """Resolve the project's dependencies and construct the engine bridge.

    Raises:
        ConfigError: If the project's marker file is malformed
    """
    config = config_manager.load()
    project_root = config_manager.project_root

    libraries = resolve_libraries(project_root, config)
    plugins = resolve_plugins(project_root, config.plugins)

    return EngineBridge(
        project_root,
        config,
        libraries,
        plugins,
        debug=options.verbose,
        strip_crs=options.strip_crs,
    )


def start_daemon(options: DaemonOptions, start_dir: Optional[Path] = None) -> None:
    """Run the daemon for the project containing start_dir until it stops.

    Args:
        options: Process flags
        start_dir: Directory the project search starts from (default: cwd)

    Raises:
        ConfigError: If the project's marker file is malformed
        OSError: If the listener cannot be bound
    """
    config_manager = ConfigManager.create_with_backtrack(start_dir)
    project_root = config_manager.project_root
    logger.info(f"Starting Codesense daemon for {project_root}")

    bridge = build_bridge(config_manager, options)

    coordinator = PortCoordinator(
        project_root, port=options.port, write_port_file=options.write_port_file
    )
    sock = coordinator.bind()

    lifecycle = IdleLifecycleManager(
        idle_timeout=options.idle_timeout, persistent=options.persistent
    )
    app = create_app(bridge, lifecycle)

    server = uvicorn.Server(
        uvicorn.Config(
            app,
            host=LOOPBACK_HOST,
            port=coordinator.port,
            log_level="info" if options.verbose else "warning",
            access_log=options.verbose,
            timeout_graceful_shutdown=5,
        )
    )

    def stop_server(reason: str) -> None:
        server.should_exit = True

    lifecycle.on_terminate(stop_server)
    _setup_signal_handlers(lifecycle)

    try:
        coordinator.publish()
        lifecycle.start()
        console.print(f"Listening on port {coordinator.port}", soft_wrap=True)

        # Blocks here until idle shutdown or a termination signal
        server.run(sockets=[sock])
    finally:
        if lifecycle.state is LifecycleState.ACTIVE:
            lifecycle.terminate("server stopped")
        lifecycle.stop()
        coordinator.release()
        coordinator.close()
        logger.info("Codesense daemon exited")


def _setup_signal_handlers(lifecycle: IdleLifecycleManager) -> None:
    """Route SIGTERM and SIGINT through the lifecycle manager.

    uvicorn re-raises captured signals into these handlers once it has shut
    down, after which start_daemon runs its cleanup.

    Args:
        lifecycle: Manager whose termination stops the server
    """
    if threading.current_thread() is not threading.main_thread():
        return

    def signal_handler(signum, frame):
        """Handle shutdown signals."""
        lifecycle.terminate(f"received {signal.Signals(signum).name}")

    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)
