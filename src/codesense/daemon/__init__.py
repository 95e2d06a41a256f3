"""Codesense daemon.

Key Components:
- EngineBridge: Owns the project's analysis engine
- IdleLifecycleManager: Shuts the daemon down after an idle window
- PortCoordinator: Binds the loopback listener and publishes the port file
- create_app: FastAPI application bridging HTTP requests to the engine
- start_daemon: Wires the components together and serves until exit
"""

from .app import create_app
from .bridge import EngineBridge
from .lifecycle import IdleLifecycleManager
from .port_file import PortCoordinator
from .server import start_daemon

__all__ = [
    "EngineBridge",
    "IdleLifecycleManager",
    "PortCoordinator",
    "create_app",
    "start_daemon",
]
