"""Unit tests for daemon startup wiring, with uvicorn replaced by a fake."""

import signal
from unittest.mock import patch

import pytest

from codesense.config import MARKER_FILE, ConfigError, ConfigManager
from codesense.daemon.lifecycle import LifecycleState
from codesense.daemon.port_file import PORT_FILE_NAME, read_port_file
from codesense.daemon.server import (
    DaemonOptions,
    _setup_signal_handlers,
    build_bridge,
    start_daemon,
)


class FakeServer:
    """Stands in for uvicorn.Server; records what it saw while running."""

    instances = []

    def __init__(self, config):
        self.config = config
        self.should_exit = False
        self.seen_port_file = None
        FakeServer.instances.append(self)

    def run(self, sockets=None):
        self.sockets = sockets
        self.seen_port_file = read_port_file(self.config.app.state.bridge.project_root)
        self.lifecycle = self.config.app.state.lifecycle
        # Simulate the idle timer firing while serving.
        self.lifecycle.deadline = 0
        self.lifecycle.check_idle()


@pytest.fixture(autouse=True)
def fake_uvicorn():
    FakeServer.instances = []
    with patch("codesense.daemon.server.uvicorn.Server", FakeServer), patch(
        "codesense.daemon.server._setup_signal_handlers"
    ):
        yield


class TestBuildBridge:
    def test_uses_project_configuration(self, project_dir):
        (project_dir / MARKER_FILE).write_text('{"libs": ["browser"]}')
        bridge = build_bridge(
            ConfigManager.create_with_backtrack(project_dir), DaemonOptions()
        )

        assert "window" in bridge.engine.globals
        assert bridge.project_root == project_dir.resolve()


class TestStartDaemon:
    """Tests for the startup and shutdown sequence."""

    def test_publishes_port_while_serving_and_cleans_up(self, project_dir):
        start_daemon(DaemonOptions(), start_dir=project_dir)

        server = FakeServer.instances[0]
        assert server.seen_port_file == server.config.port
        assert server.should_exit is True
        assert server.lifecycle.state is LifecycleState.TERMINATING
        assert not (project_dir / PORT_FILE_NAME).exists()

    def test_binds_loopback_only(self, project_dir):
        start_daemon(DaemonOptions(), start_dir=project_dir)

        server = FakeServer.instances[0]
        assert server.config.host == "127.0.0.1"

    def test_no_port_file(self, project_dir):
        start_daemon(DaemonOptions(write_port_file=False), start_dir=project_dir)

        assert FakeServer.instances[0].seen_port_file is None

    def test_persistent_mode_reaches_server(self, project_dir):
        start_daemon(DaemonOptions(persistent=True), start_dir=project_dir)

        lifecycle = FakeServer.instances[0].lifecycle
        assert lifecycle.persistent is True
        # Idle expiry was a no-op; the daemon stopped only because run returned.
        assert lifecycle.termination_reason == "server stopped"

    def test_malformed_marker_binds_nothing(self, project_dir):
        (project_dir / MARKER_FILE).write_text("{")

        with pytest.raises(ConfigError):
            start_daemon(DaemonOptions(), start_dir=project_dir)

        assert FakeServer.instances == []
        assert not (project_dir / PORT_FILE_NAME).exists()


class TestSignalHandlers:
    def test_signal_terminates_lifecycle(self):
        from codesense.daemon.lifecycle import IdleLifecycleManager

        lifecycle = IdleLifecycleManager(persistent=True)
        previous = {
            sig: signal.getsignal(sig) for sig in (signal.SIGTERM, signal.SIGINT)
        }
        try:
            _setup_signal_handlers(lifecycle)
            handler = signal.getsignal(signal.SIGTERM)
            handler(signal.SIGTERM, None)
        finally:
            for sig, handler in previous.items():
                signal.signal(sig, handler)

        assert lifecycle.state is LifecycleState.TERMINATING
        assert lifecycle.termination_reason == "received SIGTERM"
