"""
Shared pytest fixtures for Codesense tests.

Provides throwaway project directories and a ready-made engine bridge.
"""

import json
from pathlib import Path
from typing import Callable, Optional

import pytest

from codesense.config import MARKER_FILE, ConfigManager
from codesense.daemon.bridge import EngineBridge
from codesense.resolver import resolve_libraries, resolve_plugins


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    """An empty project directory holding an empty marker file."""
    (tmp_path / MARKER_FILE).write_text("{}")
    return tmp_path


@pytest.fixture
def make_bridge(project_dir: Path) -> Callable[..., EngineBridge]:
    """Build an EngineBridge for project_dir, optionally with a marker config."""

    def _make(config: Optional[dict] = None, **kwargs) -> EngineBridge:
        if config is not None:
            (project_dir / MARKER_FILE).write_text(json.dumps(config))
        manager = ConfigManager.create_with_backtrack(project_dir)
        project_config = manager.load()
        return EngineBridge(
            manager.project_root,
            project_config,
            resolve_libraries(manager.project_root, project_config),
            resolve_plugins(manager.project_root, project_config.plugins),
            **kwargs,
        )

    return _make
