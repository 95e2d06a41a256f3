"""Resolution of library definitions and engine plugins for a project.

Both resolvers prefer what the project provides over what ships with
Codesense, and both treat a missing dependency as a warning: the name is
reported and left out, startup continues.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from .config import ProjectConfig
from .plugins import PluginHandle, PluginRegistry

logger = logging.getLogger(__name__)

DEFS_DIR = Path(__file__).parent / "defs"
BASELINE_LIBRARY = "ecmascript"
LIBRARY_SUFFIX = ".json"


def library_candidates(config: ProjectConfig) -> List[str]:
    """Ordered library names to load, baseline first when enabled."""
    names = list(config.libs)
    if config.ecma_script and BASELINE_LIBRARY not in names:
        names.insert(0, BASELINE_LIBRARY)
    return names


def _normalize(name: str) -> str:
    return name if name.endswith(LIBRARY_SUFFIX) else name + LIBRARY_SUFFIX


def find_library(
    name: str, project_root: Path, shared_dir: Path = DEFS_DIR
) -> Optional[Path]:
    """Locate a library file, project root first then the shared directory."""
    file_name = _normalize(name)
    for base in (project_root, shared_dir):
        candidate = base / file_name
        if candidate.is_file():
            return candidate
    return None


def resolve_libraries(
    project_root: Path, config: ProjectConfig, shared_dir: Path = DEFS_DIR
) -> List[Dict[str, Any]]:
    """Load library definitions in candidate order.

    Args:
        project_root: Directory searched before the shared directory
        config: Project configuration naming the libraries
        shared_dir: Directory of built-in library definitions

    Returns:
        Parsed definitions; unresolvable names are reported and skipped
    """
    libraries: List[Dict[str, Any]] = []
    for name in library_candidates(config):
        path = find_library(name, project_root, shared_dir)
        if path is None:
            logger.warning(f"Failed to find library {name}.")
            continue
        try:
            with open(path, "r", encoding="utf-8") as f:
                definition = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Failed to load library {name} from {path}: {e}")
            continue
        if not isinstance(definition, dict):
            logger.warning(f"Library {name} at {path} is not a JSON object")
            continue
        logger.debug(f"Loaded library {name} from {path}")
        libraries.append(definition)
    return libraries


def resolve_plugins(
    project_root: Path,
    plugins_config: Dict[str, Dict[str, Any]],
    registry: Optional[PluginRegistry] = None,
) -> Dict[str, PluginHandle]:
    """Resolve configured plugin names against the plugin registry.

    Returns:
        Plugin name to handle carrying the configured options
    """
    if registry is None:
        registry = PluginRegistry()

    resolved: Dict[str, PluginHandle] = {}
    for name, options in plugins_config.items():
        handle = registry.resolve(name)
        if handle is None:
            logger.warning(f"Failed to find plugin {name}.")
            continue
        handle.options = dict(options)
        logger.debug(f"Using {handle.origin} plugin {name} for {project_root}")
        resolved[name] = handle
    return resolved
