"""Engine plugin registry.

Plugins implement :class:`EnginePlugin` and are selected by name from the
project configuration. Lookup prefers plugins installed into the project's
environment through the ``codesense.plugins`` entry-point group and falls
back to the plugins shipped with Codesense.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from importlib.metadata import entry_points
from typing import TYPE_CHECKING, Any, Dict, Optional, Type

if TYPE_CHECKING:
    from ..engine import AnalysisEngine

logger = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "codesense.plugins"


class EnginePlugin(ABC):
    """Capability interface every engine plugin implements."""

    name: str = ""

    @abstractmethod
    def install(self, engine: "AnalysisEngine", options: Dict[str, Any]) -> None:
        """Register query types or result filters with the engine."""


@dataclass
class PluginHandle:
    """A resolved plugin together with its configured options."""

    name: str
    plugin: EnginePlugin
    options: Dict[str, Any] = field(default_factory=dict)
    origin: str = "builtin"


class PluginRegistry:
    """Resolves plugin names to plugin instances.

    Args:
        builtins: Shared fallback plugins (default: the bundled plugins)
        group: Entry-point group searched for project-local plugins
    """

    def __init__(
        self,
        builtins: Optional[Dict[str, Type[EnginePlugin]]] = None,
        group: str = ENTRY_POINT_GROUP,
    ):
        if builtins is None:
            builtins = builtin_plugins()
        self.builtins = builtins
        self.group = group

    def _installed(self, name: str) -> Optional[Type[EnginePlugin]]:
        for ep in entry_points(group=self.group):
            if ep.name != name:
                continue
            try:
                plugin_cls = ep.load()
            except Exception as e:
                logger.warning(f"Failed to load plugin entry point {ep.value}: {e}")
                return None
            if not (isinstance(plugin_cls, type) and issubclass(plugin_cls, EnginePlugin)):
                logger.warning(f"Entry point {ep.value} is not an EnginePlugin")
                return None
            return plugin_cls
        return None

    def resolve(self, name: str) -> Optional[PluginHandle]:
        """Find a plugin by name, returning None when it is unknown."""
        plugin_cls = self._installed(name)
        origin = "installed"
        if plugin_cls is None:
            plugin_cls = self.builtins.get(name)
            origin = "builtin"
        if plugin_cls is None:
            return None
        return PluginHandle(name=name, plugin=plugin_cls(), origin=origin)


def builtin_plugins() -> Dict[str, Type[EnginePlugin]]:
    from .complete_strings import CompleteStringsPlugin
    from .doc_comment import DocCommentPlugin

    return {
        DocCommentPlugin.name: DocCommentPlugin,
        CompleteStringsPlugin.name: CompleteStringsPlugin,
    }


__all__ = [
    "ENTRY_POINT_GROUP",
    "EnginePlugin",
    "PluginHandle",
    "PluginRegistry",
    "builtin_plugins",
]
