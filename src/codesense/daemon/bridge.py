"""Bridge between the HTTP layer and the project's analysis engine."""

import asyncio
import fnmatch
import logging
from pathlib import Path
from typing import Any, Dict, List

from ..config import ProjectConfig
from ..engine import AnalysisEngine
from ..plugins import PluginHandle

logger = logging.getLogger(__name__)


class EngineBridge:
    """Owns the single engine instance of this daemon.

    Args:
        project_root: Directory relative file names are resolved against
        config: Project configuration (eager files, dontLoad patterns)
        libraries: Resolved library definitions, in load order
        plugins: Resolved plugins keyed by name
        debug: Enable engine request logging
        strip_crs: Remove carriage returns from files read from disk
    """

    def __init__(
        self,
        project_root: Path,
        config: ProjectConfig,
        libraries: List[Dict[str, Any]],
        plugins: Dict[str, PluginHandle],
        debug: bool = False,
        strip_crs: bool = False,
    ):
        self.project_root = project_root
        self.config = config
        self.strip_crs = strip_crs

        self.engine = AnalysisEngine(
            file_reader=self.read_file,
            async_mode=True,
            definitions=libraries,
            plugins=plugins,
            debug=debug,
            project_dir=str(project_root),
        )

        for name in config.eager_files():
            logger.debug(f"Registering {name} for eager loading")
            self.engine.add_file(name)

        logger.info(
            f"Engine ready for {project_root} "
            f"({len(libraries)} libraries, {len(plugins)} plugins)"
        )

    def is_excluded(self, name: str) -> bool:
        return any(fnmatch.fnmatch(name, pattern) for pattern in self.config.dont_load)

    async def read_file(self, name: str) -> str:
        """Read a project file without blocking the event loop.

        Files matching a ``dontLoad`` pattern read as empty.

        Raises:
            OSError: If the file cannot be read
        """
        if self.is_excluded(name):
            logger.debug(f"Not loading {name} (dontLoad)")
            return ""
        path = self.project_root / name
        data = await asyncio.to_thread(path.read_bytes)
        text = data.decode("utf-8", errors="replace")
        if self.strip_crs:
            text = text.replace("\r", "")
        return text

    async def warm_up(self) -> None:
        """Load the files registered for eager loading."""
        await self.engine.flush()

    async def request(self, document: Any) -> Any:
        """Forward a request document to the engine.

        Raises:
            EngineError: If the engine rejects the request
        """
        return await self.engine.request(document)
