"""Project configuration discovery and loading for Codesense."""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

MARKER_FILE = ".codesense-project"


class ConfigError(ValueError):
    """Raised when the project marker file cannot be used as configuration."""


class ProjectConfig(BaseModel):
    """Settings read from a project's marker file.

    Marker files use camelCase keys (``loadEagerly``, ``ecmaScript``,
    ``dontLoad``); the model exposes them under snake_case names.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    libs: List[str] = Field(
        default_factory=list, description="Library definitions to load, in order"
    )
    load_eagerly: Union[List[str], bool] = Field(
        default=False,
        alias="loadEagerly",
        description="Files registered with the engine at startup",
    )
    plugins: Dict[str, Dict[str, Any]] = Field(
        default_factory=dict, description="Plugin name to plugin options"
    )
    ecma_script: bool = Field(
        default=True,
        alias="ecmaScript",
        description="Prepend the baseline ecmascript library",
    )
    dont_load: List[str] = Field(
        default_factory=list,
        alias="dontLoad",
        description="Glob patterns of files the engine treats as empty",
    )

    @field_validator("load_eagerly", mode="before")
    @classmethod
    def normalize_load_eagerly(cls, v: Any) -> Union[List[str], bool]:
        """Keep a list of paths; anything else means eager loading is off."""
        if isinstance(v, list) and all(isinstance(item, str) for item in v):
            return v
        if v not in (None, False):
            logger.warning(f"Ignoring unrecognized loadEagerly value: {v!r}")
        return False

    @field_validator("plugins", mode="before")
    @classmethod
    def normalize_plugins(cls, v: Any) -> Dict[str, Dict[str, Any]]:
        """Accept ``true``/``null`` as empty options and drop ``false`` entries."""
        if not isinstance(v, dict):
            raise ValueError(f"Expected an object of plugin options, got {type(v)}")
        plugins: Dict[str, Dict[str, Any]] = {}
        for name, options in v.items():
            if options is False:
                continue
            if options is True or options is None:
                options = {}
            if not isinstance(options, dict):
                raise ValueError(f"Options for plugin '{name}' must be an object")
            plugins[name] = options
        return plugins

    def eager_files(self) -> List[str]:
        """Return the files to register at startup (empty when disabled)."""
        if isinstance(self.load_eagerly, list):
            return list(self.load_eagerly)
        return []


class ConfigManager:
    """Locates the project root and loads its configuration."""

    def __init__(self, project_root: Path, marker_found: bool = True):
        self.project_root = project_root
        self.marker_found = marker_found
        self._config: Optional[ProjectConfig] = None

    @property
    def config_path(self) -> Path:
        return self.project_root / MARKER_FILE

    def load(self) -> ProjectConfig:
        """Load the marker file, filling absent keys from defaults.

        Raises:
            ConfigError: If the marker file is not a valid configuration
        """
        if not self.marker_found:
            logger.debug(f"No {MARKER_FILE} found, using defaults")
            self._config = ProjectConfig()
            return self._config

        try:
            with open(self.config_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Bad JSON in {self.config_path}: {e}")
        except OSError as e:
            raise ConfigError(f"Failed to read {self.config_path}: {e}")

        if not isinstance(data, dict):
            raise ConfigError(f"{self.config_path} must contain a JSON object")

        try:
            self._config = ProjectConfig(**data)
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration in {self.config_path}: {e}")

        logger.info(f"Loaded project configuration from {self.config_path}")
        return self._config

    def get_config(self) -> ProjectConfig:
        """Get current configuration, loading if necessary."""
        if self._config is None:
            return self.load()
        return self._config

    @staticmethod
    def find_project_root(start_dir: Optional[Path] = None) -> Optional[Path]:
        """Find the nearest directory holding the marker file.

        Args:
            start_dir: Directory to start searching from (default: current directory)

        Returns:
            First ancestor (inclusive) containing the marker file, None if none does
        """
        current = (start_dir or Path.cwd()).resolve()

        for path in [current] + list(current.parents):
            if (path / MARKER_FILE).is_file():
                return path

        return None

    @classmethod
    def create_with_backtrack(cls, start_dir: Optional[Path] = None) -> "ConfigManager":
        """Create ConfigManager by finding the project root upward.

        Falls back to the start directory as root when no marker file exists.
        """
        root = cls.find_project_root(start_dir)
        if root is None:
            return cls((start_dir or Path.cwd()).resolve(), marker_found=False)
        return cls(root)
