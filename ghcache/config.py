"""Configuration for the repository cache: defaults, user config file and merging."""

import configparser
import dataclasses
import logging
import os
import platform
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional, Tuple

from ghcache.utils import as_list

logger = logging.getLogger(__name__)

APP_NAME = "ghcache"

_home = os.path.expanduser("~")

xdg_config_home = os.environ.get("XDG_CONFIG_HOME") or os.path.join(_home, ".config")
xdg_cache_home = os.environ.get("XDG_CACHE_HOME") or os.path.join(_home, ".cache")

if platform.system() == "Darwin":
    # macOS
    config_dir = Path("~/Library/Application Support/ghcache").expanduser()
else:
    # Linux or others
    config_dir = Path(os.path.join(xdg_config_home, APP_NAME))

CONFIG_SECTION = "cache"
METADATA_FILENAME = "metadata.yaml"
PROJECT_DIRNAME = f".{APP_NAME}"


def get_config_file() -> Path:
    return config_dir / f"{APP_NAME}.cfg"


def get_global_metadata_path() -> Path:
    """Location of the metadata file shared by every project."""
    return config_dir / METADATA_FILENAME


def get_project_metadata_path(project_dir: Path) -> Path:
    """Location of the project-scoped metadata file inside ``project_dir``."""
    return Path(project_dir) / PROJECT_DIRNAME / METADATA_FILENAME


def expand_path(path: str) -> Path:
    """Expand the ``~/`` home shorthand; other paths are returned unchanged."""
    if path == "~" or path.startswith("~/"):
        return Path(path).expanduser()
    return Path(path)


@dataclass(frozen=True)
class CacheConfig:
    """Settings consumed by the cache. Immutable; build variants with ``merge_config``."""

    max_cloned_repos: int = 5
    clone_directory: Path = field(
        default_factory=lambda: Path(xdg_cache_home) / APP_NAME / "repos"
    )
    auto_cleanup_days: float = 7
    clone_depth: int = 1
    # Only used by tools reading the cached clones, never by the cache itself.
    exclude_patterns: Tuple[str, ...] = (
        "node_modules",
        ".git",
        "dist",
        "build",
        ".next",
    )


DEFAULT_CONFIG = CacheConfig()

# camelCase names come from the plugin-style configuration surface
_OPTION_NAMES = {
    "maxClonedRepos": "max_cloned_repos",
    "cloneDirectory": "clone_directory",
    "autoCleanupDays": "auto_cleanup_days",
    "cloneDepth": "clone_depth",
    "excludePatterns": "exclude_patterns",
}
_FIELD_NAMES = {f.name for f in dataclasses.fields(CacheConfig)}


def _canonical_option(name: str) -> str:
    if name in _FIELD_NAMES:
        return name
    if name in _OPTION_NAMES:
        return _OPTION_NAMES[name]
    # configparser lower-cases option names
    for camel, snake in _OPTION_NAMES.items():
        if name == camel.lower():
            return snake
    raise ValueError(f"Unknown cache configuration option: '{name}'")


def _positive_int(name: str, value: Any) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValueError(f"{name} must be a positive integer, got {value!r}")
    if number < 1 or (isinstance(value, float) and not value.is_integer()):
        raise ValueError(f"{name} must be a positive integer, got {value!r}")
    return number


def _coerce(name: str, value: Any) -> Any:
    if name in ("max_cloned_repos", "clone_depth"):
        return _positive_int(name, value)
    if name == "auto_cleanup_days":
        try:
            days = float(value)
        except (TypeError, ValueError):
            raise ValueError(f"{name} must be a non-negative number, got {value!r}")
        if days < 0:
            raise ValueError(f"{name} must be a non-negative number, got {value!r}")
        return days
    if name == "clone_directory":
        return expand_path(str(value))
    if name == "exclude_patterns":
        if isinstance(value, str):
            value = [part.strip() for part in value.split(",")]
        return tuple(str(pattern) for pattern in as_list(value) if str(pattern))
    return value


def merge_config(
    overrides: Optional[Mapping[str, Any]] = None,
    base: CacheConfig = DEFAULT_CONFIG,
) -> CacheConfig:
    """
    Merge a partial, user-supplied configuration on top of ``base``.

    This is a pure function: ``base`` is never modified.

    Args:
        overrides: Option names (camelCase or snake_case) mapped to values.
            ``None`` values are ignored.
        base: Configuration to start from (defaults to ``DEFAULT_CONFIG``)

    Returns:
        A new CacheConfig

    Raises:
        ValueError: On unknown option names or invalid values
    """
    changes = {}
    for name, value in (overrides or {}).items():
        if value is None:
            continue
        option = _canonical_option(name)
        changes[option] = _coerce(option, value)

    if "clone_directory" not in changes:
        changes["clone_directory"] = expand_path(str(base.clone_directory))
    return dataclasses.replace(base, **changes)


class ConfigAccessor:
    """
    A dict-like accessor for configuration files.

    This class provides a way to access configuration options with a dictionary-like
    interface while handling missing sections or keys gracefully.

    Usage:
        config = ConfigAccessor()
        value = config.get('cache', 'max_cloned_repos', default='5')
    """

    def __init__(self, config_path: Optional[Path] = None):
        """
        Initialize a ConfigAccessor with an optional config file path.

        Args:
            config_path: Path to the configuration file. If None, uses the default path.
        """
        if config_path is None:
            self.config_path = get_config_file()
        else:
            self.config_path = Path(config_path)

        self.config = configparser.ConfigParser()
        if self.config_path.exists():
            try:
                self.config.read(self.config_path)
            except configparser.Error as e:
                logger.warning(
                    f"Could not parse configuration file {self.config_path}: {e}. "
                    "Using defaults."
                )
                self.config = configparser.ConfigParser()

    def get(self, section: str, key: str, default: Any = None) -> Any:
        """
        Get a configuration value from the specified section and key.

        Args:
            section: The configuration section
            key: The configuration key
            default: Value to return if the section or key doesn't exist

        Returns:
            The configuration value if it exists, otherwise the default value
        """
        try:
            return self.config[section][key]
        except (KeyError, configparser.NoSectionError, configparser.NoOptionError):
            return default

    def options(self, section: str) -> list:
        """
        Get all options (keys) in a section.

        Args:
            section: The section name

        Returns:
            List of options in the section or empty list if section doesn't exist
        """
        try:
            return self.config.options(section)
        except configparser.NoSectionError:
            return []


def load_cache_config(config_path: Optional[Path] = None) -> CacheConfig:
    """
    Build the effective CacheConfig from the ``[cache]`` section of the config file.

    Args:
        config_path: Alternate config file (defaults to the XDG location)

    Returns:
        Defaults merged with whatever the file sets
    """
    accessor = ConfigAccessor(config_path)
    overrides = {
        option: accessor.get(CONFIG_SECTION, option)
        for option in accessor.options(CONFIG_SECTION)
    }
    return merge_config(overrides)
