"""rolepack configuration.

Configuration is loaded from a YAML file with these keys:
- bosh_cache_dir: Directory holding dev release archives named by sha1
- work_dir: Scratch directory for extracted packages and jobs
- version_salt: Extra string mixed into the role manifest version

Resolution order for the config file:
1. Explicit path (--config)
2. $ROLEPACK_CONFIG
3. ~/.config/rolepack/config.yaml (if present)
4. Built-in defaults

Environment variables ROLEPACK_BOSH_CACHE, ROLEPACK_WORK_DIR and
ROLEPACK_VERSION_SALT override file values.
"""

import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

import yaml

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Configuration error."""


def _default_bosh_cache_dir() -> Path:
    return Path.home() / '.bosh' / 'cache'


def _default_work_dir() -> Path:
    return Path(tempfile.gettempdir()) / 'rolepack'


@dataclass
class RolepackConfig:
    """Effective configuration.

    Attributes:
        bosh_cache_dir: Dev release archive cache
        work_dir: Scratch directory for extraction
        version_salt: Seed for the role manifest version
        config_file: File the values were read from (None = defaults only)
    """
    bosh_cache_dir: Path = field(default_factory=_default_bosh_cache_dir)
    work_dir: Path = field(default_factory=_default_work_dir)
    version_salt: str = ''
    config_file: Optional[Path] = None

    def __post_init__(self):
        if isinstance(self.bosh_cache_dir, str):
            self.bosh_cache_dir = Path(self.bosh_cache_dir)
        if isinstance(self.work_dir, str):
            self.work_dir = Path(self.work_dir)

    def _load_from_yaml(self, path: Path) -> None:
        """Apply values from a YAML config file."""
        data = _parse_yaml(path)
        if cache_dir := data.get('bosh_cache_dir'):
            self.bosh_cache_dir = Path(str(cache_dir)).expanduser()
        if work_dir := data.get('work_dir'):
            self.work_dir = Path(str(work_dir)).expanduser()
        if 'version_salt' in data and data['version_salt'] is not None:
            self.version_salt = str(data['version_salt'])
        self.config_file = path

    def _apply_env(self) -> None:
        """Apply ROLEPACK_* environment overrides."""
        if cache_dir := os.environ.get('ROLEPACK_BOSH_CACHE'):
            self.bosh_cache_dir = Path(cache_dir).expanduser()
        if work_dir := os.environ.get('ROLEPACK_WORK_DIR'):
            self.work_dir = Path(work_dir).expanduser()
        if 'ROLEPACK_VERSION_SALT' in os.environ:
            self.version_salt = os.environ['ROLEPACK_VERSION_SALT']


def _parse_yaml(path: Path) -> dict:
    """Parse a YAML config file and return its mapping."""
    try:
        with open(path, encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"Cannot read config file {path}: {e.strerror or e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in config file {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must be a YAML object (dict)")
    return data


def get_user_config_path() -> Path:
    """Per-user config file location."""
    if xdg := os.environ.get('XDG_CONFIG_HOME'):
        return Path(xdg) / 'rolepack' / 'config.yaml'
    return Path.home() / '.config' / 'rolepack' / 'config.yaml'


def find_config_file(config_file: Optional[Union[str, Path]] = None) -> Optional[Path]:
    """Discover the config file to use.

    Returns:
        Path of the config file, or None when only defaults apply

    Raises:
        ConfigError: If an explicitly named file does not exist
    """
    if config_file:
        path = Path(config_file)
        if not path.is_file():
            raise ConfigError(f"Config file not found: {path}")
        return path

    if env_path := os.environ.get('ROLEPACK_CONFIG'):
        path = Path(env_path)
        if not path.is_file():
            raise ConfigError(f"ROLEPACK_CONFIG={env_path} does not exist")
        return path

    user_path = get_user_config_path()
    if user_path.is_file():
        return user_path

    return None


def load_config(config_file: Optional[Union[str, Path]] = None) -> RolepackConfig:
    """Load configuration following the resolution order above."""
    config = RolepackConfig()
    path = find_config_file(config_file)
    if path is not None:
        logger.debug(f"Loading config from {path}")
        config._load_from_yaml(path)
    config._apply_env()
    return config
