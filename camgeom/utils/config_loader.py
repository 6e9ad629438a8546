"""
YAML configuration files for camera models.

Camera files are flat mappings of intrinsics with a nested distortion block.
A block may live in its own file and be pulled in with an include string:

    fu: 400.0
    ...
    distortion: "!include lens.yaml"

Include paths are relative to the including file.
"""

from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import yaml

INCLUDE_PREFIX = "!include "

PathLike = Union[str, Path]


class ConfigLoader:
    """Load, cache, merge and save YAML camera configurations."""

    def __init__(self, config_dir: Optional[PathLike] = None):
        """
        Args:
            config_dir: Directory searched for relative paths that do not
                        exist as given. Defaults to ``configs``.
        """
        self.config_dir = Path(config_dir) if config_dir else Path("configs")
        self._cache: Dict[str, Dict[str, Any]] = {}

    def resolve(self, config_path: PathLike) -> Path:
        """Path of a config file, falling back to ``config_dir``."""
        path = Path(config_path)
        if path.is_absolute() or path.exists():
            return path
        if path.parts and Path(path.parts[0]) == self.config_dir:
            return path
        return self.config_dir / path

    def load(
        self,
        config_path: PathLike,
        use_cache: bool = True,
    ) -> Dict[str, Any]:
        """
        Load a configuration file.

        Args:
            config_path: File path, absolute or relative.
            use_cache: Reuse a previously loaded result for the same path.

        Returns:
            Configuration dictionary (a copy when served from the cache).

        Raises:
            FileNotFoundError: If the file does not exist.
        """
        path = self.resolve(config_path)
        key = str(path)

        if use_cache and key in self._cache:
            return dict(self._cache[key])

        if not path.is_file():
            raise FileNotFoundError(f"Config file not found: {path}")

        with open(path, "r") as f:
            config = self._expand_includes(yaml.safe_load(f) or {}, path.parent)

        if use_cache:
            self._cache[key] = config
        return dict(config)

    def _expand_includes(self, node: Any, base_dir: Path) -> Any:
        if isinstance(node, str) and node.startswith(INCLUDE_PREFIX):
            include_path = base_dir / node[len(INCLUDE_PREFIX):].strip()
            with open(include_path, "r") as f:
                return self._expand_includes(yaml.safe_load(f), include_path.parent)
        if isinstance(node, dict):
            return {key: self._expand_includes(value, base_dir) for key, value in node.items()}
        return node

    def merge(
        self,
        base: Mapping[str, Any],
        override: Mapping[str, Any],
    ) -> Dict[str, Any]:
        """
        Deep merge two configurations.

        Nested mappings are merged key by key; any other override value
        replaces the base value.
        """
        merged = dict(base)
        for key, value in override.items():
            current = merged.get(key)
            if isinstance(current, Mapping) and isinstance(value, Mapping):
                merged[key] = self.merge(current, value)
            else:
                merged[key] = value
        return merged

    def save(self, config: Mapping[str, Any], path: PathLike) -> None:
        """Write a configuration, keeping its key order."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            yaml.safe_dump(dict(config), f, default_flow_style=False, sort_keys=False)

    def clear_cache(self) -> None:
        self._cache.clear()


def load_config(
    config_path: PathLike,
    overrides: Optional[Mapping[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Load a configuration file and apply optional overrides.

    Args:
        config_path: Path to the YAML file.
        overrides: Values deep merged over the loaded file.

    Returns:
        Configuration dictionary.
    """
    loader = ConfigLoader()
    config = loader.load(config_path)
    return loader.merge(config, overrides) if overrides else config


def get_nested(
    config: Mapping[str, Any],
    key: str,
    default: Any = None,
) -> Any:
    """
    Look up a value by dot-separated key, e.g. ``'distortion.type'``.

    Returns:
        The value, or ``default`` when any level is missing.
    """
    node: Any = config
    for part in key.split("."):
        if not isinstance(node, Mapping) or part not in node:
            return default
        node = node[part]
    return node


def get_float(config: Mapping[str, Any], key: str) -> float:
    """Required float value; raises KeyError when missing."""
    return float(_require(config, key))


def get_int(config: Mapping[str, Any], key: str) -> int:
    """Required integer value; raises KeyError when missing."""
    return int(_require(config, key))


def get_section(config: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    """Required nested block; raises KeyError when missing or not a mapping."""
    section = config.get(key)
    if not isinstance(section, Mapping):
        raise KeyError(f"Required config section '{key}' not found")
    return section


def _require(config: Mapping[str, Any], key: str) -> Any:
    if key not in config:
        raise KeyError(f"Required config key '{key}' not found")
    return config[key]
