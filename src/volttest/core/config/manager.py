"""
VoltTest configuration management (layered YAML, validated with jsonschema).
"""
from __future__ import annotations

import json
import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple

import jsonschema
import yaml

from volttest.core.exceptions import ConfigError
from volttest.core.utils.io import iter_yaml_files, read_yaml
from volttest.core.utils.merge import deep_merge
from volttest.data import get_data_path, read_json

logger = logging.getLogger(__name__)

ENV_PREFIX = "VOLTTEST_"
PROJECT_CONFIG_DIRNAME = ".volttest"
SCHEMA_FILE = "config.schema.json"


class ConfigManager:
    """Load, merge, and validate VoltTest configuration.

    Configuration sources (highest to lowest priority):
    1. Environment variables: VOLTTEST_<SECTION>__<KEY>[__<KEY>...]
    2. Project config: <repo_root>/.volttest/config/*.yaml (alphabetical order)
    3. Bundled defaults: volttest.data/config/*.yaml (alphabetical order)

    Environment variables without a ``__`` separator are fixture toggles
    (``VOLTTEST_DEBUG``, ``VOLTTEST_BASE_PATH``...) and are never read as
    configuration.
    """

    def __init__(self, repo_root: Optional[Path] = None) -> None:
        self.repo_root = Path(repo_root or Path.cwd()).expanduser().resolve()
        self.core_config_dir = get_data_path("config")
        self.project_config_dir = self.repo_root / PROJECT_CONFIG_DIRNAME / "config"

    def load_yaml(self, path: Path) -> Dict[str, Any]:
        # Fail closed: configuration must never silently ignore invalid YAML.
        try:
            data = read_yaml(path, default={}, raise_on_error=True)
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid YAML in {path}: {exc}", context={"path": str(path)}) from exc
        if not isinstance(data, dict):
            raise ConfigError(
                f"Configuration file must contain a mapping: {path}",
                context={"path": str(path)},
            )
        return data

    def _merge_directory(self, base: Dict[str, Any], directory: Path) -> Dict[str, Any]:
        merged = base
        for path in iter_yaml_files(directory):
            merged = deep_merge(merged, self.load_yaml(path))
        return merged

    # ------------------------------------------------------------------
    # Environment overrides
    # ------------------------------------------------------------------

    def _coerce_type(self, value: str) -> Any:
        s = value.strip()
        low = s.lower()
        if low in {"true", "false"}:
            return low == "true"
        if low in {"null", "none"}:
            return None
        if re.fullmatch(r"[-+]?\d+", s):
            return int(s)
        if re.fullmatch(r"[-+]?\d*\.\d+", s) or re.fullmatch(r"[-+]?\d+\.\d*", s):
            return float(s)
        if (s.startswith("{") and s.endswith("}")) or (s.startswith("[") and s.endswith("]")):
            try:
                return json.loads(s)
            except ValueError:
                return s
        return s

    def _iter_env_overrides(self) -> Iterator[Tuple[List[str], Any]]:
        for key in sorted(os.environ.keys()):
            if not key.startswith(ENV_PREFIX):
                continue
            raw = key[len(ENV_PREFIX):]
            if "__" not in raw:
                continue
            segments = raw.split("__")
            if any(not seg for seg in segments):
                raise ConfigError(f"Malformed {ENV_PREFIX}* key: empty segment in '{key}'")
            yield [seg.lower() for seg in segments], self._coerce_type(os.environ[key])

    def _apply_env_overrides(self, cfg: Dict[str, Any]) -> Dict[str, Any]:
        for path, value in self._iter_env_overrides():
            override: Dict[str, Any] = {path[-1]: value}
            for seg in reversed(path[:-1]):
                override = {seg: override}
            cfg = deep_merge(cfg, override)
        return cfg

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def validate_schema(self, config: Dict[str, Any]) -> None:
        schema = read_json("schemas", SCHEMA_FILE)
        try:
            jsonschema.validate(instance=config, schema=schema)
        except jsonschema.ValidationError as exc:
            location = ".".join(str(p) for p in exc.absolute_path) or "<root>"
            raise ConfigError(
                f"Invalid configuration at {location}: {exc.message}",
                context={"path": location, "repo_root": str(self.repo_root)},
            ) from exc

    def _load_config_uncached(self, validate: bool = True) -> Dict[str, Any]:
        cfg: Dict[str, Any] = self._merge_directory({}, self.core_config_dir)
        if self.project_config_dir.is_dir():
            logger.debug("Loading project config from %s", self.project_config_dir)
            cfg = self._merge_directory(cfg, self.project_config_dir)
        cfg = self._apply_env_overrides(cfg)
        if validate:
            self.validate_schema(cfg)
        return cfg

    def load_config(self, validate: bool = True) -> Dict[str, Any]:
        """Return the merged configuration (cached per repo root)."""
        from .cache import get_cached_config

        return get_cached_config(repo_root=self.repo_root, validate=validate)


__all__ = ["ConfigManager", "ENV_PREFIX", "PROJECT_CONFIG_DIRNAME"]
