"""YAML configuration loading with include: support."""

from __future__ import annotations

import os
import sys
from pathlib import Path

import yaml
from platformdirs import user_config_dir
from pydantic_settings import BaseSettings, YamlConfigSettingsSource

from ecowatch.core.log import logger

DEFAULTS_FILE = Path(__file__).parent.parent / "defaults" / "default.yaml"


def _cli_includes(argv: list[str]) -> list[str]:
    """Collect the values of every --include option on the command line."""
    includes = []
    i = 1
    while i < len(argv):
        if argv[i] == "--include" and i + 1 < len(argv):
            includes.append(argv[i + 1])
            i += 1
        elif argv[i].startswith("--include="):
            includes.append(argv[i].split("=", 1)[1])
        i += 1
    return includes


class YamlWithIncludesSettingsSource(YamlConfigSettingsSource):
    """YAML settings source layering several files.

    Files are deep-merged in this order, later ones winning:

    1. packaged defaults (ecowatch/defaults/default.yaml)
    2. the user config (platformdirs user_config_dir/ecowatch.yaml)
    3. ./ecowatch.yaml, or the yaml_file given explicitly
    4. every --include file from the command line

    Each file may itself carry an include: key (string or list); the
    included files are merged underneath the including one.
    """

    def __init__(self, settings_cls: type[BaseSettings], yaml_file=None):
        base = yaml_file or settings_cls.model_config.get("yaml_file")
        includes = _cli_includes(sys.argv)
        if base and includes:
            files = ([base] if isinstance(base, (str, os.PathLike))
                     else list(base)) + includes
        else:
            files = includes or base
        super().__init__(settings_cls, files)

    def _read_files(self, files, deep_merge: bool = True):  # noqa: ARG002
        if isinstance(files, (str, os.PathLike)):
            files = [files]

        candidates = [
            DEFAULTS_FILE,
            Path(user_config_dir("ecowatch", appauthor=False))
            / "ecowatch.yaml",
        ]
        candidates.extend(Path(f).expanduser() for f in files or [])

        result = {}
        for path in candidates:
            if path.is_file():
                logger.debug("Loading configuration", file=str(path))
                result = self._deep_merge(
                    result, self._load_file_recursive(path, set())
                )
            else:
                logger.spew(
                    "Configuration file not found (skipping)",
                    file=str(path),
                )
        return result

    def _load_file_recursive(self, filepath: Path, visited: set[Path]) -> dict:
        """Load a file with its include: directives resolved.

        Raises:
            ValueError: on a circular include
        """
        filepath = filepath.resolve()
        if filepath in visited:
            raise ValueError(f"Circular include: {filepath}")
        visited.add(filepath)

        with open(filepath, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        includes = data.pop("include", None) or []
        if isinstance(includes, str):
            includes = [includes]
        for include in includes:
            path = Path(include).expanduser()
            if not path.is_absolute():
                path = filepath.parent / path
            data = self._deep_merge(
                self._load_file_recursive(path, visited.copy()), data
            )
        return data

    @classmethod
    def _deep_merge(cls, base: dict, override: dict) -> dict:
        result = base.copy()
        for key, value in override.items():
            if isinstance(result.get(key), dict) and isinstance(value, dict):
                result[key] = cls._deep_merge(result[key], value)
            else:
                result[key] = value
        return result
