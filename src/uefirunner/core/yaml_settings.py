"""YAML configuration loading with include directive support."""

from __future__ import annotations

import os
from pathlib import Path

import yaml
from platformdirs import user_config_dir
from pydantic_settings import YamlConfigSettingsSource

from uefirunner.core.log import logger

DEFAULTS_FILE = Path(__file__).parent.parent / "defaults" / "default.yaml"
PROJECT_FILE = "uefirunner.yaml"


def user_config_file() -> Path:
    return Path(user_config_dir("uefirunner", appauthor=False)) / PROJECT_FILE


class YamlWithIncludesSettingsSource(YamlConfigSettingsSource):
    """YAML settings source layering defaults, user and project files.

    Deep merges, lowest priority first:
        package defaults < user config < project config < yaml_file

    Each file may carry an include: directive (a path or a list of
    paths, relative to the including file) that is loaded first and
    overridden by the including file.
    """

    def _read_files(self, files, deep_merge: bool = True):  # noqa: ARG002
        """Load and deep-merge every configuration file that exists.

        Args:
            files: Extra YAML file(s) from model_config["yaml_file"]
                or the constructor, loaded last
            deep_merge: Accepted for API compatibility; files are
                always deep-merged

        Returns:
            Deep-merged dictionary of all loaded data
        """
        files_to_load = [
            DEFAULTS_FILE,
            user_config_file(),
            Path(PROJECT_FILE),
        ]
        if files:
            if isinstance(files, (str, os.PathLike)):
                files = [files]
            files_to_load.extend(Path(f).expanduser() for f in files)

        result = {}
        seen = set()
        for file_path in files_to_load:
            resolved = file_path.resolve()
            if resolved in seen:
                continue
            seen.add(resolved)
            if file_path.is_file():
                logger.debug(
                    "Loading configuration", file=str(file_path)
                )
                data = self._load_file_recursive(resolved, set())
                result = self._deep_merge(result, data)
        return result

    def _load_file_recursive(
        self, filepath: Path, visited: set[Path]
    ) -> dict:
        """Load a file, resolving include: directives recursively.

        Raises:
            ValueError: On a circular include
        """
        if filepath in visited:
            raise ValueError(f"Circular include: {filepath}")
        visited.add(filepath)

        with open(filepath, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        if "include" in data:
            includes = data.pop("include")
            if isinstance(includes, str):
                includes = [includes]

            for inc in includes:
                inc_path = self._resolve_path(inc, filepath)
                inc_data = self._load_file_recursive(
                    inc_path, visited.copy()
                )
                data = self._deep_merge(inc_data, data)

        return data

    @staticmethod
    def _resolve_path(include_path: str, relative_to: Path) -> Path:
        path = Path(include_path).expanduser()
        if path.is_absolute():
            return path
        return (relative_to.parent / path).resolve()

    def _deep_merge(self, base: dict, override: dict) -> dict:
        """Deep merge override into base (override wins)."""
        result = base.copy()
        for key, value in override.items():
            if (
                key in result
                and isinstance(result[key], dict)
                and isinstance(value, dict)
            ):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value
        return result
