# src/faultline/chaos/config_loader.py
"""Stage configuration files and presets.

Provides YAML/JSON stage file loading, named presets shipped with the
package, and deep merge for configuration precedence
(overrides > config file > preset).
"""

from __future__ import annotations

import json
import random as random_module
from pathlib import Path
from typing import Any

import yaml

from faultline.chaos.config import decode_stage
from faultline.chaos.errors import ConfigurationError
from faultline.chaos.stages import Stage
from faultline.core.clock import Clock


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep merge two dicts, with override taking precedence.

    Args:
        base: Base configuration dict.
        override: Override values (takes precedence).

    Returns:
        Merged configuration dict (new dict, does not mutate inputs).
    """
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _get_presets_dir() -> Path:
    """Get the presets directory path."""
    return Path(__file__).parent / "presets"


def list_presets(presets_dir: Path | None = None) -> list[str]:
    """List available preset names.

    Returns:
        Sorted list of preset names (without .yaml extension).
    """
    presets_dir = presets_dir if presets_dir is not None else _get_presets_dir()
    if not presets_dir.exists():
        return []
    return sorted(p.stem for p in presets_dir.glob("*.yaml"))


def _read_mapping(path: Path, label: str) -> dict[str, Any]:
    with path.open() as f:
        if path.suffix == ".json":
            try:
                loaded = json.load(f)
            except json.JSONDecodeError as e:
                raise ConfigurationError(f"{label} is not valid JSON: {e}") from e
        else:
            try:
                loaded = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigurationError(f"{label} is not valid YAML: {e}") from e
    if not isinstance(loaded, dict):
        raise ConfigurationError(f"{label} must be a mapping, got {type(loaded).__name__}")
    return loaded


def load_preset(preset_name: str, presets_dir: Path | None = None) -> dict[str, Any]:
    """Load a preset stage configuration by name.

    Args:
        preset_name: Name of the preset (e.g., 'flaky_gateway').
        presets_dir: Directory holding preset YAML files (default: bundled presets).

    Returns:
        Raw stage configuration dict from the preset YAML.

    Raises:
        FileNotFoundError: If preset does not exist.
        ConfigurationError: If preset YAML is malformed or not a mapping.
    """
    presets_dir = presets_dir if presets_dir is not None else _get_presets_dir()
    preset_path = presets_dir / f"{preset_name}.yaml"

    if not preset_path.exists():
        available = list_presets(presets_dir)
        raise FileNotFoundError(f"Preset '{preset_name}' not found. Available presets: {available}")

    return _read_mapping(preset_path, f"Preset '{preset_name}'")


def load_stage_file(path: Path) -> dict[str, Any]:
    """Load a raw stage configuration from a .json, .yaml or .yml file.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigurationError: If the file is malformed or not a mapping.
    """
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    return _read_mapping(path, f"Config file {path}")


def load_stage_config(
    *,
    preset: str | None = None,
    config_file: Path | None = None,
    overrides: dict[str, Any] | None = None,
    presets_dir: Path | None = None,
) -> dict[str, Any]:
    """Layer raw stage configuration with precedence handling.

    Precedence (highest to lowest):
    1. overrides - Direct overrides (e.g. from CLI flags or an admin call)
    2. config_file - User's YAML/JSON stage file
    3. preset - Named preset configuration

    Raises:
        FileNotFoundError: If preset or config_file not found.
        ConfigurationError: If nothing was given or a source is malformed.
    """
    if preset is None and config_file is None and overrides is None:
        raise ConfigurationError("No stage configuration given: use a preset, a config file or overrides")

    config_dict: dict[str, Any] = {}
    if preset is not None:
        config_dict = load_preset(preset, presets_dir)
    if config_file is not None:
        config_dict = deep_merge(config_dict, load_stage_file(config_file))
    if overrides is not None:
        config_dict = deep_merge(config_dict, overrides)
    return config_dict


def load_stage(
    *,
    preset: str | None = None,
    config_file: Path | None = None,
    overrides: dict[str, Any] | None = None,
    presets_dir: Path | None = None,
    clock: Clock | None = None,
    rng: random_module.Random | None = None,
) -> Stage:
    """Load and decode a stage, layering preset, file and overrides.

    Raises:
        FileNotFoundError: If preset or config_file not found.
        ConfigurationError: If the merged configuration is invalid.
    """
    config_dict = load_stage_config(
        preset=preset,
        config_file=config_file,
        overrides=overrides,
        presets_dir=presets_dir,
    )
    return decode_stage(config_dict, clock=clock, rng=rng)
