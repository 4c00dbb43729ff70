from __future__ import annotations

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Optional

from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

ROOT = Path(__file__).resolve().parents[2]
CONFIG_ENV = "LOCATIONS_CONFIG"
DEFAULT_CONFIG_PATH = ROOT / "config" / "location_engine.yaml"


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class EngineConfig:
    # Rows per backfill page
    batch_size: int = 100
    # Half-width of the coordinate bounding box, in degrees (~5.5 km at SA latitudes)
    bbox_degrees: float = 0.05
    site_name: str = "Property Listify"
    # Verifier thresholds
    populated_ratio: float = 0.9
    seo_ratio: float = 0.9


def load_yaml(path: Path) -> Any:
    yaml = YAML(typ="safe")
    with path.open("r", encoding="utf-8") as f:
        return yaml.load(f)


def load_config(path: Optional[Path] = None) -> EngineConfig:
    """Read engine settings from YAML, falling back to built-in defaults.

    Resolution: explicit path, then LOCATIONS_CONFIG, then config/location_engine.yaml.
    A missing default file is fine; a missing explicit file is not.
    """
    explicit = path is not None or bool(os.environ.get(CONFIG_ENV))
    cfg_path = Path(path) if path is not None else Path(os.environ.get(CONFIG_ENV) or DEFAULT_CONFIG_PATH)
    if not cfg_path.is_file():
        if explicit:
            raise ConfigError(f"config file not found: {cfg_path}")
        return EngineConfig()
    try:
        data = load_yaml(cfg_path) or {}
    except YAMLError as e:
        raise ConfigError(f"invalid YAML in {cfg_path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"{cfg_path}: expected a mapping at top level")

    known = {f.name: f for f in fields(EngineConfig)}
    unknown = sorted(set(data) - set(known))
    if unknown:
        raise ConfigError(f"{cfg_path}: unknown keys {', '.join(unknown)}")
    values: dict[str, Any] = {}
    for key, raw in data.items():
        default = getattr(EngineConfig, key)
        try:
            values[key] = type(default)(raw)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"{cfg_path}: bad value for {key!r}: {raw!r}") from e
    cfg = EngineConfig(**values)
    if cfg.batch_size < 1:
        raise ConfigError(f"{cfg_path}: batch_size must be >= 1")
    if cfg.bbox_degrees <= 0:
        raise ConfigError(f"{cfg_path}: bbox_degrees must be > 0")
    return cfg
