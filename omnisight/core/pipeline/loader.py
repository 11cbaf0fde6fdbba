from pathlib import Path
from typing import Any, Dict, Optional, Union

from omegaconf import OmegaConf

from omnisight.core.errors import ConfigError
from .config import PipelineConfig
from .resolver import resolve_config


def load_config_dict(config_path: Union[str, Path]) -> Dict[str, Any]:
    """Plain mapping read from a YAML file; a top-level `pipeline` section is used when present."""
    config_path = Path(config_path).expanduser().resolve()
    if not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    cfg = OmegaConf.load(config_path)
    cfg_dict = OmegaConf.to_container(cfg, resolve=True)
    if not isinstance(cfg_dict, dict):
        raise ConfigError(f"Invalid configuration format in {config_path}")
    section = cfg_dict.get("pipeline", cfg_dict)
    if not isinstance(section, dict):
        raise ConfigError(f"'pipeline' section of {config_path} must be a mapping")
    return section


def load_config_from_yaml(
    config_path: Union[str, Path],
    base: Optional[PipelineConfig] = None,
) -> PipelineConfig:
    return resolve_config(load_config_dict(config_path), base=base)
