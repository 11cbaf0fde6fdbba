"""Merges partial user configuration over the defaults of `PipelineConfig`.

User input may use the camelCase keys and the flat per-role layout of the
original configuration format; both are normalised before merging. Unknown
keys are ignored, negative `skip_frames` values are clamped to 0, and every
other out-of-range value raises `ConfigError`.
"""
import logging
import re
from dataclasses import asdict
from typing import Any, Dict, Mapping, Optional

from pydantic import ValidationError

from omnisight.core.dtypes import ROLE_ORDER
from omnisight.core.errors import ConfigError
from .config import PipelineConfig

LOGGER = logging.getLogger(__name__)

KEY_ALIASES = {
    "async": "async_mode",
    "return": "return_crop",
}

DETECTOR_KEYS = frozenset({
    "model_path", "min_confidence", "iou_threshold", "max_detected",
    "skip_frames", "skip_initial", "return_crop",
})

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


def normalize_key(key: str) -> str:
    snake = _CAMEL_BOUNDARY.sub("_", key).lower()
    return KEY_ALIASES.get(snake, snake)


def normalize_keys(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {normalize_key(str(k)): normalize_keys(v) for k, v in value.items()}
    return value


def _lift_detector_keys(user: Dict[str, Any]) -> Dict[str, Any]:
    """Moves detector knobs written directly under a role into its `detector` block."""
    for role in ROLE_ORDER:
        section = user.get(role.value)
        if not isinstance(section, dict):
            continue
        flat = {k: section.pop(k) for k in list(section) if k in DETECTOR_KEYS}
        if flat:
            detector = section.setdefault("detector", {})
            if isinstance(detector, dict):
                for key, value in flat.items():
                    detector.setdefault(key, value)
    return user


def _merge(base: Dict[str, Any], user: Mapping[str, Any], path: str = "") -> Dict[str, Any]:
    merged = dict(base)
    for key, value in user.items():
        dotted = f"{path}{key}"
        if key not in base:
            LOGGER.debug("Ignoring unknown configuration key: %s", dotted)
            continue
        if isinstance(base[key], dict):
            if not isinstance(value, Mapping):
                raise ConfigError(f"{dotted} must be a mapping, got {type(value).__name__}")
            merged[key] = _merge(base[key], value, f"{dotted}.")
        else:
            merged[key] = value
    return merged


def _clamp_skip_frames(tree: Dict[str, Any], path: str = "") -> None:
    for key, value in tree.items():
        if isinstance(value, dict):
            _clamp_skip_frames(value, f"{path}{key}.")
        elif key == "skip_frames" and isinstance(value, (int, float)) and value < 0:
            LOGGER.debug("Clamping %sskip_frames=%s to 0", path, value)
            tree[key] = 0


def resolve_config(
    overrides: Optional[Mapping[str, Any]] = None,
    base: Optional[PipelineConfig] = None,
) -> PipelineConfig:
    """Builds a validated configuration tree from `overrides` merged over `base` (defaults if omitted)."""
    if overrides is not None and not isinstance(overrides, Mapping):
        raise ConfigError(f"Configuration must be a mapping, got {type(overrides).__name__}")

    base_tree = asdict(base if base is not None else PipelineConfig())
    user = _lift_detector_keys(normalize_keys(overrides or {}))
    merged = _merge(base_tree, user)
    _clamp_skip_frames(merged)

    try:
        return PipelineConfig(**merged)
    except ValidationError as e:
        raise ConfigError(str(e)) from e
    except TypeError as e:
        raise ConfigError(f"Invalid configuration structure: {e}") from e
