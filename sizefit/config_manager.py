"""
Configuration Manager for SizeFit
Handles loading and managing configuration from YAML files and CLI arguments
"""

import os
import yaml
import logging
from typing import Dict, Any, Optional, List

logger = logging.getLogger(__name__)

CONFIG_FILES = (
    'target_size.yaml',
    'logging.yaml',
)

PACKAGED_CONFIG_DIR = os.path.join(os.path.abspath(os.path.dirname(__file__)), 'config')


class ConfigManager:
    def __init__(self, config_dir: Optional[str] = None):
        self.config_dir = config_dir
        self.config: Dict[str, Any] = {}
        self.loaded_files: List[str] = []
        self._load_all_configs()

    def _load_all_configs(self):
        """Load packaged defaults, then overlay files found in the explicit config dir"""
        for config_file in CONFIG_FILES:
            packaged_path = os.path.join(PACKAGED_CONFIG_DIR, config_file)
            if os.path.exists(packaged_path):
                self._merge_file(packaged_path)
            else:
                logger.warning(f"Packaged default config missing: {packaged_path}")

            if self.config_dir:
                config_path = os.path.join(self.config_dir, config_file)
                if os.path.exists(config_path):
                    self._merge_file(config_path)

    def _merge_file(self, path: str):
        with open(path, 'r', encoding='utf-8') as file:
            config_data = yaml.safe_load(file)
        if config_data:
            if not isinstance(config_data, dict):
                raise ValueError(f"Config file must contain a mapping: {path}")
            _deep_merge(self.config, config_data)
        self.loaded_files.append(path)
        logger.debug(f"Loaded config from {path}")

    def get(self, key_path: str, default: Any = None) -> Any:
        """
        Get configuration value using dot notation
        Example: get('image_search.quality.min')
        """
        value = self.config
        try:
            for key in key_path.split('.'):
                value = value[key]
            return value
        except (KeyError, TypeError):
            logger.debug(f"Configuration key '{key_path}' not found, using default: {default}")
            return default

    def update_from_args(self, args_dict: Dict[str, Any]):
        """Update configuration with command line arguments (None values are ignored)"""
        applied = 0
        for key, value in args_dict.items():
            if value is not None:
                old_value = self.get(key)
                self._set_nested_value(key, value)
                applied += 1
                logger.info(f"Configuration override applied: {key} = {value} (was: {old_value})")

        if not applied:
            logger.debug("No CLI configuration overrides to apply")

    def _set_nested_value(self, key_path: str, value: Any):
        keys = key_path.split('.')
        config_section = self.config
        for key in keys[:-1]:
            if not isinstance(config_section.get(key), dict):
                config_section[key] = {}
            config_section = config_section[key]
        config_section[keys[-1]] = value

    def validate_config(self) -> bool:
        """Validate search, pool and server settings. Logs every problem found."""
        errors = []

        for key in ('image_search.scale_ladder', 'animated.scale_ladder'):
            errors.extend(_check_ladder(key, self.get(key), upper=1.0))
        errors.extend(_check_ladder('animated.frame_rates', self.get('animated.frame_rates'), upper=None))

        q_min = self.get('image_search.quality.min')
        q_max = self.get('image_search.quality.max')
        if not all(isinstance(q, int) for q in (q_min, q_max)) or not 0 < q_min <= q_max <= 100:
            errors.append(f"image_search.quality must satisfy 0 < min <= max <= 100 (got {q_min}, {q_max})")

        for key in ('image_search.max_iterations', 'image_search.min_dimension', 'animated.min_width',
                    'animated.encode_timeout_seconds', 'convert.fps', 'convert.width', 'convert.max_fps',
                    'convert.max_dimension', 'resize.max_dimension', 'server.error_history'):
            value = self.get(key)
            if not isinstance(value, int) or value <= 0:
                errors.append(f"{key} must be a positive integer (got {value!r})")

        height = self.get('convert.height')
        if not isinstance(height, int) or height < 0:
            errors.append(f"convert.height must be a non-negative integer (got {height!r})")

        quality = self.get('resize.quality')
        if not isinstance(quality, int) or not 0 < quality <= 100:
            errors.append(f"resize.quality must be between 1 and 100 (got {quality!r})")

        policy = self.get('animated.on_encode_failure')
        if policy not in ('abort', 'skip'):
            errors.append(f"animated.on_encode_failure must be 'abort' or 'skip' (got {policy!r})")

        fallback = str(self.get('target_size.fallback_format', '')).lower()
        if fallback not in ('jpeg', 'jpg', 'png', 'webp'):
            errors.append(f"target_size.fallback_format must be jpeg, png or webp (got {fallback!r})")

        for key in ('search_pool.max_workers', 'search_pool.max_queued'):
            value = self.get(key)
            if not isinstance(value, int) or value < 0:
                errors.append(f"{key} must be a non-negative integer (got {value!r})")

        for error in errors:
            logger.error(f"Invalid configuration: {error}")
        if errors:
            return False

        logger.debug("Configuration validation passed")
        return True


def _check_ladder(key: str, values: Any, upper: Optional[float]) -> List[str]:
    if not isinstance(values, list) or not values:
        return [f"{key} must be a non-empty list"]
    if not all(isinstance(v, (int, float)) and v > 0 for v in values):
        return [f"{key} entries must be positive numbers: {values}"]
    if upper is not None and any(v > upper for v in values):
        return [f"{key} entries must not exceed {upper}: {values}"]
    if any(b >= a for a, b in zip(values, values[1:])):
        return [f"{key} must be strictly descending: {values}"]
    return []


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]):
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
