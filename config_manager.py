"""
Configuration Manager Module
Loads and saves recoloring settings as a JSON file
"""

import os
import json
import logging

from color_utils import hex_to_rgb
from errors import InvalidFormat


class ConfigManager:
    """Settings manager"""

    DEFAULT_CONFIG = {
        # Recolor engine settings
        'chunk_size': 100000,  # pixels
        'update_frequency': 5,  # chunks between intermediate snapshots
        'default_tolerance': 50,
        'default_target_color': '#00FF00',

        # Dominant color detection settings
        'sample_limit': 100000,
        'bucket_size': 32,
        'fallback_color': '#FF0000',
        'debug_mode': True,

        # Selection settings
        'point_hit_radius': 5,

        # File settings
        'max_recent_files': 10,

        # Export settings
        'default_export_format': 'jpg'
    }

    COLOR_KEYS = ('default_target_color', 'fallback_color')
    POSITIVE_KEYS = ('chunk_size', 'update_frequency', 'sample_limit', 'bucket_size')

    def __init__(self, config_path='config.json'):
        self.config_path = config_path
        self.config = self.load_config()

    def load_config(self):
        """Load settings from file; missing or invalid entries keep their defaults"""
        config = self.DEFAULT_CONFIG.copy()
        if not os.path.exists(self.config_path):
            logging.info("Config file not found. Using defaults.")
            return config

        try:
            with open(self.config_path, 'r', encoding='utf-8') as f:
                loaded_config = json.load(f)
        except Exception as e:
            logging.error(f"Config load error: {e}. Using defaults.")
            return config

        if not isinstance(loaded_config, dict):
            logging.error("Config load error: expected a JSON object. Using defaults.")
            return config

        for key, value in loaded_config.items():
            if self._is_valid(key, value):
                config[key] = value
            else:
                logging.warning(f"Ignoring invalid config value {key}={value!r}")
        logging.info("Config loaded successfully")
        return config

    def _is_valid(self, key, value):
        if key not in self.DEFAULT_CONFIG:
            # Unknown keys are kept for forward compatibility
            return True
        default = self.DEFAULT_CONFIG[key]
        if isinstance(default, bool):
            return isinstance(value, bool)
        if isinstance(default, int):
            if isinstance(value, bool) or not isinstance(value, int):
                return False
            if key in self.POSITIVE_KEYS:
                return value > 0
            if key == 'default_tolerance':
                return 0 <= value <= 255
            return value >= 0
        if key in self.COLOR_KEYS:
            try:
                hex_to_rgb(value)
            except InvalidFormat:
                return False
            return True
        return isinstance(value, type(default))

    def save_config(self):
        """Write the current settings to the config file"""
        try:
            with open(self.config_path, 'w', encoding='utf-8') as f:
                json.dump(self.config, f, ensure_ascii=False, indent=2)
            logging.info(f"Config saved: {self.config_path}")
            return True
        except Exception as e:
            logging.error(f"Config save error: {e}")
            return False

    def get(self, key, default=None):
        return self.config.get(key, default)

    def set(self, key, value):
        """Change a setting; invalid values raise ValueError"""
        if not self._is_valid(key, value):
            raise ValueError(f"Invalid value for {key}: {value!r}")
        self.config[key] = value

    def recolorer_settings(self):
        """Keyword arguments for ImageRecolorer"""
        return {
            'chunk_size': self.get('chunk_size'),
            'update_frequency': self.get('update_frequency'),
        }

    def detector_settings(self):
        """Keyword arguments for DominantColorDetector"""
        return {
            'sample_limit': self.get('sample_limit'),
            'bucket_size': self.get('bucket_size'),
            'fallback_color': self.get('fallback_color'),
            'debug_mode': self.get('debug_mode'),
        }

    def reset_to_defaults(self):
        """Restore and save the default settings"""
        self.config = self.DEFAULT_CONFIG.copy()
        self.save_config()
        logging.info("Config reset to defaults")
