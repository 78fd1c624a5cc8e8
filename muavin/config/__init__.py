"""Configuration module for muavin."""

from muavin.config.loader import ConfigurationError, get_config_path, get_data_dir, load_config
from muavin.config.schema import Config

__all__ = ["Config", "ConfigurationError", "get_config_path", "get_data_dir", "load_config"]
