"""Configuration module for scoutbot."""

from scoutbot.config.loader import get_config_path, load_config, save_config
from scoutbot.config.schema import Config

__all__ = ["Config", "get_config_path", "load_config", "save_config"]
