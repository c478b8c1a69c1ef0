"""
Configuration package for the count-model LOO analysis.

This package provides configuration management functionality.
"""

from config.config_manager import ConfigManager, AppConfig

__all__ = ['ConfigManager', 'AppConfig']
