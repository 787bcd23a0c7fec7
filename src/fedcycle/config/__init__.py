"""Configuration and logging setup"""

from fedcycle.config.manager import ConfigManager, ClientSettings
from fedcycle.config.logger import LoggerSetup

__all__ = ['ConfigManager', 'ClientSettings', 'LoggerSetup']
