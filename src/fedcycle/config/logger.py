"""Logging setup for the federated client"""

import logging
import os
from typing import Optional

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


class LoggerSetup:
    """Sets up and manages loggers for jobs and transports"""

    def __init__(self, log_dir: Optional[str] = None, level: int = logging.INFO):
        """Initialize logger setup.

        Args:
            log_dir: Directory for log files; console only if None
            level: Default log level
        """
        self.log_dir = log_dir
        self.level = level
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        self.loggers = {}

    def get_logger(self, name: str, level: Optional[int] = None) -> logging.Logger:
        """Get or create logger with name"""
        if name in self.loggers:
            return self.loggers[name]

        level = self.level if level is None else level
        logger = logging.getLogger(name)
        logger.setLevel(level)

        formatter = logging.Formatter(LOG_FORMAT)

        ch = logging.StreamHandler()
        ch.setLevel(level)
        ch.setFormatter(formatter)
        logger.addHandler(ch)

        if self.log_dir:
            fh = logging.FileHandler(os.path.join(self.log_dir, f"{name}.log"))
            fh.setLevel(level)
            fh.setFormatter(formatter)
            logger.addHandler(fh)

        self.loggers[name] = logger
        return logger

    def get_job_logger(self, model_name: str, version: str) -> logging.Logger:
        """Get logger for a job"""
        return self.get_logger(f"job_{model_name}_{version}")

    def get_transport_logger(self, kind: str) -> logging.Logger:
        """Get logger for a transport"""
        return self.get_logger(f"{kind}_transport")

    @classmethod
    def from_level_name(cls, level_name: str, log_dir: Optional[str] = None) -> "LoggerSetup":
        level = logging.getLevelName(level_name.upper())
        if not isinstance(level, int):
            raise ValueError(f"Unknown log level: {level_name}")
        return cls(log_dir=log_dir, level=level)
