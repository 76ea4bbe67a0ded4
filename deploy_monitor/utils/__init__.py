"""工具模块"""

from .exceptions import (MonitorError, ConfigError, TargetNotFoundError, AlertError,
                         SchedulerError, SnapshotPersistError)
from .log_manager import LogManager, LogLevel, get_logger, configure_logging, log_manager

__all__ = [
    'MonitorError', 'ConfigError', 'TargetNotFoundError', 'AlertError',
    'SchedulerError', 'SnapshotPersistError',
    'LogManager', 'LogLevel', 'get_logger', 'configure_logging', 'log_manager'
]
