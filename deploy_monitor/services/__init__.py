"""服务模块"""

from .config_manager import ConfigManager, MonitorSettings
from .environment_registry import EnvironmentRegistry
from .monitor_scheduler import MonitorScheduler
from .snapshot_collector import SnapshotCollector, take_snapshot
from .snapshot_store import SnapshotStore
from .transition_detector import FailureTransitionDetector

__all__ = ['ConfigManager', 'MonitorSettings', 'EnvironmentRegistry', 'MonitorScheduler',
           'SnapshotCollector', 'take_snapshot', 'SnapshotStore',
           'FailureTransitionDetector']
