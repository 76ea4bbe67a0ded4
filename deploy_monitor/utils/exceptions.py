"""自定义异常类和错误处理系统

探测失败（HTTP错误、网络错误、超时）属于正常数据，不使用异常表达；
这里的异常只用于系统故障：配置错误、快照持久化失败、调度异常等。
"""

import traceback
from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any


class ErrorCode(Enum):
    """错误代码枚举"""
    # 通用错误 (1000-1999)
    UNKNOWN_ERROR = 1000
    INITIALIZATION_ERROR = 1001
    VALIDATION_ERROR = 1002

    # 配置错误 (2000-2999)
    CONFIG_FILE_NOT_FOUND = 2000
    CONFIG_PARSE_ERROR = 2001
    CONFIG_VALIDATION_ERROR = 2002
    TARGET_NOT_FOUND = 2003

    # 告警错误 (4000-4999)
    ALERT_CONFIG_ERROR = 4000
    ALERT_SEND_ERROR = 4001
    ALERT_TEMPLATE_ERROR = 4002

    # 调度错误 (5000-5999)
    SCHEDULER_ERROR = 5000
    RUN_EXECUTION_ERROR = 5001

    # 快照存储错误 (6000-6999)
    SNAPSHOT_STORE_ERROR = 6000
    SNAPSHOT_PERSIST_ERROR = 6001


class MonitorError(Exception):
    """部署健康监控基础异常类"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.UNKNOWN_ERROR,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        recoverable: bool = True
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.cause = cause
        self.recoverable = recoverable
        self.timestamp = datetime.now()

    def to_dict(self) -> Dict[str, Any]:
        """将异常转换为字典格式"""
        return {
            'error_code': self.error_code.value,
            'error_name': self.error_code.name,
            'message': self.message,
            'details': self.details,
            'recoverable': self.recoverable,
            'timestamp': self.timestamp.isoformat(),
            'cause': str(self.cause) if self.cause else None,
            'traceback': ''.join(traceback.format_exception(
                type(self.cause), self.cause, self.cause.__traceback__
            )) if self.cause else None
        }

    def format_error(self) -> str:
        """格式化错误信息"""
        error_msg = f"[{self.error_code.name}] {self.message}"
        if self.details:
            details_str = ", ".join([f"{k}={v}" for k, v in self.details.items()])
            error_msg += f" (详情: {details_str})"
        if self.cause:
            error_msg += f" (原因: {str(self.cause)})"
        return error_msg


class ConfigError(MonitorError):
    """配置相关异常，不可恢复"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.CONFIG_VALIDATION_ERROR,
        config_path: Optional[str] = None,
        **kwargs
    ):
        details = kwargs.pop('details', None) or {}
        if config_path:
            details['config_path'] = config_path
        kwargs.setdefault('recoverable', False)
        super().__init__(message, error_code, details, **kwargs)


class TargetNotFoundError(MonitorError):
    """环境注册表中不存在指定目标"""

    def __init__(self, target_name: str, **kwargs):
        super().__init__(
            f"监控目标不存在: {target_name}",
            ErrorCode.TARGET_NOT_FOUND,
            details={'target': target_name},
            **kwargs
        )
        self.target_name = target_name


class AlertError(MonitorError):
    """告警相关异常"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.ALERT_SEND_ERROR,
        sink_name: Optional[str] = None,
        **kwargs
    ):
        details = kwargs.pop('details', None) or {}
        if sink_name:
            details['sink_name'] = sink_name
        super().__init__(message, error_code, details, **kwargs)


class AlertConfigError(AlertError):
    """告警配置异常"""

    def __init__(self, message: str, sink_name: Optional[str] = None, **kwargs):
        super().__init__(
            message,
            ErrorCode.ALERT_CONFIG_ERROR,
            sink_name=sink_name,
            recoverable=False,
            **kwargs
        )


class AlertSendError(AlertError):
    """告警发送异常"""

    def __init__(self, message: str, sink_name: Optional[str] = None, **kwargs):
        super().__init__(
            message,
            ErrorCode.ALERT_SEND_ERROR,
            sink_name=sink_name,
            recoverable=True,
            **kwargs
        )


class SchedulerError(MonitorError):
    """调度器相关异常，监控运行本身无法完成"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.SCHEDULER_ERROR,
        **kwargs
    ):
        super().__init__(message, error_code, **kwargs)


class SnapshotStoreError(MonitorError):
    """快照存储相关异常"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.SNAPSHOT_STORE_ERROR,
        snapshot_path: Optional[str] = None,
        **kwargs
    ):
        details = kwargs.pop('details', None) or {}
        if snapshot_path:
            details['snapshot_path'] = snapshot_path
        super().__init__(message, error_code, details, **kwargs)


class SnapshotPersistError(SnapshotStoreError):
    """快照写入失败"""

    def __init__(self, message: str, snapshot_path: Optional[str] = None, **kwargs):
        super().__init__(
            message,
            ErrorCode.SNAPSHOT_PERSIST_ERROR,
            snapshot_path=snapshot_path,
            **kwargs
        )
