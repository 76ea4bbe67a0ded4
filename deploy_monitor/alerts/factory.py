"""告警输出工厂"""

from typing import Any, Callable, Dict, List, Type

from .base import AlertSink
from .console_sink import ConsoleAlertSink
from .email_sink import EmailAlertSink
from .file_sink import FileAlertSink
from .http_sink import WebhookAlertSink
from ..utils.exceptions import AlertConfigError, AlertError
from ..utils.log_manager import get_logger


class AlertSinkFactory:
    """告警输出工厂类，根据配置中的 type 创建告警输出"""

    def __init__(self):
        self._sinks: Dict[str, Type] = {}
        self.logger = get_logger('alert_sink_factory')

    def register_sink(self, sink_type: str, sink_class: Type):
        """
        注册告警输出类

        Raises:
            AlertConfigError: 类型已注册
        """
        sink_type = sink_type.lower()
        if sink_type in self._sinks:
            raise AlertConfigError(f"告警类型 '{sink_type}' 已经注册")
        self._sinks[sink_type] = sink_class

    def unregister_sink(self, sink_type: str):
        self._sinks.pop(sink_type.lower(), None)

    def get_supported_types(self) -> List[str]:
        return list(self._sinks.keys())

    def is_type_supported(self, sink_type: str) -> bool:
        return str(sink_type).lower() in self._sinks

    def create_sink(self, config: Dict[str, Any]) -> AlertSink:
        """
        根据配置创建告警输出

        Args:
            config: 单个告警配置，必须包含 name 和 type

        Raises:
            AlertConfigError: 配置缺失、类型不支持或创建失败
        """
        name = config.get('name')
        sink_type = str(config.get('type', '')).lower()
        if not name:
            raise AlertConfigError("告警配置缺少 'name'")
        if not sink_type:
            raise AlertConfigError(f"告警 '{name}' 缺少 'type' 配置", sink_name=name)
        if sink_type not in self._sinks:
            raise AlertConfigError(f"不支持的告警类型: '{sink_type}'", sink_name=name)

        try:
            return self._sinks[sink_type](name, config)
        except AlertError:
            raise
        except (TypeError, ValueError) as e:
            raise AlertConfigError(f"创建告警 '{name}' 失败: {e}", sink_name=name, cause=e)

    def create_sinks(self, configs: List[Dict[str, Any]]) -> List[AlertSink]:
        """
        批量创建告警输出

        未启用（enabled: false）的配置会被跳过。
        """
        sinks = []
        for config in configs or []:
            if not config.get('enabled', True):
                self.logger.info(f"告警 '{config.get('name')}' 未启用，跳过")
                continue
            sinks.append(self.create_sink(config))
        return sinks


# 全局工厂实例
alert_sink_factory = AlertSinkFactory()


def register_sink(*sink_types: str) -> Callable[[Type], Type]:
    """类装饰器：将告警输出类注册到全局工厂"""
    def decorator(sink_class: Type) -> Type:
        for sink_type in sink_types:
            alert_sink_factory.register_sink(sink_type, sink_class)
        return sink_class
    return decorator


register_sink('console')(ConsoleAlertSink)
register_sink('file')(FileAlertSink)
register_sink('http', 'webhook')(WebhookAlertSink)
register_sink('email')(EmailAlertSink)
