"""告警分发器"""

import asyncio
from typing import Any, Dict, List, Optional, Sequence

from .base import AlertCallback, AlertSink, CallbackSink
from ..models.health_check import AlertEvent, AlertSeverity, HealthState, Transition
from ..utils.exceptions import AlertConfigError
from ..utils.log_manager import get_logger


class AlertDispatcher:
    """告警分发器，负责将状态变化转换为告警事件并发送到所有告警输出

    任何告警输出的异常都只记录日志，不会影响监控运行。
    """

    def __init__(self, sinks: Optional[Sequence[AlertSink]] = None):
        """
        初始化告警分发器

        Args:
            sinks: 初始告警输出列表
        """
        self.sinks: List[AlertSink] = []
        self.logger = get_logger('alert_dispatcher')
        for sink in sinks or ():
            self.add_sink(sink)

    def add_sink(self, sink: AlertSink):
        """
        添加告警输出

        Args:
            sink: 具备 name 属性和异步 emit 方法的对象

        Raises:
            AlertConfigError: 对象不满足告警输出协议
        """
        if not isinstance(sink, AlertSink):
            raise AlertConfigError(f"告警输出必须提供 name 属性和 emit 方法: {type(sink)}")

        self.sinks.append(sink)
        self.logger.info(f"已添加告警输出: {sink.name}")

    def add_callback(self, callback: AlertCallback, name: Optional[str] = None) -> CallbackSink:
        """将回调函数注册为告警输出"""
        sink = CallbackSink(callback, name)
        self.add_sink(sink)
        return sink

    def remove_sink(self, name: str) -> bool:
        """
        移除告警输出

        Returns:
            bool: 是否成功移除
        """
        for i, sink in enumerate(self.sinks):
            if sink.name == name:
                self.sinks.pop(i)
                self.logger.info(f"已移除告警输出: {name}")
                return True
        return False

    def get_sink_names(self) -> List[str]:
        return [sink.name for sink in self.sinks]

    @staticmethod
    def create_alert_event(transition: Transition) -> AlertEvent:
        """
        根据状态变化创建告警事件

        变为不健康为 CRITICAL，恢复为 WARNING；两者的消息前缀不同，
        不会把恢复误读为新的故障。
        """
        if transition.to_state is HealthState.UNHEALTHY:
            severity = AlertSeverity.CRITICAL
            message = (f"[CRITICAL] DOWN {transition.target} {transition.path} "
                       f"不可用: {transition.detail}")
        else:
            severity = AlertSeverity.WARNING
            message = (f"[RECOVERED] UP {transition.target} {transition.path} "
                       f"已恢复: {transition.detail}")

        return AlertEvent(transition=transition, severity=severity, message=message)

    async def dispatch(self, transitions: Sequence[Transition]) -> List[AlertEvent]:
        """
        为每个状态变化生成告警并发送

        Args:
            transitions: 状态变化列表

        Returns:
            List[AlertEvent]: 生成的告警事件
        """
        events = [self.create_alert_event(t) for t in transitions]
        for event in events:
            await self.emit(event)
        return events

    async def emit(self, event: AlertEvent) -> int:
        """
        并发发送一条告警到所有告警输出

        Returns:
            int: 发送成功的告警输出数量
        """
        if event.severity is AlertSeverity.CRITICAL:
            self.logger.error(event.message)
        else:
            self.logger.warning(event.message)

        if not self.sinks:
            self.logger.warning("没有配置告警输出，跳过告警发送")
            return 0

        results = await asyncio.gather(
            *(self._emit_to_sink(sink, event) for sink in self.sinks)
        )
        return self._log_send_results(results, event)

    async def _emit_to_sink(self, sink: AlertSink, event: AlertEvent) -> Dict[str, Any]:
        """向单个告警输出发送事件"""
        try:
            await sink.emit(event)
            return {'sink': sink.name, 'success': True, 'error': None}
        except Exception as e:
            self.logger.error(f"告警输出 {sink.name} 发送失败: {e}")
            return {'sink': sink.name, 'success': False, 'error': str(e)}

    def _log_send_results(self, results: List[Dict[str, Any]], event: AlertEvent) -> int:
        """记录发送结果"""
        success_count = sum(1 for result in results if result['success'])
        failed_sinks = [result['sink'] for result in results if not result['success']]

        if success_count > 0:
            self.logger.info(
                f"告警发送成功 {success_count}/{len(results)} 个告警输出 "
                f"(目标: {event.transition.target}, 状态: {event.status})"
            )
        if failed_sinks:
            self.logger.warning(
                f"以下告警输出发送失败: {', '.join(failed_sinks)} "
                f"(目标: {event.transition.target})"
            )
        return success_count
