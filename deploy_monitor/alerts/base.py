"""告警输出接口

告警输出只需要具备 ``name`` 属性和异步 ``emit`` 方法，不要求继承任何基类；
普通函数可以通过 CallbackSink 接入。
"""

import inspect
from typing import (Any, Awaitable, Callable, Dict, Optional, Protocol, Union,
                    runtime_checkable)

from ..models.health_check import AlertEvent

AlertCallback = Callable[[AlertEvent], Union[None, Awaitable[None]]]


@runtime_checkable
class AlertSink(Protocol):
    """告警输出协议"""

    name: str

    async def emit(self, event: AlertEvent) -> None:
        """输出一条告警事件，失败时抛出异常由调用方记录"""
        ...


class CallbackSink:
    """将同步或异步回调函数包装为告警输出"""

    def __init__(self, callback: AlertCallback, name: Optional[str] = None):
        self.callback = callback
        self.name = name or getattr(callback, '__name__', 'callback')

    async def emit(self, event: AlertEvent) -> None:
        outcome = self.callback(event)
        if inspect.isawaitable(outcome):
            await outcome


def template_variables(event: AlertEvent) -> Dict[str, Any]:
    """告警模板中可用的变量"""
    transition = event.transition
    return {
        'target': transition.target,
        'path': transition.path,
        'status': event.status,
        'severity': event.severity.value,
        'from_state': transition.from_state.value,
        'to_state': transition.to_state.value,
        'timestamp': transition.occurred_at_utc.strftime('%Y-%m-%d %H:%M:%S UTC'),
        'detail': transition.detail or '无',
        'message': event.message
    }


def render_template(template_str: str, event: AlertEvent, escape_json: bool = False) -> str:
    """
    渲染消息模板

    使用 ``{{variable}}`` 语法进行字符串替换。

    Args:
        template_str: 模板字符串
        event: 告警事件
        escape_json: 是否对变量值做JSON字符串转义

    Returns:
        str: 渲染后的消息
    """
    rendered = template_str
    for key, value in template_variables(event).items():
        safe_value = str(value)
        if escape_json:
            safe_value = (safe_value.replace('\\', '\\\\')
                          .replace('"', '\\"')
                          .replace('\n', '\\n')
                          .replace('\r', '\\r')
                          .replace('\t', '\\t'))
        rendered = rendered.replace(f'{{{{{key}}}}}', safe_value)
    return rendered
