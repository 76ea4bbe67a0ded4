"""控制台告警输出"""

import sys
from typing import Any, Dict, Optional, TextIO

from .base import render_template
from ..models.health_check import AlertEvent, AlertSeverity

DEFAULT_CONSOLE_TEMPLATE = "{{timestamp}} {{message}}"


class ConsoleAlertSink:
    """将告警写到标准输出"""

    def __init__(self, name: str, config: Optional[Dict[str, Any]] = None,
                 stream: Optional[TextIO] = None):
        config = config or {}
        self.name = name
        self.template = config.get('template', DEFAULT_CONSOLE_TEMPLATE)
        self.stream = stream

    async def emit(self, event: AlertEvent) -> None:
        icon = '🚨' if event.severity is AlertSeverity.CRITICAL else '✅'
        stream = self.stream or sys.stdout
        stream.write(f"{icon} {render_template(self.template, event)}\n")
        stream.flush()
