"""文件告警输出

以 JSON Lines 格式追加写入告警审计日志，每条告警一行。
"""

import asyncio
import json
from pathlib import Path
from typing import Any, Dict

from ..models.health_check import AlertEvent
from ..utils.exceptions import AlertConfigError, AlertSendError
from ..utils.log_manager import get_logger


def event_to_record(event: AlertEvent) -> Dict[str, Any]:
    transition = event.transition
    return {
        'timestamp': transition.occurred_at_utc.isoformat(),
        'target': transition.target,
        'path': transition.path,
        'status': event.status,
        'severity': event.severity.value,
        'fromState': transition.from_state.value,
        'toState': transition.to_state.value,
        'detail': transition.detail,
        'message': event.message
    }


class FileAlertSink:
    """追加写入的告警日志文件"""

    def __init__(self, name: str, config: Dict[str, Any]):
        self.name = name
        self.path = config.get('path', '')
        if not self.path:
            raise AlertConfigError(f"文件告警输出 {name} 缺少 path 配置", sink_name=name)
        self.logger = get_logger(f'alerts.file.{name}')
        self._lock = asyncio.Lock()

    async def emit(self, event: AlertEvent) -> None:
        line = json.dumps(event_to_record(event), ensure_ascii=False)
        async with self._lock:
            try:
                self._append(line)
            except OSError as e:
                raise AlertSendError(f"写入告警日志失败: {e}", sink_name=self.name,
                                     cause=e)
        self.logger.debug(f"告警已写入 {self.path}")

    def _append(self, line: str) -> None:
        path = Path(self.path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'a', encoding='utf-8') as f:
            f.write(line + '\n')
