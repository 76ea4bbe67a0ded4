"""快照存储模块

只保存最近一次快照，作为下一轮比较的"上一次快照"。
"""

import json
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..models.health_check import (HealthSnapshot, HealthState, ProbeOutcome,
                                   ProbeResult, TrackedState)
from ..utils.exceptions import SnapshotPersistError
from ..utils.log_manager import get_logger


def snapshot_to_dict(snapshot: HealthSnapshot) -> Dict[str, Any]:
    """将快照转换为可持久化的字典"""
    results: List[Dict[str, Any]] = []
    for key in snapshot.sorted_keys():
        result = snapshot.results[key]
        tracked = snapshot.tracked(key)
        results.append({
            'target': result.target,
            'path': result.path,
            'outcome': result.outcome.value,
            'httpStatus': result.http_status,
            'latencyMs': result.latency_ms,
            'timestampUtc': result.timestamp_utc.isoformat(),
            'errorMessage': result.error_message,
            'state': tracked.state.value,
            'consecutiveFailures': tracked.consecutive_failures
        })

    return {
        'takenAtUtc': snapshot.taken_at_utc.isoformat(),
        'partial': snapshot.partial,
        'abandoned': [{'target': target, 'path': path}
                      for target, path in sorted(snapshot.abandoned)],
        'results': results
    }


def snapshot_from_dict(data: Dict[str, Any]) -> HealthSnapshot:
    """
    由持久化字典还原快照

    Raises:
        KeyError, TypeError, ValueError: 数据格式不正确
    """
    if not isinstance(data, dict) or not isinstance(data.get('results'), list):
        raise ValueError("快照文件缺少 results 列表")

    results = []
    states = {}
    for item in data['results']:
        result = ProbeResult(
            target=item['target'],
            path=item['path'],
            outcome=ProbeOutcome(item['outcome']),
            latency_ms=int(item['latencyMs']),
            timestamp_utc=datetime.fromisoformat(item['timestampUtc']),
            http_status=item.get('httpStatus'),
            error_message=item.get('errorMessage')
        )
        results.append(result)
        if 'state' in item:
            states[result.key] = TrackedState(
                state=HealthState(item['state']),
                consecutive_failures=int(item.get('consecutiveFailures', 0))
            )

    return HealthSnapshot.from_results(
        results,
        taken_at_utc=datetime.fromisoformat(data['takenAtUtc']),
        partial=bool(data.get('partial', False)),
        abandoned=[(item['target'], item['path']) for item in data.get('abandoned', [])],
        states=states
    )


class SnapshotStore:
    """快照存储

    读取失败时返回None，写入失败时记录日志并返回False，
    两者都不会中断监控运行。
    """

    def __init__(self, path: str):
        """初始化快照存储

        Args:
            path: 快照JSON文件路径
        """
        self.path = path
        self.logger = get_logger('snapshot_store')

    def load_previous(self) -> Optional[HealthSnapshot]:
        """加载上一次快照

        Returns:
            上一次快照；文件不存在或内容损坏时返回None
        """
        if not os.path.exists(self.path):
            self.logger.info(f"快照文件不存在，本轮将建立基线: {self.path}")
            return None

        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
            snapshot = snapshot_from_dict(data)
        except (OSError, json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            self.logger.warning(f"快照文件无法读取，按无历史数据处理: {self.path}: {e}")
            return None

        self.logger.debug(f"从 {self.path} 加载了 {len(snapshot)} 条探测结果")
        return snapshot

    def save(self, snapshot: HealthSnapshot) -> bool:
        """保存快照

        先写入同目录临时文件再原子替换，不会留下写了一半的快照文件。

        Returns:
            是否保存成功
        """
        try:
            self._write_atomic(snapshot_to_dict(snapshot))
        except SnapshotPersistError as e:
            self.logger.error(f"保存快照失败: {e.format_error()}")
            return False

        self.logger.debug(f"快照已保存到 {self.path}")
        return True

    def _write_atomic(self, data: Dict[str, Any]) -> None:
        """
        原子写入JSON文件

        Raises:
            SnapshotPersistError: 写入失败
        """
        tmp_path = None
        try:
            directory = Path(self.path).parent
            directory.mkdir(parents=True, exist_ok=True)

            fd, tmp_path = tempfile.mkstemp(prefix='.snapshot-', suffix='.tmp',
                                            dir=str(directory))
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
            tmp_path = None
        except (OSError, TypeError, ValueError) as e:
            raise SnapshotPersistError(f"写入快照文件失败: {e}", snapshot_path=self.path,
                                       cause=e)
        finally:
            if tmp_path and os.path.exists(tmp_path):
                os.unlink(tmp_path)
