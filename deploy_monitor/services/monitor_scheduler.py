"""监控调度器模块

负责执行单轮监控（采集、比较、告警、保存）以及按固定间隔循环运行。
"""

import asyncio
import time
from typing import Optional

from .environment_registry import EnvironmentRegistry
from .snapshot_collector import SnapshotCollector
from .snapshot_store import SnapshotStore
from .transition_detector import FailureTransitionDetector
from ..alerts.manager import AlertDispatcher
from ..models.health_check import RunSummary
from ..utils.exceptions import ErrorCode, MonitorError, SchedulerError
from ..utils.log_manager import get_logger


class MonitorScheduler:
    """监控调度器

    同一时刻最多只有一轮监控在运行；循环模式下上一轮未结束时跳过本次触发。
    """

    def __init__(self, registry: EnvironmentRegistry, collector: SnapshotCollector,
                 store: SnapshotStore, detector: FailureTransitionDetector,
                 dispatcher: AlertDispatcher):
        """初始化监控调度器

        Args:
            registry: 监控目标注册表
            collector: 快照采集器
            store: 快照存储
            detector: 状态变化检测器
            dispatcher: 告警分发器
        """
        self.registry = registry
        self.collector = collector
        self.store = store
        self.detector = detector
        self.dispatcher = dispatcher

        self.run_count = 0
        self.skipped_ticks = 0
        self.last_summary: Optional[RunSummary] = None
        self.logger = get_logger('monitor_scheduler')

        self._run_lock = asyncio.Lock()
        self._stop_event: Optional[asyncio.Event] = None
        self._current_run: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        """是否处于循环运行状态"""
        return self._stop_event is not None and not self._stop_event.is_set()

    @property
    def run_in_flight(self) -> bool:
        return self._run_lock.locked()

    async def run_once(self) -> RunSummary:
        """执行一轮监控

        Returns:
            RunSummary: 本轮汇总

        Raises:
            SchedulerError: 本轮无法完成，快照文件保持不变
        """
        async with self._run_lock:
            started = time.monotonic()
            try:
                previous = self.store.load_previous()
                snapshot = await self.collector.take_snapshot(self.registry.list_targets())
                snapshot, transitions = self.detector.evaluate(snapshot, previous)
            except asyncio.CancelledError:
                raise
            except MonitorError:
                raise
            except Exception as e:
                self.logger.error(f"监控运行失败: {e}")
                raise SchedulerError(f"监控运行失败: {e}",
                                     error_code=ErrorCode.RUN_EXECUTION_ERROR, cause=e)

            events = await self.dispatcher.dispatch(transitions)
            persisted = self.store.save(snapshot)

            summary = RunSummary(
                taken_at_utc=snapshot.taken_at_utc,
                healthy=snapshot.healthy_count,
                unhealthy=snapshot.unhealthy_count,
                transitions=transitions,
                alerts_sent=len(events),
                partial=snapshot.partial,
                persisted=persisted,
                duration_ms=int((time.monotonic() - started) * 1000),
                snapshot=snapshot,
                abandoned=len(snapshot.abandoned)
            )
            self.run_count += 1
            self.last_summary = summary

            self.logger.info(
                f"第 {self.run_count} 轮监控完成: 健康 {summary.healthy}/{summary.total}, "
                f"状态变化 {len(transitions)} 个, 耗时 {summary.duration_ms}ms"
            )
            if summary.partial:
                self.logger.warning(
                    f"本轮快照不完整，{summary.abandoned} 个探测因超出时间预算被放弃")
            return summary

    async def run_forever(self, interval_ms: int, max_runs: Optional[int] = None):
        """按固定间隔循环运行

        Args:
            interval_ms: 触发间隔（毫秒）
            max_runs: 最多触发次数，None表示直到 stop() 被调用
        """
        if interval_ms <= 0:
            raise ValueError("interval_ms 必须是正整数")

        self._stop_event = asyncio.Event()
        ticks = 0
        self.logger.info(f"启动循环监控，间隔 {interval_ms}ms")

        try:
            while not self._stop_event.is_set():
                if max_runs is not None and ticks >= max_runs:
                    break
                ticks += 1
                self._tick()

                try:
                    await asyncio.wait_for(self._stop_event.wait(), interval_ms / 1000)
                except asyncio.TimeoutError:
                    pass
        finally:
            if self._current_run is not None and not self._current_run.done():
                await asyncio.gather(self._current_run, return_exceptions=True)
            self._stop_event.set()
            self.logger.info(
                f"循环监控已停止: 运行 {self.run_count} 轮, 跳过 {self.skipped_ticks} 次")

    def _tick(self):
        """触发一轮监控；上一轮仍在运行时跳过"""
        if self._current_run is not None and not self._current_run.done():
            self.skipped_ticks += 1
            self.logger.warning("上一轮监控尚未结束，跳过本次触发")
            return

        self._current_run = asyncio.create_task(self._run_tick())

    async def _run_tick(self):
        try:
            await self.run_once()
        except MonitorError as e:
            self.logger.error(f"监控运行出错: {e.format_error()}")
        except Exception as e:
            self.logger.error(f"监控运行出现未预期的错误: {e}")

    async def stop(self):
        """停止循环运行"""
        if self._stop_event is not None:
            self.logger.info("正在停止监控调度器...")
            self._stop_event.set()
