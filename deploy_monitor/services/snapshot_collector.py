"""健康快照采集

并发探测所有 (目标, 路径) 并汇总为一个 HealthSnapshot。
"""

import asyncio
import time
from typing import Dict, Iterable, List, Optional, Tuple

from ..checkers.http_prober import HttpProber
from ..models.health_check import (EnvironmentTarget, HealthSnapshot, ProbeOutcome,
                                   ProbeResult, ResultKey, utc_now)
from ..utils.log_manager import get_logger

RUN_BUDGET_EXCEEDED = "超出本轮检查时间预算，探测已放弃"


class SnapshotCollector:
    """快照采集器

    探测任务之间互不影响：单个探测超时或异常只影响自己的结果。
    """

    def __init__(self, prober: HttpProber, timeout_ms: int = 5000,
                 max_retries: int = 2, max_concurrent_probes: int = 5,
                 run_timeout_ms: Optional[int] = None):
        """
        初始化快照采集器

        Args:
            prober: HTTP探测器
            timeout_ms: 单次探测超时（毫秒）
            max_retries: 单个端点的最大重试次数
            max_concurrent_probes: 同时进行的最大探测数量
            run_timeout_ms: 整轮检查的时间上限，None表示按探测预算自动计算
        """
        if max_concurrent_probes <= 0:
            raise ValueError("max_concurrent_probes 必须是正整数")
        if run_timeout_ms is not None and run_timeout_ms <= 0:
            raise ValueError("run_timeout_ms 必须是正整数")

        self.prober = prober
        self.timeout_ms = timeout_ms
        self.max_retries = max_retries
        self.max_concurrent_probes = max_concurrent_probes
        self.run_timeout_ms = run_timeout_ms
        self.logger = get_logger('snapshot_collector')

    def probe_budget_ms(self) -> int:
        """单个端点在最坏情况下需要的时间（毫秒）"""
        return (self.timeout_ms * (self.max_retries + 1)
                + getattr(self.prober, 'retry_delay_ms', 0) * self.max_retries)

    def run_budget_ms(self, endpoint_count: int) -> int:
        """
        整轮检查的时间上限

        未显式配置时取所有探测预算之和的两倍。
        """
        if self.run_timeout_ms is not None:
            return self.run_timeout_ms
        return 2 * self.probe_budget_ms() * max(endpoint_count, 1)

    async def take_snapshot(self, targets: Iterable[EnvironmentTarget]) -> HealthSnapshot:
        """
        探测所有目标的所有端点

        Args:
            targets: 监控目标

        Returns:
            HealthSnapshot: 本轮快照；超出整轮预算时未完成的键记录在 abandoned 中
        """
        taken_at = utc_now()
        endpoints: List[Tuple[ResultKey, str]] = [
            ((target.name, path_key), url)
            for target in targets
            for path_key, url in target.endpoints()
        ]
        if not endpoints:
            self.logger.warning("没有可探测的端点")
            return HealthSnapshot.from_results([], taken_at_utc=taken_at)

        semaphore = asyncio.Semaphore(self.max_concurrent_probes)
        tasks: Dict[ResultKey, asyncio.Task] = {
            key: asyncio.create_task(self._probe_endpoint(semaphore, key, url))
            for key, url in endpoints
        }

        budget_ms = self.run_budget_ms(len(endpoints))
        started = time.monotonic()
        self.logger.debug(f"开始采集快照: {len(endpoints)} 个端点, 并发上限 "
                          f"{self.max_concurrent_probes}, 时间预算 {budget_ms}ms")

        try:
            _, pending = await asyncio.wait(tasks.values(), timeout=budget_ms / 1000)
        except asyncio.CancelledError:
            for task in tasks.values():
                task.cancel()
            raise

        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            self.logger.error(
                f"快照采集超出时间预算 {budget_ms}ms，{len(pending)} 个探测被放弃")

        elapsed_ms = int((time.monotonic() - started) * 1000)
        results = []
        abandoned = []
        for key, task in tasks.items():
            target_name, path = key
            if task in pending or task.cancelled():
                # 未完成的探测没有观测值，不能当作失败结果参与比较
                abandoned.append(key)
                self.logger.warning(f"{target_name} {path}: {RUN_BUDGET_EXCEEDED}")
            elif task.exception() is not None:
                error = task.exception()
                self.logger.error(f"探测 {target_name} {path} 时发生异常: {error}")
                results.append(ProbeResult(
                    target=target_name, path=path,
                    outcome=ProbeOutcome.NETWORK_ERROR,
                    latency_ms=elapsed_ms,
                    timestamp_utc=taken_at,
                    error_message=f"探测异常: {error}"
                ))
            else:
                results.append(task.result())

        return HealthSnapshot.from_results(results, taken_at_utc=taken_at,
                                           abandoned=abandoned)

    async def _probe_endpoint(self, semaphore: asyncio.Semaphore, key: ResultKey,
                              url: str) -> ProbeResult:
        """在并发上限内探测一个端点"""
        target_name, path = key
        async with semaphore:
            return await self.prober.probe(url, self.timeout_ms, self.max_retries,
                                           target=target_name, path=path)


async def take_snapshot(targets: Iterable[EnvironmentTarget], prober: HttpProber,
                        **options) -> HealthSnapshot:
    """
    便捷函数：使用给定探测器采集一次快照

    Args:
        targets: 监控目标
        prober: HTTP探测器
        **options: 传给 SnapshotCollector 的参数
    """
    return await SnapshotCollector(prober, **options).take_snapshot(targets)
