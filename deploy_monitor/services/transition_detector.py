"""失败状态变化检测

比较当前快照与上一次快照，只在健康/不健康分类发生变化时产生 Transition，
持续不健康不会重复告警。
"""

from typing import Dict, List, Optional, Tuple

from ..models.health_check import (HealthSnapshot, HealthState, ResultKey,
                                   TrackedState, Transition, classify)
from ..utils.log_manager import get_logger


def _state_text(state: HealthState) -> str:
    return {HealthState.HEALTHY: '健康', HealthState.UNHEALTHY: '不健康'}.get(state, '未知')


class FailureTransitionDetector:
    """状态变化检测器

    failure_threshold 为 N 时，连续 N 次不健康才确认为不健康；
    恢复在第一次健康时立即确认。默认 N=1 即立即按状态变化告警。
    """

    def __init__(self, failure_threshold: int = 1):
        """初始化检测器

        Args:
            failure_threshold: 确认不健康所需的连续失败次数
        """
        if not isinstance(failure_threshold, int) or failure_threshold < 1:
            raise ValueError("failure_threshold 必须是正整数")

        self.failure_threshold = failure_threshold
        self.logger = get_logger('transition_detector')

    def diff(self, current: HealthSnapshot,
             previous: Optional[HealthSnapshot]) -> List[Transition]:
        """比较两次快照

        Args:
            current: 当前快照
            previous: 上一次快照，None表示没有历史数据

        Returns:
            按 (目标, 路径) 排序的状态变化列表
        """
        return self.evaluate(current, previous)[1]

    def evaluate(self, current: HealthSnapshot,
                 previous: Optional[HealthSnapshot]
                 ) -> Tuple[HealthSnapshot, List[Transition]]:
        """计算当前快照的确认状态并检测状态变化

        Returns:
            (带确认状态的当前快照, 状态变化列表)
        """
        states: Dict[ResultKey, TrackedState] = {}
        transitions: List[Transition] = []
        results = {key: current.results[key] for key in current.observed_keys()}

        for key in sorted(current.abandoned):
            # 本轮没有观测值：沿用上一次的结果和确认状态，不产生状态变化
            if previous is not None and key in previous:
                results[key] = previous.results[key]
                states[key] = previous.tracked(key)
            self.logger.info(f"{key[0]} {key[1]} 本轮未完成探测，保持上一次状态")

        for key in current.observed_keys():
            result = current.results[key]
            observed = classify(result)

            if previous is None or key not in previous:
                # 没有历史数据时只建立基线
                tracked = self._baseline(observed)
                states[key] = tracked
                self.logger.info(
                    f"{key[0]} {key[1]} 初始状态: {_state_text(tracked.state)}")
                continue

            prior = previous.tracked(key)
            tracked = self._advance(prior, observed)
            states[key] = tracked

            if prior.state is HealthState.UNKNOWN or tracked.state == prior.state:
                continue

            transition = Transition(
                target=result.target,
                path=result.path,
                from_state=prior.state,
                to_state=tracked.state,
                occurred_at_utc=result.timestamp_utc,
                detail=self._detail(result, tracked)
            )
            transitions.append(transition)
            self.logger.warning(
                f"{result.target} {result.path} 状态变化: "
                f"{_state_text(prior.state)} -> {_state_text(tracked.state)}"
            )

        evaluated = HealthSnapshot.from_results(results.values(),
                                                taken_at_utc=current.taken_at_utc,
                                                partial=current.partial,
                                                abandoned=current.abandoned,
                                                states=states)
        return evaluated, transitions

    def _baseline(self, observed: HealthState) -> TrackedState:
        if observed is HealthState.HEALTHY:
            return TrackedState(HealthState.HEALTHY, 0)
        if self.failure_threshold <= 1:
            return TrackedState(HealthState.UNHEALTHY, 1)
        return TrackedState(HealthState.UNKNOWN, 1)

    def _advance(self, prior: TrackedState, observed: HealthState) -> TrackedState:
        if observed is HealthState.HEALTHY:
            return TrackedState(HealthState.HEALTHY, 0)

        failures = prior.consecutive_failures + 1
        if failures >= self.failure_threshold:
            return TrackedState(HealthState.UNHEALTHY, failures)
        # 未达到阈值，保持原确认状态
        return TrackedState(prior.state, failures)

    @staticmethod
    def _detail(result, tracked: TrackedState) -> str:
        if tracked.state is HealthState.HEALTHY:
            status = f"HTTP {result.http_status}" if result.http_status else "OK"
            return f"{status}, {result.latency_ms}ms"

        detail = f"{result.outcome.value}: {result.describe_failure()}"
        if tracked.consecutive_failures > 1:
            detail += f" (连续失败 {tracked.consecutive_failures} 次)"
        return detail
