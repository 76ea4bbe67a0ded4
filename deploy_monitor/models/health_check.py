"""健康检查相关的数据模型"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple

# 退出码约定：CI/CD 依赖这三个值区分"服务故障"与"监控自身故障"
EXIT_HEALTHY = 0
EXIT_UNHEALTHY = 1
EXIT_FAULT = 2

FRONTEND_PATH_PREFIX = 'frontend:'

# 健康响应体中用于诊断展示的可选字段
DIAGNOSTIC_FIELDS = ('environment', 'status', 'service', 'version')

ResultKey = Tuple[str, str]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def join_url(base_url: str, path: str) -> str:
    """拼接基础地址和路径，避免出现重复或缺失的斜杠"""
    return f"{base_url.rstrip('/')}/{path.lstrip('/')}"


class ProbeOutcome(Enum):
    """单次探测结果分类"""
    SUCCESS = "Success"
    HTTP_ERROR = "HttpError"
    NETWORK_ERROR = "NetworkError"
    TIMEOUT = "Timeout"


class HealthState(Enum):
    """健康状态（二元分类，UNKNOWN 仅表示尚无确认状态）"""
    HEALTHY = "Healthy"
    UNHEALTHY = "Unhealthy"
    UNKNOWN = "Unknown"


class AlertSeverity(Enum):
    """告警级别"""
    WARNING = "Warning"
    CRITICAL = "Critical"


@dataclass(frozen=True)
class EnvironmentTarget:
    """被监控的部署环境"""
    name: str
    backend_base_url: str
    health_paths: Tuple[str, ...]
    frontend_base_url: Optional[str] = None
    frontend_paths: Tuple[str, ...] = ()
    description: Optional[str] = None

    def endpoints(self) -> List[Tuple[str, str]]:
        """返回该环境所有探测端点的 (路径键, 完整URL) 列表

        前端端点的路径键带 ``frontend:`` 前缀，保证同一目标内路径键唯一。
        """
        endpoints = [(path, join_url(self.backend_base_url, path))
                     for path in self.health_paths]
        if self.frontend_base_url:
            endpoints.extend(
                (f'{FRONTEND_PATH_PREFIX}{path}', join_url(self.frontend_base_url, path))
                for path in self.frontend_paths
            )
        return endpoints


@dataclass(frozen=True)
class ProbeResult:
    """单次探测结果，创建后不可变"""
    target: str
    path: str
    outcome: ProbeOutcome
    latency_ms: int
    timestamp_utc: datetime = field(default_factory=utc_now)
    http_status: Optional[int] = None
    parsed_body: Optional[Any] = None
    error_message: Optional[str] = None
    attempts: int = 1

    @property
    def key(self) -> ResultKey:
        return self.target, self.path

    @property
    def is_healthy(self) -> bool:
        return self.outcome is ProbeOutcome.SUCCESS

    def diagnostics(self) -> Dict[str, Any]:
        """提取响应体中的诊断字段，字段缺失时返回空字典"""
        if not isinstance(self.parsed_body, dict):
            return {}
        return {name: self.parsed_body[name] for name in DIAGNOSTIC_FIELDS
                if name in self.parsed_body}

    def describe_failure(self) -> str:
        if self.is_healthy:
            return ''
        if self.error_message:
            return self.error_message
        if self.http_status is not None:
            return f"HTTP {self.http_status}"
        return self.outcome.value


def classify(result: ProbeResult) -> HealthState:
    """将探测结果归类为健康或不健康，不存在第三种状态"""
    return HealthState.HEALTHY if result.is_healthy else HealthState.UNHEALTHY


@dataclass(frozen=True)
class TrackedState:
    """某个 (目标, 路径) 的确认状态及连续失败次数"""
    state: HealthState
    consecutive_failures: int = 0


@dataclass(frozen=True)
class HealthSnapshot:
    """一次监控运行的全部探测结果

    abandoned 记录因超出整轮时间预算而未完成探测的键。这些键没有本轮观测值，
    results 中若存在对应条目，则是从上一次快照沿用的结果。
    """
    taken_at_utc: datetime
    results: Mapping[ResultKey, ProbeResult]
    states: Mapping[ResultKey, TrackedState] = field(default_factory=dict)
    partial: bool = False
    abandoned: FrozenSet[ResultKey] = frozenset()

    @classmethod
    def from_results(cls, results: Iterable[ProbeResult],
                     taken_at_utc: Optional[datetime] = None,
                     partial: bool = False,
                     abandoned: Iterable[ResultKey] = (),
                     states: Optional[Mapping[ResultKey, TrackedState]] = None
                     ) -> 'HealthSnapshot':
        """由探测结果列表构建快照

        Raises:
            ValueError: 同一 (目标, 路径) 出现多个结果
        """
        mapping: Dict[ResultKey, ProbeResult] = {}
        for result in results:
            if result.key in mapping:
                raise ValueError(f"快照中存在重复的探测键: {result.key}")
            mapping[result.key] = result
        abandoned = frozenset(abandoned)
        return cls(taken_at_utc=taken_at_utc or utc_now(),
                   results=MappingProxyType(mapping),
                   states=MappingProxyType(dict(states or {})),
                   partial=partial or bool(abandoned),
                   abandoned=abandoned)

    def __contains__(self, key: ResultKey) -> bool:
        return key in self.results

    def __len__(self) -> int:
        return len(self.results)

    def sorted_keys(self) -> List[ResultKey]:
        return sorted(self.results)

    def tracked(self, key: ResultKey) -> TrackedState:
        """返回某键的确认状态；旧格式快照没有记录时按原始结果推导"""
        if key in self.states:
            return self.states[key]
        result = self.results[key]
        return TrackedState(classify(result), 0 if result.is_healthy else 1)

    def observed_keys(self) -> List[ResultKey]:
        """本轮实际完成探测的键"""
        return [key for key in self.sorted_keys() if key not in self.abandoned]

    @property
    def healthy_count(self) -> int:
        return sum(1 for key in self.observed_keys() if self.results[key].is_healthy)

    @property
    def unhealthy_count(self) -> int:
        return len(self.observed_keys()) - self.healthy_count


@dataclass(frozen=True)
class Transition:
    """两次快照之间某键的健康状态变化"""
    target: str
    path: str
    from_state: HealthState
    to_state: HealthState
    occurred_at_utc: datetime = field(default_factory=utc_now)
    detail: str = ''

    @property
    def is_recovery(self) -> bool:
        return self.to_state is HealthState.HEALTHY


@dataclass(frozen=True)
class AlertEvent:
    """告警事件"""
    transition: Transition
    severity: AlertSeverity
    message: str

    @property
    def status(self) -> str:
        return "RECOVERED" if self.transition.is_recovery else "DOWN"


@dataclass
class RunSummary:
    """一次监控运行的汇总"""
    taken_at_utc: datetime
    healthy: int
    unhealthy: int
    transitions: List[Transition] = field(default_factory=list)
    alerts_sent: int = 0
    partial: bool = False
    persisted: bool = True
    duration_ms: int = 0
    snapshot: Optional[HealthSnapshot] = None
    abandoned: int = 0

    @property
    def total(self) -> int:
        return self.healthy + self.unhealthy + self.abandoned

    @property
    def exit_code(self) -> int:
        """观测到不健康端点为1；否则有端点未完成探测时为2（监控未能完成本轮检查）"""
        if self.unhealthy > 0:
            return EXIT_UNHEALTHY
        if self.abandoned > 0:
            return EXIT_FAULT
        return EXIT_HEALTHY

    def to_dict(self) -> Dict[str, Any]:
        return {
            'taken_at_utc': self.taken_at_utc.isoformat(),
            'healthy': self.healthy,
            'unhealthy': self.unhealthy,
            'transitions': len(self.transitions),
            'alerts_sent': self.alerts_sent,
            'partial': self.partial,
            'abandoned': self.abandoned,
            'persisted': self.persisted,
            'duration_ms': self.duration_ms,
            'exit_code': self.exit_code
        }
