"""数据模型模块"""

from .health_check import (
    EXIT_FAULT, EXIT_HEALTHY, EXIT_UNHEALTHY,
    AlertEvent, AlertSeverity, EnvironmentTarget, HealthSnapshot, HealthState,
    ProbeOutcome, ProbeResult, RunSummary, TrackedState, Transition, classify
)

__all__ = ['EXIT_FAULT', 'EXIT_HEALTHY', 'EXIT_UNHEALTHY',
           'AlertEvent', 'AlertSeverity', 'EnvironmentTarget', 'HealthSnapshot',
           'HealthState', 'ProbeOutcome', 'ProbeResult', 'RunSummary',
           'TrackedState', 'Transition', 'classify']
