"""状态变化检测测试"""

from datetime import datetime, timedelta, timezone

import pytest

from deploy_monitor.models.health_check import (HealthSnapshot, HealthState, ProbeOutcome,
                                                ProbeResult, TrackedState)
from deploy_monitor.services.transition_detector import FailureTransitionDetector

T0 = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
KEY = ('staging', '/api/health')


def snapshot_of(*outcomes, minute=0):
    """按 (目标, 路径, 结果) 构建快照"""
    results = []
    for target, path, outcome in outcomes:
        status = 200 if outcome is ProbeOutcome.SUCCESS else (
            503 if outcome is ProbeOutcome.HTTP_ERROR else None)
        results.append(ProbeResult(target, path, outcome, 10,
                                   timestamp_utc=T0 + timedelta(minutes=minute),
                                   http_status=status))
    return HealthSnapshot.from_results(results, taken_at_utc=T0 + timedelta(minutes=minute))


def single(outcome, minute=0):
    return snapshot_of(('staging', '/api/health', outcome), minute=minute)


OK = ProbeOutcome.SUCCESS
DOWN = ProbeOutcome.HTTP_ERROR


class TestFailureTransitionDetector:
    """默认阈值（立即按状态变化告警）测试"""

    def setup_method(self):
        self.detector = FailureTransitionDetector()

    def test_invalid_threshold(self):
        with pytest.raises(ValueError):
            FailureTransitionDetector(0)

    def test_baseline_produces_no_transitions(self):
        current = snapshot_of(('staging', '/api/health', DOWN),
                              ('production', '/api/health', OK))
        assert self.detector.diff(current, None) == []

    def test_new_key_is_baseline(self):
        previous = single(OK)
        current = snapshot_of(('staging', '/api/health', OK),
                              ('production', '/api/health', DOWN), minute=1)
        assert self.detector.diff(current, previous) == []

    def test_unchanged_state_produces_nothing(self):
        assert self.detector.diff(single(OK, 1), single(OK)) == []
        assert self.detector.diff(single(DOWN, 1), single(DOWN)) == []

    def test_healthy_to_unhealthy(self):
        transitions = self.detector.diff(single(DOWN, 1), single(OK))
        assert len(transitions) == 1
        transition = transitions[0]
        assert (transition.target, transition.path) == KEY
        assert transition.from_state is HealthState.HEALTHY
        assert transition.to_state is HealthState.UNHEALTHY
        assert transition.occurred_at_utc == T0 + timedelta(minutes=1)
        assert 'HTTP 503' in transition.detail

    def test_unhealthy_to_healthy(self):
        transitions = self.detector.diff(single(OK, 1), single(ProbeOutcome.TIMEOUT))
        assert len(transitions) == 1
        assert transitions[0].to_state is HealthState.HEALTHY
        assert transitions[0].is_recovery

    def test_failure_kinds_are_equivalent(self):
        """不同失败类型之间切换不算状态变化"""
        for before, after in [(DOWN, ProbeOutcome.TIMEOUT),
                              (ProbeOutcome.NETWORK_ERROR, DOWN)]:
            assert self.detector.diff(single(after, 1), single(before)) == []

    def test_transitions_sorted(self):
        previous = snapshot_of(('b', '/x', OK), ('a', '/y', OK), ('a', '/x', OK))
        current = snapshot_of(('b', '/x', DOWN), ('a', '/y', DOWN), ('a', '/x', DOWN),
                              minute=1)
        keys = [(t.target, t.path) for t in self.detector.diff(current, previous)]
        assert keys == [('a', '/x'), ('a', '/y'), ('b', '/x')]

    def test_key_missing_from_current_is_ignored(self):
        previous = snapshot_of(('staging', '/api/health', OK), ('gone', '/api/health', OK))
        assert self.detector.diff(single(OK, 1), previous) == []

    def test_evaluate_annotates_states(self):
        annotated, _ = self.detector.evaluate(single(DOWN), None)
        assert annotated.states[KEY] == TrackedState(HealthState.UNHEALTHY, 1)


class TestFailureThreshold:
    """连续失败阈值测试"""

    def run_sequence(self, detector, outcomes):
        previous = None
        all_transitions = []
        for minute, outcome in enumerate(outcomes):
            current, transitions = detector.evaluate(single(outcome, minute), previous)
            all_transitions.append(transitions)
            previous = current
        return previous, all_transitions

    def test_down_after_threshold(self):
        detector = FailureTransitionDetector(failure_threshold=3)
        final, transitions = self.run_sequence(detector, [OK, DOWN, DOWN, DOWN, DOWN])

        assert [len(t) for t in transitions] == [0, 0, 0, 1, 0]
        assert transitions[3][0].to_state is HealthState.UNHEALTHY
        assert '连续失败 3 次' in transitions[3][0].detail
        assert final.states[KEY] == TrackedState(HealthState.UNHEALTHY, 4)

    def test_flapping_below_threshold_is_silent(self):
        detector = FailureTransitionDetector(failure_threshold=2)
        _, transitions = self.run_sequence(detector, [OK, DOWN, OK, DOWN, OK])
        assert all(t == [] for t in transitions)

    def test_recovery_is_immediate(self):
        detector = FailureTransitionDetector(failure_threshold=2)
        _, transitions = self.run_sequence(detector, [OK, DOWN, DOWN, OK])
        assert [len(t) for t in transitions] == [0, 0, 1, 1]
        assert transitions[3][0].is_recovery

    def test_unhealthy_baseline_below_threshold_is_unknown(self):
        """基线不健康且未达阈值时状态未知，恢复不告警"""
        detector = FailureTransitionDetector(failure_threshold=2)
        final, transitions = self.run_sequence(detector, [DOWN, OK])
        assert all(t == [] for t in transitions)
        assert final.states[KEY] == TrackedState(HealthState.HEALTHY, 0)

    def test_unknown_confirmed_silently_then_recovers(self):
        detector = FailureTransitionDetector(failure_threshold=2)
        final, transitions = self.run_sequence(detector, [DOWN, DOWN, OK])
        assert [len(t) for t in transitions] == [0, 0, 1]
        assert transitions[2][0].from_state is HealthState.UNHEALTHY
        assert final.states[KEY] == TrackedState(HealthState.HEALTHY, 0)


class TestAbandonedKeys:
    """本轮未完成探测的键"""

    def setup_method(self):
        self.detector = FailureTransitionDetector()

    @staticmethod
    def abandoned_run(*observed, abandoned=(KEY,), minute=1):
        snapshot = snapshot_of(*observed, minute=minute)
        return HealthSnapshot.from_results(snapshot.results.values(),
                                           taken_at_utc=snapshot.taken_at_utc,
                                           abandoned=abandoned)

    def test_abandoned_key_never_transitions(self):
        previous = single(OK)
        annotated, transitions = self.detector.evaluate(self.abandoned_run(), previous)

        assert transitions == []
        assert annotated.partial
        assert annotated.results[KEY] == previous.results[KEY]
        assert annotated.states[KEY] == TrackedState(HealthState.HEALTHY, 0)
        assert annotated.unhealthy_count == 0

    def test_carried_state_is_compared_next_run(self):
        previous = single(OK)
        annotated, _ = self.detector.evaluate(self.abandoned_run(), previous)

        assert self.detector.diff(single(OK, 2), annotated) == []
        transitions = self.detector.diff(single(DOWN, 2), annotated)
        assert [(t.from_state, t.to_state) for t in transitions] == \
            [(HealthState.HEALTHY, HealthState.UNHEALTHY)]

    def test_failure_counter_is_not_advanced(self):
        detector = FailureTransitionDetector(failure_threshold=2)
        first, _ = detector.evaluate(single(OK, 1), single(OK))
        second, _ = detector.evaluate(single(DOWN, 2), first)
        assert second.states[KEY] == TrackedState(HealthState.HEALTHY, 1)

        third, transitions = detector.evaluate(self.abandoned_run(minute=3), second)
        assert transitions == []
        assert third.states[KEY] == TrackedState(HealthState.HEALTHY, 1)

    def test_abandoned_without_history_is_left_out(self):
        other = ('production', '/api/health', OK)
        annotated, transitions = self.detector.evaluate(self.abandoned_run(other), None)

        assert transitions == []
        assert KEY not in annotated
        assert annotated.abandoned == {KEY}
        assert ('production', '/api/health') in annotated
