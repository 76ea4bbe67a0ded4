"""告警分发器测试"""

from datetime import datetime, timezone

import pytest

from deploy_monitor.alerts.base import AlertSink, CallbackSink, render_template
from deploy_monitor.alerts.manager import AlertDispatcher
from deploy_monitor.models.health_check import AlertSeverity, HealthState, Transition
from deploy_monitor.utils.exceptions import AlertConfigError

T0 = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def down(target='staging', path='/api/health'):
    return Transition(target, path, HealthState.HEALTHY, HealthState.UNHEALTHY, T0,
                      detail='HttpError: HTTP 503')


def recovered(target='staging', path='/api/health'):
    return Transition(target, path, HealthState.UNHEALTHY, HealthState.HEALTHY, T0,
                      detail='HTTP 200, 35ms')


class RecordingSink:
    """记录收到的告警事件"""

    def __init__(self, name='recorder', fail=False):
        self.name = name
        self.fail = fail
        self.events = []

    async def emit(self, event):
        self.events.append(event)
        if self.fail:
            raise RuntimeError("告警输出故障")


class TestAlertSinkProtocol:
    """告警输出协议测试"""

    def test_duck_typed_sink_matches_protocol(self):
        assert isinstance(RecordingSink(), AlertSink)

    def test_object_without_emit_rejected(self):
        dispatcher = AlertDispatcher()
        with pytest.raises(AlertConfigError):
            dispatcher.add_sink("not a sink")

    @pytest.mark.asyncio
    async def test_callback_sink_sync_and_async(self):
        received = []

        def sync_callback(event):
            received.append(('sync', event.status))

        async def async_callback(event):
            received.append(('async', event.status))

        dispatcher = AlertDispatcher()
        dispatcher.add_callback(sync_callback)
        dispatcher.add_callback(async_callback, name='async-hook')
        assert dispatcher.get_sink_names() == ['sync_callback', 'async-hook']

        await dispatcher.dispatch([down()])
        assert sorted(received) == [('async', 'DOWN'), ('sync', 'DOWN')]

    def test_callback_sink_is_sink(self):
        assert isinstance(CallbackSink(lambda event: None, 'cb'), AlertSink)


class TestCreateAlertEvent:
    """告警事件生成测试"""

    def test_down_is_critical(self):
        event = AlertDispatcher.create_alert_event(down())
        assert event.severity is AlertSeverity.CRITICAL
        assert event.status == 'DOWN'
        assert 'DOWN' in event.message
        assert 'staging' in event.message and '/api/health' in event.message

    def test_recovery_is_warning_and_distinguishable(self):
        down_event = AlertDispatcher.create_alert_event(down())
        up_event = AlertDispatcher.create_alert_event(recovered())
        assert up_event.severity is AlertSeverity.WARNING
        assert up_event.status == 'RECOVERED'
        assert 'RECOVERED' in up_event.message
        assert 'DOWN' not in up_event.message
        assert up_event.message != down_event.message


class TestDispatch:
    """告警分发测试"""

    @pytest.mark.asyncio
    async def test_one_event_per_transition_to_every_sink(self):
        first, second = RecordingSink('first'), RecordingSink('second')
        dispatcher = AlertDispatcher([first, second])
        events = await dispatcher.dispatch([down('a'), recovered('b')])

        assert len(events) == 2
        assert [e.transition.target for e in first.events] == ['a', 'b']
        assert [e.transition.target for e in second.events] == ['a', 'b']

    @pytest.mark.asyncio
    async def test_no_transitions_no_events(self):
        sink = RecordingSink()
        assert await AlertDispatcher([sink]).dispatch([]) == []
        assert sink.events == []

    @pytest.mark.asyncio
    async def test_failing_sink_does_not_affect_others(self):
        broken, healthy = RecordingSink('broken', fail=True), RecordingSink('healthy')
        dispatcher = AlertDispatcher([broken, healthy])

        events = await dispatcher.dispatch([down()])
        assert len(events) == 1
        assert len(healthy.events) == 1
        assert await dispatcher.emit(events[0]) == 1

    @pytest.mark.asyncio
    async def test_no_sinks(self):
        dispatcher = AlertDispatcher()
        events = await dispatcher.dispatch([down()])
        assert len(events) == 1
        assert await dispatcher.emit(events[0]) == 0

    def test_remove_sink(self):
        dispatcher = AlertDispatcher([RecordingSink('a'), RecordingSink('b')])
        assert dispatcher.remove_sink('a') is True
        assert dispatcher.remove_sink('missing') is False
        assert dispatcher.get_sink_names() == ['b']


class TestRenderTemplate:
    """模板渲染测试"""

    def test_variables(self):
        event = AlertDispatcher.create_alert_event(down())
        rendered = render_template('{{status}} {{target}}{{path}} {{from_state}}->'
                                   '{{to_state}} {{severity}} {{timestamp}}', event)
        assert rendered == ('DOWN staging/api/health Healthy->Unhealthy Critical '
                            '2025-01-01 12:00:00 UTC')

    def test_json_escape(self):
        transition = Transition('staging', '/api/health', HealthState.HEALTHY,
                                HealthState.UNHEALTHY, T0, detail='line1\n"quoted"')
        event = AlertDispatcher.create_alert_event(transition)
        assert render_template('{{detail}}', event, escape_json=True) == \
            'line1\\n\\"quoted\\"'
