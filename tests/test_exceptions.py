"""异常类测试"""

from deploy_monitor.utils.exceptions import (
    AlertConfigError, AlertError, AlertSendError, ConfigError, ErrorCode, MonitorError,
    SchedulerError, SnapshotPersistError, SnapshotStoreError, TargetNotFoundError
)


class TestMonitorError:
    """基础异常测试"""

    def test_defaults(self):
        error = MonitorError("出错了")
        assert str(error) == "出错了"
        assert error.error_code == ErrorCode.UNKNOWN_ERROR
        assert error.details == {}
        assert error.recoverable is True
        assert error.cause is None

    def test_to_dict_with_cause(self):
        try:
            raise ValueError("底层错误")
        except ValueError as cause:
            error = MonitorError("包装错误", ErrorCode.VALIDATION_ERROR,
                                 details={'field': 'x'}, cause=cause)

        data = error.to_dict()
        assert data['error_code'] == ErrorCode.VALIDATION_ERROR.value
        assert data['error_name'] == 'VALIDATION_ERROR'
        assert data['details'] == {'field': 'x'}
        assert data['cause'] == '底层错误'
        assert 'ValueError' in data['traceback']

    def test_format_error(self):
        error = MonitorError("包装错误", details={'a': 1}, cause=RuntimeError("boom"))
        formatted = error.format_error()
        assert formatted.startswith('[UNKNOWN_ERROR] 包装错误')
        assert 'a=1' in formatted
        assert 'boom' in formatted


class TestSubclasses:
    """异常子类测试"""

    def test_config_error(self):
        error = ConfigError("配置无效", config_path='config.yaml')
        assert isinstance(error, MonitorError)
        assert error.error_code == ErrorCode.CONFIG_VALIDATION_ERROR
        assert error.details == {'config_path': 'config.yaml'}
        assert error.recoverable is False

    def test_config_error_merges_details(self):
        error = ConfigError("配置无效", ErrorCode.CONFIG_PARSE_ERROR,
                            config_path='config.yaml', details={'line': 3})
        assert error.details == {'line': 3, 'config_path': 'config.yaml'}

    def test_target_not_found(self):
        error = TargetNotFoundError('production')
        assert error.target_name == 'production'
        assert error.error_code == ErrorCode.TARGET_NOT_FOUND
        assert 'production' in error.message

    def test_alert_errors(self):
        config_error = AlertConfigError("缺少url", sink_name='hook')
        send_error = AlertSendError("发送失败", sink_name='hook')
        assert isinstance(config_error, AlertError)
        assert config_error.error_code == ErrorCode.ALERT_CONFIG_ERROR
        assert config_error.recoverable is False
        assert send_error.error_code == ErrorCode.ALERT_SEND_ERROR
        assert send_error.recoverable is True
        assert send_error.details == {'sink_name': 'hook'}

    def test_scheduler_error(self):
        error = SchedulerError("运行失败", error_code=ErrorCode.RUN_EXECUTION_ERROR)
        assert error.error_code == ErrorCode.RUN_EXECUTION_ERROR

    def test_snapshot_persist_error(self):
        error = SnapshotPersistError("写入失败", snapshot_path='/tmp/snapshot.json')
        assert isinstance(error, SnapshotStoreError)
        assert error.error_code == ErrorCode.SNAPSHOT_PERSIST_ERROR
        assert error.details == {'snapshot_path': '/tmp/snapshot.json'}
