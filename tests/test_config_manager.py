"""配置管理器测试"""

import pytest
import yaml

from deploy_monitor.services.config_manager import (ConfigManager, MonitorSettings,
                                                    targets_from_environ)
from deploy_monitor.utils.exceptions import ConfigError, ErrorCode


def write_config(tmp_path, config, name='config.yaml'):
    path = tmp_path / name
    path.write_text(yaml.safe_dump(config, allow_unicode=True), encoding='utf-8')
    return str(path)


VALID_CONFIG = {
    'global': {'timeout_ms': 3000, 'max_retries': 1, 'failure_threshold': 2},
    'targets': {
        'staging': {
            'backend_url': 'https://staging.example.com',
            'health_paths': ['/api/health']
        }
    },
    'alerts': [{'name': 'console', 'type': 'console'}]
}


class TestTargetsFromEnviron:
    """环境变量目标测试"""

    def test_reads_targets(self):
        targets = targets_from_environ({
            'MONITOR_TARGET_STAGING_BACKEND_URL': 'https://staging.example.com',
            'MONITOR_TARGET_STAGING_HEALTH_PATHS': '/api/health, /api/v2/health',
            'MONITOR_TARGET_PROD_EU_BACKEND_URL': 'https://eu.example.com',
            'MONITOR_TARGET_PROD_EU_FRONTEND_URL': 'https://web-eu.example.com',
            'MONITOR_TARGET_PROD_EU_FRONTEND_PATHS': '/',
            'PATH': '/usr/bin'
        })
        assert targets == {
            'staging': {
                'backend_url': 'https://staging.example.com',
                'health_paths': ['/api/health', '/api/v2/health']
            },
            'prod-eu': {
                'backend_url': 'https://eu.example.com',
                'frontend_url': 'https://web-eu.example.com',
                'frontend_paths': ['/']
            }
        }

    def test_ignores_unknown_suffix(self):
        assert targets_from_environ({'MONITOR_TARGET_STAGING_TOKEN': 'x'}) == {}
        assert targets_from_environ({'MONITOR_TARGET__BACKEND_URL': 'x'}) == {}


class TestMonitorSettings:
    """运行参数测试"""

    def test_defaults(self):
        settings = MonitorSettings.from_global_config({})
        assert settings.check_interval_ms == 60000
        assert settings.timeout_ms == 5000
        assert settings.max_retries == 2
        assert settings.max_concurrent_probes == 5
        assert settings.failure_threshold == 1
        assert settings.run_timeout_ms is None

    def test_overrides_and_ignores_unknown_keys(self):
        settings = MonitorSettings.from_global_config(
            {'timeout_ms': 100, 'log_level': 'DEBUG', 'run_timeout_ms': None})
        assert settings.timeout_ms == 100
        assert settings.run_timeout_ms is None


class TestConfigManager:
    """配置管理器测试"""

    def test_load_valid_config(self, tmp_path):
        manager = ConfigManager(write_config(tmp_path, VALID_CONFIG), environ={})
        config = manager.load_config()

        assert list(config['targets']) == ['staging']
        assert manager.get_alerts_config() == [{'name': 'console', 'type': 'console'}]
        settings = manager.get_settings()
        assert settings.timeout_ms == 3000
        assert settings.failure_threshold == 2

        registry = manager.build_registry()
        assert registry.get_target('staging').health_paths == ('/api/health',)

    def test_missing_file(self, tmp_path):
        manager = ConfigManager(str(tmp_path / 'missing.yaml'), environ={})
        with pytest.raises(ConfigError) as exc_info:
            manager.load_config()
        assert exc_info.value.error_code == ErrorCode.CONFIG_FILE_NOT_FOUND

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / 'bad.yaml'
        path.write_text('targets: [unclosed', encoding='utf-8')
        with pytest.raises(ConfigError) as exc_info:
            ConfigManager(str(path), environ={}).load_config()
        assert exc_info.value.error_code == ErrorCode.CONFIG_PARSE_ERROR

    def test_empty_file(self, tmp_path):
        path = tmp_path / 'empty.yaml'
        path.write_text('', encoding='utf-8')
        with pytest.raises(ConfigError):
            ConfigManager(str(path), environ={}).load_config()

    def test_root_must_be_mapping(self, tmp_path):
        path = tmp_path / 'list.yaml'
        path.write_text('- a\n- b\n', encoding='utf-8')
        with pytest.raises(ConfigError):
            ConfigManager(str(path), environ={}).load_config()

    def test_no_targets(self, tmp_path):
        path = write_config(tmp_path, {'global': {}, 'targets': {}})
        with pytest.raises(ConfigError, match='未配置任何监控目标'):
            ConfigManager(path, environ={}).load_config()

    def test_invalid_global_value(self, tmp_path):
        config = dict(VALID_CONFIG, **{'global': {'timeout_ms': 0}})
        with pytest.raises(ConfigError):
            ConfigManager(write_config(tmp_path, config), environ={}).load_config()

    def test_env_only_config(self):
        manager = ConfigManager(None, environ={
            'MONITOR_TARGET_STAGING_BACKEND_URL': 'https://staging.example.com'})
        config = manager.load_config()
        assert config['targets'] == {'staging': {'backend_url': 'https://staging.example.com'}}
        assert config['alerts'] == []

    def test_env_overrides_file_target(self, tmp_path):
        manager = ConfigManager(write_config(tmp_path, VALID_CONFIG), environ={
            'MONITOR_TARGET_STAGING_BACKEND_URL': 'https://override.example.com'})
        config = manager.load_config()
        assert config['targets']['staging'] == {
            'backend_url': 'https://override.example.com',
            'health_paths': ['/api/health']
        }

    def test_null_sections(self, tmp_path):
        path = tmp_path / 'nulls.yaml'
        path.write_text('global:\nalerts:\ntargets:\n  staging:\n'
                        '    backend_url: https://staging.example.com\n',
                        encoding='utf-8')
        config = ConfigManager(str(path), environ={}).load_config()
        assert config['global'] == {}
        assert config['alerts'] == []

    def test_invalid_alert_config(self, tmp_path):
        config = dict(VALID_CONFIG, alerts=[{'name': 'hook', 'type': 'webhook'}])
        with pytest.raises(ConfigError):
            ConfigManager(write_config(tmp_path, config), environ={}).load_config()
