"""配置管理器"""

import os
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

import yaml

from .environment_registry import EnvironmentRegistry
from ..checkers.http_prober import DEFAULT_USER_AGENT
from ..utils.config_validator import ConfigValidator
from ..utils.exceptions import ConfigError, ErrorCode
from ..utils.log_manager import get_logger

ENV_TARGET_PREFIX = 'MONITOR_TARGET_'

# 环境变量后缀 -> 目标配置字段
ENV_TARGET_FIELDS = {
    'BACKEND_URL': 'backend_url',
    'FRONTEND_URL': 'frontend_url',
    'HEALTH_PATHS': 'health_paths',
    'FRONTEND_PATHS': 'frontend_paths',
}


@dataclass(frozen=True)
class MonitorSettings:
    """监控运行参数，时间单位均为毫秒"""
    check_interval_ms: int = 60000
    timeout_ms: int = 5000
    max_retries: int = 2
    retry_delay_ms: int = 1000
    max_concurrent_probes: int = 5
    failure_threshold: int = 1
    run_timeout_ms: Optional[int] = None
    state_file: str = 'logs/deployment-health-snapshot.json'
    user_agent: str = DEFAULT_USER_AGENT

    @classmethod
    def from_global_config(cls, global_config: Mapping[str, Any]) -> 'MonitorSettings':
        defaults = cls()
        values = {}
        for name in cls.__dataclass_fields__:
            value = global_config.get(name)
            values[name] = getattr(defaults, name) if value is None else value
        return cls(**values)


def _split_paths(value: str) -> List[str]:
    return [part.strip() for part in value.split(',') if part.strip()]


def targets_from_environ(environ: Mapping[str, str]) -> Dict[str, Dict[str, Any]]:
    """
    从环境变量读取监控目标

    例如 ``MONITOR_TARGET_STAGING_BACKEND_URL=https://...`` 定义名为
    ``staging`` 的目标；名称中的下划线转换为连字符。

    Args:
        environ: 环境变量映射

    Returns:
        目标名称到目标配置的字典
    """
    targets: Dict[str, Dict[str, Any]] = {}
    for key in sorted(environ):
        if not key.startswith(ENV_TARGET_PREFIX):
            continue
        rest = key[len(ENV_TARGET_PREFIX):]
        for suffix, field in ENV_TARGET_FIELDS.items():
            if not rest.endswith(f'_{suffix}'):
                continue
            raw_name = rest[:-len(suffix) - 1]
            if not raw_name:
                break
            name = raw_name.lower().replace('_', '-')
            value = environ[key]
            if field.endswith('_paths'):
                value = _split_paths(value)
            targets.setdefault(name, {})[field] = value
            break
    return targets


class ConfigManager:
    """配置管理器，负责YAML配置文件和环境变量的加载、合并与验证"""

    def __init__(self, config_path: Optional[str] = None,
                 environ: Optional[Mapping[str, str]] = None):
        """
        初始化配置管理器

        Args:
            config_path: YAML配置文件路径，为None时只使用环境变量
            environ: 环境变量映射，默认读取 os.environ
        """
        self.config_path = config_path
        self.environ = os.environ if environ is None else environ
        self.config: Dict[str, Any] = {}
        self.logger = get_logger('config_manager')

    def load_config(self) -> Dict[str, Any]:
        """
        加载配置文件并合并环境变量中的目标

        Returns:
            Dict[str, Any]: 配置字典，包含 global、targets、alerts 三段

        Raises:
            ConfigError: 配置加载或验证失败
        """
        config = self._read_file() if self.config_path else {}

        config.setdefault('global', {})
        config.setdefault('targets', {})
        config.setdefault('alerts', [])
        for section in ('global', 'targets'):
            if config[section] is None:
                config[section] = {}
        if config['alerts'] is None:
            config['alerts'] = []

        if not isinstance(config['targets'], dict):
            raise ConfigError("targets配置必须是字典类型", config_path=self.config_path)

        env_targets = targets_from_environ(self.environ)
        for name, env_config in env_targets.items():
            merged = dict(config['targets'].get(name) or {})
            merged.update(env_config)
            config['targets'][name] = merged
            self.logger.info(f"从环境变量加载监控目标: {name}")

        self._validate_config(config)

        if not config['targets']:
            raise ConfigError("未配置任何监控目标", config_path=self.config_path)

        self.logger.info(
            f"配置验证成功，包含 {len(config['targets'])} 个监控目标和 "
            f"{len(config['alerts'])} 个告警配置")

        self.config = config
        return self.config

    def _read_file(self) -> Dict[str, Any]:
        """读取并解析YAML配置文件"""
        self.logger.info(f"开始加载配置文件: {self.config_path}")

        if not os.path.exists(self.config_path):
            raise ConfigError(f"配置文件不存在: {self.config_path}",
                              ErrorCode.CONFIG_FILE_NOT_FOUND,
                              config_path=self.config_path)
        try:
            with open(self.config_path, 'r', encoding='utf-8') as file:
                config = yaml.safe_load(file)
        except yaml.YAMLError as e:
            raise ConfigError(f"YAML格式错误: {e}", ErrorCode.CONFIG_PARSE_ERROR,
                              config_path=self.config_path, cause=e)
        except OSError as e:
            raise ConfigError(f"读取配置文件失败: {e}", ErrorCode.CONFIG_FILE_NOT_FOUND,
                              config_path=self.config_path, cause=e)

        if config is None:
            raise ConfigError("配置文件为空", ErrorCode.CONFIG_PARSE_ERROR,
                              config_path=self.config_path)
        if not isinstance(config, dict):
            raise ConfigError("配置文件根节点必须是字典类型",
                              config_path=self.config_path)
        return config

    def _validate_config(self, config: Dict[str, Any]) -> None:
        """
        验证配置内容

        Raises:
            ConfigError: 配置验证失败
        """
        ConfigValidator.validate_global_config(config['global'])

        for target_name, target_config in config['targets'].items():
            ConfigValidator.validate_target_config(target_name, target_config)

        if not isinstance(config['alerts'], list):
            raise ConfigError("alerts配置必须是列表类型", config_path=self.config_path)
        for alert_config in config['alerts']:
            ConfigValidator.validate_alert_config(alert_config)

    def get_global_config(self) -> Dict[str, Any]:
        return self.config.get('global', {})

    def get_targets_config(self) -> Dict[str, Any]:
        return self.config.get('targets', {})

    def get_alerts_config(self) -> List[Dict[str, Any]]:
        return self.config.get('alerts', [])

    def get_settings(self) -> MonitorSettings:
        """返回全局配置对应的运行参数"""
        return MonitorSettings.from_global_config(self.get_global_config())

    def build_registry(self) -> EnvironmentRegistry:
        """
        构建环境注册表

        Raises:
            ConfigError: 目标配置无效
        """
        return EnvironmentRegistry.from_config(self.get_targets_config())
