"""配置验证工具"""

from typing import Dict, Any
from urllib.parse import urlparse

from .exceptions import ConfigError

VALID_LOG_LEVELS = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']


def is_http_url(url: Any) -> bool:
    """判断是否为带主机名的http/https绝对地址"""
    if not isinstance(url, str) or not url:
        return False
    parsed = urlparse(url)
    return parsed.scheme in ('http', 'https') and bool(parsed.netloc)


class ConfigValidator:
    """配置验证器"""

    # 全局配置中必须为正整数的毫秒/数量字段
    POSITIVE_INT_FIELDS = [
        'check_interval_ms', 'timeout_ms', 'max_concurrent_probes',
        'failure_threshold', 'run_timeout_ms'
    ]
    NON_NEGATIVE_INT_FIELDS = ['max_retries', 'retry_delay_ms']

    @staticmethod
    def validate_global_config(global_config: Dict[str, Any]) -> None:
        """
        验证全局配置

        Args:
            global_config: 全局配置

        Raises:
            ConfigError: 配置验证失败
        """
        if not isinstance(global_config, dict):
            raise ConfigError("全局配置必须是字典类型")

        for field in ConfigValidator.POSITIVE_INT_FIELDS:
            value = global_config.get(field)
            if value is None:
                continue
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise ConfigError(f"{field} 必须是正整数")

        for field in ConfigValidator.NON_NEGATIVE_INT_FIELDS:
            value = global_config.get(field)
            if value is None:
                continue
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise ConfigError(f"{field} 必须是非负整数")

        log_level = global_config.get('log_level')
        if log_level is not None and str(log_level).upper() not in VALID_LOG_LEVELS:
            raise ConfigError(f"log_level 必须是以下值之一: {VALID_LOG_LEVELS}")

    @staticmethod
    def validate_target_config(target_name: str, config: Dict[str, Any]) -> None:
        """
        验证单个监控目标配置

        Args:
            target_name: 目标名称
            config: 目标配置

        Raises:
            ConfigError: 配置验证失败
        """
        if not isinstance(config, dict):
            raise ConfigError(f"目标 '{target_name}' 的配置必须是字典类型")

        if not is_http_url(config.get('backend_url')):
            raise ConfigError(
                f"目标 '{target_name}' 的 backend_url 必须是有效的 http/https 地址")

        frontend_url = config.get('frontend_url')
        if frontend_url is not None and not is_http_url(frontend_url):
            raise ConfigError(
                f"目标 '{target_name}' 的 frontend_url 必须是有效的 http/https 地址")

        for field in ('health_paths', 'frontend_paths'):
            paths = config.get(field)
            if paths is None:
                continue
            if not isinstance(paths, list):
                raise ConfigError(f"目标 '{target_name}' 的 {field} 必须是列表类型")
            for path in paths:
                if not isinstance(path, str) or not path.startswith('/'):
                    raise ConfigError(
                        f"目标 '{target_name}' 的路径必须以 '/' 开头: {path!r}")

        if config.get('frontend_paths') and not frontend_url:
            raise ConfigError(
                f"目标 '{target_name}' 配置了 frontend_paths 但缺少 frontend_url")

    @staticmethod
    def validate_alert_config(alert_config: Dict[str, Any]) -> None:
        """
        验证告警配置

        Args:
            alert_config: 告警配置

        Raises:
            ConfigError: 配置验证失败
        """
        if not isinstance(alert_config, dict):
            raise ConfigError("告警配置必须是字典类型")

        required_fields = ['name', 'type']
        for field in required_fields:
            if field not in alert_config:
                raise ConfigError(f"告警配置缺少必需的配置项: {field}")

        alert_type = str(alert_config['type']).lower()
        if alert_type in ('http', 'webhook') and not is_http_url(alert_config.get('url')):
            raise ConfigError(
                f"告警 '{alert_config['name']}' 的 url 必须是有效的 http/https 地址")
        if alert_type == 'file' and not alert_config.get('path'):
            raise ConfigError(f"告警 '{alert_config['name']}' 缺少 path 配置")
