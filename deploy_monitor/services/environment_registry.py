"""环境注册表

启动时从配置加载一次，之后只读。
"""

from types import MappingProxyType
from typing import Any, Dict, Iterable, Iterator, Mapping, Tuple

from ..models.health_check import EnvironmentTarget
from ..utils.config_validator import is_http_url
from ..utils.exceptions import ConfigError, TargetNotFoundError
from ..utils.log_manager import get_logger

DEFAULT_HEALTH_PATHS = ('/api/health',)


class EnvironmentRegistry:
    """环境名称到 EnvironmentTarget 的只读映射，保持配置中的顺序"""

    def __init__(self, targets: Iterable[EnvironmentTarget]):
        """
        初始化注册表并校验所有目标

        Args:
            targets: 监控目标列表

        Raises:
            ConfigError: 目标重名、缺少后端地址或健康路径
        """
        ordered = tuple(targets)
        by_name: Dict[str, EnvironmentTarget] = {}
        for target in ordered:
            self._validate_target(target)
            if target.name in by_name:
                raise ConfigError(f"监控目标重名: {target.name}")
            by_name[target.name] = target

        self._targets = ordered
        self._by_name = MappingProxyType(by_name)
        self.logger = get_logger('registry')
        self.logger.debug(f"环境注册表已加载 {len(ordered)} 个目标: "
                          f"{', '.join(by_name) or '无'}")

    @classmethod
    def from_config(cls, targets_config: Mapping[str, Mapping[str, Any]]) -> 'EnvironmentRegistry':
        """
        由 targets 配置段构建注册表

        Args:
            targets_config: 目标名称到目标配置的映射

        Returns:
            EnvironmentRegistry: 注册表实例

        Raises:
            ConfigError: 配置格式错误
        """
        if not isinstance(targets_config, Mapping):
            raise ConfigError("targets配置必须是字典类型")

        targets = []
        for name, config in targets_config.items():
            if not isinstance(config, Mapping):
                raise ConfigError(f"目标 '{name}' 的配置必须是字典类型")
            health_paths = config.get('health_paths') or DEFAULT_HEALTH_PATHS
            targets.append(EnvironmentTarget(
                name=str(name),
                backend_base_url=config.get('backend_url', ''),
                health_paths=tuple(health_paths),
                frontend_base_url=config.get('frontend_url'),
                frontend_paths=tuple(config.get('frontend_paths') or ()),
                description=config.get('description')
            ))
        return cls(targets)

    @staticmethod
    def _validate_target(target: EnvironmentTarget) -> None:
        if not target.name:
            raise ConfigError("监控目标名称不能为空")
        if not is_http_url(target.backend_base_url):
            raise ConfigError(
                f"目标 '{target.name}' 缺少有效的后端地址: {target.backend_base_url!r}")
        if not target.health_paths:
            raise ConfigError(f"目标 '{target.name}' 至少需要一个健康检查路径")
        if target.frontend_base_url is not None and not is_http_url(target.frontend_base_url):
            raise ConfigError(
                f"目标 '{target.name}' 的前端地址无效: {target.frontend_base_url!r}")
        for path in target.health_paths + target.frontend_paths:
            if not isinstance(path, str) or not path.startswith('/'):
                raise ConfigError(f"目标 '{target.name}' 的路径必须以 '/' 开头: {path!r}")

    def list_targets(self) -> Tuple[EnvironmentTarget, ...]:
        """按配置顺序返回所有目标"""
        return self._targets

    def get_target(self, name: str) -> EnvironmentTarget:
        """
        按名称查找目标

        Raises:
            TargetNotFoundError: 目标不存在
        """
        try:
            return self._by_name[name]
        except KeyError:
            raise TargetNotFoundError(name) from None

    def endpoint_count(self) -> int:
        return sum(len(target.endpoints()) for target in self._targets)

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def __iter__(self) -> Iterator[EnvironmentTarget]:
        return iter(self._targets)

    def __len__(self) -> int:
        return len(self._targets)
