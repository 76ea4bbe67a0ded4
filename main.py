#!/usr/bin/env python3
"""
部署健康监控主程序入口

组装各组件，提供单次检查、循环监控、配置验证和告警测试等命令，
并处理信号实现优雅关闭。
"""

import argparse
import asyncio
import logging
import os
import signal
import sys
from typing import Any, Dict, List, Optional

from deploy_monitor.alerts.factory import alert_sink_factory
from deploy_monitor.alerts.manager import AlertDispatcher
from deploy_monitor.checkers.http_prober import HttpProber
from deploy_monitor.models.health_check import (EXIT_FAULT, EXIT_HEALTHY, EXIT_UNHEALTHY,
                                                HealthState, RunSummary, Transition,
                                                utc_now)
from deploy_monitor.services.config_manager import ConfigManager, MonitorSettings
from deploy_monitor.services.environment_registry import EnvironmentRegistry
from deploy_monitor.services.monitor_scheduler import MonitorScheduler
from deploy_monitor.services.snapshot_collector import SnapshotCollector
from deploy_monitor.services.snapshot_store import SnapshotStore
from deploy_monitor.services.transition_detector import FailureTransitionDetector
from deploy_monitor.utils.exceptions import ConfigError, MonitorError
from deploy_monitor.utils.log_manager import get_logger, log_manager

# 版本信息
__version__ = "1.0.0"

COMMANDS = ('check', 'watch', 'list-targets', 'validate', 'test-alerts')

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class DeploymentMonitorApp:
    """部署健康监控主应用程序类"""

    def __init__(self, config_path: Optional[str] = None,
                 overrides: Optional[Dict[str, Any]] = None,
                 environ: Optional[Dict[str, str]] = None):
        """初始化应用程序

        Args:
            config_path: 配置文件路径，None表示只使用环境变量中的目标
            overrides: 命令行覆盖的全局配置项
            environ: 环境变量映射，默认读取 os.environ
        """
        self.config_path = config_path
        self.overrides = {k: v for k, v in (overrides or {}).items() if v is not None}
        self.environ = environ
        self.logger: Optional[logging.Logger] = None
        self.shutdown_event: Optional[asyncio.Event] = None

        self.config_manager: Optional[ConfigManager] = None
        self.settings: Optional[MonitorSettings] = None
        self.registry: Optional[EnvironmentRegistry] = None
        self.dispatcher: Optional[AlertDispatcher] = None
        self.scheduler: Optional[MonitorScheduler] = None

    def initialize(self):
        """加载配置并创建所有组件

        Raises:
            ConfigError: 配置无效
            AlertConfigError: 告警配置无效
        """
        self.config_manager = ConfigManager(self.config_path, environ=self.environ)
        config = self.config_manager.load_config()
        config['global'].update(self.overrides)

        self._configure_logging(config['global'])
        self.logger = get_logger('main')
        self.logger.info("开始初始化部署健康监控")

        self.settings = self.config_manager.get_settings()
        self.registry = self.config_manager.build_registry()

        prober = HttpProber(retry_delay_ms=self.settings.retry_delay_ms,
                            user_agent=self.settings.user_agent)
        collector = SnapshotCollector(
            prober,
            timeout_ms=self.settings.timeout_ms,
            max_retries=self.settings.max_retries,
            max_concurrent_probes=self.settings.max_concurrent_probes,
            run_timeout_ms=self.settings.run_timeout_ms
        )
        store = SnapshotStore(self.settings.state_file)
        detector = FailureTransitionDetector(self.settings.failure_threshold)

        sinks = alert_sink_factory.create_sinks(self.config_manager.get_alerts_config())
        self.dispatcher = AlertDispatcher(sinks)

        self.scheduler = MonitorScheduler(self.registry, collector, store, detector,
                                          self.dispatcher)
        self.logger.info(
            f"初始化完成: {len(self.registry)} 个目标, {self.registry.endpoint_count()} 个端点, "
            f"{len(sinks)} 个告警输出")

    @staticmethod
    def _configure_logging(global_config: Dict[str, Any]):
        """配置日志系统"""
        log_config = {
            'log_level': global_config.get('log_level', 'INFO'),
            'log_file': global_config.get('log_file'),
            'enable_console': True
        }
        if 'max_log_size' in global_config:
            log_config['max_file_size'] = global_config['max_log_size']
        if 'log_backup_count' in global_config:
            log_config['backup_count'] = global_config['log_backup_count']
        log_manager.configure(log_config)

    async def run_once(self) -> RunSummary:
        return await self.scheduler.run_once()

    async def start(self, interval_ms: Optional[int] = None):
        """循环运行直到收到关闭信号"""
        interval_ms = interval_ms or self.settings.check_interval_ms
        if self.shutdown_event is None:
            self.shutdown_event = asyncio.Event()

        watch_task = asyncio.create_task(self.scheduler.run_forever(interval_ms))
        shutdown_task = asyncio.create_task(self.shutdown_event.wait())
        try:
            await asyncio.wait({watch_task, shutdown_task},
                               return_when=asyncio.FIRST_COMPLETED)
        finally:
            await self.scheduler.stop()
            shutdown_task.cancel()
            await asyncio.gather(watch_task, shutdown_task, return_exceptions=True)
            self.logger.info("部署健康监控已停止")

    def shutdown(self):
        """触发应用程序关闭"""
        if self.logger:
            self.logger.info("收到关闭信号")
        if self.shutdown_event is None:
            # 在 start() 之前收到信号时同样生效
            self.shutdown_event = asyncio.Event()
        self.shutdown_event.set()


# 全局应用程序实例
app: Optional[DeploymentMonitorApp] = None


def signal_handler(signum: int):
    """信号处理器，在事件循环中执行"""
    signal_name = signal.Signals(signum).name
    print(f"\n收到信号 {signal_name} ({signum})")

    if app:
        app.shutdown()


def install_signal_handlers(loop: asyncio.AbstractEventLoop):
    """注册关闭信号处理器

    由事件循环直接处理信号，收到信号后立即唤醒循环，不必等到下一次触发。
    """
    for sig in SHUTDOWN_SIGNALS:
        try:
            loop.add_signal_handler(sig, signal_handler, sig)
        except NotImplementedError:
            # Windows 事件循环不支持 add_signal_handler
            signal.signal(sig, lambda signum, frame: loop.call_soon_threadsafe(
                signal_handler, signum))


def remove_signal_handlers(loop: asyncio.AbstractEventLoop):
    for sig in SHUTDOWN_SIGNALS:
        try:
            loop.remove_signal_handler(sig)
        except NotImplementedError:
            signal.signal(sig, signal.SIG_DFL)


def positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"必须是正整数: {value}")
    if number <= 0:
        raise argparse.ArgumentTypeError(f"必须是正整数: {value}")
    return number


def create_argument_parser() -> argparse.ArgumentParser:
    """创建命令行参数解析器"""
    parser = argparse.ArgumentParser(
        prog='monitor',
        description='部署健康监控 - 探测各环境健康端点，在状态变化时发送告警',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
示例用法:
  %(prog)s check -f config/example.yaml     # 执行一次检查
  %(prog)s --continuous                     # 循环监控直到 Ctrl+C
  %(prog)s list-targets                     # 列出监控目标
  %(prog)s validate -f config.yaml          # 验证配置文件
  %(prog)s test-alerts -f config.yaml       # 发送测试告警

退出码: 0 全部健康, 1 存在不健康端点, 2 监控自身故障
配置文件格式请参考 config/example.yaml
        """
    )

    parser.add_argument('command', nargs='?', choices=COMMANDS, help='要执行的命令，默认 check')
    parser.add_argument('--once', '-o', dest='once', action='store_true',
                        help='执行一次检查后退出（等同于 check）')
    parser.add_argument('--continuous', '-c', dest='continuous', action='store_true',
                        help='循环监控（等同于 watch）')
    parser.add_argument('--config', '-f', dest='config_file',
                        help='YAML配置文件路径，默认读取环境变量 MONITOR_CONFIG')
    parser.add_argument('--interval', type=positive_int, help='循环监控间隔（毫秒）')
    parser.add_argument('--state-file', help='快照文件路径（覆盖配置文件设置）')
    parser.add_argument('--log-level', choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
                        help='设置日志级别（覆盖配置文件设置）')
    parser.add_argument('--log-file', help='日志文件路径（覆盖配置文件设置）')
    parser.add_argument('--version', '-v', action='version', version=f'%(prog)s {__version__}')
    return parser


def resolve_command(args: argparse.Namespace) -> str:
    """根据位置参数和别名选项确定命令"""
    if args.once and args.continuous:
        raise ConfigError("--once 与 --continuous 不能同时使用")
    if args.once:
        alias = 'check'
    elif args.continuous:
        alias = 'watch'
    else:
        return args.command or 'check'

    if args.command and args.command != alias:
        raise ConfigError(f"命令 {args.command} 与选项冲突")
    return alias


def build_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    return {
        'check_interval_ms': args.interval,
        'state_file': args.state_file,
        'log_level': args.log_level,
        'log_file': args.log_file
    }


def list_targets(registry: EnvironmentRegistry) -> int:
    """打印监控目标"""
    print(f"共 {len(registry)} 个监控目标, {registry.endpoint_count()} 个端点:")
    for target in registry.list_targets():
        print(f"  * {target.name}")
        if target.description:
            print(f"      {target.description}")
        for path_key, url in target.endpoints():
            print(f"      {path_key:<24} {url}")
    return EXIT_HEALTHY


def validate_config_file(config_path: Optional[str],
                         environ: Optional[Dict[str, str]] = None) -> int:
    """验证配置文件

    Returns:
        退出码
    """
    try:
        print(f"正在验证配置: {config_path or '(仅环境变量)'}")
        config_manager = ConfigManager(config_path, environ=environ)
        config = config_manager.load_config()
        registry = config_manager.build_registry()
        sinks = alert_sink_factory.create_sinks(config_manager.get_alerts_config())
    except MonitorError as e:
        print(f"❌ 配置验证失败: {e.format_error()}")
        return EXIT_FAULT

    print("✅ 配置验证成功!")
    print(f"   - 目标数量: {len(registry)}")
    print(f"   - 端点数量: {registry.endpoint_count()}")
    print(f"   - 告警输出数量: {len(sinks)}")
    for alert_config in config.get('alerts', []):
        print(f"     * {alert_config.get('name')} ({alert_config.get('type')})")
    return EXIT_HEALTHY


async def run_alert_test(monitor_app: DeploymentMonitorApp) -> int:
    """通过所有告警输出发送一条测试告警

    Returns:
        退出码: 全部发送成功为0，否则为1
    """
    target = monitor_app.registry.list_targets()[0]
    transition = Transition(
        target=target.name,
        path=target.health_paths[0] if target.health_paths else '/',
        from_state=HealthState.HEALTHY,
        to_state=HealthState.UNHEALTHY,
        occurred_at_utc=utc_now(),
        detail='这是一条测试告警'
    )
    event = monitor_app.dispatcher.create_alert_event(transition)
    sink_count = len(monitor_app.dispatcher.sinks)
    success_count = await monitor_app.dispatcher.emit(event)

    if sink_count and success_count == sink_count:
        print(f"✅ 告警测试成功，{success_count} 个告警输出已发送")
        return EXIT_HEALTHY
    print(f"❌ 告警测试失败，成功 {success_count}/{sink_count}")
    return EXIT_UNHEALTHY


def print_summary(summary: RunSummary):
    """打印每个端点的检查结果"""
    print(f"✅ 健康检查完成，共检查 {summary.total} 个端点:")
    snapshot = summary.snapshot
    if snapshot is not None:
        for key in snapshot.observed_keys():
            result = snapshot.results[key]
            if result.is_healthy:
                line = f"   ✅ {result.target} {result.path}: 健康 ({result.latency_ms}ms)"
                diagnostics = result.diagnostics()
                if diagnostics:
                    line += ' ' + ', '.join(f"{k}={v}" for k, v in diagnostics.items())
            else:
                line = (f"   ❌ {result.target} {result.path}: 不健康 - "
                        f"{result.outcome.value}: {result.describe_failure()}")
            print(line)
        for target_name, path in sorted(snapshot.abandoned):
            print(f"   ⏳ {target_name} {path}: 超出本轮时间预算，未完成探测")

    for transition in summary.transitions:
        print(f"   ⚠️  状态变化: {transition.target} {transition.path} "
              f"{transition.from_state.value} -> {transition.to_state.value}")
    if summary.partial:
        print("   ⚠️  本轮快照不完整，部分探测超出时间预算")
    if not summary.persisted:
        print("   ⚠️  快照保存失败，下次运行将无法比较本轮结果")


async def check_once(monitor_app: DeploymentMonitorApp) -> int:
    summary = await monitor_app.run_once()
    print_summary(summary)
    return summary.exit_code


async def main(argv: Optional[List[str]] = None) -> int:
    """主函数

    Returns:
        退出码: 0 全部健康, 1 存在不健康端点, 2 监控自身故障
    """
    global app

    parser = create_argument_parser()
    args = parser.parse_args(argv)
    config_path = args.config_file or os.environ.get('MONITOR_CONFIG')

    try:
        command = resolve_command(args)

        if command == 'validate':
            return validate_config_file(config_path)

        app = DeploymentMonitorApp(config_path, build_overrides(args))
        app.initialize()

        if command == 'list-targets':
            return list_targets(app.registry)
        if command == 'test-alerts':
            return await run_alert_test(app)
        if command == 'check':
            return await check_once(app)

        loop = asyncio.get_running_loop()
        install_signal_handlers(loop)
        try:
            print(f"部署健康监控 v{__version__} 已启动，按 Ctrl+C 停止", flush=True)
            await app.start(args.interval)
        finally:
            remove_signal_handlers(loop)
        return EXIT_HEALTHY

    except ConfigError as e:
        print(f"配置错误: {e.format_error()}", file=sys.stderr)
        return EXIT_FAULT
    except MonitorError as e:
        print(f"监控系统错误: {e.format_error()}", file=sys.stderr)
        return EXIT_FAULT
    except Exception as e:
        print(f"未预期的错误: {e}", file=sys.stderr)
        import traceback
        traceback.print_exc()
        return EXIT_FAULT
    finally:
        app = None
        log_manager.cleanup()


def run():
    """控制台脚本入口"""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
