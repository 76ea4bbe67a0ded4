"""HTTP健康端点探测器"""

import asyncio
import json
import time
from dataclasses import replace
from typing import Any, Dict, Optional
from urllib.parse import urlparse

import aiohttp

from ..models.health_check import ProbeOutcome, ProbeResult, utc_now
from ..utils.log_manager import get_logger

DEFAULT_USER_AGENT = 'deploy-monitor/1.0'

# 只有"服务器不可达"类结果才值得重试，HTTP错误是服务器的明确答复
RETRYABLE_OUTCOMES = (ProbeOutcome.NETWORK_ERROR, ProbeOutcome.TIMEOUT)


class HttpProber:
    """对单个URL发起GET请求并归一化结果

    预期内的失败（HTTP错误、网络错误、超时）全部以 ProbeResult 返回，
    只有参数错误才抛出 ValueError。
    """

    def __init__(self, retry_delay_ms: int = 500,
                 user_agent: str = DEFAULT_USER_AGENT,
                 headers: Optional[Dict[str, str]] = None):
        """
        初始化探测器

        Args:
            retry_delay_ms: 两次尝试之间的固定等待时间（毫秒）
            user_agent: 请求使用的User-Agent
            headers: 附加请求头
        """
        if retry_delay_ms < 0:
            raise ValueError("retry_delay_ms 不能为负数")

        self.retry_delay_ms = retry_delay_ms
        self.headers = {'User-Agent': user_agent, 'Accept': 'application/json'}
        self.headers.update(headers or {})
        self.logger = get_logger('prober')

    @staticmethod
    def validate_arguments(url: str, timeout_ms: int, max_retries: int) -> None:
        """
        校验探测参数

        Raises:
            ValueError: URL不是http/https绝对地址，或超时、重试次数无效
        """
        parsed = urlparse(url) if isinstance(url, str) else None
        if parsed is None or parsed.scheme not in ('http', 'https') or not parsed.netloc:
            raise ValueError(f"无效的探测地址: {url!r}")
        if not isinstance(timeout_ms, (int, float)) or timeout_ms <= 0:
            raise ValueError(f"timeout_ms 必须大于0: {timeout_ms!r}")
        if not isinstance(max_retries, int) or max_retries < 0:
            raise ValueError(f"max_retries 不能为负数: {max_retries!r}")

    async def probe(self, url: str, timeout_ms: int, max_retries: int,
                    target: str = '', path: Optional[str] = None) -> ProbeResult:
        """
        探测一个健康端点

        Args:
            url: 完整的 http/https 地址
            timeout_ms: 单次尝试的超时时间（毫秒）
            max_retries: 网络错误或超时后的最大重试次数
            target: 所属环境名称
            path: 结果中记录的路径键，默认取URL路径

        Returns:
            ProbeResult: 最后一次尝试的结果，attempts 为实际尝试次数
        """
        self.validate_arguments(url, timeout_ms, max_retries)
        if path is None:
            path = urlparse(url).path or '/'

        result = None
        for attempt in range(max_retries + 1):
            result = await self._attempt(url, timeout_ms, target, path)
            result = replace(result, attempts=attempt + 1)

            if result.outcome not in RETRYABLE_OUTCOMES:
                break

            if attempt < max_retries:
                self.logger.debug(
                    f"探测 {url} 失败 ({result.outcome.value}, 尝试 "
                    f"{attempt + 1}/{max_retries + 1})，{self.retry_delay_ms}ms 后重试"
                )
                await asyncio.sleep(self.retry_delay_ms / 1000)

        if result.is_healthy:
            self.logger.debug(f"探测 {url} 成功: HTTP {result.http_status}, "
                              f"{result.latency_ms}ms")
        else:
            self.logger.info(f"探测 {url} 失败: {result.outcome.value} - "
                             f"{result.describe_failure()}")
        return result

    async def _attempt(self, url: str, timeout_ms: int, target: str,
                       path: str) -> ProbeResult:
        """执行一次HTTP请求"""
        timestamp = utc_now()
        start_time = time.monotonic()
        timeout = aiohttp.ClientTimeout(total=timeout_ms / 1000)

        def elapsed_ms() -> int:
            return int((time.monotonic() - start_time) * 1000)

        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(url, headers=self.headers) as response:
                    raw = await response.read()
                    content = raw.decode('utf-8', errors='replace')
                    parsed_body = self._parse_body(content)

                    if 200 <= response.status < 300:
                        return ProbeResult(
                            target=target, path=path,
                            outcome=ProbeOutcome.SUCCESS,
                            latency_ms=elapsed_ms(),
                            timestamp_utc=timestamp,
                            http_status=response.status,
                            parsed_body=parsed_body
                        )

                    return ProbeResult(
                        target=target, path=path,
                        outcome=ProbeOutcome.HTTP_ERROR,
                        latency_ms=elapsed_ms(),
                        timestamp_utc=timestamp,
                        http_status=response.status,
                        parsed_body=parsed_body,
                        error_message=f"HTTP {response.status}"
                    )

        # ServerTimeoutError 同时是 ClientError，必须先匹配超时
        except asyncio.TimeoutError:
            return ProbeResult(
                target=target, path=path,
                outcome=ProbeOutcome.TIMEOUT,
                latency_ms=elapsed_ms(),
                timestamp_utc=timestamp,
                error_message=f"请求超时 ({timeout_ms}ms)"
            )
        except aiohttp.ClientError as e:
            return ProbeResult(
                target=target, path=path,
                outcome=ProbeOutcome.NETWORK_ERROR,
                latency_ms=elapsed_ms(),
                timestamp_utc=timestamp,
                error_message=f"HTTP客户端错误: {e}"
            )
        except OSError as e:
            return ProbeResult(
                target=target, path=path,
                outcome=ProbeOutcome.NETWORK_ERROR,
                latency_ms=elapsed_ms(),
                timestamp_utc=timestamp,
                error_message=f"网络错误: {e}"
            )

    @staticmethod
    def _parse_body(content: str) -> Optional[Any]:
        """尝试将响应体解析为JSON，失败时返回None"""
        if not content:
            return None
        try:
            return json.loads(content)
        except (json.JSONDecodeError, ValueError):
            return None
