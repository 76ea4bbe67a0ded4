"""HTTP告警输出实现"""

import asyncio
import json
from typing import Any, Dict

import aiohttp

from .base import render_template
from ..models.health_check import AlertEvent
from ..utils.config_validator import is_http_url
from ..utils.exceptions import AlertConfigError, AlertSendError
from ..utils.log_manager import get_logger

VALID_METHODS = ('GET', 'POST', 'PUT', 'PATCH')


class WebhookAlertSink:
    """HTTP告警输出，通过HTTP请求发送告警消息（Webhook、钉钉机器人等）"""

    def __init__(self, name: str, config: Dict[str, Any]):
        """
        初始化HTTP告警输出

        Args:
            name: 告警输出名称
            config: 告警输出配置

        Raises:
            AlertConfigError: 配置无效
        """
        self.name = name
        self.config = config
        self.logger = get_logger(f'alerts.http.{name}')

        # 重试配置
        self.max_retries = config.get('max_retries', 3)
        self.retry_delay = config.get('retry_delay', 1.0)  # 秒
        self.retry_backoff = config.get('retry_backoff', 2.0)

        # HTTP配置
        self.url = config.get('url', '')
        self.method = str(config.get('method', 'POST')).upper()
        self.headers = config.get('headers', {})
        self.template = config.get('template', '')
        self.timeout = config.get('timeout', 10)
        self.ssl_verify = config.get('ssl_verify', True)

        self._validate_config()

    def _validate_config(self):
        if not is_http_url(self.url):
            raise AlertConfigError(f"HTTP告警输出 {self.name} URL无效: {self.url!r}",
                                   sink_name=self.name)

        if self.method not in VALID_METHODS:
            raise AlertConfigError(
                f"HTTP告警输出 {self.name} 不支持的HTTP方法: {self.method}, "
                f"支持的方法: {list(VALID_METHODS)}",
                sink_name=self.name
            )

        if not isinstance(self.max_retries, int) or self.max_retries < 0:
            raise AlertConfigError(f"HTTP告警输出 {self.name} 最大重试次数不能为负数",
                                   sink_name=self.name)

        if self.retry_delay < 0:
            raise AlertConfigError(f"HTTP告警输出 {self.name} 重试延迟不能为负数",
                                   sink_name=self.name)

        if self.template and not self.template.strip():
            raise AlertConfigError(f"HTTP告警输出 {self.name} 模板不能为空",
                                   sink_name=self.name)

    async def emit(self, event: AlertEvent) -> None:
        """
        发送告警，失败时按指数退避重试

        Raises:
            AlertSendError: 所有重试均失败
        """
        self.logger.info(f"开始发送告警: 目标={event.transition.target}, 状态={event.status}")

        last_error = None
        for attempt in range(self.max_retries + 1):
            try:
                if await self._send_request(event):
                    if attempt > 0:
                        self.logger.info(f"HTTP告警输出 {self.name} 重试第 {attempt} 次后发送成功")
                    return
                last_error = "服务端返回失败响应"
            except AlertSendError as e:
                last_error = e.message
                self.logger.warning(
                    f"HTTP告警输出 {self.name} 发送失败 "
                    f"(尝试 {attempt + 1}/{self.max_retries + 1}): {e.message}"
                )

            if attempt < self.max_retries:
                delay = self.retry_delay * (self.retry_backoff ** attempt)
                self.logger.debug(f"等待 {delay:.2f} 秒后重试")
                await asyncio.sleep(delay)

        self.logger.error(f"HTTP告警输出 {self.name} 所有重试均失败，放弃发送告警")
        raise AlertSendError(f"HTTP告警发送失败: {last_error}", sink_name=self.name)

    async def _send_request(self, event: AlertEvent) -> bool:
        """
        发送一次HTTP请求

        Returns:
            bool: 服务端是否确认接收

        Raises:
            AlertSendError: 网络错误或超时
        """
        request_data = self._prepare_request_data(event)
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        connector = aiohttp.TCPConnector(ssl=False) if not self.ssl_verify else None

        try:
            async with aiohttp.ClientSession(timeout=timeout, connector=connector) as session:
                async with session.request(self.method, self.url, headers=self.headers,
                                           **request_data) as response:
                    text = await response.text(errors='replace')
                    if not 200 <= response.status < 300:
                        self.logger.warning(
                            f"HTTP告警输出 {self.name} 收到错误响应 "
                            f"(状态码: {response.status}, 响应: {text[:200]})"
                        )
                        return False
                    return self._check_response_body(text)
        except asyncio.TimeoutError as e:
            raise AlertSendError("HTTP请求超时", sink_name=self.name, cause=e)
        except aiohttp.ClientError as e:
            raise AlertSendError(f"HTTP请求失败: {e}", sink_name=self.name, cause=e)

    def _check_response_body(self, text: str) -> bool:
        """检查响应体，钉钉机器人以 errcode 表示结果"""
        try:
            body = json.loads(text)
        except ValueError:
            return True

        if isinstance(body, dict) and 'errcode' in body and body['errcode'] != 0:
            self.logger.error(
                f"HTTP告警输出 {self.name} 钉钉机器人返回错误: "
                f"errcode={body.get('errcode')}, errmsg={body.get('errmsg')}"
            )
            return False
        return True

    def _prepare_request_data(self, event: AlertEvent) -> Dict[str, Any]:
        """
        准备HTTP请求数据

        POST/PUT/PATCH 发送模板渲染结果或默认JSON负载，GET 使用查询参数。
        """
        if self.method == 'GET':
            return {'params': self._create_query_params(event)}

        if not self.template:
            return {'json': self._create_default_payload(event)}

        is_json_template = (self.template.strip().startswith('{')
                            and self.template.strip().endswith('}'))
        rendered = render_template(self.template, event, escape_json=is_json_template)
        if is_json_template:
            try:
                return {'json': json.loads(rendered)}
            except ValueError as e:
                raise AlertSendError(f"渲染后的JSON格式无效: {e}", sink_name=self.name)
        return {'data': rendered.encode('utf-8')}

    @staticmethod
    def _create_default_payload(event: AlertEvent) -> Dict[str, Any]:
        transition = event.transition
        return {
            'target': transition.target,
            'path': transition.path,
            'status': event.status,
            'severity': event.severity.value,
            'from_state': transition.from_state.value,
            'to_state': transition.to_state.value,
            'timestamp': transition.occurred_at_utc.isoformat(),
            'detail': transition.detail,
            'message': event.message
        }

    @staticmethod
    def _create_query_params(event: AlertEvent) -> Dict[str, str]:
        transition = event.transition
        return {
            'target': transition.target,
            'path': transition.path,
            'status': event.status,
            'severity': event.severity.value,
            'timestamp': transition.occurred_at_utc.isoformat()
        }
