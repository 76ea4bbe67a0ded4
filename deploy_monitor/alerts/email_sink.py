"""邮件告警输出实现"""

import asyncio
import re
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr
from typing import Any, Dict

import aiosmtplib

from .base import render_template
from ..models.health_check import AlertEvent
from ..utils.exceptions import AlertConfigError, AlertSendError
from ..utils.log_manager import get_logger

EMAIL_PATTERN = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')

DEFAULT_SUBJECT_TEMPLATE = '[{{status}}] 部署健康告警: {{target}} {{path}}'

DEFAULT_BODY_TEMPLATE = """部署健康监控告警通知

环境: {{target}}
端点: {{path}}
状态: {{status}} ({{from_state}} -> {{to_state}})
级别: {{severity}}
时间: {{timestamp}}
详情: {{detail}}

---
此邮件由部署健康监控自动发送，请勿回复。
"""


class EmailAlertSink:
    """邮件告警输出，通过SMTP发送告警邮件"""

    def __init__(self, name: str, config: Dict[str, Any]):
        """
        初始化邮件告警输出

        Args:
            name: 告警输出名称
            config: 告警输出配置

        Raises:
            AlertConfigError: 配置无效
        """
        self.name = name
        self.logger = get_logger(f'alerts.email.{name}')

        # SMTP配置
        self.smtp_server = config.get('smtp_server', '')
        self.smtp_port = config.get('smtp_port', 587)
        self.username = config.get('username', '')
        self.password = config.get('password', '')
        self.use_tls = config.get('use_tls', True)
        self.use_ssl = config.get('use_ssl', False)
        self.timeout = config.get('timeout', 10)

        # 邮件配置
        self.from_email = config.get('from_email', self.username)
        self.from_name = config.get('from_name', '部署健康监控')
        self.to_emails = list(config.get('to_emails', []))
        self.cc_emails = list(config.get('cc_emails', []))

        self.subject_template = config.get('subject_template', DEFAULT_SUBJECT_TEMPLATE)
        self.body_template = config.get('body_template', DEFAULT_BODY_TEMPLATE)

        self.max_retries = config.get('max_retries', 2)
        self.retry_delay = config.get('retry_delay', 2.0)

        self._validate_config()

    def _validate_config(self):
        if not self.smtp_server:
            raise AlertConfigError(f"邮件告警输出 {self.name} 缺少SMTP服务器配置",
                                   sink_name=self.name)
        if not self.to_emails:
            raise AlertConfigError(f"邮件告警输出 {self.name} 缺少收件人邮箱配置",
                                   sink_name=self.name)

        for email in self.to_emails + self.cc_emails + [self.from_email]:
            if not EMAIL_PATTERN.match(email or ''):
                raise AlertConfigError(f"邮件告警输出 {self.name} 邮箱格式无效: {email!r}",
                                       sink_name=self.name)

        if not isinstance(self.smtp_port, int) or self.smtp_port <= 0:
            raise AlertConfigError(f"邮件告警输出 {self.name} SMTP端口无效: {self.smtp_port}",
                                   sink_name=self.name)

        if self.use_ssl and self.use_tls:
            raise AlertConfigError(f"邮件告警输出 {self.name} 不能同时启用SSL和TLS",
                                   sink_name=self.name)

    async def emit(self, event: AlertEvent) -> None:
        """
        发送告警邮件，失败时按指数退避重试

        Raises:
            AlertSendError: 所有重试均失败
        """
        for attempt in range(self.max_retries + 1):
            try:
                await self._send_email(event)
                return
            except AlertSendError as e:
                self.logger.warning(
                    f"邮件告警输出 {self.name} 发送失败 "
                    f"(尝试 {attempt + 1}/{self.max_retries + 1}): {e.message}"
                )
                if attempt >= self.max_retries:
                    self.logger.error(f"邮件告警输出 {self.name} 所有重试均失败，放弃发送告警")
                    raise
                await asyncio.sleep(self.retry_delay * (2 ** attempt))

    async def _send_email(self, event: AlertEvent) -> None:
        message = self.create_email_message(event)

        smtp_kwargs: Dict[str, Any] = {
            'hostname': self.smtp_server,
            'port': self.smtp_port,
            'timeout': self.timeout,
            'use_tls': self.use_ssl,
            'start_tls': self.use_tls
        }
        if self.username:
            smtp_kwargs['username'] = self.username
            smtp_kwargs['password'] = self.password

        try:
            await aiosmtplib.send(message, **smtp_kwargs)
        except (aiosmtplib.SMTPException, OSError, asyncio.TimeoutError) as e:
            raise AlertSendError(f"SMTP发送失败: {e}", sink_name=self.name, cause=e)

        self.logger.info(f"邮件告警发送成功: {self.from_email} -> {', '.join(self.to_emails)}")

    def create_email_message(self, event: AlertEvent) -> MIMEMultipart:
        """创建邮件消息"""
        message = MIMEMultipart()
        message['From'] = formataddr((self.from_name, self.from_email))
        message['To'] = ', '.join(self.to_emails)
        if self.cc_emails:
            message['Cc'] = ', '.join(self.cc_emails)
        message['Subject'] = render_template(self.subject_template, event)
        message.attach(MIMEText(render_template(self.body_template, event), 'plain', 'utf-8'))
        return message
