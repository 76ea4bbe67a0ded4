"""告警模块"""

from .base import AlertSink, CallbackSink, render_template
from .console_sink import ConsoleAlertSink
from .email_sink import EmailAlertSink
from .factory import AlertSinkFactory, alert_sink_factory, register_sink
from .file_sink import FileAlertSink
from .http_sink import WebhookAlertSink
from .manager import AlertDispatcher

__all__ = [
    'AlertSink', 'CallbackSink', 'render_template',
    'ConsoleAlertSink', 'EmailAlertSink', 'FileAlertSink', 'WebhookAlertSink',
    'AlertSinkFactory', 'alert_sink_factory', 'register_sink', 'AlertDispatcher'
]
