"""健康探测模块"""

from .http_prober import DEFAULT_USER_AGENT, HttpProber

__all__ = ['DEFAULT_USER_AGENT', 'HttpProber']
