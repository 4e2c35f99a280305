"""
错误处理服务
"""
import socket
import ssl
from typing import Any, Dict, Optional
from datetime import datetime, timezone
import logging


class CertMonitorError(Exception):
    """证书监控基础异常"""


class ProbeError(CertMonitorError):
    """探测端点失败（解析、连接、握手或未返回证书）"""

    def __init__(self, endpoint: str, cause: Optional[BaseException] = None, message: Optional[str] = None):
        self.endpoint = endpoint
        self.cause = cause
        if message is None:
            message = f"{type(cause).__name__}: {cause}" if cause is not None else "未知错误"
        self.message = message
        super().__init__(f"探测 {endpoint} 失败: {message}")


class DateParseError(CertMonitorError):
    """证书过期日期无法解析"""

    def __init__(self, value: Any):
        self.value = value
        super().__init__(f"无法解析证书过期日期: {value!r}")


class DeliveryError(CertMonitorError):
    """通知发送失败"""

    def __init__(self, subject: str, cause: Optional[BaseException] = None):
        self.subject = subject
        self.cause = cause
        detail = f"{type(cause).__name__}: {cause}" if cause is not None else "未知错误"
        super().__init__(f"发送通知 '{subject}' 失败: {detail}")


class ConfigurationError(CertMonitorError):
    """配置无效，运行无法开始"""


class ProbeErrorHandler:
    """探测错误处理器"""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def describe(self, endpoint: str, error: BaseException) -> Dict[str, Any]:
        """
        整理探测错误信息

        Args:
            endpoint: 端点
            error: 异常对象（ProbeError会展开为其底层原因）

        Returns:
            Dict[str, Any]: 错误信息
        """
        cause = error.cause if isinstance(error, ProbeError) and error.cause is not None else error

        error_info = {
            'endpoint': endpoint,
            'error_type': type(cause).__name__,
            'error_message': str(cause),
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'suggested_action': self._get_suggested_action(cause)
        }

        self.logger.debug(f"端点 {endpoint} 探测错误详情: {error_info}")

        return error_info

    def _get_suggested_action(self, error: BaseException) -> str:
        """
        获取错误的建议处理方案

        Args:
            error: 异常对象

        Returns:
            str: 建议的处理方案
        """
        error_message = str(error).lower()

        if isinstance(error, DateParseError):
            return "证书过期日期格式异常，检查证书内容"
        elif isinstance(error, socket.timeout):
            return "检查网络连接，考虑增加超时时间"
        elif isinstance(error, socket.gaierror):
            return "检查域名是否正确，DNS服务器是否可用"
        elif isinstance(error, ConnectionRefusedError):
            return "检查目标服务器是否运行，端口是否正确"
        elif isinstance(error, ssl.SSLError):
            if 'handshake failure' in error_message:
                return "TLS握手失败，检查SSL/TLS版本兼容性"
            return "TLS连接问题，检查服务器SSL配置"
        elif 'network is unreachable' in error_message:
            return "网络不可达，检查网络连接和路由"
        elif 'no route to host' in error_message:
            return "无法路由到主机，检查防火墙和网络配置"
        else:
            return "检查网络连接和服务器状态"
