"""
SMTP邮件通知服务
"""
import smtplib
from email.message import EmailMessage
import logging

from ..interfaces import NotifierInterface
from ..models import SMTPSettings
from .endpoint_prober import create_tls_context
from .error_handler import DeliveryError


# 465端口使用隐式TLS，其余端口在服务器支持时升级为STARTTLS
IMPLICIT_TLS_PORT = 465


class SMTPNotificationService(NotifierInterface):
    """SMTP邮件通知服务实现"""

    def __init__(self, settings: SMTPSettings):
        """
        初始化SMTP通知服务

        Args:
            settings: SMTP配置
        """
        self.settings = settings
        self.logger = logging.getLogger(__name__)

    def build_message(self, subject: str, body: str) -> EmailMessage:
        """构造纯文本邮件"""
        message = EmailMessage()
        message['From'] = self.settings.sender
        message['To'] = ", ".join(self.settings.recipients)
        message['Subject'] = subject
        message.set_content(body)
        return message

    def deliver(self, subject: str, body: str) -> None:
        """
        发送一封邮件

        Args:
            subject: 邮件主题
            body: 邮件正文

        Raises:
            DeliveryError: 发送失败
        """
        message = self.build_message(subject, body)
        self.logger.debug(f"发送邮件: 主题={subject}, 收件人={list(self.settings.recipients)}")

        try:
            with self._connect() as server:
                if self.settings.username:
                    server.login(self.settings.username, self.settings.password)
                server.send_message(message)
        except (smtplib.SMTPException, OSError) as e:
            self.logger.error(f"邮件发送失败: {type(e).__name__}: {e}")
            raise DeliveryError(subject, e) from e

        self.logger.info(f"邮件发送成功: {subject}")

    def _connect(self) -> smtplib.SMTP:
        """
        连接SMTP服务器

        Returns:
            smtplib.SMTP: 已连接（必要时已升级TLS）的客户端
        """
        settings = self.settings
        context = create_tls_context()

        if settings.port == IMPLICIT_TLS_PORT:
            return smtplib.SMTP_SSL(settings.server, settings.port, timeout=settings.timeout, context=context)

        server = smtplib.SMTP(settings.server, settings.port, timeout=settings.timeout)
        try:
            server.ehlo()
            if server.has_extn('starttls'):
                server.starttls(context=context)
                server.ehlo()
        except (smtplib.SMTPException, OSError):
            server.close()
            raise
        return server
