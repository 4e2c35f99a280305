"""
SNS通知服务
"""
import os
from typing import Optional
import logging

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ..interfaces import NotifierInterface
from .error_handler import DeliveryError


# SNS主题字段长度上限
MAX_SUBJECT_LENGTH = 100


class SNSNotificationService(NotifierInterface):
    """SNS通知服务实现"""

    def __init__(self, topic_arn: str, region_name: Optional[str] = None):
        """
        初始化SNS通知服务

        Args:
            topic_arn: SNS主题ARN
            region_name: AWS区域名称，如果为None则从ARN或环境变量推断
        """
        self.topic_arn = topic_arn

        # 自动检测区域
        if region_name:
            self.region_name = region_name
        elif self.topic_arn and self.topic_arn.startswith('arn:aws:sns:'):
            # 从SNS ARN中提取区域
            self.region_name = self.topic_arn.split(':')[3]
        else:
            self.region_name = os.getenv('AWS_REGION', 'us-east-1')

        self.logger = logging.getLogger(__name__)
        self.sns_client = boto3.client('sns', region_name=self.region_name)
        self.logger.debug(f"SNS客户端初始化成功，区域: {self.region_name}")

    def deliver(self, subject: str, body: str) -> None:
        """
        发布一条SNS消息

        Args:
            subject: 消息主题
            body: 消息内容

        Raises:
            DeliveryError: 发布失败
        """
        try:
            response = self.sns_client.publish(
                TopicArn=self.topic_arn,
                Subject=self._format_subject(subject),
                Message=body
            )
        except ClientError as e:
            error_code = e.response.get('Error', {}).get('Code', 'Unknown')
            self.logger.error(f"SNS发送失败 - {error_code}: {e}")
            raise DeliveryError(subject, e) from e
        except BotoCoreError as e:
            self.logger.error(f"发送SNS通知时发生错误: {e}")
            raise DeliveryError(subject, e) from e

        self.logger.info(f"SNS通知发送成功，MessageId: {response.get('MessageId')}")

    def _format_subject(self, subject: str) -> str:
        """
        格式化消息主题

        SNS主题不能包含换行且不超过100个字符。
        """
        subject = " ".join(subject.split())
        if len(subject) > MAX_SUBJECT_LENGTH:
            subject = subject[:MAX_SUBJECT_LENGTH - 3] + "..."
        return subject
