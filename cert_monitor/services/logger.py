"""
日志服务
"""
import os
import sys
import json
import logging
import traceback
from datetime import datetime, timezone
from typing import Dict, Any, Optional
from ..interfaces import LoggerServiceInterface
from ..models import EndpointReport
from .error_handler import ProbeErrorHandler


DEFAULT_LOG_LEVEL = "WARNING"


class JsonFormatter(logging.Formatter):
    """每条日志输出一行JSON"""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            'time': datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
        }
        if record.exc_info:
            payload['exc_info'] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


class LoggerService(LoggerServiceInterface):
    """日志服务实现"""

    def __init__(self, logger_name: str = "cert_monitor", log_level: Optional[str] = None,
                 json_format: bool = False, stream=None):
        """
        初始化日志服务

        Args:
            logger_name: 日志器名称
            log_level: 日志级别，如果为None则从环境变量 LOG_LEVEL 读取，默认WARNING
            json_format: 是否输出JSON格式日志
            stream: 输出流，默认标准错误
        """
        self.logger_name = logger_name
        self.log_level = log_level or os.getenv('LOG_LEVEL', DEFAULT_LOG_LEVEL)
        self.json_format = json_format

        # 配置日志器
        self.logger = logging.getLogger(logger_name)
        self._configure_logger(stream if stream is not None else sys.stderr)
        self.error_handler = ProbeErrorHandler()

        self.reset_stats()

    def _configure_logger(self, stream):
        """配置日志器"""
        level = getattr(logging, self.log_level.upper(), logging.WARNING)
        self.logger.setLevel(level)

        # 替换之前由本服务添加的处理器，避免重复输出
        for handler in list(self.logger.handlers):
            if getattr(handler, '_cert_monitor_handler', False):
                self.logger.removeHandler(handler)

        handler = logging.StreamHandler(stream)
        handler.setLevel(level)
        handler._cert_monitor_handler = True

        if self.json_format:
            handler.setFormatter(JsonFormatter())
        else:
            handler.setFormatter(logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            ))

        self.logger.addHandler(handler)

        # 防止日志传播到根日志器
        self.logger.propagate = False

    def log_run_start(self, endpoint_count: int):
        """
        记录运行开始

        Args:
            endpoint_count: 要检查的端点数量
        """
        # 每次运行的统计相互独立
        self.reset_stats()
        self.execution_stats['start_time'] = datetime.now(timezone.utc)
        self.execution_stats['total_endpoints'] = endpoint_count

        self.logger.info(f"开始证书检查，共 {endpoint_count} 个端点")

    def log_endpoint_report(self, report: EndpointReport):
        """
        记录端点检查结果

        Args:
            report: 端点报告
        """
        if not report.succeeded:
            self.execution_stats['failed_checks'] += 1
            return

        self.execution_stats['successful_checks'] += 1
        facts = report.facts

        if report.is_expiring_soon:
            self.execution_stats['expiring'] += 1
            self.logger.warning(
                f"证书即将过期 - 端点: {report.endpoint}, "
                f"通用名称: {facts.common_name}, "
                f"过期日期: {facts.not_after.isoformat()}"
            )
        else:
            self.logger.info(
                f"证书正常 - 端点: {report.endpoint}, "
                f"通用名称: {facts.common_name}, "
                f"过期日期: {facts.not_after.isoformat()}"
            )

    def log_probe_error(self, endpoint: str, error: Exception):
        """
        记录探测错误

        Args:
            endpoint: 端点
            error: 异常对象
        """
        error_info = self.error_handler.describe(endpoint, error)
        self.execution_stats['errors'].append(error_info)

        self.logger.error(
            f"端点 {endpoint} 检查失败: {error_info['error_type']}: {error_info['error_message']}，"
            f"建议: {error_info['suggested_action']}"
        )
        self.logger.debug(f"端点 {endpoint} 错误堆栈跟踪:\n{''.join(traceback.format_exception(error))}")

    def log_delivery(self, subject: str, success: bool, error: Optional[Exception] = None):
        """
        记录通知发送状态

        Args:
            subject: 通知主题
            success: 是否发送成功
            error: 失败原因
        """
        if success:
            self.execution_stats['deliveries_sent'] += 1
            self.logger.info(f"通知发送成功: {subject}")
        else:
            self.execution_stats['deliveries_failed'] += 1
            self.logger.error(f"通知发送失败: {subject}: {error}")

    def log_run_end(self):
        """记录运行结束"""
        self.execution_stats['end_time'] = datetime.now(timezone.utc)
        summary = self.get_execution_summary()

        self.logger.info(
            f"证书检查完成，耗时 {summary['duration_seconds']:.2f} 秒: "
            f"总计 {summary['total_endpoints']} 个端点, "
            f"成功 {summary['successful_checks']} 个, "
            f"失败 {summary['failed_checks']} 个, "
            f"即将过期 {summary['expiring']} 个"
        )

    def log_configuration_info(self, config: Dict[str, Any]):
        """
        记录配置信息

        Args:
            config: 配置信息字典
        """
        safe_config = self._sanitize_config(config)

        self.logger.debug("系统配置信息:")
        for key, value in safe_config.items():
            self.logger.debug(f"  {key}: {value}")

    def _sanitize_config(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """
        清理配置信息中的敏感数据

        Args:
            config: 原始配置

        Returns:
            Dict[str, Any]: 清理后的配置
        """
        safe_config = {}
        for key, value in config.items():
            key_lower = key.lower()

            is_sensitive = (
                key_lower in ('password', 'secret', 'token', 'sns_topic_arn') or
                key_lower.endswith('_password') or
                key_lower.endswith('_secret') or
                key_lower.endswith('_token')
            )

            if is_sensitive and isinstance(value, str) and value:
                if value.startswith('arn:'):
                    # ARN只保留服务、区域和资源名，隐藏账号
                    parts = value.split(':')
                    if len(parts) >= 6:
                        safe_value = f"{':'.join(parts[:4])}:***:{parts[-1]}"
                    else:
                        safe_value = "***"
                else:
                    safe_value = "***"
                safe_config[key] = safe_value
            else:
                safe_config[key] = value

        return safe_config

    def get_execution_summary(self) -> Dict[str, Any]:
        """
        获取执行摘要

        Returns:
            Dict[str, Any]: 执行摘要信息
        """
        stats = self.execution_stats
        duration = 0.0
        if stats['start_time'] and stats['end_time']:
            duration = (stats['end_time'] - stats['start_time']).total_seconds()

        return {
            'start_time': stats['start_time'].isoformat() if stats['start_time'] else None,
            'end_time': stats['end_time'].isoformat() if stats['end_time'] else None,
            'duration_seconds': duration,
            'total_endpoints': stats['total_endpoints'],
            'successful_checks': stats['successful_checks'],
            'failed_checks': stats['failed_checks'],
            'expiring': stats['expiring'],
            'deliveries_sent': stats['deliveries_sent'],
            'deliveries_failed': stats['deliveries_failed'],
            'error_count': len(stats['errors']),
            'errors': stats['errors']
        }

    def reset_stats(self):
        """重置执行统计"""
        self.execution_stats = {
            'start_time': None,
            'end_time': None,
            'total_endpoints': 0,
            'successful_checks': 0,
            'failed_checks': 0,
            'expiring': 0,
            'deliveries_sent': 0,
            'deliveries_failed': 0,
            'errors': []
        }
