"""
AWS Lambda函数入口点
"""
from typing import Dict, Any
from datetime import datetime, timezone

from .models import RunOptions
from .monitor import CertificateMonitor
from .services.config_loader import settings_from_env
from .services.error_handler import ConfigurationError
from .services.logger import LoggerService


def _event_flag(event: Dict[str, Any], key: str) -> bool:
    """
    读取事件中的布尔开关

    EventBridge输入常为字符串，"false" 不能当作真值。

    Raises:
        ConfigurationError: 无法识别的取值
    """
    value = event.get(key, False)
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    if isinstance(value, str):
        text = value.strip().lower()
        if text in ("true", "1", "yes"):
            return True
        if text in ("false", "0", "no", ""):
            return False
    raise ConfigurationError(f"事件字段 {key} 必须是布尔值: {value!r}")


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Lambda函数入口点

    配置来自环境变量；事件中的 summary / print_only 对应命令行的 --summary / --print。

    Args:
        event: EventBridge触发事件
        context: Lambda运行时上下文

    Returns:
        dict: 执行结果和统计信息
    """
    event = event or {}
    logger_service = LoggerService()

    try:
        settings = settings_from_env()
        options = RunOptions(
            print_only=_event_flag(event, 'print_only'),
            summary=_event_flag(event, 'summary'),
            include_unreachable=_event_flag(event, 'include_unreachable'),
            max_workers=settings.workers
        )

        monitor = CertificateMonitor.from_settings(
            settings, print_only=options.print_only, logger_service=logger_service
        )
        result = monitor.run(settings.domains, settings.policy, options)

    except ConfigurationError as e:
        logger_service.logger.error(f"配置无效: {e}")
        return {
            'statusCode': 500,
            'body': {
                'message': 'Certificate monitor configuration is invalid',
                'error': str(e),
                'timestamp': datetime.now(timezone.utc).isoformat()
            }
        }
    except Exception as e:
        logger_service.logger.exception(f"Lambda函数执行时发生严重错误: {e}")
        return {
            'statusCode': 500,
            'body': {
                'message': 'Certificate monitor encountered a critical error',
                'error': str(e),
                'timestamp': datetime.now(timezone.utc).isoformat()
            }
        }

    total = len(result.reports)
    return {
        'statusCode': 200,
        'body': {
            'message': 'Certificate monitor executed successfully',
            'summary': {
                'total_endpoints': total,
                'successful_checks': len(result.successful),
                'failed_checks': len(result.failed),
                'expiring_certificates': len(result.expiring),
                'deliveries_sent': result.deliveries_sent,
                'deliveries_failed': result.deliveries_failed,
                'success_rate': len(result.successful) / total if total > 0 else 0
            },
            'expiring_endpoints': [report.endpoint for report in result.expiring],
            'errors': [str(report.error) for report in result.failed][:5],  # 只返回前5个错误
            'report': result.summary_text,
            'timestamp': datetime.now(timezone.utc).isoformat()
        }
    }
