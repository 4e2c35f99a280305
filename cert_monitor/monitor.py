"""
证书监控运行编排
"""
import sys
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import date
from typing import Iterable, Iterator, List, Optional, Tuple

from .interfaces import EndpointProberInterface, NotifierInterface
from .models import EndpointReport, ExpiryPolicy, RunOptions, RunResult, Settings
from .services.endpoint_prober import EndpointProber
from .services.error_handler import ConfigurationError, DateParseError, ProbeError
from .services.expiry_evaluator import ExpiryEvaluator, DateLike, to_calendar_date
from .services.logger import LoggerService
from .services.report_builder import (
    SUMMARY_SUBJECT,
    alert_subject,
    render,
    render_aggregate,
    render_unreachable,
)
from .services.smtp_notification import SMTPNotificationService
from .services.sns_notification import SNSNotificationService


def build_notifier(settings: Settings) -> Optional[NotifierInterface]:
    """
    根据配置选择通知渠道

    优先SMTP，其次SNS；都未配置时返回None。
    """
    if settings.smtp.server:
        return SMTPNotificationService(settings.smtp)
    if settings.sns_topic_arn:
        return SNSNotificationService(settings.sns_topic_arn)
    return None


class CertificateMonitor:
    """证书监控器主类"""

    def __init__(self, prober: Optional[EndpointProberInterface] = None,
                 notifier: Optional[NotifierInterface] = None,
                 logger_service: Optional[LoggerService] = None,
                 output=None):
        """
        初始化监控器

        Args:
            prober: 端点探测器
            notifier: 通知渠道，仅打印模式下可以为None
            logger_service: 日志服务
            output: 仅打印模式下汇总的输出流，默认标准输出
        """
        self.prober = prober or EndpointProber()
        self.notifier = notifier
        self.logger_service = logger_service or LoggerService()
        self.output = output

    @classmethod
    def from_settings(cls, settings: Settings, print_only: bool = False,
                      logger_service: Optional[LoggerService] = None, output=None) -> "CertificateMonitor":
        """
        根据配置创建监控器

        Raises:
            ConfigurationError: 需要发送通知但未配置通知渠道
        """
        notifier = None if print_only else build_notifier(settings)
        if notifier is None and not print_only:
            raise ConfigurationError("未配置通知渠道（smtp.server 或 sns_topic_arn）")

        logger_service = logger_service or LoggerService()
        logger_service.log_configuration_info({
            'domains': list(settings.domains),
            'threshold': settings.threshold_days,
            'timeout': settings.timeout,
            'workers': settings.workers,
            'smtp_server': settings.smtp.server,
            'smtp_port': settings.smtp.port,
            'smtp_password': settings.smtp.password,
            'sns_topic_arn': settings.sns_topic_arn,
        })

        return cls(
            prober=EndpointProber(timeout=settings.timeout),
            notifier=notifier,
            logger_service=logger_service,
            output=output
        )

    def run(self, endpoints: Iterable[str], policy: ExpiryPolicy,
            options: Optional[RunOptions] = None, now: Optional[DateLike] = None) -> RunResult:
        """
        执行一次证书检查

        第一阶段逐个端点探测、判定、生成摘要，即将过期的端点立即告警；
        第二阶段在所有端点完成后按配置顺序生成汇总。

        Args:
            endpoints: 端点列表（按配置顺序）
            policy: 过期策略
            options: 运行模式
            now: 当前日期，默认本机今天

        Returns:
            RunResult: 运行结果
        """
        options = options or RunOptions()
        endpoints = list(endpoints)

        if not options.print_only and self.notifier is None:
            raise ConfigurationError("非打印模式需要通知渠道")

        # 一次运行内所有端点使用同一个“今天”
        today = date.today() if now is None else to_calendar_date(now)
        evaluator = ExpiryEvaluator(policy)
        result = RunResult(options=options)

        self.logger_service.log_run_start(len(endpoints))

        reports: List[Optional[EndpointReport]] = [None] * len(endpoints)
        for index, report in self._evaluate_all(endpoints, evaluator, today, options.max_workers):
            reports[index] = report

            if not report.succeeded:
                self.logger_service.log_probe_error(report.endpoint, report.error)
            self.logger_service.log_endpoint_report(report)

            if report.is_expiring_soon and not options.print_only:
                self._dispatch(alert_subject(report.endpoint), report.summary, result)

        result.reports = reports

        if options.summary:
            result.summary_text = render_aggregate(reports, options.include_unreachable)
            if options.print_only:
                print(result.summary_text, file=self.output or sys.stdout)
            else:
                self._dispatch(SUMMARY_SUBJECT, result.summary_text, result)

        self.logger_service.log_run_end()
        return result

    def _evaluate_all(self, endpoints: List[str], evaluator: ExpiryEvaluator, today: date,
                      max_workers: int) -> Iterator[Tuple[int, EndpointReport]]:
        """
        评估所有端点，结果就绪即产出

        Yields:
            Tuple[int, EndpointReport]: (端点在配置中的位置, 报告)
        """
        if max_workers <= 1 or len(endpoints) <= 1:
            for index, endpoint in enumerate(endpoints):
                yield index, self._evaluate(endpoint, evaluator, today)
            return

        with ThreadPoolExecutor(max_workers=min(max_workers, len(endpoints))) as executor:
            futures = {
                executor.submit(self._evaluate, endpoint, evaluator, today): index
                for index, endpoint in enumerate(endpoints)
            }
            for future in as_completed(futures):
                yield futures[future], future.result()

    def _evaluate(self, endpoint: str, evaluator: ExpiryEvaluator, today: date) -> EndpointReport:
        """
        探测并评估单个端点

        不修改共享状态，可在工作线程中执行。失败记录在报告中，不抛出。
        """
        try:
            facts = self.prober.probe(endpoint)
            expiring = evaluator.is_expiring_soon(facts.not_after, now=today)
        except (ProbeError, DateParseError) as e:
            return EndpointReport(endpoint=endpoint, summary=render_unreachable(endpoint, e), error=e)
        except Exception as e:
            # 非预期错误同样只影响当前端点
            error = ProbeError(endpoint, e)
            return EndpointReport(endpoint=endpoint, summary=render_unreachable(endpoint, error), error=error)

        return EndpointReport(
            endpoint=endpoint,
            facts=facts,
            is_expiring_soon=expiring,
            summary=render(endpoint, facts, expiring)
        )

    def _dispatch(self, subject: str, body: str, result: RunResult) -> bool:
        """
        发送通知，失败只记录不中断运行

        Returns:
            bool: 是否发送成功
        """
        try:
            self.notifier.deliver(subject, body)
        except Exception as e:
            result.deliveries_failed += 1
            self.logger_service.log_delivery(subject, False, e)
            return False

        result.deliveries_sent += 1
        self.logger_service.log_delivery(subject, True)
        return True
