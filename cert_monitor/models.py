"""
数据模型定义
"""
from dataclasses import dataclass, field
from datetime import date
from typing import Optional, List, Tuple


@dataclass(frozen=True)
class CertificateFacts:
    """叶子证书的身份信息"""
    common_name: str
    alternate_names: Tuple[str, ...]
    not_after: date

    def __post_init__(self):
        # 保持证书给出的顺序，同时保证不可变
        object.__setattr__(self, 'alternate_names', tuple(self.alternate_names))


@dataclass(frozen=True)
class ExpiryPolicy:
    """过期判定策略，一次运行内对所有端点一致"""
    threshold_days: int = 30

    def __post_init__(self):
        if isinstance(self.threshold_days, bool) or not isinstance(self.threshold_days, int):
            raise ValueError(f"threshold_days 必须是整数: {self.threshold_days!r}")
        if self.threshold_days < 0:
            raise ValueError(f"threshold_days 不能为负数: {self.threshold_days}")


@dataclass
class EndpointReport:
    """单个端点的检查结果"""
    endpoint: str
    facts: Optional[CertificateFacts] = None
    is_expiring_soon: bool = False
    summary: str = ""
    error: Optional[Exception] = None

    def __post_init__(self):
        if (self.facts is None) == (self.error is None):
            raise ValueError(f"端点 {self.endpoint} 的报告必须且只能包含证书信息或错误之一")

    @property
    def succeeded(self) -> bool:
        """探测是否成功"""
        return self.facts is not None

    def to_dict(self) -> dict:
        """结构化表示"""
        result = {
            'endpoint': self.endpoint,
            'succeeded': self.succeeded,
            'is_expiring_soon': self.is_expiring_soon,
        }
        if self.facts is not None:
            result['common_name'] = self.facts.common_name
            result['expires'] = self.facts.not_after.isoformat()
            result['alternate_names'] = list(self.facts.alternate_names)
        else:
            result['error'] = str(self.error)
        return result


@dataclass(frozen=True)
class RunOptions:
    """运行模式"""
    print_only: bool = False
    summary: bool = False
    include_unreachable: bool = False
    max_workers: int = 1


@dataclass
class RunResult:
    """一次运行的结果"""
    reports: List[EndpointReport] = field(default_factory=list)
    options: RunOptions = field(default_factory=RunOptions)
    summary_text: Optional[str] = None
    deliveries_sent: int = 0
    deliveries_failed: int = 0

    @property
    def successful(self) -> List[EndpointReport]:
        return [report for report in self.reports if report.succeeded]

    @property
    def failed(self) -> List[EndpointReport]:
        return [report for report in self.reports if not report.succeeded]

    @property
    def expiring(self) -> List[EndpointReport]:
        return [report for report in self.reports if report.is_expiring_soon]

    def to_dict(self) -> dict:
        return {
            'total_endpoints': len(self.reports),
            'successful_checks': len(self.successful),
            'failed_checks': len(self.failed),
            'expiring_endpoints': [report.endpoint for report in self.expiring],
            'deliveries_sent': self.deliveries_sent,
            'deliveries_failed': self.deliveries_failed,
            'reports': [report.to_dict() for report in self.reports],
        }


@dataclass(frozen=True)
class SMTPSettings:
    """SMTP通知配置"""
    server: str = ""
    port: int = 25
    sender: str = ""
    recipients: Tuple[str, ...] = ()
    username: str = ""
    password: str = ""
    timeout: float = 30.0


@dataclass(frozen=True)
class Settings:
    """已验证的运行配置"""
    domains: Tuple[str, ...] = ()
    threshold_days: int = 30
    smtp: SMTPSettings = field(default_factory=SMTPSettings)
    sns_topic_arn: str = ""
    timeout: float = 10.0
    workers: int = 1

    @property
    def policy(self) -> ExpiryPolicy:
        return ExpiryPolicy(threshold_days=self.threshold_days)
