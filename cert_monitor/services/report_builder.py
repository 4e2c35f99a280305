"""
报告生成服务
"""
from typing import Iterable, Optional

from ..models import CertificateFacts, EndpointReport


SUMMARY_SUBJECT = "certificate summary"
ALERT_SUBJECT_TEMPLATE = "certificate expiration warning: {endpoint}"


def alert_subject(endpoint: str) -> str:
    """单个端点告警的主题"""
    return ALERT_SUBJECT_TEMPLATE.format(endpoint=endpoint)


def render(endpoint: str, facts: CertificateFacts, is_expiring_soon: bool) -> str:
    """
    生成单个端点的文本摘要

    输出格式固定，相同输入得到完全相同的输出；备用名称按证书中的顺序列出。

    Args:
        endpoint: 端点
        facts: 证书信息
        is_expiring_soon: 是否即将过期

    Returns:
        str: 多行文本摘要
    """
    lines = [
        facts.common_name or endpoint,
        f"  Expiring Soon: {'true' if is_expiring_soon else 'false'}",
        f"  Expires:       {facts.not_after.isoformat()}",
        "  DNS Alt Names:",
    ]
    for name in facts.alternate_names:
        lines.append(f"    {name}")

    return "\n".join(lines)


def render_unreachable(endpoint: str, error: Optional[BaseException]) -> str:
    """生成探测失败端点的文本摘要"""
    return "\n".join([
        endpoint,
        "  Unreachable:   true",
        f"  Error:         {error}",
    ])


def render_aggregate(reports: Iterable[EndpointReport], include_unreachable: bool = False) -> str:
    """
    拼接所有端点的摘要

    每个摘要后跟一个空行，顺序与配置顺序一致。探测失败的端点默认省略。

    Args:
        reports: 端点报告（按配置顺序）
        include_unreachable: 是否为探测失败的端点输出 Unreachable 条目

    Returns:
        str: 汇总文本
    """
    lines = []
    for report in reports:
        if not report.succeeded and not include_unreachable:
            continue
        lines.append(report.summary)
        lines.append("")

    return "\n".join(lines)
