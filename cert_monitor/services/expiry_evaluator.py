"""
证书过期判定服务
"""
from datetime import date, datetime, timedelta
from typing import Optional, Union

from ..models import ExpiryPolicy
from .error_handler import DateParseError


DateLike = Union[date, datetime, str]


def to_calendar_date(value: DateLike) -> date:
    """
    将过期时间规范化为本地日历日期

    Args:
        value: date、datetime 或 ISO格式（YYYY-MM-DD）字符串

    Returns:
        date: 日历日期

    Raises:
        DateParseError: 无法解析
    """
    # datetime 是 date 的子类，需要先判断
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone()
        return value.date()

    if isinstance(value, date):
        return value

    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip())
        except ValueError as e:
            raise DateParseError(value) from e

    raise DateParseError(value)


def is_expiring_soon(not_after: DateLike, threshold_days: int, now: Optional[DateLike] = None) -> bool:
    """
    判断证书是否即将过期

    当 now + threshold_days >= not_after 时为真，按天比较，边界相等也算即将过期。

    Args:
        not_after: 证书有效期截止日期
        threshold_days: 提前警告天数
        now: 当前日期，默认为本机今天

    Returns:
        bool: 是否即将过期
    """
    expires = to_calendar_date(not_after)
    today = date.today() if now is None else to_calendar_date(now)

    return today + timedelta(days=threshold_days) >= expires


class ExpiryEvaluator:
    """证书过期判定器"""

    def __init__(self, policy: Optional[ExpiryPolicy] = None):
        """
        初始化过期判定器

        Args:
            policy: 过期策略，默认提前30天警告
        """
        self.policy = policy or ExpiryPolicy()

    @property
    def threshold_days(self) -> int:
        return self.policy.threshold_days

    def is_expiring_soon(self, not_after: DateLike, now: Optional[DateLike] = None) -> bool:
        """按策略判断是否即将过期"""
        return is_expiring_soon(not_after, self.policy.threshold_days, now)

    def days_until_expiry(self, not_after: DateLike, now: Optional[DateLike] = None) -> int:
        """
        计算距离过期的天数

        Returns:
            int: 剩余天数（负数表示已过期）
        """
        today = date.today() if now is None else to_calendar_date(now)
        return (to_calendar_date(not_after) - today).days
