"""
报表时钟
统一的固定偏移"营业日"：日结窗口与纯日期输入都由这里换算，
落库时间一律为 naive UTC
"""
import math
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Tuple, Union

from app.config import Settings, settings as default_settings

ONE_DAY = timedelta(days=1)

# 纯日期输入落在当天中午，避免跨时区后落到相邻日期
DATE_ONLY_ANCHOR = time(12, 0)


class ReportingClock:
    """报表时区换算"""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or default_settings

    @property
    def tz(self) -> timezone:
        return self.settings.reporting_timezone

    def to_storage(self, moment: Union[datetime, date]) -> datetime:
        """
        转为落库用的 naive UTC
        - date：报表时区当天中午
        - naive datetime：视为报表时区的本地时间
        - aware datetime：直接换算到 UTC
        """
        if not isinstance(moment, datetime):
            moment = datetime.combine(moment, DATE_ONLY_ANCHOR)
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=self.tz)
        return moment.astimezone(timezone.utc).replace(tzinfo=None)

    def now(self) -> datetime:
        """当前时间（naive UTC）"""
        return datetime.now(timezone.utc).replace(tzinfo=None)

    def today_key(self, now: Optional[datetime] = None) -> str:
        """报表时区的今天，格式 YYYY-MM-DD"""
        now = now or self.now()
        local = now.replace(tzinfo=timezone.utc).astimezone(self.tz)
        return local.date().isoformat()

    def day_window(self, date_key: str) -> Tuple[datetime, datetime]:
        """营业日窗口 [本地零点, 次日零点)，换算为 naive UTC"""
        day = parse_date_key(date_key)
        start_local = datetime.combine(day, time.min).replace(tzinfo=self.tz)
        start = start_local.astimezone(timezone.utc).replace(tzinfo=None)
        return start, start + ONE_DAY

    def quantize(self, value) -> Decimal:
        """按货币最小单位四舍五入"""
        return Decimal(str(value)).quantize(self.settings.currency_quantum, rounding=ROUND_HALF_UP)


def parse_date_key(date_key: str) -> date:
    """解析 YYYY-MM-DD；格式或日期非法时抛出 ValueError"""
    if not isinstance(date_key, str) or len(date_key) != 10:
        raise ValueError(f"Invalid date key: {date_key!r}")
    return date.fromisoformat(date_key)


def nights_between(check_in: datetime, check_out: datetime) -> int:
    """晚数 = ceil(时长 / 1天)，最少 1 晚"""
    seconds = (check_out - check_in).total_seconds()
    return max(1, math.ceil(seconds / ONE_DAY.total_seconds()))


__all__ = ["ReportingClock", "parse_date_key", "nights_between", "ONE_DAY"]
