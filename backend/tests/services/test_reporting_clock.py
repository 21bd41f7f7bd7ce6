"""
ReportingClock 测试
"""
import pytest
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

from pydantic import ValidationError

from app.config import Settings
from app.services.reporting_clock import ReportingClock, nights_between, parse_date_key


@pytest.fixture
def utc_clock():
    return ReportingClock(Settings(REPORTING_UTC_OFFSET_MINUTES=0))


@pytest.fixture
def shanghai_clock():
    return ReportingClock(Settings(REPORTING_UTC_OFFSET_MINUTES=480))


class TestToStorage:

    def test_date_anchors_at_local_noon(self, utc_clock, shanghai_clock):
        assert utc_clock.to_storage(date(2025, 3, 1)) == datetime(2025, 3, 1, 12, 0)
        assert shanghai_clock.to_storage(date(2025, 3, 1)) == datetime(2025, 3, 1, 4, 0)

    def test_naive_is_local(self, shanghai_clock):
        assert shanghai_clock.to_storage(datetime(2025, 3, 1, 9, 0)) == datetime(2025, 3, 1, 1, 0)

    def test_aware_is_converted(self, shanghai_clock):
        moment = datetime(2025, 3, 1, 9, 0, tzinfo=timezone(timedelta(hours=-5)))
        assert shanghai_clock.to_storage(moment) == datetime(2025, 3, 1, 14, 0)


class TestDayWindow:

    def test_utc_window(self, utc_clock):
        assert utc_clock.day_window("2025-01-02") == (datetime(2025, 1, 2), datetime(2025, 1, 3))

    def test_offset_window(self, shanghai_clock):
        start, end = shanghai_clock.day_window("2025-01-02")
        assert start == datetime(2025, 1, 1, 16, 0)
        assert end - start == timedelta(days=1)

    def test_today_key_uses_local_date(self, shanghai_clock):
        assert shanghai_clock.today_key(datetime(2025, 1, 1, 17, 0)) == "2025-01-02"


class TestHelpers:

    @pytest.mark.parametrize("value", ["2025-1-2", "2025-02-30", "", None])
    def test_parse_date_key_rejects(self, value):
        with pytest.raises(ValueError):
            parse_date_key(value)

    @pytest.mark.parametrize("hours,nights", [(1, 1), (24, 1), (25, 2), (48, 2), (49, 3)])
    def test_nights_between(self, hours, nights):
        start = datetime(2025, 1, 1, 12, 0)
        assert nights_between(start, start + timedelta(hours=hours)) == nights

    def test_quantize_half_up(self, utc_clock):
        assert utc_clock.quantize("2.675") == Decimal("2.68")
        assert utc_clock.quantize(Decimal("2.665")) == Decimal("2.67")

    def test_quantize_respects_currency_decimals(self):
        clock = ReportingClock(Settings(CURRENCY_DECIMALS=0))
        assert clock.quantize("10.5") == Decimal("11")

    @pytest.mark.parametrize("decimals", [3, 4, -1])
    def test_currency_decimals_bounded_by_money_columns(self, decimals):
        # 金额列只保存两位小数
        with pytest.raises(ValidationError):
            Settings(CURRENCY_DECIMALS=decimals)

    def test_removed_settings_are_gone(self):
        assert not hasattr(Settings(), "APP_NAME")
        assert not hasattr(Settings(), "DEBUG")
