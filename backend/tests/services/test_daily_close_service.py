"""
DailyCloseService 测试
营业日窗口 [本地零点, 次日零点)，只统计已完成支付，快照创建后不可变
"""
import pytest
from datetime import date, datetime
from decimal import Decimal

from app.config import Settings
from app.models.ontology import DailyClose, PaymentMethod, PaymentStatus
from app.services.daily_close_service import DailyCloseService
from core.engine.audit import AuditAction
from core.result import ErrorKind


@pytest.fixture
def service(db_session, audit_engine):
    return DailyCloseService(db_session, audit_sink=audit_engine)


@pytest.fixture
def day_payments(confirmed_reservation, make_payment):
    """2025-01-02（UTC）内两笔已完成支付，另有一笔 pending 与一笔次日零点的支付"""
    make_payment(confirmed_reservation, 100, created_at=datetime(2025, 1, 2, 0, 0))
    make_payment(confirmed_reservation, 50, method=PaymentMethod.CARD,
                 created_at=datetime(2025, 1, 2, 15, 30))
    make_payment(confirmed_reservation, 70, status=PaymentStatus.PENDING,
                 created_at=datetime(2025, 1, 2, 9, 0))
    make_payment(confirmed_reservation, 30, created_at=datetime(2025, 1, 3, 0, 0))
    return confirmed_reservation


class TestPreview:

    def test_aggregates_completed_in_window(self, service, ctx, day_payments):
        summary = service.preview_daily_close(ctx, "2025-01-02").unwrap()
        assert summary.window_start == datetime(2025, 1, 2)
        assert summary.window_end == datetime(2025, 1, 3)
        assert summary.total_completed == Decimal("150.00")
        assert summary.count_completed == 2
        assert summary.by_method == {"cash": Decimal("100.00"), "card": Decimal("50.00")}
        assert [line.amount for line in summary.payments] == [Decimal("100.00"), Decimal("50.00")]

    def test_empty_day(self, service, ctx, sample_hotel):
        summary = service.preview_daily_close(ctx, "2024-12-31").unwrap()
        assert summary.total_completed == Decimal("0.00")
        assert summary.count_completed == 0
        assert summary.by_method == {}

    def test_preview_accepts_date_object(self, service, ctx, day_payments):
        summary = service.preview_daily_close(ctx, date(2025, 1, 2)).unwrap()
        assert summary.date_key == "2025-01-02"
        assert summary.count_completed == 2

    def test_preview_does_not_persist(self, service, ctx, db_session, day_payments):
        service.preview_daily_close(ctx, "2025-01-02").unwrap()
        assert db_session.query(DailyClose).count() == 0

    def test_reporting_offset_shifts_window(self, db_session, audit_engine, ctx, confirmed_reservation,
                                            make_payment):
        service = DailyCloseService(
            db_session, audit_sink=audit_engine, settings=Settings(REPORTING_UTC_OFFSET_MINUTES=480)
        )
        # UTC 2025-01-01 17:00 = 本地 2025-01-02 01:00
        make_payment(confirmed_reservation, 40, created_at=datetime(2025, 1, 1, 17, 0))
        # UTC 2025-01-02 17:00 = 本地 2025-01-03 01:00
        make_payment(confirmed_reservation, 60, created_at=datetime(2025, 1, 2, 17, 0))

        summary = service.preview_daily_close(ctx, "2025-01-02").unwrap()
        assert summary.window_start == datetime(2025, 1, 1, 16, 0)
        assert summary.total_completed == Decimal("40.00")

    def test_other_tenant_payments_excluded(self, service, other_ctx, day_payments):
        summary = service.preview_daily_close(other_ctx, "2025-01-02").unwrap()
        assert summary.count_completed == 0


class TestCreateDailyClose:

    def test_create_snapshot(self, service, ctx, sample_user, day_payments, audit_engine):
        result = service.create_daily_close(ctx, "2025-01-02", notes="夜审")
        assert result.ok
        close = result.value
        assert close.hotel_id == ctx.hotel_id
        assert close.total_completed == Decimal("150.00")
        assert close.count_completed == 2
        assert close.by_method == {"cash": "100.00", "card": "50.00"}
        assert close.created_by_id == sample_user.id
        assert close.notes == "夜审"
        entry = audit_engine.get_by_action(AuditAction.DAILY_CLOSE_CREATED)[0]
        assert entry.details["date_key"] == "2025-01-02"

    def test_accepts_payload(self, service, ctx, day_payments):
        close = service.create_daily_close(ctx, {"date_key": "2025-01-02", "notes": "n"}).unwrap()
        assert close.date_key == "2025-01-02"
        assert close.notes == "n"

    def test_accepts_date_object(self, service, ctx, day_payments):
        close = service.create_daily_close(ctx, date(2025, 1, 2)).unwrap()
        assert close.date_key == "2025-01-02"
        assert close.total_completed == Decimal("150.00")

    def test_payload_accepts_date_object(self, service, ctx, day_payments):
        close = service.create_daily_close(ctx, {"date_key": date(2025, 1, 2)}).unwrap()
        assert close.date_key == "2025-01-02"

    def test_duplicate_date(self, service, ctx, day_payments):
        first = service.create_daily_close(ctx, "2025-01-02").unwrap()
        result = service.create_daily_close(ctx, "2025-01-02")
        assert result.kind == ErrorKind.DAILY_CLOSE_EXISTS
        assert result.error.details == {"date_key": "2025-01-02", "existing_id": first.id}

    def test_same_date_other_tenant(self, service, ctx, other_ctx, day_payments):
        service.create_daily_close(ctx, "2025-01-02").unwrap()
        assert service.create_daily_close(other_ctx, "2025-01-02").ok

    def test_snapshot_is_immutable(self, service, ctx, day_payments, make_payment):
        close = service.create_daily_close(ctx, "2025-01-02").unwrap()
        make_payment(day_payments, 25, created_at=datetime(2025, 1, 2, 20, 0))

        stored = service.get_daily_close(ctx, close.id).unwrap()
        assert stored.total_completed == Decimal("150.00")
        preview = service.preview_daily_close(ctx, "2025-01-02").unwrap()
        assert preview.total_completed == Decimal("175.00")

    def test_defaults_to_today(self, service, ctx, sample_hotel):
        close = service.create_daily_close(ctx).unwrap()
        assert close.date_key == service.clock.today_key()

    @pytest.mark.parametrize("date_key", ["2025-13-01", "2025/01/02", "20250102", "2025-02-30"])
    def test_invalid_date_key(self, service, ctx, sample_hotel, date_key):
        result = service.create_daily_close(ctx, date_key)
        assert result.kind == ErrorKind.VALIDATION

    def test_invalid_key_message(self, service, ctx, sample_hotel):
        result = service.preview_daily_close(ctx, "2025-13-01")
        assert result.error.message == "Invalid date key"


class TestListDailyCloses:

    @pytest.fixture
    def closes(self, service, ctx, sample_hotel):
        return [
            service.create_daily_close(ctx, key).unwrap()
            for key in ("2025-01-01", "2025-01-02", "2025-01-03")
        ]

    def test_most_recent_first(self, service, ctx, closes):
        keys = [c.date_key for c in service.list_daily_closes(ctx).unwrap()]
        assert keys == ["2025-01-03", "2025-01-02", "2025-01-01"]

    def test_date_range(self, service, ctx, closes):
        found = service.list_daily_closes(ctx, date_from="2025-01-02", date_to="2025-01-02").unwrap()
        assert [c.date_key for c in found] == ["2025-01-02"]

    def test_default_limit(self, db_session, audit_engine, ctx, closes):
        service = DailyCloseService(
            db_session, audit_sink=audit_engine, settings=Settings(DAILY_CLOSE_LIST_LIMIT=2)
        )
        assert len(service.list_daily_closes(ctx).unwrap()) == 2
        # 指定范围时不套用默认条数
        assert len(service.list_daily_closes(ctx, date_from="2025-01-01").unwrap()) == 3

    def test_invalid_range_key(self, service, ctx, closes):
        result = service.list_daily_closes(ctx, date_from="yesterday")
        assert result.kind == ErrorKind.VALIDATION
        assert result.error.details["errors"][0]["field"] == "date_from"

    def test_get_other_tenant(self, service, other_ctx, closes):
        assert service.get_daily_close(other_ctx, closes[0].id).kind == ErrorKind.NOT_FOUND
