"""
日结服务 - 本体操作层
每个租户每个营业日只生成一次不可变的已完成支付快照
(hotel_id, date_key) 唯一约束是并发日结的最终裁决者
"""
import logging
import re
from collections import OrderedDict
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError

from app.database import transaction
from app.models.ontology import DailyClose, Payment, money
from app.models.schemas import (
    DATE_KEY_PATTERN, DailyCloseCreate, DailyClosePaymentLine, DailyCloseSummary,
    parse_payload,
)
from app.repositories.tenant_repository import TenantRepository
from app.services.base import TenantScopedService, not_found
from app.services.reporting_clock import parse_date_key
from core.engine.audit import AuditAction
from core.result import DomainFailure, ErrorKind, service_operation, validation_failure
from core.security.context import TenantContext

logger = logging.getLogger(__name__)


class DailyCloseService(TenantScopedService):
    """日结服务"""

    def _date_key(self, date_key: Optional[str], field: str = "date_key") -> str:
        """缺省为报表时区的今天；接受 date 或 YYYY-MM-DD，格式非法时 ValidationError"""
        if isinstance(date_key, date) and not isinstance(date_key, datetime):
            return date_key.isoformat()
        if date_key is None or (isinstance(date_key, str) and not date_key.strip()):
            return self.clock.today_key()
        try:
            date_key = date_key.strip()
            if not re.match(DATE_KEY_PATTERN, date_key):
                raise ValueError(date_key)
            parse_date_key(date_key)
        except (AttributeError, ValueError):
            raise validation_failure(
                [{"field": field, "message": "Date must be YYYY-MM-DD"}],
                message="Invalid date key",
            )
        return date_key

    def _aggregate(
        self,
        repo: TenantRepository,
        date_key: str,
    ) -> Tuple[DailyCloseSummary, List[Payment]]:
        """汇总营业日窗口内的已完成支付"""
        start, end = self.clock.day_window(date_key)
        payments = repo.completed_payments_between(start, end)

        by_method: Dict[str, Decimal] = OrderedDict()
        total = Decimal("0")
        for payment in payments:
            amount = money(payment.amount)
            method = payment.method.value
            by_method[method] = by_method.get(method, Decimal("0")) + amount
            total += amount

        summary = DailyCloseSummary(
            date_key=date_key,
            window_start=start,
            window_end=end,
            total_completed=self.clock.quantize(total),
            count_completed=len(payments),
            by_method={m: self.clock.quantize(v) for m, v in by_method.items()},
            payments=[DailyClosePaymentLine.model_validate(p) for p in payments],
        )
        return summary, payments

    @service_operation
    def preview_daily_close(
        self,
        ctx: TenantContext,
        date_key: Optional[str] = None,
    ) -> DailyCloseSummary:
        """只读预览，不落库"""
        date_key = self._date_key(date_key)
        summary, _ = self._aggregate(self._repo(ctx), date_key)
        return summary

    @service_operation
    def create_daily_close(
        self,
        ctx: TenantContext,
        date_key: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> DailyClose:
        """
        创建日结快照
        同一 (租户, date_key) 已存在时返回 DailyCloseExists；创建后永不重算
        """
        if isinstance(date_key, (dict, DailyCloseCreate)):
            data = parse_payload(DailyCloseCreate, date_key)
            date_key = data.date_key
            if notes is None:
                notes = data.notes
        date_key = self._date_key(date_key)
        repo = self._repo(ctx)

        try:
            with transaction(self.db):
                existing = repo.get_daily_close_by_date(date_key)
                if existing:
                    raise _already_closed(date_key, existing.id)

                summary, _ = self._aggregate(repo, date_key)
                creator = repo.get_user(ctx.actor_id) if ctx.actor_id else None
                daily_close = DailyClose(
                    hotel_id=ctx.hotel_id,
                    date_key=date_key,
                    window_start=summary.window_start,
                    window_end=summary.window_end,
                    total_completed=summary.total_completed,
                    count_completed=summary.count_completed,
                    by_method={m: str(v) for m, v in summary.by_method.items()},
                    created_by_id=creator.id if creator else None,
                    notes=notes,
                )
                self.db.add(daily_close)
        except IntegrityError:
            # 并发日结：唯一约束兜底
            existing = repo.get_daily_close_by_date(date_key)
            logger.warning(f"Concurrent daily close for hotel {ctx.hotel_id} on {date_key}")
            raise _already_closed(date_key, existing.id if existing else None)
        self.db.refresh(daily_close)

        logger.info(
            f"Daily close {date_key} for hotel {ctx.hotel_id}: "
            f"{daily_close.count_completed} payments, total {daily_close.total_completed}"
        )
        self._audit(ctx, AuditAction.DAILY_CLOSE_CREATED, "DailyClose", daily_close.id,
                    date_key=date_key, total_completed=str(daily_close.total_completed),
                    count_completed=daily_close.count_completed)
        return daily_close

    @service_operation
    def list_daily_closes(
        self,
        ctx: TenantContext,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[DailyClose]:
        """最近的在前；未给日期范围时默认取最近 DAILY_CLOSE_LIST_LIMIT 条"""
        if date_from is not None:
            date_from = self._date_key(date_from, "date_from")
        if date_to is not None:
            date_to = self._date_key(date_to, "date_to")
        if limit is None and date_from is None and date_to is None:
            limit = self.settings.DAILY_CLOSE_LIST_LIMIT
        return self._repo(ctx).list_daily_closes(date_from=date_from, date_to=date_to, limit=limit)

    @service_operation
    def get_daily_close(self, ctx: TenantContext, daily_close_id: int) -> DailyClose:
        daily_close = self._repo(ctx).get_daily_close(daily_close_id)
        if not daily_close:
            raise not_found("DailyClose", daily_close_id)
        return daily_close


def _already_closed(date_key: str, existing_id: Optional[int]) -> DomainFailure:
    return DomainFailure(
        ErrorKind.DAILY_CLOSE_EXISTS,
        f"Daily close for {date_key} already exists",
        date_key=date_key,
        existing_id=existing_id,
    )
