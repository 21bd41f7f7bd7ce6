"""
租户服务基类
每个操作显式接收 TenantContext；db / audit_sink / settings 由构造函数注入
"""
import logging
from typing import Any, Optional

from sqlalchemy.orm import Session

from app.config import Settings, settings as default_settings
from app.repositories.tenant_repository import TenantRepository
from app.services.audit_service import DatabaseAuditSink
from app.services.reporting_clock import ReportingClock
from core.engine.audit import AuditAction, AuditEntry, AuditSink, emit_audit
from core.result import DomainFailure, ErrorKind, validation_failure
from core.security.context import TenantContext

logger = logging.getLogger(__name__)


def not_found(entity: str, entity_id: Any) -> DomainFailure:
    """跨租户访问同样报告为 NotFound"""
    return DomainFailure(ErrorKind.NOT_FOUND, f"{entity} not found", entity=entity, id=entity_id)


class TenantScopedService:
    """租户作用域服务基类"""

    def __init__(
        self,
        db: Session,
        audit_sink: Optional[AuditSink] = None,
        settings: Optional[Settings] = None,
    ):
        self.db = db
        # 支持依赖注入审计 sink，便于测试
        self._audit_sink = audit_sink or DatabaseAuditSink(db)
        self.settings = settings or default_settings
        self.clock = ReportingClock(self.settings)

    def _repo(self, ctx: TenantContext) -> TenantRepository:
        if not isinstance(ctx, TenantContext) or not ctx.is_valid():
            raise validation_failure(
                [{"field": "tenant", "message": "A valid tenant context is required"}],
                message="Missing tenant context",
            )
        return TenantRepository(self.db, ctx.hotel_id)

    def _audit(
        self,
        ctx: TenantContext,
        action: AuditAction,
        entity_type: str,
        entity_id: Optional[int],
        **details: Any,
    ) -> None:
        """提交之后调用，发后即忘"""
        emit_audit(self._audit_sink, AuditEntry(
            hotel_id=ctx.hotel_id,
            action=action,
            actor_id=ctx.actor_id,
            entity_type=entity_type,
            entity_id=entity_id,
            details=details,
        ))
