"""
审计服务 - 数据库审计落地
作为 AuditSink 在主事务提交之后调用；失败时回滚自己的写入并把异常抛给 emit_audit 记录
"""
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from app.database import transaction
from app.models.ontology import AuditLog
from core.engine.audit import AuditEntry

logger = logging.getLogger(__name__)


class DatabaseAuditSink:
    """把审计条目写入 audit_logs 表"""

    def __init__(self, db: Session):
        self.db = db

    def __call__(self, entry: AuditEntry) -> None:
        with transaction(self.db):
            self.db.add(AuditLog(
                hotel_id=entry.hotel_id,
                actor_user_id=entry.actor_id,
                action=entry.action.value,
                entity_type=entry.entity_type,
                entity_id=entry.entity_id,
                details=entry.details,
                created_at=entry.timestamp,
            ))

    def list_logs(
        self,
        hotel_id: int,
        entity_type: Optional[str] = None,
        entity_id: Optional[int] = None,
        limit: int = 100,
    ) -> List[AuditLog]:
        """按租户查询审计日志（最新在前）"""
        query = self.db.query(AuditLog).filter(AuditLog.hotel_id == hotel_id)
        if entity_type:
            query = query.filter(AuditLog.entity_type == entity_type)
        if entity_id is not None:
            query = query.filter(AuditLog.entity_id == entity_id)
        return query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(limit).all()
