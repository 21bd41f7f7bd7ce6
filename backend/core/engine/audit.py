"""
core/engine/audit.py

审计日志引擎 - 记录状态变更操作
审计是"发后即忘"的：sink 失败只记录告警，绝不让主操作失败。
"""
from typing import Any, Callable, Dict, List, Optional
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
import logging

logger = logging.getLogger(__name__)


class AuditAction(str, Enum):
    """审计动作"""
    RESERVATION_CREATED = "RESERVATION_CREATED"
    RESERVATION_UPDATED = "RESERVATION_UPDATED"
    RESERVATION_ROOM_MOVED = "RESERVATION_ROOM_MOVED"
    RESERVATION_STATUS_CHANGED = "RESERVATION_STATUS_CHANGED"
    PAYMENT_CREATED = "PAYMENT_CREATED"
    PAYMENT_UPDATED = "PAYMENT_UPDATED"
    PAYMENT_DELETED = "PAYMENT_DELETED"
    CHARGE_CREATED = "CHARGE_CREATED"
    CHARGE_UPDATED = "CHARGE_UPDATED"
    CHARGE_DELETED = "CHARGE_DELETED"
    ROOM_TYPE_CREATED = "ROOM_TYPE_CREATED"
    ROOM_TYPE_UPDATED = "ROOM_TYPE_UPDATED"
    ROOM_CREATED = "ROOM_CREATED"
    ROOM_UPDATED = "ROOM_UPDATED"
    ROOM_STATUS_CHANGED = "ROOM_STATUS_CHANGED"
    ROOM_DELETED = "ROOM_DELETED"
    GUEST_CREATED = "GUEST_CREATED"
    GUEST_UPDATED = "GUEST_UPDATED"
    GUEST_DELETED = "GUEST_DELETED"
    DAILY_CLOSE_CREATED = "DAILY_CLOSE_CREATED"


@dataclass
class AuditEntry:
    """
    审计日志条目

    Attributes:
        hotel_id: 租户
        action: 操作类型
        actor_id: 操作人ID
        entity_type: 实体类型
        entity_id: 实体ID
        details: 额外信息（必须可 JSON 序列化）
        timestamp: 时间戳
    """

    hotel_id: int
    action: AuditAction
    actor_id: Optional[int] = None
    entity_type: Optional[str] = None
    entity_id: Optional[int] = None
    details: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hotel_id": self.hotel_id,
            "action": self.action.value,
            "actor_id": self.actor_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
        }


AuditSink = Callable[[AuditEntry], None]


def emit_audit(sink: Optional[AuditSink], entry: AuditEntry) -> None:
    """调用 sink；任何异常都被记录并吞掉"""
    if sink is None:
        return
    try:
        sink(entry)
    except Exception as e:
        logger.warning(f"Audit sink failed for {entry.action.value}: {e}")


class AuditEngine:
    """
    内存审计引擎，可直接作为 AuditSink 使用

    Example:
        >>> engine = AuditEngine()
        >>> emit_audit(engine, AuditEntry(hotel_id=1, action=AuditAction.ROOM_CREATED,
        ...                               entity_type="Room", entity_id=101))
        >>> len(engine.get_by_entity("Room", 101))
        1
    """

    def __init__(self, max_logs: int = 10000):
        self._logs: List[AuditEntry] = []
        self._max_logs = max_logs

    def __call__(self, entry: AuditEntry) -> None:
        self.log(entry)

    def log(self, entry: AuditEntry) -> AuditEntry:
        self._logs.append(entry)
        if len(self._logs) > self._max_logs:
            self._logs.pop(0)
        logger.debug(f"Audit log: {entry.action.value} by {entry.actor_id} on {entry.entity_type}:{entry.entity_id}")
        return entry

    def get_all(self) -> List[AuditEntry]:
        return list(self._logs)

    def get_by_action(self, action: AuditAction) -> List[AuditEntry]:
        return [log for log in self._logs if log.action == action]

    def get_by_entity(self, entity_type: str, entity_id: int) -> List[AuditEntry]:
        return [
            log for log in self._logs
            if log.entity_type == entity_type and log.entity_id == entity_id
        ]

    def clear(self) -> None:
        """清空日志（用于测试）"""
        self._logs.clear()


__all__ = [
    "AuditAction",
    "AuditEntry",
    "AuditSink",
    "emit_audit",
    "AuditEngine",
]
