"""
core/security/context.py

租户上下文 - 每次读写都必须带上的作用域标识
由外部认证层提供，核心不关心其来源，只显式地逐个操作传入。
"""
from typing import Any, Dict, Optional
from dataclasses import dataclass, field


@dataclass(frozen=True)
class TenantContext:
    """
    租户上下文

    Attributes:
        hotel_id: 租户（酒店）ID
        actor_id: 操作人ID（可选，仅用于审计与 created_by）
        role: 角色（不透明，核心不做授权）
        metadata: 额外元数据
    """

    hotel_id: int
    actor_id: Optional[int] = None
    role: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    def is_valid(self) -> bool:
        return isinstance(self.hotel_id, int) and not isinstance(self.hotel_id, bool) and self.hotel_id > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hotel_id": self.hotel_id,
            "actor_id": self.actor_id,
            "role": self.role,
            "metadata": self.metadata,
        }

    def __repr__(self) -> str:
        return f"TenantContext(hotel_id={self.hotel_id}, actor_id={self.actor_id}, role={self.role!r})"


__all__ = ["TenantContext"]
