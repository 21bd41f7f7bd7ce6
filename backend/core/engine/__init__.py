"""
core/engine - 核心引擎模块

- state_machine: 状态机引擎（转换表校验）
- audit: 审计日志引擎（发后即忘的审计 sink）
"""

# 状态机
from core.engine.state_machine import (
    StateTransition,
    StateMachineConfig,
    InvalidTransitionError,
    StateMachine,
)

# 审计
from core.engine.audit import (
    AuditAction,
    AuditEntry,
    AuditSink,
    emit_audit,
    AuditEngine,
)

__all__ = [
    "StateTransition",
    "StateMachineConfig",
    "InvalidTransitionError",
    "StateMachine",
    "AuditAction",
    "AuditEntry",
    "AuditSink",
    "emit_audit",
    "AuditEngine",
]
