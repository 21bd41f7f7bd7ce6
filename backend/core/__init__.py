"""
core - 领域无关的运行时框架

该框架独立于具体领域，包含：
- result: 统一操作结果与错误分类
- engine: 核心引擎（状态机, 审计）
- security: 租户上下文

使用方式:
    >>> from core.result import OperationResult, ErrorKind
    >>> from core.engine import StateMachine, AuditEngine
    >>> from core.security import TenantContext
"""
