"""
core/security - 安全模块

- context: 租户上下文（由外部认证层提供）
"""
from core.security.context import TenantContext

__all__ = ["TenantContext"]
