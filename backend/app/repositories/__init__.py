from app.repositories.tenant_repository import TenantRepository

__all__ = ["TenantRepository"]
