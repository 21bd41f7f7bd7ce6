"""
客人服务 - 本体操作层
同一酒店内 email 唯一；仍被预订引用的客人不能删除
"""
import logging
from typing import List, Optional

from sqlalchemy.exc import IntegrityError

from app.database import transaction
from app.models.ontology import Guest
from app.models.schemas import GuestCreate, GuestUpdate, parse_payload
from app.repositories.tenant_repository import TenantRepository
from app.services.base import TenantScopedService, not_found
from core.engine.audit import AuditAction
from core.result import DomainFailure, ErrorKind, service_operation, validation_failure
from core.security.context import TenantContext

logger = logging.getLogger(__name__)


def _duplicate_email(email: str) -> DomainFailure:
    return validation_failure(
        [{"field": "email", "message": f"Guest with email {email} already exists"}]
    )


class GuestService(TenantScopedService):
    """客人服务"""

    def _ensure_unique_email(
        self,
        repo: TenantRepository,
        email: Optional[str],
        guest_id: Optional[int] = None,
    ) -> None:
        if not email:
            return
        existing = repo.get_guest_by_email(email)
        if existing and existing.id != guest_id:
            raise _duplicate_email(email)

    @service_operation
    def create_guest(self, ctx: TenantContext, payload) -> Guest:
        data = parse_payload(GuestCreate, payload)
        repo = self._repo(ctx)
        try:
            with transaction(self.db):
                self._ensure_unique_email(repo, data.email)
                guest = Guest(hotel_id=ctx.hotel_id, **data.model_dump())
                self.db.add(guest)
        except IntegrityError:
            # 并发创建同一 email，由唯一约束裁决
            raise _duplicate_email(data.email)
        self.db.refresh(guest)

        logger.info(f"Guest {guest.id} created for hotel {ctx.hotel_id}")
        self._audit(ctx, AuditAction.GUEST_CREATED, "Guest", guest.id, name=guest.name)
        return guest

    @service_operation
    def update_guest(self, ctx: TenantContext, guest_id: int, payload) -> Guest:
        data = parse_payload(GuestUpdate, payload)
        updates = data.model_dump(exclude_unset=True)
        if "name" in updates and updates["name"] is None:
            raise validation_failure([{"field": "name", "message": "Name is required"}])

        repo = self._repo(ctx)
        try:
            with transaction(self.db):
                guest = repo.get_guest(guest_id)
                if not guest:
                    raise not_found("Guest", guest_id)
                if updates.get("email") and updates["email"] != guest.email:
                    self._ensure_unique_email(repo, updates["email"], guest.id)
                for field, value in updates.items():
                    setattr(guest, field, value)
        except IntegrityError:
            raise _duplicate_email(updates.get("email"))
        self.db.refresh(guest)

        self._audit(ctx, AuditAction.GUEST_UPDATED, "Guest", guest.id,
                    changes=data.model_dump(mode="json", exclude_unset=True))
        return guest

    @service_operation
    def delete_guest(self, ctx: TenantContext, guest_id: int) -> int:
        """有预订（含已取消、已退房）引用的客人不能删除"""
        repo = self._repo(ctx)
        with transaction(self.db):
            guest = repo.get_guest(guest_id)
            if not guest:
                raise not_found("Guest", guest_id)

            referenced = repo.count_reservations_for_guest(guest.id)
            if referenced:
                raise DomainFailure(
                    ErrorKind.GUEST_HAS_RESERVATIONS,
                    "Guest still has reservations",
                    guest_id=guest.id,
                    reservation_count=referenced,
                )
            self.db.delete(guest)

        logger.info(f"Guest {guest_id} deleted from hotel {ctx.hotel_id}")
        self._audit(ctx, AuditAction.GUEST_DELETED, "Guest", guest_id)
        return guest_id

    @service_operation
    def get_guest(self, ctx: TenantContext, guest_id: int) -> Guest:
        guest = self._repo(ctx).get_guest(guest_id)
        if not guest:
            raise not_found("Guest", guest_id)
        return guest

    @service_operation
    def list_guests(
        self,
        ctx: TenantContext,
        search: Optional[str] = None,
        limit: int = 100,
    ) -> List[Guest]:
        """按姓名、邮箱、电话、证件号、地址模糊搜索，新建的在前"""
        search = search.strip() if isinstance(search, str) else None
        return self._repo(ctx).list_guests(search=search or None, limit=limit)
