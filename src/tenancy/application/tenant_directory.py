"""
Control-plane tenant records: registration, lookup, subscription changes and
soft deactivation. Tenants are never physically deleted.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import select

from src.shared.exceptions import ConflictError, NotFoundError, TenantInactiveError
from src.shared.logging import get_logger
from src.tenancy.domain.enums import SubscriptionPlan, SubscriptionStatus
from src.tenancy.infrastructure.connection_router import TenantConnectionRouter
from src.tenancy.infrastructure.models import Tenant

logger = get_logger(__name__)

TRIAL_DAYS = 14


class TenantDirectory:
    def __init__(self, router: TenantConnectionRouter) -> None:
        self._router = router

    async def register(
        self,
        *,
        tenant_id: str,
        pharmacy_name: str,
        owner_name: str,
        email: str,
        phone: Optional[str] = None,
        plan: SubscriptionPlan = SubscriptionPlan.BASIC,
        now: Optional[datetime] = None,
    ) -> Tenant:
        """Create the tenant record, then provision its data partition."""
        self._router.database_name_for(tenant_id)
        now = now or datetime.now(timezone.utc)
        email = email.strip().lower()
        admin = self._router.get_admin_connection()
        async with admin.session() as session:
            async with session.begin():
                existing = await session.scalar(
                    select(Tenant).where((Tenant.id == tenant_id) | (Tenant.email == email))
                )
                if existing is not None:
                    raise ConflictError("Tenant already exists", code="tenant_conflict", details={"tenantId": tenant_id})
                tenant = Tenant(
                    id=tenant_id,
                    pharmacy_name=pharmacy_name.strip(),
                    owner_name=owner_name.strip(),
                    email=email,
                    phone=phone,
                    subscription_plan=plan,
                    subscription_status=SubscriptionStatus.TRIAL,
                    subscription_start_date=now,
                    subscription_end_date=now + timedelta(days=TRIAL_DAYS),
                    is_active=True,
                )
                session.add(tenant)

        await self._router.provision_partition(tenant_id)
        logger.info("Tenant registered", tenant_id=tenant_id, plan=plan.value)
        return tenant

    async def get(self, tenant_id: str) -> Tenant:
        admin = self._router.get_admin_connection()
        async with admin.session() as session:
            tenant = await session.get(Tenant, tenant_id)
        if tenant is None:
            raise NotFoundError("Tenant not found", code="tenant_not_found", details={"tenantId": tenant_id})
        return tenant

    async def require_active(self, tenant_id: str) -> Tenant:
        tenant = await self.get(tenant_id)
        if not tenant.is_active or tenant.subscription_status in (
            SubscriptionStatus.SUSPENDED,
            SubscriptionStatus.CANCELLED,
        ):
            raise TenantInactiveError("Tenant is inactive", details={"tenantId": tenant_id})
        return tenant

    async def update_subscription(
        self,
        tenant_id: str,
        *,
        plan: Optional[SubscriptionPlan] = None,
        status: Optional[SubscriptionStatus] = None,
        end_date: Optional[datetime] = None,
    ) -> Tenant:
        admin = self._router.get_admin_connection()
        async with admin.session() as session:
            async with session.begin():
                tenant = await session.get(Tenant, tenant_id)
                if tenant is None:
                    raise NotFoundError("Tenant not found", code="tenant_not_found", details={"tenantId": tenant_id})
                if plan is not None:
                    tenant.subscription_plan = plan
                if status is not None:
                    tenant.subscription_status = status
                if end_date is not None:
                    tenant.subscription_end_date = end_date
        logger.info("Tenant subscription updated", tenant_id=tenant_id, plan=plan, status=status)
        return tenant

    async def deactivate(self, tenant_id: str) -> Tenant:
        admin = self._router.get_admin_connection()
        async with admin.session() as session:
            async with session.begin():
                tenant = await session.get(Tenant, tenant_id)
                if tenant is None:
                    raise NotFoundError("Tenant not found", code="tenant_not_found", details={"tenantId": tenant_id})
                tenant.is_active = False
        await self._router.close_tenant_connection(tenant_id)
        logger.info("Tenant deactivated", tenant_id=tenant_id)
        return tenant
