import pytest

from src.shared.exceptions import ConflictError, NotFoundError, TenantInactiveError
from src.tenancy.application.tenant_directory import TenantDirectory
from src.tenancy.domain.enums import SubscriptionPlan, SubscriptionStatus


@pytest.fixture
def directory(router):
    return TenantDirectory(router)


@pytest.mark.asyncio
async def test_register_provisions_partition(directory, router):
    tenant = await directory.register(
        tenant_id="green-cross", pharmacy_name="Green Cross", owner_name="Karim", email="Owner@GreenCross.com "
    )
    assert tenant.email == "owner@greencross.com"
    assert tenant.subscription_status == SubscriptionStatus.TRIAL
    assert "green-cross" in router.get_stats()["tenant_ids"]
    assert (await directory.get("green-cross")).pharmacy_name == "Green Cross"


@pytest.mark.asyncio
async def test_register_rejects_duplicates(directory):
    await directory.register(tenant_id="dup", pharmacy_name="A", owner_name="A", email="a@example.com")
    with pytest.raises(ConflictError):
        await directory.register(tenant_id="dup2", pharmacy_name="B", owner_name="B", email="a@example.com")


@pytest.mark.asyncio
async def test_unknown_tenant(directory):
    with pytest.raises(NotFoundError) as exc:
        await directory.get("nobody")
    assert exc.value.code == "tenant_not_found"


@pytest.mark.asyncio
async def test_suspension_and_deactivation(directory, router):
    await directory.register(tenant_id="late-payer", pharmacy_name="L", owner_name="L", email="l@example.com")
    await directory.update_subscription(
        "late-payer", plan=SubscriptionPlan.PROFESSIONAL, status=SubscriptionStatus.SUSPENDED
    )
    with pytest.raises(TenantInactiveError):
        await directory.require_active("late-payer")

    await directory.update_subscription("late-payer", status=SubscriptionStatus.ACTIVE)
    assert (await directory.require_active("late-payer")).subscription_plan == SubscriptionPlan.PROFESSIONAL

    await directory.deactivate("late-payer")
    assert "late-payer" not in router.get_stats()["tenant_ids"]
    with pytest.raises(TenantInactiveError):
        await directory.require_active("late-payer")
