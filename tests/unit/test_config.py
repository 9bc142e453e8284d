import pytest

from src.shared.config import Settings


def test_defaults_are_valid():
    s = Settings()
    assert s.is_local and not s.is_prod
    assert s.transaction_isolation_level == "REPEATABLE READ"
    assert not s.exposes_internals


def test_debug_exposes_internals_only_in_local_or_dev():
    assert Settings(debug=True).exposes_internals
    assert not Settings(environment="prod", debug=True).exposes_internals


@pytest.mark.parametrize(
    "kwargs",
    [
        {"environment": "qa"},
        {"admin_database_url": "mysql://localhost/admin"},
        {"tenant_database_url_template": "sqlite+aiosqlite:///./tenant.db"},
        {"tenant_database_prefix": "Pharmacy-"},
        {"redis_url": "http://localhost:6379"},
        {"tenant_pool_min_size": 20, "tenant_pool_max_size": 10},
        {"transaction_max_attempts": 0},
        {"log_level": "VERBOSE"},
    ],
)
def test_invalid_settings_are_rejected(kwargs):
    with pytest.raises(ValueError):
        Settings(**kwargs)


def test_safe_dict_masks_urls():
    s = Settings(redis_url="redis://:secret@localhost:6379/0")
    safe = s.safe_dict()
    assert safe["redis_url"] == "<masked>"
    assert "secret" not in str(safe)
