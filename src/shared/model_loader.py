# src/shared/model_loader.py
"""
Centralized, side-effect-only imports so SQLAlchemy mappers are registered
on AdminBase / TenantBase before any schema is created.
"""
import importlib

MODEL_MODULES = (
    "src.tenancy.infrastructure.models",
    "src.commerce.infrastructure.models",
)


def import_all_models() -> None:
    """Import model modules for their side-effects (mapper registration)."""
    for path in MODEL_MODULES:
        importlib.import_module(path)
