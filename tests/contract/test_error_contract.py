import pytest
from fastapi.testclient import TestClient

from src.main import create_app
from src.shared.exceptions import NotFoundError, StateConflictError, TransientStorageError, ValidationError


@pytest.fixture
def app(settings):
    app = create_app(settings)

    @app.get("/_boom/validation")
    async def validation():
        raise ValidationError({"items.0.quantity": "Quantity must be at least 1"}, context="sale")

    @app.get("/_boom/not-found")
    async def not_found():
        raise NotFoundError("Sale not found", code="sale_not_found", details={"saleId": "abc"})

    @app.get("/_boom/conflict")
    async def conflict():
        raise StateConflictError("Purchase already received", code="purchase_not_receivable")

    @app.get("/_boom/busy")
    async def busy():
        raise TransientStorageError("sale.create failed after 3 attempts")

    @app.get("/_boom/crash")
    async def crash():
        raise RuntimeError("secret internals")

    @app.get("/_boom/typed")
    async def typed(limit: int):
        return {"limit": limit}

    return app


@pytest.fixture
def client(app):
    return TestClient(app, raise_server_exceptions=False)


def test_validation_errors_are_field_keyed(client):
    r = client.get("/_boom/validation", headers={"X-Request-ID": "req-123"})
    assert r.status_code == 400
    body = r.json()
    assert body["code"] == "validation_error"
    assert body["details"] == {"errors": {"items.0.quantity": "Quantity must be at least 1"}, "context": "sale"}
    assert body["correlation_id"] == "req-123"
    assert r.headers["X-Request-ID"] == "req-123"


@pytest.mark.parametrize(
    "path, status, code",
    [
        ("/_boom/not-found", 404, "sale_not_found"),
        ("/_boom/conflict", 409, "purchase_not_receivable"),
        ("/_boom/busy", 503, "transient_storage_error"),
    ],
)
def test_domain_errors_map_to_status(client, path, status, code):
    r = client.get(path)
    assert r.status_code == status
    assert r.json()["code"] == code
    assert r.json()["correlation_id"]


def test_request_validation_uses_same_shape(client):
    r = client.get("/_boom/typed", params={"limit": "many"})
    assert r.status_code == 400
    body = r.json()
    assert body["code"] == "validation_error"
    assert "query.limit" in body["details"]["errors"]


def test_unhandled_errors_hide_internals(client):
    r = client.get("/_boom/crash")
    assert r.status_code == 500
    body = r.json()
    assert body["code"] == "internal_error"
    assert "details" not in body
    assert "secret" not in r.text
