import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from ordering.api.errors import register_error_handlers
from ordering.api.routes import (
    assignment_router,
    order_router,
    payment_router,
    rider_router,
    settings_router,
)

CHECKOUT_BODY = {
    "customer_name": "Aline Uwase",
    "customer_email": "aline@example.com",
    "customer_phone": "250788000111",
    "delivery_address": "KG 11 Ave, Kigali",
    "items": [
        {"product_id": "prod-001", "product_name": "Avocado (1kg)", "price": 1500, "quantity": 2},
        {"product_id": "prod-002", "product_name": "Passion Juice", "price": 2000, "quantity": 1},
    ],
    "tax": 1000,
    "payment_method": "mobile_money",
}


@pytest.fixture()
def client():
    app = FastAPI()
    app.include_router(order_router)
    app.include_router(payment_router)
    app.include_router(assignment_router)
    app.include_router(rider_router)
    app.include_router(settings_router)
    register_error_handlers(app)
    return TestClient(app)


@pytest.fixture()
def checkout(client):
    def _checkout(**overrides):
        response = client.post("/orders", json={**CHECKOUT_BODY, **overrides})
        assert response.status_code == 201, response.text
        return response.json()

    return _checkout


@pytest.fixture()
def rider(client):
    def _rider(full_name="Jean Habimana", phone="250788555000"):
        response = client.post("/riders", json={"full_name": full_name, "phone": phone})
        assert response.status_code == 201, response.text
        return response.json()["rider_id"]

    return _rider
