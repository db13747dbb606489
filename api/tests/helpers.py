import os

ADMIN_HEADERS = {"X-Access-Token": os.getenv("ADMIN_ACCESS_TOKEN", "admin-test-token")}
SCHEDULER_HEADERS = {"X-Access-Token": os.getenv("SCHEDULER_TOKEN", "scheduler-test-token")}


def create_client(client, name="Acme Robotics", headers=ADMIN_HEADERS):
    response = client.post(
        "/api/clients",
        json={"name": name, "address": "ul. Prosta 1", "city": "Warszawa"},
        headers=headers,
    )
    assert response.status_code == 201
    return response.json()["id"]


def create_offer(client, client_id, number="OF-2026-001", headers=ADMIN_HEADERS, **extra):
    response = client.post(
        "/api/offers",
        json={"offer_number": number, "client_id": client_id, **extra},
        headers=headers,
    )
    assert response.status_code == 201
    return response.json()


def add_item(client, offer_id, robot_model="TM-100", quantity=2, unit_price=1500.0, headers=ADMIN_HEADERS):
    return client.post(
        f"/api/offers/{offer_id}/items",
        json={"robot_model": robot_model, "quantity": quantity, "unit_price": unit_price},
        headers=headers,
    )
