import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database import Base, get_db
from main import app
from models import Bill, PaymentSource, PaymentSourceType


@pytest.fixture
def client():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    TestingSession = sessionmaker(bind=engine, expire_on_commit=False)

    with TestingSession() as session:
        source = PaymentSource(
            name="Checking", type=PaymentSourceType.bank_account, balance=50000
        )
        session.add(source)
        session.flush()
        session.add(
            Bill(name="Rent", amount=30000, day_of_month=1, payment_source_id=source.id)
        )
        session.commit()

    def override_get_db():
        db = TestingSession()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()
    engine.dispose()


def _headers(client):
    token = client.get("/api/csrf-token").json()["token"]
    return {"X-CSRF-Token": token}


def test_mutations_require_csrf_token(client):
    response = client.post("/api/months/2025-01/generate")
    assert response.status_code == 400
    response = client.post(
        "/api/months/2025-01/generate", headers={"X-CSRF-Token": "forged"}
    )
    assert response.status_code == 400


def test_generate_and_read_month(client):
    headers = _headers(client)

    response = client.post("/api/months/2025-01/generate", headers=headers)
    assert response.status_code == 201
    body = response.json()
    assert body["month"] == "2025-01"
    assert body["summary"]["leftover"] == 50000
    assert body["summary"]["hasActuals"] is False

    assert client.post("/api/months/2025-01/generate", headers=headers).status_code == 409
    assert client.get("/api/months/2025-02").status_code == 404
    assert client.get("/api/months/2025-13").status_code == 400

    detailed = client.get("/api/months/2025-01/detailed").json()
    assert detailed["tallies"]["bills"]["expected"] == 30000
    assert detailed["leftover_breakdown"]["totalExpenses"] == 0


def test_instance_updates_return_instance_and_summary(client):
    headers = _headers(client)
    month = client.post("/api/months/2025-01/generate", headers=headers).json()
    rent_id = month["bill_instances"][0]["id"]

    response = client.post(
        f"/api/months/2025-01/bills/{rent_id}/payments",
        json={"amount": 10000, "date": "2025-01-03"},
        headers=headers,
    )
    assert response.status_code == 200
    body = response.json()
    assert body["instance"]["total_paid"] == 10000
    assert body["instance"]["remaining"] == 20000
    assert body["summary"]["actualBills"] == 10000
    assert body["summary"]["leftover"] == 40000

    response = client.post(
        f"/api/months/2025-01/bills/{rent_id}/close", headers=headers
    )
    assert response.json()["instance"]["is_closed"] is True


def test_locked_month_returns_forbidden(client):
    headers = _headers(client)
    month = client.post("/api/months/2025-01/generate", headers=headers).json()
    rent_id = month["bill_instances"][0]["id"]
    client.post("/api/months/2025-01/lock", headers=headers)

    response = client.put(
        f"/api/months/2025-01/bills/{rent_id}", json={"amount": 1}, headers=headers
    )
    assert response.status_code == 403
    assert "read-only" in response.json()["detail"]

    summary = client.get("/api/months/2025-01/summary").json()
    assert summary["actualBills"] == 0


def test_unknown_kind_is_not_found(client):
    headers = _headers(client)
    client.post("/api/months/2025-01/generate", headers=headers)
    response = client.post("/api/months/2025-01/expenses/1/close", headers=headers)
    assert response.status_code == 404


def test_month_payload_lists_income_rows_like_bill_rows(client):
    headers = _headers(client)
    client.post("/api/months/2025-01/generate", headers=headers)
    created = client.post(
        "/api/months/2025-01/incomes",
        json={"name": "Refund", "amount": 2500},
        headers=headers,
    ).json()
    income_id = created["instance"]["id"]
    response = client.post(
        f"/api/months/2025-01/incomes/{income_id}/payments",
        json={"amount": 1000, "date": "2025-01-03"},
        headers=headers,
    )
    assert response.status_code == 200

    month = client.get("/api/months/2025-01").json()

    bill_row = month["bill_instances"][0]
    income_row = month["income_instances"][0]
    assert set(bill_row) - {"bill_id"} == set(income_row) - {"income_id"}
    assert income_row["name"] == "Refund"
    assert income_row["is_adhoc"] is True
    assert [p["amount"] for p in income_row["payments"]] == [1000]
    assert income_row["closed_date"] is not None
