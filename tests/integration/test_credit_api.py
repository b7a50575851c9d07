"""Integration tests for credit accounts, ledger transactions and scoring"""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session
from kirana_gateway.domain.exceptions import ConcurrentUpdateError
from kirana_gateway.infrastructure.database.models import CreditAccount
from kirana_gateway.infrastructure.database.repositories import CreditAccountRepository


@pytest.fixture
def account(client: TestClient, customer) -> dict:
    response = client.post("/v1/credit/accounts", json={"customer_id": customer.id})
    assert response.status_code == 201
    return response.json()


def _post(client: TestClient, account_id: str, type: str, amount: int, **extra):
    return client.post(
        "/v1/credit/transactions",
        json={"account_id": account_id, "type": type, "amount_paise": amount, **extra},
    )


def test_create_account_uses_shop_defaults(client: TestClient, account):
    assert account["credit_limit_paise"] == 500_000
    assert account["available_credit_paise"] == 500_000
    assert account["current_balance_paise"] == 0
    assert account["credit_score"] == 65
    assert account["due_date"] == "2024-03-18T07:00:00"

    entries = client.get("/v1/credit/transactions", params={"account_id": account["id"]}).json()["transactions"]
    assert len(entries) == 1
    assert entries[0]["type"] == "CREDIT"
    assert entries[0]["amount_paise"] == 500_000
    assert entries[0]["balance_paise"] == 0
    assert entries[0]["metadata"] == {"initial_setup": True, "credit_score": 65}


def test_create_account_with_explicit_limit(client: TestClient, loyal_customer):
    response = client.post(
        "/v1/credit/accounts", json={"customer_id": loyal_customer.id, "credit_limit_paise": 1_000_000}
    )
    assert response.status_code == 201
    assert response.json()["credit_limit_paise"] == 1_000_000
    assert response.json()["credit_score"] == 100


def test_duplicate_account_is_conflict(client: TestClient, customer, account):
    response = client.post("/v1/credit/accounts", json={"customer_id": customer.id})
    assert response.status_code == 409


def test_credit_then_payment(client: TestClient, account, whatsapp):
    credit = _post(client, account["id"], "CREDIT", 200_000, description="Monthly groceries")
    assert credit.status_code == 201
    assert credit.json()["account"]["current_balance_paise"] == 200_000
    assert credit.json()["account"]["available_credit_paise"] == 500_000
    assert credit.json()["transaction"]["balance_paise"] == 200_000

    payment = _post(client, account["id"], "PAYMENT", 50_000, reference="cash-001")
    assert payment.status_code == 201
    data = payment.json()
    assert data["account"]["current_balance_paise"] == 150_000
    assert data["account"]["available_credit_paise"] == 500_000
    assert data["account"]["last_payment_date"] == "2024-03-11T07:00:00"
    assert data["transaction"]["reference"] == "cash-001"

    whatsapp.send_payment_receipt.assert_awaited_once_with("+91 98765-43210", "Asha", 50_000, 150_000)


def test_transaction_over_limit_is_rejected_without_change(client: TestClient, account):
    response = _post(client, account["id"], "CREDIT", 500_001)

    assert response.status_code == 400
    assert response.json()["code"] == "credit_limit_exceeded"

    stored = client.get("/v1/credit/accounts").json()["accounts"][0]
    assert stored["current_balance_paise"] == 0
    assert stored["available_credit_paise"] == 500_000
    entries = client.get("/v1/credit/transactions", params={"account_id": account["id"]}).json()["transactions"]
    assert len(entries) == 1


def test_negative_amount_is_validation_error(client: TestClient, account):
    response = _post(client, account["id"], "DEBIT", -1)
    assert response.status_code == 422
    assert response.json()["code"] == "validation_error"


def test_inactive_account_rejects_transactions(client: TestClient, account):
    client.patch(f"/v1/credit/accounts/{account['id']}", json={"is_active": False})

    response = _post(client, account["id"], "CREDIT", 1_000)
    assert response.status_code == 400
    assert response.json()["code"] == "policy_violation"


def test_lowering_limit_rederives_available_credit(client: TestClient, account):
    _post(client, account["id"], "CREDIT", 100_000)

    response = client.patch(f"/v1/credit/accounts/{account['id']}", json={"credit_limit_paise": 300_000})

    assert response.status_code == 200
    assert response.json()["credit_limit_paise"] == 300_000
    assert response.json()["available_credit_paise"] == 200_000


def test_limit_below_balance_is_rejected(client: TestClient, account):
    _post(client, account["id"], "CREDIT", 100_000)

    response = client.patch(f"/v1/credit/accounts/{account['id']}", json={"credit_limit_paise": 99_999})
    assert response.status_code == 400
    assert response.json()["code"] == "credit_limit_exceeded"


def test_account_of_other_shop_is_not_found(client: TestClient, account):
    response = client.post(
        "/v1/credit/transactions",
        json={"account_id": account["id"], "type": "CREDIT", "amount_paise": 100},
        headers={"X-Shop-ID": "shop-2"},
    )
    assert response.status_code == 404


def test_score_customer_returns_breakdown(client: TestClient, customer, account):
    response = client.post("/v1/credit/scoring", json={"customer_id": customer.id})

    assert response.status_code == 200
    data = response.json()
    assert data["credit_score"] == 65
    assert data["risk_level"] == "MEDIUM"
    assert data["customer_name"] == "Asha"
    assert data["breakdown"]["order_history"]["points"] == -15
    assert data["breakdown"]["spending"]["points"] == -20
    assert data["breakdown"]["recent_activity"]["value"] == 3
    assert {r["type"] for r in data["recommendations"]} == {"ENGAGEMENT"}


def test_score_respects_shop_floor(client: TestClient, customer):
    client.put("/v1/settings/credit", json={"min_credit_score": 80})

    response = client.post("/v1/credit/scoring", json={"customer_id": customer.id})
    assert response.json()["credit_score"] == 80


def test_scoring_summary(client: TestClient, customer, loyal_customer, account):
    client.post("/v1/credit/accounts", json={"customer_id": loyal_customer.id})
    client.put("/v1/settings/credit", json={"min_credit_score": 0})

    response = client.get("/v1/credit/scoring", params={"refresh": True})

    assert response.status_code == 200
    summary = response.json()["summary"]
    assert summary["total_accounts"] == 2
    assert summary["active_accounts"] == 2
    assert summary["avg_credit_score"] == round((65 + 100) / 2)
    assert summary["high_risk_accounts"] == 0
    levels = {a["customer_id"]: a["risk_level"] for a in response.json()["accounts"]}
    assert levels == {customer.id: "MEDIUM", loyal_customer.id: "LOW"}


def test_concurrent_update_is_detected(db: Session, customer):
    """Two sessions load the same account; the second writer loses"""
    repo = CreditAccountRepository(db)
    account = repo.create("shop-1", customer.id, 500_000, 65, None)
    db.commit()

    other = Session(bind=db.get_bind())
    try:
        stale = other.get(CreditAccount, account.id)

        account.current_balance_paise = 10_000
        repo.save(account)
        db.commit()

        stale.current_balance_paise = 20_000
        with pytest.raises(ConcurrentUpdateError):
            CreditAccountRepository(other).save(stale)
    finally:
        other.rollback()
        other.close()
