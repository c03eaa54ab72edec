"""Integration tests for Plaid linking, webhook, sync and transaction endpoints"""

import json
from datetime import date
from fastapi.testclient import TestClient
from blink_backend.domain.models import PlaidAccount, PlaidTransaction, SyncPage
from blink_backend.infrastructure.database.models import BankAccount, Transaction
from blink_backend.infrastructure.security import create_access_token, sign_webhook

WEBHOOK_SECRET = "test-webhook-secret"


def sync_page(*transactions, next_cursor="cursor-1"):
    return SyncPage(added=list(transactions), modified=[], removed=[], next_cursor=next_cursor, has_more=False)


def plaid_txn(transaction_id, amount, on=date(2024, 3, 1)):
    return PlaidTransaction(
        transaction_id=transaction_id,
        account_id="acc-checking",
        amount=amount,
        date=on,
        name="Grocer",
        original_description=None,
        category="FOOD_AND_DRINK",
        category_detailed=None,
        merchant_name="Grocer",
        pending=False,
    )


def signed_post(client, payload, secret=WEBHOOK_SECRET):
    body = json.dumps(payload).encode()
    return client.post("/api/plaid/webhook", content=body, headers={"X-Plaid-Signature": sign_webhook(secret, body)})


# ---------------------------------------------------------------------------
# Webhook
# ---------------------------------------------------------------------------


def test_webhook_bad_signature(client: TestClient, bank_account, plaid):
    """Test unsigned or mis-signed webhooks are rejected before any work"""
    response = signed_post(
        client,
        {"webhook_type": "TRANSACTIONS", "webhook_code": "SYNC_UPDATES_AVAILABLE", "item_id": "item-1"},
        secret="wrong-secret",
    )

    assert response.status_code == 400
    assert response.json()["error"] == "Invalid webhook signature."
    assert plaid.sync_calls == []


def test_webhook_triggers_sync(client: TestClient, db, bank_account, plaid):
    """Test SYNC_UPDATES_AVAILABLE syncs the item owner's transactions"""
    plaid.sync_pages["access-1"] = [sync_page(plaid_txn("t1", 54.21))]

    response = signed_post(
        client,
        {"webhook_type": "TRANSACTIONS", "webhook_code": "SYNC_UPDATES_AVAILABLE", "item_id": "item-1"},
    )

    assert response.status_code == 200
    assert response.json()["message"] == "Webhook processed"
    assert db.query(Transaction).count() == 1
    assert bank_account.cursor == "cursor-1"


def test_webhook_unknown_item(client: TestClient, bank_account):
    """Test an item nobody linked is a 400"""
    response = signed_post(
        client,
        {"webhook_type": "TRANSACTIONS", "webhook_code": "SYNC_UPDATES_AVAILABLE", "item_id": "item-unknown"},
    )

    assert response.status_code == 400


def test_webhook_payload_must_be_object(client: TestClient):
    """Test a signed body that isn't a JSON object is a 400"""
    response = signed_post(client, [])

    assert response.status_code == 400
    assert response.json()["error"] == "Invalid webhook payload."


def test_webhook_other_types_acknowledged(client: TestClient):
    """Test unhandled webhook types are accepted and ignored"""
    response = signed_post(client, {"webhook_type": "ITEM", "webhook_code": "PENDING_EXPIRATION", "item_id": "item-1"})

    assert response.status_code == 200
    assert response.json()["message"] == "Webhook received"


# ---------------------------------------------------------------------------
# Linking and sync
# ---------------------------------------------------------------------------


def test_create_link_token(client: TestClient, auth_headers):
    """Test a link token is issued for the caller"""
    response = client.post("/api/plaid/create_link_token", headers=auth_headers)

    assert response.status_code == 200
    assert response.json()["data"]["linkToken"].startswith("link-sandbox-")


def test_sandbox_public_token(client: TestClient, auth_headers):
    """Test the sandbox shortcut returns a public token"""
    response = client.post("/api/plaid/sandbox/public_token/create", json={}, headers=auth_headers)

    assert response.json()["data"]["publicToken"] == "public-sandbox-ins_109508"


def test_exchange_public_token_links_accounts(client: TestClient, db, user, auth_headers, plaid):
    """Test exchanging a public token stores the item's accounts"""
    plaid.accounts["access-sandbox-new"] = [
        PlaidAccount(
            account_id="acc-new",
            name="Plaid Saving",
            type="depository",
            subtype="savings",
            mask="1111",
            available_balance=500.0,
            current_balance=510.0,
        )
    ]

    response = client.post(
        "/api/plaid/exchange_public_token",
        json={"publicToken": "public-sandbox-abc", "userId": str(user.id)},
        headers=auth_headers,
    )

    assert response.status_code == 201
    data = response.json()["data"]
    assert [a["accountId"] for a in data] == ["acc-new"]
    assert data[0]["currentBalance"] == 510.0
    stored = db.query(BankAccount).filter(BankAccount.account_id == "acc-new").one()
    assert stored.plaid_item_id == "item-new"
    assert stored.user_id == user.id


def test_exchange_for_another_user_forbidden(client: TestClient, auth_headers, other_user):
    """Test the userId in the body must be the caller"""
    response = client.post(
        "/api/plaid/exchange_public_token",
        json={"publicToken": "public-sandbox-abc", "userId": str(other_user.id)},
        headers=auth_headers,
    )

    assert response.status_code == 403
    assert response.json()["error"] == "You can only access your own data."


def test_sync_endpoint(client: TestClient, auth_headers, bank_account, plaid):
    """Test manual sync reports change counts"""
    plaid.sync_pages["access-1"] = [sync_page(plaid_txn("t1", 10.0), plaid_txn("t2", -900.0))]

    response = client.post("/api/plaid/sync", json={}, headers=auth_headers)

    assert response.status_code == 200
    assert response.json()["data"] == {"added": 2, "modified": 0, "removed": 0}


def test_sync_without_accounts(client: TestClient, auth_headers):
    """Test syncing with nothing linked is a 404"""
    response = client.post("/api/plaid/sync", json={}, headers=auth_headers)

    assert response.status_code == 404
    assert response.json()["error"] == "No bank accounts found for this user."


def test_sync_balances(client: TestClient, auth_headers, bank_account, plaid):
    """Test balances are refreshed and totalled"""
    plaid.accounts["access-1"] = [
        PlaidAccount(
            account_id="acc-checking",
            name="Plaid Checking",
            type="depository",
            subtype="checking",
            mask="0000",
            available_balance=99.99,
            current_balance=100.01,
        )
    ]

    response = client.post("/api/plaid/sync_balances", json={}, headers=auth_headers)

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["totalAvailableBalance"] == 99.99
    assert data["totalCurrentBalance"] == 100.01


def test_stored_balances(client: TestClient, auth_headers, bank_account):
    """Test the read-only balances view"""
    data = client.get("/api/plaid/balances", headers=auth_headers).json()["data"]

    assert data["totalAvailableBalance"] == 1200.0
    assert data["totalCurrentBalance"] == 1250.0
    assert data["accounts"][0]["accountMask"] == "0000"


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------


def test_transactions_pagination_and_sign(client: TestClient, auth_headers, bank_account, make_transaction, days_ago):
    """Test paging and that outflows are shown as negative amounts"""
    for i in range(25):
        make_transaction(bank_account, 12.34, days_ago(i))

    response = client.get("/api/plaid/transactions?page=2&pageSize=10", headers=auth_headers)

    assert response.status_code == 200
    data = response.json()["data"]
    assert len(data["transactions"]) == 10
    assert data["total"] == 25
    assert data["totalPages"] == 3
    assert data["pageSize"] == 10
    assert data["transactions"][0]["amount"] == -12.34
    assert data["transactions"][0]["date"] == days_ago(10).isoformat()


def test_transactions_date_filter(client: TestClient, auth_headers, bank_account, make_transaction, days_ago):
    """Test startDate/endDate bound the listing"""
    make_transaction(bank_account, 5, days_ago(1))
    make_transaction(bank_account, 5, days_ago(40))

    response = client.get(
        f"/api/plaid/transactions?startDate={days_ago(7).isoformat()}&endDate={days_ago(0).isoformat()}",
        headers=auth_headers,
    )

    assert response.json()["data"]["total"] == 1


def test_get_transactions_inverted_range(client: TestClient, auth_headers, days_ago):
    """Test startDate after endDate is rejected"""
    response = client.post(
        "/api/plaid/get_transactions",
        json={"startDate": days_ago(0).isoformat(), "endDate": days_ago(5).isoformat()},
        headers=auth_headers,
    )

    assert response.status_code == 400


def test_get_transactions(client: TestClient, auth_headers, bank_account, make_transaction, days_ago):
    """Test income is shown as a positive amount"""
    make_transaction(bank_account, -2500, days_ago(2), name="Payroll")

    response = client.post("/api/plaid/get_transactions", json={}, headers=auth_headers)

    assert response.json()["data"][0]["amount"] == 2500.0


def test_recent_transactions(client: TestClient, user, auth_headers, bank_account, make_transaction, days_ago):
    """Test the newest transactions up to the limit"""
    for i in range(5):
        make_transaction(bank_account, 1 + i, days_ago(i))

    response = client.get(f"/api/plaid/recent-transactions/{user.id}?limit=3", headers=auth_headers)

    data = response.json()["data"]
    assert len(data) == 3
    assert data[0]["date"] == days_ago(0).isoformat()


def test_recent_transactions_of_other_user(client: TestClient, settings, user, other_user):
    """Test a user can't read someone else's transactions"""
    headers = {"Authorization": f"Bearer {create_access_token(settings, str(other_user.id))}"}

    response = client.get(f"/api/plaid/recent-transactions/{user.id}", headers=headers)

    assert response.status_code == 403


def test_daily_summary(client: TestClient, auth_headers, bank_account, make_transaction, days_ago):
    """Test per-day totals in the client sign convention"""
    make_transaction(bank_account, 30, days_ago(0))
    make_transaction(bank_account, 20, days_ago(0))
    make_transaction(bank_account, -100, days_ago(3))
    make_transaction(bank_account, 999, days_ago(30))

    data = client.get("/api/plaid/daily-summary?days=15", headers=auth_headers).json()["data"]

    assert data == [
        {"date": days_ago(0).isoformat(), "totalAmount": -50.0, "transactionCount": 2},
        {"date": days_ago(3).isoformat(), "totalAmount": 100.0, "transactionCount": 1},
    ]


def test_spending_summary(client: TestClient, auth_headers, bank_account, make_transaction, days_ago):
    """Test spending is bucketed by normalized category"""
    make_transaction(bank_account, 75, days_ago(1), category="FOOD_AND_DRINK")
    make_transaction(bank_account, 25, days_ago(2), category="Shops")
    make_transaction(bank_account, -1000, days_ago(2), category="INCOME")

    response = client.get("/api/plaid/spending-summary?timeFrame=LAST_WEEK", headers=auth_headers)

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["timeFrame"] == "LAST_WEEK"
    assert data["totalSpending"] == 100.0
    assert data["totalIncome"] == 1000.0
    assert [(c["name"], c["percentage"]) for c in data["categories"]] == [("Food & Dining", 75.0), ("Shopping", 25.0)]

    categories = client.get("/api/plaid/category-analysis?timeFrame=week", headers=auth_headers).json()["data"]
    assert categories[0]["name"] == "Food & Dining"


def test_invalid_time_frame(client: TestClient, auth_headers):
    """Test unknown time frames are a 400"""
    response = client.get("/api/plaid/spending-summary?timeFrame=FORTNIGHT", headers=auth_headers)

    assert response.status_code == 400
    assert response.json()["error"].startswith("Invalid time frame")


def test_recurring_expenses(client: TestClient, auth_headers, bank_account, make_transaction, days_ago):
    """Test a monthly charge is reported with a monthly estimate"""
    for n in (5, 35, 65):
        make_transaction(bank_account, 9.99, days_ago(n), name="Music Plus", merchant_name="Music Plus")

    data = client.get("/api/plaid/recurring-expenses", headers=auth_headers).json()["data"]

    assert data["timeFrame"] == "LAST_QUARTER"
    assert [e["name"] for e in data["expenses"]] == ["Music Plus"]
    assert data["expenses"][0]["frequency"] == "monthly"
    assert data["totalMonthlyEstimate"] == 9.99
