import os
import sys

from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("DATABASE_KEY", "test-db-key")
os.environ.setdefault("DATABASE_URL", "sqlite:///./data/ledgerlink.db")
os.environ.setdefault("SECRET_KEY", "0123456789abcdef0123456789abcdef0123456789abcdef0123456789abcdef")

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from ledgerlink.api import deps
from ledgerlink.api.handlers import register_exception_handlers
from ledgerlink.api.transactions import router as transactions_router
from ledgerlink.database import Base
from ledgerlink.errors import XeroAPIError, XeroReconnectRequired
from ledgerlink.models.company import Company
from ledgerlink.schemas.xero import BankAccount, LedgerAccount

STATEMENT = """Everyday
111-222
Date,Payee,Particulars,Spent,Received,Tax,Comments
2024-07-01,NETFLIX,SUBSCRIPTION,22.99,,GST,
2024-07-02,TRANSFER TO SAVINGS,,500.00,,,
2024-07-03,J SMITH,WAGE JULY,730.00,,,
2024-07-04,CORNER CAFE,LATTE,5.50,,,
2024-07-05,ACME,INV 12,,"1,200.00",,
2024-07-06,NO AMOUNT,,,,,
Savings
999-000
Date,Payee,Particulars,Spent,Received
2024-07-07,INTEREST,,,1.25
"""


class FakeXeroClient:
    def __init__(self, fail_payees=()):
        self.fail_payees = set(fail_payees)
        self.created = []

    def get_coding_accounts(self):
        return [LedgerAccount(account_id="a-461", code="461", name="Subscriptions & Software", type="EXPENSE")]

    def get_bank_accounts(self):
        return [BankAccount(account_id="acc-everyday", name="Everyday", bank_account_number="111222")]

    def create_bank_transaction(self, payload):
        if payload.get("Contact", {}).get("Name") in self.fail_payees:
            raise XeroAPIError("Account code '999' is not a valid code", status_code=400)
        self.created.append(payload)
        return f"bt-{len(self.created)}"


def _build_test_client(xero_client=None):
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    db = TestingSessionLocal()
    db.add(Company(id=1, name="Acme Pty Ltd"))
    db.add(Company(id=2, name="Other Co"))
    db.commit()
    db.close()

    app = FastAPI()
    app.include_router(transactions_router, prefix="/api")
    register_exception_handlers(app)

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    fake_client = xero_client or FakeXeroClient()
    app.dependency_overrides[deps.get_db] = override_get_db
    app.dependency_overrides[deps.get_xero_client] = lambda: fake_client
    app.dependency_overrides[deps.get_coding_accounts] = lambda: fake_client.get_coding_accounts()
    return TestClient(app), TestingSessionLocal, fake_client


def _import(client, company_id=1, content=STATEMENT):
    return client.post(
        f"/api/companies/{company_id}/transactions/import",
        files={"file": ("statement.csv", content.encode("utf-8"), "text/csv")},
    )


def _transactions(client, company_id=1, **params):
    response = client.get(f"/api/companies/{company_id}/transactions", params=params)
    assert response.status_code == 200
    return response.json()["transactions"]


def test_import_stages_rows_and_skips_duplicates():
    client, _, _ = _build_test_client()

    first = _import(client)
    assert first.status_code == 200
    assert first.json()["parsed"] == 7
    assert first.json()["saved"] == 6
    assert first.json()["skipped"] == 1

    second = _import(client)
    assert second.json()["saved"] == 0
    assert second.json()["skipped"] == 7

    rows = _transactions(client)
    assert len(rows) == 6
    assert [r["date"] for r in rows] == sorted((r["date"] for r in rows), reverse=True)
    assert all(r["status"] == "pending" for r in rows)
    assert rows[0]["bank_account"] == "Savings"
    assert rows[0]["bank_account_number"] == "999-000"


def test_import_for_unknown_company_is_404():
    client, _, _ = _build_test_client()

    assert _import(client, company_id=99).status_code == 404


def test_transactions_are_scoped_to_company():
    client, _, _ = _build_test_client()
    _import(client, company_id=1)

    assert _transactions(client, company_id=2) == []


def test_wage_filter_returns_wage_spends_only():
    client, _, _ = _build_test_client()
    _import(client)

    rows = _transactions(client, filter="wage")

    assert [r["payee"] for r in rows] == ["J SMITH"]


def test_patch_with_account_code_sets_status():
    client, _, _ = _build_test_client()
    _import(client)
    cafe = next(r for r in _transactions(client) if r["payee"] == "CORNER CAFE")

    coded = client.patch(
        f"/api/companies/1/transactions/{cafe['id']}",
        json={"account_code": "420", "account_name": "Entertainment"},
    )
    assert coded.status_code == 200
    assert coded.json()["status"] == "coded"
    assert coded.json()["account_name"] == "Entertainment"

    cleared = client.patch(f"/api/companies/1/transactions/{cafe['id']}", json={"account_code": None})
    assert cleared.json()["status"] == "pending"
    assert cleared.json()["account_code"] is None
    assert cleared.json()["account_name"] == "Entertainment"

    skipped = client.patch(f"/api/companies/1/transactions/{cafe['id']}", json={"status": "skipped"})
    assert skipped.json()["status"] == "skipped"


def test_patch_unknown_transaction_is_404():
    client, _, _ = _build_test_client()

    response = client.patch("/api/companies/1/transactions/missing", json={"status": "skipped"})

    assert response.status_code == 404


def test_bulk_patch_updates_only_listed_ids():
    client, _, _ = _build_test_client()
    _import(client)
    rows = _transactions(client)
    ids = [rows[0]["id"], rows[1]["id"]]

    response = client.patch("/api/companies/1/transactions", json={"ids": ids, "status": "skipped"})

    assert response.status_code == 200
    assert response.json()["updated"] == 2
    assert len(_transactions(client, status="skipped")) == 2
    assert len(_transactions(client, status="pending")) == 4


def test_delete_one_and_clear_all():
    client, _, _ = _build_test_client()
    _import(client)
    rows = _transactions(client)

    deleted = client.delete(f"/api/companies/1/transactions/{rows[0]['id']}")
    assert deleted.status_code == 204
    assert len(_transactions(client)) == 5

    cleared = client.delete("/api/companies/1/transactions")
    assert cleared.json()["deleted"] == 5
    assert _transactions(client) == []


def test_coding_applies_rules_to_pending_transactions():
    client, _, _ = _build_test_client()
    _import(client)

    response = client.post("/api/companies/1/transactions/coding")

    assert response.status_code == 200
    data = response.json()
    assert data["coded"] == 3
    assert data["skipped"] == 1
    assert data["left_pending"] == 2
    assert data["failed"] == 0

    rows = {r["payee"]: r for r in _transactions(client)}
    assert rows["NETFLIX"]["account_code"] == "461"
    assert rows["NETFLIX"]["account_name"] == "Subscriptions & Software"
    assert rows["TRANSFER TO SAVINGS"]["status"] == "skipped"
    assert rows["J SMITH"]["account_code"] == "477"
    assert rows["INTEREST"]["account_code"] == "425"
    assert rows["CORNER CAFE"]["status"] == "pending"


def test_coding_without_xero_connection_keeps_rule_labels():
    client, _, _ = _build_test_client()
    client.app.dependency_overrides.pop(deps.get_coding_accounts)
    _import(client)

    response = client.post("/api/companies/1/transactions/coding")

    assert response.status_code == 200
    assert response.json()["coded"] == 3

    rows = {r["payee"]: r for r in _transactions(client)}
    assert rows["NETFLIX"]["status"] == "coded"
    assert rows["NETFLIX"]["account_code"] == "461"
    assert rows["NETFLIX"]["account_name"] == "Subscriptions"
    assert rows["J SMITH"]["account_name"] == "Wages and Salaries"
    assert rows["TRANSFER TO SAVINGS"]["status"] == "skipped"


def test_push_continues_past_unmatched_bank_account():
    client, _, xero = _build_test_client()
    _import(client)
    rows = _transactions(client)
    assert client.patch(
        "/api/companies/1/transactions",
        json={"ids": [r["id"] for r in rows if r["payee"] != "TRANSFER TO SAVINGS"], "account_code": "400"},
    ).json()["updated"] == 5

    response = client.post("/api/companies/1/transactions/push", json={})

    assert response.status_code == 200
    data = response.json()
    assert data["succeeded"] == 4
    assert data["failed"] == 1
    failure = next(o for o in data["outcomes"] if not o["ok"])
    assert failure["detail"] == "Could not match bank account: Savings (999-000)"

    assert len(xero.created) == 4
    acme = next(p for p in xero.created if p["Contact"]["Name"] == "ACME")
    assert acme["Type"] == "RECEIVE"
    assert acme["LineItems"][0]["UnitAmount"] == 1200.0
    assert acme["BankAccount"] == {"AccountID": "acc-everyday"}

    pushed = _transactions(client, status="pushed")
    assert len(pushed) == 4
    assert all(r["xero_bank_transaction_id"] for r in pushed)
    assert len(_transactions(client, status="coded")) == 1


def test_push_reports_xero_rejections_and_uncoded_ids():
    client, _, _ = _build_test_client(FakeXeroClient(fail_payees={"NETFLIX"}))
    _import(client)
    rows = {r["payee"]: r for r in _transactions(client)}
    for payee in ("NETFLIX", "ACME"):
        client.patch(f"/api/companies/1/transactions/{rows[payee]['id']}", json={"account_code": "400"})

    response = client.post(
        "/api/companies/1/transactions/push",
        json={"ids": [rows["NETFLIX"]["id"], rows["ACME"]["id"], rows["CORNER CAFE"]["id"], "missing"]},
    )

    data = response.json()
    outcomes = {o["id"]: o for o in data["outcomes"]}
    assert data["succeeded"] == 1
    assert data["failed"] == 3
    assert outcomes[rows["ACME"]["id"]]["external_id"] == "bt-1"
    assert outcomes[rows["NETFLIX"]["id"]]["detail"] == "Account code '999' is not a valid code"
    assert outcomes[rows["CORNER CAFE"]["id"]]["detail"] == "Transaction is pending, not coded"
    assert outcomes["missing"]["detail"] == "Transaction not found"


def test_reconnect_error_is_rendered_with_flag():
    client, _, _ = _build_test_client()

    def needs_reconnect():
        raise XeroReconnectRequired("Token expired and refresh failed. Please reconnect to Xero.")

    client.app.dependency_overrides[deps.get_xero_client] = needs_reconnect

    response = client.post("/api/companies/1/transactions/push", json={})

    assert response.status_code == 401
    assert response.json()["needs_reconnect"] is True
