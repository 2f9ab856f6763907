from decimal import Decimal

import pytest

from extensions import db
from models import CommissionSetting, KycStatus, Transaction
from wallet import WalletManager


@pytest.mark.parametrize("method, url", [
    ("get", "/api/admin/withdrawals"),
    ("get", "/api/admin/fund-requests"),
    ("get", "/api/admin/kyc"),
    ("get", "/api/admin/commissions"),
    ("get", "/api/admin/commission-payouts"),
    ("post", "/api/plans"),
])
def test_admin_routes_require_admin(client, make_user, login, method, url):
    assert getattr(client, method)(url, json={}).status_code == 401

    login(make_user())
    assert getattr(client, method)(url, json={}).status_code == 403


def test_blocked_admin_session_is_dropped(app, admin_client):
    from models import User

    with app.app_context():
        admin = User.query.filter_by(role="ADMIN").one()
        admin.status = "BLOCKED"
        db.session.commit()

    assert admin_client.get("/api/admin/withdrawals").status_code == 401


# ----------------------------------------------------------------------------------
# plans
# ----------------------------------------------------------------------------------
def test_create_and_update_plan(admin_client):
    created = admin_client.post("/api/plans", json={
        "name": "Gold Plan", "amount": 500, "dailyROI": 75, "duration": 30,
        "description": "Premium plan for high-value investors",
    })
    assert created.status_code == 201
    plan_id = created.get_json()["plan"]["id"]

    updated = admin_client.put(f"/api/admin/plans/{plan_id}", json={"status": "INACTIVE"})

    assert updated.status_code == 200
    assert updated.get_json()["plan"]["status"] == "INACTIVE"
    assert updated.get_json()["plan"]["amount"] == 500.0


def test_create_plan_validation_and_duplicates(admin_client):
    invalid = admin_client.post("/api/plans", json={"name": "X", "amount": -5, "dailyROI": 1, "duration": 0})
    assert invalid.status_code == 400
    assert set(invalid.get_json()["details"]) == {"amount", "duration"}

    payload = {"name": "Basic Plan", "amount": 50, "dailyROI": 7.5, "duration": 30}
    assert admin_client.post("/api/plans", json=payload).status_code == 201
    assert admin_client.post("/api/plans", json=payload).status_code == 409


def test_update_unknown_plan(admin_client):
    assert admin_client.put("/api/admin/plans/999", json={"status": "ACTIVE"}).status_code == 404


# ----------------------------------------------------------------------------------
# commission settings
# ----------------------------------------------------------------------------------
def test_get_commission_settings(admin_client, commission_levels):
    response = admin_client.get("/api/admin/commissions")

    body = response.get_json()
    assert [s["percentage"] for s in body["settings"]] == [10.0, 5.0, 3.0, 2.0, 1.0]
    assert body["summary"]["totalPercentage"] == 21.0


def test_update_commission_settings(app, admin_client, commission_levels):
    response = admin_client.put("/api/admin/commissions", json={"levels": [
        {"level": 1, "percentage": 12},
        {"level": 2, "percentage": 6},
        {"level": 3, "percentage": 2, "isActive": False},
    ]})

    assert response.status_code == 200
    assert response.get_json()["summary"]["levels"] == [
        {"level": 1, "percentage": 12.0}, {"level": 2, "percentage": 6.0},
    ]
    with app.app_context():
        inactive = {s.level for s in CommissionSetting.query.filter_by(is_active=False)}
        assert inactive == {3, 4, 5}


def test_update_commission_settings_rejects_gaps(admin_client, commission_levels):
    response = admin_client.put("/api/admin/commissions", json={"levels": [
        {"level": 1, "percentage": 10},
        {"level": 3, "percentage": 3},
    ]})

    assert response.status_code == 400
    assert "levels" in response.get_json()["details"]


def test_update_commission_settings_rejects_bad_percentage(admin_client):
    response = admin_client.put("/api/admin/commissions", json={"levels": [
        {"level": 1, "percentage": "ten"},
    ]})

    assert response.status_code == 400
    assert "levels[0].percentage" in response.get_json()["details"]


# ----------------------------------------------------------------------------------
# fund requests
# ----------------------------------------------------------------------------------
def _fund_request(client, amount=500):
    return client.post("/api/fund-request", json={"amount": amount, "method": "UPI", "transactionId": "UTR123"})


def test_fund_request_approval_credits_wallet(app, client, admin_client, make_user, login, user_state,
                                              notifications):
    user_id = make_user()
    login(user_id)
    created = _fund_request(client)
    assert created.status_code == 201
    fund_request_id = created.get_json()["fundRequest"]["id"]
    assert user_state(user_id)["wallet_balance"] == Decimal("0.00")

    listed = admin_client.get("/api/admin/fund-requests").get_json()
    assert [f["id"] for f in listed["fundRequests"]] == [fund_request_id]

    response = admin_client.post("/api/admin/fund-requests", json={
        "fundRequestId": fund_request_id, "action": "APPROVE",
    })

    assert response.status_code == 200
    assert response.get_json()["fundRequest"]["status"] == "APPROVED"
    assert user_state(user_id)["wallet_balance"] == Decimal("500.00")
    assert user_state(user_id)["total_earnings"] == Decimal("0.00")
    with app.app_context():
        assert Transaction.query.filter_by(user_id=user_id, type="ADD_FUNDS").one().status == "COMPLETED"
    assert "FUND_REQUEST_APPROVED" in [n[1] for n in notifications]

    again = admin_client.post("/api/admin/fund-requests", json={
        "fundRequestId": fund_request_id, "action": "REJECT",
    })
    assert again.status_code == 409


def test_fund_request_rejection(app, client, admin_client, make_user, login, user_state):
    user_id = make_user()
    login(user_id)
    fund_request_id = _fund_request(client).get_json()["fundRequest"]["id"]

    response = admin_client.post("/api/admin/fund-requests", json={
        "fundRequestId": fund_request_id, "action": "REJECT", "adminRemark": "UTR not found",
    })

    assert response.status_code == 200
    assert user_state(user_id)["wallet_balance"] == Decimal("0.00")
    with app.app_context():
        assert Transaction.query.filter_by(user_id=user_id, type="ADD_FUNDS").one().status == "FAILED"


def test_fund_request_validation(client, admin_client, make_user, login):
    login(make_user())

    assert _fund_request(client, amount=10).status_code == 400
    bad_action = admin_client.post("/api/admin/fund-requests", json={"fundRequestId": 1, "action": "MAYBE"})
    assert bad_action.status_code == 400
    assert "action" in bad_action.get_json()["details"]


def test_user_lists_own_fund_requests(client, make_user, login):
    login(make_user())
    _fund_request(client, 100)
    _fund_request(client, 200)

    response = client.get("/api/fund-request")

    assert [f["amount"] for f in response.get_json()["fundRequests"]] == [200.0, 100.0]


# ----------------------------------------------------------------------------------
# KYC
# ----------------------------------------------------------------------------------
KYC_PAYLOAD = {
    "aadharNumber": "1234 5678 9012",
    "panNumber": "abcde1234f",
    "nomineeName": "Jane Doe",
    "nomineeRelation": "Spouse",
}


def test_kyc_submission_and_approval_lifts_withdrawal_limit(client, admin_client, make_user, login, user_state,
                                                            notifications):
    user_id = make_user(balance="2000")
    login(user_id)

    submitted = client.post("/api/kyc/submit", json=KYC_PAYLOAD)
    assert submitted.status_code == 201
    application = submitted.get_json()["application"]
    assert application["aadharNumber"] == "********9012"
    assert application["panNumber"] == "ABCDE1234F"
    assert user_state(user_id)["kyc_status"] == KycStatus.PENDING

    assert client.post("/api/kyc/submit", json=KYC_PAYLOAD).get_json()["reason"] == "kyc_not_allowed"

    pending = admin_client.get("/api/admin/kyc").get_json()
    assert [a["id"] for a in pending["applications"]] == [application["id"]]

    no_remark = admin_client.post(f"/api/admin/kyc/{application['id']}/review", json={"status": "APPROVED"})
    assert no_remark.status_code == 400

    reviewed = admin_client.post(f"/api/admin/kyc/{application['id']}/review", json={
        "status": "APPROVED", "adminRemark": "Documents verified",
    })
    assert reviewed.status_code == 200
    assert user_state(user_id)["kyc_status"] == KycStatus.APPROVED
    assert "KYC_REVIEWED" in [n[1] for n in notifications]

    again = admin_client.post(f"/api/admin/kyc/{application['id']}/review", json={
        "status": "REJECTED", "adminRemark": "Changed my mind",
    })
    assert again.status_code == 409

    withdrawal = client.post("/api/withdrawal", json={"amount": 1500, "method": "UPI", "details": "me@upi"})
    assert withdrawal.status_code == 201

    status = client.get("/api/kyc/status").get_json()
    assert status["userData"]["status"] == "APPROVED"
    assert status["userData"]["needsKYC"] is False
    assert status["kycData"]["status"] == "APPROVED"


def test_kyc_rejection_allows_resubmission(client, admin_client, make_user, login, user_state):
    user_id = make_user()
    login(user_id)
    document_id = client.post("/api/kyc/submit", json=KYC_PAYLOAD).get_json()["application"]["id"]

    admin_client.post(f"/api/admin/kyc/{document_id}/review", json={
        "status": "REJECTED", "adminRemark": "PAN unreadable",
    })

    assert user_state(user_id)["kyc_status"] == KycStatus.REJECTED
    assert client.post("/api/kyc/submit", json=KYC_PAYLOAD).status_code == 201


def test_kyc_submission_validation(client, make_user, login):
    login(make_user())

    response = client.post("/api/kyc/submit", json=dict(KYC_PAYLOAD, aadharNumber="123", panNumber="12345"))

    assert response.status_code == 400
    assert set(response.get_json()["details"]) == {"aadharNumber", "panNumber"}


def test_kyc_status_without_submission(client, make_user, login):
    login(make_user())

    body = client.get("/api/kyc/status").get_json()

    assert body["kycData"] is None
    assert body["userData"]["status"] == "NOT_SUBMITTED"
    assert body["userData"]["remainingLimit"] == 500.0


# ----------------------------------------------------------------------------------
# commission payouts
# ----------------------------------------------------------------------------------
def test_failed_payout_can_be_listed_and_retried(app, client, admin_client, make_user, make_plan, login,
                                                 user_state, commission_levels, monkeypatch):
    x = make_user()
    y = make_user(balance="1000", referred_by=user_state(x)["referral_code"])
    plan_id = make_plan(amount="100")

    original = WalletManager.credit

    def broken_credit(session, user_id, amount, count_as_earnings=False):
        raise RuntimeError("timeout")

    monkeypatch.setattr(WalletManager, "credit", broken_credit)
    login(y)
    assert client.post("/api/investments", json={"planId": plan_id}).status_code == 201
    monkeypatch.setattr(WalletManager, "credit", original)

    failed = admin_client.get("/api/admin/commission-payouts?status=FAILED").get_json()
    assert len(failed["payouts"]) == 1
    payout_id = failed["payouts"][0]["id"]
    assert failed["payouts"][0]["lastError"] == "timeout"

    retried = admin_client.post(f"/api/admin/commission-payouts/{payout_id}/retry")

    assert retried.status_code == 200
    assert retried.get_json()["success"] is True
    assert retried.get_json()["payout"]["status"] == "COMPLETED"
    assert user_state(x)["wallet_balance"] == Decimal("10.00")

    assert admin_client.post(f"/api/admin/commission-payouts/{payout_id}/retry").status_code == 409


def test_payout_list_rejects_unknown_status(admin_client):
    assert admin_client.get("/api/admin/commission-payouts?status=LOST").status_code == 400
