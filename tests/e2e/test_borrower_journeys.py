"""
E2E tests for borrower personas, driven entirely through the HTTP API.

Each persona borrows 10,000 over 4 monthly installments at 20% + 2% per
extra installment (12,600 owed, 4 x 3,150 due on the 15th, Feb-May 2024).

Borrower personas:
- borrower_prompt: Pays every installment before it falls due
- borrower_proofs: Pays by mobile money and uploads proof, one proof bogus
- borrower_slips: Falls behind, is swept into default, then repays in one lump
"""

import pytest
from fastapi.testclient import TestClient

LENDER = {"X-Actor-ID": "lender_x"}


def open_loan(client: TestClient, borrower_id: str) -> str:
    borrower = {"X-Actor-ID": borrower_id}
    offer = client.post(
        "/v1/offers",
        json={
            "borrower_id": borrower_id,
            "principal_minor": 10000,
            "base_rate_percent": "20",
            "extra_rate_per_installment_percent": "2",
            "payment_type": "installments",
            "installment_count": 4,
            "currency": "ZAR",
        },
        headers=LENDER,
    ).json()
    loan_id = client.post(f"/v1/offers/{offer['id']}/accept", headers=borrower).json()["id"]
    client.post(f"/v1/loans/{loan_id}/sign", headers=borrower)
    client.post(f"/v1/loans/{loan_id}/sign", headers=LENDER)
    client.post(f"/v1/loans/{loan_id}/disburse", json={"start_date": "2024-01-15"}, headers=LENDER)
    return loan_id


def test_borrower_prompt_repays_early(client: TestClient):
    """
    borrower_prompt: Four early payments
    Expected: Loan completed, credit score rises above baseline
    """
    loan_id = open_loan(client, "borrower_prompt")

    for month in (2, 3, 4, 5):
        response = client.post(
            f"/v1/loans/{loan_id}/payments",
            json={"amount_minor": 3150, "paid_at": f"2024-{month:02d}-10T08:00:00Z", "method": "bank_transfer"},
            headers=LENDER,
        )
        assert response.status_code == 200

    assert response.json()["loan_completed"] is True

    score = client.get("/v1/borrowers/borrower_prompt/credit-score", params={"as_of": "2024-06-01"}).json()
    assert score["history"]["early"] == 4
    assert score["score"] == 670, "Four early payments should add 20 points"

    loan = client.get(f"/v1/loans/{loan_id}", headers=LENDER).json()
    assert loan["status"] == "completed"
    assert loan["total_repaid_minor"] == loan["total_owed_minor"] == 12600


def test_borrower_proofs_mixed_review(client: TestClient):
    """
    borrower_proofs: One genuine and one bogus payment proof
    Expected: Only the approved proof moves the schedule
    """
    borrower = {"X-Actor-ID": "borrower_proofs"}
    loan_id = open_loan(client, "borrower_proofs")

    genuine = client.post(
        f"/v1/loans/{loan_id}/proofs",
        json={"amount_minor": 3150, "payment_date": "2024-02-15", "method": "mobile_money", "reference": "MM-1"},
        headers=borrower,
    ).json()
    bogus = client.post(
        f"/v1/loans/{loan_id}/proofs",
        json={"amount_minor": 3150, "payment_date": "2024-03-15", "method": "mobile_money", "reference": "MM-2"},
        headers=borrower,
    ).json()

    client.post(f"/v1/proofs/{genuine['id']}/approve", headers=LENDER)
    client.post(f"/v1/proofs/{bogus['id']}/reject", json={"reason": "Reference not on statement"}, headers=LENDER)

    loan = client.get(f"/v1/loans/{loan_id}", headers=borrower).json()
    assert [s["status"] for s in loan["schedules"]] == ["paid", "pending", "pending", "pending"]
    assert loan["total_repaid_minor"] == 3150

    events = client.get(f"/v1/loans/{loan_id}/events", headers=borrower).json()["events"]
    assert [e["proof_id"] for e in events] == [genuine["id"]]


@pytest.mark.parametrize(
    "as_of,expected_type",
    [
        ("2024-02-20", "LATE_1_7"),
        ("2024-03-10", "LATE_8_30"),
        ("2024-04-01", "LATE_31_60"),
        ("2024-04-20", "DEFAULT"),
    ],
)
def test_borrower_slips_bucket_by_days_overdue(client: TestClient, as_of: str, expected_type: str):
    """
    borrower_slips: Nothing paid since disbursement
    Expected: Sweep files a system flag matching days past the first due date
    """
    open_loan(client, "borrower_slips")

    client.post("/v1/risk-flags/sweep", json={"as_of": as_of})

    risk = client.get("/v1/borrowers/borrower_slips/risk").json()
    assert risk["open_by_type"] == {expected_type: 1}
    assert risk["distinct_reporters"] == 0


def test_borrower_slips_defaults_then_recovers(client: TestClient):
    """
    borrower_slips: Defaults, then repays everything
    Expected: Loan defaulted by the sweep, completed by the lump sum, flag cleared
    """
    loan_id = open_loan(client, "borrower_slips")

    sweep = client.post("/v1/risk-flags/sweep", json={"as_of": "2024-04-20"}).json()
    assert sweep["loans_defaulted"] == 1
    assert client.get(f"/v1/loans/{loan_id}", headers=LENDER).json()["status"] == "defaulted"

    before = client.get("/v1/borrowers/borrower_slips/credit-score", params={"as_of": "2024-04-20"}).json()
    assert before["score_band"] in ("poor", "very_poor")

    payment = client.post(
        f"/v1/loans/{loan_id}/payments",
        json={"amount_minor": 12600, "paid_at": "2024-04-25T10:00:00Z", "method": "cash"},
        headers=LENDER,
    ).json()
    assert payment["loan_completed"] is True

    sweep = client.post("/v1/risk-flags/sweep", json={"as_of": "2024-04-26"}).json()
    assert sweep["flags_cleared"] == 1
    assert client.get("/v1/borrowers/borrower_slips/risk").json()["open_flag_count"] == 0
