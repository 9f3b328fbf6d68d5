"""Tests for the claim reconciliation endpoints."""

from __future__ import annotations

from typing import Any

import pytest
from fastapi.testclient import TestClient

BASE = "/api/claim-reconciliation"


def _stage(client: TestClient, claims: dict[str, Any], remittances: dict[str, Any]) -> None:
    assert client.post(f"{BASE}/claims", json=claims).status_code == 200
    assert client.post(f"{BASE}/remittances", json=remittances).status_code == 200


def _run(client: TestClient, headers: dict[str, str] | None = None) -> dict[str, Any]:
    response = client.post(
        f"{BASE}/run",
        json={"provider_name": "CIC", "period_year": 2025, "period_month": 10},
        headers=headers or {},
    )
    assert response.status_code == 200, response.text
    return response.json()


class TestUploadEndpoints:
    """Test JSON and CSV staging."""

    def test_claims_upload(self, client: TestClient, claim_payload):
        response = client.post(f"{BASE}/claims", json=claim_payload)

        assert response.status_code == 200
        data = response.json()
        assert data["inserted"] == 2
        assert data["replaced"] == 0
        assert data["skipped_rows"] == []

    def test_remittance_before_claims_rejected(self, client: TestClient, remittance_payload):
        response = client.post(f"{BASE}/remittances", json=remittance_payload)

        assert response.status_code == 400
        assert "Please upload claims first" in response.json()["detail"]

    def test_numeric_member_number_accepted(
        self, client: TestClient, claim_payload, remittance_payload
    ):
        _stage(client, claim_payload, remittance_payload)

        response = client.get(
            f"{BASE}/periods/2025/10/remittances", params={"provider_name": "CIC"}
        )

        members = [line["member_number"] for line in response.json()["remittances"]]
        assert "6444720" in members

    @pytest.mark.parametrize(
        "change",
        [
            {"period_month": 13},
            {"period_year": 1800},
            {"provider_name": "   "},
        ],
    )
    def test_invalid_period_or_provider(self, client: TestClient, claim_payload, change):
        response = client.post(f"{BASE}/claims", json={**claim_payload, **change})

        assert response.status_code == 422

    def test_negative_amount_rejected(self, client: TestClient, claim_payload):
        claim_payload["claims"][0]["billed_amount"] = -5

        response = client.post(f"{BASE}/claims", json=claim_payload)

        assert response.status_code == 422

    def test_empty_claims_rejected(self, client: TestClient, claim_payload):
        response = client.post(f"{BASE}/claims", json={**claim_payload, "claims": []})

        assert response.status_code == 400

    def test_csv_upload_reports_skipped_rows(self, client: TestClient):
        csv_text = (
            "Member Number,Service Date,Invoice Number,Billed Amount\n"
            "CS0121,2025-08-03,INV-5,100.00\n"
            "CS0122,,INV-6,40.00\n"
        )

        response = client.post(
            f"{BASE}/claims/upload",
            files={"file": ("cic_claims.csv", csv_text, "text/csv")},
            data={"provider_name": "CIC", "period_year": "2025", "period_month": "8"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["inserted"] == 1
        assert data["skipped_rows"] == [{"line": 3, "reason": "missing service date"}]

    def test_csv_zero_billed_claim_goes_to_manual_review(self, client: TestClient):
        csv_text = (
            "Member Number,Service Date,Invoice Number,Billed Amount\n"
            "CS0121,2025-08-03,INV-0,0\n"
        )
        client.post(
            f"{BASE}/claims/upload",
            files={"file": ("cic_claims.csv", csv_text, "text/csv")},
            data={"provider_name": "CIC", "period_year": "2025", "period_month": "8"},
        )
        line = {
            "member_number": "CS0121",
            "bill_no": "INV-0",
            "service_date": "2025-08-03",
            "claim_amount": 0,
            "paid_amount": 25.0,
        }
        client.post(
            f"{BASE}/remittances",
            json={
                "provider_name": "CIC",
                "period_year": 2025,
                "period_month": 10,
                "remittances": [line],
            },
        )

        _run(client)

        claims = client.get(
            f"{BASE}/periods/2025/8/claims", params={"provider_name": "CIC"}
        ).json()["claims"]
        assert [c["status"] for c in claims] == ["manual-review"]

    def test_csv_remittance_upload(self, client: TestClient, claim_payload):
        client.post(f"{BASE}/claims", json=claim_payload)
        csv_text = (
            "MEMBERSHIP NO,BILL NO,LOSS DATE,CLAIM AMOUNT,PAYABLE AMT.\n"
            "CS0121,INV-5,2025-08-03,100.00,100.00\n"
        )

        response = client.post(
            f"{BASE}/remittances/upload",
            files={"file": ("cic_oct.csv", csv_text, "text/csv")},
            data={"provider_name": "CIC", "period_year": "2025", "period_month": "10"},
        )

        assert response.status_code == 200
        assert response.json()["inserted"] == 1

    def test_unsupported_file_type(self, client: TestClient):
        response = client.post(
            f"{BASE}/claims/upload",
            files={"file": ("claims.xlsx", b"PK\x03\x04", "application/octet-stream")},
            data={"provider_name": "CIC", "period_year": "2025", "period_month": "8"},
        )

        assert response.status_code == 400

    def test_oversized_upload(self, client: TestClient, monkeypatch):
        monkeypatch.setattr("routes.reconciliation.MAX_UPLOAD_BYTES", 10)

        response = client.post(
            f"{BASE}/claims/upload",
            files={"file": ("claims.csv", "x" * 100, "text/csv")},
            data={"provider_name": "CIC", "period_year": "2025", "period_month": "8"},
        )

        assert response.status_code == 413


class TestRunEndpoint:
    """Test reconciliation runs over HTTP."""

    def test_run_summary(self, client: TestClient, claim_payload, remittance_payload):
        _stage(client, claim_payload, remittance_payload)

        data = _run(client)

        summary = data["summary"]
        assert summary["claims_matched"] == 2
        assert summary["auto_matched"] == 1
        assert summary["partial_matched"] == 1
        assert summary["orphan_remittances"] == 1
        assert summary["total_remittances"] == 3
        assert len(data["results"]) == 2

    def test_run_without_remittance(self, client: TestClient, claim_payload):
        client.post(f"{BASE}/claims", json=claim_payload)

        response = client.post(
            f"{BASE}/run",
            json={"provider_name": "CIC", "period_year": 2025, "period_month": 10},
        )

        assert response.status_code == 400
        assert "No unmatched remittances" in response.json()["detail"]

    def test_run_for_unknown_provider(self, client: TestClient):
        response = client.post(
            f"{BASE}/run",
            json={"provider_name": "NOBODY", "period_year": 2025, "period_month": 10},
        )

        assert response.status_code == 400

    def test_runs_listing_and_detail(
        self, client: TestClient, claim_payload, remittance_payload
    ):
        _stage(client, claim_payload, remittance_payload)
        run_id = _run(client, {"X-User-Id": "finance-1"})["summary"]["run_id"]

        runs = client.get(f"{BASE}/runs", params={"provider_name": "CIC"}).json()
        detail = client.get(f"{BASE}/runs/{run_id}").json()
        history = client.get(f"{BASE}/runs/{run_id}/claims").json()

        assert runs["total"] == 1
        assert detail["created_by"] == "finance-1"
        assert history["total"] == 2

    def test_missing_run(self, client: TestClient):
        assert client.get(f"{BASE}/runs/999").status_code == 404
        assert client.get(f"{BASE}/runs/999/claims").status_code == 404
        assert client.delete(f"{BASE}/runs/999").status_code == 404

    def test_delete_run(self, client: TestClient, claim_payload, remittance_payload):
        _stage(client, claim_payload, remittance_payload)
        run_id = _run(client)["summary"]["run_id"]

        response = client.delete(f"{BASE}/runs/{run_id}")

        assert response.json() == {"deleted": True, "run_id": run_id}
        assert client.get(f"{BASE}/runs/{run_id}").status_code == 404


class TestManualLinkEndpoint:
    def _orphan_and_partial(self, client: TestClient) -> tuple[int, int]:
        orphan = client.get(f"{BASE}/remittances/orphans").json()["remittances"][0]
        partial = client.get(f"{BASE}/claims/issues").json()["claims"][0]
        return partial["id"], orphan["id"]

    def test_link_completes_partial_payment(
        self, client: TestClient, claim_payload, remittance_payload
    ):
        _stage(client, claim_payload, remittance_payload)
        _run(client)
        claim_id, orphan_id = self._orphan_and_partial(client)

        response = client.post(
            f"{BASE}/link", json={"claim_id": claim_id, "remittance_id": orphan_id}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "matched"
        assert data["match_method"] == "manual"
        assert data["overpaid"] is True
        assert data["amount_paid"] == 280.0
        assert client.get(f"{BASE}/remittances/orphans").json()["total"] == 0

    def test_reused_line_conflicts(
        self, client: TestClient, claim_payload, remittance_payload
    ):
        _stage(client, claim_payload, remittance_payload)
        _run(client)
        claim_id, orphan_id = self._orphan_and_partial(client)
        client.post(f"{BASE}/link", json={"claim_id": claim_id, "remittance_id": orphan_id})

        response = client.post(
            f"{BASE}/link", json={"claim_id": claim_id, "remittance_id": orphan_id}
        )

        assert response.status_code == 409

    def test_unknown_claim(self, client: TestClient):
        response = client.post(f"{BASE}/link", json={"claim_id": 5, "remittance_id": 6})

        assert response.status_code == 404

    def test_invalid_ids(self, client: TestClient):
        response = client.post(f"{BASE}/link", json={"claim_id": 0, "remittance_id": 6})

        assert response.status_code == 422


class TestQueryEndpoints:
    """Test claim, period and orphan listings."""

    def test_list_claims_paginated(self, client: TestClient, claim_payload):
        client.post(f"{BASE}/claims", json=claim_payload)

        data = client.get(f"{BASE}/claims", params={"provider_name": "CIC", "limit": 1}).json()

        assert len(data["claims"]) == 1
        assert data["pagination"]["total"] == 2
        assert data["pagination"]["total_pages"] == 2

    def test_unknown_status_filter(self, client: TestClient):
        response = client.get(f"{BASE}/claims", params={"status": "bogus"})

        assert response.status_code == 400

    def test_periods_summary(self, client: TestClient, claim_payload):
        client.post(f"{BASE}/claims", json=claim_payload)

        periods = client.get(f"{BASE}/periods").json()["periods"]

        assert periods[0]["period_month"] == 8
        assert periods[0]["total_billed"] == "350.00"

    def test_period_claims_requires_provider(self, client: TestClient):
        response = client.get(f"{BASE}/periods/2025/8/claims")

        assert response.status_code == 422

    def test_period_claims(self, client: TestClient, claim_payload):
        client.post(f"{BASE}/claims", json=claim_payload)

        data = client.get(f"{BASE}/periods/2025/8/claims", params={"provider_name": "CIC"}).json()

        assert data["total"] == 2
        assert {c["currency"] for c in data["claims"]} == {"SSP"}


class TestPurgeEndpoints:
    def test_delete_claim(self, client: TestClient, claim_payload):
        client.post(f"{BASE}/claims", json=claim_payload)
        claim_id = client.get(f"{BASE}/claims").json()["claims"][0]["id"]

        assert client.delete(f"{BASE}/claims/{claim_id}").status_code == 200
        assert client.delete(f"{BASE}/claims/{claim_id}").status_code == 404

    def test_delete_period_claims(self, client: TestClient, claim_payload):
        client.post(f"{BASE}/claims", json=claim_payload)

        response = client.delete(
            f"{BASE}/periods/2025/8/claims", params={"provider_name": "CIC"}
        )

        assert response.json() == {"deleted": 2}
