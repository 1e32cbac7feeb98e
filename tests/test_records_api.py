"""
Records API — HTTP surface of the approval workflow.

Tests cover:
  - Authentication envelope (401 missing token, 403 bad token)
  - submit-record: 201, 400 missing fields, 404 unknown type slug
  - Legacy update-record bodies and explicit commands
  - Delete, records-for-actor, add-comment, yearly export
"""

import io
import zipfile
from datetime import datetime, timezone

import pytest
from openpyxl import load_workbook

from app.models.record import RecordStatus

BASE = "/api/v1/records"


@pytest.fixture()
def risk(champion, submit):
    return submit(champion, {"risks": "Fire", "likelihood": 3})


# ═════════════════════════════════════════════════════════════════════════
# AUTH
# ═════════════════════════════════════════════════════════════════════════

class TestAuthEnvelope:
    def test_missing_token(self, client):
        res = client.get(BASE)
        assert res.status_code == 401
        assert res.get_json() == {"success": False, "reason": "Access denied. No token provided."}

    def test_invalid_token(self, client):
        res = client.get(BASE, headers={"Authorization": "Bearer not-a-token"})
        assert res.status_code == 403
        assert res.get_json()["reason"] == "Invalid or expired token."

    def test_token_of_deleted_actor(self, client, champion, auth_headers):
        from app.models import db

        headers = auth_headers(champion)
        db.session.delete(champion)
        db.session.commit()
        assert client.get(BASE, headers=headers).status_code == 403


# ═════════════════════════════════════════════════════════════════════════
# SUBMIT
# ═════════════════════════════════════════════════════════════════════════

class TestSubmitEndpoint:
    def test_submit_created(self, client, champion, owner, auth_headers, submit_body):
        res = client.post(f"{BASE}/risk-assessment/submit-record",
                          json=submit_body(champion), headers=auth_headers(champion))
        assert res.status_code == 201
        body = res.get_json()
        assert body["success"] is True
        data = body["data"]
        assert data["currentStatus"] == RecordStatus.PENDING_OWNER
        assert data["recordType"] == "risk_assessment"
        assert data["fields"]["risks"] == {"value": "Fire", "comments": []}
        assert len(data["dataId"]) == 8

    def test_submit_bia(self, client, champion, auth_headers, submit_body):
        res = client.post(f"{BASE}/business-impact-analysis/submit-record",
                          json=submit_body(champion, fields={"process": "Payroll"}),
                          headers=auth_headers(champion))
        assert res.status_code == 201
        assert res.get_json()["data"]["recordType"] == "business_impact_analysis"

    def test_missing_fields(self, client, champion, auth_headers, submit_body):
        body = submit_body(champion)
        del body["createdBy"]
        res = client.post(f"{BASE}/risk-assessment/submit-record", json=body, headers=auth_headers(champion))
        assert res.status_code == 400
        payload = res.get_json()
        assert payload["success"] is False
        assert payload["reason"] == "Missing required fields"
        assert "createdBy" in payload["details"]

    def test_unknown_type_slug(self, client, champion, auth_headers, submit_body):
        res = client.post(f"{BASE}/incident/submit-record", json=submit_body(champion),
                          headers=auth_headers(champion))
        assert res.status_code == 404

    def test_foreign_actor_id(self, client, champion, owner, auth_headers, submit_body):
        res = client.post(f"{BASE}/risk-assessment/submit-record",
                          json=submit_body(champion, actorId=owner.id), headers=auth_headers(champion))
        assert res.status_code == 403

    def test_non_json_body(self, client, champion, auth_headers):
        res = client.post(f"{BASE}/risk-assessment/submit-record", data="company=Acme",
                          content_type="text/plain", headers=auth_headers(champion))
        assert res.status_code == 415

    def test_array_body(self, client, champion, auth_headers):
        res = client.post(f"{BASE}/risk-assessment/submit-record", json=[1, 2],
                          headers=auth_headers(champion))
        assert res.status_code == 400


# ═════════════════════════════════════════════════════════════════════════
# READ
# ═════════════════════════════════════════════════════════════════════════

class TestRead:
    def test_list_and_get(self, client, champion, owner, risk, auth_headers):
        res = client.get(BASE, headers=auth_headers(owner))
        assert [r["id"] for r in res.get_json()["data"]] == [risk.id]

        res = client.get(f"{BASE}/{risk.id}", headers=auth_headers(champion))
        assert res.status_code == 200
        assert res.get_json()["data"]["createdBy"] == champion.email

    def test_type_filter(self, client, owner, risk, auth_headers):
        res = client.get(f"{BASE}?type=business-impact-analysis", headers=auth_headers(owner))
        assert res.get_json()["data"] == []
        assert client.get(f"{BASE}?type=bogus", headers=auth_headers(owner)).status_code == 400

    def test_other_champion_gets_404(self, client, make_user, risk, auth_headers):
        res = client.get(f"{BASE}/{risk.id}", headers=auth_headers(make_user("champion")))
        assert res.status_code == 404

    def test_records_for_actor(self, client, champion, owner, risk, auth_headers):
        res = client.get(f"{BASE}/records-for-actor/{champion.id}", headers=auth_headers(owner))
        assert res.status_code == 200
        assert [r["id"] for r in res.get_json()["data"]] == [risk.id]

        res = client.get(f"{BASE}/records-for-actor/{owner.id}", headers=auth_headers(champion))
        assert res.status_code == 404


# ═════════════════════════════════════════════════════════════════════════
# UPDATE
# ═════════════════════════════════════════════════════════════════════════

class TestUpdateRecord:
    def test_approved_by_moves_to_final_approval(self, client, owner, risk, auth_headers):
        res = client.put(f"{BASE}/update-record/{risk.id}", json={"approvedBy": "Oscar Owner"},
                         headers=auth_headers(owner))
        assert res.status_code == 200
        data = res.get_json()["data"]
        assert data["currentStatus"] == RecordStatus.PENDING_FINAL
        assert data["approvedBy"] == "Oscar Owner"

    def test_rejection_status_text(self, client, owner, risk, auth_headers):
        res = client.put(f"{BASE}/update-record/{risk.id}",
                         json={"currentStatus": "Rejected", "rejectionReason": "Incomplete"},
                         headers=auth_headers(owner))
        data = res.get_json()["data"]
        assert data["currentStatus"] == RecordStatus.REJECTED
        assert data["rejectionReason"] == "Incomplete"

    def test_field_edit(self, client, champion, risk, auth_headers):
        res = client.put(f"{BASE}/update-record/{risk.id}",
                         json={"fields": {"likelihood": 4}, "lastEditedBy": {"email": champion.email}},
                         headers=auth_headers(champion))
        data = res.get_json()["data"]
        assert data["fields"]["likelihood"]["value"] == 4
        assert data["fields"]["risks"]["value"] == "Fire"
        assert data["lastEditedBy"]["email"] == champion.email

    def test_approval_with_fields_saves_both(self, client, owner, risk, auth_headers):
        res = client.put(f"{BASE}/update-record/{risk.id}",
                         json={"approvedBy": "Oscar", "fields": {"risks": "Flood"},
                               "lastEditedBy": {"email": "oscar@acme.test"}},
                         headers=auth_headers(owner))
        assert res.status_code == 200
        data = res.get_json()["data"]
        assert data["currentStatus"] == RecordStatus.PENDING_FINAL
        assert data["fields"]["risks"]["value"] == "Flood"
        assert data["lastEditedBy"]["email"] == owner.email

        stored = client.get(f"{BASE}/{risk.id}", headers=auth_headers(owner)).get_json()["data"]
        assert stored["fields"]["risks"]["value"] == "Flood"

    def test_rejection_with_fields_saves_both(self, client, owner, risk, auth_headers):
        res = client.put(f"{BASE}/update-record/{risk.id}",
                         json={"currentStatus": "rejected", "fields": {"likelihood": 1}},
                         headers=auth_headers(owner))
        data = res.get_json()["data"]
        assert data["currentStatus"] == RecordStatus.REJECTED
        assert data["fields"]["likelihood"]["value"] == 1

    def test_editor_stamp_ignores_body_email(self, client, champion, risk, auth_headers):
        res = client.put(f"{BASE}/update-record/{risk.id}",
                         json={"fields": {"likelihood": 2}, "lastEditedBy": {"email": "boss@acme.test"}},
                         headers=auth_headers(champion))
        assert res.get_json()["data"]["lastEditedBy"]["email"] == champion.email

    def test_empty_body_is_noop(self, client, owner, risk, auth_headers):
        res = client.put(f"{BASE}/update-record/{risk.id}", json={}, headers=auth_headers(owner))
        assert res.status_code == 200
        assert res.get_json()["data"]["currentStatus"] == RecordStatus.PENDING_OWNER

    def test_champion_cannot_approve(self, client, champion, risk, auth_headers):
        res = client.put(f"{BASE}/update-record/{risk.id}", json={"approvedBy": "me"},
                         headers=auth_headers(champion))
        assert res.status_code == 403

    def test_unknown_record(self, client, owner, auth_headers):
        res = client.put(f"{BASE}/update-record/999", json={"approvedBy": "x"}, headers=auth_headers(owner))
        assert res.status_code == 404


class TestCommands:
    def test_reject_then_approve_conflicts(self, client, owner, super_admin, risk, auth_headers):
        res = client.post(f"{BASE}/{risk.id}/commands", json={"type": "Reject", "reason": "dup"},
                          headers=auth_headers(owner))
        assert res.status_code == 200
        assert res.get_json()["data"]["currentStatus"] == RecordStatus.REJECTED

        res = client.post(f"{BASE}/{risk.id}/commands", json={"type": "Approve"},
                          headers=auth_headers(super_admin))
        assert res.status_code == 409
        assert res.get_json()["success"] is False

    def test_full_approval_chain(self, client, owner, super_admin, risk, auth_headers):
        client.post(f"{BASE}/{risk.id}/commands", json={"type": "Approve"}, headers=auth_headers(owner))
        res = client.post(f"{BASE}/{risk.id}/commands", json={"type": "Approve"},
                          headers=auth_headers(super_admin))
        data = res.get_json()["data"]
        assert data["currentStatus"] == RecordStatus.APPROVED
        assert data["approvedBy"] == "Oscar Owner"
        assert data["finalApprovedBy"] == "Sam Super"

    def test_admin_set_fields_forbidden(self, client, admin, risk, auth_headers):
        res = client.post(f"{BASE}/{risk.id}/commands",
                          json={"type": "SetFields", "values": {"risks": "Flood"}},
                          headers=auth_headers(admin))
        assert res.status_code == 403

    def test_unknown_command(self, client, owner, risk, auth_headers):
        res = client.post(f"{BASE}/{risk.id}/commands", json={"type": "Archive"}, headers=auth_headers(owner))
        assert res.status_code == 400


class TestCommentEndpoint:
    def test_add_comment(self, client, owner, risk, auth_headers):
        res = client.post(f"{BASE}/add-comment/{risk.id}", json={"fieldName": "risks", "text": "Which site?"},
                          headers=auth_headers(owner))
        assert res.status_code == 200
        field = res.get_json()["data"]["fields"]["risks"]
        assert field["value"] == "Fire"
        assert [c["text"] for c in field["comments"]] == ["Which site?"]
        assert field["comments"][0]["author"]["id"] == owner.id

    def test_missing_text(self, client, owner, risk, auth_headers):
        res = client.post(f"{BASE}/add-comment/{risk.id}", json={"fieldName": "risks"},
                          headers=auth_headers(owner))
        assert res.status_code == 400


# ═════════════════════════════════════════════════════════════════════════
# DELETE
# ═════════════════════════════════════════════════════════════════════════

class TestDelete:
    def test_delete_then_404(self, client, champion, risk, auth_headers):
        record_id = risk.id
        res = client.delete(f"{BASE}/record/{record_id}", headers=auth_headers(champion))
        assert res.status_code == 200
        assert res.get_json()["data"]["id"] == record_id

        assert client.delete(f"{BASE}/record/{record_id}", headers=auth_headers(champion)).status_code == 404
        assert client.get(f"{BASE}/{record_id}", headers=auth_headers(champion)).status_code == 404

    def test_out_of_scope_delete_is_404(self, client, make_user, risk, auth_headers):
        outsider = make_user("super-admin", company="Globex")
        res = client.delete(f"{BASE}/record/{risk.id}", headers=auth_headers(outsider))
        assert res.status_code == 404


# ═════════════════════════════════════════════════════════════════════════
# EXPORT
# ═════════════════════════════════════════════════════════════════════════

class TestExport:
    def test_empty_year(self, client, owner, auth_headers):
        assert client.get(f"{BASE}/export/2001", headers=auth_headers(owner)).status_code == 404

    def test_zip_with_one_workbook_per_type(self, client, champion, owner, submit, auth_headers):
        from app.models.record import RECORD_TYPE_BIA

        submit(champion)
        submit(champion, {"process": "Payroll"}, record_type=RECORD_TYPE_BIA)
        year = datetime.now(timezone.utc).year

        res = client.get(f"{BASE}/export/{year}", headers=auth_headers(owner))
        assert res.status_code == 200
        assert res.mimetype == "application/zip"

        with zipfile.ZipFile(io.BytesIO(res.data)) as zf:
            names = sorted(zf.namelist())
            assert names == sorted([f"risk_assessment_{year}.xlsx", f"business_impact_analysis_{year}.xlsx"])
            wb = load_workbook(io.BytesIO(zf.read(f"risk_assessment_{year}.xlsx")))

        ws = wb.active
        headers = [c.value for c in ws[1]]
        assert "risks" in headers
        assert ws.max_row == 2
