# tests/api/test_campaigns_api.py
from app.core.exceptions import InsufficientPermissions
from app.models.campaign import Campaign, CampaignStatus
from app.models.email_log import EmailLog
from tests.conftest import SHEET_URL

CREATE_PAYLOAD = {
    "subject": "Hello {{name}}",
    "body": "<p>Hi {{name}}, your code is {{code}}</p>",
    "googleSheetUrl": SHEET_URL,
    "campaignName": "Launch",
}


class TestAuthentication:

    def test_missing_token(self, client):
        response = client.get("/api/campaigns/list")
        assert response.status_code == 401

    def test_invalid_token(self, client):
        response = client.get("/api/campaigns/list", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 403


class TestCreateCampaign:

    def test_requires_connected_gmail(self, client, auth_headers):
        response = client.post("/api/campaigns/create", json=CREATE_PAYLOAD, headers=auth_headers)

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "CredentialsNotFound"
        assert body["action"] == "connect_gmail"

    def test_creates_campaign_sent_from_connected_gmail(self, client, db, auth_headers, connected_gmail):
        response = client.post("/api/campaigns/create", json=CREATE_PAYLOAD, headers=auth_headers)

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["status"] == "created"
        campaign = db.get(Campaign, body["campaignId"])
        assert campaign.sender_email == "owner@gmail.com"
        assert campaign.name == "Launch"
        assert campaign.recipients_data is None

    def test_default_name(self, client, db, auth_headers, connected_gmail):
        payload = {k: v for k, v in CREATE_PAYLOAD.items() if k != "campaignName"}

        response = client.post("/api/campaigns/create", json=payload, headers=auth_headers)

        assert db.get(Campaign, response.json()["campaignId"]).name.startswith("Campaign-")

    def test_missing_fields(self, client, auth_headers, connected_gmail):
        response = client.post("/api/campaigns/create", json={"subject": "Hi"}, headers=auth_headers)
        assert response.status_code == 422

    def test_blank_subject(self, client, auth_headers, connected_gmail):
        payload = dict(CREATE_PAYLOAD, subject="   ")
        response = client.post("/api/campaigns/create", json=payload, headers=auth_headers)
        assert response.status_code == 422


class TestProcessBatch:

    def test_client_driven_batches(self, client, make_campaign, auth_headers):
        campaign = make_campaign()
        url = f"/api/campaigns/{campaign.id}/process-batch"

        first = client.post(url, headers=auth_headers)
        assert first.status_code == 200
        assert first.json()["completed"] is False
        assert first.json()["remainingCount"] == 2
        assert first.json()["processedCount"] == 3

        second = client.post(url, headers=auth_headers)
        assert second.json()["completed"] is True
        assert second.json()["status"] == "completed"

        third = client.post(url, headers=auth_headers)
        assert third.json()["completed"] is True
        assert third.json()["processedCount"] == 5

    def test_batch_size_in_body(self, client, make_campaign, auth_headers):
        campaign = make_campaign()

        response = client.post(f"/api/campaigns/{campaign.id}/process-batch",
                               json={"batchSize": 5}, headers=auth_headers)

        assert response.json()["completed"] is True

    def test_batch_size_bounds(self, client, make_campaign, auth_headers):
        campaign = make_campaign()

        response = client.post(f"/api/campaigns/{campaign.id}/process-batch",
                               json={"batchSize": 0}, headers=auth_headers)

        assert response.status_code == 422

    def test_other_users_campaign(self, client, make_campaign, other_headers):
        campaign = make_campaign()

        response = client.post(f"/api/campaigns/{campaign.id}/process-batch", headers=other_headers)

        assert response.status_code == 404

    def test_source_errors_are_reported(self, client, make_campaign, auth_headers, engine_parts):
        _, _, source, _ = engine_parts
        source.error = InsufficientPermissions("Missing Google Sheets permissions.")
        campaign = make_campaign()

        response = client.post(f"/api/campaigns/{campaign.id}/process-batch", headers=auth_headers)

        assert response.status_code == 401
        assert response.json()["action"] == "reconnect_gmail"


class TestStatusAndLogs:

    def test_status_includes_log_counts(self, client, make_campaign, auth_headers):
        campaign = make_campaign()
        client.post(f"/api/campaigns/{campaign.id}/process-batch", headers=auth_headers)

        response = client.get(f"/api/campaigns/status/{campaign.id}", headers=auth_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["campaign"]["status"] == "running"
        assert body["campaign"]["processedCount"] == 3
        assert body["campaign"]["totalRecipients"] == 5
        assert body["logs"] == {"sent": 3, "failed": 0}

    def test_status_of_other_users_campaign(self, client, make_campaign, other_headers):
        campaign = make_campaign()
        response = client.get(f"/api/campaigns/status/{campaign.id}", headers=other_headers)
        assert response.status_code == 404

    def test_logs_in_send_order(self, client, make_campaign, auth_headers):
        campaign = make_campaign()
        client.post(f"/api/campaigns/{campaign.id}/process-batch", json={"batchSize": 5}, headers=auth_headers)

        response = client.get(f"/api/campaigns/logs/{campaign.id}", headers=auth_headers)

        assert [row["recipientEmail"] for row in response.json()] == [f"r{i}@example.com" for i in range(1, 6)]
        assert all(row["status"] == "sent" for row in response.json())

    def test_list_only_own_campaigns(self, client, make_campaign, db, other_user, auth_headers):
        mine = make_campaign(name="Mine")
        db.add(Campaign(user_id=other_user.id, name="Theirs", subject="s", body="b",
                        sender_email="x@example.com", google_sheet_url=SHEET_URL))
        db.commit()

        response = client.get("/api/campaigns/list", headers=auth_headers)

        assert [c["id"] for c in response.json()] == [mine.id]


class TestContinue:

    def test_unknown_campaign(self, client, auth_headers):
        assert client.post("/api/campaigns/9999/continue", headers=auth_headers).status_code == 404

    def test_other_users_campaign(self, client, make_campaign, other_headers):
        campaign = make_campaign(status=CampaignStatus.PAUSED, needs_continuation=True)
        response = client.post(f"/api/campaigns/{campaign.id}/continue", headers=other_headers)
        assert response.status_code == 403

    def test_not_paused(self, client, make_campaign, auth_headers):
        campaign = make_campaign(status=CampaignStatus.RUNNING)

        response = client.post(f"/api/campaigns/{campaign.id}/continue", headers=auth_headers)

        assert response.status_code == 400
        assert response.json()["error"] == "CampaignNotResumable"

    def test_resumes_in_background(self, client, db, make_campaign, auth_headers):
        campaign = make_campaign()
        client.post(f"/api/campaigns/{campaign.id}/process-batch", headers=auth_headers)
        campaign.status = CampaignStatus.PAUSED
        campaign.needs_continuation = True
        db.commit()

        response = client.post(f"/api/campaigns/{campaign.id}/continue", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["campaignId"] == campaign.id
        db.expire_all()
        resumed = db.get(Campaign, campaign.id)
        assert resumed.status == CampaignStatus.COMPLETED
        assert resumed.processed_count == 5
        assert db.query(EmailLog).filter(EmailLog.campaign_id == campaign.id).count() == 5


class TestDeleteCampaign:

    def test_delete_removes_logs(self, client, db, make_campaign, auth_headers):
        campaign = make_campaign()
        client.post(f"/api/campaigns/{campaign.id}/process-batch", headers=auth_headers)

        response = client.delete(f"/api/campaigns/{campaign.id}", headers=auth_headers)

        assert response.status_code == 200
        db.expire_all()
        assert db.get(Campaign, campaign.id) is None
        assert db.query(EmailLog).filter(EmailLog.campaign_id == campaign.id).count() == 0

    def test_cannot_delete_other_users_campaign(self, client, make_campaign, other_headers):
        campaign = make_campaign()
        assert client.delete(f"/api/campaigns/{campaign.id}", headers=other_headers).status_code == 404


class TestSheetHelpers:

    def test_preview(self, client, auth_headers, connected_gmail):
        response = client.post("/api/campaigns/test-sheet", json={"googleSheetUrl": SHEET_URL}, headers=auth_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["recipientCount"] == 5
        assert body["headers"] == ["Email", "Name", "Code"]
        assert len(body["preview"]) == 5
        assert body["preview"][0] == {"email": "r1@example.com", "name": "Recipient 1"}

    def test_missing_scope_asks_for_reconnect(self, client, auth_headers, connected_gmail, sheet_source):
        sheet_source.error = InsufficientPermissions("Missing Google Sheets permissions.")

        response = client.post("/api/campaigns/test-sheet", json={"googleSheetUrl": SHEET_URL}, headers=auth_headers)

        assert response.status_code == 401
        assert response.json() == {
            "error": "InsufficientPermissions",
            "details": "Missing Google Sheets permissions.",
            "action": "reconnect_gmail",
        }

    def test_without_gmail(self, client, auth_headers):
        response = client.post("/api/campaigns/test-sheet", json={"googleSheetUrl": SHEET_URL}, headers=auth_headers)
        assert response.json()["action"] == "connect_gmail"

    def test_setup_guide(self, client, auth_headers):
        response = client.get("/api/campaigns/sheet-setup-guide", headers=auth_headers)

        assert response.status_code == 200
        assert len(response.json()["guide"]["steps"]) == 5
