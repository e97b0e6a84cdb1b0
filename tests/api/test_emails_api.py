# tests/api/test_emails_api.py
from app.models.campaign import Campaign, CampaignStatus
from tests.conftest import SHEET_URL


class TestDrafts:

    def test_draft_uses_connected_gmail_by_default(self, client, db, auth_headers, connected_gmail):
        response = client.post("/api/emails/campaigns", json={
            "name": "Draft",
            "subject": "Hi {{name}}",
            "body": "Hello",
            "googleSheetUrl": SHEET_URL,
        }, headers=auth_headers)

        assert response.status_code == 201
        campaign = db.get(Campaign, response.json()["campaignId"])
        assert campaign.status == CampaignStatus.DRAFT
        assert campaign.sender_email == "owner@gmail.com"

    def test_draft_requires_gmail(self, client, auth_headers):
        response = client.post("/api/emails/campaigns", json={
            "name": "Draft",
            "subject": "Hi",
            "body": "Hello",
            "googleSheetUrl": SHEET_URL,
        }, headers=auth_headers)

        assert response.status_code == 400


class TestTemplates:

    def test_starter_templates(self, client, auth_headers):
        body = client.get("/api/emails/templates", headers=auth_headers).json()

        assert [t["name"] for t in body["templates"]] == ["Welcome Email", "Newsletter", "Promotional"]
        assert all("{{name}}" in t["body"] for t in body["templates"])
