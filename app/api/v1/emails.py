# app/api/v1/emails.py
"""Draft campaigns and starter email templates"""
import logging
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.api.deps import get_current_user_id
from app.models.campaign import Campaign, CampaignStatus
from app.schemas.campaign import DraftCampaignCreate
from app.services import get_credential_service
from app.services.credential_service import CredentialService

log = logging.getLogger("bulkmail.api.emails")

router = APIRouter()

STARTER_TEMPLATES = [
    {
        "id": 1,
        "name": "Welcome Email",
        "subject": "Welcome to {{company_name}}!",
        "body": (
            "Hi {{name}},\n\n"
            "Welcome to {{company_name}}! We're excited to have you on board.\n\n"
            "Best regards,\n"
            "The {{company_name}} Team"
        ),
    },
    {
        "id": 2,
        "name": "Newsletter",
        "subject": "{{company_name}} Newsletter - {{month}} {{year}}",
        "body": (
            "Hi {{name}},\n\n"
            "Here's what's new this month at {{company_name}}:\n\n"
            "{{content}}\n\n"
            "Best regards,\n"
            "The {{company_name}} Team"
        ),
    },
    {
        "id": 3,
        "name": "Promotional",
        "subject": "Special Offer Just for You!",
        "body": (
            "Hi {{name}},\n\n"
            "We have a special offer just for you! Use code {{promo_code}} to get "
            "{{discount}}% off your next purchase.\n\n"
            "Valid until {{expiry_date}}.\n\n"
            "Shop now: {{link}}\n\n"
            "Best regards,\n"
            "The {{company_name}} Team"
        ),
    },
]


@router.post("/campaigns", status_code=status.HTTP_201_CREATED)
def create_draft_campaign(
    data: DraftCampaignCreate,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    credentials: CredentialService = Depends(get_credential_service)
):
    """Save a campaign as a draft; sender defaults to the connected Gmail address"""
    gmail = credentials.get_active(db, user_id)

    campaign = Campaign(
        user_id=user_id,
        name=data.name,
        subject=data.subject,
        body=data.body,
        sender_email=data.sender_email or gmail.email,
        google_sheet_url=data.google_sheet_url,
        status=CampaignStatus.DRAFT,
    )
    db.add(campaign)
    db.commit()
    db.refresh(campaign)

    log.info(f"📝 Draft campaign {campaign.id} saved by user {user_id}")
    return {"success": True, "campaignId": campaign.id, "message": "Campaign created successfully"}


@router.get("/templates")
def get_templates(user_id: int = Depends(get_current_user_id)):
    """Built-in starter templates"""
    return {"success": True, "templates": STARTER_TEMPLATES}
