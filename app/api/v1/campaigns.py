# app/api/v1/campaigns.py
"""
Campaign API - creation, batch processing, status and continuation.

The client drives sending by calling ``process-batch`` repeatedly and
awaiting each response before issuing the next.
"""
import logging
from datetime import datetime
from typing import List, Optional
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.api.deps import get_current_user_id, get_owned_campaign
from app.core.exceptions import CampaignNotResumable
from app.models.campaign import Campaign, CampaignStatus
from app.models.email_log import EmailLog
from app.schemas.campaign import (
    CampaignCreate,
    CampaignResponse,
    CampaignStatusResponse,
    EmailLogResponse,
    ProcessBatchRequest,
    ProcessBatchResponse,
    SheetPreviewResponse,
    TestSheetRequest,
)
from app.services import (
    get_campaign_processor,
    get_campaign_runner,
    get_credential_service,
    get_recipient_source,
)
from app.services.campaign_processor import CampaignProcessor
from app.services.continuation import CampaignRunner
from app.services.credential_service import CredentialService
from app.services.recipient_source import SheetsRecipientSource

log = logging.getLogger("bulkmail.api.campaigns")

router = APIRouter()

SHEET_SETUP_GUIDE = {
    "title": "Google Sheets Setup Guide",
    "steps": [
        {
            "step": 1,
            "title": "Create a Google Sheet",
            "description": "Create a new Google Sheet or use an existing one",
            "details": "Go to sheets.google.com and create a new sheet",
        },
        {
            "step": 2,
            "title": "Set up your columns",
            "description": "Your sheet should have at least an 'Email' column",
            "details": "Required: a column with 'email' in the header. Optional: a column with "
                       "'name' in the header for personalization.",
            "example": "Example headers: Email, Name, Company",
        },
        {
            "step": 3,
            "title": "Add recipient data",
            "description": "Fill in one row per recipient below the headers",
            "details": "Every column is available in templates as {{column header}}",
        },
        {
            "step": 4,
            "title": "Share the sheet (if needed)",
            "description": "Make sure the sheet is accessible",
            "details": "Either share it with 'Anyone with the link can view' or keep it owned by "
                       "the Google account connected to this app",
        },
        {
            "step": 5,
            "title": "Copy the sheet URL",
            "description": "Copy the complete Google Sheets URL",
            "details": "It looks like https://docs.google.com/spreadsheets/d/SHEET_ID/edit",
        },
    ],
    "troubleshooting": [
        {
            "issue": "Permission denied error",
            "solution": "Share the sheet with your connected Gmail account or set it to 'Anyone with link can view'",
        },
        {
            "issue": "No email column found",
            "solution": "Add a column whose header contains the word 'email' (case insensitive)",
        },
        {
            "issue": "Sheet is empty",
            "solution": "Add at least one row of data below your headers",
        },
        {
            "issue": "Missing Google Sheets permissions",
            "solution": "Disconnect and reconnect your Gmail account to grant Sheets access",
        },
    ],
}


# ────────────────────────────────────────────
# Create / list
# ────────────────────────────────────────────

@router.post("/create", status_code=status.HTTP_201_CREATED)
def create_campaign(
    data: CampaignCreate,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    credentials: CredentialService = Depends(get_credential_service)
):
    """
    Create a campaign ready for batch processing.
    The sender is the user's connected Gmail address.
    """
    gmail = credentials.get_active(db, user_id)

    campaign = Campaign(
        user_id=user_id,
        name=data.campaign_name or f"Campaign-{int(datetime.utcnow().timestamp() * 1000)}",
        subject=data.subject,
        body=data.body,
        sender_email=gmail.email,
        google_sheet_url=data.google_sheet_url,
        status=CampaignStatus.CREATED,
    )
    db.add(campaign)
    db.commit()
    db.refresh(campaign)

    log.info(f"📧 Campaign {campaign.id} created by user {user_id}")
    return {
        "success": True,
        "campaignId": campaign.id,
        "status": campaign.status.value,
        "message": "Email campaign created successfully. Use /process-batch to start sending emails.",
    }


@router.get("/list", response_model=List[CampaignResponse])
def list_campaigns(
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Campaigns of the current user, newest first"""
    return db.query(Campaign).filter(
        Campaign.user_id == user_id
    ).order_by(Campaign.created_at.desc(), Campaign.id.desc()).all()


# ────────────────────────────────────────────
# Batch processing
# ────────────────────────────────────────────

@router.post("/{campaign_id}/process-batch", response_model=ProcessBatchResponse)
def process_batch(
    campaign_id: int,
    payload: Optional[ProcessBatchRequest] = None,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    processor: CampaignProcessor = Depends(get_campaign_processor)
):
    """
    Send the next slice of recipients.
    Returns ``completed=false`` with the remaining count while work remains.
    """
    get_owned_campaign(campaign_id, db, user_id)

    batch_size = payload.batch_size if payload else None
    log.info(f"📦 Processing batch for campaign {campaign_id} by user {user_id}")
    result = processor.process_batch(db, campaign_id, batch_size)
    return result.to_dict()


@router.get("/status/{campaign_id}", response_model=CampaignStatusResponse)
def get_campaign_status(
    campaign_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    processor: CampaignProcessor = Depends(get_campaign_processor)
):
    """Campaign record plus email log counts by status"""
    campaign = get_owned_campaign(campaign_id, db, user_id)
    return {
        "campaign": campaign,
        "logs": processor.get_stats(db, campaign_id),
    }


@router.get("/logs/{campaign_id}", response_model=List[EmailLogResponse])
def get_campaign_logs(
    campaign_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Email log of a campaign in send order"""
    get_owned_campaign(campaign_id, db, user_id)
    return db.query(EmailLog).filter(
        EmailLog.campaign_id == campaign_id
    ).order_by(EmailLog.sent_at.asc(), EmailLog.id.asc()).all()


@router.post("/{campaign_id}/continue")
def continue_campaign(
    campaign_id: int,
    background_tasks: BackgroundTasks,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    runner: CampaignRunner = Depends(get_campaign_runner)
):
    """Resume a paused campaign in the background"""
    campaign = db.get(Campaign, campaign_id)
    if not campaign:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Campaign not found")
    if campaign.user_id != user_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
    if campaign.status != CampaignStatus.PAUSED or not campaign.needs_continuation:
        raise CampaignNotResumable(
            f"Campaign doesn't need continuation (status: {campaign.status.value}, "
            f"needs_continuation: {campaign.needs_continuation})"
        )

    background_tasks.add_task(runner.resume_in_background, campaign_id)
    log.info(f"🔄 Continuation of campaign {campaign_id} requested by user {user_id}")
    return {"message": "Campaign continuation started", "campaignId": campaign_id}


@router.delete("/{campaign_id}")
def delete_campaign(
    campaign_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Delete a campaign and its logs. Sent emails are not retracted."""
    campaign = get_owned_campaign(campaign_id, db, user_id)
    db.delete(campaign)
    db.commit()
    log.info(f"🗑️ Campaign {campaign_id} deleted by user {user_id}")
    return {"success": True, "message": "Campaign deleted successfully"}


# ────────────────────────────────────────────
# Sheet helpers
# ────────────────────────────────────────────

@router.post("/test-sheet", response_model=SheetPreviewResponse)
def test_sheet(
    data: TestSheetRequest,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    credentials: CredentialService = Depends(get_credential_service),
    source: SheetsRecipientSource = Depends(get_recipient_source)
):
    """Read a sheet and preview the first five recipients"""
    recipients = source.fetch(data.google_sheet_url, credentials.google_credentials(db, user_id))
    return {
        "success": True,
        "recipientCount": len(recipients),
        "headers": recipients[0].header_row if recipients else [],
        "preview": [{"email": r.email, "name": r.name} for r in recipients[:5]],
    }


@router.get("/sheet-setup-guide")
def sheet_setup_guide(user_id: int = Depends(get_current_user_id)):
    """Static guide for preparing a recipient sheet"""
    return {"success": True, "guide": SHEET_SETUP_GUIDE}
