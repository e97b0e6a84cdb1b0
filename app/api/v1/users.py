# app/api/v1/users.py
"""User profile and campaign history endpoints"""
import logging
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.api.deps import get_current_db_user, get_owned_campaign
from app.models.campaign import Campaign
from app.models.email_log import EmailLog
from app.models.user import User
from app.schemas.campaign import CampaignResponse, CampaignDetailResponse
from app.schemas.user import GmailAccount, UserProfile, UserProfileUpdate
from app.services import get_credential_service
from app.services.credential_service import CredentialService

log = logging.getLogger("bulkmail.api.users")

router = APIRouter()


@router.get("/profile")
def get_profile(
    user: User = Depends(get_current_db_user),
    db: Session = Depends(get_db),
    credentials: CredentialService = Depends(get_credential_service)
):
    """Profile with Gmail connection details"""
    gmail = credentials.find_active(db, user.id)
    profile = UserProfile(
        id=user.id,
        email=user.email,
        name=user.name,
        created_at=user.created_at,
        gmail=GmailAccount(email=gmail.email, connected_at=gmail.created_at) if gmail else None,
    )
    return {
        "success": True,
        "user": profile.model_dump(mode="json", by_alias=True),
        "gmailConnected": gmail is not None,
    }


@router.put("/profile")
def update_profile(
    data: UserProfileUpdate,
    user: User = Depends(get_current_db_user),
    db: Session = Depends(get_db)
):
    """Update display name"""
    name = data.name.strip()
    if not name:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Name is required"
        )
    user.name = name
    db.commit()
    log.info(f"👤 User {user.id} updated profile")
    return {"success": True, "message": "Profile updated successfully"}


@router.get("/campaigns")
def list_user_campaigns(
    user: User = Depends(get_current_db_user),
    db: Session = Depends(get_db)
):
    campaigns = db.query(Campaign).filter(
        Campaign.user_id == user.id
    ).order_by(Campaign.created_at.desc(), Campaign.id.desc()).all()
    return {
        "success": True,
        "campaigns": [
            CampaignResponse.model_validate(c).model_dump(mode="json", by_alias=True)
            for c in campaigns
        ],
    }


@router.get("/campaigns/{campaign_id}")
def get_user_campaign(
    campaign_id: int,
    user: User = Depends(get_current_db_user),
    db: Session = Depends(get_db)
):
    """Campaign with its full email log"""
    campaign = get_owned_campaign(campaign_id, db, user.id)
    logs = db.query(EmailLog).filter(
        EmailLog.campaign_id == campaign_id
    ).order_by(EmailLog.sent_at.asc(), EmailLog.id.asc()).all()
    detail = CampaignDetailResponse.model_validate({"campaign": campaign, "logs": logs}, from_attributes=True)
    return {"success": True, **detail.model_dump(mode="json", by_alias=True)}


@router.delete("/campaigns/{campaign_id}")
def delete_user_campaign(
    campaign_id: int,
    user: User = Depends(get_current_db_user),
    db: Session = Depends(get_db)
):
    campaign = get_owned_campaign(campaign_id, db, user.id)
    db.delete(campaign)
    db.commit()
    log.info(f"🗑️ Campaign {campaign_id} deleted by user {user.id}")
    return {"success": True, "message": "Campaign deleted successfully"}
