# app/api/v1/auth.py
"""
Google sign-in and Gmail connection endpoints.
"""
import logging
from datetime import datetime
from typing import Optional
from urllib.parse import urlencode
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.api.deps import get_current_user_id
from app.core.config import FRONTEND_URL
from app.core.exceptions import CampaignError
from app.core.jwt_auth import JWTAuth
from app.models.user import User
from app.schemas.user import GmailStatus
from app.services import get_credential_service
from app.services.credential_service import CredentialService
from app.services import google_oauth

log = logging.getLogger("bulkmail.api.auth")

router = APIRouter()


def _login_redirect(**params) -> RedirectResponse:
    return RedirectResponse(url=f"{FRONTEND_URL}/login?{urlencode(params)}", status_code=302)


@router.get("/google/url")
def get_google_auth_url():
    """Consent URL for Google sign-in with Gmail and Sheets scopes"""
    return {"authUrl": google_oauth.build_auth_url()}


@router.get("/google/callback", include_in_schema=False)
def google_callback(
    code: Optional[str] = None,
    error: Optional[str] = None,
    db: Session = Depends(get_db),
    credentials: CredentialService = Depends(get_credential_service)
):
    """
    OAuth redirect target.

    Exchanges the code, upserts the user, stores encrypted Gmail tokens and
    sends the browser back to the front end with a session JWT.
    """
    if error:
        log.warning(f"⚠️ Google OAuth returned error: {error}")
        return _login_redirect(error="oauth_failed")
    if not code:
        return _login_redirect(error="no_code")

    try:
        tokens = google_oauth.exchange_code(code)
        info = google_oauth.fetch_user_info(tokens.access_token)

        email = info["email"]
        user = db.query(User).filter(User.email == email).first()
        if user is None:
            user = User(email=email, name=info.get("name"))
            db.add(user)
            log.info(f"👤 New user signed up: {email}")
        elif info.get("name") and not user.name:
            user.name = info["name"]
        db.commit()
        db.refresh(user)

        credentials.save(
            db,
            user_id=user.id,
            email=email,
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            expires_at=tokens.expires_at,
            scope=tokens.scope,
        )

        token = JWTAuth.create_token(user.id, user.email)
        log.info(f"✅ User {user.id} signed in with Google")
        return _login_redirect(token=token, email=user.email, name=user.name or "")

    except (google_oauth.OAuthExchangeError, CampaignError) as e:
        db.rollback()
        log.error(f"❌ Google sign-in failed: {e}")
        return _login_redirect(error="auth_failed")


@router.get("/gmail/status", response_model=GmailStatus)
def gmail_status(
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    credentials: CredentialService = Depends(get_credential_service)
):
    """Whether the user has an active Gmail connection"""
    credential = credentials.find_active(db, user_id)
    if not credential:
        return GmailStatus(connected=False)

    expired = bool(credential.expires_at and credential.expires_at <= datetime.utcnow())
    return GmailStatus(
        connected=True,
        email=credential.email,
        expired=expired,
        connected_at=credential.created_at,
    )


@router.post("/gmail/refresh")
def refresh_gmail_token(
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    credentials: CredentialService = Depends(get_credential_service)
):
    """Refresh the stored Gmail access token"""
    creds = credentials.refresh(db, user_id)
    return {
        "success": True,
        "message": "Token refreshed successfully",
        "expiresAt": creds.expiry.isoformat() if creds.expiry else None,
    }


@router.delete("/gmail/disconnect")
def disconnect_gmail(
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    credentials: CredentialService = Depends(get_credential_service)
):
    """Deactivate all Gmail credentials of the user"""
    changed = credentials.deactivate(db, user_id)
    if not changed:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No Gmail account connected"
        )
    return {"success": True, "message": "Gmail account disconnected"}
