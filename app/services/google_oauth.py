# app/services/google_oauth.py
"""
Google OAuth onboarding: consent URL, code exchange and user info.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import requests

from app.core.config import (
    GOOGLE_CLIENT_ID, GOOGLE_CLIENT_SECRET, GOOGLE_REDIRECT_URI, GOOGLE_TOKEN_URI,
)

log = logging.getLogger("bulkmail.oauth")

GOOGLE_AUTH_URI = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_USERINFO_URI = "https://www.googleapis.com/oauth2/v2/userinfo"

SCOPES = [
    "https://www.googleapis.com/auth/gmail.send",
    "https://www.googleapis.com/auth/gmail.compose",
    "https://www.googleapis.com/auth/userinfo.email",
    "https://www.googleapis.com/auth/userinfo.profile",
    "https://www.googleapis.com/auth/spreadsheets.readonly",
]


class OAuthExchangeError(Exception):
    """Token exchange or user info lookup failed"""


@dataclass
class OAuthTokens:
    access_token: str
    refresh_token: Optional[str]
    expires_at: Optional[datetime]
    scope: Optional[str]


def build_auth_url(state: Optional[str] = None) -> str:
    """Consent URL requesting offline access with a forced consent prompt"""
    params = {
        "client_id": GOOGLE_CLIENT_ID,
        "redirect_uri": GOOGLE_REDIRECT_URI,
        "response_type": "code",
        "scope": " ".join(SCOPES),
        "access_type": "offline",
        "prompt": "consent",
        "include_granted_scopes": "true",
    }
    if state:
        params["state"] = state
    return f"{GOOGLE_AUTH_URI}?{urlencode(params)}"


def exchange_code(code: str, timeout: int = 10) -> OAuthTokens:
    """Exchange an authorization code for tokens"""
    try:
        response = requests.post(GOOGLE_TOKEN_URI, data={
            "code": code,
            "client_id": GOOGLE_CLIENT_ID,
            "client_secret": GOOGLE_CLIENT_SECRET,
            "redirect_uri": GOOGLE_REDIRECT_URI,
            "grant_type": "authorization_code",
        }, timeout=timeout)
        response.raise_for_status()
    except requests.RequestException as e:
        log.error(f"❌ Google token exchange failed: {e}")
        raise OAuthExchangeError(f"Failed to exchange code with Google: {e}") from e

    data: Dict[str, Any] = response.json()
    access_token = data.get("access_token")
    if not access_token:
        raise OAuthExchangeError("Failed to obtain access token from Google")

    expires_in = data.get("expires_in")
    return OAuthTokens(
        access_token=access_token,
        refresh_token=data.get("refresh_token"),
        expires_at=datetime.utcnow() + timedelta(seconds=int(expires_in)) if expires_in else None,
        scope=data.get("scope"),
    )


def fetch_user_info(access_token: str, timeout: int = 10) -> Dict[str, Any]:
    """Email, name and picture of the signed-in Google account"""
    try:
        response = requests.get(
            GOOGLE_USERINFO_URI,
            headers={"Authorization": f"Bearer {access_token}"},
            timeout=timeout
        )
        response.raise_for_status()
    except requests.RequestException as e:
        log.error(f"❌ Google user info lookup failed: {e}")
        raise OAuthExchangeError(f"Failed to fetch Google user info: {e}") from e

    info = response.json()
    if not info.get("email"):
        raise OAuthExchangeError("Google account did not return an email address")
    return info
