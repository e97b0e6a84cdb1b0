# app/services/credential_service.py
"""
Gmail credential store.
Holds encrypted OAuth tokens per (user, mail account) and hands out
refreshed google-auth credentials.
"""
import logging
import threading
from datetime import datetime
from typing import Dict, Optional

from google.auth.exceptions import RefreshError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from sqlalchemy.orm import Session

from app.core.config import GOOGLE_CLIENT_ID, GOOGLE_CLIENT_SECRET, GOOGLE_TOKEN_URI
from app.core.exceptions import CredentialsInvalid, CredentialsNotFound
from app.core.logging_config import mask_secret
from app.core.security import TokenCipher, get_token_cipher
from app.models.gmail_credential import GmailCredential

log = logging.getLogger("bulkmail.credentials")


class CredentialService:
    """Service for stored Gmail credentials"""

    def __init__(self, cipher: Optional[TokenCipher] = None, refresh_request_factory=Request):
        self.cipher = cipher or get_token_cipher()
        self._request_factory = refresh_request_factory
        self._locks: Dict[int, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, credential_id: int) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(credential_id, threading.Lock())

    # ────────────────────────────────────────────
    # Store operations
    # ────────────────────────────────────────────

    def get_active(self, db: Session, user_id: int, email: Optional[str] = None) -> GmailCredential:
        """
        Most recently updated active credential for a user.

        Raises:
            CredentialsNotFound: If the user has not connected Gmail
        """
        query = db.query(GmailCredential).filter(
            GmailCredential.user_id == user_id,
            GmailCredential.is_active == True  # noqa: E712
        )
        if email:
            query = query.filter(GmailCredential.email == email)
        credential = query.order_by(GmailCredential.updated_at.desc()).first()
        if not credential:
            raise CredentialsNotFound("No Gmail credentials found. Please connect your Gmail account first.")
        return credential

    def find_active(self, db: Session, user_id: int) -> Optional[GmailCredential]:
        try:
            return self.get_active(db, user_id)
        except CredentialsNotFound:
            return None

    def save(
        self,
        db: Session,
        user_id: int,
        email: str,
        access_token: str,
        refresh_token: Optional[str] = None,
        expires_at: Optional[datetime] = None,
        scope: Optional[str] = None
    ) -> GmailCredential:
        """
        Upsert credentials for (user, email).
        A missing refresh token keeps the one already stored.
        """
        credential = db.query(GmailCredential).filter(
            GmailCredential.user_id == user_id,
            GmailCredential.email == email
        ).first()

        if credential is None:
            credential = GmailCredential(user_id=user_id, email=email)
            db.add(credential)

        credential.access_token = self.cipher.encrypt(access_token)
        if refresh_token:
            credential.refresh_token = self.cipher.encrypt(refresh_token)
        credential.expires_at = expires_at
        if scope is not None:
            credential.scope = scope
        credential.is_active = True

        db.commit()
        db.refresh(credential)
        log.info(f"🔐 Saved Gmail credentials for user {user_id} ({email}), token {mask_secret(access_token)}")
        return credential

    def deactivate(self, db: Session, user_id: int) -> int:
        """Deactivate every credential of a user. Returns rows changed."""
        changed = db.query(GmailCredential).filter(
            GmailCredential.user_id == user_id,
            GmailCredential.is_active == True  # noqa: E712
        ).update({GmailCredential.is_active: False}, synchronize_session=False)
        db.commit()
        log.info(f"🔌 Deactivated {changed} Gmail credential(s) for user {user_id}")
        return changed

    # ────────────────────────────────────────────
    # google-auth integration
    # ────────────────────────────────────────────

    def _to_google(self, credential: GmailCredential) -> Credentials:
        refresh_token = self.cipher.decrypt(credential.refresh_token) if credential.refresh_token else None
        return Credentials(
            token=self.cipher.decrypt(credential.access_token),
            refresh_token=refresh_token,
            token_uri=GOOGLE_TOKEN_URI,
            client_id=GOOGLE_CLIENT_ID,
            client_secret=GOOGLE_CLIENT_SECRET,
            scopes=credential.scope.split() if credential.scope else None,
            expiry=credential.expires_at,
        )

    def google_credentials(self, db: Session, user_id: int, email: Optional[str] = None) -> Credentials:
        """Decrypted credentials for Google API clients"""
        return self._to_google(self.get_active(db, user_id, email))

    def refresh(self, db: Session, user_id: int, email: Optional[str] = None) -> Credentials:
        """
        Refresh the access token and persist it in place.

        Refreshes of the same credential are serialized; the refresh token
        is kept unless Google rotates it. With ``email`` only that connected
        account is used.

        Raises:
            CredentialsNotFound: No active credential
            CredentialsInvalid: Google rejected the refresh
        """
        credential = self.get_active(db, user_id, email)

        with self._lock_for(credential.id):
            db.refresh(credential)
            creds = self._to_google(credential)

            if not creds.refresh_token:
                if creds.expired:
                    raise CredentialsInvalid("Gmail access expired and no refresh token is stored. Please reconnect Gmail.")
                return creds

            try:
                creds.refresh(self._request_factory())
            except RefreshError as e:
                log.error(f"❌ Token refresh failed for user {user_id}: {e}")
                raise CredentialsInvalid(
                    "Failed to refresh Gmail access token. Please reconnect your Gmail account."
                ) from e

            credential.access_token = self.cipher.encrypt(creds.token)
            credential.expires_at = creds.expiry
            if creds.refresh_token and creds.refresh_token != self.cipher.decrypt(credential.refresh_token):
                credential.refresh_token = self.cipher.encrypt(creds.refresh_token)
            db.commit()

        log.info(f"🔄 Refreshed Gmail token for user {user_id}: {mask_secret(creds.token)}")
        return creds
