# app/services/mail_transport.py
"""
Mail transport - ordered sender strategies behind one send contract.

The Gmail API is tried first; SMTP with XOAUTH2 is the fallback. A
transport is opened once per batch from the owner's refreshed credentials.
"""
import base64
import logging
import smtplib
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Sequence

from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from sqlalchemy.orm import Session

from app.core.config import SMTP_HOST, SMTP_PORT
from app.core.exceptions import CampaignError, SendFailure, TransportSetupFailure
from app.services.personalization import OutgoingMessage

log = logging.getLogger("bulkmail.campaigns.transport")


@dataclass
class SendResult:
    """Uniform outcome of a successful send"""
    message_id: Optional[str]
    transport: str


class SenderStrategy:
    """One way of delivering a message"""
    name = "base"

    def send(self, message: OutgoingMessage) -> SendResult:
        raise NotImplementedError


# ────────────────────────────────────────────
# Gmail API
# ────────────────────────────────────────────

def describe_gmail_error(error: HttpError) -> SendFailure:
    """Turn a Gmail API error into a user-facing SendFailure"""
    text = str(error)
    status = str(getattr(error.resp, "status", ""))

    if "insufficient authentication scopes" in text.lower():
        return SendFailure(
            "Missing Gmail permissions. Please reconnect your Gmail account to grant sending access.",
            reconnect_required=True
        )
    if status == "403":
        return SendFailure(
            "Gmail API permission denied. Please check that the Gmail API is enabled and "
            "your account has permission to send email.",
            reconnect_required=True
        )
    if status == "401":
        return SendFailure(
            "Gmail authentication failed. Please reconnect your Gmail account.",
            reconnect_required=True
        )
    return SendFailure(f"Gmail API error: {text}")


class GmailApiSender(SenderStrategy):
    name = "gmail_api"

    def __init__(self, service):
        self._service = service

    def send(self, message: OutgoingMessage) -> SendResult:
        raw = base64.urlsafe_b64encode(message.to_mime().as_bytes()).decode()
        try:
            response = self._service.users().messages().send(
                userId="me",
                body={"raw": raw}
            ).execute()
        except HttpError as e:
            raise describe_gmail_error(e) from e
        return SendResult(message_id=response.get("id"), transport=self.name)


# ────────────────────────────────────────────
# SMTP (XOAUTH2)
# ────────────────────────────────────────────

def xoauth2_string(user: str, access_token: str) -> str:
    auth = f"user={user}\1auth=Bearer {access_token}\1\1"
    return base64.b64encode(auth.encode("utf-8")).decode("ascii")


class SmtpSender(SenderStrategy):
    name = "smtp"

    def __init__(
        self,
        user: str,
        access_token: str,
        host: str = SMTP_HOST,
        port: int = SMTP_PORT,
        smtp_factory: Callable[..., Any] = smtplib.SMTP,
        timeout: int = 30
    ):
        self.user = user
        self._access_token = access_token
        self.host = host
        self.port = port
        self._smtp_factory = smtp_factory
        self.timeout = timeout

    def send(self, message: OutgoingMessage) -> SendResult:
        mime = message.to_mime()
        try:
            with self._smtp_factory(self.host, self.port, timeout=self.timeout) as server:
                server.ehlo()
                server.starttls()
                server.ehlo()
                code, response = server.docmd("AUTH", "XOAUTH2 " + xoauth2_string(self.user, self._access_token))
                if code != 235:
                    raise SendFailure(f"SMTP authentication failed ({code}): {response!r}", reconnect_required=True)
                server.sendmail(message.sender, [message.to], mime.as_string())
        except (smtplib.SMTPException, OSError) as e:
            raise SendFailure(f"SMTP error: {e}") from e
        return SendResult(message_id=mime["Message-ID"], transport=self.name)


# ────────────────────────────────────────────
# Transport
# ────────────────────────────────────────────

class MailTransport:
    """Tries each sender strategy in order until one succeeds"""

    def __init__(self, strategies: Sequence[SenderStrategy]):
        if not strategies:
            raise ValueError("MailTransport needs at least one sender strategy")
        self.strategies: List[SenderStrategy] = list(strategies)

    def send(self, message: OutgoingMessage) -> SendResult:
        errors = []
        for strategy in self.strategies:
            try:
                result = strategy.send(message)
                log.debug(f"📤 {strategy.name} delivered to {message.to} ({result.message_id})")
                return result
            except SendFailure as e:
                log.warning(f"⚠️ {strategy.name} failed for {message.to}: {e.reason}")
                errors.append(e)
            except Exception as e:
                log.warning(f"⚠️ {strategy.name} raised {e.__class__.__name__} for {message.to}: {e}")
                errors.append(SendFailure(f"{e.__class__.__name__}: {e}"))

        reasons = "; ".join(f"{s.name}: {e.reason}" for s, e in zip(self.strategies, errors))
        raise SendFailure(
            f"Both sending methods failed. {reasons}" if len(errors) > 1 else errors[0].reason,
            reconnect_required=any(e.reconnect_required for e in errors)
        )


def _default_gmail_service(credentials):
    return build("gmail", "v1", credentials=credentials, cache_discovery=False)


class GmailTransportFactory:
    """Opens a MailTransport for a user; called once per batch"""

    def __init__(self, credential_service, service_builder: Callable[[Any], Any] = _default_gmail_service):
        self.credential_service = credential_service
        self._build_service = service_builder

    def open(self, db: Session, user_id: int, sender_email: Optional[str] = None) -> MailTransport:
        """
        Refresh the owner's credentials and build the sender chain.

        Raises:
            TransportSetupFailure: If no session could be created
        """
        try:
            credentials = self.credential_service.refresh(db, user_id, sender_email)
            gmail = self._build_service(credentials)
            user = sender_email or self.credential_service.get_active(db, user_id).email
        except CampaignError as e:
            raise TransportSetupFailure(f"Failed to create mail transport: {e.message}", action=e.action) from e
        except Exception as e:
            raise TransportSetupFailure(f"Failed to create mail transport: {e}") from e

        log.info(f"📮 Mail transport ready for user {user_id} ({user})")
        return MailTransport([
            GmailApiSender(gmail),
            SmtpSender(user, credentials.token),
        ])
