# app/core/exceptions.py
"""
Domain errors for campaigns, recipient sources, credentials and mail transport.

Each error carries the HTTP status it maps to and an optional ``action``
hint for the front end (e.g. ask the user to reconnect Gmail).
"""
from typing import List, Optional


class CampaignError(Exception):
    """Base class for all domain errors"""

    status_code: int = 500
    action: Optional[str] = None

    def __init__(self, message: str, action: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if action is not None:
            self.action = action

    def to_dict(self) -> dict:
        data = {"error": self.__class__.__name__, "details": self.message}
        if self.action:
            data["action"] = self.action
        return data


# ────────────────────────────────────────────
# Campaign lifecycle
# ────────────────────────────────────────────

class CampaignNotFound(CampaignError):
    status_code = 404

    def __init__(self, campaign_id=None, message: Optional[str] = None):
        super().__init__(message or f"Campaign not found: {campaign_id}")
        self.campaign_id = campaign_id


class CampaignBusy(CampaignError):
    """Another batch for the same campaign is running or already moved the checkpoint"""
    status_code = 409


class CampaignNotResumable(CampaignError):
    status_code = 400


# ────────────────────────────────────────────
# Recipient source
# ────────────────────────────────────────────

class RecipientSourceError(CampaignError):
    """Recipient fetch failed; the campaign is left untouched"""
    status_code = 400


class InvalidSourceFormat(RecipientSourceError):
    pass


class EmptySource(RecipientSourceError):
    pass


class NoDataRows(RecipientSourceError):
    pass


class NoEmailColumn(RecipientSourceError):

    def __init__(self, available_headers: List[str]):
        self.available_headers = list(available_headers)
        super().__init__(
            f"No email column found in sheet. Available columns: {', '.join(self.available_headers)}. "
            "Please ensure you have a column containing 'email' in the header."
        )


class SheetNotFound(RecipientSourceError):
    pass


class SheetAccessDenied(RecipientSourceError):
    status_code = 403


class SourceUnavailable(RecipientSourceError):
    status_code = 502


class InsufficientPermissions(RecipientSourceError):
    """The connected Google account lacks a required OAuth scope"""
    status_code = 401
    action = "reconnect_gmail"


# ────────────────────────────────────────────
# Credentials
# ────────────────────────────────────────────

class CredentialsNotFound(CampaignError):
    status_code = 400
    action = "connect_gmail"


class CredentialsInvalid(CampaignError):
    status_code = 400
    action = "reconnect_gmail"


# ────────────────────────────────────────────
# Mail transport
# ────────────────────────────────────────────

class SendFailure(CampaignError):
    """A single message could not be delivered by any sender strategy"""
    status_code = 502

    def __init__(self, reason: str, reconnect_required: bool = False):
        super().__init__(reason, action="reconnect_gmail" if reconnect_required else None)
        self.reason = reason
        self.reconnect_required = reconnect_required


class TransportSetupFailure(CampaignError):
    """No mail session could be opened for a batch"""
    status_code = 500
