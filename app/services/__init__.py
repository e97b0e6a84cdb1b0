# app/services/__init__.py
"""
Service layer initialization.
Provides singleton instances of services for FastAPI dependencies.
"""
from typing import Optional

from app.services.credential_service import CredentialService
from app.services.recipient_source import SheetsRecipientSource
from app.services.campaign_processor import CampaignProcessor
from app.services.continuation import CampaignRunner

# Global service instances
_credential_service: Optional[CredentialService] = None
_campaign_processor: Optional[CampaignProcessor] = None
_campaign_runner: Optional[CampaignRunner] = None


def get_credential_service() -> CredentialService:
    """Get global CredentialService instance"""
    global _credential_service
    if _credential_service is None:
        _credential_service = CredentialService()
    return _credential_service


def get_recipient_source() -> SheetsRecipientSource:
    return SheetsRecipientSource()


def get_campaign_processor() -> CampaignProcessor:
    """Get global CampaignProcessor wired to the credential store"""
    global _campaign_processor
    if _campaign_processor is None:
        _campaign_processor = CampaignProcessor(get_credential_service())
    return _campaign_processor


def get_campaign_runner() -> CampaignRunner:
    """Get global CampaignRunner (time-boxed loop + continuation)"""
    global _campaign_runner
    if _campaign_runner is None:
        _campaign_runner = CampaignRunner(get_campaign_processor())
    return _campaign_runner


__all__ = [
    'CredentialService',
    'CampaignProcessor',
    'CampaignRunner',
    'SheetsRecipientSource',
    'get_credential_service',
    'get_recipient_source',
    'get_campaign_processor',
    'get_campaign_runner',
]
