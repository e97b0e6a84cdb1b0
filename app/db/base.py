# app/db/base.py
"""Import all models so metadata knows every table"""
from app.models.base import Base

from app.models.user import User
from app.models.gmail_credential import GmailCredential
from app.models.campaign import Campaign
from app.models.email_log import EmailLog

__all__ = ["Base", "User", "GmailCredential", "Campaign", "EmailLog"]
