# app/schemas/campaign.py
from pydantic import BaseModel, Field, field_validator
from typing import List, Optional, Dict, Any
from datetime import datetime

from app.models.campaign import CampaignStatus


class CampaignCreate(BaseModel):
    subject: str = Field(..., min_length=1, description="Subject template, may contain {{placeholders}}")
    body: str = Field(..., min_length=1, description="Body template, plain text or HTML")
    google_sheet_url: str = Field(..., alias="googleSheetUrl", min_length=1)
    campaign_name: Optional[str] = Field(None, alias="campaignName")

    class Config:
        populate_by_name = True

    @field_validator("subject", "body", "google_sheet_url")
    @classmethod
    def not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value


class DraftCampaignCreate(BaseModel):
    name: str = Field(..., min_length=1)
    subject: str = Field(..., min_length=1)
    body: str = Field(..., min_length=1)
    google_sheet_url: str = Field(..., alias="googleSheetUrl", min_length=1)
    sender_email: Optional[str] = Field(None, alias="senderEmail")

    class Config:
        populate_by_name = True


class ProcessBatchRequest(BaseModel):
    batch_size: Optional[int] = Field(None, alias="batchSize", ge=1, le=100)

    class Config:
        populate_by_name = True


class TestSheetRequest(BaseModel):
    google_sheet_url: str = Field(..., alias="googleSheetUrl", min_length=1)

    class Config:
        populate_by_name = True


class CampaignResponse(BaseModel):
    id: int
    name: str
    subject: str
    body: str
    sender_email: str = Field(..., alias="senderEmail")
    google_sheet_url: str = Field(..., alias="googleSheetUrl")
    status: CampaignStatus
    total_recipients: int = Field(..., alias="totalRecipients")
    processed_count: int = Field(..., alias="processedCount")
    sent_count: int = Field(..., alias="sentCount")
    failed_count: int = Field(..., alias="failedCount")
    progress_percentage: int = Field(..., alias="progressPercentage")
    needs_continuation: bool = Field(False, alias="needsContinuation")
    error_message: Optional[str] = Field(None, alias="errorMessage")
    created_at: datetime = Field(..., alias="createdAt")
    started_at: Optional[datetime] = Field(None, alias="startedAt")
    paused_at: Optional[datetime] = Field(None, alias="pausedAt")
    resumed_at: Optional[datetime] = Field(None, alias="resumedAt")
    completed_at: Optional[datetime] = Field(None, alias="completedAt")
    failed_at: Optional[datetime] = Field(None, alias="failedAt")

    class Config:
        from_attributes = True
        populate_by_name = True


class EmailLogResponse(BaseModel):
    id: int
    recipient_email: str = Field(..., alias="recipientEmail")
    recipient_name: Optional[str] = Field(None, alias="recipientName")
    status: str
    message_id: Optional[str] = Field(None, alias="messageId")
    transport: Optional[str] = None
    attempts: int = 1
    error_message: Optional[str] = Field(None, alias="errorMessage")
    sent_at: datetime = Field(..., alias="sentAt")

    class Config:
        from_attributes = True
        populate_by_name = True


class CampaignStatusResponse(BaseModel):
    campaign: CampaignResponse
    logs: Dict[str, int]

    class Config:
        from_attributes = True


class CampaignDetailResponse(BaseModel):
    campaign: CampaignResponse
    logs: List[EmailLogResponse]

    class Config:
        from_attributes = True


class ProcessBatchResponse(BaseModel):
    success: bool
    completed: bool
    status: str
    processed_count: int = Field(..., alias="processedCount")
    total_recipients: int = Field(..., alias="totalRecipients")
    remaining_count: Optional[int] = Field(None, alias="remainingCount")
    progress_percentage: Optional[int] = Field(None, alias="progressPercentage")
    batch_sent: int = Field(0, alias="batchSent")
    batch_failed: int = Field(0, alias="batchFailed")
    message: Optional[str] = None

    class Config:
        populate_by_name = True


class SheetPreviewResponse(BaseModel):
    success: bool = True
    recipient_count: int = Field(..., alias="recipientCount")
    headers: List[str] = []
    preview: List[Dict[str, Any]]

    class Config:
        populate_by_name = True
