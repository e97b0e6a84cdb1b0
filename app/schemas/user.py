# app/schemas/user.py
from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime


class UserProfileUpdate(BaseModel):
    name: str = Field(..., max_length=255)


class GmailAccount(BaseModel):
    email: str
    connected_at: Optional[datetime] = Field(None, alias="connectedAt")

    class Config:
        populate_by_name = True


class UserProfile(BaseModel):
    id: int
    email: str
    name: Optional[str] = None
    created_at: datetime = Field(..., alias="createdAt")
    gmail: Optional[GmailAccount] = None

    class Config:
        from_attributes = True
        populate_by_name = True


class GmailStatus(BaseModel):
    connected: bool
    email: Optional[str] = None
    expired: Optional[bool] = None
    connected_at: Optional[datetime] = Field(None, alias="connectedAt")

    class Config:
        populate_by_name = True
