# app/api/deps.py
"""
API dependencies for authentication, database access and campaign ownership.
"""
from typing import Dict, Any
from fastapi import Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.core.jwt_auth import get_current_user
from app.models.user import User
from app.models.campaign import Campaign


def get_current_user_id(current_user: Dict[str, Any] = Depends(get_current_user)) -> int:
    """Numeric user id from the JWT"""
    try:
        return int(current_user["user_id"])
    except (TypeError, ValueError):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid or expired token"
        )


def get_current_db_user(
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
) -> User:
    """Signed-in user row; 401 if the account no longer exists"""
    user = db.get(User, user_id)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found"
        )
    return user


def get_owned_campaign(campaign_id: int, db: Session, user_id: int) -> Campaign:
    """
    Campaign owned by the user.
    Campaigns of other users are reported as missing.
    """
    campaign = db.query(Campaign).filter(
        Campaign.id == campaign_id,
        Campaign.user_id == user_id
    ).first()
    if not campaign:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Campaign not found"
        )
    return campaign
