# app/core/jwt_auth.py
"""
JWT Authentication for the REST API.
Tokens are issued after Google sign-in and carry the user id and email.
"""
import jwt
from datetime import datetime, timedelta
from typing import Optional, Dict, Any
from fastapi import HTTPException, Security
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from app.core.config import JWT_SECRET_KEY, JWT_ALGORITHM, JWT_ACCESS_TOKEN_LIFETIME_DAYS

# Security scheme for Swagger UI
security = HTTPBearer(auto_error=False)


class JWTAuth:
    """JWT Authentication handler"""

    @staticmethod
    def create_token(user_id: str, email: str, lifetime: Optional[timedelta] = None) -> str:
        """
        Issue a signed access token.

        Args:
            user_id: Internal user identifier
            email: User email address
            lifetime: Token lifetime (defaults to JWT_ACCESS_TOKEN_LIFETIME_DAYS)

        Returns:
            Encoded JWT string
        """
        expires_at = datetime.utcnow() + (lifetime or timedelta(days=JWT_ACCESS_TOKEN_LIFETIME_DAYS))
        payload = {
            "userId": str(user_id),
            "email": email,
            "exp": expires_at,
        }
        return jwt.encode(payload, JWT_SECRET_KEY, algorithm=JWT_ALGORITHM)

    @staticmethod
    def decode_token(token: str) -> Dict[str, Any]:
        """
        Decode and validate JWT token.

        Raises:
            HTTPException: If token is invalid or expired
        """
        try:
            return jwt.decode(
                token,
                JWT_SECRET_KEY,
                algorithms=[JWT_ALGORITHM]
            )
        except jwt.ExpiredSignatureError:
            raise HTTPException(
                status_code=403,
                detail="Token has expired"
            )
        except jwt.InvalidTokenError:
            raise HTTPException(
                status_code=403,
                detail="Invalid or expired token"
            )

    @staticmethod
    def get_user_id(payload: Dict[str, Any]) -> Optional[str]:
        """Extract user id from JWT payload"""
        user_id = (
            payload.get('userId') or
            payload.get('user_id') or
            payload.get('sub')
        )
        return str(user_id) if user_id else None


# ────────────────────────────────────────────
# FastAPI Dependencies
# ────────────────────────────────────────────

async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(security)
) -> Dict[str, Any]:
    """
    FastAPI dependency to get current authenticated user from JWT.

    Returns:
        Dict with user_id, email and the raw payload
    """
    if not credentials or not credentials.credentials:
        raise HTTPException(status_code=401, detail="Access token required")

    payload = JWTAuth.decode_token(credentials.credentials)
    user_id = JWTAuth.get_user_id(payload)
    if not user_id:
        raise HTTPException(status_code=403, detail="Invalid or expired token")

    return {
        "user_id": user_id,
        "email": payload.get("email"),
        "payload": payload,
    }
