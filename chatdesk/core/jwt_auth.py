# chatdesk/core/jwt_auth.py
"""
JWT handling for both sides of the chat.

- Agent tokens are issued by the dashboard's auth service and only validated here.
- Widget session tokens are issued by POST /api/widget/session and bind a widget
  instance to one tenant, brand and visitor.
"""
import jwt
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any
from fastapi import HTTPException

from chatdesk.core.config import (
    JWT_SECRET_KEY, JWT_ALGORITHM,
    WIDGET_TOKEN_SECRET, WIDGET_TOKEN_TTL_MINUTES,
)

WIDGET_TOKEN_TYPE = "widget"


class JWTAuth:
    """Agent JWT authentication handler"""

    @staticmethod
    def decode_token(token: str) -> Dict[str, Any]:
        """
        Decode and validate an agent JWT.

        Raises:
            HTTPException: If token is invalid or expired
        """
        try:
            return jwt.decode(token, JWT_SECRET_KEY, algorithms=[JWT_ALGORITHM])
        except jwt.ExpiredSignatureError:
            raise HTTPException(status_code=401, detail="Token has expired")
        except jwt.InvalidTokenError:
            raise HTTPException(status_code=401, detail="Invalid token")

    @staticmethod
    def get_tenant_id(payload: Dict[str, Any]) -> Optional[str]:
        """Extract tenant_id from JWT payload, trying the key spellings the dashboard uses."""
        tenant_id = (
            payload.get('tenant_id') or
            payload.get('tenant') or
            payload.get('tenantId')
        )

        if isinstance(tenant_id, dict):
            tenant_id = tenant_id.get('id') or tenant_id.get('tenant_id')

        return str(tenant_id) if tenant_id else None

    @staticmethod
    def get_user_id(payload: Dict[str, Any]) -> Optional[int]:
        """Extract the agent id from JWT payload."""
        user_id = (
            payload.get('user_id') or
            payload.get('sub') or
            payload.get('id')
        )
        if user_id is None:
            return None
        try:
            return int(user_id)
        except (TypeError, ValueError):
            return None


class WidgetSessionToken:
    """Signed widget-session token replacing trust in client-supplied ids"""

    @staticmethod
    def issue(tenant_id: str, brand_id: Optional[int], visitor_id: str) -> Dict[str, Any]:
        expires_at = datetime.now(timezone.utc) + timedelta(minutes=WIDGET_TOKEN_TTL_MINUTES)
        payload = {
            "typ": WIDGET_TOKEN_TYPE,
            "tenant_id": str(tenant_id),
            "brand_id": brand_id,
            "visitor_id": visitor_id,
            "exp": expires_at,
        }
        token = jwt.encode(payload, WIDGET_TOKEN_SECRET, algorithm=JWT_ALGORITHM)
        return {"token": token, "expires_at": expires_at}

    @staticmethod
    def decode(token: str) -> Dict[str, Any]:
        try:
            payload = jwt.decode(token, WIDGET_TOKEN_SECRET, algorithms=[JWT_ALGORITHM])
        except jwt.ExpiredSignatureError:
            raise HTTPException(status_code=401, detail="Widget session has expired")
        except jwt.InvalidTokenError:
            raise HTTPException(status_code=401, detail="Invalid widget session token")

        if payload.get("typ") != WIDGET_TOKEN_TYPE or not payload.get("visitor_id"):
            raise HTTPException(status_code=401, detail="Invalid widget session token")
        return payload
