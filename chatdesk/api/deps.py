# chatdesk/api/deps.py
"""
API dependencies for authentication and database access.

- Agents authenticate with a JWT bearer token issued by the dashboard.
- Widgets present a signed widget-session token in X-Widget-Token.
"""
from typing import Optional, Dict, Any
from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from chatdesk.core import config
from chatdesk.core.exceptions import ForbiddenError
from chatdesk.core.jwt_auth import JWTAuth, WidgetSessionToken
from chatdesk.db.session import get_db
from chatdesk.models.agent import Agent

# Security scheme
security = HTTPBearer(auto_error=False)


# ────────────────────────────────────────────
# Agent Authentication (JWT)
# ────────────────────────────────────────────

def get_current_agent(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db)
) -> Agent:
    """
    Resolve the calling agent from the bearer token.

    The token must carry a tenant id and the agent id, and the agent must
    belong to that tenant.
    """
    if not credentials or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required"
        )

    payload = JWTAuth.decode_token(credentials.credentials)
    return agent_from_payload(db, payload)


def agent_from_payload(db: Session, payload: Dict[str, Any]) -> Agent:
    tenant_id = JWTAuth.get_tenant_id(payload)
    agent_id = JWTAuth.get_user_id(payload)
    if not tenant_id or agent_id is None:
        raise HTTPException(status_code=401, detail="Token is missing tenant or user id")

    agent = db.query(Agent).filter(
        Agent.id == agent_id,
        Agent.tenant_id == tenant_id
    ).first()
    if not agent or agent.status != "active":
        raise HTTPException(status_code=401, detail="Agent not found or inactive")
    return agent


def get_tenant_id(agent: Agent = Depends(get_current_agent)) -> str:
    """Tenant of the authenticated agent"""
    return agent.tenant_id


# ────────────────────────────────────────────
# Widget Authentication (signed session token)
# ────────────────────────────────────────────

def get_widget_claims(
    x_widget_token: Optional[str] = Header(None, alias="X-Widget-Token")
) -> Optional[Dict[str, Any]]:
    """
    Decode the widget session token.

    Returns None when no token is sent and WIDGET_TOKEN_REQUIRED is off.
    """
    if x_widget_token:
        return WidgetSessionToken.decode(x_widget_token)

    if config.WIDGET_TOKEN_REQUIRED:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Widget session token required"
        )
    return None


def check_widget_scope(claims: Optional[Dict[str, Any]], tenant_id: str, visitor_id: str) -> None:
    """Reject a body tenant/visitor that differs from the token's"""
    if claims is None:
        return
    if str(claims.get("tenant_id")) != str(tenant_id) or claims.get("visitor_id") != visitor_id:
        raise ForbiddenError("Widget session does not match tenant or visitor")
