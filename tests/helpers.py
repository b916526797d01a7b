"""Test data builders and a scripted AI engine"""
import asyncio
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from chatdesk.core import config
from chatdesk.core.jwt_auth import WidgetSessionToken
from chatdesk.models.agent import Agent, Brand, BrandAgent
from chatdesk.models.settings import WidgetSetting
from chatdesk.models.visitor import Visitor
from chatdesk.services.ai_engine import AIEngine

TENANT = "tenant-1"


class ScriptedAIEngine(AIEngine):
    """AIEngine whose model call returns a canned reply"""

    def __init__(self, reply="ok", tokens=0, delay=0.0, error=None, timeout=1.0, credential=True):
        super().__init__(timeout=timeout)
        self.reply = reply
        self.tokens = tokens
        self.delay = delay
        self.error = error
        self.credential = credential
        self.calls = []

    def get_api_key(self, db):
        return "sk-test" if self.credential else None

    async def _complete(self, api_key, system_prompt, message, ai_settings):
        self.calls.append({"system_prompt": system_prompt, "message": message})
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.reply, self.tokens


def make_brand(db, tenant_id=TENANT, name="Acme Store", widget_key=None):
    brand = Brand(tenant_id=tenant_id, name=name, widget_key=widget_key or f"wk-{tenant_id}-{name}")
    db.add(brand)
    db.commit()
    db.refresh(brand)
    return brand


def make_agent(db, tenant_id=TENANT, name="Alice", presence="online",
               last_login: Optional[datetime] = None, status="active"):
    agent = Agent(
        tenant_id=tenant_id,
        name=name,
        email=f"{name.lower()}@example.com",
        presence_status=presence,
        last_login=last_login,
        status=status,
    )
    db.add(agent)
    db.commit()
    db.refresh(agent)
    return agent


def assign(db, brand, agent, status="active"):
    link = BrandAgent(tenant_id=brand.tenant_id, brand_id=brand.id, agent_id=agent.id, status=status)
    db.add(link)
    db.commit()
    return link


def make_visitor(db, visitor_id="visitor-1", tenant_id=TENANT, brand=None, **fields):
    values = {
        "session_id": "session-1",
        "name": "Anonymous Visitor",
        "status": "idle",
        "is_active": True,
        "last_activity": datetime.utcnow(),
    }
    values.update(fields)
    visitor = Visitor(id=visitor_id, tenant_id=tenant_id, brand_id=brand.id if brand else None, **values)
    db.add(visitor)
    db.commit()
    db.refresh(visitor)
    return visitor


def make_widget_settings(db, tenant_id=TENANT, ai_enabled=True, keywords=None):
    settings = WidgetSetting(tenant_id=tenant_id, ai_enabled=ai_enabled, auto_transfer_keywords=keywords or [])
    db.add(settings)
    db.commit()
    return settings


def minutes_ago(minutes):
    return datetime.utcnow() - timedelta(minutes=minutes)


def agent_headers(agent):
    token = jwt.encode(
        {
            "tenant_id": agent.tenant_id,
            "user_id": agent.id,
            "exp": datetime.now(timezone.utc) + timedelta(hours=1),
        },
        config.JWT_SECRET_KEY,
        algorithm=config.JWT_ALGORITHM,
    )
    return {"Authorization": f"Bearer {token}"}


def widget_headers(tenant_id=TENANT, brand_id=None, visitor_id="visitor-1"):
    issued = WidgetSessionToken.issue(tenant_id, brand_id, visitor_id)
    return {"X-Widget-Token": issued["token"]}
