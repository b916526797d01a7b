"""Agent JWT parsing and widget session tokens"""
from datetime import datetime, timedelta, timezone

import jwt
import pytest
from fastapi import HTTPException

from chatdesk.core import config
from chatdesk.core.jwt_auth import JWTAuth, WidgetSessionToken


def test_widget_token_round_trip():
    issued = WidgetSessionToken.issue("tenant-1", 7, "visitor-1")

    claims = WidgetSessionToken.decode(issued["token"])

    assert claims["tenant_id"] == "tenant-1"
    assert claims["brand_id"] == 7
    assert claims["visitor_id"] == "visitor-1"


def test_expired_widget_token():
    token = jwt.encode(
        {"typ": "widget", "tenant_id": "t", "visitor_id": "v", "exp": datetime.now(timezone.utc) - timedelta(minutes=1)},
        config.WIDGET_TOKEN_SECRET,
        algorithm=config.JWT_ALGORITHM,
    )

    with pytest.raises(HTTPException) as exc:
        WidgetSessionToken.decode(token)
    assert exc.value.status_code == 401


def test_agent_token_is_not_a_widget_token():
    token = jwt.encode({"tenant_id": "t", "user_id": 1}, config.WIDGET_TOKEN_SECRET, algorithm=config.JWT_ALGORITHM)

    with pytest.raises(HTTPException):
        WidgetSessionToken.decode(token)


@pytest.mark.parametrize("payload, expected", [
    ({"tenant_id": "abc"}, "abc"),
    ({"tenantId": 12}, "12"),
    ({"tenant": {"id": "xyz"}}, "xyz"),
    ({}, None),
])
def test_tenant_id_spellings(payload, expected):
    assert JWTAuth.get_tenant_id(payload) == expected


def test_user_id_parsing():
    assert JWTAuth.get_user_id({"sub": "5"}) == 5
    assert JWTAuth.get_user_id({"user_id": "not-a-number"}) is None
