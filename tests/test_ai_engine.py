"""AI engine: transfer intent, knowledge context, timeouts and settings"""
import pytest
from openai import APIConnectionError
import httpx

from chatdesk.core import config
from chatdesk.models.settings import KnowledgeDoc, SystemSetting
from chatdesk.services.ai_engine import (
    AIEngine, FALLBACK_REPLY, TRANSFER_REPLY, is_transfer_request
)

from helpers import TENANT, ScriptedAIEngine, make_brand


@pytest.mark.parametrize("message", [
    "Can I talk to a human please?",
    "I want a LIVE AGENT now",
    "please escalate this",
    "get me a human",
])
def test_builtin_transfer_phrases(message):
    assert is_transfer_request(message)


@pytest.mark.parametrize("message", [
    "What are your opening hours?",
    "hi",
    "my user agents keep crashing",
])
def test_ordinary_messages_are_not_transfers(message):
    assert not is_transfer_request(message, ["agent"])


@pytest.mark.parametrize("message, expected", [
    ("Transfer me, please!", True),
    ("ESCALATE.", True),
    ("My order was escalated last week, any news?", False),
    ("I found a real-person photo on your site", False),
])
def test_phrases_match_whole_words_only(message, expected):
    assert is_transfer_request(message) is expected


def test_tenant_keywords_extend_builtin_list():
    assert not is_transfer_request("I need a manager")
    assert is_transfer_request("I need a manager", ["manager"])


@pytest.mark.asyncio
async def test_transfer_detected_before_model_call(db):
    engine = ScriptedAIEngine(reply="should not be used")

    reply = await engine.generate_response(db, "talk to a human", tenant_id=TENANT)

    assert reply.is_transfer_request is True
    assert reply.response == TRANSFER_REPLY
    assert reply.tokens_used == 0
    assert engine.calls == []


@pytest.mark.asyncio
async def test_normal_reply(db):
    engine = ScriptedAIEngine(reply="We ship worldwide.", tokens=17)

    reply = await engine.generate_response(db, "Do you ship abroad?", tenant_id=TENANT)

    assert reply.response == "We ship worldwide."
    assert reply.tokens_used == 17
    assert reply.confidence == 0.8
    assert reply.is_transfer_request is False


@pytest.mark.asyncio
async def test_slow_model_falls_back(db):
    engine = ScriptedAIEngine(reply="too late", delay=0.5, timeout=0.05)

    reply = await engine.generate_response(db, "hello", tenant_id=TENANT)

    assert reply.response == FALLBACK_REPLY
    assert reply.confidence == 0.0


@pytest.mark.asyncio
async def test_upstream_error_falls_back(db):
    request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    engine = ScriptedAIEngine(error=APIConnectionError(request=request))

    reply = await engine.generate_response(db, "hello", tenant_id=TENANT)

    assert reply.response == FALLBACK_REPLY


@pytest.mark.asyncio
async def test_brand_knowledge_preferred_over_tenant(db):
    brand = make_brand(db)
    db.add_all([
        KnowledgeDoc(tenant_id=TENANT, brand_id=brand.id, category="shipping", title="Delivery", content="2-3 days"),
        KnowledgeDoc(tenant_id=TENANT, brand_id=None, category="general", title="Company", content="Founded 2001"),
    ])
    db.commit()
    engine = ScriptedAIEngine(reply="ok")

    await engine.generate_response(db, "how long is delivery?", tenant_id=TENANT, brand_id=brand.id)

    prompt = engine.calls[0]["system_prompt"]
    assert "=== SHIPPING KNOWLEDGE ===" in prompt
    assert "Delivery: 2-3 days" in prompt
    assert "Founded 2001" not in prompt


@pytest.mark.asyncio
async def test_tenant_knowledge_used_when_brand_has_none(db):
    brand = make_brand(db)
    db.add(KnowledgeDoc(tenant_id=TENANT, brand_id=None, category="general", title="Company", content="Founded 2001"))
    db.commit()
    engine = ScriptedAIEngine(reply="ok")

    await engine.generate_response(db, "who are you?", tenant_id=TENANT, brand_id=brand.id)

    assert "Company: Founded 2001" in engine.calls[0]["system_prompt"]


def test_api_key_from_system_setting_and_placeholders(db, monkeypatch):
    monkeypatch.setattr(config, "OPENAI_API_KEY", None)
    engine = AIEngine()
    assert engine.has_credential(db) is False

    db.add(SystemSetting(setting_key="openai_api_key", value="your-openai-api-key-here", category="ai"))
    db.commit()
    assert engine.has_credential(db) is False

    monkeypatch.setattr(config, "OPENAI_API_KEY", "sk-from-env")
    assert engine.get_api_key(db) == "sk-from-env"


def test_ai_settings_from_system_settings(db):
    db.add_all([
        SystemSetting(setting_key="ai_model", value="gpt-4o", category="ai"),
        SystemSetting(setting_key="ai_temperature", value="0.2", category="ai"),
        SystemSetting(setting_key="ai_max_tokens", value="not-a-number", category="ai"),
    ])
    db.commit()

    settings = AIEngine().get_ai_settings(db)

    assert settings["model"] == "gpt-4o"
    assert settings["temperature"] == 0.2
    assert settings["max_tokens"] == config.AI_MAX_TOKENS


def test_openai_client_reused_per_key():
    engine = AIEngine(timeout=5)

    first = engine.get_client("sk-one")

    assert engine.get_client("sk-one") is first
    assert engine.get_client("sk-two") is not first
