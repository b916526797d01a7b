"""AI response gate: preconditions, replies and AI-to-agent hand-off"""
import pytest

from chatdesk.core.exceptions import AIUnavailableError, BadRequestError, VisitorNotFound
from chatdesk.models.handoff import HandoffEvent
from chatdesk.models.message import VisitorMessage
from chatdesk.models.settings import WidgetSetting
from chatdesk.models.visitor import Visitor
from chatdesk.services.ai_gate import (
    AI_DISABLED_MESSAGE, AI_NOT_CONFIGURED_MESSAGE, NO_BRAND_MESSAGE
)
from chatdesk.services.handoff_service import NO_AGENTS_MESSAGE

from helpers import TENANT, assign, make_agent, make_brand, make_visitor, make_widget_settings, minutes_ago


@pytest.mark.asyncio
async def test_ai_disabled_short_circuits(db, gate, ai_engine):
    make_widget_settings(db, ai_enabled=False)
    make_visitor(db)

    with pytest.raises(AIUnavailableError) as exc:
        await gate.handle_message(db, TENANT, "visitor-1", "hello")

    assert exc.value.message == AI_DISABLED_MESSAGE
    assert ai_engine.calls == []


@pytest.mark.asyncio
async def test_missing_widget_settings_means_disabled(db, gate):
    make_visitor(db)

    with pytest.raises(AIUnavailableError) as exc:
        await gate.handle_message(db, TENANT, "visitor-1", "hello")

    assert exc.value.message == AI_DISABLED_MESSAGE


@pytest.mark.asyncio
async def test_missing_credential(db, gate, ai_engine):
    make_widget_settings(db)
    make_visitor(db)
    ai_engine.credential = False

    with pytest.raises(AIUnavailableError) as exc:
        await gate.handle_message(db, TENANT, "visitor-1", "hello")

    assert exc.value.message == AI_NOT_CONFIGURED_MESSAGE


@pytest.mark.asyncio
async def test_unknown_visitor(db, gate):
    make_widget_settings(db)

    with pytest.raises(VisitorNotFound):
        await gate.handle_message(db, TENANT, "missing", "hello")


@pytest.mark.asyncio
async def test_normal_reply_persisted_and_broadcast(db, gate, notifier):
    make_widget_settings(db)
    make_visitor(db)

    result = await gate.handle_message(db, TENANT, "visitor-1", "When do you open?")

    assert result["response"] == "Our store opens at 9am."
    assert result["isTransferRequest"] is False
    assert result["tokensUsed"] == 42

    saved = db.query(VisitorMessage).one()
    assert saved.sender_type == "ai"
    assert saved.sender_name == "AI Assistant"
    assert saved.meta_data["original_message"] == "When do you open?"

    room, data = notifier.named("ai:response")[0]
    assert room == f"tenant:{TENANT}"
    assert data["messageId"] == saved.id


@pytest.mark.asyncio
async def test_talk_to_a_human_end_to_end(db, gate, notifier):
    make_widget_settings(db)
    brand = make_brand(db)
    agent = make_agent(db, name="Bob", presence="online", last_login=minutes_ago(1))
    assign(db, brand, agent)
    make_visitor(db, brand=brand)

    result = await gate.handle_message(db, TENANT, "visitor-1", "hi, can I talk to a human?")

    assert result["isTransferRequest"] is True
    assert result["transferSuccess"] is True
    assert result["agent"]["name"] == "Bob"

    db.expire_all()
    visitor = db.get(Visitor, "visitor-1")
    assert visitor.status == "waiting_for_agent"
    assert visitor.assigned_agent_id == agent.id

    system = db.query(VisitorMessage).filter(VisitorMessage.sender_type == "system").one()
    assert system.message == "AI transferred this chat to agent Bob"
    assert system.meta_data["transfer_type"] == "ai_to_agent"

    assert notifier.rooms_for("agent:assigned") == [f"agent:{agent.id}"]
    assert f"tenant:{TENANT}" in notifier.rooms_for("visitor:transfer")
    assert "visitor:visitor-1" in notifier.rooms_for("visitor:transfer")
    assert db.query(HandoffEvent).count() == 1


@pytest.mark.asyncio
async def test_tenant_keyword_triggers_transfer(db, gate, ai_engine):
    make_widget_settings(db, keywords=["supervisor"])
    brand = make_brand(db)
    assign(db, brand, make_agent(db))
    make_visitor(db, brand=brand)

    result = await gate.handle_message(db, TENANT, "visitor-1", "put your supervisor on")

    assert result["transferSuccess"] is True
    assert ai_engine.calls == []


@pytest.mark.asyncio
async def test_transfer_without_brand(db, gate, notifier):
    make_widget_settings(db)
    make_visitor(db, status="idle")

    with pytest.raises(BadRequestError) as exc:
        await gate.handle_message(db, TENANT, "visitor-1", "talk to a human")

    assert exc.value.message == NO_BRAND_MESSAGE
    db.expire_all()
    visitor = db.get(Visitor, "visitor-1")
    assert visitor.status == "idle"
    assert visitor.assigned_agent_id is None
    assert db.query(VisitorMessage).count() == 0
    assert notifier.events == []


@pytest.mark.asyncio
async def test_transfer_with_no_agents(db, gate, notifier):
    make_widget_settings(db)
    brand = make_brand(db)
    make_visitor(db, brand=brand)

    result = await gate.handle_message(db, TENANT, "visitor-1", "talk to a human")

    assert result["transferFailed"] is True
    assert result["response"] == NO_AGENTS_MESSAGE
    assert db.query(VisitorMessage).count() == 0
    assert db.query(HandoffEvent).count() == 0
    assert notifier.events == []


@pytest.mark.asyncio
async def test_default_settings_answer_questions_mentioning_agents(db, gate, ai_engine):
    db.add(WidgetSetting(tenant_id=TENANT, ai_enabled=True))
    db.commit()
    brand = make_brand(db)
    assign(db, brand, make_agent(db))
    make_visitor(db, brand=brand)

    result = await gate.handle_message(db, TENANT, "visitor-1", "Does your shipping agent deliver on Sunday?")

    assert result["isTransferRequest"] is False
    assert result["response"] == "Our store opens at 9am."
    assert len(ai_engine.calls) == 1
    db.expire_all()
    visitor = db.get(Visitor, "visitor-1")
    assert visitor.status != "waiting_for_agent"
    assert visitor.assigned_agent_id is None
    assert db.query(HandoffEvent).count() == 0
