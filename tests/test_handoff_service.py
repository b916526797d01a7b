"""Hand-off coordinator: transfers, pool requests, accepts and stats"""
import pytest

from chatdesk.core.exceptions import BadRequestError, VisitorNotFound
from chatdesk.models.handoff import HandoffEvent
from chatdesk.models.message import VisitorMessage
from chatdesk.models.visitor import Visitor
from chatdesk.services.handoff_service import NO_AGENTS_MESSAGE, NO_ONLINE_AGENTS_MESSAGE

from helpers import TENANT, assign, make_agent, make_brand, make_visitor, minutes_ago


def test_transfer_assigns_agent_and_records_event(db, coordinator):
    brand = make_brand(db)
    agent = make_agent(db, last_login=minutes_ago(1))
    assign(db, brand, agent)
    make_visitor(db, brand=brand)

    result = coordinator.transfer_chat_to_agent(db, "visitor-1", TENANT, brand.id)

    assert result.success is True
    assert result.agent == {"id": agent.id, "name": "Alice", "email": "alice@example.com", "avatar": None}

    db.expire_all()
    visitor = db.get(Visitor, "visitor-1")
    assert visitor.assigned_agent_id == agent.id
    assert visitor.status == "waiting_for_agent"

    event = db.query(HandoffEvent).one()
    assert event.handoff_type == "ai_to_agent"
    assert event.to_agent_id == agent.id


def test_transfer_without_agents_leaves_visitor_unchanged(db, coordinator):
    brand = make_brand(db)
    make_visitor(db, brand=brand, status="idle")

    result = coordinator.transfer_chat_to_agent(db, "visitor-1", TENANT, brand.id)

    assert result.success is False
    assert result.message == NO_AGENTS_MESSAGE

    db.expire_all()
    visitor = db.get(Visitor, "visitor-1")
    assert visitor.status == "idle"
    assert visitor.assigned_agent_id is None
    assert db.query(HandoffEvent).count() == 0


def test_repeated_transfer_last_write_wins(db, coordinator):
    brand = make_brand(db)
    first = make_agent(db, name="First", last_login=minutes_ago(3))
    assign(db, brand, first)
    make_visitor(db, brand=brand)

    coordinator.transfer_chat_to_agent(db, "visitor-1", TENANT, brand.id)

    second = make_agent(db, name="Second", last_login=minutes_ago(1))
    assign(db, brand, second)
    result = coordinator.transfer_chat_to_agent(db, "visitor-1", TENANT, brand.id)

    assert result.agent["id"] == second.id
    db.expire_all()
    assert db.get(Visitor, "visitor-1").assigned_agent_id == second.id
    assert db.query(HandoffEvent).filter(HandoffEvent.from_agent_id == first.id).count() == 1


def test_request_agent_moves_visitor_to_pool(db, coordinator, notifier):
    agent = make_agent(db, presence="online")
    make_visitor(db, status="idle", assigned_agent_id=agent.id)

    result = coordinator.request_agent(db, "visitor-1", TENANT, reason="billing question")

    assert result.success is True
    db.expire_all()
    visitor = db.get(Visitor, "visitor-1")
    assert visitor.status == "waiting_for_agent"
    assert visitor.assigned_agent_id is None
    assert set(notifier.rooms_for("visitor:transfer")) == {"visitor:visitor-1", f"tenant:{TENANT}"}
    assert db.query(VisitorMessage).filter(VisitorMessage.sender_type == "system").count() == 1
    assert db.query(HandoffEvent).one().handoff_type == "visitor_request"


def test_request_agent_with_nobody_online(db, coordinator, notifier):
    make_agent(db, presence="offline")
    make_visitor(db, status="idle")

    result = coordinator.request_agent(db, "visitor-1", TENANT)

    assert result.success is False
    assert result.message == NO_ONLINE_AGENTS_MESSAGE
    db.expire_all()
    assert db.get(Visitor, "visitor-1").status == "idle"
    assert notifier.events == []


def test_request_agent_for_unknown_visitor(db, coordinator):
    make_agent(db, presence="online")

    with pytest.raises(VisitorNotFound):
        coordinator.request_agent(db, "missing", TENANT)


def test_accept_chat_from_pool(db, coordinator, notifier):
    agent = make_agent(db)
    make_visitor(db, status="waiting_for_agent")

    visitor = coordinator.accept_chat(db, "visitor-1", TENANT, agent)

    assert visitor.assigned_agent_id == agent.id
    assert visitor.status == "online"
    assert notifier.rooms_for("agent:joined") == ["visitor:visitor-1"]
    assert notifier.rooms_for("visitor:update") == [f"tenant:{TENANT}"]


def test_accept_chat_assigned_elsewhere(db, coordinator):
    owner = make_agent(db, name="Owner")
    other = make_agent(db, name="Other")
    make_visitor(db, status="waiting_for_agent", assigned_agent_id=owner.id)

    with pytest.raises(BadRequestError):
        coordinator.accept_chat(db, "visitor-1", TENANT, other)


def test_transfer_stats_groups_by_agent_and_brand(db, coordinator):
    brand = make_brand(db)
    alice = make_agent(db, name="Alice", last_login=minutes_ago(1))
    assign(db, brand, alice)
    make_visitor(db, visitor_id="v-1", brand=brand)
    make_visitor(db, visitor_id="v-2", brand=brand)
    empty_brand = make_brand(db, name="Empty")
    make_visitor(db, visitor_id="v-3", brand=empty_brand)

    coordinator.transfer_chat_to_agent(db, "v-1", TENANT, brand.id)
    coordinator.transfer_chat_to_agent(db, "v-2", TENANT, brand.id)
    coordinator.transfer_chat_to_agent(db, "v-3", TENANT, empty_brand.id)

    stats = coordinator.transfer_stats(db, TENANT)

    assert stats["total"] == 2
    assert stats["by_type"] == {"ai_to_agent": 2}
    assert stats["by_agent"] == [{"agent_id": alice.id, "agent_name": "Alice", "count": 2}]
    assert stats["by_brand"] == [{"brand_id": brand.id, "brand_name": "Acme Store", "count": 2}]
