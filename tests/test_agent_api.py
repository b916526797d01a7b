"""Agent dashboard endpoints"""
from chatdesk.models.agent import Agent
from chatdesk.models.visitor import Visitor

from helpers import TENANT, agent_headers, assign, make_agent, make_brand, make_visitor


def test_requires_bearer_token(client, db):
    assert client.get("/api/visitors").status_code == 401
    assert client.get("/api/visitors", headers={"Authorization": "Bearer junk"}).status_code == 401


def test_list_visitors_is_tenant_scoped(client, db):
    agent = make_agent(db)
    make_visitor(db, visitor_id="mine", status="waiting_for_agent")
    make_visitor(db, visitor_id="theirs", tenant_id="tenant-2")

    resp = client.get("/api/visitors", headers=agent_headers(agent))

    assert resp.status_code == 200
    body = resp.json()
    assert body["total"] == 1
    assert [v["id"] for v in body["data"]] == ["mine"]
    assert body["data"][0]["status"] == "waiting_for_agent"


def test_list_filters_by_status_and_assignment(client, db):
    agent = make_agent(db)
    make_visitor(db, visitor_id="a", status="waiting_for_agent", assigned_agent_id=agent.id)
    make_visitor(db, visitor_id="b", status="waiting_for_agent")
    make_visitor(db, visitor_id="c", status="idle")

    waiting = client.get("/api/visitors?status=waiting_for_agent", headers=agent_headers(agent)).json()
    mine = client.get("/api/visitors?mine=true", headers=agent_headers(agent)).json()

    assert {v["id"] for v in waiting["data"]} == {"a", "b"}
    assert [v["id"] for v in mine["data"]] == ["a"]


def test_get_visitor_from_other_tenant_is_404(client, db):
    agent = make_agent(db)
    make_visitor(db, tenant_id="tenant-2")

    resp = client.get("/api/visitors/visitor-1", headers=agent_headers(agent))

    assert resp.status_code == 404


def test_agent_reply_reaches_visitor_channel(client, db, notifier):
    agent = make_agent(db)
    make_visitor(db, assigned_agent_id=agent.id)

    resp = client.post("/api/visitors/visitor-1/messages", json={"message": "Hi, I'm Alice"}, headers=agent_headers(agent))

    assert resp.status_code == 200
    room, data = notifier.named("agent:message")[0]
    assert room == "visitor:visitor-1"
    assert data["senderName"] == "Alice"

    history = client.get("/api/visitors/visitor-1/messages", headers=agent_headers(agent)).json()["data"]
    assert [m["message"] for m in history] == ["Hi, I'm Alice"]


def test_accept_waiting_visitor(client, db, notifier):
    agent = make_agent(db)
    make_visitor(db, status="waiting_for_agent")

    resp = client.post("/api/visitors/visitor-1/accept", headers=agent_headers(agent))

    assert resp.status_code == 200
    assert resp.json()["data"]["assignedAgentId"] == agent.id
    assert notifier.rooms_for("agent:joined") == ["visitor:visitor-1"]


def test_presence_update(client, db, notifier):
    agent = make_agent(db, presence="offline")

    resp = client.put("/api/agents/me/presence", json={"presence_status": "online"}, headers=agent_headers(agent))
    bad = client.put("/api/agents/me/presence", json={"presence_status": "napping"}, headers=agent_headers(agent))

    assert resp.json()["data"]["presenceStatus"] == "online"
    assert bad.status_code == 400
    db.expire_all()
    stored = db.get(Agent, agent.id)
    assert stored.presence_status == "online"
    assert stored.last_login is not None
    assert notifier.named("agent:presence")


def test_handoff_stats_endpoint(client, db, coordinator):
    brand = make_brand(db)
    agent = make_agent(db)
    assign(db, brand, agent)
    make_visitor(db, brand=brand)
    coordinator.transfer_chat_to_agent(db, "visitor-1", TENANT, brand.id)

    resp = client.get("/api/handoffs/stats", headers=agent_headers(agent))

    assert resp.status_code == 200
    assert resp.json()["data"]["total"] == 1
    db.expire_all()
    assert db.get(Visitor, "visitor-1").assigned_agent_id == agent.id
