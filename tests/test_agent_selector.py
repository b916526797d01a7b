"""Agent selection strategies and brand candidate lookup"""
from datetime import datetime, timedelta

from chatdesk.services.agent_selector import (
    LeastBusySelector, RecentActivitySelector, get_selector
)

from helpers import TENANT, assign, make_agent, make_brand, make_visitor, minutes_ago


def test_recent_selector_prefers_most_recent_login(db):
    older = make_agent(db, name="Older", presence="online", last_login=minutes_ago(30))
    newer = make_agent(db, name="Newer", presence="offline", last_login=minutes_ago(2))

    selected = RecentActivitySelector().select(db, TENANT, [older, newer])

    assert selected.id == newer.id


def test_recent_selector_ignores_stale_offline_agents(db):
    stale = make_agent(db, name="Stale", presence="offline", last_login=minutes_ago(10))
    online = make_agent(db, name="Online", presence="online", last_login=minutes_ago(60))

    selected = RecentActivitySelector().select(db, TENANT, [stale, online])

    assert selected.id == online.id


def test_recent_selector_falls_back_to_first_candidate(db):
    first = make_agent(db, name="First", presence="offline", last_login=minutes_ago(120))
    second = make_agent(db, name="Second", presence="away", last_login=None)

    selected = RecentActivitySelector().select(db, TENANT, [first, second])

    assert selected.id == first.id


def test_selectors_return_none_without_candidates(db):
    assert RecentActivitySelector().select(db, TENANT, []) is None
    assert LeastBusySelector().select(db, TENANT, []) is None


def test_login_window_is_configurable(db):
    agent = make_agent(db, presence="offline", last_login=minutes_ago(8))
    selector = RecentActivitySelector(recent_window_minutes=10)

    assert selector.is_recently_seen(agent, datetime.utcnow())
    assert not RecentActivitySelector().is_recently_seen(agent, datetime.utcnow())


def test_least_busy_prefers_agent_with_fewer_open_chats(db):
    busy = make_agent(db, name="Busy", presence="online", last_login=minutes_ago(1))
    free = make_agent(db, name="Free", presence="online", last_login=minutes_ago(3))
    make_visitor(db, visitor_id="v-1", status="waiting_for_agent", assigned_agent_id=busy.id)
    make_visitor(db, visitor_id="v-2", status="online", assigned_agent_id=busy.id)
    # closed chats do not count
    make_visitor(db, visitor_id="v-3", status="offline", is_active=False, assigned_agent_id=free.id)

    selected = LeastBusySelector().select(db, TENANT, [busy, free])

    assert selected.id == free.id


def test_least_busy_breaks_ties_by_recent_login(db):
    a = make_agent(db, name="A", presence="online", last_login=minutes_ago(4))
    b = make_agent(db, name="B", presence="online", last_login=minutes_ago(1))

    assert LeastBusySelector().select(db, TENANT, [a, b]).id == b.id


def test_get_selector_by_name():
    assert isinstance(get_selector("least_busy"), LeastBusySelector)
    assert isinstance(get_selector("recent"), RecentActivitySelector)
    assert isinstance(get_selector("round_robin"), RecentActivitySelector)


def test_candidates_limited_to_active_assignments_in_tenant(db, coordinator):
    brand = make_brand(db)
    active = make_agent(db, name="Active")
    inactive_link = make_agent(db, name="Unlinked")
    disabled = make_agent(db, name="Disabled", status="inactive")
    foreign = make_agent(db, tenant_id="tenant-2", name="Foreign")
    assign(db, brand, active)
    assign(db, brand, inactive_link, status="inactive")
    assign(db, brand, disabled)
    assign(db, brand, foreign)

    candidates = coordinator.brand_candidates(db, TENANT, brand.id)

    assert [a.name for a in candidates] == ["Active"]


def test_find_available_agent_none_only_without_assignments(db, coordinator):
    brand = make_brand(db)
    assert coordinator.find_available_agent(db, TENANT, brand.id) is None

    # an offline agent who has not logged in for days is still returned
    agent = make_agent(db, presence="offline", last_login=datetime.utcnow() - timedelta(days=3))
    assign(db, brand, agent)

    assert coordinator.find_available_agent(db, TENANT, brand.id).id == agent.id
