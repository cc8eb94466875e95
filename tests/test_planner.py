from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from planner_mcp import planner
from planner_mcp.planner import PlannerError


def task(task_id, percent, **extra):
    return {"id": task_id, "title": task_id, "percentComplete": percent, **extra}


MIXED = [task("a", 0), task("b", 1), task("c", 99), task("d", 100), task("e", None)]


@pytest.mark.parametrize(
    "status,expected",
    [
        (None, ["a", "b", "c", "d", "e"]),
        ("notStarted", ["a", "e"]),
        ("inProgress", ["b", "c"]),
        ("completed", ["d"]),
    ],
)
@pytest.mark.asyncio
async def test_fetch_planner_tasks_filters_on_percent_complete(graph, graph_stub, status, expected):
    graph_stub.add("GET", "/me/planner/tasks", {"value": MIXED})

    page = await planner.fetch_planner_tasks(graph, "me", status)

    assert [t["id"] for t in page.tasks] == expected
    assert page.count == len(expected)
    assert page.has_more is False


@pytest.mark.asyncio
async def test_fetch_planner_tasks_for_other_user(graph, graph_stub):
    graph_stub.add(
        "GET",
        "/users/u-1/planner/tasks",
        {"value": [task("a", 0)], "@odata.nextLink": "https://graph.test/next"},
    )

    page = await planner.fetch_planner_tasks(graph, "u-1")

    assert page.count == 1
    assert page.has_more is True
    assert graph_stub.requests[0].headers["Prefer"] == "odata.maxpagesize=100"


@pytest.mark.asyncio
async def test_fetch_planner_tasks_rejects_unknown_status(graph, graph_stub):
    graph_stub.add("GET", "/me/planner/tasks", {"value": MIXED})

    with pytest.raises(PlannerError, match="Unknown status 'blocked'"):
        await planner.fetch_planner_tasks(graph, "me", "blocked")


def test_user_path():
    assert planner.user_path("me") == "/me"
    assert planner.user_path("") == "/me"
    assert planner.user_path("abc") == "/users/abc"


def test_default_due_date_is_a_week_out():
    due = datetime.fromisoformat(planner.default_due_date().replace("Z", "+00:00"))
    delta = due - datetime.now(timezone.utc)

    assert timedelta(days=6, hours=23) < delta <= timedelta(days=7)


@pytest.mark.asyncio
async def test_get_task_details_returns_none_on_404(graph, graph_stub):
    graph_stub.add("GET", "/planner/tasks/missing", {"error": {"message": "nope"}}, status=404)

    assert await planner.get_task_details(graph, "missing") is None


@pytest.mark.asyncio
async def test_get_task_details_propagates_other_errors(graph, graph_stub):
    graph_stub.add("GET", "/planner/tasks/t1", {"error": {"message": "denied"}}, status=403)

    with pytest.raises(httpx.HTTPStatusError):
        await planner.get_task_details(graph, "t1")


@pytest.mark.asyncio
async def test_resolve_user_id(graph, graph_stub):
    graph_stub.add("GET", "/me", {"id": "me-oid"})

    assert await planner.resolve_user_id(graph, "explicit") == "explicit"
    assert graph_stub.requests == []
    assert await planner.resolve_user_id(graph, "me") == "me-oid"
    assert graph_stub.requests[0].url.params["$select"] == "id"


# =============================================================================
# Plan and bucket resolution
# =============================================================================

@pytest.mark.asyncio
async def test_explicit_plan_and_bucket_skip_lookup(graph, graph_stub, settings):
    assert await planner.resolve_plan_and_bucket(graph, settings, "p", "b") == ("p", "b")
    assert graph_stub.requests == []


@pytest.mark.asyncio
async def test_plan_and_bucket_come_from_first_existing_task(graph, graph_stub, settings):
    graph_stub.add(
        "GET",
        "/me/planner/tasks",
        {"value": [task("a", 0, planId="p1", bucketId="b1"), task("b", 0, planId="p2", bucketId="b2")]},
    )

    assert await planner.resolve_plan_and_bucket(graph, settings, None, None) == ("p1", "b1")
    assert await planner.resolve_plan_and_bucket(graph, settings, "mine", None) == ("mine", "b1")


@pytest.mark.asyncio
async def test_existing_task_without_ids_is_an_error(graph, graph_stub, settings):
    graph_stub.add("GET", "/me/planner/tasks", {"value": [task("a", 0, planId="p1")]})

    with pytest.raises(PlannerError, match="bucketId: False"):
        await planner.resolve_plan_and_bucket(graph, settings, None, None)


@pytest.mark.asyncio
async def test_defaults_used_when_user_has_no_tasks(graph, graph_stub, settings):
    graph_stub.add("GET", "/me/planner/tasks", {"value": []})
    configured = settings.model_copy(
        update={"default_plan_id": "dp", "default_bucket_id": "db"}
    )

    assert await planner.resolve_plan_and_bucket(graph, configured, None, None) == ("dp", "db")


@pytest.mark.asyncio
async def test_no_tasks_and_no_defaults_is_an_error(graph, graph_stub, settings):
    graph_stub.add("GET", "/me/planner/tasks", {"value": []})

    with pytest.raises(PlannerError, match="DEFAULT_PLAN_ID"):
        await planner.resolve_plan_and_bucket(graph, settings, None, None)


# =============================================================================
# Task creation
# =============================================================================

@pytest.mark.asyncio
async def test_create_planner_task_payload(graph, graph_stub):
    graph_stub.add("POST", "/planner/tasks", lambda req: dict(json.loads(req.content), id="t-new"), status=201)

    created = await planner.create_planner_task(
        graph,
        plan_id="p1",
        bucket_id="b1",
        title="Plan sprint",
        assignee_id="u-1",
        due_date_time="2025-06-15T10:00:00Z",
        priority=5,
        percent_complete=0,
    )

    assert created["id"] == "t-new"
    (sent,) = graph_stub.requests
    payload = json.loads(sent.content)
    assert payload == {
        "planId": "p1",
        "bucketId": "b1",
        "title": "Plan sprint",
        "dueDateTime": "2025-06-15T10:00:00Z",
        "priority": 5,
        "percentComplete": 0,
        "assignments": {
            "u-1": {"@odata.type": "#microsoft.graph.plannerAssignment", "orderHint": " !"}
        },
    }
    assert sent.headers["Prefer"] == "return=representation"


@pytest.mark.asyncio
async def test_create_planner_task_without_assignee_omits_assignments(graph, graph_stub):
    graph_stub.add("POST", "/planner/tasks", {"id": "t-new"}, status=201)

    await planner.create_planner_task(graph, plan_id="p1", bucket_id="b1", title="Solo")

    payload = json.loads(graph_stub.requests[0].content)
    assert "assignments" not in payload
    assert "dueDateTime" not in payload


@pytest.mark.asyncio
async def test_notes_are_written_to_task_details(graph, graph_stub):
    graph_stub.add("POST", "/planner/tasks", {"id": "t-new"}, status=201)
    graph_stub.add("GET", "/planner/tasks/t-new/details", {"@odata.etag": 'W/"e1"'})
    graph_stub.add("PATCH", "/planner/tasks/t-new/details", {"description": "Agenda"})

    created = await planner.create_planner_task(
        graph, plan_id="p1", bucket_id="b1", title="Meeting", notes="Agenda"
    )

    assert created["notes"] == "Agenda"
    (patch,) = graph_stub.find("PATCH", "/planner/tasks/t-new/details")
    assert patch.headers["If-Match"] == 'W/"e1"'


@pytest.mark.asyncio
async def test_notes_failure_still_returns_created_task(graph, graph_stub):
    graph_stub.add("POST", "/planner/tasks", {"id": "t-new"}, status=201)
    graph_stub.add("GET", "/planner/tasks/t-new/details", {"@odata.etag": 'W/"e1"'})
    graph_stub.add(
        "PATCH",
        "/planner/tasks/t-new/details",
        {"error": {"message": "Precondition failed"}},
        status=412,
    )

    created = await planner.create_planner_task(
        graph, plan_id="p1", bucket_id="b1", title="Meeting", notes="Agenda"
    )

    assert created == {"id": "t-new"}
