"""Microsoft Planner operations on top of :class:`GraphClient`."""

import logging
from datetime import datetime, timedelta, timezone
from typing import List, NamedTuple, Optional, Tuple

import httpx

from .auth import GraphClient
from .config import Settings

logger = logging.getLogger("planner_mcp")

TASK_STATUSES = ("notStarted", "inProgress", "completed")


class PlannerError(RuntimeError):
    """A Planner request could not be built from the given input."""


class TaskPage(NamedTuple):
    tasks: List[dict]
    count: int
    has_more: bool


def user_path(user_id: str) -> str:
    return "/me" if user_id in ("", "me") else f"/users/{user_id}"


def status_matches(task: dict, status: Optional[str]) -> bool:
    """Whether a task's percentComplete falls in the given status band.

    notStarted is 0%, inProgress is 1-99% and completed is 100%.
    """
    if status is None:
        return True
    percent = task.get("percentComplete") or 0
    if status == "notStarted":
        return percent == 0
    if status == "inProgress":
        return 0 < percent < 100
    if status == "completed":
        return percent == 100
    raise PlannerError(f"Unknown status '{status}'. Allowed values: {', '.join(TASK_STATUSES)}")


def default_due_date() -> str:
    due = datetime.now(timezone.utc) + timedelta(days=7)
    return due.isoformat(timespec="seconds").replace("+00:00", "Z")


async def fetch_planner_tasks(
    graph: GraphClient,
    user_id: str = "me",
    status: Optional[str] = None,
) -> TaskPage:
    """List a user's Planner tasks, optionally narrowed to one status."""
    data = await graph.get(
        f"{user_path(user_id)}/planner/tasks",
        headers={"Prefer": "odata.maxpagesize=100"},
    )
    tasks = [t for t in data.get("value", []) if status_matches(t, status)]
    return TaskPage(tasks=tasks, count=len(tasks), has_more=bool(data.get("@odata.nextLink")))


async def get_task_details(graph: GraphClient, task_id: str) -> Optional[dict]:
    """Fetch one task, or None when Graph does not know it."""
    try:
        return await graph.get(f"/planner/tasks/{task_id}")
    except httpx.HTTPStatusError as e:
        if e.response.status_code == 404:
            return None
        raise


async def resolve_user_id(graph: GraphClient, user_id: str) -> str:
    if user_id not in ("", "me"):
        return user_id
    me = await graph.get("/me", params={"$select": "id"})
    return me["id"]


async def resolve_plan_and_bucket(
    graph: GraphClient,
    settings: Settings,
    plan_id: Optional[str],
    bucket_id: Optional[str],
    user_id: str = "me",
) -> Tuple[str, str]:
    """Pick the plan and bucket for a new task.

    Explicit ids win, then the plan and bucket of the user's first existing
    task, then DEFAULT_PLAN_ID / DEFAULT_BUCKET_ID.
    """
    if plan_id and bucket_id:
        return plan_id, bucket_id

    page = await fetch_planner_tasks(graph, user_id)
    if page.tasks:
        example = page.tasks[0]
        found_plan, found_bucket = example.get("planId"), example.get("bucketId")
        if not found_plan or not found_bucket:
            raise PlannerError(
                f"Existing task is missing required IDs. Found planId: {bool(found_plan)}, "
                f"bucketId: {bool(found_bucket)}"
            )
        return plan_id or found_plan, bucket_id or found_bucket

    if settings.default_plan_id and settings.default_bucket_id:
        return plan_id or settings.default_plan_id, bucket_id or settings.default_bucket_id

    raise PlannerError(
        "No existing tasks found to get planId and bucketId. Please either:\n"
        "1. Create a task manually first, or\n"
        "2. Provide plan_id and bucket_id in the request, or\n"
        "3. Set DEFAULT_PLAN_ID and DEFAULT_BUCKET_ID environment variables."
    )


async def create_planner_task(
    graph: GraphClient,
    *,
    plan_id: str,
    bucket_id: str,
    title: str,
    assignee_id: Optional[str] = None,
    due_date_time: Optional[str] = None,
    start_date_time: Optional[str] = None,
    priority: Optional[int] = None,
    percent_complete: Optional[int] = None,
    notes: Optional[str] = None,
) -> dict:
    """Create a task and return Graph's representation of it."""
    task_data = {
        "planId": plan_id,
        "bucketId": bucket_id,
        "title": title,
    }
    if due_date_time:
        task_data["dueDateTime"] = due_date_time
    if start_date_time:
        task_data["startDateTime"] = start_date_time
    if priority is not None:
        task_data["priority"] = priority
    if percent_complete is not None:
        task_data["percentComplete"] = percent_complete
    if assignee_id:
        task_data["assignments"] = {
            assignee_id: {
                "@odata.type": "#microsoft.graph.plannerAssignment",
                "orderHint": " !",
            }
        }

    created = await graph.post(
        "/planner/tasks",
        json_data=task_data,
        headers={"Prefer": "return=representation"},
    )
    logger.info(f"Created planner task {created.get('id')} in plan {plan_id}")

    if notes:
        try:
            await set_task_description(graph, created["id"], notes)
            created["notes"] = notes
        except (httpx.HTTPError, KeyError) as e:
            logger.warning(f"Task {created.get('id')} created but its notes were not saved: {e}")

    return created


async def set_task_description(graph: GraphClient, task_id: str, description: str) -> dict:
    """Update the description on a task's details; Planner requires the current etag."""
    details = await graph.get(f"/planner/tasks/{task_id}/details")
    return await graph.patch(
        f"/planner/tasks/{task_id}/details",
        json_data={"description": description},
        headers={
            "Prefer": "return=representation",
            "If-Match": details["@odata.etag"],
        },
    )
