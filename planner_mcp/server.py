"""
Planner MCP Server - Tool definitions and server lifecycle.

Provides MCP tools for Microsoft Planner tasks, Outlook contacts and
calendar events via Microsoft Graph API.
"""

import argparse
import logging
import sys
from datetime import datetime, timedelta, timezone
from typing import Any, Dict
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.exceptions import ToolError
from mcp.server.fastmcp.server import Context

from .auth import AuthManager, GraphClient
from .config import Settings
from . import contacts, planner
from .models import (
    FetchPlannerTasksInput, GetPlannerTaskInput, CreatePlannerTaskInput,
    CreateContactInput, GetContactInput, UpdateContactInput, DeleteContactInput,
    ListContactsInput, SearchContactsInput,
    ListEventsInput, GetEventInput, CreateEventInput,
)
from .helpers import (
    format_task_table, format_task_detail, format_created_task,
    format_contact, format_contact_summary,
    format_event_summary, format_graph_datetime, handle_graph_error,
)

logger = logging.getLogger("planner_mcp")


# =============================================================================
# MCP Server Setup
# =============================================================================

@asynccontextmanager
async def app_lifespan(app):
    """Initialize Graph client on startup, clean up on shutdown."""
    settings = Settings.from_env()

    if not settings.is_configured:
        logger.warning(
            f"{', '.join(settings.missing_credentials)} must be set. "
            "The server will start but all tools will fail until configured."
        )

    auth = AuthManager(settings)
    graph = GraphClient.from_settings(auth, settings)

    yield {"graph": graph, "settings": settings}

    await graph.close()


mcp = FastMCP("ms-planner", lifespan=app_lifespan)


def _get_graph(ctx: Context) -> GraphClient:
    """Extract GraphClient from context."""
    return ctx.request_context.lifespan_context["graph"]


def _get_settings(ctx: Context) -> Settings:
    return ctx.request_context.lifespan_context["settings"]


def _user_id(ctx: Context, requested: str = "me") -> str:
    """An explicit user wins over USER_ID; 'me' is the signed-in user."""
    if requested and requested != "me":
        return requested
    return _get_settings(ctx).user_id


# =============================================================================
# PLANNER TOOLS
# =============================================================================

@mcp.tool(
    name="get-planner-tasks",
    description="Fetch Microsoft Planner tasks for a user with optional filtering",
    annotations={
        "title": "List Planner Tasks",
        "readOnlyHint": True,
        "destructiveHint": False,
        "idempotentHint": True,
        "openWorldHint": True,
    },
)
async def get_planner_tasks(params: FetchPlannerTasksInput, ctx: Context = None) -> str:
    """Fetch Microsoft Planner tasks, optionally narrowed to one status.

    Status bands: notStarted is 0% complete, inProgress 1-99%, completed 100%.

    Returns:
        str: Task count and a markdown table of title, status, progress, due date and ID.
    """
    try:
        graph = _get_graph(ctx)
        page = await planner.fetch_planner_tasks(
            graph, _user_id(ctx, params.user_id), params.status
        )
    except Exception as e:
        logger.error(f"Error in get-planner-tasks tool: {e}")
        raise ToolError(f"❌ Error fetching tasks: {handle_graph_error(e)}")

    result = f"📋 Found {page.count} tasks"
    if page.has_more:
        result += " (more available)"
    if page.count > 0:
        result += f":\n\n{format_task_table(page.tasks)}"
    return result


@mcp.tool(
    name="get-planner-task",
    description="Get the details of a single Microsoft Planner task",
    annotations={
        "title": "Get Planner Task",
        "readOnlyHint": True,
        "destructiveHint": False,
        "idempotentHint": True,
        "openWorldHint": True,
    },
)
async def get_planner_task(params: GetPlannerTaskInput, ctx: Context = None) -> str:
    """Get a Planner task by ID.

    Returns:
        str: Title, status, priority, dates, plan/bucket and assignees.
    """
    try:
        task = await planner.get_task_details(_get_graph(ctx), params.task_id)
    except Exception as e:
        raise ToolError(f"❌ Error fetching task: {handle_graph_error(e)}")
    if task is None:
        raise ToolError(f"❌ Task `{params.task_id}` not found.")
    return format_task_detail(task)


@mcp.tool(
    name="create-planner-task",
    description="Create a new task in Microsoft Planner",
    annotations={
        "title": "Create Planner Task",
        "readOnlyHint": False,
        "destructiveHint": False,
        "idempotentHint": False,
        "openWorldHint": True,
    },
)
async def create_planner_task(params: CreatePlannerTaskInput, ctx: Context = None) -> str:
    """Create a Planner task assigned to the user.

    When plan_id or bucket_id is omitted they are taken from the user's first
    existing task, then from DEFAULT_PLAN_ID / DEFAULT_BUCKET_ID.

    Returns:
        str: Confirmation with title, plan, bucket, status, due date and the new task ID.
    """
    try:
        graph = _get_graph(ctx)
        user_id = _user_id(ctx, params.user_id)
        plan_id, bucket_id = await planner.resolve_plan_and_bucket(
            graph, _get_settings(ctx), params.plan_id, params.bucket_id, user_id
        )
        assignee = await planner.resolve_user_id(graph, user_id)
        task = await planner.create_planner_task(
            graph,
            plan_id=plan_id,
            bucket_id=bucket_id,
            title=params.title,
            assignee_id=assignee,
            due_date_time=params.due_date_time or planner.default_due_date(),
            start_date_time=params.start_date_time,
            priority=params.priority_value,
            notes=params.notes,
        )
    except Exception as e:
        logger.error(f"Error in create-planner-task tool: {e}")
        raise ToolError(f"❌ Failed to create task: {handle_graph_error(e)}")

    return format_created_task(task)


# =============================================================================
# CONTACT TOOLS
# =============================================================================

@mcp.tool(
    name="create-contact",
    description="Create a new contact in Microsoft Outlook",
    annotations={
        "title": "Create Contact",
        "readOnlyHint": False,
        "destructiveHint": False,
        "idempotentHint": False,
        "openWorldHint": True,
    },
)
async def create_contact(params: CreateContactInput, ctx: Context = None) -> str:
    """Create an Outlook contact.

    Returns:
        str: Confirmation with name, title, company, e-mails and the contact ID.
    """
    try:
        contact = await contacts.create_contact(
            _get_graph(ctx), params.to_graph(), _user_id(ctx)
        )
    except Exception as e:
        raise ToolError(f"❌ Failed to create contact: {handle_graph_error(e)}")
    return f"✅ Contact created successfully!\n\n{format_contact(contact)}"


@mcp.tool(
    name="get-contact",
    description="Get an Outlook contact by ID",
    annotations={
        "title": "Get Contact",
        "readOnlyHint": True,
        "destructiveHint": False,
        "idempotentHint": True,
        "openWorldHint": True,
    },
)
async def get_contact(params: GetContactInput, ctx: Context = None) -> str:
    """Get an Outlook contact by ID.

    Returns:
        str: Name, title, company, e-mails, phones and the contact ID.
    """
    try:
        contact = await contacts.get_contact(_get_graph(ctx), params.contact_id, _user_id(ctx))
    except Exception as e:
        raise ToolError(f"❌ Failed to get contact: {handle_graph_error(e)}")
    return format_contact(contact)


@mcp.tool(
    name="update-contact",
    description="Update fields of an existing Outlook contact",
    annotations={
        "title": "Update Contact",
        "readOnlyHint": False,
        "destructiveHint": False,
        "idempotentHint": True,
        "openWorldHint": True,
    },
)
async def update_contact(params: UpdateContactInput, ctx: Context = None) -> str:
    """Update only the contact fields that are provided.

    Returns:
        str: The updated contact.
    """
    changes = params.to_graph()
    if not changes:
        return "No updates specified. Provide at least one field to update."
    try:
        contact = await contacts.update_contact(
            _get_graph(ctx), params.contact_id, changes, _user_id(ctx)
        )
    except Exception as e:
        raise ToolError(f"❌ Failed to update contact: {handle_graph_error(e)}")
    return f"✅ Contact updated ({', '.join(changes)})\n\n{format_contact(contact)}"


@mcp.tool(
    name="delete-contact",
    description="Permanently delete an Outlook contact",
    annotations={
        "title": "Delete Contact",
        "readOnlyHint": False,
        "destructiveHint": True,
        "idempotentHint": True,
        "openWorldHint": False,
    },
)
async def delete_contact(params: DeleteContactInput, ctx: Context = None) -> str:
    """Permanently delete an Outlook contact.

    Returns:
        str: Confirmation naming the deleted contact ID.
    """
    try:
        await contacts.delete_contact(_get_graph(ctx), params.contact_id, _user_id(ctx))
    except Exception as e:
        raise ToolError(f"❌ Failed to delete contact: {handle_graph_error(e)}")
    return f"✅ Contact `{params.contact_id}` has been deleted."


@mcp.tool(
    name="list-contacts",
    description="List Outlook contacts with optional filtering and pagination",
    annotations={
        "title": "List Contacts",
        "readOnlyHint": True,
        "destructiveHint": False,
        "idempotentHint": True,
        "openWorldHint": True,
    },
)
async def list_contacts(params: ListContactsInput, ctx: Context = None) -> str:
    """List contacts with OData filter, field selection, ordering and paging.

    Returns:
        str: One line per contact with name, first e-mail, company and ID.
    """
    try:
        found, has_more = await contacts.list_contacts(
            _get_graph(ctx),
            _user_id(ctx),
            filter=params.filter,
            select=params.select,
            top=params.top,
            skip=params.skip,
            order_by=params.order_by,
        )
    except Exception as e:
        raise ToolError(f"❌ Failed to list contacts: {handle_graph_error(e)}")

    if not found:
        return "No contacts found."
    result = f"👥 **Contacts** ({len(found)}, skip: {params.skip})\n\n"
    result += "\n".join(format_contact_summary(c) for c in found)
    if has_more:
        result += f"\n\n*More contacts available. Use skip={params.skip + params.top} for next page.*"
    return result


@mcp.tool(
    name="search-contacts",
    description="Search Outlook contacts by name or e-mail prefix",
    annotations={
        "title": "Search Contacts",
        "readOnlyHint": True,
        "destructiveHint": False,
        "idempotentHint": True,
        "openWorldHint": True,
    },
)
async def search_contacts(params: SearchContactsInput, ctx: Context = None) -> str:
    """Find contacts whose name or e-mail address starts with the query.

    Returns:
        str: One line per match with name, first e-mail, company and ID.
    """
    try:
        found = await contacts.search_contacts(_get_graph(ctx), params.query, _user_id(ctx))
    except Exception as e:
        raise ToolError(f"❌ Failed to search contacts: {handle_graph_error(e)}")

    if not found:
        return f"No contacts match '{params.query}'."
    result = f"🔎 **{len(found)} contacts** matching '{params.query}'\n\n"
    return result + "\n".join(format_contact_summary(c) for c in found)


# =============================================================================
# CALENDAR TOOLS
# =============================================================================

@mcp.tool(
    name="list-calendar-events",
    description="List calendar events within a date range",
    annotations={
        "title": "List Calendar Events",
        "readOnlyHint": True,
        "destructiveHint": False,
        "idempotentHint": True,
        "openWorldHint": True,
    },
)
async def list_calendar_events(params: ListEventsInput, ctx: Context = None) -> str:
    """List calendar events within a date range.

    Uses the calendarView endpoint for accurate recurring event expansion.
    Defaults to the next 7 days if no dates specified.

    Returns:
        str: Formatted list of calendar events with details.
    """
    now = datetime.now(timezone.utc)
    start = params.start_date or now.strftime("%Y-%m-%dT00:00:00")
    end = params.end_date or (now + timedelta(days=7)).strftime("%Y-%m-%dT23:59:59")
    if "T" not in start:
        start += "T00:00:00"
    if "T" not in end:
        end += "T23:59:59"

    base = planner.user_path(_user_id(ctx))
    if params.calendar_id:
        base += f"/calendars/{params.calendar_id}"

    try:
        data = await _get_graph(ctx).get(
            f"{base}/calendarView",
            params={
                "startDateTime": start,
                "endDateTime": end,
                "$top": params.top,
                "$orderby": "start/dateTime",
                "$select": "id,subject,start,end,location,organizer,attendees,isOnlineMeeting,showAs,isCancelled",
            },
        )
    except Exception as e:
        raise ToolError(handle_graph_error(e))

    events = [ev for ev in data.get("value", []) if not ev.get("isCancelled")]
    if not events:
        return f"No events found between {start[:10]} and {end[:10]}"

    result = f"📅 **Calendar Events** ({start[:10]} → {end[:10]})\n\n"
    for event in events:
        result += format_event_summary(event) + "\n\n---\n\n"
    return result


@mcp.tool(
    name="get-calendar-event",
    description="Get full details of a calendar event",
    annotations={
        "title": "Get Event Details",
        "readOnlyHint": True,
        "destructiveHint": False,
        "idempotentHint": True,
        "openWorldHint": True,
    },
)
async def get_calendar_event(params: GetEventInput, ctx: Context = None) -> str:
    """Get full details of a specific calendar event.

    Returns:
        str: Complete event details including body, attendees, and online meeting info.
    """
    try:
        data = await _get_graph(ctx).get(f"{planner.user_path(_user_id(ctx))}/events/{params.event_id}")
    except Exception as e:
        raise ToolError(handle_graph_error(e))

    result = f"# {data.get('subject', '(no subject)')}\n\n"
    result += f"**Start:** {format_graph_datetime(data.get('start', {}))}\n"
    result += f"**End:** {format_graph_datetime(data.get('end', {}))}\n"
    result += f"**Location:** {(data.get('location') or {}).get('displayName') or 'None'}\n"
    result += f"**Status:** {data.get('showAs', 'busy')}\n"
    result += f"**All Day:** {'Yes' if data.get('isAllDay') else 'No'}\n"

    organizer = (data.get("organizer") or {}).get("emailAddress", {})
    result += f"**Organizer:** {organizer.get('name', '')} <{organizer.get('address', '')}>\n"

    if data.get("isOnlineMeeting"):
        join_url = (data.get("onlineMeeting") or {}).get("joinUrl", "N/A")
        result += f"**Teams Meeting:** [Join]({join_url})\n"

    attendees = data.get("attendees") or []
    if attendees:
        result += "\n**Attendees:**\n"
        for a in attendees:
            email = a["emailAddress"]
            status = a.get("status", {}).get("response", "none")
            result += f"- {email.get('name', '')} <{email.get('address', '')}>: {status}\n"

    body = data.get("body") or {}
    if body.get("content"):
        result += f"\n---\n\n**Description:**\n\n{body['content']}"
    return result


@mcp.tool(
    name="create-calendar-event",
    description="Create a calendar event with optional attendees and Teams meeting",
    annotations={
        "title": "Create Calendar Event",
        "readOnlyHint": False,
        "destructiveHint": False,
        "idempotentHint": False,
        "openWorldHint": True,
    },
)
async def create_calendar_event(params: CreateEventInput, ctx: Context = None) -> str:
    """Create a new calendar event with optional attendees and Teams meeting.

    Returns:
        str: Confirmation with the new event ID and details.
    """
    event_body: Dict[str, Any] = {
        "subject": params.subject,
        "start": {"dateTime": params.start, "timeZone": params.timezone},
        "end": {"dateTime": params.end, "timeZone": params.timezone},
        "isOnlineMeeting": params.is_online_meeting,
        "reminderMinutesBeforeStart": params.reminder_minutes,
    }
    if params.body:
        event_body["body"] = {"contentType": "HTML", "content": params.body}
    if params.location:
        event_body["location"] = {"displayName": params.location}
    if params.attendees:
        event_body["attendees"] = [
            {"emailAddress": {"address": email}, "type": "required"}
            for email in params.attendees
        ]
    if params.is_online_meeting:
        event_body["onlineMeetingProvider"] = "teamsForBusiness"

    base = planner.user_path(_user_id(ctx))
    endpoint = f"{base}/calendars/{params.calendar_id}/events" if params.calendar_id else f"{base}/events"
    try:
        data = await _get_graph(ctx).post(endpoint, json_data=event_body)
    except Exception as e:
        raise ToolError(handle_graph_error(e))

    result = "✅ Event created!\n"
    result += f"**Subject:** {params.subject}\n"
    result += f"**When:** {params.start} → {params.end} ({params.timezone})\n"
    if params.location:
        result += f"**Location:** {params.location}\n"
    if params.is_online_meeting:
        join_url = (data.get("onlineMeeting") or {}).get("joinUrl", "")
        result += f"**Teams Meeting:** {join_url}\n"
    result += f"**Event ID:** `{data.get('id', 'N/A')}`"
    return result


# =============================================================================
# Entry Point
# =============================================================================

def _parse_arguments(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Microsoft Planner MCP server and task event service"
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--http", action="store_true", help="Serve MCP over streamable HTTP")
    mode.add_argument("--events", action="store_true", help="Serve the task event stream and REST proxy")
    parser.add_argument("--port", type=int, default=None, help="Port for --http (8000) or --events (3000)")
    return parser.parse_args(argv)


def main(argv=None):
    """Run the MCP server (stdio or HTTP transport) or the event service."""
    args = _parse_arguments(argv)
    load_dotenv()
    settings = Settings.from_env()

    # stdout carries the stdio transport; logs go to stderr.
    logging.basicConfig(
        stream=sys.stderr,
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.events:
        from .http_api import run_event_server
        run_event_server(settings, port=args.port)
    elif args.http:
        mcp.settings.port = args.port or 8000
        logger.info(f"Starting Planner MCP server on http://localhost:{mcp.settings.port}")
        mcp.run(transport="streamable-http")
    else:
        mcp.run()  # stdio transport (default for Claude Desktop)


if __name__ == "__main__":
    main()
