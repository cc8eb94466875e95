"""Formatting helpers and utility functions."""

from datetime import datetime, timezone
from typing import List, Optional

import httpx


def utc_timestamp() -> str:
    """Current UTC time as ISO 8601 with millisecond precision and a 'Z' suffix."""
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_graph_date(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def format_date(value: Optional[str]) -> str:
    """Long form date, e.g. 'Jun 15, 2025, 10:00 AM'."""
    dt = parse_graph_date(value)
    if dt is None:
        return value or "No due date"
    return dt.strftime("%b %d, %Y, %I:%M %p")


def format_short_date(value: Optional[str]) -> str:
    """MM/DD/YYYY."""
    dt = parse_graph_date(value)
    if dt is None:
        return value or ""
    return dt.strftime("%m/%d/%Y")


def truncate(text: Optional[str], max_length: int) -> str:
    if not text:
        return ""
    if len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."


# =============================================================================
# Planner
# =============================================================================

def get_status_text(percent_complete: int) -> str:
    if percent_complete == 0:
        return "Not Started"
    if percent_complete == 100:
        return "Completed"
    return "In Progress"


def get_priority_text(priority: Optional[int]) -> str:
    """Planner priority ranges: 0-1 urgent, 2-4 important, 5-7 medium, 8-10 low."""
    if priority is None:
        return "No priority"
    if 0 <= priority <= 1:
        return "Urgent"
    if 2 <= priority <= 4:
        return "Important"
    if 5 <= priority <= 7:
        return "Medium"
    if 8 <= priority <= 10:
        return "Low"
    return f"Priority {priority}"


def format_task_table(tasks: List[dict]) -> str:
    """Format Planner tasks as a markdown table."""
    if not tasks:
        return "No tasks found."

    rows = [
        "| # | Title | Status | Progress | Due Date | ID |",
        "| --- | --- | --- | --- | --- | --- |",
    ]
    for index, task in enumerate(tasks, start=1):
        percent = task.get("percentComplete", 0) or 0
        due = format_short_date(task.get("dueDateTime")) or "No due date"
        title = truncate(task.get("title", ""), 50).replace("|", "\\|")
        rows.append(
            f"| {index} | {title} | {get_status_text(percent)} | {percent}% "
            f"| {due} | {task.get('id', '')} |"
        )

    return f"## Planner Tasks ({len(tasks)} tasks)\n\n" + "\n".join(rows) + "\n"


def format_task_detail(task: dict) -> str:
    """Format a single Planner task for display."""
    percent = task.get("percentComplete", 0) or 0
    result = f"# {task.get('title', '(untitled)')}\n\n"
    result += f"**Status:** {get_status_text(percent)}\n"
    result += f"**Progress:** {percent}%\n"
    result += f"**Priority:** {get_priority_text(task.get('priority'))}\n"
    if task.get("startDateTime"):
        result += f"**Start Date:** {format_date(task['startDateTime'])}\n"
    result += f"**Due Date:** {format_date(task.get('dueDateTime'))}\n"
    result += f"**Plan ID:** {task.get('planId', 'N/A')}\n"
    result += f"**Bucket ID:** {task.get('bucketId', 'N/A')}\n"
    assignees = list((task.get("assignments") or {}).keys())
    if assignees:
        result += f"**Assigned To:** {', '.join(assignees)}\n"
    if task.get("createdDateTime"):
        result += f"**Created:** {format_date(task['createdDateTime'])}\n"
    result += f"**ID:** `{task.get('id', '')}`"
    return result


def format_created_task(task: dict) -> str:
    percent = task.get("percentComplete", 0) or 0
    result = "✅ Task created successfully!\n\n"
    result += f"**Title:** {task.get('title', '')}\n"
    result += f"**Plan ID:** {task.get('planId', '')}\n"
    result += f"**Bucket ID:** {task.get('bucketId', '')}\n"
    result += f"**Status:** {get_status_text(percent)}\n"
    result += f"**Progress:** {percent}%\n"
    if task.get("dueDateTime"):
        result += f"**Due Date:** {format_date(task['dueDateTime'])}\n"
    result += f"**ID:** {task.get('id', '')}"
    return result


# =============================================================================
# Contacts
# =============================================================================

def format_contact(contact: dict) -> str:
    """Format a contact as a markdown block."""
    name_parts = [p for p in (contact.get("givenName"), contact.get("surname")) if p]
    full_name = " ".join(name_parts) or contact.get("displayName") or "Unnamed Contact"

    parts = [f"**Name:** {full_name}"]
    if contact.get("jobTitle"):
        parts.append(f"**Title:** {contact['jobTitle']}")
    if contact.get("companyName"):
        parts.append(f"**Company:** {contact['companyName']}")

    emails = [
        f"- {e['name']} <{e['address']}>" if e.get("name") else f"- {e['address']}"
        for e in contact.get("emailAddresses") or []
        if e and e.get("address")
    ]
    if emails:
        parts.append("**Emails:**")
        parts.extend(emails)

    if contact.get("mobilePhone"):
        parts.append(f"**Mobile:** {contact['mobilePhone']}")
    business = contact.get("businessPhones") or []
    if business:
        parts.append(f"**Business:** {', '.join(business)}")

    parts.append(f"\n**Contact ID:** {contact.get('id')}")
    return "\n".join(parts)


def format_contact_summary(contact: dict) -> str:
    """One-line contact summary for lists."""
    name = contact.get("displayName") or " ".join(
        p for p in (contact.get("givenName"), contact.get("surname")) if p
    ) or "Unnamed Contact"
    emails = [e["address"] for e in contact.get("emailAddresses") or [] if e and e.get("address")]
    email_str = f" <{emails[0]}>" if emails else ""
    company = f" | {contact['companyName']}" if contact.get("companyName") else ""
    return f"- **{name}**{email_str}{company} | ID: `{contact.get('id', '')}`"


# =============================================================================
# Calendar
# =============================================================================

def format_event_summary(event: dict) -> str:
    """Format a calendar event for display."""
    start_str = format_graph_datetime(event.get("start", {}))
    end_str = format_graph_datetime(event.get("end", {}))

    location = (event.get("location") or {}).get("displayName") or "No location"
    organizer = (event.get("organizer") or {}).get("emailAddress", {})
    organizer_str = f"{organizer.get('name', '')} <{organizer.get('address', '')}>"
    is_online = " 🎥" if event.get("isOnlineMeeting") else ""

    attendees = event.get("attendees") or []
    attendee_list = ", ".join(
        f"{a['emailAddress'].get('name') or a['emailAddress'].get('address', '')} "
        f"({a.get('status', {}).get('response', 'none')})"
        for a in attendees[:5]
    )
    if len(attendees) > 5:
        attendee_list += f" +{len(attendees) - 5} more"

    result = (
        f"**{event.get('subject', '(no subject)')}**{is_online}\n"
        f"When: {start_str} → {end_str} | Status: {event.get('showAs', 'busy')}\n"
        f"Location: {location}\n"
        f"Organizer: {organizer_str}\n"
    )
    if attendees:
        result += f"Attendees: {attendee_list}\n"
    result += f"ID: `{event.get('id', '')}`"
    return result


def format_graph_datetime(dt_obj: dict) -> str:
    """Format Graph API datetime object."""
    dt_str = dt_obj.get("dateTime", "")
    tz = dt_obj.get("timeZone", "UTC")
    if dt_str:
        try:
            dt = datetime.fromisoformat(dt_str)
            return f"{dt.strftime('%Y-%m-%d %H:%M')} ({tz})"
        except ValueError:
            return f"{dt_str} ({tz})"
    return "Unknown"


# =============================================================================
# Errors
# =============================================================================

def graph_error_message(e: httpx.HTTPStatusError) -> str:
    try:
        return e.response.json().get("error", {}).get("message", str(e))
    except (ValueError, AttributeError):
        return str(e)


def handle_graph_error(e: Exception) -> str:
    """Format Graph API errors into actionable messages."""
    if isinstance(e, httpx.HTTPStatusError):
        status = e.response.status_code
        error_msg = graph_error_message(e)

        if status == 401:
            return (
                f"Error 401: Authentication failed. Token may be expired. "
                f"Re-run sign-in: python planner_mcp_auth.py\n"
                f"Detail: {error_msg}"
            )
        elif status == 403:
            return f"Error 403: Insufficient permissions. Check app registration scopes.\nDetail: {error_msg}"
        elif status == 404:
            return f"Error 404: Resource not found. Verify the ID is correct.\nDetail: {error_msg}"
        elif status == 412:
            return f"Error 412: The item was changed by someone else. Fetch it again and retry.\nDetail: {error_msg}"
        elif status == 429:
            retry_after = e.response.headers.get("Retry-After", "60")
            return f"Error 429: Rate limited. Retry after {retry_after} seconds."
        else:
            return f"Error {status}: {error_msg}"
    elif isinstance(e, httpx.TimeoutException):
        return "Error: Request timed out. The Graph API may be slow. Please retry."
    elif isinstance(e, RuntimeError):
        return f"Error: {e}"
    return f"Error: {type(e).__name__}: {str(e)}"
