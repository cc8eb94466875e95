"""Pydantic input models for all MCP tools."""

from datetime import datetime
from typing import Optional, List, Literal

from pydantic import BaseModel, Field, field_validator, ConfigDict

TaskStatus = Literal["notStarted", "inProgress", "completed"]

PRIORITY_VALUES = {
    "low": 8,
    "medium": 5,
    "high": 2,
}


def _check_iso_datetime(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    try:
        datetime.fromisoformat(v.replace("Z", "+00:00"))
    except ValueError:
        raise ValueError(f"'{v}' is not an ISO 8601 datetime, e.g. '2025-06-15T10:00:00Z'")
    return v


# =============================================================================
# Planner
# =============================================================================

class FetchPlannerTasksInput(BaseModel):
    """Input for listing Planner tasks."""
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    user_id: str = Field(
        default="me",
        description="ID of the user whose tasks to fetch. Use 'me' for the current user.",
        min_length=1,
    )
    status: Optional[TaskStatus] = Field(
        default=None,
        description="Filter tasks by status. Allowed values: 'notStarted' (0%), "
                    "'inProgress' (1-99%), 'completed' (100%)",
    )


class GetPlannerTaskInput(BaseModel):
    """Input for getting a single Planner task."""
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    task_id: str = Field(..., description="The Planner task ID", min_length=1)


class CreatePlannerTaskInput(BaseModel):
    """Input for creating a Planner task."""
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    user_id: str = Field(
        default="me",
        description="ID of the user to assign the task to. Use 'me' for the current user.",
        min_length=1,
    )
    plan_id: Optional[str] = Field(
        default=None,
        description="Plan to add the task to. Taken from an existing task or "
                    "DEFAULT_PLAN_ID when omitted.",
        min_length=1,
    )
    bucket_id: Optional[str] = Field(
        default=None,
        description="Bucket to add the task to. Taken from an existing task or "
                    "DEFAULT_BUCKET_ID when omitted.",
        min_length=1,
    )
    title: str = Field(default="New Task", description="Title of the task", min_length=1, max_length=255)
    due_date_time: Optional[str] = Field(
        default=None,
        description="Due date in ISO 8601 format. Defaults to one week from now.",
    )
    priority: Literal["low", "medium", "high"] = Field(
        default="medium",
        description="'low', 'medium' or 'high'",
    )
    start_date_time: Optional[str] = Field(
        default=None,
        description="When work on the task should begin (ISO 8601)",
    )
    notes: Optional[str] = Field(default=None, description="Additional notes or description for the task")

    @field_validator("due_date_time", "start_date_time")
    @classmethod
    def validate_datetime(cls, v: Optional[str]) -> Optional[str]:
        return _check_iso_datetime(v)

    @property
    def priority_value(self) -> int:
        return PRIORITY_VALUES[self.priority]


# =============================================================================
# Contacts
# =============================================================================

class EmailAddressInput(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    address: str = Field(..., description="E-mail address", pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    name: Optional[str] = Field(default=None, description="Display name for the address")


class ContactFields(BaseModel):
    """Fields shared by contact creation and update."""
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    surname: Optional[str] = Field(default=None, description="Last name")
    display_name: Optional[str] = Field(default=None, description="Display name")
    email_addresses: Optional[List[EmailAddressInput]] = Field(default=None, description="E-mail addresses")
    business_phones: Optional[List[str]] = Field(default=None, description="Business phone numbers")
    mobile_phone: Optional[str] = Field(default=None, description="Mobile phone number")
    home_phones: Optional[List[str]] = Field(default=None, description="Home phone numbers")
    job_title: Optional[str] = Field(default=None, description="Job title")
    company_name: Optional[str] = Field(default=None, description="Company name")
    department: Optional[str] = Field(default=None, description="Department")
    office_location: Optional[str] = Field(default=None, description="Office location")

    def to_graph(self) -> dict:
        """Graph property names for every field that was set."""
        data = self.model_dump(exclude_none=True, exclude={"contact_id"})
        return {_camel(k): v for k, v in data.items()}


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


class CreateContactInput(ContactFields):
    """Input for creating a contact."""

    given_name: str = Field(..., description="First name", min_length=1)


class UpdateContactInput(ContactFields):
    """Input for updating a contact. Only the fields provided are changed."""

    contact_id: str = Field(..., description="ID of the contact to update", min_length=1)
    given_name: Optional[str] = Field(default=None, description="First name", min_length=1)


class GetContactInput(BaseModel):
    """Input for getting a contact."""
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    contact_id: str = Field(..., description="The contact ID", min_length=1)


class DeleteContactInput(BaseModel):
    """Input for deleting a contact."""
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    contact_id: str = Field(..., description="ID of the contact to delete", min_length=1)


class ListContactsInput(BaseModel):
    """Input for listing contacts."""
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    filter: Optional[str] = Field(default=None, description="OData filter expression")
    select: Optional[List[str]] = Field(default=None, description="Properties to include in the response")
    top: int = Field(default=25, description="Maximum number of contacts to return", ge=1, le=100)
    skip: int = Field(default=0, description="Number of contacts to skip (pagination)", ge=0)
    order_by: Optional[str] = Field(default=None, description="Property to order by, e.g. 'displayName'")


class SearchContactsInput(BaseModel):
    """Input for searching contacts."""
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    query: str = Field(
        ...,
        description="Prefix matched against display name, first name, last name and e-mail",
        min_length=1,
    )


# =============================================================================
# Calendar
# =============================================================================

class ListEventsInput(BaseModel):
    """Input for listing calendar events."""
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    start_date: Optional[str] = Field(
        default=None,
        description="Start date in ISO format (YYYY-MM-DD). Defaults to today."
    )
    end_date: Optional[str] = Field(
        default=None,
        description="End date in ISO format (YYYY-MM-DD). Defaults to 7 days from start."
    )
    top: int = Field(default=20, description="Max events to return", ge=1, le=50)
    calendar_id: Optional[str] = Field(
        default=None,
        description="Specific calendar ID. Omit for default calendar."
    )

    @field_validator("start_date", "end_date")
    @classmethod
    def validate_date(cls, v: Optional[str]) -> Optional[str]:
        return _check_iso_datetime(v)


class GetEventInput(BaseModel):
    """Input for getting a specific calendar event."""
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    event_id: str = Field(..., description="The event ID to retrieve", min_length=1)


class CreateEventInput(BaseModel):
    """Input for creating a calendar event."""
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    subject: str = Field(..., description="Event title/subject", min_length=1)
    start: str = Field(..., description="Start datetime in ISO format, e.g. '2025-06-15T10:00:00'")
    end: str = Field(..., description="End datetime in ISO format, e.g. '2025-06-15T11:00:00'")
    timezone: str = Field(
        default="UTC",
        description="Timezone for start/end, e.g. 'UTC', 'Europe/Rome', 'America/New_York'"
    )
    body: Optional[str] = Field(default=None, description="Event description/body (HTML supported)")
    location: Optional[str] = Field(default=None, description="Event location name")
    attendees: Optional[List[str]] = Field(default=None, description="List of attendee email addresses")
    is_online_meeting: bool = Field(default=False, description="Create as Teams meeting")
    reminder_minutes: int = Field(default=15, description="Reminder before event in minutes", ge=0)
    calendar_id: Optional[str] = Field(default=None, description="Target calendar ID (omit for default)")

    @field_validator("start", "end")
    @classmethod
    def validate_datetime(cls, v: str) -> str:
        return _check_iso_datetime(v)
