from __future__ import annotations

import pytest
from pydantic import ValidationError

from planner_mcp.models import (
    CreateContactInput,
    CreateEventInput,
    CreatePlannerTaskInput,
    FetchPlannerTasksInput,
    ListContactsInput,
    UpdateContactInput,
)


def test_fetch_tasks_defaults_to_me_and_no_status():
    params = FetchPlannerTasksInput()

    assert params.user_id == "me"
    assert params.status is None


def test_fetch_tasks_rejects_unknown_status():
    with pytest.raises(ValidationError):
        FetchPlannerTasksInput(status="blocked")


def test_unknown_fields_are_rejected():
    with pytest.raises(ValidationError):
        FetchPlannerTasksInput(state="completed")


@pytest.mark.parametrize("priority,value", [("low", 8), ("medium", 5), ("high", 2)])
def test_priority_maps_to_planner_value(priority, value):
    assert CreatePlannerTaskInput(priority=priority).priority_value == value


def test_create_task_defaults():
    params = CreatePlannerTaskInput()

    assert params.title == "New Task"
    assert params.priority == "medium"
    assert params.plan_id is None
    assert params.due_date_time is None


def test_create_task_validates_dates():
    assert CreatePlannerTaskInput(due_date_time="2025-06-15T10:00:00Z").due_date_time == "2025-06-15T10:00:00Z"
    with pytest.raises(ValidationError, match="ISO 8601"):
        CreatePlannerTaskInput(due_date_time="next friday")


def test_whitespace_is_stripped():
    assert CreatePlannerTaskInput(title="  Tidy up  ").title == "Tidy up"


def test_contact_to_graph_uses_graph_property_names():
    params = CreateContactInput(
        given_name="Ada",
        company_name="Analytical Engines",
        business_phones=["+44 20 0000 0000"],
        email_addresses=[{"address": "ada@example.com"}],
    )

    assert params.to_graph() == {
        "givenName": "Ada",
        "companyName": "Analytical Engines",
        "businessPhones": ["+44 20 0000 0000"],
        "emailAddresses": [{"address": "ada@example.com"}],
    }


def test_contact_requires_given_name():
    with pytest.raises(ValidationError):
        CreateContactInput(surname="Lovelace")


def test_contact_rejects_malformed_email():
    with pytest.raises(ValidationError):
        CreateContactInput(given_name="Ada", email_addresses=[{"address": "not-an-email"}])


def test_update_contact_excludes_id_from_changes():
    params = UpdateContactInput(contact_id="c-1", mobile_phone="555-0100")

    assert params.to_graph() == {"mobilePhone": "555-0100"}


@pytest.mark.parametrize("top", [0, 101])
def test_list_contacts_page_size_bounds(top):
    with pytest.raises(ValidationError):
        ListContactsInput(top=top)


def test_list_contacts_defaults():
    params = ListContactsInput()

    assert (params.top, params.skip) == (25, 0)


def test_event_requires_iso_start_and_end():
    with pytest.raises(ValidationError):
        CreateEventInput(subject="Sync", start="tomorrow", end="2025-06-15T11:00:00")
