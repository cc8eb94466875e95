from __future__ import annotations

import json

import pytest

from planner_mcp import contacts


def test_build_contact_payload_derives_display_name_and_email_names():
    payload = contacts.build_contact_payload(
        {
            "givenName": "Ada",
            "surname": "Lovelace",
            "jobTitle": None,
            "emailAddresses": [{"address": "ada@example.com"}],
        }
    )

    assert payload == {
        "givenName": "Ada",
        "surname": "Lovelace",
        "displayName": "Ada Lovelace",
        "emailAddresses": [{"address": "ada@example.com", "name": "ada@example.com"}],
    }


def test_build_contact_payload_keeps_explicit_display_name():
    payload = contacts.build_contact_payload({"givenName": "Ada", "displayName": "The Countess"})

    assert payload["displayName"] == "The Countess"


def test_build_contact_payload_requires_a_name():
    with pytest.raises(ValueError):
        contacts.build_contact_payload({"surname": "Lovelace"})


def test_search_filter_escapes_quotes():
    expr = contacts.search_filter("O'Brien")

    assert "startswith(displayName,'O''Brien')" in expr
    assert "emailAddresses/any(a:startswith(a/address,'O''Brien'))" in expr


@pytest.mark.asyncio
async def test_create_contact_posts_to_user_contacts(graph, graph_stub):
    graph_stub.add(
        "POST",
        "/users/u-1/contacts",
        lambda req: dict(json.loads(req.content), id="c-1"),
        status=201,
    )

    contact = await contacts.create_contact(graph, {"givenName": "Ada"}, user_id="u-1")

    assert contact == {"givenName": "Ada", "displayName": "Ada", "id": "c-1"}


@pytest.mark.asyncio
async def test_update_contact_sends_only_changes(graph, graph_stub):
    graph_stub.add("PATCH", "/me/contacts/c-1", {"id": "c-1", "jobTitle": "CTO"})

    await contacts.update_contact(graph, "c-1", {"jobTitle": "CTO"})

    assert json.loads(graph_stub.requests[0].content) == {"jobTitle": "CTO"}


@pytest.mark.asyncio
async def test_delete_contact_accepts_no_content(graph, graph_stub):
    graph_stub.add("DELETE", "/me/contacts/c-1", status=204)

    await contacts.delete_contact(graph, "c-1")

    assert len(graph_stub.find("DELETE", "/me/contacts/c-1")) == 1


@pytest.mark.asyncio
async def test_list_contacts_builds_odata_query(graph, graph_stub):
    graph_stub.add(
        "GET",
        "/me/contacts",
        {"value": [{"id": "c-1"}], "@odata.nextLink": "https://graph.test/next"},
    )

    found, has_more = await contacts.list_contacts(
        graph,
        filter="companyName eq 'Acme'",
        select=["displayName", "emailAddresses"],
        top=10,
        skip=20,
        order_by="displayName",
    )

    assert found == [{"id": "c-1"}]
    assert has_more is True
    params = graph_stub.requests[0].url.params
    assert params["$filter"] == "companyName eq 'Acme'"
    assert params["$select"] == "displayName,emailAddresses"
    assert params["$top"] == "10"
    assert params["$skip"] == "20"
    assert params["$orderby"] == "displayName"


@pytest.mark.asyncio
async def test_list_contacts_omits_unset_query_options(graph, graph_stub):
    graph_stub.add("GET", "/me/contacts", {"value": []})

    found, has_more = await contacts.list_contacts(graph, skip=0)

    assert (found, has_more) == ([], False)
    assert graph_stub.requests[0].url.query == b""


@pytest.mark.asyncio
async def test_search_contacts_uses_prefix_filter(graph, graph_stub):
    graph_stub.add("GET", "/me/contacts", {"value": [{"id": "c-1", "displayName": "Ada"}]})

    found = await contacts.search_contacts(graph, "Ad")

    assert [c["id"] for c in found] == ["c-1"]
    assert graph_stub.requests[0].url.params["$filter"] == contacts.search_filter("Ad")
