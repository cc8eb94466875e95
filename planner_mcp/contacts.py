"""Outlook contacts operations on top of :class:`GraphClient`."""

import logging
from typing import List, Optional, Tuple

from .auth import GraphClient
from .planner import user_path

logger = logging.getLogger("planner_mcp")


def _escape_odata(value: str) -> str:
    return value.replace("'", "''")


def build_contact_payload(fields: dict) -> dict:
    """Graph body for a new contact from camelCase fields.

    Unset fields are dropped and the display name falls back to the name parts.
    """
    if not fields.get("givenName") and not fields.get("displayName"):
        raise ValueError("Either givenName or displayName is required")

    payload = {k: v for k, v in fields.items() if v is not None}
    if not payload.get("displayName"):
        payload["displayName"] = " ".join(
            p for p in (fields.get("givenName"), fields.get("surname")) if p
        ).strip()
    if payload.get("emailAddresses"):
        payload["emailAddresses"] = [
            {"address": e["address"], "name": e.get("name") or e["address"]}
            for e in payload["emailAddresses"]
        ]
    return payload


async def create_contact(graph: GraphClient, fields: dict, user_id: str = "me") -> dict:
    contact = await graph.post(
        f"{user_path(user_id)}/contacts",
        json_data=build_contact_payload(fields),
    )
    logger.info(f"Created contact {contact.get('id')}")
    return contact


async def get_contact(graph: GraphClient, contact_id: str, user_id: str = "me") -> dict:
    return await graph.get(f"{user_path(user_id)}/contacts/{contact_id}")


async def update_contact(
    graph: GraphClient, contact_id: str, changes: dict, user_id: str = "me"
) -> dict:
    return await graph.patch(f"{user_path(user_id)}/contacts/{contact_id}", json_data=changes)


async def delete_contact(graph: GraphClient, contact_id: str, user_id: str = "me") -> None:
    await graph.delete(f"{user_path(user_id)}/contacts/{contact_id}")
    logger.info(f"Deleted contact {contact_id}")


async def list_contacts(
    graph: GraphClient,
    user_id: str = "me",
    filter: Optional[str] = None,
    select: Optional[List[str]] = None,
    top: Optional[int] = None,
    skip: Optional[int] = None,
    order_by: Optional[str] = None,
) -> Tuple[List[dict], bool]:
    """Return one page of contacts and whether more are available."""
    params = {}
    if filter:
        params["$filter"] = filter
    if select:
        params["$select"] = ",".join(select)
    if top:
        params["$top"] = top
    if skip:
        params["$skip"] = skip
    if order_by:
        params["$orderby"] = order_by

    data = await graph.get(f"{user_path(user_id)}/contacts", params=params or None)
    return data.get("value", []), bool(data.get("@odata.nextLink"))


def search_filter(query: str) -> str:
    q = _escape_odata(query)
    return (
        f"startswith(displayName,'{q}') or startswith(givenName,'{q}') "
        f"or startswith(surname,'{q}') "
        f"or emailAddresses/any(a:startswith(a/address,'{q}'))"
    )


async def search_contacts(graph: GraphClient, query: str, user_id: str = "me") -> List[dict]:
    data = await graph.get(
        f"{user_path(user_id)}/contacts",
        params={"$filter": search_filter(query)},
    )
    return data.get("value", [])
