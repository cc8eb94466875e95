"""
Planner event service - HTTP surface.

    GET  /events                  text/event-stream of task notifications
    GET  /api/planner/tasks       list tasks (?status=notStarted|inProgress|completed)
    POST /api/planner/tasks       create a task (title, planId, bucketId required)
    GET  /api/planner/tasks/{id}  task details

Every endpoint acts on behalf of the caller's ``Authorization: Bearer`` token.
"""

import json
import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
import uvicorn
from starlette.applications import Starlette
from starlette.datastructures import MutableHeaders
from starlette.middleware import Middleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response, StreamingResponse
from starlette.routing import Route

from .auth import BearerToken, GraphClient, user_id_from_token
from .config import Settings
from .events import EventBroadcaster, EventKind, QueueWriter
from .helpers import graph_error_message
from .planner import (
    TASK_STATUSES,
    create_planner_task,
    fetch_planner_tasks,
    get_task_details,
    resolve_user_id,
)

logger = logging.getLogger("planner_mcp")

REQUIRED_TASK_FIELDS = ["title", "planId", "bucketId"]

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Request-Method": "*",
    "Access-Control-Allow-Methods": "OPTIONS, GET, POST, PATCH, DELETE",
    "Access-Control-Allow-Headers": "*",
}


class PermissiveCORSMiddleware:
    """Adds CORS headers to every response and answers any OPTIONS with an empty 200."""

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        if scope["method"] == "OPTIONS":
            response = Response(status_code=200, headers=CORS_HEADERS)
            await response(scope, receive, send)
            return

        async def send_with_cors(message):
            if message["type"] == "http.response.start":
                headers = MutableHeaders(scope=message)
                for name, value in CORS_HEADERS.items():
                    headers[name] = value
            await send(message)

        await self.app(scope, receive, send_with_cors)


def bearer_token(request: Request) -> Optional[str]:
    header = request.headers.get("authorization", "")
    if header.startswith("Bearer "):
        return header[len("Bearer "):].strip() or None
    return None


def unauthorized() -> JSONResponse:
    return JSONResponse({"error": "Unauthorized - No access token provided"}, status_code=401)


def failure(message: str, e: Exception) -> JSONResponse:
    if isinstance(e, httpx.HTTPStatusError):
        details = graph_error_message(e)
    else:
        details = str(e)
    return JSONResponse({"error": message, "details": details}, status_code=500)


async def not_found(request: Request, exc) -> JSONResponse:
    return JSONResponse({"error": "Endpoint not found"}, status_code=404)


async def method_not_allowed(request: Request, exc) -> JSONResponse:
    return JSONResponse({"error": "Method not allowed"}, status_code=405)


def create_app(
    settings: Settings,
    broadcaster: Optional[EventBroadcaster] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Starlette:
    """Build the event service.

    ``transport`` is handed to every per-request :class:`GraphClient`; tests
    pass an ``httpx.MockTransport`` here.
    """
    broadcaster = broadcaster or EventBroadcaster()

    def graph_for(token: str) -> GraphClient:
        return GraphClient.from_settings(BearerToken(token), settings, transport=transport)

    async def stream_events(request: Request):
        if not bearer_token(request):
            return unauthorized()

        writer = QueueWriter(maxsize=settings.events_queue_size)
        handle = broadcaster.subscribe(writer)

        async def stream():
            try:
                async for frame in writer.frames():
                    yield frame
            finally:
                writer.close()
                broadcaster.unsubscribe(handle.id)

        return StreamingResponse(
            stream(),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        )

    async def list_tasks(request: Request):
        token = bearer_token(request)
        if not token:
            return unauthorized()

        status = request.query_params.get("status") or None
        if status is not None and status not in TASK_STATUSES:
            return JSONResponse(
                {"error": f"Invalid status '{status}'", "allowed": list(TASK_STATUSES)},
                status_code=400,
            )

        try:
            async with graph_for(token) as graph:
                page = await fetch_planner_tasks(graph, user_id_from_token(token) or "me", status)
        except Exception as e:
            logger.error(f"Error fetching tasks: {e}")
            return failure("Failed to fetch tasks", e)

        return JSONResponse({"tasks": page.tasks, "count": page.count, "hasMore": page.has_more})

    async def create_task(request: Request):
        token = bearer_token(request)
        if not token:
            return unauthorized()

        try:
            body = json.loads(await request.body() or b"{}")
        except ValueError:
            return JSONResponse({"error": "Invalid JSON body"}, status_code=400)

        if not isinstance(body, dict) or not all(body.get(k) for k in REQUIRED_TASK_FIELDS):
            return JSONResponse(
                {"error": "Missing required fields", "required": REQUIRED_TASK_FIELDS},
                status_code=400,
            )

        try:
            async with graph_for(token) as graph:
                assignee = user_id_from_token(token) or await resolve_user_id(graph, "me")
                task = await create_planner_task(
                    graph,
                    plan_id=body["planId"],
                    bucket_id=body["bucketId"],
                    title=body["title"],
                    assignee_id=assignee,
                    due_date_time=body.get("dueDateTime"),
                    start_date_time=body.get("startDateTime"),
                    priority=body.get("priority"),
                    percent_complete=body.get("percentComplete"),
                    notes=body.get("notes"),
                )
        except Exception as e:
            logger.error(f"Error creating task: {e}")
            return failure("Failed to create task", e)

        broadcaster.broadcast_task_event(EventKind.TASK_CREATED, task)
        return JSONResponse(task, status_code=201)

    async def get_task(request: Request):
        token = bearer_token(request)
        if not token:
            return unauthorized()

        task_id = request.path_params["task_id"]
        try:
            async with graph_for(token) as graph:
                task = await get_task_details(graph, task_id)
        except Exception as e:
            logger.error(f"Error fetching task details for task {task_id}: {e}")
            return failure("Failed to fetch task details", e)

        if task is None:
            return JSONResponse({"error": "Task not found"}, status_code=404)
        return JSONResponse(task)

    @asynccontextmanager
    async def lifespan(app: Starlette):
        logger.info(f"Planner event service on http://{settings.events_host}:{settings.events_port}")
        try:
            yield
        finally:
            broadcaster.close()
            logger.info("Planner event service stopped")

    app = Starlette(
        routes=[
            Route("/events", stream_events, methods=["GET"]),
            Route("/api/planner/tasks", list_tasks, methods=["GET"]),
            Route("/api/planner/tasks", create_task, methods=["POST"]),
            Route("/api/planner/tasks/{task_id}", get_task, methods=["GET"]),
        ],
        middleware=[Middleware(PermissiveCORSMiddleware)],
        exception_handlers={404: not_found, 405: method_not_allowed},
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.broadcaster = broadcaster
    return app


def run_event_server(settings: Settings, port: Optional[int] = None):
    """Serve the event service with uvicorn until interrupted."""
    uvicorn.run(
        create_app(settings),
        host=settings.events_host,
        port=port or settings.events_port,
        log_level=settings.log_level.lower(),
    )
