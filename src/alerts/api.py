"""JSON API over the notification feed, consumed by the inventory UI.

Exposes:
- ``GET /api/status``                       → connection + badge state
- ``GET /api/notifications``                → feed, newest first
- ``GET /api/notifications/{id}``           → one notification (detail view)
- ``POST /api/notifications/{id}/read``     → mark one read
- ``POST /api/notifications/read-all``      → mark all read
- ``DELETE /api/notifications/{id}``        → remove one
"""

from __future__ import annotations

import base64
import hmac
from typing import Any

import structlog
from aiohttp import web

from src.alerts.feed import NotificationFeed
from src.alerts.formatters import describe_notification, feed_summary
from src.stream.client import AlertStreamClient

logger = structlog.stdlib.get_logger()


def _check_basic_auth(request: web.Request, username: str, password: str) -> bool:
    """Validate HTTP Basic Auth credentials."""
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Basic "):
        return False
    try:
        decoded = base64.b64decode(auth_header[6:]).decode("utf-8")
        req_user, req_pass = decoded.split(":", 1)
    except (ValueError, UnicodeDecodeError):
        return False
    user_ok = hmac.compare_digest(req_user, username)
    pass_ok = hmac.compare_digest(req_pass, password)
    return user_ok and pass_ok


@web.middleware
async def _auth_middleware(request: web.Request, handler: Any) -> web.StreamResponse:
    """Require HTTP Basic Auth on all routes when credentials are configured."""
    username = request.app.get("auth_username")
    password = request.app.get("auth_password")
    if username and password:
        if not _check_basic_auth(request, username, password):
            return web.Response(
                status=401,
                text="Unauthorized",
                headers={"WWW-Authenticate": 'Basic realm="Stock Alerts"'},
            )
    return await handler(request)


async def _handle_status(request: web.Request) -> web.Response:
    stream = request.app["stream"]
    payload = {
        "connected": stream.is_connected(),
        "state": stream.state.value,
        **feed_summary(request.app["feed"]),
    }
    return web.json_response(payload)


async def _handle_list(request: web.Request) -> web.Response:
    feed = request.app["feed"]
    return web.json_response([describe_notification(n) for n in feed.notifications()])


async def _handle_detail(request: web.Request) -> web.Response:
    notification = request.app["feed"].get(request.match_info["notification_id"])
    if notification is None:
        raise web.HTTPNotFound(text="Notification not found")
    return web.json_response(describe_notification(notification))


async def _handle_mark_read(request: web.Request) -> web.Response:
    notification_id = request.match_info["notification_id"]
    if request.app["feed"].mark_as_read(notification_id):
        logger.debug("notification_marked_read", notification_id=notification_id)
    return web.Response(status=204)


async def _handle_mark_all_read(request: web.Request) -> web.Response:
    changed = request.app["feed"].mark_all_as_read()
    return web.json_response({"marked": changed})


async def _handle_remove(request: web.Request) -> web.Response:
    notification_id = request.match_info["notification_id"]
    if request.app["feed"].remove(notification_id):
        logger.debug("notification_removed", notification_id=notification_id)
    return web.Response(status=204)


def create_api_app(
    feed: NotificationFeed,
    stream: AlertStreamClient,
    username: str | None = None,
    password: str | None = None,
) -> web.Application:
    """Create the aiohttp application."""
    app = web.Application(middlewares=[_auth_middleware])
    app["feed"] = feed
    app["stream"] = stream
    app["auth_username"] = username
    app["auth_password"] = password
    app.router.add_get("/api/status", _handle_status)
    app.router.add_get("/api/notifications", _handle_list)
    app.router.add_post("/api/notifications/read-all", _handle_mark_all_read)
    app.router.add_get("/api/notifications/{notification_id}", _handle_detail)
    app.router.add_post("/api/notifications/{notification_id}/read", _handle_mark_read)
    app.router.add_delete("/api/notifications/{notification_id}", _handle_remove)
    return app


async def start_api(
    feed: NotificationFeed,
    stream: AlertStreamClient,
    host: str = "0.0.0.0",
    port: int = 8080,
    username: str | None = None,
    password: str | None = None,
) -> web.AppRunner:
    """Start the API server. Returns the runner for cleanup."""
    app = create_api_app(feed, stream, username=username, password=password)
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()
    return runner
