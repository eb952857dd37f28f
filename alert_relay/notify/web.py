"""HTTP surface for the relay, served with ``aiohttp``.

Exposes:
- ``GET  /health``          → liveness probe
- ``POST /notify``          → direct notification
- ``POST /webhook``         → Alertmanager webhook receiver
- ``GET  /config``          → current notification config (secrets masked)
- ``PUT  /config``          → shallow-merge config update
- ``POST /test/{channel}``  → canned test notification
"""

from __future__ import annotations

import datetime
import json
from collections.abc import Awaitable, Callable
from typing import Any

import structlog
from aiohttp import web

from alert_relay.notify.exceptions import ValidationError
from alert_relay.notify.service import NotificationService
from alert_relay.notify.types import DeliveryOutcome

logger = structlog.get_logger(__name__)

SERVICE_KEY: web.AppKey[NotificationService] = web.AppKey("service", NotificationService)

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


def _error(status: int, message: str) -> web.Response:
    return web.json_response({"error": message}, status=status)


@web.middleware
async def _error_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    """Map relay errors onto JSON error responses."""
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except ValidationError as exc:
        return _error(400, str(exc))
    except Exception as exc:
        logger.exception("request_failed", path=request.path, method=request.method)
        return _error(500, str(exc) or type(exc).__name__)


async def _read_json(request: web.Request) -> Any:
    try:
        return await request.json()
    except json.JSONDecodeError as exc:
        raise ValidationError(f"invalid JSON body: {exc.msg}") from exc


def _outcomes(outcomes: list[DeliveryOutcome]) -> list[dict[str, Any]]:
    return [o.as_dict() for o in outcomes]


async def _handle_health(request: web.Request) -> web.Response:
    now = datetime.datetime.now(datetime.timezone.utc)
    return web.json_response({"status": "healthy", "timestamp": now.isoformat()})


async def _handle_notify(request: web.Request) -> web.Response:
    body = await _read_json(request)
    if not isinstance(body, dict):
        raise ValidationError("request body must be an object")
    outcomes = await request.app[SERVICE_KEY].send(body)
    return web.json_response({"success": True, "result": _outcomes(outcomes)})


async def _handle_webhook(request: web.Request) -> web.Response:
    body = await _read_json(request)
    if not isinstance(body, dict):
        raise ValidationError("request body must be an object")
    results = await request.app[SERVICE_KEY].process_alert_batch(body)
    return web.json_response(
        {"success": True, "result": [_outcomes(per_alert) for per_alert in results]}
    )


async def _handle_get_config(request: web.Request) -> web.Response:
    config = request.app[SERVICE_KEY].get_config()
    return web.json_response(config.to_document())


async def _handle_put_config(request: web.Request) -> web.Response:
    body = await _read_json(request)
    if not isinstance(body, dict):
        raise ValidationError("request body must be an object")
    config = await request.app[SERVICE_KEY].set_config(body)
    return web.json_response({"success": True, "config": config.to_document()})


async def _handle_test(request: web.Request) -> web.Response:
    channel = request.match_info["channel"]
    outcomes = await request.app[SERVICE_KEY].test(channel)
    return web.json_response({"success": True, "result": _outcomes(outcomes)})


async def _on_cleanup(app: web.Application) -> None:
    await app[SERVICE_KEY].close()


def create_web_app(service: NotificationService) -> web.Application:
    """Create the aiohttp web application."""
    app = web.Application(middlewares=[_error_middleware], client_max_size=10 * 1024**2)
    app[SERVICE_KEY] = service
    app.router.add_get("/health", _handle_health)
    app.router.add_post("/notify", _handle_notify)
    app.router.add_post("/webhook", _handle_webhook)
    app.router.add_get("/config", _handle_get_config)
    app.router.add_put("/config", _handle_put_config)
    app.router.add_post("/test/{channel}", _handle_test)
    app.on_cleanup.append(_on_cleanup)
    return app


async def start_web_server(
    service: NotificationService,
    host: str = "0.0.0.0",
    port: int = 5001,
) -> web.AppRunner:
    """Start the HTTP server. Returns the runner for cleanup."""
    app = create_web_app(service)
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()
    logger.info("server_started", host=host, port=port)
    return runner
