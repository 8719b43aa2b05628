"""HTTP surface for bridges: register devices and push notifications.

Routes::

    GET    /health     liveness probe
    POST   /register   {relay_token, device_token, platform, bundle_id?}
    DELETE /register   {relay_token, device_token}
    POST   /push       {relay_token, title, body}

The relay token scopes a bridge's devices and doubles as the secret proving
the caller may push to them.
"""

from __future__ import annotations

import logging

from aiohttp import web
from aiohttp.typedefs import Handler

from pushrelay.dispatcher import Dispatcher
from pushrelay.refresher import BackgroundRefresher
from pushrelay.registry import DeviceRecord, DeviceRegistry, Platform, utc_timestamp

logger = logging.getLogger(__name__)

MIN_RELAY_TOKEN_LENGTH = 32

REGISTRY_KEY = web.AppKey("registry", DeviceRegistry)
DISPATCHER_KEY = web.AppKey("dispatcher", Dispatcher)
REFRESHER_KEY = web.AppKey("refresher", BackgroundRefresher)

routes = web.RouteTableDef()


class ValidationError(ValueError):
    """Raised when a request body is malformed or incomplete."""


def _json(data: dict[str, object], status: int = 200) -> web.Response:
    return web.json_response(data, status=status, headers={"cache-control": "no-store"})


async def _read_body(request: web.Request, *required: str) -> dict[str, object]:
    try:
        body = await request.json()
    except ValueError:
        raise ValidationError("Invalid JSON body") from None
    if not isinstance(body, dict):
        raise ValidationError("Invalid JSON body")
    missing = [f for f in required if not body.get(f)]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(required)}")
    for f in required:
        if not isinstance(body[f], str):
            raise ValidationError(f"Field '{f}' must be a string")
    token = body.get("relay_token")
    if isinstance(token, str) and len(token) < MIN_RELAY_TOKEN_LENGTH:
        raise ValidationError(
            f"Invalid relay_token (minimum {MIN_RELAY_TOKEN_LENGTH} characters)"
        )
    return body


@web.middleware
async def error_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    try:
        return await handler(request)
    except ValidationError as e:
        logger.debug("Rejected %s %s: %s", request.method, request.path, e)
        return _json({"ok": False, "error": str(e)}, status=400)
    except web.HTTPNotFound:
        return _json({"ok": False, "error": "Not found"}, status=404)
    except web.HTTPMethodNotAllowed:
        return _json({"ok": False, "error": "Not found"}, status=404)


@routes.get("/health")
async def health(request: web.Request) -> web.Response:
    return _json(
        {
            "ok": True,
            "status": "healthy",
            "timestamp": utc_timestamp(),
        }
    )


@routes.post("/register")
async def register(request: web.Request) -> web.Response:
    body = await _read_body(request, "relay_token", "device_token", "platform")
    try:
        platform = Platform(str(body["platform"]))
    except ValueError:
        raise ValidationError('platform must be "ios" or "android"') from None
    bundle_id = body.get("bundle_id")
    if bundle_id is not None and not isinstance(bundle_id, str):
        raise ValidationError("Field 'bundle_id' must be a string")
    record = DeviceRecord(
        platform=platform,
        device_token=str(body["device_token"]),
        bundle_id=bundle_id,
    )
    await request.app[REGISTRY_KEY].add(str(body["relay_token"]), record)
    return _json({"ok": True, "message": "Device registered"})


@routes.delete("/register")
async def unregister(request: web.Request) -> web.Response:
    body = await _read_body(request, "relay_token", "device_token")
    removed = await request.app[REGISTRY_KEY].remove(
        str(body["relay_token"]), str(body["device_token"])
    )
    return _json({"ok": True, "message": "Device removed" if removed else "Device not found"})


@routes.post("/push")
async def push(request: web.Request) -> web.Response:
    body = await _read_body(request, "relay_token", "title", "body")
    results = await request.app[DISPATCHER_KEY].dispatch(
        str(body["relay_token"]), str(body["title"]), str(body["body"])
    )
    if not results:
        return _json({"ok": True, "results": [], "message": "No devices registered"})
    return _json({"ok": True, "results": [r.to_dict() for r in results]})


async def _start_refresher(app: web.Application) -> None:
    app[REFRESHER_KEY].start()


async def _stop_refresher(app: web.Application) -> None:
    await app[REFRESHER_KEY].stop()


def create_app(
    registry: DeviceRegistry,
    dispatcher: Dispatcher,
    refresher: BackgroundRefresher | None = None,
) -> web.Application:
    """Build the relay application.

    When *refresher* is given it is started with the app and stopped on
    cleanup.
    """
    app = web.Application(middlewares=[error_middleware])
    app[REGISTRY_KEY] = registry
    app[DISPATCHER_KEY] = dispatcher
    if refresher is not None:
        app[REFRESHER_KEY] = refresher
        app.on_startup.append(_start_refresher)
        app.on_cleanup.append(_stop_refresher)
    app.add_routes(routes)
    return app
