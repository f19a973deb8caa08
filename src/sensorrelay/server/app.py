"""FastAPI application for the relay.

One app serves every deployment variant, selected by configuration:

    auth.mode = none      device endpoints are open
    auth.mode = device    device endpoints need the X-API-Key header
    auth.mode = operator  as ``device``, plus /login, /admin/users and an
                          operator token for LED control

    relay.mode = push     the device pushes readings and polls commands
    relay.mode = proxy    readings and LED control go straight to the
                          device's own HTTP server

Every route is served at the root and under ``/api``:

    POST /device/data     <- Reading            -> {"status", "pendingCommands"}
    GET  /device/commands                       -> {"status", "pendingCommands"}
    GET  /sensor-data                           -> latest Reading + liveness
    GET  /history?hours=N                       -> [Reading, ...]
    POST /led             <- partial LedState   -> {"status", "message", "ledState"}
    GET  /led-status                            -> LedState
    GET  /status                                -> {"connected", "lastContact", ...}
    GET  /simulate                              -> {"status", "message", "data"}
    GET  /test                                  -> {"message", "timestamp", "serverTime"}
    GET  /health                                -> {"status", "mode", "authMode"}
    POST /login           <- {"username", "password"}   (operator mode)
    GET  /admin/users                                   (operator mode, admin)
    WS   /ws                                    -> {"event", "data"} frames
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Callable

import pydantic
from fastapi import APIRouter, Depends, FastAPI, Header, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from sensorrelay.auth.device import DEVICE_KEY_HEADER, DeviceGuard
from sensorrelay.auth.operator import OperatorGuard, TokenIssuer, UserStore
from sensorrelay.broadcast.hub import BroadcastHub, Subscription
from sensorrelay.config.settings import Settings
from sensorrelay.device.upstream import UpstreamDevice
from sensorrelay.domain.models import (
    ERROR,
    SET_LED,
    DeviceResponse,
    Event,
    HealthResponse,
    LatestReading,
    LedControlResponse,
    LedState,
    LedUpdate,
    LoginRequest,
    LoginResponse,
    Reading,
    ReadingPayload,
    SimulateResponse,
    SystemStatus,
    UserInfo,
)
from sensorrelay.errors import NotFound, RelayError, Unauthorized, UpstreamUnavailable, ValidationError
from sensorrelay.relay.liveness import run_liveness_sweep
from sensorrelay.relay.state import RelayState

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------

def create_app(
    settings: Settings | None = None,
    state: RelayState | None = None,
    upstream: UpstreamDevice | None = None,
    clock: Callable[[], float] = time.time,
) -> FastAPI:
    """Create the relay application.

    Args:
        settings: Relay configuration. Defaults to ``Settings()``.
        state: Optional pre-built RelayState (for testing). Its device
               guard is used as-is.
        upstream: Optional pre-configured device client for proxy mode
                  (for testing).
        clock: Time source in epoch seconds for state and tokens.
    """
    if settings is None:
        settings = Settings()

    auth_mode = settings.auth.mode
    device_guard = None
    if auth_mode in ("device", "operator"):
        device_guard = DeviceGuard(settings.device.api_key.get_secret_value())

    operator_guard = None
    if auth_mode == "operator":
        admin_password = settings.auth.admin_password.get_secret_value()
        if admin_password == "admin":
            logger.warning("Operator mode is using the default admin password")
        operator_guard = OperatorGuard(
            users=UserStore.with_admin(settings.auth.admin_username, admin_password),
            tokens=TokenIssuer(
                secret=settings.auth.jwt_secret.get_secret_value(),
                ttl=settings.auth.token_ttl,
                algorithm=settings.auth.jwt_algorithm,
                clock=clock,
            ),
        )

    if state is None:
        state = RelayState(
            hub=BroadcastHub(queue_size=settings.broadcast.queue_size),
            history_capacity=settings.history.max_points,
            silence_timeout=settings.device.silence_timeout,
            device_guard=device_guard,
            seed_simulated=settings.history.seed_simulated,
            clock=clock,
        )

    if settings.relay.mode == "proxy" and upstream is None:
        upstream = UpstreamDevice(
            base_url=settings.device.base_url,
            timeout=settings.device.request_timeout,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        # Startup
        if app.state.upstream is not None:
            await app.state.upstream.connect()
        app.state.sweep_task = asyncio.create_task(
            run_liveness_sweep(app.state.relay, settings.device.sweep_interval)
        )
        logger.info(
            "Relay started (mode=%s, auth=%s, history=%d)",
            settings.relay.mode, auth_mode, settings.history.max_points,
        )
        if auth_mode == "none":
            logger.warning("Device authentication disabled")
        yield
        # Shutdown
        app.state.sweep_task.cancel()
        try:
            await app.state.sweep_task
        except asyncio.CancelledError:
            pass
        app.state.relay.hub.close_all()
        if app.state.upstream is not None:
            await app.state.upstream.disconnect()
        logger.info("Relay stopped")

    app = FastAPI(
        title="sensorrelay",
        description="Relay between a sensor/LED device and live web clients",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.relay = state
    app.state.upstream = upstream
    app.state.operator = operator_guard

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.server.cors_origins,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    @app.exception_handler(RelayError)
    async def relay_error_handler(request: Request, exc: RelayError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        err = ValidationError(_describe_errors(exc.errors()))
        return JSONResponse(status_code=err.status_code, content=err.to_dict())

    router = _build_router(operator_enabled=operator_guard is not None)
    app.include_router(router, prefix="/api")
    app.include_router(router)

    return app


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

def _describe_errors(errors: Any) -> str:
    """Failed fields as ``body.temperature: Field required; ...``."""
    parts = []
    for error in errors:
        loc = ".".join(str(p) for p in error.get("loc", ()))
        msg = error.get("msg", "invalid")
        parts.append(f"{loc}: {msg}" if loc else msg)
    return "; ".join(parts) or "Invalid request"


def get_relay(request: Request) -> RelayState:
    return request.app.state.relay


def _bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    return token.strip()


def require_operator(
    request: Request,
    authorization: str | None = Header(default=None),
) -> None:
    """In operator mode, demand a valid operator token. Otherwise a no-op."""
    guard: OperatorGuard | None = request.app.state.operator
    if guard is not None:
        guard.authenticate(_bearer_token(authorization))


def require_admin(
    request: Request,
    authorization: str | None = Header(default=None),
) -> None:
    guard: OperatorGuard | None = request.app.state.operator
    if guard is None:
        raise NotFound("Operator accounts are not enabled")
    guard.require_role(_bearer_token(authorization))


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

def _build_router(operator_enabled: bool) -> APIRouter:
    router = APIRouter()

    @router.get("/health")
    async def health_check(request: Request) -> HealthResponse:
        settings: Settings = request.app.state.settings
        return HealthResponse(mode=settings.relay.mode, auth_mode=settings.auth.mode)

    # -------------------------------------------------------------------
    # Device-facing endpoints
    # -------------------------------------------------------------------

    @router.post("/device/data")
    async def submit_reading(
        payload: ReadingPayload,
        relay: RelayState = Depends(get_relay),
        api_key: str | None = Header(default=None, alias=DEVICE_KEY_HEADER),
    ) -> DeviceResponse:
        return relay.submit_reading(payload, api_key)

    @router.get("/device/commands")
    async def poll_commands(
        relay: RelayState = Depends(get_relay),
        api_key: str | None = Header(default=None, alias=DEVICE_KEY_HEADER),
    ) -> DeviceResponse:
        return relay.poll_commands(api_key)

    # -------------------------------------------------------------------
    # Public reads
    # -------------------------------------------------------------------

    @router.get("/sensor-data")
    async def get_latest(request: Request, relay: RelayState = Depends(get_relay)) -> LatestReading:
        upstream: UpstreamDevice | None = request.app.state.upstream
        if upstream is not None:
            data = await upstream.get_sensor_data()
            try:
                payload = ReadingPayload.model_validate(data)
            except pydantic.ValidationError as e:
                raise UpstreamUnavailable(
                    f"Invalid reading from device: {e.error_count()} error(s)",
                    upstream=upstream.base_url,
                ) from e
            reading = Reading.from_payload(payload, relay.now_ms())
            relay.record_reading(reading)
            logger.info("Temp: %.1fC, Humidity: %.1f%%", reading.temperature, reading.humidity)
        return relay.latest()

    @router.get("/history")
    async def get_history(
        hours: float | None = Query(default=None, gt=0, allow_inf_nan=False),
        relay: RelayState = Depends(get_relay),
    ) -> list[Reading]:
        return relay.history(hours)

    @router.get("/led-status")
    async def get_led_status(request: Request, relay: RelayState = Depends(get_relay)) -> Any:
        upstream: UpstreamDevice | None = request.app.state.upstream
        if upstream is not None:
            return await upstream.get_led_status()
        return relay.led_status()

    @router.get("/status")
    async def get_status(relay: RelayState = Depends(get_relay)) -> SystemStatus:
        return relay.status()

    # -------------------------------------------------------------------
    # LED control
    # -------------------------------------------------------------------

    @router.post("/led", dependencies=[Depends(require_operator)])
    async def set_led(
        update: LedUpdate,
        request: Request,
        relay: RelayState = Depends(get_relay),
    ) -> LedControlResponse:
        logger.info("Setting LED: %s", update.model_dump(exclude_none=True))
        upstream: UpstreamDevice | None = request.app.state.upstream
        if upstream is not None:
            answer = await upstream.set_led(update)
            led = relay.apply_led(update)
            return LedControlResponse(message="LED command sent to device", led_state=led, device=answer)
        led = relay.set_led(update)
        return LedControlResponse(led_state=led)

    # -------------------------------------------------------------------
    # Diagnostics
    # -------------------------------------------------------------------

    @router.get("/simulate")
    async def simulate(request: Request, relay: RelayState = Depends(get_relay)) -> SimulateResponse:
        if not request.app.state.settings.relay.allow_simulate:
            raise NotFound("Simulation is disabled")
        return SimulateResponse(data=relay.simulate())

    @router.get("/test")
    async def api_test() -> dict[str, Any]:
        now = datetime.now(timezone.utc)
        return {
            "message": "API is working!",
            "timestamp": int(now.timestamp() * 1000),
            "serverTime": now.isoformat(),
        }

    # -------------------------------------------------------------------
    # Operator accounts
    # -------------------------------------------------------------------

    if operator_enabled:

        @router.post("/login")
        async def login(request: Request, credentials: LoginRequest) -> LoginResponse:
            guard: OperatorGuard = request.app.state.operator
            return guard.login(credentials.username, credentials.password)

        @router.get("/admin/users", dependencies=[Depends(require_admin)])
        async def list_users(request: Request) -> list[UserInfo]:
            guard: OperatorGuard = request.app.state.operator
            return guard.users.list_users()

    # -------------------------------------------------------------------
    # Push channel
    # -------------------------------------------------------------------

    @router.websocket("/ws")
    async def push_channel(websocket: WebSocket, token: str | None = None) -> None:
        relay: RelayState = websocket.app.state.relay
        guard: OperatorGuard | None = websocket.app.state.operator
        await websocket.accept()

        may_control = True
        if guard is not None:
            try:
                guard.authenticate(token)
            except Unauthorized:
                may_control = False

        sub = relay.hub.subscribe()
        try:
            for event in relay.snapshot_events():
                await websocket.send_json(event.model_dump())
            await _serve_subscriber(websocket, sub, relay, may_control)
        except WebSocketDisconnect:
            pass
        finally:
            relay.hub.unsubscribe(sub)

    return router


# ---------------------------------------------------------------------------
# WebSocket helpers
# ---------------------------------------------------------------------------

async def _serve_subscriber(
    websocket: WebSocket,
    sub: Subscription,
    relay: RelayState,
    may_control: bool,
) -> None:
    """Run the outbound pump and the inbound reader until either ends."""
    sender = asyncio.create_task(_pump_events(websocket, sub))
    receiver = asyncio.create_task(_read_messages(websocket, relay, may_control))
    done, pending = await asyncio.wait({sender, receiver}, return_when=asyncio.FIRST_COMPLETED)
    for task in pending:
        task.cancel()
        try:
            await task
        except (asyncio.CancelledError, WebSocketDisconnect):
            pass
    for task in done:
        exc = task.exception()
        if exc is not None and not isinstance(exc, WebSocketDisconnect):
            logger.warning("Push channel %d closed with error: %s", sub.subscriber_id, exc)


async def _pump_events(websocket: WebSocket, sub: Subscription) -> None:
    while True:
        event = await sub.get()
        if event is None:
            # dropped by the hub for falling behind
            await websocket.close(code=1013)
            return
        await websocket.send_json(event.model_dump())


async def _read_messages(websocket: WebSocket, relay: RelayState, may_control: bool) -> None:
    while True:
        text = await websocket.receive_text()
        try:
            message = json.loads(text)
        except json.JSONDecodeError:
            await _send_error(websocket, ValidationError.code, "Message is not valid JSON")
            continue
        if not isinstance(message, dict):
            await _send_error(websocket, ValidationError.code, "Message must be an object")
            continue

        if message.get("event") != SET_LED:
            logger.debug("Ignoring push-channel message %r", message.get("event"))
            continue
        if not may_control:
            await _send_error(websocket, Unauthorized.code, "Operator token required")
            continue
        try:
            update = LedUpdate.model_validate(message.get("data") or {})
        except pydantic.ValidationError as e:
            await _send_error(websocket, ValidationError.code, f"Invalid LED state: {e.error_count()} error(s)")
            continue
        relay.set_led(update)


async def _send_error(websocket: WebSocket, code: str, message: str) -> None:
    await websocket.send_json(Event(event=ERROR, data={"error": code, "message": message}).model_dump())
