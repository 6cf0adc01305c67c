"""
Smart Farming Dashboard - FastAPI backend.
Current readings, crop health, yield prediction and forecast over HTTP and a WebSocket push
channel, with every response redacted to what the caller's subscription plan allows.
"""
import asyncio
import contextlib
import csv
import io
import json
import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from fastapi import Depends, FastAPI, Header, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.exception_handlers import http_exception_handler
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

from auth import issue_session_token, read_session
from broadcaster import ConnectionManager, broadcast_loop, error_message
from data_service import DashboardPayload, FarmDataService
from farm_config import config
from logging_setup import setup_logging
from plans import (
    SubscriptionContext,
    check_premium_feature,
    has_access,
    plan_catalogue,
    redact_payload,
    subscribe_to_plan,
)

logger = logging.getLogger("smartfarm.api")

STARTED_AT = time.monotonic()

data_service = FarmDataService(config)
manager = ConnectionManager()


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(config.debug)
    logger.info(f"Smart Farming Dashboard backend v{config.version} on port {config.port}")
    logger.info(f"Location: {config.location.city} ({config.location.lat}, {config.location.lon})")
    logger.info(f"OpenWeather API: {'Demo Mode' if config.weather.demo_mode else 'Connected'}")
    task = asyncio.create_task(broadcast_loop(manager, data_service, config.update_interval))
    try:
        yield
    finally:
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.info("Broadcast loop stopped")


app = FastAPI(title="Smart Farming Dashboard API", version=config.version, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Request/Response models ---
class SubscribeRequest(BaseModel):
    plan: str


class SessionResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    plan: str
    features: List[str]


def get_data_service() -> FarmDataService:
    return data_service


def get_connection_manager() -> ConnectionManager:
    return manager


def get_session(authorization: Optional[str] = Header(None)) -> SubscriptionContext:
    """Subscription context from the Bearer token; no token means the free plan."""
    if not authorization:
        return SubscriptionContext()
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise HTTPException(status_code=401, detail="Invalid authorization header")
    context = read_session(parts[1])
    if context is None:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    return context


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# --- Error handling ---
@app.exception_handler(StarletteHTTPException)
async def route_not_found(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 404 and exc.detail == "Not Found":
        return JSONResponse(status_code=404, content={"error": "Route not found"})
    return await http_exception_handler(request, exc)


@app.exception_handler(Exception)
async def unhandled_error(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"error": "Something went wrong!", "details": str(exc)})


# --- Dashboard data ---
@app.get("/api/current-data")
def current_data(
    session: SubscriptionContext = Depends(get_session),
    service: FarmDataService = Depends(get_data_service),
) -> Dict[str, Any]:
    """Run a refresh cycle and return the payload the caller's plan may see."""
    payload = service.build_payload().to_wire()
    return redact_payload(payload, session.plan)


@app.get("/api/forecast")
def forecast(service: FarmDataService = Depends(get_data_service)) -> Dict[str, Any]:
    days = service.forecast()
    return {
        "forecast": [day.model_dump(mode="json", by_alias=True) for day in days],
        "location": service.location.model_dump(by_alias=True),
        "timestamp": _now_iso(),
    }


@app.get("/api/health")
def health() -> Dict[str, Any]:
    return {
        "status": "healthy",
        "uptime": round(time.monotonic() - STARTED_AT, 3),
        "timestamp": _now_iso(),
        "version": config.version,
    }


# --- Subscription ---
@app.get("/api/plans")
def plans() -> Dict[str, Any]:
    return {"plans": plan_catalogue()}


@app.get("/api/features")
def features(session: SubscriptionContext = Depends(get_session)) -> Dict[str, Any]:
    return {"plan": session.plan.value, "features": sorted(session.features)}


@app.post("/api/subscribe", response_model=SessionResponse)
def subscribe(req: SubscribeRequest, session: SubscriptionContext = Depends(get_session)):
    """Switch the session to a plan; the returned token replaces the old one."""
    try:
        new_session = subscribe_to_plan(session, req.plan)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    logger.info(f"Subscription updated: {session.plan.value} -> {new_session.plan.value}")
    return SessionResponse(
        access_token=issue_session_token(new_session),
        plan=new_session.plan.value,
        features=sorted(new_session.features),
    )


# --- Export ---
def _export_rows(payload: DashboardPayload, full: bool) -> List[Tuple[str, str, str, str]]:
    stamp = _now_iso()
    weather, soil, health = payload.weather, payload.soil, payload.crop_health
    factors = health.factors
    rows = [
        ("Temperature", f"{weather.temperature}°C", factors["temperature"].status, stamp),
        ("Humidity", f"{weather.humidity}%", "Normal", stamp),
        ("Wind Speed", f"{weather.wind_speed} m/s", "Normal", stamp),
        ("Soil Moisture", f"{soil.moisture}%", factors["soilMoisture"].status, stamp),
        ("pH Level", f"{soil.ph}", factors["ph"].status, stamp),
        ("Nitrogen", f"{soil.nitrogen}%", "Low" if soil.nitrogen < 40 else "Good", stamp),
        ("Phosphorus", f"{soil.phosphorus}%", "Good", stamp),
        ("Potassium", f"{soil.potassium}%", "Good", stamp),
    ]
    if full:
        prediction = payload.yield_prediction
        rows += [
            ("Crop Health Score", f"{health.score}%", health.status, stamp),
            ("Growth Stage", health.growth_stage, "On Track", stamp),
            ("Days from Planting", f"{health.days_from_planting} days", "Normal", stamp),
            ("Predicted Yield", f"{prediction.per_hectare} kg/ha", f"{prediction.confidence}% confidence", stamp),
        ]
    return rows


@app.get("/api/export")
def export_csv(
    session: SubscriptionContext = Depends(get_session),
    service: FarmDataService = Depends(get_data_service),
):
    """CSV of the latest readings; crop health and yield rows need the complete export."""
    allowed, suggested = check_premium_feature(session.plan, "export")
    if not allowed:
        raise HTTPException(
            status_code=403,
            detail={"message": "Data export is not included in your plan", "suggested_plan": suggested.value},
        )

    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(["Metric", "Value", "Status", "Timestamp"])
    writer.writerows(_export_rows(service.latest_payload(), has_access(session.plan, "export-all")))

    filename = f"farm-data-{datetime.now(timezone.utc).date().isoformat()}.csv"
    return Response(
        content=buffer.getvalue(),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# --- Push channel ---
def _parse_client_message(message: str) -> Tuple[str, Dict[str, Any]]:
    """Client messages are either a bare event name or {"event": ..., ...}."""
    try:
        body = json.loads(message)
    except ValueError:
        return message.strip(), {}
    if isinstance(body, dict):
        return str(body.get("event", "")), body
    return str(body), {}


async def _send_fresh(websocket: WebSocket, service: FarmDataService, connections: ConnectionManager) -> None:
    try:
        payload = (await asyncio.to_thread(service.build_payload)).to_wire()
    except Exception as e:
        logger.exception("WebSocket data error")
        await websocket.send_json(error_message("Failed to fetch data", str(e)))
        return
    await connections.send_payload(websocket, payload)


@app.websocket("/ws")
async def push_channel(
    websocket: WebSocket,
    token: Optional[str] = None,
    service: FarmDataService = Depends(get_data_service),
    connections: ConnectionManager = Depends(get_connection_manager),
):
    context = SubscriptionContext()
    if token:
        context = read_session(token)
        if context is None:
            await websocket.close(code=1008)
            return

    await connections.connect(websocket, context)
    try:
        await _send_fresh(websocket, service, connections)
        while True:
            event, body = _parse_client_message(await websocket.receive_text())
            if event == "requestUpdate":
                await _send_fresh(websocket, service, connections)
            elif event == "subscribe":
                new_context = read_session(str(body.get("token", "")))
                if new_context is None:
                    await websocket.send_json(error_message("Subscription change rejected", "Invalid or expired token"))
                    continue
                connections.set_context(websocket, new_context)
                await _send_fresh(websocket, service, connections)
            else:
                await websocket.send_json(error_message("Unknown event", event))
    except WebSocketDisconnect:
        connections.disconnect(websocket)


if __name__ == "__main__":
    import uvicorn

    setup_logging(config.debug)
    uvicorn.run(app, host=config.host, port=config.port)
