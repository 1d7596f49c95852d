from contextlib import asynccontextmanager
from typing import AsyncGenerator, List
import asyncio
import logging

from fastapi import BackgroundTasks, Depends, FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse

from .allocation import (
    AlreadyParked,
    InvalidOrEmptySlot,
    LotFull,
    ParkingManager,
    StorageFailure,
)
from .config import settings
from .db import make_engine, make_session_factory
from .events import event_bus, occupancy_event
from .schemas import (
    Message,
    OccupancySummary,
    ParkRequest,
    ParkResponse,
    SlotOut,
    UnparkRequest,
    UnparkResponse,
)

logger = logging.getLogger(__name__)

engine = make_engine(settings.DATABASE_URL)
SessionLocal = make_session_factory(engine)
parking_manager = ParkingManager(SessionLocal)


def get_manager() -> ParkingManager:
    return parking_manager


@asynccontextmanager
async def lifespan(app: FastAPI):
    # one-time seeding at process start; no-op when slots already exist
    parking_manager.initialize()
    yield


app = FastAPI(title="Smart Parking System", lifespan=lifespan)

# CORS (allow browser preflight/OPTIONS for JSON fetches from other origins or ports)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Security headers ---
@app.middleware("http")
async def security_headers_middleware(request: Request, call_next):
    response: Response = await call_next(request)
    # JSON API only: nothing to load, nothing to frame
    response.headers.setdefault("Content-Security-Policy", "default-src 'none'; frame-ancestors 'none'")
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("X-Frame-Options", "DENY")
    response.headers.setdefault("Referrer-Policy", "no-referrer")
    return response


@app.exception_handler(StorageFailure)
async def storage_failure_handler(request: Request, exc: StorageFailure):
    logger.error("Storage failure on %s %s: %s", request.method, request.url.path, exc, exc_info=exc.__cause__)
    return JSONResponse(status_code=503, content={"message": "Parking storage is unavailable."})


def _message(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=Message(message=message).model_dump())


# --- Status ---
@app.get("/api/parking/status", response_model=List[SlotOut])
def parking_status(manager: ParkingManager = Depends(get_manager)):
    return manager.status()


@app.get("/api/parking/summary", response_model=OccupancySummary)
def parking_summary(manager: ParkingManager = Depends(get_manager)):
    return manager.summary()


@app.get("/events")
async def sse_events(request: Request):
    async def event_stream() -> AsyncGenerator[bytes, None]:
        queue = event_bus.subscribe()
        try:
            # initial comment to open stream
            yield b":ok\n\n"
            while True:
                if await request.is_disconnected():
                    break
                try:
                    data = await asyncio.wait_for(queue.get(), timeout=15.0)
                    yield f"data: {data}\n\n".encode("utf-8")
                except asyncio.TimeoutError:
                    # keep-alive
                    yield b":keepalive\n\n"
        finally:
            event_bus.unsubscribe(queue)

    headers = {"Cache-Control": "no-cache", "X-Accel-Buffering": "no"}
    return StreamingResponse(event_stream(), media_type="text/event-stream", headers=headers)


# --- Park ---
@app.post("/api/parking/park")
def park(req: ParkRequest, background_tasks: BackgroundTasks, manager: ParkingManager = Depends(get_manager)):
    if not req.license_plate or not req.vehicle_type or not req.license_plate.strip() or not req.vehicle_type.strip():
        return _message(400, "License plate and vehicle type are required.")

    result = manager.park(req.license_plate, req.vehicle_type)
    if isinstance(result, AlreadyParked):
        return _message(409, "Already parked.")
    if isinstance(result, LotFull):
        return _message(409, "Parking lot is full.")

    background_tasks.add_task(
        event_bus.publish, occupancy_event("parked", result.slot.slot_id, req.license_plate)
    )
    body = ParkResponse(message="Vehicle parked successfully.", slot_id=result.slot.slot_id, vehicle=result.vehicle)
    return JSONResponse(status_code=200, content=body.model_dump(mode="json", by_alias=True))


@app.options("/api/parking/park")
def park_options():
    return Response(status_code=204)


# Trailing-slash alias to avoid 405 from proxies adding '/'
@app.post("/api/parking/park/")
def park_alias(req: ParkRequest, background_tasks: BackgroundTasks, manager: ParkingManager = Depends(get_manager)):
    return park(req, background_tasks, manager)


@app.options("/api/parking/park/")
def park_options_alias():
    return Response(status_code=204)


@app.get("/api/parking/park")
def park_health():
    return {"ok": True, "endpoint": "/api/parking/park", "method": "GET", "message": "Use POST with JSON body to park."}


@app.get("/api/parking/park/")
def park_health_alias():
    return {"ok": True, "endpoint": "/api/parking/park/", "method": "GET", "message": "Use POST with JSON body to park."}


# --- Unpark ---
@app.post("/api/parking/unpark")
def unpark(req: UnparkRequest, background_tasks: BackgroundTasks, manager: ParkingManager = Depends(get_manager)):
    if not req.slot_id or not req.slot_id.strip():
        return _message(400, "Slot ID is required.")

    result = manager.unpark(req.slot_id)
    if isinstance(result, InvalidOrEmptySlot):
        return _message(400, f"Invalid slot ID or slot is already empty: {req.slot_id}")

    background_tasks.add_task(
        event_bus.publish, occupancy_event("unparked", result.slot_id, result.vehicle.license_plate)
    )
    body = UnparkResponse(
        message=f"Vehicle successfully unparked from slot {result.slot_id}.",
        slot_id=result.slot_id,
        vehicle=result.vehicle,
        exit_time=result.exit_time,
        fee=result.fee,
    )
    return JSONResponse(status_code=200, content=body.model_dump(mode="json", by_alias=True))


@app.options("/api/parking/unpark")
def unpark_options():
    return Response(status_code=204)


@app.post("/api/parking/unpark/")
def unpark_alias(req: UnparkRequest, background_tasks: BackgroundTasks, manager: ParkingManager = Depends(get_manager)):
    return unpark(req, background_tasks, manager)


@app.options("/api/parking/unpark/")
def unpark_options_alias():
    return Response(status_code=204)


@app.get("/api/parking/unpark")
def unpark_health():
    return {"ok": True, "endpoint": "/api/parking/unpark", "method": "GET", "message": "Use POST with JSON body to unpark."}


@app.get("/api/parking/unpark/")
def unpark_health_alias():
    return {"ok": True, "endpoint": "/api/parking/unpark/", "method": "GET", "message": "Use POST with JSON body to unpark."}
