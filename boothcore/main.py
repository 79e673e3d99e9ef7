import asyncio
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from boothcore.config import settings
from boothcore.database import SessionLocal, init_db
from boothcore.exceptions import BoothCoreError
from boothcore.logging_config import setup_logging
from boothcore.bookings import router as bookings_router
from boothcore.bookings.sweep import BookingSweeper
from boothcore.credits import router as credits_router
from boothcore.devices import router as devices_router
from boothcore.devices.gateway import build_gateway
from boothcore.devices.poller import DevicePoller
from boothcore.pricing import router as pricing_router
from boothcore.reservations import router as reservations_router

logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title=settings.PROJECT_NAME,
    version="1.0.0",
    description="Booth reservation, pricing and smart-lock access API",
    docs_url="/docs",
    redoc_url="/redoc"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://localhost:5173"],  # Admin and storefront dev servers
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.exception_handler(BoothCoreError)
async def booth_core_error_handler(request: Request, exc: BoothCoreError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.to_dict()},
    )

@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={
            "success": False,
            "error": {
                "code": "VALIDATION_001",
                "message": "Invalid request",
                "details": [{"loc": list(e["loc"]), "msg": e["msg"]} for e in exc.errors()],
            },
        },
    )

# Include routers
app.include_router(
    bookings_router,
    prefix=f"{settings.API_V1_STR}/bookings",
    tags=["Bookings"]
)

app.include_router(
    reservations_router,
    prefix=f"{settings.API_V1_STR}/booths",
    tags=["Availability"]
)

app.include_router(
    pricing_router,
    prefix=f"{settings.API_V1_STR}/pricing",
    tags=["Pricing"]
)

app.include_router(
    credits_router,
    prefix=f"{settings.API_V1_STR}/credits",
    tags=["Credits"]
)

app.include_router(
    devices_router,
    prefix=f"{settings.API_V1_STR}/devices",
    tags=["Devices"]
)

_stop_event = asyncio.Event()
_background_tasks = []

@app.on_event("startup")
async def startup():
    setup_logging()
    init_db()
    if not settings.ENABLE_BACKGROUND_TASKS:
        logger.info("Background tasks disabled")
        return

    _stop_event.clear()
    sweeper = BookingSweeper(SessionLocal)
    poller = DevicePoller(
        SessionLocal,
        build_gateway,
        concurrency=settings.DEVICE_POLL_CONCURRENCY,
        timeout=settings.DEVICE_TIMEOUT_SECONDS,
    )
    _background_tasks.append(asyncio.create_task(sweeper.run(_stop_event, settings.SWEEP_INTERVAL_SECONDS)))
    _background_tasks.append(asyncio.create_task(poller.run(_stop_event, settings.DEVICE_POLL_INTERVAL_SECONDS)))
    logger.info("Started lifecycle sweep and device poller")

@app.on_event("shutdown")
async def shutdown():
    _stop_event.set()
    for task in _background_tasks:
        await task
    _background_tasks.clear()

@app.get("/")
def root():
    """Root endpoint"""
    return {
        "message": settings.PROJECT_NAME,
        "version": "1.0.0",
        "docs": "/docs"
    }

@app.get("/health")
def health_check():
    """Health check endpoint"""
    return {"status": "healthy"}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
