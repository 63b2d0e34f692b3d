import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from cms.cache import cache
from cms.config import settings
from cms.events import event_bus
from cms.exceptions import ContentNotFoundError, MediaValidationError
from cms.listeners import register_listeners
from cms.middleware import TimingMiddleware
from cms.routers import contents, users, metrics

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    try:
        await cache.connect()
    except Exception:
        logger.warning("Redis unavailable, serving without cache")
    register_listeners(event_bus)
    yield
    # Shutdown
    await event_bus.drain()
    event_bus.clear()
    await cache.disconnect()

app = FastAPI(
    title="Content Management API",
    description="Content lifecycle, media storage and cached listings",
    version="1.0.0",
    lifespan=lifespan,
)

# Middleware
app.add_middleware(TimingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.exception_handler(ContentNotFoundError)
async def content_not_found_handler(request: Request, exc: ContentNotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})

@app.exception_handler(MediaValidationError)
async def media_validation_handler(request: Request, exc: MediaValidationError):
    return JSONResponse(
        status_code=422,
        content={"detail": [{"loc": ["body", exc.field], "msg": str(exc)}]},
    )

# Routers
app.include_router(contents.router)
app.include_router(users.router)
app.include_router(metrics.router)

@app.get("/health")
async def health():
    return {"status": "healthy", "version": "1.0.0"}
