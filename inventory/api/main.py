import asyncio
import logging
import threading
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from kombu import Connection

from inventory import __version__
from inventory.core.config import get_settings
from inventory.core.exceptions import (
    ApprovalPending,
    DomainValidationError,
    DuplicateEntityError,
    ExecutionError,
    InsufficientPermissionError,
    InvalidStateError,
    InventoryError,
    NotFoundError,
    PublishError,
)
from inventory.core.logger import configure_from_settings
from inventory.api.routers import approvals, health, notifications, products, realtime, routes
from inventory.db.session import SessionLocal
from inventory.services.notification_events import NotificationEventHandler
from inventory.services.realtime import InMemoryConnectionRegistry, NotificationHub
from inventory.workers.consumers import NotificationConsumer

settings = get_settings()
logger = logging.getLogger(__name__)

ERROR_STATUS = (
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (InvalidStateError, status.HTTP_409_CONFLICT),
    (DuplicateEntityError, status.HTTP_409_CONFLICT),
    (InsufficientPermissionError, status.HTTP_403_FORBIDDEN),
    (DomainValidationError, status.HTTP_400_BAD_REQUEST),
    (PublishError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (ExecutionError, status.HTTP_502_BAD_GATEWAY),
)


def status_for(exc: InventoryError) -> int:
    for error_type, code in ERROR_STATUS:
        if isinstance(exc, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def _start_notification_consumer(app: FastAPI, loop: asyncio.AbstractEventLoop) -> threading.Thread:
    """Run the notification consumer in a thread, handling events on ``loop``."""
    def run():
        with Connection(settings.broker_url) as connection:
            consumer = NotificationConsumer(
                connection,
                NotificationEventHandler(SessionLocal, app.state.hub, settings),
                settings,
                loop=loop,
            )
            app.state.notification_consumer = consumer
            consumer.run()

    thread = threading.Thread(target=run, name="notification-consumer", daemon=True)
    thread.start()
    return thread


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_from_settings(settings)
    app.state.hub = NotificationHub(InMemoryConnectionRegistry())

    thread = None
    if settings.run_notification_consumer:
        thread = _start_notification_consumer(app, asyncio.get_running_loop())
        logger.info("Notification consumer started in-process")

    yield

    consumer = getattr(app.state, "notification_consumer", None)
    if consumer is not None:
        consumer.should_stop = True
    if thread is not None:
        thread.join(timeout=5)


app = FastAPI(
    title=settings.app_name,
    description="Approval-gated inventory management",
    version=__version__,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ApprovalPending)
async def approval_pending_handler(request: Request, exc: ApprovalPending):
    return JSONResponse(
        status_code=status.HTTP_202_ACCEPTED,
        content={
            "status": "PendingApproval",
            "approval_request_id": exc.approval_request_id,
            "message": exc.message,
        },
    )


@app.exception_handler(InventoryError)
async def inventory_error_handler(request: Request, exc: InventoryError):
    code = status_for(exc)
    if code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=code, content={"detail": exc.message})


# Include routers
app.include_router(products.router, prefix="/api")
app.include_router(routes.router, prefix="/api")
app.include_router(approvals.router, prefix="/api")
app.include_router(notifications.router, prefix="/api")
app.include_router(health.router)
app.include_router(realtime.router)


@app.get("/")
async def root():
    return {
        "name": settings.app_name,
        "version": __version__,
        "docs": "/docs" if settings.debug else None,
    }
