import logging
import os
from contextlib import asynccontextmanager
from dotenv import load_dotenv

load_dotenv()

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError

from app.db.db import create_db_and_tables
from app.routers import admin, cctv, claims, items, notifications, threads
from app.services.errors import ServiceError
from app.services.notifications import dispatcher
from app.services.scheduler import NotificationRetryScheduler

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    create_db_and_tables()

    retry_scheduler = NotificationRetryScheduler(dispatcher)
    retry_scheduler.start()
    yield
    retry_scheduler.shutdown()


app = FastAPI(title="TraceBack", lifespan=lifespan)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("CORS_ORIGINS", "http://localhost:3000").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    if exc.status_code == 409:
        logger.warning("%s %s: %s", request.method, request.url.path, exc.message)

    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
    )


@app.exception_handler(OperationalError)
async def storage_error_handler(request: Request, exc: OperationalError):
    logger.error("Storage failure on %s %s: %s", request.method, request.url.path, exc)

    return JSONResponse(
        status_code=503,
        content={"detail": "Storage is unavailable, please retry shortly", "code": "unavailable"},
    )


# Register routers
app.include_router(items.router, prefix="/items", tags=["Items"])
app.include_router(claims.router, prefix="/claims", tags=["Claims"])
app.include_router(threads.router, prefix="/threads", tags=["Threads"])
app.include_router(notifications.router, prefix="/notifications", tags=["Notifications"])
app.include_router(admin.router, prefix="/admin", tags=["Admin"])
app.include_router(cctv.router, prefix="/cctv", tags=["CCTV"])


@app.get("/")
def root():
    return {"status": "ok"}
