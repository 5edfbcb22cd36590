from fastapi import FastAPI, APIRouter, Request
from fastapi.responses import JSONResponse
from starlette.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import asyncio

from core.config import CORS_ORIGINS, RECONCILE_INTERVAL, RECONCILE_BATCH_SIZE, logger
from core.database import db, client, create_database_indexes
from core.exceptions import ExternalStoreError, InvitationServiceError
from routes import health_router, events_router, rsvp_router, payments_router
from stores.mongo import MongoLedgerStore, MongoEventStore
from tasks import init_tasks, stop_tasks, auto_reconcile_purchases


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup/shutdown"""
    await create_database_indexes()
    init_tasks(
        ledger=MongoLedgerStore(db),
        events=MongoEventStore(db),
        logger=logger,
        RECONCILE_INTERVAL=RECONCILE_INTERVAL,
        RECONCILE_BATCH_SIZE=RECONCILE_BATCH_SIZE,
    )
    reconcile_task = asyncio.create_task(auto_reconcile_purchases())
    yield
    stop_tasks()
    reconcile_task.cancel()
    client.close()


app = FastAPI(lifespan=lifespan)
api_router = APIRouter(prefix="/api")


@app.exception_handler(ExternalStoreError)
async def store_error_handler(request: Request, exc: ExternalStoreError):
    logger.error(f"{request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_response())


@app.exception_handler(InvitationServiceError)
async def service_error_handler(request: Request, exc: InvitationServiceError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path}: {exc.error_code} {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_response())


api_router.include_router(health_router)
api_router.include_router(events_router)
api_router.include_router(rsvp_router)
api_router.include_router(payments_router)
app.include_router(api_router)

app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)
