from fastapi import FastAPI, Depends, HTTPException, Header, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from typing import Optional
from contextlib import asynccontextmanager
import uuid

from .errors import DomainError, Internal, InvalidInput, NotFound
from .events import ListEventsResponse
from .models import (
    CategorySlice,
    CreateRfqRequest,
    CreateRfqResponse,
    ErrorEnvelope,
    ManufacturerProfile,
    PostMessageRequest,
    PostMessageResponse,
    RfqMeta,
    UpsertManufacturerRequest,
    UpsertManufacturerResponse,
)
from .adapters.idempotency_store import ObjectStoreIdempotencyStore
from .adapters.notifications import HttpNotificationSender, LoggingNotificationSender
from .adapters.object_store import InMemoryObjectStore, ObjectStore
from .adapters.object_store_repository import (
    ObjectStoreCatalogRepository,
    ObjectStoreManufacturerRepository,
    ObjectStoreRfqRepository,
)
from .adapters.sql_object_store import SQLObjectStore
from .service.manufacturer_service import ManufacturerService
from .service.ports import AbstractNotificationSender
from .service.rfq_service import RfqService
from shared.settings import Settings, settings
from shared.logging import get_logger
from shared.db import create_engine, create_session_factory, create_db_and_tables, close_db_connection

logger = get_logger(__name__)

REQUEST_ID_HEADER = "x-request-id"


def build_notification_sender(app_settings: Settings) -> AbstractNotificationSender:
    if app_settings.NOTIFY_BACKEND == "http":
        return HttpNotificationSender(
            url=app_settings.NOTIFY_WEBHOOK_URL,
            from_email=app_settings.NOTIFY_FROM_EMAIL,
            token=app_settings.NOTIFY_AUTH_TOKEN,
            timeout=app_settings.NOTIFY_TIMEOUT_SECONDS,
        )
    return LoggingNotificationSender()


def wire_services(app: FastAPI, app_settings: Settings, private_store: ObjectStore, public_store: ObjectStore) -> None:
    """Builds repositories and services over the two buckets and attaches them to app.state."""
    rfq_repository = ObjectStoreRfqRepository(
        private_store,
        page_max=app_settings.EVENTS_PAGE_MAX,
        default_limit=app_settings.EVENTS_DEFAULT_LIMIT,
        list_page_size=app_settings.STORE_LIST_PAGE_SIZE,
    )
    manufacturer_repository = ObjectStoreManufacturerRepository(public_store)
    catalog_repository = ObjectStoreCatalogRepository(public_store)

    app.state.rfq_service = RfqService(
        rfq_repository=rfq_repository,
        manufacturer_repository=manufacturer_repository,
        notification_sender=build_notification_sender(app_settings),
        idempotency_store=ObjectStoreIdempotencyStore(private_store, ttl_seconds=app_settings.IDEMPOTENCY_TTL_SECONDS),
    )
    app.state.manufacturer_service = ManufacturerService(manufacturer_repository, catalog_repository)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"{settings.APP_NAME} starting up with '{settings.STORE_BACKEND}' object store...")
    engine = None
    if settings.STORE_BACKEND == "memory":
        private_store: ObjectStore = InMemoryObjectStore(settings.private_bucket)
        public_store: ObjectStore = InMemoryObjectStore(settings.public_bucket)
    elif settings.STORE_BACKEND == "sql":
        engine = create_engine(settings)
        await create_db_and_tables(engine)
        session_factory = create_session_factory(engine)
        private_store = SQLObjectStore(session_factory, settings.private_bucket)
        public_store = SQLObjectStore(session_factory, settings.public_bucket)
    else:
        raise ValueError(f"Unknown STORE_BACKEND '{settings.STORE_BACKEND}'")

    wire_services(app, settings, private_store, public_store)
    yield
    logger.info(f"{settings.APP_NAME} shutting down...")
    if engine is not None:
        await close_db_connection(engine)

app = FastAPI(
    title=settings.APP_NAME,
    version="v1",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ALLOW_ORIGINS,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["content-type", "authorization", "idempotency-key", REQUEST_ID_HEADER],
    expose_headers=[REQUEST_ID_HEADER],
)


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
    response = await call_next(request)
    response.headers[REQUEST_ID_HEADER] = request_id
    return response


def _envelope(status_code: int, envelope: ErrorEnvelope) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=envelope.model_dump(exclude_none=True))


@app.exception_handler(DomainError)
async def handle_domain_error(request: Request, exc: DomainError):
    if isinstance(exc, Internal):
        # Full cause stays in the server log; clients only see the generic message
        logger.error(f"Internal error on {request.method} {request.url.path}: {exc.message}", exc_info=exc)
        return _envelope(exc.status_code, ErrorEnvelope(code=exc.code, message="An internal error occurred"))
    logger.info(f"{exc.code} on {request.method} {request.url.path}: {exc.message}")
    return _envelope(exc.status_code, ErrorEnvelope(code=exc.code, message=exc.message, details=exc.details))


@app.exception_handler(RequestValidationError)
async def handle_request_validation_error(request: Request, exc: RequestValidationError):
    error = InvalidInput("Request validation failed", details=jsonable_encoder(exc.errors()))
    logger.info(f"Rejected malformed request on {request.method} {request.url.path}: {len(exc.errors())} error(s)")
    return _envelope(error.status_code, ErrorEnvelope(code=error.code, message=error.message, details=error.details))


@app.exception_handler(Exception)
async def handle_unexpected_error(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return _envelope(500, ErrorEnvelope(code=Internal.code, message="An internal error occurred"))


# Dependencies; tests replace these through app.dependency_overrides
def get_rfq_service(request: Request) -> RfqService:
    return request.app.state.rfq_service

def get_manufacturer_service(request: Request) -> ManufacturerService:
    return request.app.state.manufacturer_service


@app.post("/v1/rfqs", response_model=CreateRfqResponse)
async def create_rfq(
    request_payload: CreateRfqRequest,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    rfq_service: RfqService = Depends(get_rfq_service)
):
    """Opens a new RFQ with the buyer's first message."""
    logger.info(f"Received create RFQ request for manufacturer {request_payload.manufacturer_id}")
    return await rfq_service.create_rfq(request_payload, idempotency_key)


@app.get("/v1/rfqs/{rfq_id}", response_model=RfqMeta)
async def get_rfq(rfq_id: str, rfq_service: RfqService = Depends(get_rfq_service)):
    rfq = await rfq_service.get_rfq(rfq_id)
    if rfq is None:
        raise NotFound("RFQ not found")
    return rfq


@app.get("/v1/rfqs/{rfq_id}/events", response_model=ListEventsResponse)
async def list_events(
    rfq_id: str,
    since: Optional[str] = Query(None),
    limit: Optional[int] = Query(None, ge=1),
    rfq_service: RfqService = Depends(get_rfq_service)
):
    """
    Lists an RFQ's events oldest first. Pass the returned next_since back as
    `since` to fetch the following page. Limits above the page cap are clamped
    by the repository.
    """
    return await rfq_service.list_events(rfq_id, since, limit)


@app.post("/v1/rfqs/{rfq_id}/messages", response_model=PostMessageResponse, status_code=201)
async def post_message(
    rfq_id: str,
    request_payload: PostMessageRequest,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    rfq_service: RfqService = Depends(get_rfq_service)
):
    logger.info(f"Received message for RFQ {rfq_id} from {request_payload.by}")
    return await rfq_service.post_message(rfq_id, request_payload, idempotency_key)


@app.post("/v1/manufacturers", response_model=UpsertManufacturerResponse, status_code=201)
async def upsert_manufacturer(
    request_payload: UpsertManufacturerRequest,
    authorization_header: Optional[str] = Header(None, alias="Authorization"),
    manufacturer_service: ManufacturerService = Depends(get_manufacturer_service)
):
    # Presence check only; token verification belongs to the gateway in front of this service
    if not authorization_header:
        logger.warning("Missing Authorization header on manufacturer upsert")
        raise HTTPException(status_code=401, detail="Not authenticated")
    return await manufacturer_service.upsert_manufacturer(request_payload)


@app.get("/v1/manufacturers/{manufacturer_id}", response_model=ManufacturerProfile)
async def get_manufacturer(
    manufacturer_id: str,
    manufacturer_service: ManufacturerService = Depends(get_manufacturer_service)
):
    manufacturer = await manufacturer_service.get_manufacturer(manufacturer_id)
    if manufacturer is None:
        raise NotFound("Manufacturer not found")
    return manufacturer


@app.get("/v1/catalog/categories/{category}", response_model=CategorySlice)
async def get_category(
    category: str,
    state: Optional[str] = Query(None),
    manufacturer_service: ManufacturerService = Depends(get_manufacturer_service)
):
    category_slice = await manufacturer_service.get_category(category, state)
    if category_slice is None:
        raise NotFound("Category not found")
    return category_slice


@app.get("/healthz", include_in_schema=False)
async def healthz():
    return {"status": "ok"}
