"""
FastAPI Application Module

HTTP surface of the marketplace messaging and statistics layer. The routing
and auth layers in front of it pass the authenticated caller as
``X-Participant-Id`` / ``X-Participant-Role`` headers.

Key Features:
- Conversation lists and message threads with resolved participants
- Marketplace counters that degrade per counter instead of failing whole
- Typed errors mapped to distinct status codes
- Structured logging, Prometheus metrics and OpenTelemetry tracing

One data access instance is built per process and closed at shutdown.
"""

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import List, Optional

from fastapi import Depends, FastAPI, Header, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from prometheus_client import CollectorRegistry, Counter, generate_latest
from pydantic import BaseModel, ConfigDict, Field
from structlog import get_logger

from ..config import Settings, get_settings
from ..domain.errors import MarketplaceError, StorePermissionError
from ..domain.models import (
    Conversation,
    ConversationStatus,
    ConversationSummary,
    MarketplaceStats,
    MessageWithSender,
    SenderRole,
)
from ..logging_config import configure_logging
from ..repositories.base import DataAccess
from ..repositories.memory import InMemoryDataAccess
from ..repositories.resilient import ResilientDataAccess
from ..services.conversations import ConversationStore
from ..services.identity import IdentityResolver
from ..services.messages import MessageStore
from ..services.products import update_product_image
from ..services.stats import ActiveSellerPolicy, StatsAggregator

# Registry for isolated metric collection
CUSTOM_REGISTRY = CollectorRegistry()

REQUESTS = Counter("requests_total", "Total requests by route", ["path"], registry=CUSTOM_REGISTRY)
ERRORS = Counter("errors_total", "Classified errors by kind", ["kind"], registry=CUSTOM_REGISTRY)
STATS_DEGRADED = Counter(
    "stats_degraded_total", "Stats counters reported as degraded", ["counter", "kind"],
    registry=CUSTOM_REGISTRY,
)

logger = get_logger()

_STATUS_CODES = {
    "not_found": 404,
    "access_denied": 403,
    "validation": 400,
    "transient": 503,
    "permission": 500,
}


@dataclass(frozen=True)
class Participant:
    """Authenticated caller as passed by the auth layer."""

    id: str
    role: SenderRole


class StatusUpdate(BaseModel):
    status: ConversationStatus


class ProductImageUpdate(BaseModel):
    """Body of the product image update request"""

    model_config = ConfigDict(populate_by_name=True)

    product_id: Optional[str] = Field(default=None, alias="productId")
    image_url: Optional[str] = Field(default=None, alias="imageUrl")


def build_data_access(settings: Settings, store: Optional[DataAccess] = None) -> DataAccess:
    """Put the backing-store adapter behind timeouts, retries and error classification.

    Without an adapter the process runs on empty in-process tables.
    """
    if isinstance(store, ResilientDataAccess):
        return store
    return ResilientDataAccess(
        store or InMemoryDataAccess(),
        timeout=settings.data_access_timeout,
        attempts=settings.data_access_retries,
        max_wait=settings.data_access_retry_max_wait,
    )


def get_data_access(request: Request) -> DataAccess:
    """Returns the process-wide data access instance"""
    return request.app.state.data_access


def get_participant(
    x_participant_id: str = Header(...),
    x_participant_role: SenderRole = Header(...),
) -> Participant:
    return Participant(id=x_participant_id, role=x_participant_role)


def get_identity_resolver(data_access: DataAccess = Depends(get_data_access)) -> IdentityResolver:
    return IdentityResolver(data_access)


def get_conversation_store(
    data_access: DataAccess = Depends(get_data_access),
    identities: IdentityResolver = Depends(get_identity_resolver),
) -> ConversationStore:
    return ConversationStore(data_access, identities)


def get_message_store(
    data_access: DataAccess = Depends(get_data_access),
    conversations: ConversationStore = Depends(get_conversation_store),
    identities: IdentityResolver = Depends(get_identity_resolver),
) -> MessageStore:
    return MessageStore(data_access, conversations, identities)


def get_stats_aggregator(
    request: Request, data_access: DataAccess = Depends(get_data_access)
) -> StatsAggregator:
    return StatsAggregator(data_access, request.app.state.active_seller_policy)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Logs startup and releases the data access on shutdown"""
    logger.info("application_startup_complete")

    yield

    await app.state.data_access.close()
    logger.info("application_shutdown_complete")


async def marketplace_error_handler(request: Request, exc: MarketplaceError) -> JSONResponse:
    """Maps classified errors to status codes"""
    ERRORS.labels(kind=exc.kind).inc()
    if isinstance(exc, StorePermissionError):
        logger.error("backing_store_permission_denied", path=request.url.path, error=exc.message)
    else:
        logger.warning("request_failed", path=request.url.path, kind=exc.kind, error=exc.message)
    return JSONResponse(
        status_code=_STATUS_CODES.get(exc.kind, 500),
        content={"detail": exc.message, "kind": exc.kind},
    )


def create_app(
    data_access: Optional[DataAccess] = None, settings: Optional[Settings] = None
) -> FastAPI:
    """Build the application around one data access instance."""
    settings = settings or get_settings()
    configure_logging(settings.log_level, settings.log_json)

    app = FastAPI(
        title="Artisan Market API",
        description="Messaging and marketplace statistics for the artisan marketplace",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.data_access = build_data_access(settings, data_access)
    app.state.active_seller_policy = ActiveSellerPolicy(settings.active_seller_policy)

    # Enable cross-origin requests
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(MarketplaceError, marketplace_error_handler)

    # Set up request tracing
    FastAPIInstrumentor.instrument_app(app)

    @app.middleware("http")
    async def logging_middleware(request: Request, call_next):
        """Counts and logs requests"""
        logger.info("request_started", path=request.url.path)
        response = await call_next(request)
        # Labelled by route template, never by the raw path
        route = request.scope.get("route")
        REQUESTS.labels(path=getattr(route, "path", "unmatched")).inc()
        return response

    @app.get("/conversations", response_model=List[ConversationSummary])
    async def list_conversations(
        participant: Participant = Depends(get_participant),
        conversations: ConversationStore = Depends(get_conversation_store),
    ) -> List[ConversationSummary]:
        """Lists the caller's conversations, most recently active first"""
        return await conversations.list_conversations(participant.id, participant.role)

    @app.get("/conversations/{conversation_id}", response_model=Conversation)
    async def get_conversation(
        conversation_id: str,
        participant: Participant = Depends(get_participant),
        conversations: ConversationStore = Depends(get_conversation_store),
    ) -> Conversation:
        """Retrieves one conversation the caller is part of"""
        return await conversations.get_for_participant(
            conversation_id, participant.id, participant.role
        )

    @app.get(
        "/conversations/{conversation_id}/messages",
        response_model=List[MessageWithSender],
    )
    async def list_messages(
        conversation_id: str,
        participant: Participant = Depends(get_participant),
        messages: MessageStore = Depends(get_message_store),
    ) -> List[MessageWithSender]:
        """Gets the ordered message thread with sender identities"""
        return await messages.list_messages(conversation_id, participant.id, participant.role)

    @app.post("/conversations/{conversation_id}/read")
    async def mark_as_read(
        conversation_id: str,
        participant: Participant = Depends(get_participant),
        messages: MessageStore = Depends(get_message_store),
    ) -> dict:
        """Marks the other party's messages as read"""
        changed = await messages.mark_as_read(conversation_id, participant.id, participant.role)
        return {"success": True, "updated": changed}

    @app.patch("/conversations/{conversation_id}/status", response_model=Conversation)
    async def update_status(
        conversation_id: str,
        body: StatusUpdate,
        participant: Participant = Depends(get_participant),
        conversations: ConversationStore = Depends(get_conversation_store),
    ) -> Conversation:
        """Archives, closes or reopens a conversation"""
        return await conversations.update_status(
            conversation_id, participant.id, participant.role, body.status
        )

    @app.get("/stats", response_model=MarketplaceStats)
    async def marketplace_stats(
        aggregator: StatsAggregator = Depends(get_stats_aggregator),
    ) -> MarketplaceStats:
        """Computes marketplace counters; failed counters come back flagged"""
        stats = await aggregator.compute_marketplace_stats()
        for name, failure in stats.degraded.items():
            STATS_DEGRADED.labels(counter=name, kind=failure.kind).inc()
        return stats

    @app.post("/products/update-image")
    async def update_image(
        body: ProductImageUpdate,
        data_access: DataAccess = Depends(get_data_access),
    ) -> dict:
        """Points a product at a newly uploaded image"""
        await update_product_image(data_access, body.product_id, body.image_url)
        return {"success": True}

    @app.get("/metrics")
    async def metrics():
        """Provides Prometheus metrics for system monitoring"""
        return Response(generate_latest(CUSTOM_REGISTRY), media_type="text/plain")

    return app


app = create_app()
