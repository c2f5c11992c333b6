import logging
from contextlib import asynccontextmanager
from typing import Annotated, Generator, List, Optional

from fastapi import FastAPI, Response, Request, Depends, HTTPException, Query, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import settings
from app.storage import init_db, check_db_health, get_db, get_history, insert_message
from app.logging_utils import setup_logging, RequestLoggingMiddleware, log_webhook_data
from app.metrics import (
    record_webhook_outcome,
    record_outbound_request,
    get_metrics,
    get_metrics_content_type,
)
from app.models import DIRECTION_OUTGOING
from app.normalizer import process_webhook
from app.schemas import (
    ChatMessageResponse,
    CreateTemplateRequest,
    ErrorResponse,
    HealthResponse,
    SendMessageRequest,
    ValidationErrorResponse,
    WebhookAck,
)
from app.whatsapp import (
    PayloadValidationError,
    WhatsAppAPIError,
    WhatsAppCloudClient,
    build_send_payload,
    build_template_payload,
    extract_message_id,
    render_outgoing_content,
)


# Setup structured JSON logging
setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.
    - Startup: Initialize database and create tables
    """
    init_db()
    yield


app = FastAPI(
    title="WhatsApp Chat Relay",
    description="Relay between a chat frontend, the WhatsApp Cloud API and a message history store",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_whatsapp_client() -> Generator[WhatsAppCloudClient, None, None]:
    """
    Dependency providing a Cloud API client for the current request.
    Closes the client's HTTP session after use.
    """
    client = WhatsAppCloudClient(settings)
    try:
        yield client
    finally:
        client.close()


def _validation_error_response(exc: PayloadValidationError) -> JSONResponse:
    # The frontend reads the message from the "error" key
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": str(exc)})


def _upstream_error_response(operation: str, exc: WhatsAppAPIError) -> JSONResponse:
    record_outbound_request(operation, "upstream_error")
    logger.error(f"{operation} failed: {exc.payload}")
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=exc.payload)


# =============================================================================
# Health Check Routes
# =============================================================================

@app.get("/", response_class=PlainTextResponse)
async def root() -> str:
    return "WhatsApp API Tester Backend is running!"


@app.get("/health/live", response_model=HealthResponse)
async def health_live() -> HealthResponse:
    """
    Liveness probe - always returns 200 once the app is running.
    """
    return HealthResponse(status="ok")


@app.get("/health/ready", response_model=HealthResponse)
async def health_ready(response: Response) -> HealthResponse:
    """
    Readiness probe - returns 200 only if:
    1. Cloud API credentials are configured
    2. DB is reachable and schema is applied

    Otherwise returns 503 (Service Unavailable).
    """
    if not settings.WHATSAPP_ACCESS_TOKEN or not settings.PHONE_NUMBER_ID:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(
            status="not_ready",
            reason="WHATSAPP_ACCESS_TOKEN or PHONE_NUMBER_ID not configured"
        )

    if not check_db_health():
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(
            status="not_ready",
            reason="Database not reachable or schema not applied"
        )

    return HealthResponse(status="ready")


# =============================================================================
# Webhook Routes
# =============================================================================

@app.get("/api/forwarded-response", response_class=PlainTextResponse)
async def verify_webhook(
    mode: Annotated[Optional[str], Query(alias="hub.mode")] = None,
    token: Annotated[Optional[str], Query(alias="hub.verify_token")] = None,
    challenge: Annotated[Optional[str], Query(alias="hub.challenge")] = None,
) -> str:
    """Meta webhook subscription handshake: echo the challenge for our token."""
    if (
        mode == "subscribe"
        and settings.WHATSAPP_VERIFY_TOKEN
        and token == settings.WHATSAPP_VERIFY_TOKEN
        and challenge
    ):
        logger.info("Webhook subscription verified")
        return challenge

    logger.warning("Webhook verification failed")
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Webhook verification failed")


@app.post("/api/forwarded-response", response_model=WebhookAck)
async def forwarded_response(
    request: Request,
    db: Session = Depends(get_db),
) -> WebhookAck:
    """
    Receive a WhatsApp webhook envelope (new message, status or reaction).

    Always acknowledges with 200: the provider retries anything else, so
    processing errors are logged and recorded instead of returned.
    """
    try:
        payload = await request.json()
        outcome = process_webhook(db, payload)
    except Exception:
        logger.exception("Failed to process webhook payload")
        record_webhook_outcome("error")
        log_webhook_data(request=request, result="error")
        return WebhookAck()

    logger.info(f"Webhook processed: event={outcome.event}, wamid={outcome.wamid}, result={outcome.result}")
    record_webhook_outcome(outcome.result)
    log_webhook_data(
        request=request,
        wamid=outcome.wamid,
        event=outcome.event,
        dup=outcome.dup,
        result=outcome.result,
    )
    return WebhookAck()


# =============================================================================
# History Route
# =============================================================================

@app.get(
    "/api/history/{phone_number}",
    response_model=List[ChatMessageResponse],
    responses={500: {"model": ErrorResponse}},
)
def read_history(
    phone_number: str,
    db: Session = Depends(get_db),
) -> List[ChatMessageResponse]:
    """
    Full chat history with a phone number, oldest first.
    """
    try:
        messages = get_history(db, phone_number)
    except SQLAlchemyError as e:
        logger.error(f"Failed to load history for {phone_number}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to load chat history"
        )

    return [ChatMessageResponse.model_validate(msg) for msg in messages]


# =============================================================================
# Send Route
# =============================================================================

@app.post("/send-message", responses={400: {"model": ValidationErrorResponse}})
@app.post("/api/send-message", responses={400: {"model": ValidationErrorResponse}})
def send_message(
    body: SendMessageRequest,
    db: Session = Depends(get_db),
    whatsapp: WhatsAppCloudClient = Depends(get_whatsapp_client),
):
    """
    Send a text or template message and record it in the history.

    Body:
        - to, type ("text" | "template")
        - messageBody (text)
        - templateName, languageCode, headerImageUrl (template)

    Returns the Cloud API response unchanged.
    """
    try:
        payload = build_send_payload(body)
    except PayloadValidationError as e:
        record_outbound_request("send_message", "validation_error")
        return _validation_error_response(e)

    try:
        result = whatsapp.send_message(payload)
    except WhatsAppAPIError as e:
        return _upstream_error_response("send_message", e)

    record_outbound_request("send_message", "ok")

    wamid = extract_message_id(result.response_json)
    if wamid is None:
        logger.warning(f"Send response carried no message id: {result.response_json}")
        return result.response_json

    success, _ = insert_message(
        db=db,
        phone_number=body.to,
        wamid=wamid,
        direction=DIRECTION_OUTGOING,
        content=render_outgoing_content(body),
        status="sent",
    )
    if not success:
        logger.error(f"Message {wamid} was sent but could not be stored")

    return result.response_json


# =============================================================================
# Template Routes
# =============================================================================

@app.get("/chat/api_get_templates/")
def list_templates(
    whatsapp: WhatsAppCloudClient = Depends(get_whatsapp_client),
):
    """List message templates of the business account (Cloud API passthrough)."""
    try:
        result = whatsapp.list_templates()
    except WhatsAppAPIError as e:
        return _upstream_error_response("list_templates", e)

    record_outbound_request("list_templates", "ok")
    return result.response_json


@app.post("/chat/api_create_template/", responses={400: {"model": ValidationErrorResponse}})
def create_template(
    body: CreateTemplateRequest,
    whatsapp: WhatsAppCloudClient = Depends(get_whatsapp_client),
):
    """
    Create a message template with a single BODY component.

    Body: name, category, bodyText, language (default en_US)
    """
    try:
        payload = build_template_payload(body)
    except PayloadValidationError as e:
        record_outbound_request("create_template", "validation_error")
        return _validation_error_response(e)

    try:
        result = whatsapp.create_template(payload)
    except WhatsAppAPIError as e:
        return _upstream_error_response("create_template", e)

    record_outbound_request("create_template", "ok")
    return result.response_json


# =============================================================================
# Metrics Route
# =============================================================================

@app.get("/metrics")
async def metrics() -> Response:
    """
    Expose Prometheus-style metrics.
    """
    return Response(
        content=get_metrics(),
        media_type=get_metrics_content_type()
    )
