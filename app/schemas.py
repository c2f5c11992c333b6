"""
Pydantic schemas for request/response validation.

This module contains:
- Webhook envelope models for inbound WhatsApp notifications
- Request models for the send and template endpoints
- Response models for API responses
"""

from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# =============================================================================
# Webhook Envelope Models
# =============================================================================
# Every field is optional: the envelope is parsed leniently and shapes we do
# not recognise are acknowledged and dropped.

class _Lenient(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class TextPayload(_Lenient):
    body: str = ""


class MediaPayload(_Lenient):
    """Shared shape of image, audio, video, document and sticker objects."""
    id: Optional[str] = None
    mime_type: Optional[str] = None
    caption: Optional[str] = None
    filename: Optional[str] = None


class ReactionPayload(_Lenient):
    message_id: Optional[str] = None
    emoji: Optional[str] = None


class WebhookMessage(_Lenient):
    id: str
    from_msisdn: str = Field(..., alias="from")
    type: str = "unknown"
    timestamp: Optional[str] = None
    text: Optional[TextPayload] = None
    image: Optional[MediaPayload] = None
    audio: Optional[MediaPayload] = None
    video: Optional[MediaPayload] = None
    document: Optional[MediaPayload] = None
    sticker: Optional[MediaPayload] = None
    reaction: Optional[ReactionPayload] = None


class WebhookStatus(_Lenient):
    id: str
    status: str
    timestamp: Optional[str] = None
    recipient_id: Optional[str] = None


class ChangeValue(_Lenient):
    messages: List[WebhookMessage] = Field(default_factory=list)
    statuses: List[WebhookStatus] = Field(default_factory=list)

    @property
    def has_events(self) -> bool:
        return bool(self.messages or self.statuses)


class Change(_Lenient):
    field: Optional[str] = None
    value: Optional[ChangeValue] = None


class Entry(_Lenient):
    id: Optional[str] = None
    changes: List[Change] = Field(default_factory=list)


class WebhookEnvelope(ChangeValue):
    """
    Webhook payload as delivered by Meta, or as forwarded by a router.

    The full envelope nests events under entry[].changes[].value; a forwarded
    payload may carry `messages` / `statuses` at the top level instead.
    """
    object: Optional[str] = None
    entry: List[Entry] = Field(default_factory=list)

    def event_value(self) -> Optional[ChangeValue]:
        """Return the first value that carries messages or statuses."""
        if self.has_events:
            return self
        for entry in self.entry:
            for change in entry.changes:
                if change.value is not None and change.value.has_events:
                    return change.value
        return None


# =============================================================================
# Frontend Request Models
# =============================================================================
# Required fields are checked by the handlers so that missing values produce
# the descriptive 400 messages the frontend displays.

def _scalar_to_str(v: Any) -> Any:
    """Accept numbers (e.g. a phone number sent as a JSON number) as strings."""
    if isinstance(v, (int, float)) and not isinstance(v, bool):
        return str(v)
    return v


class SendMessageRequest(_Lenient):
    to: Optional[str] = None
    type: Optional[str] = None
    message_body: Optional[str] = Field(None, alias="messageBody")
    template_name: Optional[str] = Field(None, alias="templateName")
    language_code: str = Field("en", alias="languageCode")
    header_image_url: Optional[str] = Field(None, alias="headerImageUrl")

    model_config = ConfigDict(
        extra="ignore",
        populate_by_name=True,
        json_schema_extra={
            "examples": [
                {"to": "15551234567", "type": "text", "messageBody": "hi"},
                {
                    "to": "15551234567",
                    "type": "template",
                    "templateName": "hello_world",
                    "languageCode": "en_US",
                },
            ]
        },
    )

    @field_validator(
        "to", "type", "message_body", "template_name", "language_code", "header_image_url",
        mode="before",
    )
    @classmethod
    def coerce_scalars(cls, v: Any) -> Any:
        return _scalar_to_str(v)


class CreateTemplateRequest(_Lenient):
    name: Optional[str] = None
    category: Optional[str] = None
    body_text: Optional[str] = Field(None, alias="bodyText")
    language: str = "en_US"

    @field_validator("name", "category", "body_text", "language", mode="before")
    @classmethod
    def coerce_scalars(cls, v: Any) -> Any:
        return _scalar_to_str(v)


# =============================================================================
# Response Models
# =============================================================================

class WebhookAck(BaseModel):
    """Acknowledgement returned for every webhook delivery."""
    status: str = Field(default="success")
    message: str = Field(default="Data received")


class ErrorResponse(BaseModel):
    """Response model for error responses."""
    detail: str = Field(..., description="Error description")


class ValidationErrorResponse(BaseModel):
    """Request rejected before calling the Cloud API."""
    error: str = Field(..., description="Which required field is missing")


class ChatMessageResponse(BaseModel):
    """A stored chat message as returned by the history endpoint."""
    id: int
    phone_number: str
    wamid: str
    direction: str
    content: str
    status: str
    timestamp: datetime

    model_config = ConfigDict(from_attributes=True)


class HealthResponse(BaseModel):
    """Response model for health check endpoints."""
    status: str = Field(..., description="Health status")
    reason: Optional[str] = Field(None, description="Reason if not ready")
