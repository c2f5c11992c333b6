"""
Inbound webhook normalization.

Turns a WhatsApp webhook envelope into one store mutation:
- statuses update the status of an existing row
- reactions set the status of the reacted-to row
- any other message is rendered to text and inserted (duplicates ignored)
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from app.models import DIRECTION_INCOMING
from app.schemas import WebhookEnvelope, WebhookMessage
from app.storage import insert_message, update_message_status

logger = logging.getLogger(__name__)

STATUS_RECEIVED = "received"
UNSUPPORTED_PLACEHOLDER = "[Unsupported message type]"


@dataclass
class WebhookOutcome:
    # created, duplicate, status_updated, reaction, ignored, error
    result: str
    event: Optional[str] = None
    wamid: Optional[str] = None
    dup: bool = False


def _with_caption(tag: str, caption: Optional[str]) -> str:
    return f"{tag} {caption}" if caption else tag


def render_content(message: WebhookMessage) -> str:
    """Human-readable rendering of an inbound message for the chat history."""
    kind = message.type

    if kind == "text":
        return message.text.body if message.text else ""
    if kind == "image":
        return _with_caption("[Image]", message.image.caption if message.image else None)
    if kind == "audio":
        return "[Audio]"
    if kind == "video":
        return _with_caption("[Video]", message.video.caption if message.video else None)
    if kind == "document":
        filename = message.document.filename if message.document else None
        return f"[Document] {filename or 'Untitled'}"
    if kind == "sticker":
        return "[Sticker]"
    return UNSUPPORTED_PLACEHOLDER


def render_reaction(emoji: Optional[str]) -> str:
    # WhatsApp sends an empty emoji when a reaction is withdrawn
    return f"Reacted with {emoji}" if emoji else "Reaction removed"


def process_webhook(db: Session, payload: Dict[str, Any]) -> WebhookOutcome:
    """
    Apply a webhook envelope to the store.

    Raises pydantic.ValidationError for malformed envelopes and
    SQLAlchemyError for store failures; the HTTP layer logs and acknowledges
    both.
    """
    envelope = WebhookEnvelope.model_validate(payload)
    value = envelope.event_value()

    if value is None:
        logger.info("Webhook carries no messages or statuses, ignoring")
        return WebhookOutcome(result="ignored")

    if value.statuses:
        for status in value.statuses:
            update_message_status(db, status.id, status.status)
        last = value.statuses[-1]
        return WebhookOutcome(result="status_updated", event="status", wamid=last.id)

    outcome = WebhookOutcome(result="ignored")
    failed = None
    for message in value.messages:
        outcome = _apply_message(db, message)
        if outcome.result == "error" and failed is None:
            failed = outcome
    # A failed entry is reported even when later entries were stored
    return failed or outcome


def _apply_message(db: Session, message: WebhookMessage) -> WebhookOutcome:
    if message.type == "reaction":
        reaction = message.reaction
        if reaction is None or not reaction.message_id:
            logger.info(f"Reaction {message.id} does not reference a message, ignoring")
            return WebhookOutcome(result="ignored", event="reaction", wamid=message.id)
        update_message_status(db, reaction.message_id, render_reaction(reaction.emoji))
        return WebhookOutcome(result="reaction", event="reaction", wamid=reaction.message_id)

    success, is_duplicate = insert_message(
        db=db,
        phone_number=message.from_msisdn,
        wamid=message.id,
        direction=DIRECTION_INCOMING,
        content=render_content(message),
        status=STATUS_RECEIVED,
    )
    if not success:
        return WebhookOutcome(result="error", event=message.type, wamid=message.id)

    return WebhookOutcome(
        result="duplicate" if is_duplicate else "created",
        event=message.type,
        wamid=message.id,
        dup=is_duplicate,
    )
