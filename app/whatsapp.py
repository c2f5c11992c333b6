"""
WhatsApp Cloud API client.

Supports:
- Sending text and template messages
- Listing and creating message templates

Request bodies for outbound messages are built by `build_send_payload`, which
also performs the field validation the send endpoint relies on.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests

from app.config import Settings
from app.schemas import CreateTemplateRequest, SendMessageRequest

logger = logging.getLogger(__name__)


class PayloadValidationError(ValueError):
    """A send or create-template request is missing a required field."""


class WhatsAppAPIError(RuntimeError):
    """The Cloud API rejected a request or could not be reached."""

    def __init__(self, payload: Any, status_code: Optional[int] = None) -> None:
        super().__init__(str(payload))
        self.payload = payload
        self.status_code = status_code


@dataclass(frozen=True)
class WhatsAppResult:
    ok: bool
    status_code: int
    response_json: Dict[str, Any]


# ---------------------------------------------------------
# REQUEST BODIES
# ---------------------------------------------------------
def build_send_payload(req: SendMessageRequest) -> Dict[str, Any]:
    if not req.to or not req.type:
        raise PayloadValidationError(
            "Recipient phone number (to) and message type are required."
        )

    payload: Dict[str, Any] = {
        "messaging_product": "whatsapp",
        "to": req.to,
        "type": req.type,
    }

    if req.type == "template":
        if not req.template_name:
            raise PayloadValidationError('templateName is required for type "template".')

        payload["template"] = {
            "name": req.template_name,
            "language": {"code": req.language_code},
        }
        if req.header_image_url:
            payload["template"]["components"] = [
                {
                    "type": "header",
                    "parameters": [
                        {"type": "image", "image": {"link": req.header_image_url}}
                    ],
                }
            ]
    elif req.type == "text":
        if not req.message_body:
            raise PayloadValidationError('messageBody is required for type "text".')
        payload["text"] = {"preview_url": False, "body": req.message_body}
    else:
        raise PayloadValidationError('Invalid message type. Must be "template" or "text".')

    return payload


def render_outgoing_content(req: SendMessageRequest) -> str:
    """Human-readable rendering stored in the history for a sent message."""
    if req.type == "template":
        return f"Template: {req.template_name}"
    return req.message_body or ""


def build_template_payload(req: CreateTemplateRequest) -> Dict[str, Any]:
    if not req.name or not req.category or not req.body_text:
        raise PayloadValidationError("Template name, category, and bodyText are required.")

    return {
        "name": req.name,
        "language": req.language,
        "category": req.category,
        "components": [{"type": "BODY", "text": req.body_text}],
    }


def extract_message_id(response_json: Dict[str, Any]) -> Optional[str]:
    """Return the wamid from a send response: {"messages": [{"id": ...}]}."""
    if not isinstance(response_json, dict):
        return None
    messages = response_json.get("messages") or []
    if messages and isinstance(messages[0], dict):
        return messages[0].get("id")
    return None


# ---------------------------------------------------------
# CLIENT
# ---------------------------------------------------------
class WhatsAppCloudClient:
    def __init__(
        self,
        settings: Settings,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._settings = settings
        self._session = session or requests.Session()

    def close(self) -> None:
        self._session.close()

    def _headers(self, json_body: bool = False) -> Dict[str, str]:
        headers = {"Authorization": f"Bearer {self._settings.WHATSAPP_ACCESS_TOKEN}"}
        if json_body:
            headers["Content-Type"] = "application/json"
        return headers

    def _request(self, method: str, url: str, payload: Optional[Dict[str, Any]] = None) -> WhatsAppResult:
        try:
            if method == "GET":
                resp = self._session.get(
                    url,
                    headers=self._headers(),
                    timeout=self._settings.WHATSAPP_TIMEOUT_SECONDS,
                )
            else:
                resp = self._session.post(
                    url,
                    json=payload,
                    headers=self._headers(json_body=True),
                    timeout=self._settings.WHATSAPP_TIMEOUT_SECONDS,
                )
        except requests.RequestException as e:
            logger.error(f"Cloud API {method} {url} failed: {e}")
            raise WhatsAppAPIError({"message": str(e)}) from e

        try:
            data = resp.json()
        except ValueError:
            data = {"raw_text": resp.text}

        result = WhatsAppResult(
            ok=200 <= resp.status_code < 300,
            status_code=resp.status_code,
            response_json=data,
        )
        if not result.ok:
            logger.error(f"Cloud API {method} {url} returned {resp.status_code}: {data}")
            raise WhatsAppAPIError(data, status_code=resp.status_code)
        return result

    def send_message(self, payload: Dict[str, Any]) -> WhatsAppResult:
        logger.info(f"Sending {payload.get('type')} message to {payload.get('to')}")
        return self._request("POST", self._settings.messages_url, payload)

    def list_templates(self) -> WhatsAppResult:
        return self._request("GET", self._settings.templates_url)

    def create_template(self, payload: Dict[str, Any]) -> WhatsAppResult:
        logger.info(f"Creating template {payload.get('name')}")
        return self._request("POST", self._settings.templates_url, payload)
