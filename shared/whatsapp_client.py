"""
WhatsApp Cloud API client for sending messages.

This module provides the WhatsAppClient class for sending text, reply-button
and list messages through the Meta Graph API.
"""

import logging
from typing import Any

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from agent.fsm.effects import ListSection, ReplyButton
from shared.config import get_settings

logger = logging.getLogger(__name__)

GRAPH_API_BASE_URL = "https://graph.facebook.com"


class WhatsAppClient:
    """
    Client for the WhatsApp Cloud API messages endpoint.

    Sends are skipped (with a warning) when the token or phone id is not
    configured, so local development works without Meta credentials.
    """

    def __init__(
        self,
        token: str | None = None,
        phone_id: str | None = None,
        api_version: str | None = None,
    ):
        """Initialize WhatsApp client with credentials from settings unless given."""
        settings = get_settings()
        self.token = token if token is not None else settings.WHATSAPP_TOKEN
        self.phone_id = phone_id if phone_id is not None else settings.WHATSAPP_PHONE_ID
        self.api_version = api_version or settings.WHATSAPP_API_VERSION

        self.headers = {
            "Authorization": f"Bearer {self.token}",
            "Content-Type": "application/json",
        }

        logger.info(f"WhatsAppClient initialized: phone_id={self.phone_id}, api={self.api_version}")

    @property
    def messages_url(self) -> str:
        return f"{GRAPH_API_BASE_URL}/{self.api_version}/{self.phone_id}/messages"

    @property
    def configured(self) -> bool:
        return bool(self.token and self.phone_id)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(httpx.HTTPError),
        reraise=True,
    )
    async def _post_message(self, payload: dict[str, Any]) -> dict[str, Any]:
        """
        POST a message payload to the Graph API.

        Args:
            payload: Message body without the messaging_product field

        Returns:
            Graph API response JSON
        """
        async with httpx.AsyncClient() as client:
            try:
                response = await client.post(
                    self.messages_url,
                    json={"messaging_product": "whatsapp", **payload},
                    headers=self.headers,
                    timeout=10.0,
                )
                response.raise_for_status()
                return response.json()

            except httpx.HTTPError as e:
                logger.error(f"HTTP error sending WhatsApp message: {e}")
                raise

    async def _send(self, payload: dict[str, Any]) -> bool:
        if not self.configured:
            logger.warning("WhatsApp credentials not configured; message not sent")
            return False

        await self._post_message(payload)
        logger.info(
            f"WhatsApp message sent | type={payload['type']}",
            extra={"caller_phone": payload["to"]},
        )
        return True

    async def send_text(self, to: str, body: str) -> bool:
        """
        Send a plain text message.

        Returns:
            True if the message was accepted by the API, False if skipped

        Raises:
            httpx.HTTPError: after retries are exhausted
        """
        return await self._send({"to": to, "type": "text", "text": {"body": body}})

    async def send_buttons(self, to: str, body: str, buttons: list[ReplyButton]) -> bool:
        return await self._send(
            {
                "to": to,
                "type": "interactive",
                "interactive": {
                    "type": "button",
                    "body": {"text": body},
                    "action": {
                        "buttons": [
                            {"type": "reply", "reply": {"id": b.id, "title": b.title}}
                            for b in buttons
                        ]
                    },
                },
            }
        )

    async def send_list(
        self,
        to: str,
        title: str,
        body: str,
        button_label: str,
        sections: list[ListSection],
    ) -> bool:
        return await self._send(
            {
                "to": to,
                "type": "interactive",
                "interactive": {
                    "type": "list",
                    "header": {"type": "text", "text": title},
                    "body": {"text": body},
                    "action": {
                        "button": button_label,
                        "sections": [_section_payload(section) for section in sections],
                    },
                },
            }
        )


def _section_payload(section: ListSection) -> dict[str, Any]:
    rows = []
    for row in section.rows:
        item = {"id": row.id, "title": row.title}
        if row.description:
            item["description"] = row.description
        rows.append(item)
    return {"title": section.title, "rows": rows}
