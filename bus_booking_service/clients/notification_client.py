"""
Notification service client for templated email and SMS.
"""

import logging
from typing import Any, Dict, Optional

from ..config import get_settings
from .base import ServiceClient

logger = logging.getLogger(__name__)


class NotificationClient(ServiceClient):
    """REST client for the notification service."""

    service_name = "notification"

    def __init__(self, base_url: Optional[str] = None, **kwargs):
        super().__init__(base_url or get_settings().notification_service_url, **kwargs)

    async def send_email(self, to: str, template: str, data: Dict[str, Any]) -> None:
        await self._post("/send-email", {"to": to, "template": template, "data": data}, template)

    async def send_sms(self, to: str, template: str, data: Dict[str, Any]) -> None:
        await self._post("/send-sms", {"to": to, "template": template, "data": data}, template)

    async def _post(self, path: str, payload: Dict[str, Any], template: str) -> None:
        response = await self._request("POST", path, json=payload)
        if response.status_code >= 400:
            raise self._unexpected(response, f"{template} notification")
        logger.info(f"Notification {template} dispatched via {path}")
