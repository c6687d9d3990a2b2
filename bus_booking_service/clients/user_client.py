"""
User service client: registered email and notification preferences.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from ..config import get_settings
from .base import ServiceClient

logger = logging.getLogger(__name__)


@dataclass
class UserContact:
    user_id: str
    email: Optional[str] = None
    phone: Optional[str] = None
    sms_enabled: bool = False


class UserServiceClient(ServiceClient):
    """REST client for the user service."""

    service_name = "user"

    def __init__(self, base_url: Optional[str] = None, **kwargs):
        super().__init__(base_url or get_settings().user_service_url, **kwargs)

    async def get_user(self, user_id: str) -> Optional[UserContact]:
        response = await self._request("GET", f"/internal/{user_id}")
        if response.status_code == 404:
            return None
        if response.status_code >= 400:
            raise self._unexpected(response, f"user lookup {user_id}")

        body = response.json()
        data = body.get("data", body) if isinstance(body, dict) else {}
        preferences = data.get("preferences") or {}
        notifications = preferences.get("notifications") or {}

        return UserContact(
            user_id=str(user_id),
            email=data.get("email"),
            phone=data.get("phone"),
            sms_enabled=bool(
                notifications.get("sms", preferences.get("sms_enabled", preferences.get("smsEnabled", False)))
            ),
        )
