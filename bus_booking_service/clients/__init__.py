"""HTTP clients for collaborator services."""

from .notification_client import NotificationClient
from .trip_client import TripServiceClient, normalize_trip
from .user_client import UserContact, UserServiceClient

__all__ = [
    "NotificationClient",
    "TripServiceClient",
    "UserContact",
    "UserServiceClient",
    "normalize_trip",
]
