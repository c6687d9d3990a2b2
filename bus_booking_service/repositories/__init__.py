"""Repositories over the relational store."""

from .booking_repository import BookingRepository
from .passenger_repository import PassengerRepository

__all__ = ["BookingRepository", "PassengerRepository"]
