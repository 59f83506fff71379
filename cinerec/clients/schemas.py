"""Typed response models for the upstream identity, purchase and catalog services."""

from datetime import datetime
from enum import Enum
from typing import Generic, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class Envelope(BaseModel, Generic[T]):
    """The ``{"data": ...}`` wrapper every upstream list/detail endpoint returns."""

    data: T


class UserRole(str, Enum):
    CUSTOMER = "customer"
    EMPLOYEE = "employee"
    ADMIN = "admin"


class User(BaseModel):
    id: str
    email: str
    first_name: str = ""
    last_name: str = ""
    role: UserRole = UserRole.CUSTOMER
    active: bool = True
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ReservationType(str, Enum):
    ONLINE = "ONLINE"
    POS = "POS"


class Reservation(BaseModel):
    id: str
    timeslot_id: str
    user_id: str
    type: ReservationType = ReservationType.ONLINE
    row: int = 0
    col: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None


class Movie(BaseModel):
    id: str
    title: str
    description: str = ""
    image_url: str = ""
    rating: float = 0.0
    length_minutes: int = 0
    active: bool = True
    created_at: datetime | None = None
    updated_at: datetime | None = None


class TimeSlot(BaseModel):
    """A scheduled showing of a movie in a room."""

    id: str
    start_time: datetime
    end_time: datetime
    room_id: str
    movie_id: str
    movie: Movie
    created_at: datetime | None = None
    updated_at: datetime | None = None
