"""
Pydantic models used across the backend.

`EventIn` is the insert payload the creation wizard composes; `Event` is
a stored row as the entity store returns it (with the store-assigned
`id` and `created_at`). Both are frozen: an event is replaced as a whole,
never patched field by field.

Guidelines:
- Keep models minimal and stable. Business rules (what the wizard will
  accept, when a fetch runs) live in the components, not here.
- Field names follow the `events` table columns. The start instant is
  exposed as `datetime` on the wire and `starts_at` in Python.
"""

from enum import Enum
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Sport(str, Enum):
    """Fixed set of activity categories an event can belong to."""

    BASKETBALL = "Basketball"
    FOOTBALL = "Football"
    BASEBALL = "Baseball"
    TENNIS = "Tennis"
    GOLF = "Golf"
    CYCLING = "Cycling"
    SOCCER = "Soccer"
    VOLLEYBALL = "Volleyball"


class Coordinates(BaseModel):
    """A point on the map: the user's position or a tapped location."""

    model_config = ConfigDict(frozen=True)

    latitude: float
    longitude: float


class EventIn(BaseModel):
    """Insert payload for a new event.

    Fields:
    - `name`: non-empty display name.
    - `sport`: one of `Sport`.
    - `description`: optional free text.
    - `starts_at` (wire name `datetime`): aware instant, stored as UTC.
      Not required to be in the future.
    - `max_players`: capacity including the creator, at least 1.
    - `latitude` / `longitude`: where the event happens.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str = Field(min_length=1)
    sport: Sport
    description: str = ""
    starts_at: datetime = Field(alias="datetime")
    max_players: int = Field(default=4, ge=1)
    latitude: float
    longitude: float

    @field_validator("starts_at")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            raise ValueError("Event datetime must include timezone info")
        return value.astimezone(timezone.utc)

    @property
    def coordinates(self) -> Coordinates:
        return Coordinates(latitude=self.latitude, longitude=self.longitude)


class Event(EventIn):
    """A stored event. `id` is opaque and always assigned by the store."""

    id: str = Field(min_length=1)
    created_at: datetime
