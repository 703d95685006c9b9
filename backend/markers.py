"""
Marker view models for the map surface.

The map draws whatever `build_markers` returns; it never reads the
replica directly. Sorting here is for stable display only.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from models import Event, Sport

SPORT_ICONS = {
    Sport.BASKETBALL: "basketball",
    Sport.FOOTBALL: "football",
    Sport.BASEBALL: "baseball",
    Sport.TENNIS: "tennisball",
    Sport.GOLF: "golf",
    Sport.CYCLING: "bicycle",
    Sport.SOCCER: "football-outline",
    Sport.VOLLEYBALL: "hand-left-outline",
}


@dataclass(frozen=True)
class Marker:
    id: str
    latitude: float
    longitude: float
    title: str
    sport: Sport
    icon: str
    description: str
    starts_at: datetime
    max_players: int
    tracks_view_changes: bool


def build_markers(
    events: Iterable[Event], tracking_enabled: bool, sport: Optional[Sport] = None
) -> List[Marker]:
    """One marker per event, optionally only those of `sport`."""
    chosen = [e for e in events if sport is None or e.sport == sport]
    chosen.sort(key=lambda e: (e.starts_at, e.id))
    return [
        Marker(
            id=e.id,
            latitude=e.latitude,
            longitude=e.longitude,
            title=e.name,
            sport=e.sport,
            icon=SPORT_ICONS[e.sport],
            description=e.description,
            starts_at=e.starts_at,
            max_players=e.max_players,
            tracks_view_changes=tracking_enabled,
        )
        for e in chosen
    ]
