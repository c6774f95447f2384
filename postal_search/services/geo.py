from __future__ import annotations

import math
from typing import Iterable, List, Tuple

from postal_search.models import PlaceRecord

EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in kilometers between two WGS84 coords."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)

    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def nearby(
    records: Iterable[PlaceRecord],
    lat: float,
    lng: float,
    radius_km: float,
    limit: int,
) -> List[Tuple[PlaceRecord, float]]:
    """Records within radius_km of (lat, lng), closest first.

    Linear scan over the whole partition; fine for one country, not for a global table.
    """
    within: List[Tuple[PlaceRecord, float]] = []
    for record in records:
        dist = haversine_km(lat, lng, record.latitude, record.longitude)
        if dist <= radius_km:
            within.append((record, dist))

    within.sort(key=lambda item: item[1])
    return within[: max(0, limit)]
