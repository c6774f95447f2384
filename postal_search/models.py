from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class MatchTier(str, Enum):
    """How a place-name candidate matched the query, best first."""

    EXACT = "exact"
    PREFIX = "prefix"
    CONTAINS = "contains"
    ADMIN = "admin"


class PlaceRecord(BaseModel):
    """One row of the postal_codes reference table."""

    model_config = ConfigDict(frozen=True)

    id: int
    country_code: str
    postal_code: str
    place_name: str
    admin_name1: Optional[str] = None  # state / region
    admin_code1: Optional[str] = None
    admin_name2: Optional[str] = None  # district / county
    admin_code2: Optional[str] = None
    admin_name3: Optional[str] = None  # municipality
    admin_code3: Optional[str] = None
    latitude: float
    longitude: float
    accuracy: Optional[int] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Coordinates(_CamelModel):
    model_config = ConfigDict(frozen=True)

    lat: float
    lng: float


class LocationSearchResult(_CamelModel):
    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    display_name: str
    postal_code: str
    country: str
    region: Optional[str] = None
    district: Optional[str] = None
    municipality: Optional[str] = None
    coordinates: Optional[Coordinates] = None
    relevance_score: float = Field(..., ge=0.0, le=1.0)
    distance_km: Optional[float] = None


class LocationSearchOptions(_CamelModel):
    country: Optional[str] = None
    max_results: Optional[int] = Field(None, ge=1)
    include_coordinates: bool = True
    fuzzy_search: bool = True


class SearchResponse(BaseModel):
    results: list[LocationSearchResult]
