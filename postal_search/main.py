from __future__ import annotations

import logging
from functools import lru_cache
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query

from postal_search.config import get_settings
from postal_search.database import create_db_engine
from postal_search.models import LocationSearchOptions, LocationSearchResult, SearchResponse
from postal_search.services.search import LocationSearchService
from postal_search.services.store import PostalCodeStore

settings = get_settings()
logging.basicConfig(level=settings.log_level)

app = FastAPI(
    title=settings.app_name,
    version=settings.version,
    description="Postal code and place search over a GeoNames-style reference table.",
)


@lru_cache
def get_search_service() -> LocationSearchService:
    engine = create_db_engine(settings.database_url)
    return LocationSearchService(PostalCodeStore(engine), settings=settings)


@app.get("/", tags=["Root"])
async def root():
    return {"ok": True, "service": settings.app_name, "version": settings.version}


@app.get("/health", tags=["Healthcheck"])
async def health():
    return {"ok": True}


@app.get("/api/locations/search", response_model=SearchResponse, tags=["Api Locations"])
async def api_search(
    q: str = Query(..., description="Place name or postal code"),
    country: Optional[str] = Query(None, min_length=2, max_length=2),
    limit: Optional[int] = Query(None, ge=1, le=100),
    fuzzy: bool = Query(True),
    include_coordinates: bool = Query(True),
    service: LocationSearchService = Depends(get_search_service),
):
    options = LocationSearchOptions(
        country=country,
        max_results=limit,
        fuzzy_search=fuzzy,
        include_coordinates=include_coordinates,
    )
    return {"results": await service.search_locations(q, options)}


@app.get("/api/locations/search-multi", response_model=SearchResponse, tags=["Api Locations"])
async def api_search_multi(
    q: str = Query(...),
    countries: str = Query(..., description="Comma separated country codes, e.g. DE,AT,CH"),
    limit: Optional[int] = Query(None, ge=1, le=100),
    service: LocationSearchService = Depends(get_search_service),
):
    codes = [code.strip() for code in countries.split(",") if code.strip()]
    if not codes:
        raise HTTPException(status_code=400, detail="At least one country code is required")
    return {"results": await service.search_locations_multi(q, codes, limit)}


@app.get("/api/locations/postal-lookup", response_model=LocationSearchResult, tags=["Api Locations"])
async def api_postal_lookup(
    postal_code: str = Query(..., min_length=1),
    country: Optional[str] = Query(None, min_length=2, max_length=2),
    service: LocationSearchService = Depends(get_search_service),
):
    result = await service.get_by_postal_code(postal_code, country)
    if result is None:
        raise HTTPException(status_code=404, detail="Postal code not found")
    return result


@app.get("/api/locations/nearby", response_model=SearchResponse, tags=["Api Locations"])
async def api_nearby(
    lat: float = Query(..., ge=-90.0, le=90.0),
    lng: float = Query(..., ge=-180.0, le=180.0),
    radius: Optional[float] = Query(None, gt=0, le=500),
    country: Optional[str] = Query(None, min_length=2, max_length=2),
    limit: Optional[int] = Query(None, ge=1, le=100),
    service: LocationSearchService = Depends(get_search_service),
):
    return {"results": await service.get_nearby_locations(lat, lng, radius, country, limit)}


@app.post("/api/locations/cache/clear", tags=["Api Locations"])
async def api_clear_cache(service: LocationSearchService = Depends(get_search_service)):
    """Call after the reference table has been reimported."""
    service.clear_cache()
    return {"ok": True}
