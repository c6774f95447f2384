"""
Location search over the postal_codes reference table.

LocationSearchService combines postal-code, place-name, optional full-text and
geo-radius matching into ranked results. It never raises past its public
methods: store failures are logged and degrade to fewer (or no) results, so a
search-as-you-type UI sees "no match" rather than an error.
"""
from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Sequence

from fastapi.concurrency import run_in_threadpool

from postal_search.config import RelevanceWeights, Settings, get_settings
from postal_search.models import (
    Coordinates,
    LocationSearchOptions,
    LocationSearchResult,
    MatchTier,
    PlaceRecord,
)
from postal_search.services import geo
from postal_search.services.cache import TTLCache, make_cache_key
from postal_search.services.normalizer import NormalizedQuery, normalize_query
from postal_search.services.store import PostalCodeStore

logger = logging.getLogger(__name__)


def to_result(
    record: PlaceRecord, relevance: float, distance_km: Optional[float] = None
) -> LocationSearchResult:
    display_parts = [record.place_name]
    if record.admin_name2 and record.admin_name2 != record.place_name:
        display_parts.append(record.admin_name2)
    if record.admin_name1:
        display_parts.append(record.admin_name1)

    return LocationSearchResult(
        id=record.id,
        name=record.place_name,
        display_name=", ".join(display_parts),
        postal_code=record.postal_code,
        country=record.country_code,
        region=record.admin_name1,
        district=record.admin_name2,
        municipality=record.admin_name3,
        coordinates=Coordinates(lat=record.latitude, lng=record.longitude),
        relevance_score=relevance,
        distance_km=distance_km,
    )


def _tier_score(tier: MatchTier, weights: RelevanceWeights) -> float:
    return {
        MatchTier.EXACT: weights.exact,
        MatchTier.PREFIX: weights.prefix,
        MatchTier.CONTAINS: weights.contains,
        MatchTier.ADMIN: weights.admin,
    }[tier]


def rank(results: Iterable[LocationSearchResult], limit: int) -> List[LocationSearchResult]:
    """Sort by relevance (stable, so matcher order breaks ties) and truncate."""
    ordered = sorted(results, key=lambda r: r.relevance_score, reverse=True)
    return ordered[:limit]


class _Collector:
    """Accumulates candidates for one search, dropping ids already seen."""

    def __init__(self, capacity: int) -> None:
        self.capacity = capacity
        self.results: List[LocationSearchResult] = []
        self._seen: set[int] = set()
        self.failed = False

    @property
    def remaining(self) -> int:
        return self.capacity - len(self.results)

    @property
    def full(self) -> bool:
        return self.remaining <= 0

    def extend(self, results: Iterable[LocationSearchResult]) -> None:
        for result in results:
            if result.id in self._seen:
                continue
            self._seen.add(result.id)
            self.results.append(result)


class LocationSearchService:
    def __init__(
        self,
        store: PostalCodeStore,
        *,
        settings: Optional[Settings] = None,
        cache: Optional[TTLCache[List[LocationSearchResult]]] = None,
    ) -> None:
        self._store = store
        self._settings = settings or get_settings()
        self._cache = cache if cache is not None else TTLCache(
            ttl_s=self._settings.cache_ttl_s, max_size=self._settings.cache_max_size
        )

    @property
    def weights(self) -> RelevanceWeights:
        return self._settings.relevance

    def _clamp_limit(self, limit: Optional[int]) -> int:
        if limit is None:
            limit = self._settings.default_max_results
        return max(1, min(limit, self._settings.max_results_cap))

    def _country(self, country: Optional[str]) -> str:
        return (country or self._settings.default_country).strip().upper()

    async def search_locations(
        self, query: str, options: Optional[LocationSearchOptions] = None
    ) -> List[LocationSearchResult]:
        normalized = normalize_query(query, self._settings.min_query_length)
        if normalized is None:
            return []

        options = options or LocationSearchOptions()
        country = self._country(options.country)
        max_results = self._clamp_limit(options.max_results)
        fuzzy = options.fuzzy_search

        cache_key = make_cache_key(country, normalized.text, max_results, fuzzy)
        cached = self._cache.get(cache_key)
        if cached is not None:
            logger.debug("search cache hit", extra={"cache_key": cache_key})
            return self._present(cached, options.include_coordinates)

        collector = _Collector(max_results)
        if normalized.is_postal_like:
            await self._collect_postal(collector, normalized, country)
            if not collector.full:
                await self._collect_place_name(collector, normalized, country, fuzzy)
        else:
            await self._collect_place_name(collector, normalized, country, fuzzy)
            if not collector.full:
                await self._collect_postal(collector, normalized, country)

        results = rank(collector.results, max_results)

        if collector.failed:
            logger.info(
                "search completed with failed sub-searches, not caching",
                extra={"country": country, "query": normalized.text},
            )
        else:
            self._cache.set(cache_key, results)
        return self._present(results, options.include_coordinates)

    async def search_locations_multi(
        self,
        query: str,
        countries: Sequence[str],
        max_results: Optional[int] = None,
        fuzzy_search: bool = True,
    ) -> List[LocationSearchResult]:
        """Search several countries and merge by relevance."""
        limit = self._clamp_limit(max_results)
        merged: List[LocationSearchResult] = []
        seen: set[str] = set()
        for country in countries:
            code = self._country(country)
            if code in seen:
                continue
            seen.add(code)
            merged.extend(
                await self.search_locations(
                    query,
                    LocationSearchOptions(country=code, max_results=limit, fuzzy_search=fuzzy_search),
                )
            )
        return rank(merged, limit)

    async def get_by_postal_code(
        self, postal_code: str, country: Optional[str] = None
    ) -> Optional[LocationSearchResult]:
        code = self._country(country)
        try:
            records = await run_in_threadpool(self._store.find_by_postal_code, postal_code, code, 1)
        except Exception:
            logger.exception(
                "postal code lookup failed",
                extra={"operation": "get_by_postal_code", "country": code, "query": postal_code},
            )
            return None
        if not records:
            return None
        return to_result(records[0], self.weights.postal_code)

    async def get_nearby_locations(
        self,
        lat: float,
        lng: float,
        radius_km: Optional[float] = None,
        country: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[LocationSearchResult]:
        code = self._country(country)
        radius = self._settings.default_radius_km if radius_km is None else radius_km
        try:
            records = await run_in_threadpool(self._store.find_by_country, code)
        except Exception:
            logger.exception(
                "nearby lookup failed",
                extra={"operation": "get_nearby_locations", "country": code, "lat": lat, "lng": lng},
            )
            return []

        return [
            to_result(record, self.weights.nearby, distance_km=round(dist, 3))
            for record, dist in geo.nearby(records, lat, lng, radius, self._clamp_limit(limit))
        ]

    def clear_cache(self) -> None:
        self._cache.clear()

    async def _collect_postal(
        self, collector: _Collector, query: NormalizedQuery, country: str
    ) -> None:
        try:
            records = await run_in_threadpool(
                self._store.find_by_postal_code, query.text, country, collector.remaining
            )
        except Exception:
            collector.failed = True
            logger.exception(
                "postal code search failed",
                extra={"operation": "postal_code", "country": country, "query": query.text},
            )
            return
        collector.extend(to_result(record, self.weights.postal_code) for record in records)

    async def _collect_place_name(
        self, collector: _Collector, query: NormalizedQuery, country: str, fuzzy: bool
    ) -> None:
        try:
            matches = await run_in_threadpool(
                self._store.find_by_place_name, query.text, country, collector.remaining, fuzzy=fuzzy
            )
        except Exception:
            collector.failed = True
            logger.exception(
                "place name search failed",
                extra={"operation": "place_name", "country": country, "query": query.text},
            )
            return
        collector.extend(to_result(record, _tier_score(tier, self.weights)) for record, tier in matches)

        if self._settings.full_text_enabled and not collector.full:
            await self._collect_full_text(collector, query, country)

    async def _collect_full_text(
        self, collector: _Collector, query: NormalizedQuery, country: str
    ) -> None:
        limit = collector.remaining
        try:
            records = await run_in_threadpool(self._store.full_text_search, query.text, country, limit)
        except Exception:
            logger.warning(
                "full-text search unavailable, falling back to place name matching",
                extra={"operation": "full_text", "country": country, "query": query.text},
                exc_info=True,
            )
            try:
                matches = await run_in_threadpool(
                    self._store.find_by_place_name, query.text, country, limit, fuzzy=False
                )
            except Exception:
                collector.failed = True
                logger.exception(
                    "place name fallback failed",
                    extra={"operation": "full_text_fallback", "country": country, "query": query.text},
                )
                return
            collector.extend(
                to_result(record, _tier_score(tier, self.weights)) for record, tier in matches
            )
            return
        collector.extend(to_result(record, self.weights.full_text) for record in records)

    @staticmethod
    def _present(
        results: List[LocationSearchResult], include_coordinates: bool
    ) -> List[LocationSearchResult]:
        if include_coordinates:
            return list(results)
        return [result.model_copy(update={"coordinates": None}) for result in results]
