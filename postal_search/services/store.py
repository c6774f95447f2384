"""
Read-only accessor for the postal_codes reference table.

Every query is a fixed, parameterized statement; the fuzzy and non-fuzzy
place-name searches are two separate statements rather than one assembled at
runtime. Text comparisons go through py_lower(), which create_db_engine
registers on every SQLite connection. Errors from the database propagate to
the caller.
"""
from __future__ import annotations

from typing import Any, List, Mapping, Tuple

from sqlalchemy import text
from sqlalchemy.engine import Engine

from postal_search.models import MatchTier, PlaceRecord

LIKE_ESCAPE = "!"

_BY_POSTAL_CODE = text(
    """
    SELECT * FROM postal_codes
    WHERE country_code = :country AND py_lower(postal_code) = :postal_code
    ORDER BY place_name
    LIMIT :limit
    """
)

_ADMIN_CONTAINS = """
    py_lower(COALESCE(admin_name1, '')) LIKE :contains ESCAPE '!'
    OR py_lower(COALESCE(admin_name2, '')) LIKE :contains ESCAPE '!'
    OR py_lower(COALESCE(admin_name3, '')) LIKE :contains ESCAPE '!'
"""

_BY_PLACE_NAME_FUZZY = text(
    f"""
    SELECT *,
        CASE
            WHEN py_lower(place_name) = :exact THEN 1
            WHEN py_lower(place_name) LIKE :prefix ESCAPE '!' THEN 2
            WHEN py_lower(place_name) LIKE :contains ESCAPE '!' THEN 3
            ELSE 4
        END AS match_rank
    FROM postal_codes
    WHERE country_code = :country AND (
        py_lower(place_name) LIKE :contains ESCAPE '!'
        OR {_ADMIN_CONTAINS}
    )
    ORDER BY match_rank, place_name
    LIMIT :limit
    """
)

_BY_PLACE_NAME_STRICT = text(
    f"""
    SELECT *,
        CASE
            WHEN py_lower(place_name) = :exact THEN 1
            WHEN py_lower(place_name) LIKE :prefix ESCAPE '!' THEN 2
            ELSE 4
        END AS match_rank
    FROM postal_codes
    WHERE country_code = :country AND (
        py_lower(place_name) = :exact
        OR py_lower(place_name) LIKE :prefix ESCAPE '!'
        OR {_ADMIN_CONTAINS}
    )
    ORDER BY match_rank, place_name
    LIMIT :limit
    """
)

_FULL_TEXT = text(
    """
    SELECT pc.* FROM postal_codes pc
    JOIN postal_codes_fts ON pc.id = postal_codes_fts.rowid
    WHERE pc.country_code = :country AND postal_codes_fts MATCH :match
    ORDER BY postal_codes_fts.rank
    LIMIT :limit
    """
)

_BY_COUNTRY = text("SELECT * FROM postal_codes WHERE country_code = :country ORDER BY id")

_RANK_TO_TIER = {
    1: MatchTier.EXACT,
    2: MatchTier.PREFIX,
    3: MatchTier.CONTAINS,
    4: MatchTier.ADMIN,
}


def escape_like(value: str) -> str:
    """Escape LIKE wildcards so user input only ever matches literally."""
    return (
        value.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )


def fts_match_expression(value: str) -> str:
    """Quote each term and make the last one a prefix match: 'bad hom' -> '"bad" "hom"*'."""
    terms = [term.replace('"', '""') for term in value.split()]
    if not terms:
        return '""'
    quoted = [f'"{term}"' for term in terms]
    quoted[-1] += "*"
    return " ".join(quoted)


def _to_record(row: Mapping[str, Any]) -> PlaceRecord:
    return PlaceRecord.model_validate(dict(row))


class PostalCodeStore:
    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def find_by_postal_code(self, postal_code: str, country: str, limit: int) -> List[PlaceRecord]:
        params = {"country": country, "postal_code": postal_code.strip().lower(), "limit": limit}
        with self._engine.connect() as conn:
            rows = conn.execute(_BY_POSTAL_CODE, params).mappings().all()
        return [_to_record(row) for row in rows]

    def find_by_place_name(
        self, name: str, country: str, limit: int, *, fuzzy: bool
    ) -> List[Tuple[PlaceRecord, MatchTier]]:
        escaped = escape_like(name)
        params = {
            "country": country,
            "exact": name,
            "prefix": f"{escaped}%",
            "contains": f"%{escaped}%",
            "limit": limit,
        }
        stmt = _BY_PLACE_NAME_FUZZY if fuzzy else _BY_PLACE_NAME_STRICT
        with self._engine.connect() as conn:
            rows = conn.execute(stmt, params).mappings().all()
        return [(_to_record(row), _RANK_TO_TIER[row["match_rank"]]) for row in rows]

    def full_text_search(self, query: str, country: str, limit: int) -> List[PlaceRecord]:
        params = {"country": country, "match": fts_match_expression(query), "limit": limit}
        with self._engine.connect() as conn:
            rows = conn.execute(_FULL_TEXT, params).mappings().all()
        return [_to_record(row) for row in rows]

    def find_by_country(self, country: str) -> List[PlaceRecord]:
        with self._engine.connect() as conn:
            rows = conn.execute(_BY_COUNTRY, {"country": country}).mappings().all()
        return [_to_record(row) for row in rows]
