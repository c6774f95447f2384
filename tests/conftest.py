from __future__ import annotations

import os

import pytest
from sqlalchemy import text

from postal_search.config import Settings
from postal_search.database import create_db_engine, init_schema
from postal_search.services.search import LocationSearchService
from postal_search.services.store import PostalCodeStore

# (id, country, postal code, place, region, district, municipality, lat, lon)
ROWS = [
    (1, "DE", "10115", "Berlin", "Berlin", "Berlin, Stadt", "Berlin", 52.5323, 13.3846),
    (2, "DE", "10117", "Berlin", "Berlin", "Berlin, Stadt", "Berlin", 52.5170, 13.3889),
    (3, "DE", "10178", "Berlin Mitte", "Berlin", "Berlin, Stadt", "Berlin", 52.5206, 13.4094),
    (4, "DE", "14467", "Potsdam", "Brandenburg", "Kreisfreie Stadt Potsdam", "Potsdam", 52.3989, 13.0657),
    (5, "DE", "15711", "Königs Wusterhausen", "Brandenburg", "Dahme-Spreewald", None, 52.2965, 13.6265),
    (6, "DE", "24211", "Preetz", "Schleswig-Holstein", "Kreis Plön", None, 54.2358, 10.2797),
    (7, "DE", "66887", "Neuberlingen", "Rheinland-Pfalz", "Kusel", None, 49.5500, 7.4500),
    (8, "DE", "88662", "Überlingen", "Baden-Württemberg", "Bodenseekreis", None, 47.7667, 9.1667),
    (9, "DE", "12529", "Schönefeld", "Brandenburg", "Dahme-Spreewald", None, 52.3883, 13.5064),
    (10, "DE", "80331", "München", "Bayern", "Oberbayern", "München", 48.1372, 11.5755),
    (11, "AT", "1010", "Wien", "Wien", "Wien Stadt", None, 48.2085, 16.3721),
    (12, "AT", "5020", "Salzburg", "Salzburg", "Salzburg Stadt", None, 47.7994, 13.0440),
    (13, "DE", "12345", "Spree_Dorf", "Brandenburg", "Oder-Spree", None, 52.3500, 14.0500),
    (14, "DE", "99001", "Berlstedt", "Thüringen", "Weimarer Land", None, 51.0667, 11.2500),
    (15, "DE", "16548", "Glienicke", "Berlin-Umland", "Oberhavel", None, 52.6333, 13.3167),
]


class CountingStore(PostalCodeStore):
    """Real store that records how often each query ran."""

    def __init__(self, engine) -> None:
        super().__init__(engine)
        self.calls: list[str] = []

    def find_by_postal_code(self, postal_code, country, limit):
        self.calls.append("postal_code")
        return super().find_by_postal_code(postal_code, country, limit)

    def find_by_place_name(self, name, country, limit, *, fuzzy):
        self.calls.append("place_name_fuzzy" if fuzzy else "place_name")
        return super().find_by_place_name(name, country, limit, fuzzy=fuzzy)

    def full_text_search(self, query, country, limit):
        self.calls.append("full_text")
        return super().full_text_search(query, country, limit)

    def find_by_country(self, country):
        self.calls.append("country")
        return super().find_by_country(country)


def seed(engine, rows=ROWS) -> None:
    with engine.begin() as conn:
        for row in rows:
            conn.execute(
                text(
                    """
                    INSERT INTO postal_codes (
                        id, country_code, postal_code, place_name,
                        admin_name1, admin_name2, admin_name3, latitude, longitude
                    ) VALUES (:id, :cc, :pc, :place, :a1, :a2, :a3, :lat, :lon)
                    """
                ),
                dict(zip(("id", "cc", "pc", "place", "a1", "a2", "a3", "lat", "lon"), row)),
            )


@pytest.fixture
def engine(tmp_path):
    engine = create_db_engine(f"sqlite:///{tmp_path / 'postal_codes.db'}")
    init_schema(engine, full_text=False)
    seed(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def fts_engine(tmp_path):
    """Seeded database with the FTS5 index.

    Skips on SQLite builds without FTS5 unless POSTAL_SEARCH_REQUIRE_FTS5 is set,
    in which case the missing index fails the run.
    """
    engine = create_db_engine(f"sqlite:///{tmp_path / 'fts.db'}")
    if not init_schema(engine, full_text=True):
        engine.dispose()
        if os.environ.get("POSTAL_SEARCH_REQUIRE_FTS5"):
            pytest.fail("FTS5 is required but not available in this SQLite build")
        pytest.skip("SQLite build without FTS5")
    seed(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def store(engine):
    return CountingStore(engine)


@pytest.fixture
def settings():
    return Settings(_env_file=None)


@pytest.fixture
def service(store, settings):
    return LocationSearchService(store, settings=settings)
