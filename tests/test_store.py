from __future__ import annotations

import pytest
from sqlalchemy.exc import OperationalError

from postal_search.models import MatchTier
from postal_search.services.store import PostalCodeStore, escape_like, fts_match_expression


def test_find_by_postal_code(store):
    records = store.find_by_postal_code("10115", "DE", 10)
    assert [r.id for r in records] == [1]
    assert records[0].place_name == "Berlin"
    assert records[0].latitude == pytest.approx(52.5323)


def test_find_by_postal_code_is_country_scoped(store):
    assert store.find_by_postal_code("1010", "DE", 10) == []
    assert [r.id for r in store.find_by_postal_code("1010", "AT", 10)] == [11]


def test_find_by_place_name_fuzzy_tiers(store):
    matches = store.find_by_place_name("berl", "DE", 20, fuzzy=True)
    tiers = [tier for _, tier in matches]
    names = [record.place_name for record, _ in matches]

    assert tiers == [MatchTier.PREFIX] * 4 + [MatchTier.CONTAINS] * 2 + [MatchTier.ADMIN]
    assert names[2:] == ["Berlin Mitte", "Berlstedt", "Neuberlingen", "Überlingen", "Glienicke"]


def test_find_by_place_name_strict_skips_substring(store):
    matches = store.find_by_place_name("berl", "DE", 20, fuzzy=False)
    ids = {record.id for record, _ in matches}

    assert ids == {1, 2, 3, 14, 15}
    assert dict((r.id, t) for r, t in matches)[15] is MatchTier.ADMIN


def test_find_by_place_name_exact_first(store):
    matches = store.find_by_place_name("berlin", "DE", 3, fuzzy=True)
    assert [tier for _, tier in matches] == [MatchTier.EXACT, MatchTier.EXACT, MatchTier.PREFIX]


def test_like_wildcards_match_literally(store):
    matches = store.find_by_place_name("e_d", "DE", 20, fuzzy=True)
    assert [record.id for record, _ in matches] == [13]


def test_escape_like():
    assert escape_like("10%_a!") == "10!%!_a!!"


def test_fts_match_expression():
    assert fts_match_expression("bad hom") == '"bad" "hom"*'
    assert fts_match_expression('o"k') == '"o""k"*'
    assert fts_match_expression("   ") == '""'


def test_find_by_country(store):
    assert [r.id for r in store.find_by_country("AT")] == [11, 12]


def test_full_text_without_index_raises(store):
    with pytest.raises(OperationalError):
        store.full_text_search("mitte", "DE", 10)


def test_full_text_search(fts_engine):
    records = PostalCodeStore(fts_engine).full_text_search("mitte", "DE", 10)
    assert [r.id for r in records] == [3]


def test_place_name_matching_folds_non_ascii_capitals(store):
    matches = store.find_by_place_name("überlingen", "DE", 10, fuzzy=False)
    assert [(record.id, tier) for record, tier in matches] == [(8, MatchTier.EXACT)]

    matches = store.find_by_place_name("schön", "DE", 10, fuzzy=False)
    assert [(record.id, tier) for record, tier in matches] == [(9, MatchTier.PREFIX)]


def test_admin_matching_with_umlauts(store):
    matches = store.find_by_place_name("thüringen", "DE", 10, fuzzy=True)
    assert [(record.id, tier) for record, tier in matches] == [(14, MatchTier.ADMIN)]
