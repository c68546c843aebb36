"""Tests for the shared synonym table."""

import dataclasses

import pytest

from memory_merge.enrichment.synonyms import (
    DEFAULT_SYNONYM_GROUPS,
    TABLE_VERSION,
    SynonymTable,
    default_table,
)


@pytest.fixture
def table():
    return SynonymTable.from_mapping(
        {
            "car": ["car", "wheels", "vehicle", "set of wheels"],
            "friend": ["friend", "buddy", "mate"],
        },
        version="test-1",
    )


def test_default_table_is_shared():
    assert default_table() is default_table()
    assert default_table().version == TABLE_VERSION


def test_default_table_has_every_category():
    assert default_table().categories == tuple(DEFAULT_SYNONYM_GROUPS)


def test_table_is_immutable(table):
    with pytest.raises(dataclasses.FrozenInstanceError):
        table.version = "2"


def test_match_groups_whole_words_only(table):
    assert table.match_groups("The carpet is new") == []

    matches = table.match_groups("Left the CAR at home")
    assert [m.category for m in matches] == ["car"]
    assert matches[0].matched == "car"


def test_match_groups_one_match_per_category(table):
    matches = table.match_groups("my buddy and my mate borrowed the vehicle")

    assert [m.category for m in matches] == ["car", "friend"]
    # First synonym in table order wins
    assert matches[1].matched == "buddy"


def test_match_groups_phrases(table):
    matches = table.match_groups("he bought a new set of wheels")

    assert matches[0].category == "car"
    assert matches[0].matched == "wheels"


def test_related_excludes_matched_term(table):
    match = table.match_groups("my buddy")[0]

    assert "buddy" not in match.related
    assert match.related == ("friend", "mate")


def test_match_groups_empty_text(table):
    assert table.match_groups("") == []


def test_lookup(table):
    assert table.lookup("Mate") == "friend"
    assert table.lookup(" vehicle ") == "car"
    assert table.lookup("bicycle") is None


def test_synonyms_unknown_category(table):
    assert table.synonyms("boat") == ()
