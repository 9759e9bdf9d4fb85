"""
Tests for market_data.engine.canonical_key: deterministic card identity.
"""

from __future__ import annotations

import pytest

from market_data.engine.canonical_key import (
    build_normalized_key,
    normalize_card_number,
    normalize_game,
    set_number_key,
)


def test_basic_key() -> None:
    assert build_normalized_key("Pokemon", "SV1", "25") == "pokemon:set=sv1:num=25"


def test_key_is_deterministic() -> None:
    """Identical inputs produce an identical key on every call."""
    first = build_normalized_key("pokemon", "SV1", "25", "Reverse Holo", None, "EN")
    second = build_normalized_key("pokemon", "SV1", "25", "Reverse Holo", None, "EN")
    assert first == second


def test_case_whitespace_and_zero_padding_ignored() -> None:
    assert build_normalized_key("POKEMON", "  sv1 ", "025") == build_normalized_key(
        "pokemon", "SV1", "25"
    )


def test_hash_and_total_suffix_stripped() -> None:
    assert build_normalized_key("pokemon", "SV1", "#025/198") == "pokemon:set=sv1:num=25"


def test_optional_segments_appended_in_order() -> None:
    key = build_normalized_key("pokemon", "SV1", "25", "Reverse Holo", "Foil", "EN")
    assert key == "pokemon:set=sv1:num=25:variant=reverse-holo:finish=foil:lang=en"


def test_optional_segments_omitted_when_blank() -> None:
    """Absent attributes are left out rather than filled with placeholders."""
    assert build_normalized_key("pokemon", "SV1", "25", "", "  ", None) == "pokemon:set=sv1:num=25"


def test_set_only_key() -> None:
    assert build_normalized_key("pokemon", "SV1", None) == "pokemon:set=sv1"


def test_number_only_key() -> None:
    assert build_normalized_key("pokemon", None, "25") == "pokemon:num=25"


@pytest.mark.parametrize(
    "game, set_code, number",
    [
        (None, "SV1", "25"),
        ("", "SV1", "25"),
        ("pokemon", None, None),
        ("pokemon", "  ", ""),
    ],
)
def test_insufficient_data_returns_none(game, set_code, number) -> None:
    assert build_normalized_key(game, set_code, number) is None


class TestOnePiece:
    def test_game_alias(self) -> None:
        assert normalize_game("One Piece") == "onepiece"
        assert normalize_game("one-piece") == "onepiece"

    def test_bare_number_becomes_card_code(self) -> None:
        assert normalize_card_number("onepiece", "OP07", "51") == "op07-051"

    def test_full_code_kept(self) -> None:
        assert normalize_card_number("onepiece", "OP07", "OP07-051") == "op07-051"

    def test_key(self) -> None:
        assert (
            build_normalized_key("One Piece", "OP07", "51")
            == "onepiece:set=op07:num=op07-051"
        )


class TestSetNumberKey:
    def test_triple(self) -> None:
        assert set_number_key("Pokemon", "SV1", "#025") == ("pokemon", "sv1", "25")

    def test_partial_triple_is_none(self) -> None:
        assert set_number_key("pokemon", "SV1", None) is None
        assert set_number_key("pokemon", None, "25") is None
        assert set_number_key(None, "SV1", "25") is None
