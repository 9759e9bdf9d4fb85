"""
Tests for market_data.engine.matching: the two-tier matching ladder.
"""

from __future__ import annotations

from decimal import Decimal
from types import SimpleNamespace

from market_data.engine.canonical_key import build_normalized_key
from market_data.engine.matching import (
    KEY_EXACT,
    SET_NUMBER_EXACT,
    MarketItemIndex,
    MatchOutcome,
    match_catalog_card,
    metadata_completeness,
)


def _card(card_id: str = "card-1", **attrs) -> SimpleNamespace:
    values = {"game": "pokemon", "set_code": "SV1", "card_number": "25"}
    values.update(attrs)
    values.setdefault(
        "normalized_key",
        build_normalized_key(values["game"], values["set_code"], values["card_number"]),
    )
    return SimpleNamespace(id=card_id, **values)


def _item(item_id: str, **attrs) -> SimpleNamespace:
    values = {
        "category": "pokemon",
        "set_code": "SV1",
        "card_number": "25",
        "variant": None,
        "language": None,
        "set_name": None,
    }
    values.update(attrs)
    values.setdefault(
        "normalized_key",
        build_normalized_key(
            values["category"], values["set_code"], values["card_number"],
            values["variant"], None, values["language"],
        ),
    )
    return SimpleNamespace(id=item_id, **values)


class TestTierA:
    def test_single_exact_key_is_mapped(self) -> None:
        decision = match_catalog_card(_card(), MarketItemIndex([_item("a")]))
        assert decision.outcome == MatchOutcome.MAPPED
        assert decision.chosen.market_item_id == "a"
        assert decision.chosen.confidence == Decimal("1.00")
        assert decision.chosen.method == KEY_EXACT

    def test_exact_key_preempts_set_number(self) -> None:
        """A Tier B candidate is never considered once Tier A has one."""
        index = MarketItemIndex([_item("a"), _item("b", variant="holo")])
        decision = match_catalog_card(_card(), index)
        assert decision.outcome == MatchOutcome.MAPPED
        assert decision.chosen.market_item_id == "a"
        assert [c.market_item_id for c in decision.candidates] == ["a"]

    def test_tie_broken_by_completeness(self) -> None:
        index = MarketItemIndex([_item("a"), _item("b", set_name="Scarlet & Violet")])
        decision = match_catalog_card(_card(), index)
        assert decision.outcome == MatchOutcome.MAPPED
        assert decision.chosen.market_item_id == "b"


class TestTierB:
    def test_single_set_number_candidate(self) -> None:
        index = MarketItemIndex([_item("a", variant="holo")])
        decision = match_catalog_card(_card(), index)
        assert decision.outcome == MatchOutcome.MAPPED
        assert decision.chosen.method == SET_NUMBER_EXACT
        assert decision.chosen.confidence == Decimal("0.98")

    def test_more_complete_candidate_wins(self) -> None:
        index = MarketItemIndex([
            _item("a", variant="holo"),
            _item("b", language="EN"),
        ])
        decision = match_catalog_card(_card(), index)
        assert decision.outcome == MatchOutcome.MAPPED
        assert decision.chosen.market_item_id == "a"

    def test_equal_candidates_are_queued(self) -> None:
        index = MarketItemIndex([
            _item("b", variant="reverse-holo"),
            _item("a", variant="holo"),
        ])
        decision = match_catalog_card(_card(), index)
        assert decision.outcome == MatchOutcome.QUEUED
        assert decision.chosen is None
        assert [c.market_item_id for c in decision.candidates] == ["a", "b"]
        assert {c.confidence for c in decision.candidates} == {Decimal("0.98")}

    def test_queue_holds_at_most_five_candidates(self) -> None:
        items = [_item(f"i{n}", variant=f"v{n}") for n in range(7)]
        decision = match_catalog_card(_card(), MarketItemIndex(items))
        assert decision.outcome == MatchOutcome.QUEUED
        assert len(decision.candidates) == 5

    def test_other_game_not_matched(self) -> None:
        index = MarketItemIndex([_item("a", category="mtg")])
        decision = match_catalog_card(_card(), index)
        assert decision.outcome == MatchOutcome.UNRESOLVED


def test_no_candidates_is_unresolved() -> None:
    decision = match_catalog_card(_card(card_number="99"), MarketItemIndex([_item("a")]))
    assert decision.outcome == MatchOutcome.UNRESOLVED
    assert decision.candidates == []


def test_completeness_ranking() -> None:
    assert metadata_completeness(_item("a", variant="holo")) > metadata_completeness(
        _item("b", language="EN", set_name="Base")
    )
