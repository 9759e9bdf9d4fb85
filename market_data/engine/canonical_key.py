"""
Market Data: Canonical Key Builder

Deterministic identity string for a card, used for exact-match linking
between catalog_cards and market_items (Tier A of the matching ladder).

Format:
    {game}:set={set_code}:num={card_number}[:variant=..][:finish=..][:lang=..]

Every segment is lower-cased with internal whitespace collapsed to "-".
Optional segments are omitted when absent, never filled with placeholders,
so two records only share a key when they carry the same attributes.
Returns None when neither set nor number is present: a key is never guessed
from insufficient data.
"""

from __future__ import annotations

import re

import structlog

logger = structlog.get_logger(__name__)

_GAME_ALIASES: dict[str, str] = {
    "one-piece": "onepiece",
    "one piece": "onepiece",
    "op": "onepiece",
    "magic": "mtg",
    "magic-the-gathering": "mtg",
    "magic the gathering": "mtg",
    "yu-gi-oh": "yugioh",
    "yu-gi-oh!": "yugioh",
    "pkmn": "pokemon",
    "pokémon": "pokemon",
}

_WHITESPACE = re.compile(r"[\s_]+")
_ONE_PIECE_CODE = re.compile(r"^(OP\d{2}|EB\d{2}|ST\d{2}|PRB\d{0,2})-?(\d+)$", re.IGNORECASE)
_NUMBER_TOTAL_SUFFIX = re.compile(r"^(\w+)\s*/\s*\w+$")


def _clean(value: str | None) -> str | None:
    """Lower-case, trim and collapse whitespace. Blank becomes None."""
    if value is None:
        return None
    cleaned = _WHITESPACE.sub("-", str(value).strip().lower())
    return cleaned or None


def normalize_game(game: str | None) -> str | None:
    """Map a game/category label onto its canonical slug."""
    cleaned = str(game).strip().lower() if game is not None else ""
    if not cleaned:
        return None
    if cleaned in _GAME_ALIASES:
        return _GAME_ALIASES[cleaned]
    return _clean(cleaned)


def normalize_card_number(
    game: str | None,
    set_code: str | None,
    card_number: str | None,
) -> str | None:
    """
    Normalize a collector number.

    - strips a leading "#" and a "/total" suffix ("#025/165" -> "25")
    - drops leading zeros from purely numeric numbers
    - One Piece numbers become full card codes ("51" in OP07 -> "op07-051")
    """
    if card_number is None:
        return None
    raw = str(card_number).strip().lstrip("#").strip()
    if not raw:
        return None

    total_match = _NUMBER_TOTAL_SUFFIX.match(raw)
    if total_match:
        raw = total_match.group(1)

    if normalize_game(game) == "onepiece":
        code_match = _ONE_PIECE_CODE.match(raw)
        if code_match:
            return f"{code_match.group(1)}-{code_match.group(2).zfill(3)}".lower()
        if raw.isdigit() and set_code and str(set_code).strip():
            return f"{str(set_code).strip()}-{raw.zfill(3)}".lower()
        return _clean(raw)

    if raw.isdigit():
        return raw.lstrip("0") or "0"
    return _clean(raw)


def build_normalized_key(
    game: str | None,
    set_code: str | None,
    card_number: str | None,
    variant: str | None = None,
    finish: str | None = None,
    language: str | None = None,
) -> str | None:
    """
    Build the canonical key from card attributes.

    Pure function: identical inputs always yield an identical key,
    independent of call order or any stored state.

    Returns:
        The key, or None when game is missing or when neither set nor
        number is present.
    """
    game_slug = normalize_game(game)
    set_slug = _clean(set_code)
    number_slug = normalize_card_number(game, set_code, card_number)

    if game_slug is None or (set_slug is None and number_slug is None):
        logger.debug(
            "canonical_key_insufficient_data",
            game=game,
            set_code=set_code,
            card_number=card_number,
        )
        return None

    parts = [game_slug]
    if set_slug:
        parts.append(f"set={set_slug}")
    if number_slug:
        parts.append(f"num={number_slug}")
    for label, value in (("variant", variant), ("finish", finish), ("lang", language)):
        slug = _clean(value)
        if slug:
            parts.append(f"{label}={slug}")

    return ":".join(parts)


def set_number_key(
    game: str | None,
    set_code: str | None,
    card_number: str | None,
) -> tuple[str, str, str] | None:
    """
    (game, set_code, card_number) triple used by Tier B of the matching
    ladder. Both set and number are required; a partial triple never matches.
    """
    game_slug = normalize_game(game)
    set_slug = _clean(set_code)
    number_slug = normalize_card_number(game, set_code, card_number)
    if not game_slug or not set_slug or not number_slug:
        return None
    return (game_slug, set_slug, number_slug)
