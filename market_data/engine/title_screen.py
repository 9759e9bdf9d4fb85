"""
Market Data: Listing Title Screen

Vendor titles are untrusted text. Before a listing's price is used for
anything, the title is screened for keywords that mark it as a different
product (lots, proxies, empty cases, ...). Matching listings are excluded
immediately.

The same module extracts what the title says about the card: grading
company and grade (graded and raw copies are different markets), and the
collector number / set code used for identity checks.
"""

from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation
from typing import NamedTuple

import structlog

from market_data.config import settings

logger = structlog.get_logger(__name__)

RAW = "raw"
GRADED = "graded"

_ONE_PIECE_SET = re.compile(r"\b(OP\d{2}|EB\d{2}|ST\d{2}|PRB\d{0,2})\b", re.IGNORECASE)
_ONE_PIECE_CODE = re.compile(r"\b(OP\d{2}|EB\d{2}|ST\d{2}|PRB\d{0,2})[-\s]?(\d{1,3})\b", re.IGNORECASE)
_HASH_NUMBER = re.compile(r"#\s*(\d+)(?:\s*/\s*\d+)?")
_SLASH_NUMBER = re.compile(r"\b(\d{1,3})\s*/\s*\d{1,3}\b")
_BRACKET_NUMBER = re.compile(r"\[(\d+)\]")
# One unsigned amount, optional US thousands separators, optional decimals
_PRICE = re.compile(r"[^\d\-]*(\d{1,3}(?:,\d{3})+|\d+)(\.\d+)?\D*")


class TitleScreen(NamedTuple):
    """What a listing title says about the item."""
    is_outlier: bool
    outlier_reason: str | None
    condition: str              # "raw" | "graded"
    grade_company: str | None
    grade_value: Decimal | None
    set_code: str | None
    card_number: str | None


def find_excluded_keyword(title: str) -> str | None:
    """Return the first exclusion keyword found as a whole word, if any."""
    lowered = title.lower()
    for keyword in settings.OUTLIER_KEYWORDS:
        if re.search(rf"\b{re.escape(keyword)}\b", lowered):
            return keyword
    return None


def parse_grade(title: str) -> tuple[str | None, Decimal | None]:
    """Extract ("PSA", Decimal("10")) style grading info from a title."""
    companies = "|".join(re.escape(c) for c in settings.GRADING_COMPANIES)
    match = re.search(rf"\b({companies})\s*(\d{{1,2}}(?:\.\d)?)\b", title, re.IGNORECASE)
    if not match:
        return None, None
    try:
        value = Decimal(match.group(2))
    except InvalidOperation:
        return None, None
    if value <= 0 or value > 10:
        return None, None
    return match.group(1).upper(), value


def parse_card_number(title: str, game: str | None = None) -> tuple[str | None, str | None]:
    """
    Extract (set_code, card_number) from a title.

    One Piece titles carry full codes ("OP07-051"); other games carry a
    collector number ("#25/165", "25/165", "[25]").
    """
    if game == "onepiece":
        code = _ONE_PIECE_CODE.search(title)
        if code:
            set_code = code.group(1).upper()
            return set_code, f"{set_code}-{code.group(2).zfill(3)}"
        set_match = _ONE_PIECE_SET.search(title)
        return (set_match.group(1).upper() if set_match else None), None

    for pattern in (_HASH_NUMBER, _SLASH_NUMBER, _BRACKET_NUMBER):
        match = pattern.search(title)
        if match:
            return None, match.group(1)
    return None, None


def screen_title(title: str | None, game: str | None = None) -> TitleScreen:
    """
    Screen a listing title.

    The keyword check runs first and short-circuits: an excluded listing
    gets no identity or grade parsing.
    """
    text = title or ""
    keyword = find_excluded_keyword(text)
    if keyword is not None:
        logger.debug("title_screen_excluded", keyword=keyword, title=text[:80])
        return TitleScreen(
            is_outlier=True,
            outlier_reason=f'Contains "{keyword}"',
            condition=RAW,
            grade_company=None,
            grade_value=None,
            set_code=None,
            card_number=None,
        )

    grade_company, grade_value = parse_grade(text)
    set_code, card_number = parse_card_number(text, game)
    return TitleScreen(
        is_outlier=False,
        outlier_reason=None,
        condition=GRADED if grade_company else RAW,
        grade_company=grade_company,
        grade_value=grade_value,
        set_code=set_code,
        card_number=card_number,
    )


def parse_price(value: object) -> Decimal | None:
    """
    Parse a vendor price field ("$1,234.50", 45.99, "45.99 USD") into a
    positive Decimal. Never use float for money.

    Ranges ("$5 - $9"), several numbers, negatives and comma-decimal
    formats ("1.234,56") are ambiguous and return None.
    """
    if value is None or isinstance(value, bool):
        return None
    match = _PRICE.fullmatch(str(value).strip())
    if match is None:
        return None
    whole, fraction = match.groups()
    price = Decimal(whole.replace(",", "") + (fraction or ""))
    return price if price > 0 else None
