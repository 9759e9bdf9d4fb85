"""
Models package: export all SQLAlchemy models.
"""

from market_data.models.aggregation_log import AggregationLogEntry
from market_data.models.base import Base
from market_data.models.catalog_card import CatalogCard
from market_data.models.catalog_card_map import CatalogCardMap
from market_data.models.market_item import MarketItem
from market_data.models.match_review import MatchReviewQueueEntry, ReviewKind, ReviewStatus
from market_data.models.price_event import PriceEvent
from market_data.models.unmatched_item import UnmatchedItem

__all__ = [
    "AggregationLogEntry",
    "Base",
    "CatalogCard",
    "CatalogCardMap",
    "MarketItem",
    "MatchReviewQueueEntry",
    "PriceEvent",
    "ReviewKind",
    "ReviewStatus",
    "UnmatchedItem",
]
