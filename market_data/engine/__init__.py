from market_data.engine.blend import blend_prices, compute_blend, confidence_tier
from market_data.engine.canonical_key import build_normalized_key, set_number_key
from market_data.engine.matching import MarketItemIndex, match_catalog_card
from market_data.engine.outliers import filter_outliers, screen_outliers
from market_data.engine.title_screen import screen_title
from market_data.engine.volatility import evaluate_volatility_gate

__all__ = [
    "MarketItemIndex",
    "blend_prices",
    "build_normalized_key",
    "compute_blend",
    "confidence_tier",
    "evaluate_volatility_gate",
    "filter_outliers",
    "match_catalog_card",
    "screen_outliers",
    "screen_title",
    "set_number_key",
]
