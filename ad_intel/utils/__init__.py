from ad_intel.utils.logger import logger, get_logger, setup_logging
from ad_intel.utils.funnel import classify_funnel_type, parse_funnel_url
from ad_intel.utils.normalizer import get_normalizer, normalize_items, is_valid_item

__all__ = [
    "logger",
    "get_logger",
    "setup_logging",
    "classify_funnel_type",
    "parse_funnel_url",
    "get_normalizer",
    "normalize_items",
    "is_valid_item",
]
