"""Quota ledger and request governor for the upstream API."""

from twitter_list_rss.ratelimit.governor import BackoffPolicy, RateLimitInfo, RequestGovernor, extract_rate_limit_info
from twitter_list_rss.ratelimit.ledger import QuotaDecision, QuotaLedger, QuotaRecord, normalize_endpoint

__all__ = [
    "BackoffPolicy",
    "QuotaDecision",
    "QuotaLedger",
    "QuotaRecord",
    "RateLimitInfo",
    "RequestGovernor",
    "extract_rate_limit_info",
    "normalize_endpoint",
]
