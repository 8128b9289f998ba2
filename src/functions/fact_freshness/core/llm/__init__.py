"""LLM clients for the fact freshness staging pipeline."""

from .gemini_client import (
    GeminiQualityClient,
    parse_assessment,
    parse_correction,
    parse_final_validation,
)
from .rate_limiter import RateLimiter, RateLimitExceeded

__all__ = [
    "GeminiQualityClient",
    "RateLimiter",
    "RateLimitExceeded",
    "parse_assessment",
    "parse_correction",
    "parse_final_validation",
]
