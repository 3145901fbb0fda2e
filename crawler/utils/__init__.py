"""
Network helpers for the Newswire crawler.
"""
from .http_fetcher import HttpFetcher
from .rate_limiter import RateLimiter
from .robots import RobotsChecker
from .robust_rss_parser import RobustRSSParser

__all__ = [
    'HttpFetcher',
    'RateLimiter',
    'RobotsChecker',
    'RobustRSSParser',
]
