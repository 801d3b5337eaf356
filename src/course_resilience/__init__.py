"""
Course Platform Client Resilience Layer

HTTP client with timeout, retry and dual-endpoint fallback; TTL role cache;
health-check cache; sampling analytics batcher.
"""

__version__ = "1.0.0"
