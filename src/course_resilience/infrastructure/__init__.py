"""
Infrastructure Layer

- **http/**: dual-endpoint API client and envelope models
- **cache/**: TTL role cache
- **monitoring/**: backend health-check cache and Prometheus metrics
"""
