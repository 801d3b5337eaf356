"""
Monitoring

- **health_checker.py**: cached, single-flight backend health probe
- **metrics_collector.py**: Prometheus metrics for the resilience layer

Import from the submodules directly (api_client imports metrics_collector).
"""
