"""
Application package for the provider monitor.

This package contains:
- settings: configuration loaded from environment / .env
- logging_config: shared logging setup
- errors: domain exceptions and HTTP error helpers
- redis_client: Redis client + JSON helpers (preference persistence)
- services: event bridge, metrics, heatmaps, ordering and the dashboard orchestrator
- deps: FastAPI dependencies
- routes: FastAPI app factory and HTTP endpoints
"""
