"""
Application Layer

- **services/**: role resolution and route access decisions
- **api/middleware/**: Starlette adapter for the route guard
- **app.py**: lifespan wiring and FastAPI application factory
"""
