"""
Core package — cross-cutting concerns.

Modules:
    config    — environment variables & settings
    logging   — structured JSON logging
    errors    — exception hierarchy & handlers
    security  — bearer-token authentication
    health    — health check aggregation
    database  — async PostgreSQL connection
    cache     — Redis cache for the hospital directory
    middleware — request IDs & access logging
"""
