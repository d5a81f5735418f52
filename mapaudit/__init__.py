"""
mapaudit - system map consistency auditor

Reads declarative system map documents (domains, components, API endpoints,
database tables) and cross-checks every declared reference against the real
codebase:
- Component files exist
- Declared endpoints are registered by a route handler
- Database tables are defined in their schema files
- Root manifest domains point at real maps

Usage:
    mapaudit path/to/project --format structured
"""

__version__ = "1.0.0"
